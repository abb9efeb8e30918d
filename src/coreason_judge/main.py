# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

from typing import Literal

import uvicorn
from mcp.server.fastmcp import FastMCP
from mcp.types import TextContent

import coreason_judge.utils.logger  # noqa: F401
from coreason_judge.api import create_app
from coreason_judge.config import JudgeConfig
from coreason_judge.models import ExecutionRequest
from coreason_judge.service import ExecutionServiceAsync

# Initialize Execution Service
service = ExecutionServiceAsync()

# Initialize MCP Server
mcp = FastMCP("coreason-judge")


@mcp.tool()  # type: ignore[misc]
async def execute_code(
    language: Literal["python", "javascript"], code: str, stdin: str = ""
) -> list[TextContent]:
    """
    Execute code in an isolated, short-lived sandbox.
    Returns the status, stdout, stderr, exit code and duration.
    """
    try:
        result = await service.execute(ExecutionRequest(language=language, code=code, stdin=stdin or None))
    except Exception as e:
        return [TextContent(type="text", text=f"Error executing code: {e!s}")]

    output = [TextContent(type="text", text=f"Status: {result.status}")]

    if result.error:
        output.append(TextContent(type="text", text=f"Error: {result.error}"))

    if result.compile_output:
        output.append(TextContent(type="text", text=f"COMPILE OUTPUT:\n{result.compile_output}"))

    if result.stdout:
        output.append(TextContent(type="text", text=f"STDOUT:\n{result.stdout}"))

    if result.stderr and result.stderr != result.compile_output:
        output.append(TextContent(type="text", text=f"STDERR:\n{result.stderr}"))

    if result.exit_code is not None:
        output.append(TextContent(type="text", text=f"Exit Code: {result.exit_code}"))

    if result.execution_time_ms:
        output.append(TextContent(type="text", text=f"Duration: {result.execution_time_ms}ms"))

    return output


def main() -> None:
    """Entry point for the MCP server."""
    mcp.run()


def serve() -> None:
    """Entry point for the HTTP server."""
    config = JudgeConfig()
    uvicorn.run(create_app(), host=config.host, port=config.port)


if __name__ == "__main__":  # pragma: no cover
    main()
