# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from coreason_judge import __version__
from coreason_judge.models import ExecutionRequest, ExecutionResult, TestCase
from coreason_judge.service import ExecutionServiceAsync

STATUS_CODES = {
    "rejected": 400,
    "service_unavailable": 503,
}


class RoomExecuteRequest(BaseModel):
    """Body of the room pass-through; the language comes from the room."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    code: str
    stdin: str | None = None
    test_cases: tuple[TestCase, ...] = ()


def _result_response(result: ExecutionResult) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_CODES.get(result.status, 200),
        content=result.model_dump(mode="json", by_alias=True),
    )


def create_app(service: ExecutionServiceAsync | None = None) -> FastAPI:
    """Build the HTTP application.

    Args:
        service: Execution service to serve. When omitted one is created from the
            environment at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = getattr(app.state, "service", None) is None
        if owned:
            app.state.service = ExecutionServiceAsync()
        logger.info("Execution service started")
        yield
        if owned:
            await app.state.service.close()
        logger.info("Execution service stopped")

    app = FastAPI(
        title="coreason-judge",
        description="Sandboxed multi-language code execution",
        version=__version__,
        lifespan=lifespan,
    )
    if service is not None:
        app.state.service = service

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"status": "internal_error", "detail": "An internal error occurred"},
        )

    @app.post("/execute")
    async def execute(body: ExecutionRequest, request: Request) -> JSONResponse:
        result = await request.app.state.service.execute(body)
        return _result_response(result)

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        report: dict[str, Any] = await request.app.state.service.health()
        return JSONResponse(status_code=503 if report["status"] == "unhealthy" else 200, content=report)

    @app.get("/languages")
    async def languages(request: Request) -> list[dict[str, str]]:
        return request.app.state.service.languages()

    @app.post("/rooms/{room_id}/execute")
    async def execute_in_room(room_id: str, body: RoomExecuteRequest, request: Request) -> JSONResponse:
        service: ExecutionServiceAsync = request.app.state.service
        language = service.config.room_languages.get(room_id)
        if language is None:
            raise HTTPException(status_code=404, detail=f"Unknown room: {room_id}")
        forwarded = ExecutionRequest(
            language=language,
            code=body.code,
            stdin=body.stdin,
            test_cases=body.test_cases,
        )
        logger.info(f"Room {room_id} forwarding {language} request")
        return _result_response(await service.execute(forwarded))

    return app
