# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from coreason_judge.languages import LanguageAdapter
from coreason_judge.models import RawExecution, SandboxSpec


@dataclass
class SandboxHandle:
    """Ephemeral handle to one provisioned sandbox.

    Owned by exactly one request (or one test case of it) and never reused.
    """

    request_id: str
    sandbox_id: str
    spec: SandboxSpec
    ref: Any = None
    started_at: float = field(default_factory=time.monotonic)


class SandboxRuntime(ABC):
    """
    Abstract base class for sandbox runtimes (e.g., Docker).
    Follows the Strategy Pattern.
    """

    @abstractmethod
    async def provision(
        self,
        request_id: str,
        spec: SandboxSpec,
        adapter: LanguageAdapter,
        code: str,
        stdin: str,
    ) -> SandboxHandle:
        """Create and start an isolated environment running ``code``.

        Anything partially created is cleaned up before an error is raised.

        Args:
            request_id: Arena key for the sandbox.
            spec: Resource and isolation envelope.
            adapter: Language adapter providing the interpreter command.
            code: The validated source code.
            stdin: Text piped to the program's standard input.

        Returns:
            SandboxHandle: Handle to the running sandbox.

        Raises:
            ProvisioningFailed: If the runtime is unavailable or the sandbox fails to start.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def collect(self, handle: SandboxHandle) -> RawExecution:
        """Wait for the program under the hard timeout and capture its output.

        The timer runs on the host. On expiry the sandbox is killed and the
        returned RawExecution has ``timed_out`` set.

        Raises:
            SandboxFailure: If the runtime fails while the program is running.
        """
        pass  # pragma: no cover

    @abstractmethod
    async def destroy(self, handle: SandboxHandle) -> None:
        """Kill and remove the sandbox. Never raises."""
        pass  # pragma: no cover

    @abstractmethod
    async def ping(self) -> bool:
        """Report whether the runtime can currently provision sandboxes."""
        pass  # pragma: no cover

    async def close(self) -> None:
        """Release client resources held by the runtime."""
        return None
