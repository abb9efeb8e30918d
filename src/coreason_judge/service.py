# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

from datetime import datetime, timezone
from typing import Any

import anyio
import httpx
from loguru import logger

from coreason_judge.config import JudgeConfig
from coreason_judge.factory import SandboxFactory
from coreason_judge.languages import ADAPTERS
from coreason_judge.models import ExecutionRequest, ExecutionResult
from coreason_judge.orchestrator import ExecutionOrchestrator
from coreason_judge.runtime import SandboxRuntime
from coreason_judge.runtimes.judge0 import Judge0Client
from coreason_judge.sandbox_manager import SandboxManager
from coreason_judge.utils.audit import AuditLogger


class ExecutionServiceAsync:
    """Async-native execution service (The Core).

    Wires the sandbox runtime, the capacity-limited manager, the fallback judge and
    the orchestrator together, and owns their lifecycle.
    """

    def __init__(
        self,
        config: JudgeConfig | None = None,
        runtime: SandboxRuntime | None = None,
        fallback: Judge0Client | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initializes the ExecutionServiceAsync.

        Args:
            config: Service configuration. Loaded from the environment when omitted.
            runtime: Sandbox runtime override; built from the config when omitted.
            fallback: Fallback judge override; built from the config when omitted.
            client: Optional httpx.AsyncClient for the fallback judge.
        """
        self.config = config or JudgeConfig()
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.fallback_timeout)
        self.runtime = runtime or SandboxFactory.get_runtime(self.config)
        self.fallback = fallback if fallback is not None else SandboxFactory.get_fallback(self.config, self._client)
        self.manager = SandboxManager(
            self.runtime,
            max_concurrent=self.config.max_concurrent_sandboxes,
            provision_retries=self.config.provision_retries,
        )
        self.orchestrator = ExecutionOrchestrator(
            self.config,
            self.manager,
            fallback=self.fallback,
            audit=AuditLogger(enabled=self.config.enable_audit_logging),
        )

    async def __aenter__(self) -> "ExecutionServiceAsync":
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    async def execute(self, request: ExecutionRequest, request_id: str | None = None) -> ExecutionResult:
        """Executes one request.

        Args:
            request: The submission.
            request_id: Optional identifier for log correlation.

        Returns:
            ExecutionResult: The normalized result.
        """
        return await self.orchestrator.execute(request, request_id)

    async def health(self) -> dict[str, Any]:
        """Report runtime availability and sandbox usage.

        The service is ``healthy`` when the local runtime answers, ``degraded`` when
        only the fallback judge can serve requests, and ``unhealthy`` otherwise.
        """
        runtime_ok = await self.runtime.ping()
        fallback_ok = self.fallback is not None
        if runtime_ok:
            status = "healthy"
        elif fallback_ok:
            status = "degraded"
        else:
            status = "unhealthy"
            logger.warning("Health check: no execution path available")

        return {
            "status": status,
            "services": {
                "sandbox_runtime": "available" if runtime_ok else "unavailable",
                "fallback_judge": "configured" if fallback_ok else "not_configured",
            },
            "sandboxes": {
                "active": self.manager.active_count,
                "in_use": self.manager.in_use,
                "capacity": self.manager.capacity,
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def languages(self) -> list[dict[str, str]]:
        return [
            {**adapter.describe(), "image": self.config.image_for(name)}
            for name, adapter in sorted(ADAPTERS.items())
        ]

    async def close(self) -> None:
        """Releases the runtime connection and any internally owned HTTP client."""
        await self.runtime.close()
        if self._internal_client:
            await self._client.aclose()


class ExecutionService:
    """Sync facade for ExecutionServiceAsync (The Facade).

    Each call runs on a fresh event loop via anyio.run, so the async service is
    created and closed per call.
    """

    def __init__(self, config: JudgeConfig | None = None):
        self.config = config or JudgeConfig()

    async def _execute(self, request: ExecutionRequest, request_id: str | None) -> ExecutionResult:
        async with ExecutionServiceAsync(self.config) as service:
            return await service.execute(request, request_id)

    def execute(self, request: ExecutionRequest, request_id: str | None = None) -> ExecutionResult:
        """Executes one request synchronously.

        Args:
            request: The submission.
            request_id: Optional identifier for log correlation.

        Returns:
            ExecutionResult: The normalized result.
        """
        return anyio.run(self._execute, request, request_id)
