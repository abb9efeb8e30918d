# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from loguru import logger

from coreason_judge.errors import ProvisioningFailed
from coreason_judge.languages import LanguageAdapter
from coreason_judge.models import SandboxSpec
from coreason_judge.runtime import SandboxHandle, SandboxRuntime


class SandboxManager:
    """Owns the lifecycle of per-request sandboxes.

    Sandboxes live in an arena keyed by request id and are destroyed on scope exit.
    A bounded limiter gates how many sandboxes exist on the host at once; it is the
    only state shared between concurrent requests.
    """

    def __init__(self, runtime: SandboxRuntime, max_concurrent: int = 8, provision_retries: int = 1):
        """Initializes the SandboxManager.

        Args:
            runtime: The runtime that creates and destroys sandboxes.
            max_concurrent: Width of the host-capacity limiter.
            provision_retries: Local retries after a failed provisioning (at most one).
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.runtime = runtime
        self.capacity = max_concurrent
        self.provision_retries = min(max(provision_retries, 0), 1)
        self.active: dict[str, SandboxHandle] = {}
        self.in_use = 0
        self.provisioned_count = 0
        self.destroyed_count = 0
        self._limiter = asyncio.Semaphore(max_concurrent)

    @property
    def active_count(self) -> int:
        return len(self.active)

    @asynccontextmanager
    async def sandbox(
        self,
        request_id: str,
        spec: SandboxSpec,
        adapter: LanguageAdapter,
        code: str,
        stdin: str = "",
    ) -> AsyncIterator[SandboxHandle]:
        """Acquire a sandbox for ``request_id`` and guarantee its teardown.

        The capacity slot is taken before provisioning and released after the sandbox
        is destroyed, on every exit path.

        Raises:
            ProvisioningFailed: If provisioning still fails after the local retry.
            ValueError: If ``request_id`` already owns a sandbox.
        """
        if request_id in self.active:
            raise ValueError(f"Sandbox for request {request_id} already exists")

        async with self._limiter:
            self.in_use += 1
            try:
                handle = await self._provision(request_id, spec, adapter, code, stdin)
                self.active[request_id] = handle
                self.provisioned_count += 1
                try:
                    yield handle
                finally:
                    self.active.pop(request_id, None)
                    await self.runtime.destroy(handle)
                    self.destroyed_count += 1
            finally:
                self.in_use -= 1

    async def _provision(
        self,
        request_id: str,
        spec: SandboxSpec,
        adapter: LanguageAdapter,
        code: str,
        stdin: str,
    ) -> SandboxHandle:
        attempts = 1 + self.provision_retries
        for attempt in range(1, attempts + 1):
            try:
                return await self.runtime.provision(request_id, spec, adapter, code, stdin)
            except ProvisioningFailed as e:
                if attempt == attempts:
                    logger.error(f"Provisioning failed for {request_id} after {attempts} attempt(s): {e}")
                    raise
                logger.warning(f"Provisioning failed for {request_id} (attempt {attempt}/{attempts}): {e}. Retrying.")
        raise ProvisioningFailed(f"Provisioning failed for {request_id}")  # pragma: no cover

