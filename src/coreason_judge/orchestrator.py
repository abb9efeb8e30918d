# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

from dataclasses import dataclass, field
from enum import StrEnum
from uuid import uuid4

from loguru import logger

from coreason_judge.config import JudgeConfig
from coreason_judge.errors import (
    FallbackFailed,
    IllegalStateTransition,
    ProvisioningFailed,
    SandboxFailure,
    ServiceUnavailable,
)
from coreason_judge.languages import LanguageAdapter, get_adapter
from coreason_judge.models import ExecutionRequest, ExecutionResult, RawExecution, SandboxSpec, TestCaseResult
from coreason_judge.normalizer import aborted_case, aggregate, build_result, grade_case
from coreason_judge.runtimes.judge0 import Judge0Client
from coreason_judge.sandbox_manager import SandboxManager
from coreason_judge.utils.audit import AuditLogger
from coreason_judge.validator import validate_request


class RequestState(StrEnum):
    RECEIVED = "received"
    VALIDATED = "validated"
    SANDBOXED = "sandboxed"
    COLLECTING = "collecting"
    NORMALIZING = "normalizing"
    DONE = "done"
    FAILED = "failed"


# With test cases the sandboxed -> collecting -> normalizing cycle repeats per case.
# A case that never got a sandbox goes straight to normalizing to be marked failed.
_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.RECEIVED: frozenset({RequestState.VALIDATED, RequestState.FAILED}),
    RequestState.VALIDATED: frozenset({RequestState.SANDBOXED, RequestState.NORMALIZING, RequestState.FAILED}),
    RequestState.SANDBOXED: frozenset({RequestState.COLLECTING, RequestState.NORMALIZING, RequestState.FAILED}),
    RequestState.COLLECTING: frozenset({RequestState.NORMALIZING, RequestState.FAILED}),
    RequestState.NORMALIZING: frozenset(
        {RequestState.SANDBOXED, RequestState.NORMALIZING, RequestState.DONE, RequestState.FAILED}
    ),
    RequestState.DONE: frozenset(),
    RequestState.FAILED: frozenset(),
}


@dataclass
class RequestPipeline:
    """Per-request state machine."""

    request_id: str
    state: RequestState = RequestState.RECEIVED
    history: list[RequestState] = field(default_factory=lambda: [RequestState.RECEIVED])

    def advance(self, new_state: RequestState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise IllegalStateTransition(f"{self.request_id}: {self.state} -> {new_state}")
        logger.debug(f"Request {self.request_id}: {self.state} -> {new_state}")
        self.state = new_state
        self.history.append(new_state)

    def fail(self) -> None:
        self.advance(RequestState.FAILED)


class ExecutionOrchestrator:
    """Sequences validation, sandbox execution, normalization and fallback for one request.

    Validation and provisioning failures are resolved here and returned as
    structured results; they never escape to the caller.
    """

    def __init__(
        self,
        config: JudgeConfig,
        manager: SandboxManager,
        fallback: Judge0Client | None = None,
        audit: AuditLogger | None = None,
    ):
        self.config = config
        self.manager = manager
        self.fallback = fallback
        self.audit = audit or AuditLogger(enabled=config.enable_audit_logging)

    async def execute(self, request: ExecutionRequest, request_id: str | None = None) -> ExecutionResult:
        """Run one request through the pipeline.

        Args:
            request: The submission.
            request_id: Optional identifier; generated when omitted.

        Returns:
            ExecutionResult: Always a well-formed result, including for rejected
            submissions and unavailable runtimes.
        """
        pipeline = RequestPipeline(request_id or uuid4().hex)
        logger.info(f"Received {request.language} request {pipeline.request_id}")

        outcome = validate_request(
            request,
            max_code_bytes=self.config.max_code_bytes,
            max_stdin_bytes=self.config.max_stdin_bytes,
        )
        adapter = get_adapter(request.language)
        if not outcome.passed or adapter is None:
            logger.warning(f"Rejected request {pipeline.request_id}: {outcome.reason}")
            pipeline.fail()
            return ExecutionResult(
                success=False,
                status="rejected",
                error=outcome.reason,
                request_id=pipeline.request_id,
                language=request.language,
            )
        pipeline.advance(RequestState.VALIDATED)

        spec = self.config.sandbox_spec(adapter.name)
        self.audit.log_submission(pipeline.request_id, request.code, adapter.name)

        if request.test_cases:
            result = await self._grade(pipeline, request, adapter, spec)
        else:
            result = await self._run_single(pipeline, request, adapter, spec)

        if result.status == "service_unavailable":
            pipeline.fail()
        else:
            pipeline.advance(RequestState.DONE)
        logger.info(
            f"Request {pipeline.request_id} finished: {result.status}",
            execution_time_ms=result.execution_time_ms,
            backend=result.backend,
        )
        return result

    async def _run_single(
        self,
        pipeline: RequestPipeline,
        request: ExecutionRequest,
        adapter: LanguageAdapter,
        spec: SandboxSpec,
    ) -> ExecutionResult:
        try:
            raw = await self._run_unit(pipeline, pipeline.request_id, adapter, spec, request.code, request.stdin or "")
        except ServiceUnavailable as e:
            return ExecutionResult(
                success=False,
                status="service_unavailable",
                error=str(e),
                request_id=pipeline.request_id,
                language=adapter.name,
            )
        except SandboxFailure as e:
            pipeline.advance(RequestState.NORMALIZING)
            return ExecutionResult(
                success=False,
                status="error",
                error=str(e),
                request_id=pipeline.request_id,
                language=adapter.name,
                backend="sandbox",
            )

        pipeline.advance(RequestState.NORMALIZING)
        return build_result(raw, adapter, spec, pipeline.request_id)

    async def _grade(
        self,
        pipeline: RequestPipeline,
        request: ExecutionRequest,
        adapter: LanguageAdapter,
        spec: SandboxSpec,
    ) -> ExecutionResult:
        results: list[TestCaseResult] = []
        unavailable: str | None = None
        for index, case in enumerate(request.test_cases):
            if unavailable is not None:
                # Both backends are down; the remaining cases are not attempted.
                pipeline.advance(RequestState.NORMALIZING)
                results.append(aborted_case(index, case, unavailable, status="service_unavailable"))
                continue

            unit_id = f"{pipeline.request_id}-{index}"
            try:
                raw = await self._run_unit(pipeline, unit_id, adapter, spec, request.code, case.input)
            except ServiceUnavailable as e:
                logger.warning(f"Test case {index} of {pipeline.request_id} aborted: {e}")
                pipeline.advance(RequestState.NORMALIZING)
                unavailable = str(e)
                results.append(aborted_case(index, case, unavailable, status="service_unavailable"))
                continue
            except SandboxFailure as e:
                logger.warning(f"Test case {index} of {pipeline.request_id} aborted: {e}")
                pipeline.advance(RequestState.NORMALIZING)
                results.append(aborted_case(index, case, str(e)))
                continue

            pipeline.advance(RequestState.NORMALIZING)
            results.append(grade_case(index, case, raw, adapter, spec))

        return aggregate(results, adapter, pipeline.request_id)

    async def _run_unit(
        self,
        pipeline: RequestPipeline,
        unit_id: str,
        adapter: LanguageAdapter,
        spec: SandboxSpec,
        code: str,
        stdin: str,
    ) -> RawExecution:
        """Execute one unit locally, falling back once if no sandbox can be provisioned.

        Raises:
            ServiceUnavailable: If neither the local sandbox nor the fallback could run it.
            SandboxFailure: If the local sandbox broke mid-run.
        """
        try:
            async with self.manager.sandbox(unit_id, spec, adapter, code, stdin) as handle:
                pipeline.advance(RequestState.SANDBOXED)
                pipeline.advance(RequestState.COLLECTING)
                return await self.manager.runtime.collect(handle)
        except ProvisioningFailed as e:
            return await self._run_fallback(pipeline, unit_id, adapter, spec, code, stdin, e)

    async def _run_fallback(
        self,
        pipeline: RequestPipeline,
        unit_id: str,
        adapter: LanguageAdapter,
        spec: SandboxSpec,
        code: str,
        stdin: str,
        cause: ProvisioningFailed,
    ) -> RawExecution:
        if self.fallback is None:
            raise ServiceUnavailable(f"Sandbox runtime unavailable: {cause}") from cause

        logger.warning(f"Local sandbox unavailable for {unit_id}; using fallback judge")
        pipeline.advance(RequestState.SANDBOXED)
        pipeline.advance(RequestState.COLLECTING)
        try:
            return await self.fallback.execute(adapter, code, stdin, spec)
        except FallbackFailed as e:
            logger.error(f"Fallback judge failed for {unit_id}: {e}")
            raise ServiceUnavailable(f"Sandbox runtime and fallback judge unavailable: {e}") from e
