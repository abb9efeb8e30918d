# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

"""Maps raw process output into ExecutionResult / TestCaseResult."""

from coreason_judge.languages import LanguageAdapter
from coreason_judge.models import (
    ExecutionResult,
    ExecutionStatus,
    RawExecution,
    SandboxSpec,
    TestCase,
    TestCaseResult,
)

MEMORY_EXCEEDED = "Memory limit exceeded"


def classify(raw: RawExecution, adapter: LanguageAdapter) -> ExecutionStatus:
    """Classify one run. Rules apply in priority order."""
    if raw.timed_out:
        return "timeout"
    if raw.compile_output:
        return "compilation_error"
    if raw.exit_code == 0 and not raw.stderr:
        return "success"
    if adapter.is_compilation_error(raw.stdout, raw.stderr):
        return "compilation_error"
    return "error"


def _error_message(status: ExecutionStatus, raw: RawExecution, spec: SandboxSpec) -> str | None:
    if status == "timeout":
        return f"Execution timed out after {spec.timeout_ms}ms"
    if raw.oom_killed:
        return MEMORY_EXCEEDED
    return None


def _compile_output(status: ExecutionStatus, raw: RawExecution) -> str | None:
    if status != "compilation_error":
        return None
    return raw.compile_output or raw.stderr


def build_result(
    raw: RawExecution,
    adapter: LanguageAdapter,
    spec: SandboxSpec,
    request_id: str,
) -> ExecutionResult:
    """Normalize a single run (no test cases)."""
    status = classify(raw, adapter)
    return ExecutionResult(
        success=status == "success",
        stdout=raw.stdout,
        stderr=raw.stderr,
        compile_output=_compile_output(status, raw),
        status=status,
        execution_time_ms=raw.duration_ms,
        request_id=request_id,
        language=adapter.name,
        exit_code=raw.exit_code,
        error=_error_message(status, raw, spec),
        backend=raw.backend,
        memory_exceeded=raw.oom_killed,
    )


def outputs_match(actual: str, expected: str) -> bool:
    return actual.strip() == expected.strip()


def grade_case(
    index: int,
    case: TestCase,
    raw: RawExecution,
    adapter: LanguageAdapter,
    spec: SandboxSpec,
) -> TestCaseResult:
    """Grade one test case: it passes iff the run succeeded and trimmed stdout matches."""
    status = classify(raw, adapter)
    return TestCaseResult(
        index=index,
        input=case.input,
        expected_output=case.expected_output,
        actual_output=raw.stdout,
        passed=status == "success" and outputs_match(raw.stdout, case.expected_output),
        status=status,
        stderr=_compile_output(status, raw) or raw.stderr,
        execution_time_ms=raw.duration_ms,
        error=_error_message(status, raw, spec),
        exit_code=raw.exit_code,
        backend=raw.backend,
        memory_exceeded=raw.oom_killed,
    )


def aborted_case(
    index: int,
    case: TestCase,
    reason: str,
    status: ExecutionStatus = "error",
) -> TestCaseResult:
    """A case whose execution never completed. Marked failed."""
    return TestCaseResult(
        index=index,
        input=case.input,
        expected_output=case.expected_output,
        passed=False,
        status=status,
        error=reason,
    )


def aggregate(
    cases: list[TestCaseResult],
    adapter: LanguageAdapter,
    request_id: str,
) -> ExecutionResult:
    """Fold graded cases into one ExecutionResult.

    The overall status is that of the first case that did not succeed. Top-level
    output comes from the first failing case, otherwise from the last one.
    """
    failing = next((case for case in cases if not case.passed), None)
    shown = failing or cases[-1]
    status: ExecutionStatus = next((case.status for case in cases if case.status != "success"), "success")
    if status == "service_unavailable" and any(case.status != "service_unavailable" for case in cases):
        # Some cases did run; only a request where nothing could run is unavailable.
        status = next(
            (case.status for case in cases if case.status not in ("success", "service_unavailable")),
            "error",
        )

    return ExecutionResult(
        success=status == "success" and failing is None,
        stdout=shown.actual_output,
        stderr=shown.stderr,
        compile_output=shown.stderr if shown.status == "compilation_error" else None,
        status=status,
        execution_time_ms=sum(case.execution_time_ms for case in cases),
        per_test_case_results=cases,
        request_id=request_id,
        language=adapter.name,
        exit_code=shown.exit_code,
        error=shown.error,
        backend=shown.backend,
        memory_exceeded=any(case.memory_exceeded for case in cases),
    )
