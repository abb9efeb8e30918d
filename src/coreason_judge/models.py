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

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from coreason_judge.errors import (
    CompilationError,
    ExecutionTimeout,
    JudgeError,
    ProgramRuntimeError,
    ServiceUnavailable,
    ValidationRejected,
)

ExecutionStatus = Literal[
    "success",
    "error",
    "timeout",
    "compilation_error",
    "rejected",
    "service_unavailable",
]

Backend = Literal["sandbox", "fallback"]


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python; both accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TestCase(_WireModel):
    """An (input, expectedOutput) pair graded independently of all other cases.

    Attributes:
        input: Text piped to the program's standard input.
        expected_output: Expected standard output, compared after trimming.
    """

    __test__ = False

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    input: str = ""
    expected_output: str = ""


class ExecutionRequest(_WireModel):
    """A single submission. Immutable once accepted.

    Attributes:
        language: Target language. Unsupported values are rejected by the validator.
        code: Source code to execute.
        stdin: Optional standard input, used when no test cases are supplied.
        test_cases: Optional ordered test cases to grade the submission against.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    language: str
    code: str
    stdin: str | None = None
    test_cases: tuple[TestCase, ...] = ()


class SandboxSpec(_WireModel):
    """Per-language resource and isolation envelope for one sandbox.

    The isolation fields are literal ``True``: they are part of the type, not settings.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    base_image: str
    memory_limit_mb: int = 256
    cpu_share: float = 0.5
    pid_limit: int = 50
    network_disabled: Literal[True] = True
    read_only_rootfs: Literal[True] = True
    user: str = "65534:65534"
    timeout_ms: int = 3000
    tmpfs_size_mb: int = 16
    max_output_bytes: int = 64 * 1024

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


class RawExecution(_WireModel):
    """Unclassified output of one run, as collected from a sandbox or the fallback judge."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    timed_out: bool = False
    oom_killed: bool = False
    duration_ms: int = 0
    compile_output: str | None = None
    backend: Backend = "sandbox"


class TestCaseResult(_WireModel):
    """Grading outcome for one test case."""

    __test__ = False

    index: int
    input: str
    expected_output: str
    actual_output: str = ""
    passed: bool = False
    status: ExecutionStatus = "error"
    stderr: str = ""
    execution_time_ms: int = 0
    error: str | None = None
    exit_code: int | None = None
    backend: Backend | None = None
    memory_exceeded: bool = False


class ExecutionResult(_WireModel):
    """Uniform result of one execute call.

    Attributes:
        success: True iff the status is success and every test case passed.
        stdout: Captured standard output.
        stderr: Captured standard error.
        compile_output: Parser/compiler diagnostics when the status is compilation_error.
        status: Final classification of the request.
        execution_time_ms: Wall-clock run time (summed over test cases).
        per_test_case_results: Per-case grading, in request order.
        request_id: Identifier of the request (also the sandbox arena key).
        language: Requested language.
        exit_code: Process exit code, when one was observed.
        error: Reason string for rejected, unavailable or aborted runs.
        backend: Which execution path produced the output.
        memory_exceeded: True when the sandbox was OOM-killed.
    """

    success: bool
    stdout: str = ""
    stderr: str = ""
    compile_output: str | None = None
    status: ExecutionStatus
    execution_time_ms: int = 0
    per_test_case_results: list[TestCaseResult] = Field(default_factory=list)
    request_id: str | None = None
    language: str | None = None
    exit_code: int | None = None
    error: str | None = None
    backend: Backend | None = None
    memory_exceeded: bool = False

    def raise_for_status(self) -> None:
        """Raise the JudgeError matching a non-success status.

        Failed test cases with a ``success`` status are a grading outcome and do not raise.
        """
        if self.status == "success":
            return
        detail = self.error or self.compile_output or self.stderr or self.status
        if self.status == "rejected":
            raise ValidationRejected(detail)
        error_types: dict[str, type[JudgeError]] = {
            "service_unavailable": ServiceUnavailable,
            "timeout": ExecutionTimeout,
            "compilation_error": CompilationError,
            "error": ProgramRuntimeError,
        }
        raise error_types[self.status](detail)
