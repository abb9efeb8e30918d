# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

"""Static pre-filter for submissions.

This is a coarse defense-in-depth layer. Container isolation must hold even when a
construct slips past these checks.
"""

import re
from dataclasses import dataclass

from coreason_judge.languages import get_adapter, supported_languages
from coreason_judge.models import ExecutionRequest

MAX_CODE_BYTES = 10 * 1024
MAX_STDIN_BYTES = 1024

# NUL and C0 controls other than tab, LF and CR, plus DEL.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


@dataclass(frozen=True)
class ValidationOutcome:
    passed: bool
    reason: str | None = None


PASSED = ValidationOutcome(passed=True)


def _reject(reason: str) -> ValidationOutcome:
    return ValidationOutcome(passed=False, reason=reason)


def validate_code(code: str, language: str, max_code_bytes: int = MAX_CODE_BYTES) -> ValidationOutcome:
    """Check one source string against the size limit and the language's blocked constructs.

    Args:
        code: The submitted source code.
        language: The requested language.
        max_code_bytes: Maximum UTF-8 encoded size of the code.

    Returns:
        ValidationOutcome: ``passed`` or a rejection carrying a reason string.
    """
    adapter = get_adapter(language)
    if adapter is None:
        return _reject(f"Unsupported language: {language}. Supported: {', '.join(supported_languages())}")

    if not code or not code.strip():
        return _reject("Code must be a non-empty string")

    size = len(code.encode("utf-8"))
    if size > max_code_bytes:
        return _reject(f"Code too long: {size} bytes (max {max_code_bytes})")

    if _CONTROL_CHARS.search(code):
        return _reject("Code contains invalid control characters")

    pattern = adapter.find_forbidden(code)
    if pattern is not None:
        return _reject(f"Forbidden construct detected: {pattern.description}")

    return PASSED


def validate_input(text: str, label: str, max_stdin_bytes: int = MAX_STDIN_BYTES) -> ValidationOutcome:
    if "\x00" in text:
        return _reject(f"{label} contains NUL bytes")
    size = len(text.encode("utf-8"))
    if size > max_stdin_bytes:
        return _reject(f"{label} too long: {size} bytes (max {max_stdin_bytes})")
    return PASSED


def validate_request(
    request: ExecutionRequest,
    max_code_bytes: int = MAX_CODE_BYTES,
    max_stdin_bytes: int = MAX_STDIN_BYTES,
) -> ValidationOutcome:
    """Validate the code, the stdin and every test-case input of a request.

    Pure function: no side effects and no resources are touched.
    """
    outcome = validate_code(request.code, request.language, max_code_bytes)
    if not outcome.passed:
        return outcome

    if request.stdin is not None:
        outcome = validate_input(request.stdin, "Input", max_stdin_bytes)
        if not outcome.passed:
            return outcome

    for index, case in enumerate(request.test_cases):
        outcome = validate_input(case.input, f"Test case {index} input", max_stdin_bytes)
        if not outcome.passed:
            return outcome

    return PASSED
