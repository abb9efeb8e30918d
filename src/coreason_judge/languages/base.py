# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ForbiddenPattern:
    """A statically detectable construct that is blocked before execution."""

    regex: re.Pattern[str]
    description: str

    @classmethod
    def compile(cls, pattern: str, description: str) -> "ForbiddenPattern":
        return cls(re.compile(pattern, re.MULTILINE), description)


@dataclass(frozen=True)
class StderrDiagnosis:
    """Structured view of a program's error output."""

    error_type: str | None
    message: str
    raised_in_user_code: bool


class LanguageAdapter(ABC):
    """Per-language configuration and output heuristics.

    Follows the Strategy Pattern: the orchestrator, validator and normalizer only
    ever talk to this interface.
    """

    name: str
    display_name: str
    version: str
    extension: str
    default_image: str
    judge0_language_id: int

    # Exception types that mean "the source never got past the parser".
    compile_error_types: frozenset[str] = frozenset({"SyntaxError"})

    @property
    @abstractmethod
    def forbidden_patterns(self) -> tuple[ForbiddenPattern, ...]:
        """Constructs rejected by the request validator."""
        pass  # pragma: no cover

    @abstractmethod
    def interpreter_command(self) -> list[str]:
        """Interpreter argv; the source code is appended as the final argument."""
        pass  # pragma: no cover

    @abstractmethod
    def diagnose(self, stderr: str) -> StderrDiagnosis:
        """Parse the language's error output into a StderrDiagnosis."""
        pass  # pragma: no cover

    def environment(self) -> dict[str, str]:
        """Extra hardened environment variables for the sandboxed process."""
        return {}

    def find_forbidden(self, code: str) -> ForbiddenPattern | None:
        for pattern in self.forbidden_patterns:
            if pattern.regex.search(code):
                return pattern
        return None

    def is_compilation_error(self, stdout: str, stderr: str) -> bool:
        """True when stderr reports a parse error raised before any program output."""
        if stdout or not stderr.strip():
            return False
        diagnosis = self.diagnose(stderr)
        return diagnosis.error_type in self.compile_error_types and not diagnosis.raised_in_user_code

    def describe(self) -> dict[str, str]:
        return {
            "id": self.name,
            "name": self.display_name,
            "version": self.version,
            "extension": self.extension,
        }
