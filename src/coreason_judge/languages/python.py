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

from coreason_judge.languages.base import ForbiddenPattern, LanguageAdapter, StderrDiagnosis

_BLOCKED_MODULES = (
    "os",
    "posix",
    "nt",
    "subprocess",
    "sys",
    "shutil",
    "ctypes",
    "importlib",
    "imp",
    "inspect",
    "gc",
    "builtins",
    "pathlib",
    "glob",
    "tempfile",
    "io",
    "socket",
    "signal",
    "multiprocessing",
    "pty",
    "resource",
    "code",
    "codeop",
    "pickle",
    "marshal",
)

_MODULES = "|".join(_BLOCKED_MODULES)

# An import may follow a compound-statement header (``if x: import os``) and may
# be split across lines with backslash continuations.
_STATEMENT_START = r"(?:^|[;:])[ \t\f]*"
_SPACE = r"(?:[ \t\f]|\\\r?\n)"

_PATTERNS = (
    ForbiddenPattern.compile(
        rf"{_STATEMENT_START}import{_SPACE}+(?:[\w,.]|{_SPACE})*?\b(?:{_MODULES})\b",
        "import of an OS, subprocess or interpreter-introspection module",
    ),
    ForbiddenPattern.compile(
        rf"{_STATEMENT_START}from{_SPACE}+(?:{_MODULES})\b",
        "import of an OS, subprocess or interpreter-introspection module",
    ),
    ForbiddenPattern.compile(rf"{_STATEMENT_START}from{_SPACE}+\.", "relative import"),
    ForbiddenPattern.compile(r"\b__import__\s*\(", "dynamic import"),
    # Builtins only; attribute calls such as re.compile() stay allowed.
    ForbiddenPattern.compile(r"(?<![.\w])(?:exec|eval|compile)\s*\(", "dynamic code execution"),
    ForbiddenPattern.compile(r"(?<![.\w])open\s*\(", "file-open builtin"),
    # os._exit, os.kill and os.abort are unreachable once their modules are blocked.
    ForbiddenPattern.compile(r"(?<![.\w])(?<!def )(?:exit|quit)\s*\(", "process termination call"),
    ForbiddenPattern.compile(r"\bbreakpoint\s*\(", "debugger entry"),
    ForbiddenPattern.compile(
        r"\b__(?:builtins|subclasses|globals|code|loader|spec)__\b",
        "interpreter introspection",
    ),
)

_TRACEBACK_HEADER = "Traceback (most recent call last):"
_EXCEPTION_LINE = re.compile(r"^(?P<type>[A-Za-z_][\w.]*(?:Error|Exception|Exit|Interrupt))(?::\s?(?P<message>.*))?$")


class PythonAdapter(LanguageAdapter):
    name = "python"
    display_name = "Python"
    version = "3.11"
    extension = ".py"
    default_image = "python:3.11-alpine"
    judge0_language_id = 71

    compile_error_types = frozenset({"SyntaxError", "IndentationError", "TabError"})

    @property
    def forbidden_patterns(self) -> tuple[ForbiddenPattern, ...]:
        return _PATTERNS

    def interpreter_command(self) -> list[str]:
        # -s: no user site dir, -B: no .pyc writes on the read-only rootfs, -u: unbuffered.
        return ["python3", "-s", "-B", "-u", "-c"]

    def environment(self) -> dict[str, str]:
        return {
            "PYTHONUNBUFFERED": "1",
            "PYTHONDONTWRITEBYTECODE": "1",
            "PYTHONHASHSEED": "0",
            "PYTHONPATH": "",
        }

    def diagnose(self, stderr: str) -> StderrDiagnosis:
        """Read the final exception line and whether a runtime traceback preceded it.

        Parse errors in ``-c`` code are reported without a ``Traceback`` header because
        no frame was ever executed.
        """
        lines = [line.rstrip() for line in stderr.splitlines() if line.strip()]
        raised_at_runtime = any(line.startswith(_TRACEBACK_HEADER) for line in lines)

        for line in reversed(lines):
            match = _EXCEPTION_LINE.match(line)
            if match:
                error_type = match.group("type").rsplit(".", 1)[-1]
                return StderrDiagnosis(
                    error_type=error_type,
                    message=match.group("message") or "",
                    raised_in_user_code=raised_at_runtime,
                )

        return StderrDiagnosis(
            error_type=None,
            message=lines[-1] if lines else "",
            raised_in_user_code=raised_at_runtime,
        )
