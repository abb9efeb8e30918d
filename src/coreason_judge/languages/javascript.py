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

_MODULE_GROUPS = {
    "filesystem access": ("fs", "fs/promises", "path"),
    "process or child-process access": ("child_process", "process", "cluster", "worker_threads", "os", "v8", "vm"),
    "network access": ("net", "http", "https", "http2", "dgram", "dns", "tls"),
}


def _module_patterns() -> list[ForbiddenPattern]:
    patterns = []
    for description, modules in _MODULE_GROUPS.items():
        names = "|".join(re.escape(module) for module in modules)
        spec = rf"""['"`](?:node:)?(?:{names})['"`]"""
        patterns.append(ForbiddenPattern.compile(rf"\brequire\s*\(\s*{spec}\s*\)", description))
        patterns.append(ForbiddenPattern.compile(rf"\bimport\b[^;\n]*?\bfrom\s*{spec}", description))
    return patterns


_PATTERNS = (
    *_module_patterns(),
    ForbiddenPattern.compile(r"\bimport\s*\(", "dynamic import"),
    ForbiddenPattern.compile(r"\beval\s*\(", "dynamic code evaluation"),
    ForbiddenPattern.compile(r"\bFunction\s*\(", "dynamic code evaluation"),
    ForbiddenPattern.compile(r"\bconstructor\s*\.\s*constructor\b", "dynamic code evaluation"),
    ForbiddenPattern.compile(r"\b(?:setTimeout|setInterval|setImmediate)\s*\(", "timer scheduling"),
    ForbiddenPattern.compile(r"\bprocess\s*\.\s*(?:exit|kill|abort|reallyExit)\b", "process termination call"),
    ForbiddenPattern.compile(
        r"\bprocess\s*\.\s*(?:env|binding|_linkedBinding|dlopen|chdir|mainModule|setuid|setgid|umask)\b",
        "process access",
    ),
    ForbiddenPattern.compile(r"\bprocess\s*\[", "process access"),
    ForbiddenPattern.compile(r"\b(?:global|globalThis)\s*[.\[]", "global object access"),
    ForbiddenPattern.compile(r"\b__(?:dirname|filename)\b", "filesystem access"),
)

_ERROR_LINE = re.compile(r"^(?P<type>[A-Z]\w*(?:Error|Exception))(?::\s?(?P<message>.*))?$", re.MULTILINE)
_STACK_FRAME = re.compile(r"^\s+at\s+(?P<frame>.+)$", re.MULTILINE)
# Frames that point into the submitted script, e.g. "at [eval]:3:7" or "at solve ([eval]:2:9)".
_USER_FRAME = re.compile(r"\[eval\]:\d+")


class JavaScriptAdapter(LanguageAdapter):
    name = "javascript"
    display_name = "JavaScript"
    version = "Node.js 18"
    extension = ".js"
    default_image = "node:18-alpine"
    judge0_language_id = 63

    @property
    def forbidden_patterns(self) -> tuple[ForbiddenPattern, ...]:
        return _PATTERNS

    def interpreter_command(self) -> list[str]:
        return ["node", "--max-old-space-size=128", "--no-warnings", "-e"]

    def environment(self) -> dict[str, str]:
        return {"NODE_ENV": "production", "NODE_PATH": ""}

    def diagnose(self, stderr: str) -> StderrDiagnosis:
        """Find the first error line and check whether any stack frame is user code.

        A script that fails to parse never runs, so its stack only contains node
        internals. A ``SyntaxError`` thrown at runtime (e.g. by ``JSON.parse``) carries
        a ``[eval]`` frame.
        """
        match = _ERROR_LINE.search(stderr)
        frames = [frame.group("frame") for frame in _STACK_FRAME.finditer(stderr)]
        raised_in_user_code = any(_USER_FRAME.search(frame) for frame in frames)

        if not match:
            return StderrDiagnosis(error_type=None, message=stderr.strip(), raised_in_user_code=raised_in_user_code)

        return StderrDiagnosis(
            error_type=match.group("type"),
            message=match.group("message") or "",
            raised_in_user_code=raised_in_user_code,
        )
