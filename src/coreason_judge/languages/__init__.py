# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

"""Language runtime adapters."""

from .base import ForbiddenPattern, LanguageAdapter, StderrDiagnosis
from .javascript import JavaScriptAdapter
from .python import PythonAdapter

ADAPTERS: dict[str, LanguageAdapter] = {
    adapter.name: adapter for adapter in (JavaScriptAdapter(), PythonAdapter())
}


def get_adapter(language: str) -> LanguageAdapter | None:
    """Return the adapter for ``language``, or None if it is not supported."""
    return ADAPTERS.get(language)


def supported_languages() -> list[str]:
    return sorted(ADAPTERS)


__all__ = [
    "ADAPTERS",
    "ForbiddenPattern",
    "JavaScriptAdapter",
    "LanguageAdapter",
    "PythonAdapter",
    "StderrDiagnosis",
    "get_adapter",
    "supported_languages",
]
