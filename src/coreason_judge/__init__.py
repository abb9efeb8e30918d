# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

"""
coreason-judge
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import JudgeConfig
from .factory import SandboxFactory
from .models import ExecutionRequest, ExecutionResult, SandboxSpec, TestCase, TestCaseResult
from .runtime import SandboxRuntime
from .runtimes.docker import DockerRuntime
from .service import ExecutionService, ExecutionServiceAsync

__all__ = [
    "SandboxRuntime",
    "ExecutionRequest",
    "ExecutionResult",
    "ExecutionService",
    "ExecutionServiceAsync",
    "JudgeConfig",
    "SandboxFactory",
    "SandboxSpec",
    "TestCase",
    "TestCaseResult",
    "DockerRuntime",
]
