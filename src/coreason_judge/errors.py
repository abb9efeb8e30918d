# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

"""Exception taxonomy for the execution pipeline."""


class JudgeError(Exception):
    """Base class for all coreason-judge errors."""


class ValidationRejected(JudgeError):
    """The submission was statically rejected. Never retried."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ProvisioningFailed(JudgeError):
    """The sandbox could not be created or started (host or runtime unavailable)."""


class SandboxFailure(JudgeError):
    """The sandbox broke after it was provisioned, e.g. the daemon went away mid-run."""


class FallbackFailed(JudgeError):
    """The fallback judge could not be reached or returned an unusable response."""


class ServiceUnavailable(JudgeError):
    """Both the local sandbox and the fallback judge failed."""


class ExecutionTimeout(JudgeError):
    """The program exceeded its wall-clock budget. Fatal for the request."""


class ProgramRuntimeError(JudgeError):
    """The program ran and failed."""


class CompilationError(JudgeError):
    """The program could not be parsed or compiled."""


class IllegalStateTransition(JudgeError):
    """A request pipeline attempted a transition its state machine does not allow."""
