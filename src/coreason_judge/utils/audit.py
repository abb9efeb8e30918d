# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

import hashlib

from loguru import logger


class AuditLogger:
    """Audit trail for submitted code.

    Only a SHA-256 hash and the length of the code are logged, never the code itself.
    """

    def __init__(self, enabled: bool = True):
        """Initializes the AuditLogger.

        Args:
            enabled: Whether to emit audit records.
        """
        self.enabled = enabled

    def log_submission(self, request_id: str, code: str, language: str) -> str:
        """Log an execution attempt and return the code hash.

        Args:
            request_id: The request identifier.
            code: The code about to be executed.
            language: The programming language of the code.

        Returns:
            str: The SHA-256 hex digest of the code.
        """
        code_hash = hashlib.sha256(code.encode("utf-8")).hexdigest()
        if self.enabled:
            logger.info(
                f"AUDIT: Executing {language} code. Hash: {code_hash}, Length: {len(code)}",
                request_id=request_id,
            )
        return code_hash
