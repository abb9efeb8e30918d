# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

import os

from loguru import logger

ENV_PREFIX = "COREASON_JUDGE_"


class SecretsIntegrator:
    """Reads deployment secrets (e.g. the fallback judge API key) from the environment.

    The plain variable name wins over the prefixed one, so an existing
    ``JUDGE0_API_KEY`` works without renaming.
    """

    def __init__(self, prefix: str = ENV_PREFIX):
        self.prefix = prefix

    def get_secret(self, key: str) -> str | None:
        val = os.getenv(key)
        if not val:
            val = os.getenv(f"{self.prefix}{key}")

        if not val:
            logger.debug(f"Secret {key} not found in environment.")

        return val
