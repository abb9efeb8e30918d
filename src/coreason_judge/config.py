# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_judge

from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from coreason_judge.integrations.secrets import SecretsIntegrator
from coreason_judge.models import SandboxSpec


class SecretSettingsSource(PydanticBaseSettingsSource):
    """
    Custom Pydantic Settings Source that hydrates secrets from the environment.
    """

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        # Required by the ABC; unused because __call__ returns the full dict.
        return None, field_name, False  # pragma: no cover

    def __call__(self) -> dict[str, Any]:
        secrets = SecretsIntegrator()
        values: dict[str, Any] = {}

        # Config field -> secret key. Explicit for audit.
        mapping = {
            "fallback_api_key": "JUDGE0_API_KEY",
        }

        for field, key in mapping.items():
            val = secrets.get_secret(key)
            if val:
                values[field] = val

        return values


class JudgeConfig(BaseSettings):
    """
    Configuration for the execution service.
    """

    runtime: Literal["docker"] = "docker"
    # None means the DOCKER_HOST / local socket defaults.
    docker_base_url: str | None = None

    python_image: str = "python:3.11-alpine"
    javascript_image: str = "node:18-alpine"

    # Limits
    execution_timeout_ms: int = Field(default=3000, gt=0)
    timeout_grace_ms: int = Field(default=1000, ge=0)
    memory_limit_mb: int = Field(default=256, gt=0)
    cpu_limit: float = Field(default=0.5, gt=0)
    pids_limit: int = Field(default=50, gt=0)
    tmpfs_size_mb: int = Field(default=16, gt=0)
    sandbox_user: str = "65534:65534"
    max_code_bytes: int = 10 * 1024
    max_stdin_bytes: int = 1024
    max_output_bytes: int = 64 * 1024

    # Host capacity
    max_concurrent_sandboxes: int = Field(default=8, gt=0)
    provision_retries: int = Field(default=1, ge=0, le=1)

    # Fallback judge (Judge0 compatible)
    fallback_url: str = "https://judge0-ce.p.rapidapi.com"
    fallback_host: str | None = "judge0-ce.p.rapidapi.com"
    fallback_api_key: str | None = None
    fallback_timeout: float = 5.0

    # Room id -> language, for the /rooms pass-through.
    room_languages: dict[str, str] = {}

    enable_audit_logging: bool = True

    # HTTP server
    host: str = "127.0.0.1"
    port: int = Field(default=8000, gt=0, le=65535)

    model_config = SettingsConfigDict(
        env_prefix="COREASON_JUDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            SecretSettingsSource(settings_cls),
            file_secret_settings,
        )

    @property
    def fallback_enabled(self) -> bool:
        return bool(self.fallback_api_key)

    def image_for(self, language: str) -> str:
        images = {
            "python": self.python_image,
            "javascript": self.javascript_image,
        }
        try:
            return images[language]
        except KeyError as e:
            raise ValueError(f"Unsupported language: {language}") from e

    def sandbox_spec(self, language: str) -> SandboxSpec:
        """Build the SandboxSpec for ``language`` from the configured limits."""
        return SandboxSpec(
            base_image=self.image_for(language),
            memory_limit_mb=self.memory_limit_mb,
            cpu_share=self.cpu_limit,
            pid_limit=self.pids_limit,
            user=self.sandbox_user,
            timeout_ms=self.execution_timeout_ms,
            tmpfs_size_mb=self.tmpfs_size_mb,
            max_output_bytes=self.max_output_bytes,
        )
