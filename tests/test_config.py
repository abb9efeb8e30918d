from unittest.mock import patch

import pytest
from pydantic import ValidationError

from coreason_judge.config import JudgeConfig
from coreason_judge.integrations.secrets import SecretsIntegrator


def test_defaults() -> None:
    with patch.dict("os.environ", {}, clear=True):
        config = JudgeConfig(_env_file=None)

    assert config.execution_timeout_ms == 3000
    assert config.memory_limit_mb == 256
    assert config.cpu_limit == 0.5
    assert config.pids_limit == 50
    assert config.max_code_bytes == 10240
    assert config.max_stdin_bytes == 1024
    assert config.max_concurrent_sandboxes == 8
    assert config.fallback_api_key is None
    assert not config.fallback_enabled


def test_env_overrides() -> None:
    env = {
        "COREASON_JUDGE_EXECUTION_TIMEOUT_MS": "5000",
        "COREASON_JUDGE_MAX_CONCURRENT_SANDBOXES": "2",
        "COREASON_JUDGE_PYTHON_IMAGE": "python:3.12-alpine",
        "COREASON_JUDGE_ROOM_LANGUAGES": '{"room-1": "python"}',
    }
    with patch.dict("os.environ", env, clear=True):
        config = JudgeConfig(_env_file=None)

    assert config.execution_timeout_ms == 5000
    assert config.max_concurrent_sandboxes == 2
    assert config.room_languages == {"room-1": "python"}
    assert config.sandbox_spec("python").base_image == "python:3.12-alpine"


def test_secret_settings_source_injects_api_key() -> None:
    """The fallback API key is hydrated from the plain JUDGE0_API_KEY variable."""
    with patch.dict("os.environ", {"JUDGE0_API_KEY": "secret_key"}, clear=True):
        config = JudgeConfig(_env_file=None)

    assert config.fallback_api_key == "secret_key"
    assert config.fallback_enabled


def test_secret_settings_source_prefixed_key() -> None:
    with patch.dict("os.environ", {"COREASON_JUDGE_JUDGE0_API_KEY": "prefixed"}, clear=True):
        config = JudgeConfig(_env_file=None)

    assert config.fallback_api_key == "prefixed"


def test_init_overrides_secret() -> None:
    with patch.dict("os.environ", {"JUDGE0_API_KEY": "secret_key"}, clear=True):
        config = JudgeConfig(_env_file=None, fallback_api_key="explicit")

    assert config.fallback_api_key == "explicit"


def test_secrets_integrator_lookup_order() -> None:
    integrator = SecretsIntegrator()
    with patch.dict("os.environ", {"KEY": "plain", "COREASON_JUDGE_KEY": "prefixed"}, clear=True):
        assert integrator.get_secret("KEY") == "plain"
    with patch.dict("os.environ", {"COREASON_JUDGE_KEY": "prefixed"}, clear=True):
        assert integrator.get_secret("KEY") == "prefixed"
    with patch.dict("os.environ", {}, clear=True):
        assert integrator.get_secret("KEY") is None


def test_sandbox_spec_from_limits(config: JudgeConfig) -> None:
    spec = config.sandbox_spec("javascript")

    assert spec.base_image == "node:18-alpine"
    assert spec.timeout_ms == config.execution_timeout_ms
    assert spec.memory_limit_mb == config.memory_limit_mb
    assert spec.network_disabled is True
    assert spec.read_only_rootfs is True


def test_unknown_language_image(config: JudgeConfig) -> None:
    with pytest.raises(ValueError, match="Unsupported language"):
        config.image_for("ruby")


@pytest.mark.parametrize(
    "field, value",
    [
        ("execution_timeout_ms", 0),
        ("max_concurrent_sandboxes", 0),
        ("provision_retries", 2),
        ("runtime", "podman"),
    ],
)
def test_invalid_values(field: str, value: object) -> None:
    with pytest.raises(ValidationError):
        JudgeConfig(_env_file=None, **{field: value})
