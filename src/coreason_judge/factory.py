import httpx

from coreason_judge.config import JudgeConfig
from coreason_judge.runtime import SandboxRuntime
from coreason_judge.runtimes.docker import DockerRuntime
from coreason_judge.runtimes.judge0 import Judge0Client


class SandboxFactory:
    """
    Factory to create the sandbox runtime and the fallback judge based on configuration.
    """

    @staticmethod
    def get_runtime(config: JudgeConfig) -> SandboxRuntime:
        """
        Returns an instance of the configured SandboxRuntime.
        """
        if config.runtime == "docker":
            return DockerRuntime(
                base_url=config.docker_base_url,
                timeout_grace=config.timeout_grace_ms / 1000.0,
                max_concurrent=config.max_concurrent_sandboxes,
            )
        else:
            # Unreachable due to Pydantic validation.
            raise ValueError(f"Unknown runtime: {config.runtime}")  # pragma: no cover

    @staticmethod
    def get_fallback(config: JudgeConfig, client: httpx.AsyncClient | None = None) -> Judge0Client | None:
        """
        Returns the fallback judge client, or None when no fallback is configured.
        """
        if not config.fallback_enabled:
            return None
        return Judge0Client(
            base_url=config.fallback_url,
            api_key=config.fallback_api_key,
            host=config.fallback_host,
            timeout=config.fallback_timeout,
            client=client,
        )
