import asyncio
from collections.abc import Callable
from typing import Any, Generator
from unittest.mock import MagicMock, patch

import pytest

from coreason_judge.config import JudgeConfig
from coreason_judge.errors import ProvisioningFailed
from coreason_judge.languages import JavaScriptAdapter, LanguageAdapter, PythonAdapter
from coreason_judge.models import RawExecution, SandboxSpec
from coreason_judge.runtime import SandboxHandle, SandboxRuntime


class FakeRuntime(SandboxRuntime):
    """In-memory runtime. ``respond`` maps (code, stdin) to the RawExecution a real sandbox would produce."""

    def __init__(
        self,
        respond: Callable[[str, str], RawExecution] | None = None,
        provision_failures: int = 0,
        delay: float = 0.0,
    ):
        self.respond = respond or (lambda code, stdin: RawExecution(stdout="ok\n", exit_code=0))
        self.provision_failures = provision_failures
        self.delay = delay
        self.provision_calls = 0
        self.destroyed: list[str] = []
        self.live: set[str] = set()
        self.peak_live = 0
        self.available = True
        self._inputs: dict[str, tuple[str, str]] = {}

    async def provision(
        self,
        request_id: str,
        spec: SandboxSpec,
        adapter: LanguageAdapter,
        code: str,
        stdin: str,
    ) -> SandboxHandle:
        self.provision_calls += 1
        if self.provision_failures:
            self.provision_failures -= 1
            raise ProvisioningFailed("daemon unreachable")
        self.live.add(request_id)
        self.peak_live = max(self.peak_live, len(self.live))
        self._inputs[request_id] = (code, stdin)
        return SandboxHandle(request_id=request_id, sandbox_id=f"fake-{request_id}", spec=spec)

    async def collect(self, handle: SandboxHandle) -> RawExecution:
        if self.delay:
            await asyncio.sleep(self.delay)
        code, stdin = self._inputs[handle.request_id]
        return self.respond(code, stdin)

    async def destroy(self, handle: SandboxHandle) -> None:
        self.live.discard(handle.request_id)
        self.destroyed.append(handle.request_id)

    async def ping(self) -> bool:
        return self.available


@pytest.fixture
def config() -> JudgeConfig:
    return JudgeConfig(_env_file=None, fallback_api_key=None)


@pytest.fixture
def python_adapter() -> PythonAdapter:
    return PythonAdapter()


@pytest.fixture
def js_adapter() -> JavaScriptAdapter:
    return JavaScriptAdapter()


@pytest.fixture
def spec(config: JudgeConfig) -> SandboxSpec:
    return config.sandbox_spec("python")


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def mock_docker_client() -> Generator[Any, None, None]:
    with patch("coreason_judge.runtimes.docker.docker.from_env") as mock_from_env:
        client = MagicMock()
        mock_from_env.return_value = client
        yield client


@pytest.fixture
def make_runtime() -> type[FakeRuntime]:
    return FakeRuntime
