import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from coreason_judge.errors import ProvisioningFailed, SandboxFailure
from coreason_judge.languages import JavaScriptAdapter, PythonAdapter
from coreason_judge.models import SandboxSpec
from coreason_judge.runtime import SandboxHandle
from coreason_judge.runtimes.docker import CODE_ENV, STDIN_ENV, TRUNCATION_MARKER, DockerRuntime


def make_container(stdout: bytes = b"", stderr: bytes = b"", exit_code: int = 0, oom: bool = False) -> MagicMock:
    container = MagicMock()
    container.short_id = "abc123"
    container.wait.return_value = {"StatusCode": exit_code}
    container.logs.side_effect = lambda **kwargs: stdout if kwargs["stdout"] else stderr
    container.attrs = {"State": {"OOMKilled": oom}}
    return container


def make_handle(container: MagicMock, spec: SandboxSpec) -> SandboxHandle:
    return SandboxHandle(request_id="req-1", sandbox_id=container.short_id, spec=spec, ref=container)


@pytest.fixture
def runtime(mock_docker_client: Any) -> DockerRuntime:
    return DockerRuntime(timeout_grace=0.5)


def test_container_config_isolation(runtime: DockerRuntime, spec: SandboxSpec, python_adapter: PythonAdapter) -> None:
    config = runtime.container_config("req-1", spec, python_adapter, "print(input())", "3")

    assert config["image"] == "python:3.11-alpine"
    assert config["name"] == "code-exec-req-1"
    assert config["network_mode"] == "none"
    assert config["network_disabled"] is True
    assert config["read_only"] is True
    assert config["cap_drop"] == ["ALL"]
    assert config["security_opt"] == ["no-new-privileges"]
    assert config["user"] == "65534:65534"
    assert config["mem_limit"] == "256m"
    assert config["memswap_limit"] == "256m"
    assert config["nano_cpus"] == 500_000_000
    assert config["pids_limit"] == 50
    assert "noexec" in config["tmpfs"]["/tmp"]
    assert config["labels"]["request.id"] == "req-1"

    env = config["environment"]
    assert env[CODE_ENV] == "print(input())"
    assert env[STDIN_ENV] == "3"
    assert env["PYTHONHASHSEED"] == "0"


def test_launch_command_hides_code_from_program(runtime: DockerRuntime, js_adapter: JavaScriptAdapter) -> None:
    command = runtime._launch_command(js_adapter)

    assert command[:2] == ["/bin/sh", "-c"]
    script = command[2]
    assert f"env -u {STDIN_ENV} -u {CODE_ENV}" in script
    assert script.endswith(f'"${CODE_ENV}"')
    assert "node --max-old-space-size=128 --no-warnings -e" in script


@pytest.mark.asyncio
async def test_provision_starts_container(
    runtime: DockerRuntime, mock_docker_client: Any, spec: SandboxSpec, python_adapter: PythonAdapter
) -> None:
    container = make_container()
    mock_docker_client.containers.create.return_value = container

    handle = await runtime.provision("req-1", spec, python_adapter, "print(1)", "")

    assert handle.sandbox_id == "abc123"
    assert handle.ref is container
    container.start.assert_called_once()


@pytest.mark.asyncio
async def test_provision_pulls_missing_image(
    runtime: DockerRuntime, mock_docker_client: Any, spec: SandboxSpec, python_adapter: PythonAdapter
) -> None:
    container = make_container()
    mock_docker_client.containers.create.side_effect = [ImageNotFound("missing"), container]

    await runtime.provision("req-1", spec, python_adapter, "print(1)", "")

    mock_docker_client.images.pull.assert_called_once_with("python:3.11-alpine")
    assert mock_docker_client.containers.create.call_count == 2


@pytest.mark.asyncio
async def test_provision_failure_removes_container(
    runtime: DockerRuntime, mock_docker_client: Any, spec: SandboxSpec, python_adapter: PythonAdapter
) -> None:
    container = make_container()
    container.start.side_effect = APIError("cannot start")
    mock_docker_client.containers.create.return_value = container

    with pytest.raises(ProvisioningFailed, match="Failed to start sandbox"):
        await runtime.provision("req-1", spec, python_adapter, "print(1)", "")

    container.remove.assert_called_once_with(force=True)


@pytest.mark.asyncio
async def test_provision_without_daemon(spec: SandboxSpec, python_adapter: PythonAdapter) -> None:
    runtime = DockerRuntime()

    with patch("coreason_judge.runtimes.docker.docker.from_env", side_effect=DockerException("no socket")):
        with pytest.raises(ProvisioningFailed, match="Docker runtime unavailable"):
            await runtime.provision("req-1", spec, python_adapter, "print(1)", "")


@pytest.mark.asyncio
async def test_collect_success(runtime: DockerRuntime, spec: SandboxSpec) -> None:
    container = make_container(stdout=b"hello\n", exit_code=0)

    raw = await runtime.collect(make_handle(container, spec))

    assert raw.stdout == "hello\n"
    assert raw.stderr == ""
    assert raw.exit_code == 0
    assert not raw.timed_out
    assert not raw.oom_killed
    assert raw.backend == "sandbox"


@pytest.mark.asyncio
async def test_collect_reports_oom(runtime: DockerRuntime, spec: SandboxSpec) -> None:
    container = make_container(exit_code=137, oom=True)

    raw = await runtime.collect(make_handle(container, spec))

    assert raw.exit_code == 137
    assert raw.oom_killed


@pytest.mark.asyncio
async def test_collect_timeout_kills_within_bound(runtime: DockerRuntime, spec: SandboxSpec) -> None:
    short = spec.model_copy(update={"timeout_ms": 200})
    container = make_container(stdout=b"looping\n")
    killed = threading.Event()

    def blocking_wait(timeout: float | None = None) -> dict[str, int]:
        killed.wait(timeout)
        return {"StatusCode": 137}

    container.wait.side_effect = blocking_wait
    container.kill.side_effect = killed.set

    start = time.monotonic()
    raw = await runtime.collect(make_handle(container, short))
    elapsed = time.monotonic() - start

    assert raw.timed_out
    assert raw.exit_code is None
    assert raw.stdout == "looping\n"
    container.kill.assert_called_once()
    assert elapsed < short.timeout_seconds + runtime.timeout_grace


@pytest.mark.asyncio
async def test_concurrent_collects_do_not_queue(runtime: DockerRuntime, spec: SandboxSpec) -> None:
    quick = spec.model_copy(update={"timeout_ms": 1000})
    threads: list[str] = []

    def slow_wait(timeout: float | None = None) -> dict[str, int]:
        threads.append(threading.current_thread().name)
        time.sleep(0.4)
        return {"StatusCode": 0}

    containers = []
    for _ in range(runtime.max_concurrent):
        container = make_container(stdout=b"done\n")
        container.wait.side_effect = slow_wait
        containers.append(container)

    results = await asyncio.gather(*(runtime.collect(make_handle(c, quick)) for c in containers))

    assert [raw.timed_out for raw in results] == [False] * runtime.max_concurrent
    assert all(raw.exit_code == 0 for raw in results)
    assert all(name.startswith("docker-sandbox") for name in threads)
    await runtime.close()


@pytest.mark.asyncio
async def test_collect_truncates_output(runtime: DockerRuntime, spec: SandboxSpec) -> None:
    small = spec.model_copy(update={"max_output_bytes": 8})
    container = make_container(stdout=b"0123456789abcdef")

    raw = await runtime.collect(make_handle(container, small))

    assert raw.stdout == "01234567" + TRUNCATION_MARKER


@pytest.mark.asyncio
async def test_collect_daemon_failure(runtime: DockerRuntime, spec: SandboxSpec) -> None:
    container = make_container()
    container.logs.side_effect = APIError("daemon went away")

    with pytest.raises(SandboxFailure):
        await runtime.collect(make_handle(container, spec))


@pytest.mark.asyncio
async def test_destroy_never_raises(runtime: DockerRuntime, spec: SandboxSpec) -> None:
    gone = make_container()
    gone.remove.side_effect = NotFound("gone")
    await runtime.destroy(make_handle(gone, spec))

    broken = make_container()
    broken.remove.side_effect = APIError("busy")
    await runtime.destroy(make_handle(broken, spec))

    broken.remove.assert_called_once_with(force=True)


@pytest.mark.asyncio
async def test_ping(runtime: DockerRuntime, mock_docker_client: Any) -> None:
    mock_docker_client.ping.return_value = True
    assert await runtime.ping()

    mock_docker_client.ping.side_effect = APIError("down")
    assert not await runtime.ping()


@pytest.mark.asyncio
async def test_close_releases_client(runtime: DockerRuntime, mock_docker_client: Any) -> None:
    _ = runtime.client
    await runtime.close()

    mock_docker_client.close.assert_called_once()
    assert runtime._client is None


def test_client_is_created_once_across_threads() -> None:
    created: list[MagicMock] = []

    def slow_from_env() -> MagicMock:
        time.sleep(0.05)
        client = MagicMock()
        created.append(client)
        return client

    runtime = DockerRuntime()
    with patch("coreason_judge.runtimes.docker.docker.from_env", side_effect=slow_from_env):
        with ThreadPoolExecutor(max_workers=4) as pool:
            clients = list(pool.map(lambda _: runtime.client, range(4)))

    assert len(created) == 1
    assert all(client is created[0] for client in clients)


@pytest.mark.asyncio
async def test_ping_resolves_client_off_the_event_loop() -> None:
    seen: list[str] = []

    def from_env() -> MagicMock:
        seen.append(threading.current_thread().name)
        client = MagicMock()
        client.ping.return_value = True
        return client

    runtime = DockerRuntime()
    with patch("coreason_judge.runtimes.docker.docker.from_env", side_effect=from_env):
        assert await runtime.ping()

    assert seen == [seen[0]]
    assert seen[0] != threading.current_thread().name
    await runtime.close()
