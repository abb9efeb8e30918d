import asyncio
import functools
import shlex
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

import docker
from docker.errors import DockerException, ImageNotFound, NotFound
from docker.models.containers import Container
from docker.types import Ulimit
from loguru import logger

from coreason_judge.errors import ProvisioningFailed, SandboxFailure
from coreason_judge.languages import LanguageAdapter
from coreason_judge.models import RawExecution, SandboxSpec
from coreason_judge.runtime import SandboxHandle, SandboxRuntime

CODE_ENV = "JUDGE_CODE"
STDIN_ENV = "JUDGE_STDIN"
SCRATCH_DIR = "/tmp"
TRUNCATION_MARKER = "\n[output truncated]"

T = TypeVar("T")


class DockerRuntime(SandboxRuntime):
    """
    Docker-based implementation of the SandboxRuntime.

    Every execution gets a fresh container: no network, read-only rootfs with a
    small noexec tmpfs, all capabilities dropped, non-root user, capped memory,
    CPU and pids. The container is removed on teardown.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout_grace: float = 1.0,
        client: docker.DockerClient | None = None,
        max_concurrent: int = 8,
    ):
        """Initializes the DockerRuntime.

        Args:
            base_url: Docker daemon URL; ``docker.from_env()`` is used when omitted.
            timeout_grace: Seconds the blocking wait may outlive the execution timeout.
            client: Optional pre-built DockerClient.
            max_concurrent: Number of sandboxes that can be live at once. Sizes the
                worker pool that runs blocking Docker calls.
        """
        self.base_url = base_url
        self.timeout_grace = timeout_grace
        self.max_concurrent = max_concurrent
        self._client = client
        self._client_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None

    @property
    def client(self) -> docker.DockerClient:
        """Docker client, created on first use. Blocks; call from a worker thread."""
        with self._client_lock:
            if self._client is None:
                try:
                    if self.base_url:
                        self._client = docker.DockerClient(base_url=self.base_url)
                    else:
                        self._client = docker.from_env()
                except DockerException as e:
                    logger.error(f"Docker runtime unavailable: {e}")
                    raise ProvisioningFailed(f"Docker runtime unavailable: {e}") from e
            return self._client

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking Docker call on the runtime's own worker pool.

        Every live sandbox may hold one worker in ``wait`` while another serves its
        kill or log reads, so the pool never queues a sandbox behind the others.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_concurrent * 2 + 1,
                thread_name_prefix="docker-sandbox",
            )
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args, **kwargs))

    def _launch_command(self, adapter: LanguageAdapter) -> list[str]:
        # Code and stdin arrive through the environment and are unset before the
        # interpreter starts, so the program cannot read them back.
        interpreter = shlex.join(adapter.interpreter_command())
        script = (
            f'printf "%s" "${STDIN_ENV}" | '
            f'exec env -u {STDIN_ENV} -u {CODE_ENV} {interpreter} "${CODE_ENV}"'
        )
        return ["/bin/sh", "-c", script]

    def container_config(
        self,
        request_id: str,
        spec: SandboxSpec,
        adapter: LanguageAdapter,
        code: str,
        stdin: str,
    ) -> dict[str, Any]:
        """Build the ``containers.create`` keyword arguments for one sandbox."""
        memory = f"{spec.memory_limit_mb}m"
        environment = {
            "PATH": "/usr/local/bin:/usr/bin:/bin",
            "HOME": SCRATCH_DIR,
            "TMPDIR": SCRATCH_DIR,
            **adapter.environment(),
            CODE_ENV: code,
            STDIN_ENV: stdin,
        }
        return {
            "image": spec.base_image,
            "command": self._launch_command(adapter),
            "name": f"code-exec-{request_id}",
            "environment": environment,
            "user": spec.user,
            "working_dir": SCRATCH_DIR,
            "network_disabled": spec.network_disabled,
            "network_mode": "none",
            "read_only": spec.read_only_rootfs,
            "tmpfs": {SCRATCH_DIR: f"rw,noexec,nosuid,nodev,size={spec.tmpfs_size_mb}m"},
            "mem_limit": memory,
            "memswap_limit": memory,
            "nano_cpus": int(spec.cpu_share * 1e9),
            "pids_limit": spec.pid_limit,
            "cap_drop": ["ALL"],
            "security_opt": ["no-new-privileges"],
            "ulimits": [
                Ulimit(name="nofile", soft=64, hard=64),
                Ulimit(name="fsize", soft=1024 * 1024, hard=1024 * 1024),
                Ulimit(name="core", soft=0, hard=0),
            ],
            "labels": {
                "security.level": "high",
                "execution.type": "user-code",
                "language": adapter.name,
                "request.id": request_id,
                "created.by": "coreason-judge",
            },
            "stdin_open": False,
            "tty": False,
        }

    def _create(self, config: dict[str, Any]) -> Container:
        """Create the container, pulling the base image once if it is missing."""
        try:
            return self.client.containers.create(**config)
        except ImageNotFound:
            logger.info(f"Pulling sandbox image {config['image']}")
            self.client.images.pull(config["image"])
            return self.client.containers.create(**config)

    async def provision(
        self,
        request_id: str,
        spec: SandboxSpec,
        adapter: LanguageAdapter,
        code: str,
        stdin: str,
    ) -> SandboxHandle:
        config = self.container_config(request_id, spec, adapter, code, stdin)
        container: Container | None = None
        try:
            container = await self._run(self._create, config)
            await self._run(container.start)
        except DockerException as e:
            logger.error(f"Failed to start Docker sandbox for {request_id}: {e}")
            if container is not None:
                await self._remove(container)
            raise ProvisioningFailed(f"Failed to start sandbox: {e}") from e

        logger.info(f"Docker sandbox started: {container.short_id}", request_id=request_id, image=spec.base_image)
        return SandboxHandle(
            request_id=request_id,
            sandbox_id=container.short_id,
            spec=spec,
            ref=container,
            started_at=time.monotonic(),
        )

    async def collect(self, handle: SandboxHandle) -> RawExecution:
        container: Container = handle.ref
        timeout = handle.spec.timeout_seconds
        exit_code: int | None = None
        timed_out = False

        try:
            try:
                # The host-side timer is authoritative; the HTTP wait only needs to outlive it.
                status = await asyncio.wait_for(
                    self._run(container.wait, timeout=timeout + self.timeout_grace),
                    timeout=timeout,
                )
                exit_code = status.get("StatusCode")
            except asyncio.TimeoutError:
                timed_out = True
                logger.warning(
                    f"Execution timed out ({handle.spec.timeout_ms}ms). Killing sandbox {handle.sandbox_id}."
                )
                await self._kill(container)

            duration_ms = int((time.monotonic() - handle.started_at) * 1000)

            stdout_bytes = await self._run(container.logs, stdout=True, stderr=False)
            stderr_bytes = await self._run(container.logs, stdout=False, stderr=True)
            await self._run(container.reload)
            oom_killed = bool(container.attrs.get("State", {}).get("OOMKilled", False))
        except (DockerException, OSError) as e:
            logger.error(f"Sandbox {handle.sandbox_id} failed during execution: {e}")
            raise SandboxFailure(f"Sandbox failed during execution: {e}") from e

        limit = handle.spec.max_output_bytes
        return RawExecution(
            stdout=_decode(stdout_bytes, limit),
            stderr=_decode(stderr_bytes, limit),
            exit_code=exit_code,
            timed_out=timed_out,
            oom_killed=oom_killed,
            duration_ms=duration_ms,
            backend="sandbox",
        )

    async def _kill(self, container: Container) -> None:
        try:
            await self._run(container.kill)
        except DockerException as e:
            # Usually the process exited between the timer firing and the kill.
            logger.warning(f"Error killing Docker sandbox {container.short_id}: {e}")

    async def _remove(self, container: Container) -> None:
        try:
            await self._run(container.remove, force=True)
        except NotFound:
            logger.debug(f"Docker sandbox {container.short_id} already removed")
        except DockerException as e:
            logger.error(f"Error removing Docker sandbox {container.short_id}: {e}")

    async def destroy(self, handle: SandboxHandle) -> None:
        logger.info(f"Terminating Docker sandbox: {handle.sandbox_id}", request_id=handle.request_id)
        await self._remove(handle.ref)

    def _ping(self) -> bool:
        return bool(self.client.ping())

    async def ping(self) -> bool:
        try:
            return await self._run(self._ping)
        except (ProvisioningFailed, DockerException, OSError) as e:
            logger.warning(f"Docker runtime ping failed: {e}")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._run(self._client.close)
            self._client = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None


def _decode(data: bytes | None, limit: int) -> str:
    if not data:
        return ""
    if len(data) > limit:
        return data[:limit].decode("utf-8", errors="replace") + TRUNCATION_MARKER
    return data.decode("utf-8", errors="replace")
