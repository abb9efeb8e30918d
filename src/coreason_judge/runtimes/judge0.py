import time
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from coreason_judge.errors import FallbackFailed
from coreason_judge.languages import LanguageAdapter
from coreason_judge.models import RawExecution, SandboxSpec

# Judge0 submission status ids.
STATUS_ACCEPTED = 3
STATUS_WRONG_ANSWER = 4
STATUS_TIME_LIMIT_EXCEEDED = 5
STATUS_COMPILATION_ERROR = 6
STATUS_INTERNAL_ERROR = 13
STATUS_EXEC_FORMAT_ERROR = 14


class Judge0Client:
    """Fallback judge: runs a submission on a Judge0-compatible HTTP API.

    Only used when local sandboxing is unavailable. One call per execution unit,
    bounded by its own outbound timeout.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        host: str | None = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initializes the Judge0Client.

        Args:
            base_url: Root URL of the Judge0 API.
            api_key: RapidAPI key, sent as ``X-RapidAPI-Key`` when present.
            host: RapidAPI host header value.
            timeout: Outbound request timeout in seconds.
            client: Optional httpx.AsyncClient for connection pooling.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.host = host
        self.timeout = timeout
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-RapidAPI-Key"] = self.api_key
            if self.host:
                headers["X-RapidAPI-Host"] = self.host
        return headers

    def _payload(self, adapter: LanguageAdapter, code: str, stdin: str, spec: SandboxSpec) -> dict[str, Any]:
        return {
            "source_code": code,
            "language_id": adapter.judge0_language_id,
            "stdin": stdin,
            "cpu_time_limit": spec.timeout_seconds,
            "wall_time_limit": spec.timeout_seconds,
            "memory_limit": spec.memory_limit_mb * 1024,
        }

    async def execute(self, adapter: LanguageAdapter, code: str, stdin: str, spec: SandboxSpec) -> RawExecution:
        """Submit and wait for one run.

        Raises:
            FallbackFailed: On transport errors, HTTP errors, unparseable responses or
                a Judge0 internal error.
        """
        logger.info(f"Executing {adapter.name} code on fallback judge {self.base_url}")
        start = time.monotonic()
        try:
            response = await self._client.post(
                f"{self.base_url}/submissions",
                params={"base64_encoded": "false", "wait": "true"},
                json=self._payload(adapter, code, stdin, spec),
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Fallback judge returned HTTP {e.response.status_code}")
            raise FallbackFailed(f"Judge0 API error: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Fallback judge unreachable: {e}")
            raise FallbackFailed(f"Judge0 API error: {e}") from e
        except ValueError as e:
            raise FallbackFailed("Judge0 API returned an invalid response") from e

        if not isinstance(data, dict):
            raise FallbackFailed("Judge0 API returned an invalid response")

        duration_ms = int((time.monotonic() - start) * 1000)
        return self._to_raw(data, duration_ms)

    def _to_raw(self, data: dict[str, Any], duration_ms: int) -> RawExecution:
        status = data.get("status") or {}
        if not isinstance(status, dict):
            raise FallbackFailed("Judge0 API returned an invalid response")
        status_id = status.get("id")
        if status_id in (STATUS_INTERNAL_ERROR, STATUS_EXEC_FORMAT_ERROR):
            raise FallbackFailed(f"Judge0 internal error: {status.get('description', status_id)}")

        timed_out = status_id == STATUS_TIME_LIMIT_EXCEEDED
        exit_code = data.get("exit_code")
        if exit_code is None and not timed_out:
            exit_code = 0 if status_id in (STATUS_ACCEPTED, STATUS_WRONG_ANSWER) else 1

        try:
            return RawExecution(
                stdout=data.get("stdout") or "",
                stderr=data.get("stderr") or "",
                exit_code=exit_code,
                timed_out=timed_out,
                compile_output=data.get("compile_output") or None,
                duration_ms=duration_ms,
                backend="fallback",
            )
        except ValidationError as e:
            logger.error(f"Fallback judge response has invalid fields: {e}")
            raise FallbackFailed("Judge0 API returned an invalid response") from e

    async def aclose(self) -> None:
        if self._internal_client:
            await self._client.aclose()
