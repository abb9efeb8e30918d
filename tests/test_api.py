from typing import Any, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from coreason_judge.api import create_app
from coreason_judge.config import JudgeConfig
from coreason_judge.models import ExecutionRequest, ExecutionResult


@pytest.fixture
def mock_service() -> MagicMock:
    service = MagicMock()
    service.config = JudgeConfig(_env_file=None, room_languages={"room-1": "javascript"})
    service.execute = AsyncMock(return_value=ExecutionResult(success=True, status="success", stdout="4\n"))
    service.health = AsyncMock(return_value={"status": "healthy"})
    service.languages.return_value = [{"id": "python", "name": "Python"}]
    return service


@pytest.fixture
def client(mock_service: MagicMock) -> Generator[TestClient, None, None]:
    with TestClient(create_app(mock_service), raise_server_exceptions=False) as test_client:
        yield test_client


def test_execute(client: TestClient, mock_service: MagicMock) -> None:
    response = client.post(
        "/execute",
        json={
            "language": "python",
            "code": "print(int(input())+1)",
            "testCases": [{"input": "3", "expectedOutput": "4"}],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["stdout"] == "4\n"
    assert "executionTimeMs" in body
    assert "perTestCaseResults" in body

    request: ExecutionRequest = mock_service.execute.await_args.args[0]
    assert request.language == "python"
    assert request.test_cases[0].expected_output == "4"


@pytest.mark.parametrize("status, code", [("rejected", 400), ("service_unavailable", 503), ("timeout", 200)])
def test_execute_status_codes(client: TestClient, mock_service: MagicMock, status: str, code: int) -> None:
    mock_service.execute.return_value = ExecutionResult(success=False, status=status, error="reason")

    response = client.post("/execute", json={"language": "python", "code": "print(1)"})

    assert response.status_code == code
    assert response.json()["status"] == status


def test_execute_requires_code(client: TestClient) -> None:
    response = client.post("/execute", json={"language": "python"})
    assert response.status_code == 422


def test_unhandled_error_is_tagged(client: TestClient, mock_service: MagicMock) -> None:
    mock_service.execute.side_effect = RuntimeError("kaboom")

    response = client.post("/execute", json={"language": "python", "code": "print(1)"})

    assert response.status_code == 500
    assert response.json() == {"status": "internal_error", "detail": "An internal error occurred"}


def test_health(client: TestClient, mock_service: MagicMock) -> None:
    assert client.get("/health").status_code == 200

    mock_service.health.return_value = {"status": "degraded"}
    assert client.get("/health").status_code == 200

    mock_service.health.return_value = {"status": "unhealthy"}
    response = client.get("/health")
    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_languages(client: TestClient) -> None:
    response = client.get("/languages")
    assert response.status_code == 200
    assert response.json() == [{"id": "python", "name": "Python"}]


def test_room_execute_forwards_with_room_language(client: TestClient, mock_service: MagicMock) -> None:
    response = client.post("/rooms/room-1/execute", json={"code": "console.log(4);", "stdin": "3"})

    assert response.status_code == 200
    assert response.json()["stdout"] == "4\n"
    request: ExecutionRequest = mock_service.execute.await_args.args[0]
    assert request.language == "javascript"
    assert request.code == "console.log(4);"
    assert request.stdin == "3"


def test_room_execute_unknown_room(client: TestClient, mock_service: MagicMock) -> None:
    response = client.post("/rooms/nope/execute", json={"code": "console.log(1);"})

    assert response.status_code == 404
    mock_service.execute.assert_not_awaited()


def test_lifespan_owns_default_service(fake_runtime: Any) -> None:
    with patch("coreason_judge.service.SandboxFactory.get_runtime", return_value=fake_runtime):
        with TestClient(create_app()) as test_client:
            response = test_client.post("/execute", json={"language": "python", "code": "print('ok')"})

    assert response.status_code == 200
    assert response.json()["stdout"] == "ok\n"
