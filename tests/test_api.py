from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from agentoffice import dependencies
from agentoffice.core.config import get_settings
from agentoffice.main import app
from agentoffice.runtime import OfficeRuntime
from agentoffice.schemas.agents import TaskReference
from agentoffice.services.registry import InMemoryTaskDirectory

PREFIX = get_settings().api_v1_prefix


@pytest.fixture
def client() -> Iterator[TestClient]:
    runtime = OfficeRuntime.from_settings(
        get_settings({"environment": "test"}),
        tasks=InMemoryTaskDirectory([TaskReference(id="task-1", status="IN_PROGRESS")]),
    )
    dependencies.reset_runtime(runtime)
    yield TestClient(app)
    dependencies.reset_runtime()


def _create(client: TestClient, name: str, **extra) -> dict:
    response = client.post(f"{PREFIX}/agents", json={"name": name, "role": "ENGINEER", **extra})
    assert response.status_code == 201, response.text
    return response.json()


def test_agent_lifecycle(client: TestClient) -> None:
    agent = _create(client, "Ada")

    listed = client.get(f"{PREFIX}/agents")
    assert [entry["id"] for entry in listed.json()] == [agent["id"]]

    actions = client.get(f"{PREFIX}/agents/{agent['id']}/actions")
    assert actions.json() == ["START_TASK", "TAKE_BREAK", "PROVIDE_HELP"]

    moved = client.post(f"{PREFIX}/agents/{agent['id']}/transitions", json={"action": "START_TASK"})
    assert moved.status_code == 200
    assert moved.json()["new_state"] == "WORKING"

    rejected = client.post(f"{PREFIX}/agents/{agent['id']}/transitions", json={"action": "RESUME_WORK"})
    assert rejected.status_code == 409

    assert client.get(f"{PREFIX}/agents/ghost").status_code == 404
    assert client.post(f"{PREFIX}/agents/ghost/transitions", json={"action": "START_TASK"}).status_code == 404


def test_create_agent_resolves_task(client: TestClient) -> None:
    agent = _create(client, "Ada", current_task_id="task-1")
    assert agent["current_task"] == {"id": "task-1", "status": "IN_PROGRESS"}

    missing = client.post(f"{PREFIX}/agents", json={"name": "Bob", "role": "SALES", "current_task_id": "nope"})
    assert missing.status_code == 404

    decision = client.post(f"{PREFIX}/agents/{agent['id']}/decisions")
    assert decision.status_code == 200
    assert decision.json()["type"] == "TASK_RELATED"
    assert decision.json()["selected_option"] == "continue"


def test_collaboration_and_voting_flow(client: TestClient) -> None:
    lead = _create(client, "Lead")
    first = _create(client, "First")
    second = _create(client, "Second")

    created = client.post(
        f"{PREFIX}/collaborations",
        json={
            "type": "DECISION_MAKING",
            "initiator_id": lead["id"],
            "participant_ids": [first["id"], second["id"]],
            "context": {"description": "Choose a framework"},
        },
    )
    assert created.status_code == 201, created.text
    session_id = created.json()["id"]

    outsider = client.post(
        f"{PREFIX}/collaborations/{session_id}/responses",
        json={"agent_id": lead["id"], "vote": "APPROVE"},
    )
    assert outsider.status_code == 422

    for participant in (first, second):
        response = client.post(
            f"{PREFIX}/collaborations/{session_id}/responses",
            json={"agent_id": participant["id"], "vote": "APPROVE"},
        )
        assert response.status_code == 200
    assert response.json()["status"] == "ACTIVE"

    active = client.get(f"{PREFIX}/collaborations/agents/{lead['id']}/active")
    assert [entry["id"] for entry in active.json()] == [session_id]

    opened = client.post(
        f"{PREFIX}/collaborations/{session_id}/votings",
        json={
            "topic": "Framework",
            "options": [{"id": "fastapi", "description": "FastAPI"}, {"id": "flask", "description": "Flask"}],
        },
    )
    assert opened.status_code == 201, opened.text
    voting_id = opened.json()["id"]

    assert client.get(f"{PREFIX}/votings/{voting_id}/outcome").status_code == 409
    bad_option = client.post(
        f"{PREFIX}/votings/{voting_id}/votes",
        json={"agent_id": first["id"], "option_id": "django", "confidence": 0.5},
    )
    assert bad_option.status_code == 422

    for participant, confidence in ((first, 0.9), (second, 0.4)):
        cast = client.post(
            f"{PREFIX}/votings/{voting_id}/votes",
            json={"agent_id": participant["id"], "option_id": "fastapi", "confidence": confidence},
        )
        assert cast.status_code == 200
    assert cast.json()["status"] == "CLOSED"

    late = client.post(
        f"{PREFIX}/votings/{voting_id}/votes",
        json={"agent_id": first["id"], "option_id": "flask", "confidence": 0.5},
    )
    assert late.status_code == 409

    listed = client.get(f"{PREFIX}/collaborations/{session_id}/votings")
    assert [entry["id"] for entry in listed.json()] == [voting_id]

    outcome = client.get(f"{PREFIX}/votings/{voting_id}/outcome")
    assert outcome.status_code == 200
    assert outcome.json()["decision"] == "fastapi"

    completed = client.post(f"{PREFIX}/collaborations/{session_id}/complete", json={"outcome": outcome.json()})
    assert completed.status_code == 200
    assert completed.json()["status"] == "COMPLETED"

    again = client.post(f"{PREFIX}/collaborations/{session_id}/complete", json={"outcome": outcome.json()})
    assert again.status_code == 409


def test_request_validation_and_missing_sessions(client: TestClient) -> None:
    lead = _create(client, "Lead")

    duplicate = client.post(
        f"{PREFIX}/collaborations",
        json={
            "type": "TASK_HELP",
            "initiator_id": lead["id"],
            "participant_ids": ["a", "a"],
            "context": {"description": "Help"},
        },
    )
    assert duplicate.status_code == 422

    assert client.get(f"{PREFIX}/collaborations/missing").status_code == 404
    assert client.get(f"{PREFIX}/votings/missing").status_code == 404
    assert client.post(
        f"{PREFIX}/collaborations/missing/votings",
        json={"topic": "T", "options": [{"id": "a", "description": "A"}]},
    ).status_code == 404
