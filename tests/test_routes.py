# tests/test_routes.py
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from questhub.auth.token import create_access_token
from questhub.container.service_container import get_services
from questhub.database import get_db
from questhub.main import app

from conftest import ALICE_WALLET, POLICY_ID, SIGNER_ADDRESS


@pytest.fixture
def client(session_factory, services):
    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(uid):
    return {"Authorization": f"Bearer {create_access_token({'sub': uid})}"}


def test_requires_bearer_token(client):
    assert client.get("/api/users/me").status_code == 401


def test_quest_lifecycle_over_http(client, clock):
    assert client.put("/api/users/me", json={"wallet_address": ALICE_WALLET}, headers=auth("alice")).status_code == 200
    client.put("/api/users/me", json={}, headers=auth("creator"))

    created = client.post("/api/quests/", headers=auth("creator"), json={
        "name": "Cardano Hub launch",
        "reward": 1000,
        "token_policy_id": POLICY_ID,
        "token_name": "HUB",
        "deadline": (clock() + timedelta(days=7)).isoformat(),
        "admin_wallet_address": SIGNER_ADDRESS,
        "tasks": [{"task_type": "VisitWebsite", "link": "https://cardanohub.id", "points": 10}],
    })
    assert created.status_code == 200, created.text
    quest_id = created.json()["id"]

    assert client.post(f"/api/quests/{quest_id}/pool", headers=auth("creator")).status_code == 200
    assert client.post(f"/api/quests/{quest_id}/visit", json={"task_index": 0}, headers=auth("alice")).json()["verified"]

    submitted = client.post(f"/api/quests/{quest_id}/tasks", json={"task_index": 0}, headers=auth("alice"))
    assert submitted.json()["progress"]["points_collected"] == 10

    early = client.post(f"/api/quests/{quest_id}/finalize", headers=auth("creator"))
    assert early.status_code == 400
    assert early.json()["detail"]["code"] == "quest_not_ended"

    clock.advance(days=8)
    assert client.post(f"/api/quests/{quest_id}/finalize", headers=auth("alice")).status_code == 403
    finalized = client.post(f"/api/quests/{quest_id}/finalize", headers=auth("creator"))
    assert finalized.json()["allocations"] == [{"address": ALICE_WALLET, "amount": 1000}]
    assert client.post(f"/api/quests/{quest_id}/allocations/submit", headers=auth("creator")).json()["remaining"] == 0

    claim = client.post(f"/api/quests/{quest_id}/claim", json={"wallet_address": ALICE_WALLET}, headers=auth("alice"))
    assert claim.json()["amount"] == 1000
    again = client.post(f"/api/quests/{quest_id}/claim", json={"wallet_address": ALICE_WALLET}, headers=auth("alice"))
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "already_rewarded"


def test_unknown_quest(client):
    client.put("/api/users/me", json={}, headers=auth("alice"))
    response = client.get("/api/quests/404/progress", headers=auth("alice"))
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "quest_not_found"


def test_list_and_get_quests(client, make_quest):
    quest = make_quest(reward=500)

    listed = client.get("/api/quests/")
    assert [q["id"] for q in listed.json()] == [quest.id]

    one = client.get(f"/api/quests/{quest.id}").json()
    assert one["reward"] == 500
    assert one["tasks"][0]["task_type"] == "VisitWebsite"
    assert client.get("/api/quests/999").status_code == 404
