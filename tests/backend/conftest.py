from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from backend.app.main import create_app

ADMIN_ID = "usr_admin"


def as_user(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("PERSISTENCE_ENABLED", "false")
    monkeypatch.setenv("AUTH_ENABLED", "false")
    monkeypatch.setenv("BOOTSTRAP_ADMIN_ID", ADMIN_ID)
    app = create_app()
    return TestClient(app)


@pytest.fixture()
def roster(client: TestClient) -> dict[str, str]:
    """Manager -> Mentor -> Recruiter A, plus an unattached Recruiter B and Finance."""
    ids = {"admin": ADMIN_ID}

    def add(key: str, designation: str, reporter: str | None = None) -> None:
        response = client.post(
            "/users",
            headers=as_user(ADMIN_ID),
            json={
                "name": key.replace("_", " ").title(),
                "email": f"{key}@example.com",
                "designation": designation,
                "reporter": reporter,
            },
        )
        assert response.status_code == 201, response.text
        ids[key] = response.json()["id"]

    add("manager", "Manager")
    add("mentor", "Mentor", ids["manager"])
    add("recruiter_a", "Recruiter", ids["mentor"])
    add("recruiter_b", "Recruiter")
    add("finance", "Finance")
    return ids


@pytest.fixture()
def job(client: TestClient, roster: dict[str, str]) -> dict:
    response = client.post(
        "/jobs",
        headers=as_user(roster["manager"]),
        json={
            "title": "Backend Engineer",
            "client_id": "client_acme",
            "client_name": "Acme Corp",
            "client_contacts": ["hiring@acme.example"],
            "stages": [
                {"name": "Technical", "responsible": "Recruiter"},
                {"name": "HR", "responsible": "Manager"},
            ],
            "assigned_recruiters": [roster["recruiter_a"], roster["recruiter_b"]],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


def add_candidate(
    client: TestClient,
    job_id: str,
    user_id: str,
    *,
    name: str,
    email: str,
    phone: str = "",
) -> dict:
    fields = {"Name": name, "Email": email}
    if phone:
        fields["Phone"] = phone
    response = client.post(
        "/candidates",
        headers=as_user(user_id),
        json={"job_id": job_id, "dynamic_fields": fields},
    )
    assert response.status_code == 201, response.text
    return response.json()
