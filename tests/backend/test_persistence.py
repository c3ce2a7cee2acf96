from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from backend.app.main import create_app
from backend.app.persistence import SqlPersistence

from conftest import ADMIN_ID, as_user


def _new_client(monkeypatch, db_path: Path) -> TestClient:
    monkeypatch.setenv("PERSISTENCE_ENABLED", "true")
    monkeypatch.setenv("AUTH_ENABLED", "false")
    monkeypatch.setenv("BOOTSTRAP_ADMIN_ID", ADMIN_ID)
    monkeypatch.setenv("PERSISTENCE_DB_PATH", str(db_path))
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{str(db_path).replace(chr(92), '/')}")
    return TestClient(create_app())


def test_candidate_lifecycle_persists_across_restart(monkeypatch, tmp_path) -> None:
    db_path = tmp_path / "recruit_tracker.sqlite3"
    first_client = _new_client(monkeypatch, db_path)
    job = first_client.post(
        "/jobs",
        headers=as_user(ADMIN_ID),
        json={"title": "Data Engineer", "stages": [{"name": "Technical"}]},
    )
    assert job.status_code == 201
    job_id = job.json()["id"]
    candidate = first_client.post(
        "/candidates",
        headers=as_user(ADMIN_ID),
        json={"job_id": job_id, "dynamic_fields": {"Email": "persist@example.com"}},
    )
    assert candidate.status_code == 201
    candidate_id = candidate.json()["id"]
    moved = first_client.post(
        f"/candidates/{candidate_id}/status",
        headers=as_user(ADMIN_ID),
        json={"status": "Interviewed"},
    )
    assert moved.status_code == 200

    restarted_client = _new_client(monkeypatch, db_path)
    reloaded = restarted_client.get(f"/candidates/{candidate_id}", headers=as_user(ADMIN_ID))
    assert reloaded.status_code == 200
    body = reloaded.json()
    assert body["status"] == "Interviewed"
    assert body["interview_stage"] == "Technical"
    assert body["version"] == 2
    assert len(body["status_history"]) == 1

    job_after = restarted_client.get(f"/jobs/{job_id}", headers=as_user(ADMIN_ID)).json()
    assert job_after["candidate_count"] == 1


def test_users_and_activity_persist_across_restart(monkeypatch, tmp_path) -> None:
    db_path = tmp_path / "recruit_tracker.sqlite3"
    first_client = _new_client(monkeypatch, db_path)
    created = first_client.post(
        "/users",
        headers=as_user(ADMIN_ID),
        json={"name": "Priya", "email": "priya@example.com", "designation": "Mentor"},
    )
    assert created.status_code == 201
    user_id = created.json()["id"]

    restarted_client = _new_client(monkeypatch, db_path)
    users = restarted_client.get("/users").json()
    assert {user["id"] for user in users} == {ADMIN_ID, user_id}
    activity = restarted_client.get("/activity", headers=as_user(ADMIN_ID)).json()
    assert activity[0]["target_id"] == user_id


def test_sqlite_url_creates_missing_parent_directories(tmp_path) -> None:
    db_path = tmp_path / "nested" / "recruit_tracker.sqlite3"
    persistence = SqlPersistence(f"sqlite:///{db_path.as_posix()}")
    assert db_path.parent.exists()
    assert persistence.ping()
    assert persistence.list_candidates() == []
