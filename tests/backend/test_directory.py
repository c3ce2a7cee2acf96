from __future__ import annotations

from datetime import datetime
from typing import Optional

from backend.app.models import Designation, UserRecord
from backend.app.services.directory import build_reporting_index, reportees_of, roster_ids


def _user(user_id: str, designation: Designation, reporter: Optional[str] = None) -> UserRecord:
    return UserRecord(
        id=user_id,
        name=user_id,
        email=f"{user_id}@example.com",
        designation=designation,
        reporter=reporter,
        created_at_utc=datetime(2024, 1, 1),
    )


def _roster() -> list[UserRecord]:
    return [
        _user("m1", Designation.manager),
        _user("mentor1", Designation.mentor, "m1"),
        _user("r1", Designation.recruiter, "mentor1"),
        _user("r2", Designation.recruiter, "mentor1"),
        _user("r3", Designation.recruiter, "r1"),
        _user("r4", Designation.recruiter, "m1"),
        _user("other", Designation.recruiter),
    ]


def test_reporting_index_groups_by_reporter() -> None:
    index = build_reporting_index(_roster())
    assert index["m1"] == ["mentor1", "r4"]
    assert index["mentor1"] == ["r1", "r2"]
    assert "other" not in index


def test_manager_sees_two_levels_only() -> None:
    found = reportees_of("m1", _roster(), Designation.manager)
    assert found == {"mentor1", "r4", "r1", "r2"}
    # r3 reports to r1, which is three levels below m1.
    assert "r3" not in found


def test_non_manager_gets_direct_reportees() -> None:
    assert reportees_of("mentor1", _roster(), Designation.mentor) == {"r1", "r2"}
    assert reportees_of("r2", _roster(), Designation.recruiter) == set()


def test_reporter_cycle_terminates_and_excludes_actor() -> None:
    roster = [
        _user("a", Designation.manager, "b"),
        _user("b", Designation.mentor, "a"),
        _user("c", Designation.recruiter, "c"),
    ]
    assert reportees_of("a", roster, Designation.manager) == {"b"}
    assert reportees_of("c", roster, Designation.manager) == set()


def test_dangling_reporter_is_ignored() -> None:
    roster = [_user("r1", Designation.recruiter, "deleted_manager")]
    assert reportees_of("r1", roster, Designation.manager) == set()
    assert roster_ids(roster) == {"r1"}
