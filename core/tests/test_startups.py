from __future__ import annotations

import pytest

from collabhub.database.Startups import Startups
from collabhub.database.exceptions import ConflictError, NotFoundError

from fakes import IdSequence, TickClock


@pytest.fixture
def startups(store) -> Startups:
    return Startups(store.repo, clock=TickClock(), id_factory=IdSequence("s"))


def _create(startups: Startups, founder: str = "f1", **extra):
    return startups.create_startup(founder, "Acme", "Rockets", "We build rockets", "space", "MVP", **extra)


def test_create_startup_defaults(startups: Startups) -> None:
    item = _create(startups, fundingGoal=1.5)
    assert item["status"] == "PENDING_REVIEW"
    assert item["teamSize"] == 1
    assert item["GSI1PK"] == "FOUNDER#f1"
    assert item["GSI2PK"] == "VISIBILITY#PUBLIC#STATUS#PENDING_REVIEW"
    assert startups.get_startup(item["startupId"])["name"] == "Acme"

    with pytest.raises(ValueError):
        startups.create_startup("f1", "A", "B", "C", "D", "UNICORN")


def test_update_startup(startups: Startups) -> None:
    sid = _create(startups)["startupId"]
    updated = startups.update_startup(sid, {"tagline": "Faster rockets", "tags": ["space"]})
    assert updated["tagline"] == "Faster rockets"
    assert updated["name"] == "Acme"

    with pytest.raises(ValueError):
        startups.update_startup(sid, {"status": "ACTIVE"})
    with pytest.raises(NotFoundError):
        startups.update_startup("missing", {"tagline": "x"})


def test_moderation_and_visibility_rekey_discovery_index(startups: Startups) -> None:
    sid = _create(startups)["startupId"]
    assert startups.list_visible().items == []

    startups.moderate(sid, "ACTIVE", notes="looks good")
    assert [s["startupId"] for s in startups.list_visible().items] == [sid]

    hidden = startups.update_visibility(sid, "PRIVATE")
    assert hidden["GSI2PK"] == "VISIBILITY#PRIVATE#STATUS#ACTIVE"
    assert startups.list_visible().items == []
    assert [s["startupId"] for s in startups.list_visible("PRIVATE").items] == [sid]

    suspended = startups.delete_startup(sid)
    assert suspended["status"] == "SUSPENDED"
    assert startups.get_startup(sid) is not None

    with pytest.raises(NotFoundError):
        startups.moderate("missing", "ACTIVE")


def test_visibility_change_conflicts_with_concurrent_moderation(startups: Startups, store, monkeypatch) -> None:
    sid = _create(startups)["startupId"]
    stale = startups.get_startup(sid)
    startups.moderate(sid, "ACTIVE")

    # replay the visibility change against the status read before moderation
    monkeypatch.setattr(store.repo, "get_item", lambda pk, sk: stale)
    with pytest.raises(ConflictError):
        startups.update_visibility(sid, "PRIVATE")


def test_list_by_founder(startups: Startups) -> None:
    a = _create(startups, founder="f1")["startupId"]
    b = _create(startups, founder="f1")["startupId"]
    _create(startups, founder="f2")
    assert [s["startupId"] for s in startups.list_by_founder("f1").items] == [a, b]


def test_roles_open_and_close(startups: Startups) -> None:
    sid = _create(startups)["startupId"]
    first = startups.create_role(sid, "CTO", "Lead tech", "FULL_TIME", skills=["python"])
    second = startups.create_role(sid, "Designer", "UI", "CONTRACT", equityRange="0.5-1%")
    assert first["applicantCount"] == 0
    assert first["GSI1PK"] == "OPEN_ROLES"

    assert [r["roleId"] for r in startups.list_roles(sid).items] == [first["roleId"], second["roleId"]]
    assert [r["roleId"] for r in startups.list_open_roles().items] == [second["roleId"], first["roleId"]]

    closed = startups.set_role_open(sid, first["roleId"], False)
    assert "GSI1PK" not in closed
    assert [r["roleId"] for r in startups.list_open_roles().items] == [second["roleId"]]

    startups.set_role_open(sid, first["roleId"], True)
    assert len(startups.list_open_roles().items) == 2

    with pytest.raises(NotFoundError):
        startups.create_role("missing", "CTO", "x", "FULL_TIME")
    with pytest.raises(NotFoundError):
        startups.set_role_open(sid, "missing", True)
