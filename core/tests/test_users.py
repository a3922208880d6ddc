from __future__ import annotations

import pytest

from collabhub.database.Users import Users
from collabhub.database.exceptions import ConflictError, NotFoundError

from fakes import TickClock


@pytest.fixture
def users(store) -> Users:
    return Users(store.repo, clock=TickClock())


def test_create_and_lookup_by_email(users: Users) -> None:
    created = users.create_user("u1", " Ada@Example.com ", "FOUNDER", "Ada", "Lovelace", bio="math")
    assert created["email"] == "ada@example.com"
    assert created["GSI1PK"] == "ROLE#FOUNDER"
    assert created["GSI2PK"] == "STATUS#ACTIVE"

    assert users.get_user("u1")["bio"] == "math"
    assert users.get_by_email("ADA@example.com")["userId"] == "u1"
    assert users.get_by_email("nobody@example.com") is None


def test_create_rejects_unknown_role_and_fields(users: Users) -> None:
    with pytest.raises(ValueError):
        users.create_user("u1", "a@b.c", "WIZARD", "A", "B")
    with pytest.raises(ValueError):
        users.create_user("u1", "a@b.c", "TALENT", "A", "B", status="BANNED")


def test_update_profile_requires_existing_user(users: Users) -> None:
    users.create_user("u1", "a@b.c", "TALENT", "A", "B")
    updated = users.update_profile("u1", {"bio": "hello", "skills": ["python"]})
    assert updated["bio"] == "hello"
    assert updated["firstName"] == "A"

    with pytest.raises(NotFoundError):
        users.update_profile("ghost", {"bio": "x"})
    with pytest.raises(ValueError):
        users.update_profile("u1", {"role": "ADMIN"})


def test_ban_moves_user_between_status_listings(users: Users) -> None:
    users.create_user("u1", "a@b.c", "TALENT", "A", "B")
    users.create_user("u2", "c@d.e", "TALENT", "C", "D")

    banned = users.ban_user("u1", reason="spam")
    assert banned["status"] == "BANNED"
    assert banned["banReason"] == "spam"
    assert [u["userId"] for u in users.list_by_status("BANNED").items] == ["u1"]
    assert [u["userId"] for u in users.list_by_status("ACTIVE").items] == ["u2"]

    with pytest.raises(ConflictError):
        users.ban_user("u1")

    restored = users.unban_user("u1")
    assert restored["status"] == "ACTIVE"
    assert "banReason" not in restored
    assert len(users.list_by_status("ACTIVE").items) == 2

    with pytest.raises(NotFoundError):
        users.ban_user("ghost")


def test_list_by_role_and_newest_first(users: Users) -> None:
    users.create_user("u1", "a@b.c", "TALENT", "A", "B")
    users.create_user("u2", "c@d.e", "FOUNDER", "C", "D")
    users.create_user("u3", "e@f.g", "TALENT", "E", "F")

    assert [u["userId"] for u in users.list_by_role("TALENT").items] == ["u1", "u3"]
    page = users.list_all(limit=2)
    assert [u["userId"] for u in page.items] == ["u3", "u2"]
    rest = users.list_all(limit=2, cursor=page.next_cursor)
    assert [u["userId"] for u in rest.items] == ["u1"]
