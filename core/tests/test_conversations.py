from __future__ import annotations

import pytest

from collabhub.database.Conversations import Conversations, make_preview
from collabhub.database.Users import Users
from collabhub.database.exceptions import NotFoundError, PermissionDenied

from fakes import IdSequence, TickClock


@pytest.fixture
def chat(store) -> Conversations:
    users = Users(store.repo)
    for uid in ("u1", "u2", "u3"):
        users.create_user(uid, f"{uid}@example.com", "TALENT", uid.upper(), "Test")
    return Conversations(store.repo, store.batch, store.denorm, clock=TickClock(), id_factory=IdSequence("c"))


def _items_with_conversation(store, conversation_id: str):
    return [
        item
        for uid in ("u1", "u2", "u3")
        for item in store.repo.query_by_partition(f"PARTICIPANT#{uid}").items
        if item["conversationId"] == conversation_id
    ]


def test_direct_conversation_creates_authoritative_item_and_two_copies(chat: Conversations, store) -> None:
    conversation, existing = chat.create_conversation("u1", ["u2"])
    assert existing is False
    cid = conversation["conversationId"]

    assert store.repo.get_item(f"CONVERSATION#{cid}", "METADATA")["participants"] == ["u1", "u2"]
    copies = _items_with_conversation(store, cid)
    assert sorted(c["PK"] for c in copies) == ["PARTICIPANT#u1", "PARTICIPANT#u2"]
    assert all(c["SK"] == f"CONVERSATION#{conversation['createdAt']}#{cid}" for c in copies)


def test_direct_conversation_is_reused(chat: Conversations, store) -> None:
    first, _ = chat.create_conversation("u1", ["u2"])
    again, existing = chat.create_conversation("u2", ["u1"])
    assert existing is True
    assert again["conversationId"] == first["conversationId"]
    assert len(chat.list_conversations("u1").items) == 1


def test_create_validates_participants(chat: Conversations) -> None:
    with pytest.raises(ValueError):
        chat.create_conversation("u1", ["u2", "u3"])
    with pytest.raises(ValueError):
        chat.create_conversation("u1", ["u1"], conversation_type="GROUP")
    with pytest.raises(NotFoundError):
        chat.create_conversation("u1", ["ghost"])


def test_group_conversation_fans_out_to_everyone(chat: Conversations, store) -> None:
    conversation, _ = chat.create_conversation("u1", ["u2", "u3", "u2"], conversation_type="GROUP")
    assert conversation["participants"] == ["u1", "u2", "u3"]
    assert len(_items_with_conversation(store, conversation["conversationId"])) == 3


def test_send_message_refreshes_every_copy(chat: Conversations, store) -> None:
    conversation, _ = chat.create_conversation("u1", ["u2"])
    cid = conversation["conversationId"]
    text = "x" * 60

    message = chat.send_message(cid, "u1", text)
    assert message["readBy"] == ["u1"]

    authoritative = chat.get_conversation(cid)
    assert authoritative["lastMessagePreview"] == "x" * 50 + "..."
    assert authoritative["lastMessageAt"] == message["createdAt"]
    for copy in _items_with_conversation(store, cid):
        assert copy["lastMessagePreview"] == authoritative["lastMessagePreview"]
        assert copy["lastMessageAt"] == message["createdAt"]

    with pytest.raises(PermissionDenied):
        chat.send_message(cid, "u3", "let me in")
    with pytest.raises(NotFoundError):
        chat.send_message("missing", "u1", "hello")


def test_late_older_message_does_not_roll_back_summaries(chat: Conversations, store) -> None:
    conversation, _ = chat.create_conversation("u1", ["u2"])
    cid = conversation["conversationId"]
    ahead = Conversations(
        store.repo, store.batch, store.denorm, clock=lambda: "2026-10-19T09:00:00.000Z", id_factory=IdSequence("m")
    )
    ahead.send_message(cid, "u2", "newest")
    older = chat.send_message(cid, "u1", "stale")

    assert store.repo.get_item(f"CONVERSATION#{cid}", older["SK"])["content"] == "stale"
    assert chat.get_conversation(cid)["lastMessagePreview"] == "newest"
    for copy in _items_with_conversation(store, cid):
        assert copy["lastMessagePreview"] == "newest"
        assert copy["lastMessageAt"] == "2026-10-19T09:00:00.000Z"


def test_preview() -> None:
    assert make_preview("short") == "short"
    assert make_preview("y" * 50) == "y" * 50
    assert make_preview("y" * 51) == "y" * 50 + "..."


def test_list_conversations_newest_first(chat: Conversations) -> None:
    older, _ = chat.create_conversation("u1", ["u2"])
    newer, _ = chat.create_conversation("u1", ["u3"])
    ids = [c["conversationId"] for c in chat.list_conversations("u1").items]
    assert ids == [newer["conversationId"], older["conversationId"]]


def test_messages_and_read_receipts(chat: Conversations) -> None:
    conversation, _ = chat.create_conversation("u1", ["u2"])
    cid = conversation["conversationId"]
    sent = [chat.send_message(cid, "u1", f"m{i}")["messageId"] for i in range(3)]
    chat.send_message(cid, "u2", "reply")

    page = chat.list_messages(cid, "u2", limit=2)
    assert [m["content"] for m in page.items] == ["reply", "m2"]
    rest = chat.list_messages(cid, "u2", limit=2, cursor=page.next_cursor)
    assert [m["messageId"] for m in rest.items] == [sent[1], sent[0]]

    assert chat.mark_read(cid, "u2") == 3
    assert chat.mark_read(cid, "u2") == 0
    assert all("u2" in m["readBy"] for m in chat.list_messages(cid, "u1").items)

    with pytest.raises(PermissionDenied):
        chat.list_messages(cid, "u3")
