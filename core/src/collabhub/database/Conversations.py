from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from boto3.dynamodb.conditions import Attr  # type: ignore[import]

from .batch import BatchCoordinator
from .denormalization import DenormalizationManager
from .exceptions import NotFoundError, PermissionDenied, PreconditionFailed
from .identifiers import generate_id, now_iso
from .keys import GSI1, PK, SK, build_item, build_key, make_pk_conversation, make_pk_participant
from .repository import DynamoRepository
from .types import EntityKind, QueryPage

logger = logging.getLogger(__name__)

CONVERSATION_TYPES = ("DIRECT", "GROUP", "STARTUP_CHANNEL")
MESSAGE_TYPES = ("TEXT", "FILE", "SYSTEM")
PREVIEW_LENGTH = 50


def make_preview(content: str) -> str:
    if len(content) > PREVIEW_LENGTH:
        return content[:PREVIEW_LENGTH] + "..."
    return content


class Conversations:
    """Service for conversations and their messages.

    Keys
    ----
    - conversation: pk = CONVERSATION#<conversationId>, sk = METADATA
    - participant copy: pk = PARTICIPANT#<userId>, sk = CONVERSATION#<createdAt>#<conversationId>
      (mirrored into GSI1 for "my conversations")
    - message: pk = CONVERSATION#<conversationId>, sk = MESSAGE#<messageId>

    The authoritative item owns the summary fields. Every summary change is
    followed by a re-fan-out so participant copies show the latest preview.
    """

    def __init__(
        self,
        repo: DynamoRepository,
        batch: BatchCoordinator,
        denorm: DenormalizationManager,
        clock: Callable[[], str] = now_iso,
        id_factory: Callable[[], str] = generate_id,
    ) -> None:
        self._repo = repo
        self._batch = batch
        self._denorm = denorm
        self._clock = clock
        self._new_id = id_factory

    def create_conversation(
        self,
        creator_id: str,
        participant_ids: Iterable[str],
        conversation_type: str = "DIRECT",
        related_startup_id: Optional[str] = None,
        related_application_id: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """Create a conversation, or return the existing direct one between the same two users.

        Returns ``(conversation, is_existing)``.
        """
        if conversation_type not in CONVERSATION_TYPES:
            raise ValueError(f"Unknown conversation type: {conversation_type}")
        participants = list(dict.fromkeys([creator_id, *participant_ids]))
        if conversation_type == "DIRECT" and len(participants) != 2:
            raise ValueError("A direct conversation needs exactly two participants")
        if len(participants) < 2:
            raise ValueError("A conversation needs at least two participants")

        if conversation_type == "DIRECT":
            existing = self._find_direct(creator_id, participants)
            if existing is not None:
                return existing, True

        found = self._batch.batch_get(build_key(EntityKind.USER, pid) for pid in participants)
        missing = set(participants) - {user.get("userId") for user in found}
        if missing:
            raise NotFoundError(f"Users not found: {sorted(missing)}")

        conversation_id = self._new_id()
        ts = self._clock()
        attributes = {
            "conversationId": conversation_id,
            "participants": participants,
            "type": conversation_type,
            "relatedStartupId": related_startup_id,
            "relatedApplicationId": related_application_id,
            "lastMessageAt": ts,
            "lastMessagePreview": "",
        }
        item = build_item(EntityKind.CONVERSATION, build_key(EntityKind.CONVERSATION, conversation_id), attributes, ts)
        self._repo.put_item(item)
        self._denorm.fan_out_conversation(item)
        logger.info("Conversation %s created for %d participants", conversation_id, len(participants))
        return item, False

    def _find_direct(self, user_id: str, participants: List[str]) -> Optional[Dict[str, Any]]:
        wanted = set(participants)
        for copy in self._repo.iter_index(GSI1.name, make_pk_participant(user_id), "CONVERSATION#"):
            if copy.get("type") == "DIRECT" and set(copy.get("participants") or []) == wanted:
                return self.get_conversation(copy["conversationId"])
        return None

    def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        return self._repo.get_item(*build_key(EntityKind.CONVERSATION, conversation_id))

    def _require_participant(self, conversation_id: str, user_id: str) -> Dict[str, Any]:
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        if user_id not in (conversation.get("participants") or []):
            raise PermissionDenied("You are not a participant in this conversation")
        return conversation

    def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        message_type: str = "TEXT",
        file_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        if message_type not in MESSAGE_TYPES:
            raise ValueError(f"Unknown message type: {message_type}")
        conversation = self._require_participant(conversation_id, sender_id)

        message_id = self._new_id()
        ts = self._clock()
        attributes = {
            "messageId": message_id,
            "conversationId": conversation_id,
            "senderId": sender_id,
            "content": content,
            "type": message_type,
            "fileUrl": file_url,
            "readBy": [sender_id],
        }
        key = build_key(EntityKind.MESSAGE, conversation_id, message_id)
        message = build_item(EntityKind.MESSAGE, key, attributes, ts)
        self._repo.put_item(message)

        summary = {"lastMessageAt": ts, "lastMessagePreview": make_preview(content)}
        newer_or_equal = Attr("lastMessageAt").not_exists() | Attr("lastMessageAt").lte(ts)
        try:
            self._repo.update_item(
                *build_key(EntityKind.CONVERSATION, conversation_id),
                summary,
                condition=Attr(PK).exists() & newer_or_equal,
            )
        except PreconditionFailed as exc:
            if self.get_conversation(conversation_id) is None:
                raise NotFoundError(f"Conversation {conversation_id} not found") from exc
            logger.info("Conversation %s already holds a newer message than %s", conversation_id, message_id)
        self._denorm.refresh_fan_out_conversation(conversation, summary)
        return message

    def list_conversations(self, user_id: str, limit: int = 20, cursor: Optional[str] = None) -> QueryPage:
        """The user's conversations, newest first."""
        return self._repo.query_by_index(
            GSI1.name, make_pk_participant(user_id), "CONVERSATION#", limit=limit, ascending=False, cursor=cursor
        )

    def list_messages(
        self, conversation_id: str, user_id: str, limit: int = 50, cursor: Optional[str] = None
    ) -> QueryPage:
        """Messages newest first; callers reverse a page for chronological display."""
        self._require_participant(conversation_id, user_id)
        return self._repo.query_by_partition(
            make_pk_conversation(conversation_id), "MESSAGE#", limit=limit, cursor=cursor, ascending=False
        )

    def mark_read(self, conversation_id: str, user_id: str) -> int:
        """Add ``user_id`` to ``readBy`` on every message they have not read; returns how many."""
        self._require_participant(conversation_id, user_id)
        count = 0
        for message in self._repo.iter_partition(make_pk_conversation(conversation_id), "MESSAGE#"):
            read_by = list(message.get("readBy") or [])
            if user_id in read_by:
                continue
            self._repo.update_item(message[PK], message[SK], {"readBy": read_by + [user_id]})
            count += 1
        logger.info("Marked %d messages read in %s for %s", count, conversation_id, user_id)
        return count
