from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from boto3.dynamodb.conditions import Attr  # type: ignore[import]

from .exceptions import NotFoundError, PreconditionFailed
from .identifiers import generate_id, now_iso
from .keys import PK, SK, build_item, build_key, make_pk_user
from .repository import DynamoRepository
from .types import EntityKind, QueryPage

NOTIFICATION_PREFIX = "NOTIFICATION#"


class Notifications:
    """In-app notifications stored under the recipient's partition.

    Keys: pk = USER#<userId>, sk = NOTIFICATION#<notificationId>. Ids are
    time-ordered, so a descending partition query is newest first.
    """

    def __init__(
        self,
        repo: DynamoRepository,
        clock: Callable[[], str] = now_iso,
        id_factory: Callable[[], str] = generate_id,
    ) -> None:
        self._repo = repo
        self._clock = clock
        self._new_id = id_factory

    def create_notification(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        body: str,
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        notification_id = self._new_id()
        attributes = {
            "notificationId": notification_id,
            "userId": user_id,
            "type": notification_type,
            "title": title,
            "body": body,
            "relatedEntityType": related_entity_type,
            "relatedEntityId": related_entity_id,
            "isRead": False,
        }
        key = build_key(EntityKind.NOTIFICATION, user_id, notification_id)
        item = build_item(EntityKind.NOTIFICATION, key, attributes, self._clock())
        self._repo.put_item(item)
        return item

    def list_notifications(self, user_id: str, limit: int = 20, cursor: Optional[str] = None) -> QueryPage:
        return self._repo.query_by_partition(
            make_pk_user(user_id), NOTIFICATION_PREFIX, limit=limit, cursor=cursor, ascending=False
        )

    def mark_read(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        key = build_key(EntityKind.NOTIFICATION, user_id, notification_id)
        try:
            return self._repo.update_item(
                *key, {"isRead": True, "readAt": self._clock()}, condition=Attr(PK).exists()
            )
        except PreconditionFailed as exc:
            raise NotFoundError(f"Notification {notification_id} not found") from exc

    def mark_all_read(self, user_id: str) -> int:
        ts = self._clock()
        count = 0
        for item in self._repo.iter_partition(make_pk_user(user_id), NOTIFICATION_PREFIX):
            if item.get("isRead"):
                continue
            self._repo.update_item(item[PK], item[SK], {"isRead": True, "readAt": ts})
            count += 1
        return count

    def unread_count(self, user_id: str) -> int:
        return sum(
            1
            for item in self._repo.iter_partition(make_pk_user(user_id), NOTIFICATION_PREFIX)
            if not item.get("isRead")
        )
