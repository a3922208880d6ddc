from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from boto3.dynamodb.conditions import Attr  # type: ignore[import]

from .exceptions import ConflictError, NotFoundError, PreconditionFailed
from .identifiers import now_iso
from .keys import GSI1, GSI2, GSI3, GSI4, PK, build_item, build_key, make_gsi1pk_role, make_gsi2pk_user_status, with_index_keys
from .repository import DynamoRepository
from .types import EntityKind, QueryPage

ROLES = ("FOUNDER", "TALENT", "INVESTOR", "ADMIN")
USER_STATUSES = ("ACTIVE", "BANNED", "PENDING_VERIFICATION")
PROFILE_FIELDS = frozenset({"firstName", "lastName", "avatarUrl", "bio", "skills", "linkedinUrl"})


class Users:
    """Service for user profiles.

    Keys
    ----
    - pk = USER#<userId>, sk = PROFILE
    - gsi1: role listing (GSI1PK = ROLE#<role>, GSI1SK = USER#<userId>)
    - gsi2: status listing (GSI2PK = STATUS#<status>, GSI2SK = USER#<userId>)
    - gsi4: lookup by ``email``
    """

    def __init__(self, repo: DynamoRepository, clock: Callable[[], str] = now_iso) -> None:
        self._repo = repo
        self._clock = clock

    def create_user(
        self,
        user_id: str,
        email: str,
        role: str,
        first_name: str,
        last_name: str,
        **profile: Any,
    ) -> Dict[str, Any]:
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        unknown = set(profile) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {sorted(unknown)}")

        attributes: Dict[str, Any] = {
            "userId": user_id,
            "email": email.strip().lower(),
            "role": role,
            "firstName": first_name,
            "lastName": last_name,
            "status": "ACTIVE",
            "subscriptionStatus": "NONE",
            "subscriptionTier": "FREE",
            **profile,
        }
        item = build_item(EntityKind.USER, build_key(EntityKind.USER, user_id), attributes, self._clock())
        self._repo.put_item(item)
        return item

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._repo.get_item(*build_key(EntityKind.USER, user_id))

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        page = self._repo.query_by_index(GSI4.name, email.strip().lower(), limit=1)
        return page.items[0] if page.items else None

    def update_profile(self, user_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(patch) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
        try:
            return self._repo.update_item(
                *build_key(EntityKind.USER, user_id), patch, condition=Attr(PK).exists()
            )
        except PreconditionFailed as exc:
            raise NotFoundError(f"User {user_id} not found") from exc

    def ban_user(self, user_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        return self._set_status(user_id, "BANNED", {"bannedAt": self._clock(), "banReason": reason})

    def unban_user(self, user_id: str) -> Dict[str, Any]:
        return self._set_status(user_id, "ACTIVE", {"bannedAt": None, "banReason": None})

    def _set_status(self, user_id: str, status: str, extra: Dict[str, Any]) -> Dict[str, Any]:
        key = build_key(EntityKind.USER, user_id)
        current = self._repo.get_item(*key)
        if current is None:
            raise NotFoundError(f"User {user_id} not found")
        if current.get("status") == status:
            raise ConflictError(f"User {user_id} is already {status}")

        patch = with_index_keys(EntityKind.USER, current, {"status": status, **extra})
        try:
            return self._repo.update_item(*key, patch, condition=Attr("status").eq(current.get("status")))
        except PreconditionFailed as exc:
            raise ConflictError(f"User {user_id} changed status concurrently") from exc

    def list_by_role(self, role: str, limit: int = 50, cursor: Optional[str] = None) -> QueryPage:
        return self._repo.query_by_index(GSI1.name, make_gsi1pk_role(role), limit=limit, cursor=cursor)

    def list_by_status(self, status: str, limit: int = 50, cursor: Optional[str] = None) -> QueryPage:
        return self._repo.query_by_index(GSI2.name, make_gsi2pk_user_status(status), limit=limit, cursor=cursor)

    def list_all(self, limit: int = 50, cursor: Optional[str] = None) -> QueryPage:
        """All users, newest first."""
        return self._repo.query_by_index(
            GSI3.name, EntityKind.USER.value, limit=limit, ascending=False, cursor=cursor
        )
