from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from boto3.dynamodb.conditions import Attr  # type: ignore[import]

from .exceptions import ConflictError, NotFoundError, PreconditionFailed
from .identifiers import generate_id, now_iso
from .keys import (
    GSI1,
    GSI2,
    OPEN_ROLES,
    PK,
    build_item,
    build_key,
    make_gsi1pk_founder,
    make_gsi2pk_visibility_status,
    make_pk_startup,
    with_index_keys,
)
from .repository import DynamoRepository
from .types import EntityKind, QueryPage

STARTUP_STATUSES = ("DRAFT", "PENDING_REVIEW", "ACTIVE", "SUSPENDED")
VISIBILITIES = ("PUBLIC", "PRIVATE", "INVESTORS_ONLY")
STAGES = ("IDEA", "MVP", "GROWTH", "SCALE")
ROLE_TYPES = ("FULL_TIME", "PART_TIME", "CONTRACT", "EQUITY_ONLY")

EDITABLE_FIELDS = frozenset(
    {
        "name",
        "tagline",
        "description",
        "industry",
        "stage",
        "fundingGoal",
        "fundingRaised",
        "logoUrl",
        "websiteUrl",
        "pitchDeckUrl",
        "teamSize",
        "location",
        "tags",
    }
)
ROLE_FIELDS = frozenset({"compensation", "equityRange"})


class Startups:
    """Service for startups and their open roles.

    Keys
    ----
    - startup: pk = STARTUP#<startupId>, sk = METADATA
      gsi1 = FOUNDER#<founderId> / STARTUP#<startupId>
      gsi2 = VISIBILITY#<visibility>#STATUS#<status> / STARTUP#<startupId>
    - role: pk = STARTUP#<startupId>, sk = ROLE#<roleId>
      gsi1 = OPEN_ROLES / <createdAt>#<roleId>, present only while the role is open

    Visibility and status form one compound GSI2 key, so changing either is a
    conditional update against the other's current value.
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

    # ---------- Startups ----------
    def create_startup(
        self,
        founder_id: str,
        name: str,
        tagline: str,
        description: str,
        industry: str,
        stage: str,
        visibility: str = "PUBLIC",
        **extra: Any,
    ) -> Dict[str, Any]:
        if stage not in STAGES:
            raise ValueError(f"Unknown stage: {stage}")
        if visibility not in VISIBILITIES:
            raise ValueError(f"Unknown visibility: {visibility}")
        unknown = set(extra) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown startup fields: {sorted(unknown)}")

        startup_id = self._new_id()
        attributes: Dict[str, Any] = {
            "teamSize": 1,
            "tags": [],
            **extra,
            "startupId": startup_id,
            "founderId": founder_id,
            "name": name,
            "tagline": tagline,
            "description": description,
            "industry": industry,
            "stage": stage,
            "visibility": visibility,
            "status": "PENDING_REVIEW",
        }
        item = build_item(EntityKind.STARTUP, build_key(EntityKind.STARTUP, startup_id), attributes, self._clock())
        self._repo.put_item(item)
        return item

    def get_startup(self, startup_id: str) -> Optional[Dict[str, Any]]:
        return self._repo.get_item(*build_key(EntityKind.STARTUP, startup_id))

    def update_startup(self, startup_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
        try:
            return self._repo.update_item(
                *build_key(EntityKind.STARTUP, startup_id), patch, condition=Attr(PK).exists()
            )
        except PreconditionFailed as exc:
            raise NotFoundError(f"Startup {startup_id} not found") from exc

    def update_visibility(self, startup_id: str, visibility: str) -> Dict[str, Any]:
        if visibility not in VISIBILITIES:
            raise ValueError(f"Unknown visibility: {visibility}")
        return self._rekey(startup_id, {"visibility": visibility}, guard="status")

    def moderate(self, startup_id: str, status: str, notes: Optional[str] = None) -> Dict[str, Any]:
        if status not in STARTUP_STATUSES:
            raise ValueError(f"Unknown status: {status}")
        patch: Dict[str, Any] = {"status": status, "moderatedAt": self._clock()}
        if notes is not None:
            patch["moderationNotes"] = notes
        return self._rekey(startup_id, patch, guard="visibility")

    def delete_startup(self, startup_id: str) -> Dict[str, Any]:
        """Soft delete: the startup is suspended, never removed."""
        return self._rekey(startup_id, {"status": "SUSPENDED"}, guard="visibility")

    def _rekey(self, startup_id: str, patch: Dict[str, Any], guard: str) -> Dict[str, Any]:
        key = build_key(EntityKind.STARTUP, startup_id)
        current = self._repo.get_item(*key)
        if current is None:
            raise NotFoundError(f"Startup {startup_id} not found")
        full_patch = with_index_keys(EntityKind.STARTUP, current, patch)
        try:
            return self._repo.update_item(*key, full_patch, condition=Attr(guard).eq(current.get(guard)))
        except PreconditionFailed as exc:
            raise ConflictError(f"Startup {startup_id} {guard} changed concurrently") from exc

    def list_by_founder(self, founder_id: str, limit: int = 20, cursor: Optional[str] = None) -> QueryPage:
        return self._repo.query_by_index(GSI1.name, make_gsi1pk_founder(founder_id), limit=limit, cursor=cursor)

    def list_visible(
        self,
        visibility: str = "PUBLIC",
        status: str = "ACTIVE",
        limit: int = 20,
        cursor: Optional[str] = None,
    ) -> QueryPage:
        return self._repo.query_by_index(
            GSI2.name, make_gsi2pk_visibility_status(visibility, status), limit=limit, cursor=cursor
        )

    # ---------- Roles ----------
    def create_role(
        self,
        startup_id: str,
        title: str,
        description: str,
        role_type: str,
        skills: Optional[List[str]] = None,
        is_open: bool = True,
        **extra: Any,
    ) -> Dict[str, Any]:
        if role_type not in ROLE_TYPES:
            raise ValueError(f"Unknown role type: {role_type}")
        unknown = set(extra) - ROLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown role fields: {sorted(unknown)}")
        if self.get_startup(startup_id) is None:
            raise NotFoundError(f"Startup {startup_id} not found")

        role_id = self._new_id()
        attributes: Dict[str, Any] = {
            **extra,
            "roleId": role_id,
            "startupId": startup_id,
            "title": title,
            "description": description,
            "type": role_type,
            "skills": list(skills or []),
            "isOpen": is_open,
            "applicantCount": 0,
        }
        key = build_key(EntityKind.STARTUP_ROLE, startup_id, role_id)
        item = build_item(EntityKind.STARTUP_ROLE, key, attributes, self._clock())
        self._repo.put_item(item)
        return item

    def get_role(self, startup_id: str, role_id: str) -> Optional[Dict[str, Any]]:
        return self._repo.get_item(*build_key(EntityKind.STARTUP_ROLE, startup_id, role_id))

    def list_roles(self, startup_id: str, limit: Optional[int] = None, cursor: Optional[str] = None) -> QueryPage:
        return self._repo.query_by_partition(make_pk_startup(startup_id), "ROLE#", limit=limit, cursor=cursor)

    def set_role_open(self, startup_id: str, role_id: str, is_open: bool) -> Dict[str, Any]:
        """Open or close a role; closing drops it from the OPEN_ROLES index."""
        key = build_key(EntityKind.STARTUP_ROLE, startup_id, role_id)
        current = self._repo.get_item(*key)
        if current is None:
            raise NotFoundError(f"Role {role_id} not found")
        patch = with_index_keys(EntityKind.STARTUP_ROLE, current, {"isOpen": is_open})
        return self._repo.update_item(*key, patch, condition=Attr(PK).exists())

    def list_open_roles(self, limit: int = 20, cursor: Optional[str] = None) -> QueryPage:
        """Open roles across all startups, newest first."""
        return self._repo.query_by_index(GSI1.name, OPEN_ROLES, limit=limit, ascending=False, cursor=cursor)
