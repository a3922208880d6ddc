from __future__ import annotations

from datetime import date
from typing import Any, Callable, Dict, Optional, Union

from .identifiers import generate_id, now_iso
from .keys import GSI1, SYSTEM_ACTOR, UPDATED_AT, build_item, build_key, make_pk_audit_day, make_pk_user
from .repository import DynamoRepository
from .types import EntityKind, QueryPage


class AuditLogs:
    """Append-only audit trail.

    Keys
    ----
    - pk = AUDIT#<yyyy-mm-dd>, sk = <timestamp>#<auditId>
    - gsi1: USER#<userId> / AUDIT#<timestamp>, omitted for SYSTEM entries
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

    def record(
        self,
        action: str,
        resource_type: str,
        resource_id: str,
        user_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        ts = self._clock()
        audit_id = self._new_id()
        attributes = {
            "auditId": audit_id,
            "userId": user_id or SYSTEM_ACTOR,
            "action": action,
            "resourceType": resource_type,
            "resourceId": resource_id,
            "metadata": metadata or {},
            "ipAddress": ip_address,
            "userAgent": user_agent,
        }
        item = build_item(EntityKind.AUDIT_LOG, build_key(EntityKind.AUDIT_LOG, ts, audit_id), attributes, ts)
        # entries are never updated
        item.pop(UPDATED_AT, None)
        self._repo.put_item(item)
        return item

    def list_for_day(
        self, day: Union[str, date], limit: int = 50, cursor: Optional[str] = None
    ) -> QueryPage:
        """Entries of one UTC day, newest first."""
        return self._repo.query_by_partition(make_pk_audit_day(day), limit=limit, cursor=cursor, ascending=False)

    def list_for_user(self, user_id: str, limit: int = 50, cursor: Optional[str] = None) -> QueryPage:
        return self._repo.query_by_index(
            GSI1.name, make_pk_user(user_id), "AUDIT#", limit=limit, ascending=False, cursor=cursor
        )
