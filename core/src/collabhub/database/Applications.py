from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from boto3.dynamodb.conditions import Attr  # type: ignore[import]

from .denormalization import DenormalizationManager
from .exceptions import ConflictError, NotFoundError, PermissionDenied, PreconditionFailed
from .identifiers import generate_id, now_iso
from .keys import (
    GSI1,
    GSI2,
    build_item,
    build_key,
    make_gsi1pk_applicant,
    make_gsi2pk_startup_role,
    make_gsi2sk_application_status,
    with_index_keys,
)
from .repository import DynamoRepository
from .types import EntityKind, QueryPage

logger = logging.getLogger(__name__)

APPLICATION_STATUSES = ("PENDING", "REVIEWING", "SHORTLISTED", "ACCEPTED", "REJECTED", "WITHDRAWN")
WITHDRAWABLE = ("PENDING", "REVIEWING", "SHORTLISTED")
APPLICANT_COUNT = "applicantCount"


class Applications:
    """Service for role applications.

    Keys
    ----
    - pk = APPLICATION#<applicationId>, sk = METADATA
    - gsi1: APPLICANT#<applicantId> / APPLICATION#<applicationId>
    - gsi2: STARTUP#<startupId>#ROLE#<roleId> / STATUS#<status>#<createdAt>

    Each role carries ``applicantCount``; submitting increments it and
    withdrawing decrements it. ``atomic_counters=False`` switches to the
    read-then-write counter, which loses increments under concurrency.
    """

    def __init__(
        self,
        repo: DynamoRepository,
        denorm: DenormalizationManager,
        clock: Callable[[], str] = now_iso,
        id_factory: Callable[[], str] = generate_id,
        atomic_counters: bool = True,
    ) -> None:
        self._repo = repo
        self._denorm = denorm
        self._clock = clock
        self._new_id = id_factory
        self._atomic = atomic_counters

    def create_application(
        self,
        applicant_id: str,
        startup_id: str,
        role_id: str,
        cover_letter: Optional[str] = None,
        resume_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        if self._repo.get_item(*build_key(EntityKind.USER, applicant_id)) is None:
            raise NotFoundError(f"User {applicant_id} not found")
        startup = self._repo.get_item(*build_key(EntityKind.STARTUP, startup_id))
        if not startup or startup.get("status") != "ACTIVE":
            raise NotFoundError(f"Startup {startup_id} not found")
        role_key = build_key(EntityKind.STARTUP_ROLE, startup_id, role_id)
        role = self._repo.get_item(*role_key)
        if not role or not role.get("isOpen"):
            raise NotFoundError(f"Role {role_id} not found or not open")

        application_id = self._new_id()
        attributes = {
            "applicationId": application_id,
            "startupId": startup_id,
            "roleId": role_id,
            "applicantId": applicant_id,
            "coverLetter": cover_letter,
            "resumeUrl": resume_url,
            "status": "PENDING",
        }
        key = build_key(EntityKind.APPLICATION, application_id)
        item = build_item(EntityKind.APPLICATION, key, attributes, self._clock())
        self._repo.put_item(item)
        self._denorm.increment_counter(role_key.pk, role_key.sk, APPLICANT_COUNT, atomic=self._atomic)
        logger.info("Application %s submitted for %s/%s", application_id, startup_id, role_id)
        return item

    def get_application(self, application_id: str) -> Optional[Dict[str, Any]]:
        return self._repo.get_item(*build_key(EntityKind.APPLICATION, application_id))

    def update_status(
        self,
        application_id: str,
        status: str,
        notes: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Move an application to ``status``.

        The write only lands if the application still has ``expected_status``
        (default: the status read just before the write).
        """
        if status not in APPLICATION_STATUSES:
            raise ValueError(f"Unknown status: {status}")
        key = build_key(EntityKind.APPLICATION, application_id)
        current = self._repo.get_item(*key)
        if current is None:
            raise NotFoundError(f"Application {application_id} not found")
        previous = expected_status or current.get("status")

        patch: Dict[str, Any] = {"status": status}
        if notes is not None:
            patch["founderNotes"] = notes
        patch = with_index_keys(EntityKind.APPLICATION, current, patch)
        try:
            return self._repo.update_item(*key, patch, condition=Attr("status").eq(previous))
        except PreconditionFailed as exc:
            raise ConflictError(f"Application {application_id} is no longer {previous}") from exc

    def withdraw(self, application_id: str, applicant_id: str) -> Dict[str, Any]:
        key = build_key(EntityKind.APPLICATION, application_id)
        current = self._repo.get_item(*key)
        if current is None:
            raise NotFoundError(f"Application {application_id} not found")
        if current.get("applicantId") != applicant_id:
            raise PermissionDenied("Only the applicant can withdraw this application")
        if current.get("status") not in WITHDRAWABLE:
            raise ConflictError(f"Application {application_id} is {current.get('status')}")

        patch = with_index_keys(EntityKind.APPLICATION, current, {"status": "WITHDRAWN"})
        try:
            updated = self._repo.update_item(*key, patch, condition=Attr("status").is_in(list(WITHDRAWABLE)))
        except PreconditionFailed as exc:
            raise ConflictError(f"Application {application_id} can no longer be withdrawn") from exc

        role_key = build_key(EntityKind.STARTUP_ROLE, current["startupId"], current["roleId"])
        self._denorm.decrement_counter(role_key.pk, role_key.sk, APPLICANT_COUNT, atomic=self._atomic)
        return updated

    def list_for_role(
        self,
        startup_id: str,
        role_id: str,
        status: Optional[str] = None,
        limit: int = 20,
        cursor: Optional[str] = None,
    ) -> QueryPage:
        prefix = make_gsi2sk_application_status(status) if status else None
        return self._repo.query_by_index(
            GSI2.name, make_gsi2pk_startup_role(startup_id, role_id), prefix, limit=limit, cursor=cursor
        )

    def list_for_applicant(self, applicant_id: str, limit: int = 20, cursor: Optional[str] = None) -> QueryPage:
        """The applicant's applications, newest first."""
        return self._repo.query_by_index(
            GSI1.name, make_gsi1pk_applicant(applicant_id), limit=limit, ascending=False, cursor=cursor
        )
