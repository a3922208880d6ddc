"""Derived copies and embedded counters kept alongside authoritative writes.

Fan-out copies are projections of an authoritative item under another
party's partition (eg one conversation pointer per participant). They are
written when the authoritative item is created; later summary changes are
pushed to each copy with an ordered conditional update.

Counters live on a parent item (eg ``applicantCount`` on a role). The
default path is an atomic ADD. ``atomic=False`` keeps the read-current-value
then blind-write behavior, under which two concurrent increments can both
read the same value and one increment is lost.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from boto3.dynamodb.conditions import Attr  # type: ignore[import]

from .batch import BatchCoordinator
from .exceptions import PreconditionFailed
from .keys import (
    CREATED_AT,
    GSI1PK,
    GSI1SK,
    GSI2PK,
    GSI2SK,
    PK,
    SK,
    make_pk_participant,
    make_sk_participant_conversation,
)
from .repository import DynamoRepository

logger = logging.getLogger(__name__)

_INDEX_ATTRIBUTES = (GSI1PK, GSI1SK, GSI2PK, GSI2SK)


class DenormalizationManager:
    def __init__(self, repo: DynamoRepository, batch: BatchCoordinator) -> None:
        self._repo = repo
        self._batch = batch

    # ---------- Fan-out projections ----------
    def fan_out(
        self,
        item: Mapping[str, Any],
        parties: Iterable[str],
        partition_key: Callable[[str], str],
        sort_key: Callable[[str], str],
        index_keys: Optional[Callable[[str], Dict[str, str]]] = None,
    ) -> List[Dict[str, Any]]:
        """Write one copy of ``item`` per party and return the copies.

        The authoritative item's own index keys are not carried over; each copy
        gets only what ``index_keys`` returns for its party.
        """
        copies: List[Dict[str, Any]] = []
        for party in dict.fromkeys(parties):
            copy = {k: v for k, v in item.items() if k not in _INDEX_ATTRIBUTES}
            copy[PK] = partition_key(party)
            copy[SK] = sort_key(party)
            if index_keys is not None:
                copy.update(index_keys(party))
            copies.append(copy)
        self._batch.batch_write(copies)
        logger.info("Fanned out %s/%s to %d parties", item.get(PK), item.get(SK), len(copies))
        return copies

    def fan_out_conversation(self, conversation: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """Write the per-participant pointers of a conversation.

        Copies sit under PARTICIPANT#<user> / CONVERSATION#<createdAt>#<id> and are
        mirrored into GSI1 for "my conversations" feeds. Calling this again with
        the latest authoritative image refreshes every copy.
        """
        created_at = conversation[CREATED_AT]
        conversation_id = conversation["conversationId"]

        def _sk(_user_id: str) -> str:
            return make_sk_participant_conversation(created_at, conversation_id)

        def _index(user_id: str) -> Dict[str, str]:
            return {GSI1PK: make_pk_participant(user_id), GSI1SK: _sk(user_id)}

        return self.fan_out(conversation, conversation["participants"], make_pk_participant, _sk, _index)

    def refresh_fan_out_conversation(
        self,
        conversation: Mapping[str, Any],
        summary: Mapping[str, Any],
        order_attribute: str = "lastMessageAt",
    ) -> List[Dict[str, Any]]:
        """Apply ``summary`` to every existing participant copy and return the new images.

        When ``summary`` carries ``order_attribute``, a copy already holding a
        later value is left alone, so concurrent refreshes converge on the newest
        summary whatever order they land in.
        """
        sk = make_sk_participant_conversation(conversation[CREATED_AT], conversation["conversationId"])
        condition = Attr(PK).exists()
        marker = summary.get(order_attribute)
        if marker is not None:
            condition = condition & (Attr(order_attribute).not_exists() | Attr(order_attribute).lte(marker))

        refreshed: List[Dict[str, Any]] = []
        for user_id in dict.fromkeys(conversation["participants"]):
            pk = make_pk_participant(user_id)
            try:
                refreshed.append(self._repo.update_item(pk, sk, summary, condition=condition))
            except PreconditionFailed:
                logger.info("Copy %s/%s missing or newer than %s; skipped", pk, sk, marker)
        return refreshed

    # ---------- Embedded counters ----------
    def increment_counter(
        self, pk: str, sk: str, attribute: str, amount: int = 1, atomic: bool = True
    ) -> Any:
        """Add ``amount`` to a counter on an existing parent and return the new value.

        Raises PreconditionFailed when the parent item does not exist.
        """
        if atomic:
            return self._repo.add_to_attribute(pk, sk, attribute, amount, condition=Attr(PK).exists())

        current = self._repo.get_item(pk, sk)
        if current is None:
            raise PreconditionFailed(f"Counter parent {pk}/{sk} does not exist")
        value = (current.get(attribute) or 0) + amount
        self._repo.update_item(pk, sk, {attribute: value})
        return value

    def decrement_counter(
        self, pk: str, sk: str, attribute: str, amount: int = 1, atomic: bool = True
    ) -> Any:
        """Subtract ``amount`` unless that would take the counter below zero.

        Returns the new value, or None when the counter (or its parent) was left
        untouched.
        """
        if atomic:
            try:
                return self._repo.add_to_attribute(
                    pk, sk, attribute, -amount, condition=Attr(attribute).gte(amount)
                )
            except PreconditionFailed:
                logger.info("Counter %s on %s/%s not decremented: below %d", attribute, pk, sk, amount)
                return None

        current = self._repo.get_item(pk, sk)
        if current is None or (current.get(attribute) or 0) < amount:
            return None
        value = current[attribute] - amount
        self._repo.update_item(pk, sk, {attribute: value})
        return value
