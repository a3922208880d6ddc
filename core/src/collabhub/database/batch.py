from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Sequence, Tuple, TypeVar

from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import]

from .exceptions import BatchPartialFailure
from .keys import PK, SK
from .repository import to_dynamo, translate_error

logger = logging.getLogger(__name__)

# Backend per-call ceilings
MAX_BATCH_GET = 100
MAX_BATCH_WRITE = 25

T = TypeVar("T")


def _chunk(seq: Sequence[T], size: int) -> List[Sequence[T]]:
    return [seq[i : i + size] for i in range(0, len(seq), size)]


class BatchCoordinator:
    """Split batch reads and writes into backend-sized windows.

    Windows are issued sequentially, one ``batch_*_item`` call each. Entries the
    backend reports as unprocessed are resubmitted within the same window for at
    most ``max_unprocessed_rounds`` extra calls.

    Backend errors from reads, and from a write before anything was applied,
    surface as ``Throttled`` / ``StoreUnavailable``. A write failing after earlier
    entries landed, or entries still unprocessed after the extra rounds, raise
    ``BatchPartialFailure``; windows already written are not rolled back, so
    writes are at-least-once and non-atomic across windows.
    """

    def __init__(
        self,
        resource,
        table_name: str,
        batch_get_limit: int = MAX_BATCH_GET,
        batch_write_limit: int = MAX_BATCH_WRITE,
        max_unprocessed_rounds: int = 3,
    ) -> None:
        if not 0 < batch_get_limit <= MAX_BATCH_GET:
            raise ValueError(f"batch_get_limit must be between 1 and {MAX_BATCH_GET}")
        if not 0 < batch_write_limit <= MAX_BATCH_WRITE:
            raise ValueError(f"batch_write_limit must be between 1 and {MAX_BATCH_WRITE}")
        self._resource = resource
        self._table_name = table_name
        self._get_limit = batch_get_limit
        self._write_limit = batch_write_limit
        self._max_unprocessed_rounds = max_unprocessed_rounds

    def batch_get(self, keys: Iterable[Tuple[str, str]]) -> List[Dict[str, Any]]:
        """Fetch items by (pk, sk); results follow input order, missing keys are omitted."""
        unique = list(dict.fromkeys((pk, sk) for pk, sk in keys))
        if not unique:
            return []

        windows = _chunk(unique, self._get_limit)
        found: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for index, window in enumerate(windows):
            pending: List[Dict[str, Any]] = [{PK: pk, SK: sk} for pk, sk in window]
            rounds = 0
            while pending:
                try:
                    response = self._resource.batch_get_item(
                        RequestItems={self._table_name: {"Keys": pending}}
                    )
                except (BotoCoreError, ClientError) as exc:
                    raise translate_error(exc, "batch get items") from exc

                for item in response.get("Responses", {}).get(self._table_name, []):
                    found[(item[PK], item[SK])] = item
                pending = response.get("UnprocessedKeys", {}).get(self._table_name, {}).get("Keys", [])
                if pending:
                    rounds += 1
                    if rounds > self._max_unprocessed_rounds:
                        raise BatchPartialFailure(
                            f"Batch get left {len(pending)} keys unprocessed in window {index + 1}/{len(windows)}",
                            completed_windows=index,
                            total_windows=len(windows),
                            unprocessed=pending,
                        )
                    logger.warning("Resubmitting %d unprocessed keys (round %d)", len(pending), rounds)

        logger.debug("Batch get: %d requested, %d found, %d calls", len(unique), len(found), len(windows))
        return [found[key] for key in unique if key in found]

    def batch_write(self, items: Iterable[Dict[str, Any]]) -> None:
        """Put items in windows; a repeated key keeps only its last occurrence."""
        deduped: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for item in items:
            deduped[(item[PK], item[SK])] = to_dynamo(item)
        if not deduped:
            return

        windows = _chunk(list(deduped.values()), self._write_limit)
        for index, window in enumerate(windows):
            pending: List[Dict[str, Any]] = [{"PutRequest": {"Item": item}} for item in window]
            rounds = 0
            while pending:
                try:
                    response = self._resource.batch_write_item(RequestItems={self._table_name: pending})
                except (BotoCoreError, ClientError) as exc:
                    if index == 0 and rounds == 0:
                        # nothing applied yet
                        raise translate_error(exc, "batch write items") from exc
                    raise BatchPartialFailure(
                        f"Batch write failed in window {index + 1}/{len(windows)}",
                        completed_windows=index,
                        total_windows=len(windows),
                        unprocessed=pending,
                    ) from translate_error(exc, "batch write items")

                pending = response.get("UnprocessedItems", {}).get(self._table_name, [])
                if pending:
                    rounds += 1
                    if rounds > self._max_unprocessed_rounds:
                        raise BatchPartialFailure(
                            f"Batch write left {len(pending)} items unprocessed in window {index + 1}/{len(windows)}",
                            completed_windows=index,
                            total_windows=len(windows),
                            unprocessed=pending,
                        )
                    logger.warning("Resubmitting %d unprocessed writes (round %d)", len(pending), rounds)

        logger.debug("Batch wrote %d items in %d windows", len(deduped), len(windows))
