from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from boto3.dynamodb.conditions import ConditionBase, Key  # type: ignore[import]
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import]

from .exceptions import PreconditionFailed, RepositoryError, StoreUnavailable, Throttled
from .identifiers import now_iso
from .keys import PK, SK, TABLE_KEY_ATTRIBUTES, UPDATED_AT, index_spec
from .pagination import Paginator
from .types import QueryPage

logger = logging.getLogger(__name__)

_THROTTLE_CODES = frozenset(
    {"ProvisionedThroughputExceededException", "ThrottlingException", "RequestLimitExceeded"}
)


def translate_error(exc: Union[BotoCoreError, ClientError], action: str) -> RepositoryError:
    """Map a botocore failure onto the repository error taxonomy."""
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        if code == "ConditionalCheckFailedException":
            return PreconditionFailed(f"Failed to {action}: condition not met")
        if code in _THROTTLE_CODES:
            return Throttled(f"Failed to {action}: {exc}")
    return StoreUnavailable(f"Failed to {action}: {exc}")


def to_dynamo(value: Any) -> Any:
    """Deep-convert floats to Decimal; DynamoDB does not accept native floats."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, list):
        return [to_dynamo(v) for v in value]
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    return value


class DynamoRepository:
    """High-level repository encapsulating DynamoDB CRUD and queries.

    This repository assumes the following table schema and GSIs exist:
    - Primary: PK (HASH), SK (RANGE)
    - GSI1:    GSI1PK (HASH), GSI1SK (RANGE)
    - GSI2:    GSI2PK (HASH), GSI2SK (RANGE)
    - GSI3:    entityType (HASH), createdAt (RANGE)
    - GSI4:    email (HASH)

    All range and index queries are prefix-only (begins_with on the sort key).
    Paged queries return a ``QueryPage`` whose ``next_cursor`` is set only when
    more items exist.
    """

    def __init__(
        self,
        table,
        paginator: Optional[Paginator] = None,
        clock: Callable[[], str] = now_iso,
    ) -> None:
        self._table = table
        self._paginator = paginator or Paginator()
        self._clock = clock

    @property
    def paginator(self) -> Paginator:
        return self._paginator

    # ---------- CRUD ----------
    def put_item(self, item: Dict[str, Any]) -> None:
        try:
            self._table.put_item(Item=to_dynamo(item))
        except (BotoCoreError, ClientError) as exc:
            raise translate_error(exc, "put item") from exc
        logger.debug("Stored item pk=%s sk=%s", item.get(PK), item.get(SK))

    def get_item(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        try:
            res = self._table.get_item(Key={PK: pk, SK: sk})
        except (BotoCoreError, ClientError) as exc:
            raise translate_error(exc, "get item") from exc
        return res.get("Item")

    def delete_item(self, pk: str, sk: str) -> None:
        try:
            self._table.delete_item(Key={PK: pk, SK: sk})
        except (BotoCoreError, ClientError) as exc:
            raise translate_error(exc, "delete item") from exc
        logger.debug("Deleted item pk=%s sk=%s", pk, sk)

    def update_item(
        self,
        pk: str,
        sk: str,
        patch: Mapping[str, Any],
        condition: Optional[ConditionBase] = None,
    ) -> Dict[str, Any]:
        """Merge ``patch`` into the item and refresh ``updatedAt``.

        Attributes set to None are removed. Without ``condition`` the write is
        blind (no read, no version check). Returns the new item image.
        """
        set_parts: List[str] = []
        remove_parts: List[str] = []
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        for index, (attr, value) in enumerate(patch.items()):
            if attr in TABLE_KEY_ATTRIBUTES:
                raise ValueError(f"Primary key attribute {attr!r} cannot be updated")
            if attr == UPDATED_AT:
                continue
            name_key = f"#attr{index}"
            names[name_key] = attr
            if value is None:
                remove_parts.append(name_key)
            else:
                value_key = f":val{index}"
                set_parts.append(f"{name_key} = {value_key}")
                values[value_key] = to_dynamo(value)

        # Always update updatedAt
        set_parts.append("#updatedAt = :updatedAt")
        names["#updatedAt"] = UPDATED_AT
        values[":updatedAt"] = self._clock()

        update_expression = "SET " + ", ".join(set_parts)
        if remove_parts:
            update_expression += " REMOVE " + ", ".join(remove_parts)

        params: Dict[str, Any] = {
            "Key": {PK: pk, SK: sk},
            "UpdateExpression": update_expression,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
            "ReturnValues": "ALL_NEW",
        }
        if condition is not None:
            params["ConditionExpression"] = condition
        try:
            res = self._table.update_item(**params)
        except (BotoCoreError, ClientError) as exc:
            raise translate_error(exc, "update item") from exc
        logger.debug("Updated item pk=%s sk=%s attrs=%s", pk, sk, sorted(patch))
        return res.get("Attributes", {})

    def add_to_attribute(
        self,
        pk: str,
        sk: str,
        attribute: str,
        amount: Union[int, Decimal] = 1,
        condition: Optional[ConditionBase] = None,
    ) -> Any:
        """Atomically add ``amount`` to a numeric attribute and return the new value."""
        params: Dict[str, Any] = {
            "Key": {PK: pk, SK: sk},
            "UpdateExpression": "ADD #attr :amount SET #updatedAt = :updatedAt",
            "ExpressionAttributeNames": {"#attr": attribute, "#updatedAt": UPDATED_AT},
            "ExpressionAttributeValues": {":amount": amount, ":updatedAt": self._clock()},
            "ReturnValues": "UPDATED_NEW",
        }
        if condition is not None:
            params["ConditionExpression"] = condition
        try:
            res = self._table.update_item(**params)
        except (BotoCoreError, ClientError) as exc:
            raise translate_error(exc, f"add to {attribute}") from exc
        return res.get("Attributes", {}).get(attribute)

    # ---------- Query helpers ----------
    def query_by_partition(
        self,
        pk: str,
        sort_key_prefix: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        ascending: bool = True,
    ) -> QueryPage:
        """Query items sharing a partition key.

        Parameters
        ----------
        pk: str
            The prebuilt partition key (eg, STARTUP#abc).
        sort_key_prefix: Optional[str]
            If provided, applies begins_with to SK (eg, ROLE#).
        limit: Optional[int]
            Max items to return; None reads every page.
        cursor: Optional[str]
            ``next_cursor`` of a previous page of the same query.
        ascending: bool
            Sort order on the sort key.
        """
        key_condition = Key(PK).eq(pk)
        if sort_key_prefix:
            key_condition &= Key(SK).begins_with(sort_key_prefix)
        params: Dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": ascending,
        }
        scope = self._scope("TABLE", pk, sort_key_prefix, ascending)
        return self._paged_query(params, limit, cursor, scope, TABLE_KEY_ATTRIBUTES, "query partition")

    def query_by_index(
        self,
        index_name: str,
        partition_value: str,
        sort_key_prefix: Optional[str] = None,
        limit: Optional[int] = None,
        ascending: bool = True,
        cursor: Optional[str] = None,
    ) -> QueryPage:
        """Query a secondary index by its partition value.

        Items without the index attributes never appear (sparse indexes).
        ``ascending=False`` gives most-recent-first feeds on time-ordered keys.
        """
        spec = index_spec(index_name)
        key_condition = Key(spec.partition_attr).eq(partition_value)
        if sort_key_prefix:
            if not spec.sort_attr:
                raise ValueError(f"Index {index_name} has no sort key")
            key_condition &= Key(spec.sort_attr).begins_with(sort_key_prefix)
        params: Dict[str, Any] = {
            "IndexName": spec.name,
            "KeyConditionExpression": key_condition,
            "ScanIndexForward": ascending,
        }
        scope = self._scope(spec.name, partition_value, sort_key_prefix, ascending)
        return self._paged_query(params, limit, cursor, scope, spec.key_attributes, f"query {spec.name}")

    def iter_index(
        self,
        index_name: str,
        partition_value: str,
        sort_key_prefix: Optional[str] = None,
        ascending: bool = True,
        page_size: int = 100,
    ) -> Iterator[Dict[str, Any]]:
        """Yield every item of an index query, one page at a time."""
        cursor: Optional[str] = None
        while True:
            page = self.query_by_index(
                index_name,
                partition_value,
                sort_key_prefix=sort_key_prefix,
                limit=page_size,
                ascending=ascending,
                cursor=cursor,
            )
            yield from page.items
            if not page.next_cursor:
                return
            cursor = page.next_cursor

    def iter_partition(
        self,
        pk: str,
        sort_key_prefix: Optional[str] = None,
        ascending: bool = True,
        page_size: int = 100,
    ) -> Iterator[Dict[str, Any]]:
        """Yield every item of a partition query, one page at a time."""
        cursor: Optional[str] = None
        while True:
            page = self.query_by_partition(
                pk, sort_key_prefix=sort_key_prefix, limit=page_size, cursor=cursor, ascending=ascending
            )
            yield from page.items
            if not page.next_cursor:
                return
            cursor = page.next_cursor

    @staticmethod
    def _scope(source: str, partition_value: str, prefix: Optional[str], ascending: bool) -> str:
        return json.dumps([source, partition_value, prefix or "", ascending])

    def _paged_query(
        self,
        params: Dict[str, Any],
        limit: Optional[int],
        cursor: Optional[str],
        scope: str,
        key_attributes: Sequence[str],
        action: str,
    ) -> QueryPage:
        if limit is not None and limit <= 0:
            raise ValueError("limit must be positive")
        if cursor:
            params["ExclusiveStartKey"] = self._paginator.decode(cursor, scope)

        # One extra item tells whether another page exists.
        target = None if limit is None else limit + 1
        items: List[Dict[str, Any]] = []
        try:
            while True:
                if target is not None:
                    params["Limit"] = target - len(items)
                page = self._table.query(**params)
                items.extend(page.get("Items", []))
                last_evaluated_key = page.get("LastEvaluatedKey")
                if not last_evaluated_key or (target is not None and len(items) >= target):
                    break
                params["ExclusiveStartKey"] = last_evaluated_key
        except (BotoCoreError, ClientError) as exc:
            raise translate_error(exc, action) from exc

        logger.debug("Query %s returned %d items", action, len(items))
        if limit is None or len(items) <= limit:
            return QueryPage(items, None)
        items = items[:limit]
        return QueryPage(items, self._paginator.encode(items[-1], key_attributes, scope))
