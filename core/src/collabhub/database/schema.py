"""Table definition for the single-table layout.

Used to provision local tables (DynamoDB Local, tests); production tables are
declared by the infrastructure stack with the same keys and indexes.
"""
from __future__ import annotations

from typing import Any, Dict, List

from .keys import INDEXES, PK, SK


def get_table_definition(table_name: str) -> Dict[str, Any]:
    attributes = {PK, SK}
    indexes: List[Dict[str, Any]] = []
    for spec in INDEXES.values():
        key_schema = [{"AttributeName": spec.partition_attr, "KeyType": "HASH"}]
        attributes.add(spec.partition_attr)
        if spec.sort_attr:
            key_schema.append({"AttributeName": spec.sort_attr, "KeyType": "RANGE"})
            attributes.add(spec.sort_attr)
        indexes.append(
            {
                "IndexName": spec.name,
                "KeySchema": key_schema,
                "Projection": {"ProjectionType": "ALL"},
            }
        )
    return {
        "TableName": table_name,
        "KeySchema": [
            {"AttributeName": PK, "KeyType": "HASH"},
            {"AttributeName": SK, "KeyType": "RANGE"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": "S"} for name in sorted(attributes)
        ],
        "GlobalSecondaryIndexes": indexes,
        "BillingMode": "PAY_PER_REQUEST",
    }


def create_table(resource, table_name: str):
    """Create the table and wait until it is active."""
    table = resource.create_table(**get_table_definition(table_name))
    table.wait_until_exists()
    return table
