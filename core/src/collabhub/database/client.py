from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

import boto3  # type: ignore[import]

from .batch import MAX_BATCH_GET, MAX_BATCH_WRITE, BatchCoordinator
from .denormalization import DenormalizationManager
from .pagination import Paginator
from .repository import DynamoRepository


@dataclass(frozen=True)
class DynamoConfig:
    """Immutable configuration for DynamoDB access.

    Attributes
    ----------
    table_name: str
        The DynamoDB table name to use.
    region: Optional[str]
        The AWS region; if omitted, will fall back to environment or SDK defaults.
    endpoint_url: Optional[str]
        Alternative endpoint, eg DynamoDB Local.
    batch_get_limit / batch_write_limit: int
        Per-call window sizes for batch reads and writes.
    max_unprocessed_rounds: int
        Follow-up calls allowed for entries the backend left unprocessed.
    cursor_secret: Optional[str]
        Key used to sign pagination cursors; must be shared by every instance.
    """

    table_name: str
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    batch_get_limit: int = MAX_BATCH_GET
    batch_write_limit: int = MAX_BATCH_WRITE
    max_unprocessed_rounds: int = 3
    cursor_secret: Optional[str] = None

    @classmethod
    def from_env(cls, default_table: str = "collabhub-main") -> "DynamoConfig":
        return cls(
            table_name=os.getenv("TABLE_NAME", default_table),
            region=_resolve_region(None),
            endpoint_url=os.getenv("DYNAMODB_ENDPOINT_URL") or None,
            batch_get_limit=int(os.getenv("BATCH_GET_LIMIT", str(MAX_BATCH_GET))),
            batch_write_limit=int(os.getenv("BATCH_WRITE_LIMIT", str(MAX_BATCH_WRITE))),
            max_unprocessed_rounds=int(os.getenv("BATCH_MAX_UNPROCESSED_ROUNDS", "3")),
            cursor_secret=os.getenv("CURSOR_SECRET") or None,
        )


def _resolve_region(explicit_region: Optional[str]) -> Optional[str]:
    # Prefer explicit, then env, otherwise let boto3 resolve (eg, IAM role default)
    return explicit_region or os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION")


def get_dynamo_resource(config: DynamoConfig):
    """Create the DynamoDB service resource (needed for batch calls)."""
    region = _resolve_region(config.region)
    return boto3.resource("dynamodb", region_name=region, endpoint_url=config.endpoint_url)


def get_dynamo_table(config: DynamoConfig, resource=None):
    """Create and return a DynamoDB Table resource.

    Notes
    -----
    The AWS Lambda Python runtime ships with boto3. In local environments,
    ensure AWS credentials and region are configured or passed via env.
    """
    resource = resource or get_dynamo_resource(config)
    return resource.Table(config.table_name)


@dataclass(frozen=True)
class DataStore:
    """The data-access collaborators a request handler needs, built once per process."""

    repo: DynamoRepository
    batch: BatchCoordinator
    denorm: DenormalizationManager
    paginator: Paginator


def build_store(config: DynamoConfig, resource=None) -> DataStore:
    resource = resource or get_dynamo_resource(config)
    table = get_dynamo_table(config, resource)
    paginator = Paginator(config.cursor_secret)
    repo = DynamoRepository(table, paginator=paginator)
    batch = BatchCoordinator(
        resource,
        config.table_name,
        batch_get_limit=config.batch_get_limit,
        batch_write_limit=config.batch_write_limit,
        max_unprocessed_rounds=config.max_unprocessed_rounds,
    )
    return DataStore(repo=repo, batch=batch, denorm=DenormalizationManager(repo, batch), paginator=paginator)
