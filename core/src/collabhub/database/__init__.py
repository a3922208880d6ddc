# pyright: reportMissingTypeStubs=false
"""Database access layer package.

Exposes the single-table repository, batch and denormalization helpers and
the entity services built on them.
"""
from .client import DataStore, DynamoConfig, build_store, get_dynamo_resource, get_dynamo_table
from .keys import (
    GSI1,
    GSI2,
    GSI3,
    GSI4,
    INDEXES,
    ItemKey,
    build_index_keys,
    build_item,
    build_key,
    parse_key,
    with_index_keys,
)
from .repository import DynamoRepository
from .batch import BatchCoordinator
from .pagination import Paginator
from .denormalization import DenormalizationManager
from .exceptions import (
    BatchPartialFailure,
    ConflictError,
    InvalidCursor,
    NotFoundError,
    PermissionDenied,
    PreconditionFailed,
    RepositoryError,
    ServiceError,
    StoreUnavailable,
    Throttled,
)
from .types import EntityKind, QueryPage
from .Users import Users
from .Startups import Startups
from .Applications import Applications
from .Conversations import Conversations
from .Notifications import Notifications
from .Subscriptions import Subscriptions
from .AuditLogs import AuditLogs

__all__ = [
    "DataStore",
    "DynamoConfig",
    "build_store",
    "get_dynamo_resource",
    "get_dynamo_table",
    "DynamoRepository",
    "BatchCoordinator",
    "Paginator",
    "DenormalizationManager",
    "EntityKind",
    "QueryPage",
    "ItemKey",
    "GSI1",
    "GSI2",
    "GSI3",
    "GSI4",
    "INDEXES",
    "build_key",
    "build_index_keys",
    "build_item",
    "with_index_keys",
    "parse_key",
    "RepositoryError",
    "StoreUnavailable",
    "Throttled",
    "PreconditionFailed",
    "InvalidCursor",
    "BatchPartialFailure",
    "ServiceError",
    "NotFoundError",
    "ConflictError",
    "PermissionDenied",
    "Users",
    "Startups",
    "Applications",
    "Conversations",
    "Notifications",
    "Subscriptions",
    "AuditLogs",
]
