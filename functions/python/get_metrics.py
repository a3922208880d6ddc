"""
Lambda: Admin platform metrics.

Returns user, startup, application and revenue aggregates computed by
``PlatformMetrics``. Only callers whose Cognito claims carry
``custom:role = ADMIN`` are served.

Environment
-----------
- TABLE_NAME (optional, default collabhub-main): the single table
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

from collabhub.analytics import PlatformMetrics
from collabhub.database import DynamoConfig, build_store


logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _response(status: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def _is_admin(event: Dict[str, Any]) -> bool:
    claims = ((event.get("requestContext") or {}).get("authorizer") or {}).get("claims") or {}
    return claims.get("custom:role") == "ADMIN"


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    if not _is_admin(event):
        return _response(403, {"error": "Admin access required"})
    try:
        store = build_store(DynamoConfig.from_env())
        metrics = PlatformMetrics(store.repo).collect()
        return _response(200, metrics)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to get metrics: %s", exc)
        return _response(500, {"error": "Failed to retrieve metrics"})
