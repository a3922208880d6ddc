"""
Lambda: Audit worker (SQS batch of EventBridge events -> audit log items).

High-level behavior
-------------------
- Each SQS record body is an EventBridge event (``source``, ``detail-type``,
  ``detail``); ``detail`` may arrive as a JSON string.
- The audited resource is derived from the event source or the ids present in
  the detail.
- One AUDIT#<day> item is appended per record. Records that fail are reported
  back through ``batchItemFailures`` so SQS redelivers only those.

Environment
-----------
- TABLE_NAME (optional, default collabhub-main): the single table
- CURSOR_SECRET, DYNAMODB_ENDPOINT_URL, AWS_REGION: see DynamoConfig.from_env
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Tuple

from collabhub.database import AuditLogs, DynamoConfig, build_store


logger = logging.getLogger()
logger.setLevel(logging.INFO)

DETAIL_LIMIT = 1000


def resource_of(source: str, detail: Mapping[str, Any]) -> Tuple[str, str]:
    """Return (resourceType, resourceId) for an event."""
    if "users" in source or detail.get("userId"):
        return "USER", str(detail.get("userId") or "")
    if "startups" in source or detail.get("startupId"):
        return "STARTUP", str(detail.get("startupId") or "")
    if "applications" in source or detail.get("applicationId"):
        return "APPLICATION", str(detail.get("applicationId") or "")
    if "chat" in source or detail.get("conversationId"):
        return "CONVERSATION", str(detail.get("conversationId") or "")
    if "payments" in source:
        return "SUBSCRIPTION", str(detail.get("subscriptionId") or detail.get("userId") or "")
    return "UNKNOWN", ""


def parse_event(body: str) -> Tuple[str, str, Dict[str, Any]]:
    """Unwrap an SQS body into (source, detail type, detail)."""
    event = json.loads(body)
    detail = event.get("detail") or event
    if isinstance(detail, str):
        detail = json.loads(detail)
    source = event.get("source") or ""
    detail_type = event.get("detail-type") or event.get("type") or "UNKNOWN"
    return source, detail_type, detail


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    records = event.get("Records") or []
    logger.info("Processing %d audit events", len(records))
    audit = AuditLogs(build_store(DynamoConfig.from_env()).repo)

    failures: List[Dict[str, str]] = []
    for record in records:
        try:
            source, detail_type, detail = parse_event(record["body"])
            resource_type, resource_id = resource_of(source, detail)
            item = audit.record(
                action=detail_type,
                resource_type=resource_type,
                resource_id=resource_id,
                user_id=detail.get("userId"),
                metadata={"source": source, "detail": json.dumps(detail, default=str)[:DETAIL_LIMIT]},
            )
            logger.info("Audit log %s: %s on %s", item["auditId"], detail_type, resource_type)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to process audit event %s: %s", record.get("messageId"), exc)
            failures.append({"itemIdentifier": record.get("messageId", "")})
    return {"batchItemFailures": failures}
