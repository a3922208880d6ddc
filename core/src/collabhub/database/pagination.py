"""Opaque continuation cursors for range and index queries.

A cursor carries the key tuple of the last item a caller received, signed
with HMAC-SHA256 so it can only come from a previous result. The ``scope``
ties a cursor to the query that produced it (index name and partition
value); replaying it against another query raises ``InvalidCursor``.

Token layout: ``<urlsafe-b64 JSON payload>.<urlsafe-b64 signature>``.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .exceptions import InvalidCursor

logger = logging.getLogger(__name__)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)


class Paginator:
    def __init__(self, secret: Optional[Union[str, bytes]] = None) -> None:
        if not secret:
            logger.warning("No cursor secret configured; cursors will not survive this process")
            secret = secrets.token_bytes(32)
        self._secret = secret.encode("utf-8") if isinstance(secret, str) else secret

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self._secret, payload, hashlib.sha256).digest()

    def encode(self, item: Mapping[str, Any], key_attributes: Iterable[str], scope: str = "") -> str:
        """Build a cursor pointing just after ``item``."""
        key: Dict[str, Any] = {}
        for attr in key_attributes:
            if attr not in item:
                raise ValueError(f"Item is missing key attribute {attr!r}")
            key[attr] = item[attr]
        payload = json.dumps({"s": scope, "k": key}, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return f"{_b64encode(payload)}.{_b64encode(self._sign(payload))}"

    def decode(self, cursor: str, scope: str = "") -> Dict[str, Any]:
        """Return the key tuple stored in ``cursor``."""
        if not isinstance(cursor, str) or cursor.count(".") != 1:
            raise InvalidCursor("Malformed pagination cursor")
        body, signature = cursor.split(".")
        try:
            payload = _b64decode(body)
            given = _b64decode(signature)
        except (binascii.Error, ValueError) as exc:
            raise InvalidCursor("Malformed pagination cursor") from exc

        if not hmac.compare_digest(given, self._sign(payload)):
            raise InvalidCursor("Pagination cursor signature mismatch")

        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidCursor("Malformed pagination cursor") from exc

        if not isinstance(data, dict) or not isinstance(data.get("k"), dict):
            raise InvalidCursor("Malformed pagination cursor")
        if data.get("s") != scope:
            raise InvalidCursor("Pagination cursor was issued for a different query")
        return data["k"]
