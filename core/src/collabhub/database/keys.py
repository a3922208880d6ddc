from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Mapping, NamedTuple, Optional, Tuple, Union

from .types import EntityKind

# Attribute names
PK = "PK"
SK = "SK"
ENTITY_TYPE = "entityType"
CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"
GSI1PK = "GSI1PK"
GSI1SK = "GSI1SK"
GSI2PK = "GSI2PK"
GSI2SK = "GSI2SK"
EMAIL = "email"

# Fixed sort keys / partition values
SK_PROFILE = "PROFILE"
SK_METADATA = "METADATA"
SK_SUBSCRIPTION = "SUBSCRIPTION"
OPEN_ROLES = "OPEN_ROLES"
SYSTEM_ACTOR = "SYSTEM"


@dataclass(frozen=True)
class IndexSpec:
    """A secondary index over the main table.

    ``sort_attr`` is None for hash-only indexes.
    """

    name: str
    partition_attr: str
    sort_attr: Optional[str] = None

    @property
    def key_attributes(self) -> Tuple[str, ...]:
        """Attributes identifying a position in this index (index keys + table keys)."""
        attrs = [self.partition_attr]
        if self.sort_attr:
            attrs.append(self.sort_attr)
        return tuple(attrs) + TABLE_KEY_ATTRIBUTES


TABLE_KEY_ATTRIBUTES: Tuple[str, ...] = (PK, SK)

GSI1 = IndexSpec("GSI1", GSI1PK, GSI1SK)
GSI2 = IndexSpec("GSI2", GSI2PK, GSI2SK)
GSI3 = IndexSpec("GSI3", ENTITY_TYPE, CREATED_AT)
GSI4 = IndexSpec("GSI4", EMAIL)

INDEXES: Dict[str, IndexSpec] = {spec.name: spec for spec in (GSI1, GSI2, GSI3, GSI4)}


class ItemKey(NamedTuple):
    pk: str
    sk: str


def index_spec(index_name: str) -> IndexSpec:
    try:
        return INDEXES[index_name]
    except KeyError:
        raise ValueError(f"Unknown index: {index_name}") from None


def _id(value: Any) -> str:
    text = value.isoformat() if isinstance(value, date) else str(value).strip()
    if not text:
        raise ValueError("Key part must not be empty")
    if "#" in text:
        raise ValueError(f"Key part must not contain '#': {text!r}")
    return text


def _concat(*parts: Optional[str]) -> str:
    return "#".join(str(p) for p in parts if p is not None and p != "")


# ---------- Primary keys ----------
def make_pk_user(user_id: str) -> str:
    return _concat("USER", _id(user_id))


def make_pk_startup(startup_id: str) -> str:
    return _concat("STARTUP", _id(startup_id))


def make_sk_role(role_id: str) -> str:
    return _concat("ROLE", _id(role_id))


def make_pk_application(application_id: str) -> str:
    return _concat("APPLICATION", _id(application_id))


def make_pk_access_request(access_id: str) -> str:
    return _concat("ACCESS_REQUEST", _id(access_id))


def make_pk_conversation(conversation_id: str) -> str:
    return _concat("CONVERSATION", _id(conversation_id))


def make_sk_message(message_id: str) -> str:
    return _concat("MESSAGE", _id(message_id))


def make_sk_notification(notification_id: str) -> str:
    return _concat("NOTIFICATION", _id(notification_id))


def make_pk_audit_day(day: Union[str, date]) -> str:
    """Audit logs are partitioned per UTC day, eg AUDIT#2025-01-31."""
    return _concat("AUDIT", _id(day))


def make_sk_audit(timestamp_iso: str, audit_id: str) -> str:
    return _concat(_id(timestamp_iso), _id(audit_id))


def make_pk_participant(user_id: str) -> str:
    """Partition holding one conversation pointer per conversation of a user."""
    return _concat("PARTICIPANT", _id(user_id))


def make_sk_participant_conversation(created_at: str, conversation_id: str) -> str:
    return _concat("CONVERSATION", _id(created_at), _id(conversation_id))


# ---------- Secondary index keys ----------
def make_gsi1pk_role(role: str) -> str:
    return _concat("ROLE", _id(role))


def make_gsi1sk_user(user_id: str) -> str:
    return _concat("USER", _id(user_id))


def make_gsi2pk_user_status(status: str) -> str:
    return _concat("STATUS", _id(status))


def make_gsi1pk_founder(founder_id: str) -> str:
    return _concat("FOUNDER", _id(founder_id))


def make_gsi1sk_startup(startup_id: str) -> str:
    return _concat("STARTUP", _id(startup_id))


def make_gsi2pk_visibility_status(visibility: str, status: str) -> str:
    """GSI2 PK for startup discovery, eg VISIBILITY#PUBLIC#STATUS#ACTIVE."""
    return _concat("VISIBILITY", _id(visibility), "STATUS", _id(status))


def make_gsi1sk_open_role(created_at: str, role_id: str) -> str:
    return _concat(_id(created_at), _id(role_id))


def make_gsi1pk_applicant(applicant_id: str) -> str:
    return _concat("APPLICANT", _id(applicant_id))


def make_gsi1sk_application(application_id: str) -> str:
    return _concat("APPLICATION", _id(application_id))


def make_gsi2pk_startup_role(startup_id: str, role_id: str) -> str:
    return _concat("STARTUP", _id(startup_id), "ROLE", _id(role_id))


def make_gsi2sk_application_status(status: str, created_at: Optional[str] = None) -> str:
    """GSI2 SK for applications of a role; without ``created_at`` it is a status prefix."""
    if created_at is None:
        return _concat("STATUS", _id(status)) + "#"
    return _concat("STATUS", _id(status), _id(created_at))


def make_gsi1pk_stripe_customer(customer_id: str) -> str:
    return _concat("STRIPE_CUSTOMER", _id(customer_id))


def make_gsi2pk_subscription_status(status: str) -> str:
    return _concat("SUBSCRIPTION_STATUS", _id(status))


def make_gsi1sk_audit(timestamp_iso: str) -> str:
    return _concat("AUDIT", _id(timestamp_iso))


# ---------- Entity level mapping ----------
_PRIMARY_KEYS: Dict[EntityKind, Callable[..., ItemKey]] = {
    EntityKind.USER: lambda user_id: ItemKey(make_pk_user(user_id), SK_PROFILE),
    EntityKind.STARTUP: lambda startup_id: ItemKey(make_pk_startup(startup_id), SK_METADATA),
    EntityKind.STARTUP_ROLE: lambda startup_id, role_id: ItemKey(
        make_pk_startup(startup_id), make_sk_role(role_id)
    ),
    EntityKind.APPLICATION: lambda application_id: ItemKey(
        make_pk_application(application_id), SK_METADATA
    ),
    EntityKind.ACCESS_REQUEST: lambda access_id: ItemKey(make_pk_access_request(access_id), SK_METADATA),
    EntityKind.CONVERSATION: lambda conversation_id: ItemKey(
        make_pk_conversation(conversation_id), SK_METADATA
    ),
    EntityKind.MESSAGE: lambda conversation_id, message_id: ItemKey(
        make_pk_conversation(conversation_id), make_sk_message(message_id)
    ),
    EntityKind.SUBSCRIPTION: lambda user_id: ItemKey(make_pk_user(user_id), SK_SUBSCRIPTION),
    EntityKind.NOTIFICATION: lambda user_id, notification_id: ItemKey(
        make_pk_user(user_id), make_sk_notification(notification_id)
    ),
    EntityKind.AUDIT_LOG: lambda timestamp_iso, audit_id: ItemKey(
        make_pk_audit_day(str(timestamp_iso)[:10]), make_sk_audit(timestamp_iso, audit_id)
    ),
}


def build_key(kind: EntityKind, *ids: str) -> ItemKey:
    """Primary key of an entity.

    Example: build_key(EntityKind.STARTUP_ROLE, "s1", "r1") -> ("STARTUP#s1", "ROLE#r1")
    """
    builder = _PRIMARY_KEYS[EntityKind(kind)]
    try:
        return builder(*ids)
    except TypeError as exc:
        raise ValueError(f"Wrong identifiers for {EntityKind(kind).value}: {ids!r}") from exc


def _pair(
    pk_attr: str,
    sk_attr: str,
    attributes: Mapping[str, Any],
    builder: Callable[..., Tuple[str, str]],
    *names: str,
) -> Dict[str, Optional[str]]:
    values = [attributes.get(name) for name in names]
    if any(v is None or v == "" for v in values):
        return {pk_attr: None, sk_attr: None}
    pk, sk = builder(*values)
    return {pk_attr: pk, sk_attr: sk}


def build_index_keys(kind: EntityKind, attributes: Mapping[str, Any]) -> Dict[str, Optional[str]]:
    """Secondary index keys an entity should carry given its attributes.

    Returns every index attribute the kind participates in; None marks a pair
    as absent so the item stays out of that index.
    """
    kind = EntityKind(kind)
    keys: Dict[str, Optional[str]] = {}
    if kind is EntityKind.USER:
        keys.update(_pair(GSI1PK, GSI1SK, attributes,
                          lambda r, u: (make_gsi1pk_role(r), make_gsi1sk_user(u)), "role", "userId"))
        keys.update(_pair(GSI2PK, GSI2SK, attributes,
                          lambda s, u: (make_gsi2pk_user_status(s), make_gsi1sk_user(u)), "status", "userId"))
    elif kind is EntityKind.STARTUP:
        keys.update(_pair(GSI1PK, GSI1SK, attributes,
                          lambda f, s: (make_gsi1pk_founder(f), make_gsi1sk_startup(s)),
                          "founderId", "startupId"))
        keys.update(_pair(GSI2PK, GSI2SK, attributes,
                          lambda v, st, s: (make_gsi2pk_visibility_status(v, st), make_gsi1sk_startup(s)),
                          "visibility", "status", "startupId"))
    elif kind is EntityKind.STARTUP_ROLE:
        if attributes.get("isOpen"):
            keys.update(_pair(GSI1PK, GSI1SK, attributes,
                              lambda c, r: (OPEN_ROLES, make_gsi1sk_open_role(c, r)), CREATED_AT, "roleId"))
        else:
            keys.update({GSI1PK: None, GSI1SK: None})
    elif kind is EntityKind.APPLICATION:
        keys.update(_pair(GSI1PK, GSI1SK, attributes,
                          lambda u, a: (make_gsi1pk_applicant(u), make_gsi1sk_application(a)),
                          "applicantId", "applicationId"))
        keys.update(_pair(GSI2PK, GSI2SK, attributes,
                          lambda s, r, st, c: (make_gsi2pk_startup_role(s, r), make_gsi2sk_application_status(st, c)),
                          "startupId", "roleId", "status", CREATED_AT))
    elif kind is EntityKind.SUBSCRIPTION:
        keys.update(_pair(GSI1PK, GSI1SK, attributes,
                          lambda c: (make_gsi1pk_stripe_customer(c), SK_SUBSCRIPTION), "stripeCustomerId"))
        keys.update(_pair(GSI2PK, GSI2SK, attributes,
                          lambda s, u: (make_gsi2pk_subscription_status(s), make_gsi1sk_user(u)), "status", "userId"))
    elif kind is EntityKind.AUDIT_LOG:
        if attributes.get("userId") == SYSTEM_ACTOR:
            keys.update({GSI1PK: None, GSI1SK: None})
        else:
            keys.update(_pair(GSI1PK, GSI1SK, attributes,
                              lambda u, c: (make_pk_user(u), make_gsi1sk_audit(c)), "userId", CREATED_AT))
    return keys


def with_index_keys(
    kind: EntityKind, current: Mapping[str, Any], patch: Mapping[str, Any]
) -> Dict[str, Any]:
    """Extend ``patch`` with the index keys that change once it is applied to ``current``.

    A pair that becomes absent is returned as None so the update removes it.
    """
    merged = {**current, **patch}
    merged = {k: v for k, v in merged.items() if v is not None}
    result = dict(patch)
    for attr, value in build_index_keys(kind, merged).items():
        if value is None and current.get(attr) is None:
            continue
        if value != current.get(attr):
            result[attr] = value
    return result


def build_item(
    kind: EntityKind, key: ItemKey, attributes: Mapping[str, Any], timestamp_iso: str
) -> Dict[str, Any]:
    """Assemble a complete item: table keys, bookkeeping fields, payload and index keys."""
    kind = EntityKind(kind)
    item: Dict[str, Any] = {
        PK: key.pk,
        SK: key.sk,
        ENTITY_TYPE: kind.value,
        CREATED_AT: timestamp_iso,
        UPDATED_AT: timestamp_iso,
    }
    for name, value in attributes.items():
        if value is None or name in (PK, SK, ENTITY_TYPE):
            continue
        item[name] = value
    for attr, value in build_index_keys(kind, item).items():
        if value is not None:
            item[attr] = value
    return item


def parse_key(key: str) -> Tuple[str, str]:
    """Split a key into its leading kind prefix and the remainder (debugging aid).

    Example: parse_key("STARTUP#abc") -> ("STARTUP", "abc")
    """
    prefix, _, rest = key.partition("#")
    return prefix, rest
