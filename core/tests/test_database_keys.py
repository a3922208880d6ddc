import datetime

import pytest

from collabhub.database.keys import (
    GSI1PK,
    GSI1SK,
    GSI2PK,
    GSI2SK,
    OPEN_ROLES,
    build_index_keys,
    build_item,
    build_key,
    make_gsi1pk_stripe_customer,
    make_gsi2pk_visibility_status,
    make_gsi2sk_application_status,
    make_pk_audit_day,
    make_pk_participant,
    make_sk_participant_conversation,
    parse_key,
    with_index_keys,
)
from collabhub.database.types import EntityKind


def test_key_builders():
    assert build_key(EntityKind.USER, "u1") == ("USER#u1", "PROFILE")
    assert build_key(EntityKind.STARTUP, "s1") == ("STARTUP#s1", "METADATA")
    assert build_key(EntityKind.STARTUP_ROLE, "s1", "r1") == ("STARTUP#s1", "ROLE#r1")
    assert build_key(EntityKind.APPLICATION, "a1") == ("APPLICATION#a1", "METADATA")
    assert build_key(EntityKind.ACCESS_REQUEST, "q1") == ("ACCESS_REQUEST#q1", "METADATA")
    assert build_key(EntityKind.MESSAGE, "c1", "m1") == ("CONVERSATION#c1", "MESSAGE#m1")
    assert build_key(EntityKind.SUBSCRIPTION, "u1") == ("USER#u1", "SUBSCRIPTION")
    assert build_key(EntityKind.NOTIFICATION, "u1", "n1") == ("USER#u1", "NOTIFICATION#n1")
    assert build_key(EntityKind.AUDIT_LOG, "2025-01-31T08:15:00.123Z", "x1") == (
        "AUDIT#2025-01-31",
        "2025-01-31T08:15:00.123Z#x1",
    )

    assert make_pk_audit_day(datetime.date(2025, 8, 8)) == "AUDIT#2025-08-08"
    assert make_pk_participant("u1") == "PARTICIPANT#u1"
    assert make_sk_participant_conversation("2025-01-01T00:00:00.000Z", "c1") == (
        "CONVERSATION#2025-01-01T00:00:00.000Z#c1"
    )
    assert make_gsi2pk_visibility_status("PUBLIC", "ACTIVE") == "VISIBILITY#PUBLIC#STATUS#ACTIVE"
    assert make_gsi1pk_stripe_customer("cus_1") == "STRIPE_CUSTOMER#cus_1"


def test_application_status_prefix_only_matches_that_status():
    prefix = make_gsi2sk_application_status("PENDING")
    assert prefix == "STATUS#PENDING#"
    assert make_gsi2sk_application_status("PENDING", "2025-01-01T00:00:00.000Z").startswith(prefix)
    assert not make_gsi2sk_application_status("PENDING_X", "2025").startswith(prefix)


def test_build_key_rejects_bad_identifiers():
    with pytest.raises(ValueError):
        build_key(EntityKind.STARTUP_ROLE, "s1")
    with pytest.raises(ValueError):
        build_key(EntityKind.USER, "a#b")
    with pytest.raises(ValueError):
        build_key(EntityKind.USER, "  ")


def test_open_role_index_keys_are_sparse():
    attrs = {"roleId": "r1", "createdAt": "2025-01-01T00:00:00.000Z"}
    open_keys = build_index_keys(EntityKind.STARTUP_ROLE, {**attrs, "isOpen": True})
    assert open_keys == {GSI1PK: OPEN_ROLES, GSI1SK: "2025-01-01T00:00:00.000Z#r1"}

    closed_keys = build_index_keys(EntityKind.STARTUP_ROLE, {**attrs, "isOpen": False})
    assert closed_keys == {GSI1PK: None, GSI1SK: None}


def test_audit_entries_by_system_stay_out_of_user_index():
    keys = build_index_keys(EntityKind.AUDIT_LOG, {"userId": "SYSTEM", "createdAt": "2025"})
    assert keys[GSI1PK] is None
    keys = build_index_keys(EntityKind.AUDIT_LOG, {"userId": "u1", "createdAt": "2025"})
    assert keys == {GSI1PK: "USER#u1", GSI1SK: "AUDIT#2025"}


def test_build_item_sets_bookkeeping_and_index_keys():
    key = build_key(EntityKind.STARTUP, "s1")
    item = build_item(
        EntityKind.STARTUP,
        key,
        {"startupId": "s1", "founderId": "f1", "visibility": "PUBLIC", "status": "ACTIVE", "logoUrl": None},
        "2025-01-01T00:00:00.000Z",
    )
    assert item["PK"] == "STARTUP#s1" and item["SK"] == "METADATA"
    assert item["entityType"] == "STARTUP"
    assert item["createdAt"] == item["updatedAt"] == "2025-01-01T00:00:00.000Z"
    assert item[GSI1PK] == "FOUNDER#f1" and item[GSI1SK] == "STARTUP#s1"
    assert item[GSI2PK] == "VISIBILITY#PUBLIC#STATUS#ACTIVE"
    assert "logoUrl" not in item


def test_with_index_keys_recomputes_changed_pairs_only():
    current = build_item(
        EntityKind.USER,
        build_key(EntityKind.USER, "u1"),
        {"userId": "u1", "role": "TALENT", "status": "ACTIVE"},
        "2025-01-01T00:00:00.000Z",
    )
    patch = with_index_keys(EntityKind.USER, current, {"status": "BANNED"})
    assert patch == {"status": "BANNED", GSI2PK: "STATUS#BANNED"}

    role = {"roleId": "r1", "createdAt": "2025", "isOpen": True, GSI1PK: OPEN_ROLES, GSI1SK: "2025#r1"}
    patch = with_index_keys(EntityKind.STARTUP_ROLE, role, {"isOpen": False})
    assert patch == {"isOpen": False, GSI1PK: None, GSI1SK: None}


def test_with_index_keys_rekeys_application_status():
    current = {
        "applicationId": "a1",
        "applicantId": "u1",
        "startupId": "s1",
        "roleId": "r1",
        "status": "PENDING",
        "createdAt": "2025-01-01T00:00:00.000Z",
        GSI2SK: "STATUS#PENDING#2025-01-01T00:00:00.000Z",
    }
    patch = with_index_keys(EntityKind.APPLICATION, current, {"status": "REVIEWING"})
    assert patch[GSI2SK] == "STATUS#REVIEWING#2025-01-01T00:00:00.000Z"


def test_parse_key():
    assert parse_key("STARTUP#abc") == ("STARTUP", "abc")
    assert parse_key("METADATA") == ("METADATA", "")
