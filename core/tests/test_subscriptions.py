from __future__ import annotations

import pytest

from collabhub.database.Subscriptions import Subscriptions
from collabhub.database.Users import Users
from collabhub.database.exceptions import NotFoundError

from fakes import TickClock


@pytest.fixture
def billing(store):
    users = Users(store.repo)
    users.create_user("u1", "a@b.c", "FOUNDER", "A", "B")
    users.create_user("u2", "c@d.e", "INVESTOR", "C", "D")
    return users, Subscriptions(store.repo, clock=TickClock())


def test_upsert_writes_subscription_then_profile_summary(billing) -> None:
    users, subs = billing
    item = subs.upsert_subscription("u1", "cus_1", "sub_1", "PRO", price_id="price_pro")

    assert item["GSI1PK"] == "STRIPE_CUSTOMER#cus_1"
    assert item["GSI2PK"] == "SUBSCRIPTION_STATUS#ACTIVE"
    assert subs.get_subscription("u1")["stripeSubscriptionId"] == "sub_1"
    assert subs.find_by_customer("cus_1")["userId"] == "u1"
    assert subs.find_by_customer("cus_404") is None

    profile = users.get_user("u1")
    assert profile["subscriptionStatus"] == "ACTIVE"
    assert profile["subscriptionTier"] == "PRO"
    assert profile["stripeCustomerId"] == "cus_1"


def test_upsert_for_missing_user_leaves_subscription_written(billing) -> None:
    _, subs = billing
    with pytest.raises(NotFoundError):
        subs.upsert_subscription("ghost", "cus_9", "sub_9", "PRO")
    # ordered, non-atomic: the first write stays
    assert subs.get_subscription("ghost") is not None


def test_status_changes_move_between_listings(billing) -> None:
    users, subs = billing
    subs.upsert_subscription("u1", "cus_1", "sub_1", "PRO")
    subs.upsert_subscription("u2", "cus_2", "sub_2", "ENTERPRISE")
    assert [s["userId"] for s in subs.list_by_status("ACTIVE").items] == ["u1", "u2"]

    updated = subs.update_status("cus_1", "PAST_DUE", tier="ENTERPRISE", cancelAtPeriodEnd=True)
    assert updated["tier"] == "ENTERPRISE"
    assert updated["cancelAtPeriodEnd"] is True
    assert [s["userId"] for s in subs.list_by_status("PAST_DUE").items] == ["u1"]
    assert users.get_user("u1")["subscriptionStatus"] == "PAST_DUE"

    cancelled = subs.cancel("cus_2")
    assert cancelled["status"] == "CANCELLED"
    assert [s["userId"] for s in subs.list_by_status("ACTIVE").items] == []
    profile = users.get_user("u2")
    assert profile["subscriptionStatus"] == "CANCELLED"
    assert profile["subscriptionTier"] == "FREE"

    with pytest.raises(NotFoundError):
        subs.cancel("cus_404")
    with pytest.raises(ValueError):
        subs.update_status("cus_1", "EXPIRED")
