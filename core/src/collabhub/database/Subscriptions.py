from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from boto3.dynamodb.conditions import Attr  # type: ignore[import]

from .exceptions import NotFoundError, PreconditionFailed
from .identifiers import now_iso
from .keys import GSI1, GSI2, PK, build_item, build_key, make_gsi1pk_stripe_customer, make_gsi2pk_subscription_status, with_index_keys
from .repository import DynamoRepository
from .types import EntityKind, QueryPage

logger = logging.getLogger(__name__)

SUBSCRIPTION_STATUSES = ("NONE", "ACTIVE", "CANCELLED", "PAST_DUE", "TRIALING")
TIERS = ("FREE", "PRO", "ENTERPRISE")


class Subscriptions:
    """Billing subscriptions and their summary on the user profile.

    Keys
    ----
    - pk = USER#<userId>, sk = SUBSCRIPTION
    - gsi1: STRIPE_CUSTOMER#<customerId> / SUBSCRIPTION
    - gsi2: SUBSCRIPTION_STATUS#<status> / USER#<userId>

    Every change writes the subscription item first and then copies
    ``subscriptionStatus`` / ``subscriptionTier`` onto the profile. The two
    writes are ordered but not atomic: a failure in between leaves the
    profile summary behind the subscription.
    """

    def __init__(self, repo: DynamoRepository, clock: Callable[[], str] = now_iso) -> None:
        self._repo = repo
        self._clock = clock

    def upsert_subscription(
        self,
        user_id: str,
        customer_id: str,
        subscription_id: str,
        tier: str,
        status: str = "ACTIVE",
        price_id: Optional[str] = None,
        current_period_start: Optional[str] = None,
        current_period_end: Optional[str] = None,
        cancel_at_period_end: bool = False,
    ) -> Dict[str, Any]:
        if tier not in TIERS:
            raise ValueError(f"Unknown tier: {tier}")
        if status not in SUBSCRIPTION_STATUSES:
            raise ValueError(f"Unknown subscription status: {status}")
        attributes = {
            "userId": user_id,
            "stripeCustomerId": customer_id,
            "stripeSubscriptionId": subscription_id,
            "stripePriceId": price_id,
            "tier": tier,
            "status": status,
            "currentPeriodStart": current_period_start,
            "currentPeriodEnd": current_period_end,
            "cancelAtPeriodEnd": cancel_at_period_end,
        }
        item = build_item(EntityKind.SUBSCRIPTION, build_key(EntityKind.SUBSCRIPTION, user_id), attributes, self._clock())
        self._repo.put_item(item)
        self._update_profile(
            user_id, {"stripeCustomerId": customer_id, "subscriptionStatus": status, "subscriptionTier": tier}
        )
        logger.info("Subscription %s stored for user %s (%s/%s)", subscription_id, user_id, tier, status)
        return item

    def get_subscription(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._repo.get_item(*build_key(EntityKind.SUBSCRIPTION, user_id))

    def find_by_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        page = self._repo.query_by_index(GSI1.name, make_gsi1pk_stripe_customer(customer_id), limit=1)
        return page.items[0] if page.items else None

    def update_status(
        self, customer_id: str, status: str, tier: Optional[str] = None, **billing: Any
    ) -> Dict[str, Any]:
        """Apply a billing status change found by customer id.

        ``billing`` may carry stripePriceId, currentPeriodStart,
        currentPeriodEnd and cancelAtPeriodEnd.
        """
        if status not in SUBSCRIPTION_STATUSES:
            raise ValueError(f"Unknown subscription status: {status}")
        if tier is not None and tier not in TIERS:
            raise ValueError(f"Unknown tier: {tier}")
        patch: Dict[str, Any] = {**billing, "status": status}
        if tier is not None:
            patch["tier"] = tier
        return self._change(customer_id, patch)

    def cancel(self, customer_id: str) -> Dict[str, Any]:
        """Mark the subscription cancelled; the profile drops back to the FREE tier."""
        return self._change(customer_id, {"status": "CANCELLED"}, profile_tier="FREE")

    def _change(
        self, customer_id: str, patch: Dict[str, Any], profile_tier: Optional[str] = None
    ) -> Dict[str, Any]:
        current = self.find_by_customer(customer_id)
        if current is None:
            raise NotFoundError(f"No subscription for customer {customer_id}")
        user_id = current["userId"]
        patch = with_index_keys(EntityKind.SUBSCRIPTION, current, patch)
        updated = self._repo.update_item(
            *build_key(EntityKind.SUBSCRIPTION, user_id), patch, condition=Attr(PK).exists()
        )
        self._update_profile(
            user_id,
            {"subscriptionStatus": updated.get("status"), "subscriptionTier": profile_tier or updated.get("tier")},
        )
        return updated

    def list_by_status(self, status: str, limit: Optional[int] = 50, cursor: Optional[str] = None) -> QueryPage:
        return self._repo.query_by_index(
            GSI2.name, make_gsi2pk_subscription_status(status), limit=limit, cursor=cursor
        )

    def _update_profile(self, user_id: str, summary: Dict[str, Any]) -> None:
        try:
            self._repo.update_item(*build_key(EntityKind.USER, user_id), summary, condition=Attr(PK).exists())
        except PreconditionFailed as exc:
            raise NotFoundError(f"User {user_id} not found") from exc
