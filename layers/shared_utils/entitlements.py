"""Subscription tiers and feature entitlements.

A feature is gated either at ``premium`` or at ``professional``. The caller's
tier comes from a :class:`SubscriptionSnapshot` loaded for the request: a paid
per-wedding purchase upgrades a single project, otherwise the account
subscription applies, and no subscription at all means ``free``.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Key

logger = logging.getLogger(__name__)


class SubscriptionTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    PROFESSIONAL = "professional"

    @property
    def rank(self) -> int:
        return TIER_ORDER.index(self)

    @classmethod
    def coerce(cls, value: Any, default: "SubscriptionTier" = None) -> "SubscriptionTier":
        try:
            return cls(value)
        except ValueError:
            return default or cls.FREE


TIER_ORDER = (SubscriptionTier.FREE, SubscriptionTier.PREMIUM, SubscriptionTier.PROFESSIONAL)

PURCHASE_STATUSES = ("pending", "paid", "failed", "refunded")

PROFESSIONAL_FEATURES = frozenset({
    "duration_5min",
    "4k_quality",
    "multiple_versions",
    "custom_branding",
    "priority_processing",
})

PREMIUM_FEATURES = frozenset({
    "duration_1min",
    "duration_2min",
    "duration_3min",
    "hd_quality",
    "custom_music",
    "all_styles",
    "download_rights",
    "no_watermark",
    "unlimited_projects",
})

UPGRADE_MESSAGES: Dict[str, str] = {
    "duration_1min": "Upgrade to Premium for videos up to 3 minutes",
    "duration_2min": "Upgrade to Premium for videos up to 3 minutes",
    "duration_3min": "Upgrade to Premium for videos up to 3 minutes",
    "duration_5min": "Upgrade to Professional for videos up to 5 minutes",
    "hd_quality": "Upgrade to Premium for HD video quality",
    "4k_quality": "Upgrade to Professional for 4K video quality",
    "custom_music": "Upgrade to Premium to upload custom music",
    "all_styles": "Upgrade to Premium for all AI video styles",
    "download_rights": "Upgrade to Premium to download your videos",
    "no_watermark": "Upgrade to Premium to remove watermark",
    "multiple_versions": "Upgrade to Professional for multiple video versions",
    "custom_branding": "Upgrade to Professional for custom branding",
    "priority_processing": "Upgrade to Professional for priority processing",
    "unlimited_projects": "Upgrade to Premium for unlimited projects",
}
DEFAULT_UPGRADE_MESSAGE = "Upgrade to access this feature"


@dataclass(frozen=True)
class FeatureAccess:
    has_access: bool
    tier: SubscriptionTier
    required_tier: SubscriptionTier
    upgrade_message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hasAccess": self.has_access,
            "tier": self.tier.value,
            "requiredTier": self.required_tier.value,
            "upgradeMessage": self.upgrade_message,
        }


@dataclass
class Subscription:
    user_id: str
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: str = "active"
    projects_used: int = 0
    projects_limit: int = 1
    stripe_customer_id: Optional[str] = None
    expires_at: Optional[str] = None

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "Subscription":
        return cls(
            user_id=item.get("user_id"),
            tier=SubscriptionTier.coerce(item.get("tier")),
            status=item.get("status") or "active",
            projects_used=int(item.get("projects_used") or 0),
            projects_limit=int(item.get("projects_limit", 1) or 0),
            stripe_customer_id=item.get("stripe_customer_id"),
            expires_at=item.get("expires_at"),
        )


@dataclass
class WeddingPurchase:
    project_id: str
    tier: SubscriptionTier
    status: str = "pending"
    id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    amount: int = 0

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "WeddingPurchase":
        # A purchase always buys at least premium
        tier = SubscriptionTier.coerce(item.get("tier"), default=SubscriptionTier.PREMIUM)
        if tier is SubscriptionTier.FREE:
            tier = SubscriptionTier.PREMIUM
        status = item.get("status")
        return cls(
            id=item.get("id"),
            project_id=item.get("project_id"),
            tier=tier,
            status=status if status in PURCHASE_STATUSES else "pending",
            stripe_payment_intent_id=item.get("stripe_payment_intent_id"),
            amount=int(item.get("amount") or 0),
        )


@dataclass
class SubscriptionSnapshot:
    """The caller's subscription state as read at request time."""

    subscription: Optional[Subscription] = None
    purchases: List[WeddingPurchase] = field(default_factory=list)

    @property
    def account_tier(self) -> SubscriptionTier:
        return self.subscription.tier if self.subscription else SubscriptionTier.FREE

    def project_tier(self, project_id: str) -> SubscriptionTier:
        for purchase in self.purchases:
            if purchase.project_id == project_id and purchase.status == "paid":
                return purchase.tier
        return self.account_tier

    def current_tier(self, project_id: Optional[str] = None) -> SubscriptionTier:
        return self.project_tier(project_id) if project_id else self.account_tier

    def can_create_project(self) -> bool:
        if not self.subscription:
            return False
        if self.subscription.tier is not SubscriptionTier.FREE:
            return True
        return self.subscription.projects_used < self.subscription.projects_limit


def required_tier(feature: str) -> SubscriptionTier:
    if feature in PROFESSIONAL_FEATURES:
        return SubscriptionTier.PROFESSIONAL
    return SubscriptionTier.PREMIUM


def upgrade_message(feature: str) -> str:
    return UPGRADE_MESSAGES.get(feature, DEFAULT_UPGRADE_MESSAGE)


def resolve(feature: str, project_id: Optional[str] = None,
            snapshot: Optional[SubscriptionSnapshot] = None) -> FeatureAccess:
    """Decide whether the snapshot's tier grants ``feature``."""
    snapshot = snapshot or SubscriptionSnapshot()
    tier = snapshot.current_tier(project_id)
    needed = required_tier(feature)
    return FeatureAccess(
        has_access=tier.rank >= needed.rank,
        tier=tier,
        required_tier=needed,
        upgrade_message=upgrade_message(feature),
    )


def load_snapshot(user_id: Optional[str], subscriptions_db, purchases_db) -> SubscriptionSnapshot:
    """Read the user's subscription row and per-wedding purchases."""
    if not user_id:
        return SubscriptionSnapshot()

    item = subscriptions_db.get_item({"user_id": user_id})
    subscription = Subscription.from_item(item) if item else None

    purchase_items = purchases_db.query(Key("user_id").eq(user_id))
    purchases = [WeddingPurchase.from_item(p) for p in purchase_items]
    logger.info(f"Loaded subscription for {user_id}: tier={subscription.tier.value if subscription else 'none'}, purchases={len(purchases)}")
    return SubscriptionSnapshot(subscription=subscription, purchases=purchases)
