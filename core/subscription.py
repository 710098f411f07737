"""
Subscription access rules.

Billing state is written by the payment provider integration (out of scope
here); this module only decides whether a stored state grants access.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

SUBSCRIPTION_STATUSES = ("TRIALING", "ACTIVE", "PAST_DUE", "CANCELED", "UNPAID")


@dataclass(frozen=True)
class SubscriptionAccess:
    allowed: bool
    reason: Optional[str] = None
    days_remaining: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def check_subscription_access(
    status: Optional[str],
    trial_ends_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> SubscriptionAccess:
    now = _aware(now or datetime.now(timezone.utc))

    if status == "ACTIVE":
        return SubscriptionAccess(allowed=True)

    if status == "TRIALING":
        if trial_ends_at is None or _aware(trial_ends_at) <= now:
            return SubscriptionAccess(
                allowed=False,
                reason="Your trial has expired. Please subscribe to continue.",
            )
        seconds_left = (_aware(trial_ends_at) - now).total_seconds()
        return SubscriptionAccess(allowed=True, days_remaining=math.ceil(seconds_left / 86400))

    if status == "PAST_DUE":
        return SubscriptionAccess(
            allowed=True,
            reason="Your payment is past due. Please update your payment method.",
        )

    if status == "CANCELED":
        return SubscriptionAccess(
            allowed=False,
            reason="Your subscription has been canceled. Please resubscribe to continue.",
        )

    if status == "UNPAID":
        return SubscriptionAccess(
            allowed=False,
            reason="Your subscription is unpaid. Please update your payment method.",
        )

    return SubscriptionAccess(
        allowed=False,
        reason="No active subscription. Please subscribe to continue.",
    )
