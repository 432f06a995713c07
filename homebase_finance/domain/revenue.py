"""Recurring revenue math shared by the MRR report and the tier breakdown"""

from datetime import datetime, timedelta
from typing import Iterable, Tuple
from homebase_finance.domain.models import PlanTier, TierCounts
from homebase_finance.domain.plans import lookup, list_plans


def fee_window(as_of: datetime, window_days: int = 30) -> Tuple[datetime, datetime]:
    """
    Trailing window ``(as_of - window_days, as_of]`` for transaction-fee MRR.

    A rolling window rather than the calendar month, so the figure does not
    jump at month boundaries.
    """
    return as_of - timedelta(days=window_days), as_of


def in_fee_window(occurred_at: datetime, as_of: datetime, window_days: int = 30) -> bool:
    start, end = fee_window(as_of, window_days)
    return start < occurred_at <= end


def empty_tier_counts() -> TierCounts:
    return {plan.tier: 0 for plan in list_plans()}


def tier_distribution(active_tiers: Iterable[PlanTier]) -> TierCounts:
    """Count active providers per tier; every catalog tier is present"""
    counts = empty_tier_counts()
    for tier in active_tiers:
        counts[tier] += 1
    return counts


def subscription_mrr(active_tiers: Iterable[PlanTier]) -> int:
    """Sum of monthly plan prices across active subscriptions"""
    return sum(lookup(tier).monthly_price_cents for tier in active_tiers)
