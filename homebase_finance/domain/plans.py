"""Plan catalog - subscription tiers with monthly price and transaction fee"""

from types import MappingProxyType
from typing import Iterable, List, Mapping
from homebase_finance.domain.models import PlanTier, PlanTerms
from homebase_finance.domain.exceptions import UnknownTierError


def validate_catalog(plans: Iterable[PlanTerms]) -> None:
    """
    Enforce "pay more fixed, pay less variable".

    Ordered by monthly price, prices must strictly increase and fee bps must
    strictly decrease. Raises ValueError if any tier breaks the rule.
    """
    ordered = sorted(plans, key=lambda p: p.monthly_price_cents)
    for cheaper, pricier in zip(ordered, ordered[1:]):
        if pricier.monthly_price_cents <= cheaper.monthly_price_cents:
            raise ValueError(f"Tiers {cheaper.tier.value} and {pricier.tier.value} share a monthly price")
        if pricier.transaction_fee_bps >= cheaper.transaction_fee_bps:
            raise ValueError(
                f"Tier {pricier.tier.value} costs more than {cheaper.tier.value} "
                f"but does not have a lower transaction fee"
            )


def _build_catalog(plans: Iterable[PlanTerms]) -> Mapping[PlanTier, PlanTerms]:
    plans = list(plans)
    validate_catalog(plans)
    return MappingProxyType({p.tier: p for p in plans})


# Seeded tiers. Changing a row here is a pricing migration, not a runtime write.
PLAN_CATALOG: Mapping[PlanTier, PlanTerms] = _build_catalog(
    [
        PlanTerms(tier=PlanTier.FREE, monthly_price_cents=0, transaction_fee_bps=800),  # 8%
        PlanTerms(tier=PlanTier.GROWTH, monthly_price_cents=4_900, transaction_fee_bps=250),  # $49, 2.5%
        PlanTerms(tier=PlanTier.PRO, monthly_price_cents=12_900, transaction_fee_bps=200),  # $129, 2%
        PlanTerms(tier=PlanTier.SCALE, monthly_price_cents=29_900, transaction_fee_bps=150),  # $299, 1.5%
    ]
)


def parse_tier(tier: PlanTier | str) -> PlanTier:
    """Coerce a tier name into the closed enum"""
    if isinstance(tier, PlanTier):
        return tier
    try:
        return PlanTier(tier)
    except ValueError:
        raise UnknownTierError(tier) from None


def lookup(tier: PlanTier | str) -> PlanTerms:
    """
    Fetch pricing for a tier.

    Raises:
        UnknownTierError: tier is not one of free/growth/pro/scale
    """
    plan = PLAN_CATALOG.get(parse_tier(tier))
    if plan is None:
        raise UnknownTierError(tier)
    return plan


def list_plans() -> List[PlanTerms]:
    """All tiers, cheapest first"""
    return sorted(PLAN_CATALOG.values(), key=lambda p: p.monthly_price_cents)
