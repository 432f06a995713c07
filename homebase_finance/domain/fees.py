"""Fee calculator - the only place platform and payout fees are computed"""

from homebase_finance.domain.models import PlanTier
from homebase_finance.domain.exceptions import InvalidAmountError
from homebase_finance.domain.plans import lookup

BPS_DENOMINATOR = 10_000
INSTANT_PAYOUT_FEE_BPS = 150  # 1.5%


def apply_bps(amount_cents: int, bps: int) -> int:
    """
    Take ``bps`` basis points of ``amount_cents``, rounding half up.

    Integer-only so the result never depends on float representation:
        20000 * 250 / 10000 = 500
        333 * 150 / 10000 = 4.995 -> 5
    """
    if amount_cents < 0:
        raise InvalidAmountError(f"Amount must be non-negative, got {amount_cents}")
    return (amount_cents * bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def compute_fee(tier: PlanTier | str, gross_amount_cents: int) -> int:
    """
    Platform fee owed on a client payment under ``tier``.

    Pure: identical inputs always give the identical fee, so a stored fee can
    be re-derived for audits from the gross amount and the bps snapshot.
    """
    return apply_bps(gross_amount_cents, lookup(tier).transaction_fee_bps)


def net_after_fee(tier: PlanTier | str, gross_amount_cents: int) -> int:
    """What the provider keeps from a client payment"""
    return gross_amount_cents - compute_fee(tier, gross_amount_cents)


def compute_instant_payout_fee(amount_cents: int) -> int:
    """Fee charged for an instant payout of ``amount_cents``"""
    return apply_bps(amount_cents, INSTANT_PAYOUT_FEE_BPS)
