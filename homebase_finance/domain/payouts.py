"""Payout rules: eligibility, fees, arrival estimates and the status state machine"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Set
from homebase_finance.domain.models import PayoutStatus, PayoutType, ProviderSnapshot
from homebase_finance.domain.exceptions import (
    InsufficientBalanceError,
    InstantPayoutIneligibleError,
    InvalidAmountError,
    InvalidPayoutTransitionError,
)
from homebase_finance.domain.fees import compute_instant_payout_fee
from homebase_finance.utils.date_utils import next_business_day


ALLOWED_TRANSITIONS: Dict[PayoutStatus, Set[PayoutStatus]] = {
    PayoutStatus.REQUESTED: {PayoutStatus.IN_TRANSIT, PayoutStatus.FAILED},
    PayoutStatus.IN_TRANSIT: {PayoutStatus.PAID},
    PayoutStatus.PAID: set(),
    PayoutStatus.FAILED: set(),  # Terminal: provider must re-request manually
}


@dataclass
class PayoutQuote:
    """Computed terms of a payout before it is sent to the processor"""

    type: PayoutType
    amount_cents: int
    fee_cents: int
    expected_arrival: datetime

    @property
    def net_amount_cents(self) -> int:
        return self.amount_cents - self.fee_cents


def is_noop_transition(old: PayoutStatus, new: PayoutStatus) -> bool:
    """Processor re-delivered the status we already hold"""
    return old == new


def assert_transition(old: PayoutStatus, new: PayoutStatus) -> None:
    if new not in ALLOWED_TRANSITIONS.get(old, set()):
        raise InvalidPayoutTransitionError(old.value, new.value)


def standard_arrival_date(today: date, payout_delay_days: int) -> date:
    return next_business_day(today, payout_delay_days)


def check_payable(provider: ProviderSnapshot, amount_cents: int) -> None:
    """
    Raises:
        InvalidAmountError: amount is not positive
        InsufficientBalanceError: amount exceeds available minus in-flight requests
    """
    if amount_cents <= 0:
        raise InvalidAmountError(f"Payout amount must be positive, got {amount_cents}")
    if amount_cents > provider.payable_balance_cents:
        raise InsufficientBalanceError(amount_cents, provider.payable_balance_cents)


def quote_standard_payout(provider: ProviderSnapshot, amount_cents: int, now: datetime) -> PayoutQuote:
    """Fee-free payout arriving after the provider's business-day delay"""
    check_payable(provider, amount_cents)
    arrival = standard_arrival_date(now.date(), provider.payout_delay_days)
    return PayoutQuote(
        type=PayoutType.STANDARD,
        amount_cents=amount_cents,
        fee_cents=0,
        expected_arrival=datetime.combine(arrival, time.min),
    )


def quote_instant_payout(
    provider: ProviderSnapshot,
    amount_cents: int,
    now: datetime,
    eta_minutes: int = 30,
) -> PayoutQuote:
    """
    Fee-bearing payout to a debit card.

    The arrival is an estimate shown to the provider; the processor reports
    the real outcome asynchronously.
    """
    if not provider.instant_payout_eligible:
        raise InstantPayoutIneligibleError(provider.provider_id)
    check_payable(provider, amount_cents)
    return PayoutQuote(
        type=PayoutType.INSTANT,
        amount_cents=amount_cents,
        fee_cents=compute_instant_payout_fee(amount_cents),
        expected_arrival=now + timedelta(minutes=eta_minutes),
    )
