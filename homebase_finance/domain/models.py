"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Dict, Optional


class PlanTier(str, Enum):
    FREE = "free"
    GROWTH = "growth"
    PRO = "pro"
    SCALE = "scale"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class SettlementState(str, Enum):
    """Where the processor says the net funds of a payment currently sit"""

    AVAILABLE = "available"
    PENDING = "pending"


class PayoutType(str, Enum):
    STANDARD = "standard"
    INSTANT = "instant"


class PayoutStatus(str, Enum):
    REQUESTED = "requested"
    IN_TRANSIT = "in_transit"
    PAID = "paid"
    FAILED = "failed"


class CreditStatus(str, Enum):
    PENDING = "pending"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class PlanTerms:
    """Immutable pricing attributes of one subscription tier"""

    tier: PlanTier
    monthly_price_cents: int
    transaction_fee_bps: int


@dataclass
class CompletedPayment:
    """Client payment reported by the processor, before fee computation"""

    event_id: str
    provider_id: str
    gross_amount_cents: int
    occurred_at: datetime
    settlement_state: SettlementState = SettlementState.PENDING


@dataclass
class ProviderSnapshot:
    """Read-only view of a provider account"""

    provider_id: str
    current_tier: PlanTier
    subscription_status: SubscriptionStatus
    payout_delay_days: int
    instant_payout_eligible: bool
    available_balance_cents: int
    pending_balance_cents: int
    reserved_payout_cents: int = 0

    @property
    def payable_balance_cents(self) -> int:
        return max(self.available_balance_cents - self.reserved_payout_cents, 0)


@dataclass
class MRRReport:
    """Platform recurring revenue as of a point in time"""

    as_of: datetime
    subscription_mrr_cents: int
    transaction_fee_mrr_cents: int

    @property
    def total_mrr_cents(self) -> int:
        return self.subscription_mrr_cents + self.transaction_fee_mrr_cents

    @property
    def arr_cents(self) -> int:
        return self.total_mrr_cents * 12


@dataclass
class TierRevenue:
    """Revenue contribution of a single tier"""

    tier: PlanTier
    active_providers: int
    subscription_mrr_cents: int
    transaction_fee_mrr_cents: int
    payment_count: int
    average_fee_bps: float

    @property
    def total_mrr_cents(self) -> int:
        return self.subscription_mrr_cents + self.transaction_fee_mrr_cents


@dataclass
class PayoutTiming:
    """What a provider is told about when their money arrives"""

    payout_delay_days: int
    standard_arrival_date: date
    instant_eta_minutes: int
    instant_fee_bps: int
    instant_payout_eligible: bool


@dataclass
class MonthlyCreditExpense:
    """Referral credit activity within one calendar month"""

    month: str  # YYYY-MM
    issued_cents: int
    redeemed_cents: int
    expired_cents: int


@dataclass
class ProcessorAccount:
    """Account state as reported by the payment processor"""

    provider_id: str
    available_balance_cents: int
    pending_balance_cents: int
    payout_delay_days: int
    instant_payout_eligible: bool


@dataclass
class ProcessorPayout:
    """Processor acknowledgement of a payout request"""

    processor_payout_id: str
    status: str
    arrival_date: Optional[date] = None


TierCounts = Dict[PlanTier, int]
