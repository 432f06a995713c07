"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from typing import Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from homebase_finance.domain.models import (
    PayoutStatus,
    PayoutType,
    PlanTier,
    SettlementState,
    SubscriptionStatus,
)


# --- Processor webhooks -------------------------------------------------------
# Each payload kind is a closed shape; unknown kinds and unknown fields are
# rejected at the boundary instead of being passed through.


class _ProcessorEventBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, description="Processor event id (idempotency key)")


class PaymentCompletedEvent(_ProcessorEventBase):
    type: Literal["payment.completed"]
    provider_id: str = Field(..., min_length=1)
    gross_amount_cents: int = Field(..., ge=0)
    settlement_state: SettlementState = SettlementState.PENDING
    occurred_at: datetime


class PaymentRefundedEvent(_ProcessorEventBase):
    type: Literal["payment.refunded"]
    provider_id: str = Field(..., min_length=1)
    payment_id: str = Field(..., min_length=1, description="Event id of the refunded payment")
    refunded_at: Optional[datetime] = None


class PayoutUpdatedEvent(_ProcessorEventBase):
    type: Literal["payout.updated"]
    processor_payout_id: str = Field(..., min_length=1)
    status: Literal["in_transit", "paid", "failed"]
    arrived_at: Optional[datetime] = None
    failure_message: Optional[str] = None


class SubscriptionActivatedEvent(_ProcessorEventBase):
    type: Literal["subscription.activated"]
    provider_id: str = Field(..., min_length=1)
    tier: str


class SubscriptionPastDueEvent(_ProcessorEventBase):
    type: Literal["subscription.past_due"]
    provider_id: str = Field(..., min_length=1)


class SubscriptionCanceledEvent(_ProcessorEventBase):
    type: Literal["subscription.canceled"]
    provider_id: str = Field(..., min_length=1)


class AccountUpdatedEvent(_ProcessorEventBase):
    type: Literal["account.updated"]
    provider_id: str = Field(..., min_length=1)
    payout_delay_days: int = Field(..., ge=0)
    instant_payouts_enabled: bool


# Discriminated on ``type`` at the endpoint
ProcessorEvent = Union[
    PaymentCompletedEvent,
    PaymentRefundedEvent,
    PayoutUpdatedEvent,
    SubscriptionActivatedEvent,
    SubscriptionPastDueEvent,
    SubscriptionCanceledEvent,
    AccountUpdatedEvent,
]


class WebhookAck(BaseModel):
    """Response for POST /v1/webhooks/processor"""

    event_id: str
    status: Literal["processed", "duplicate"]


# --- Providers ----------------------------------------------------------------


class ProviderUpsertRequest(BaseModel):
    """Request body for PUT /v1/providers/{provider_id}"""

    tier: Optional[str] = None
    payout_delay_days: Optional[int] = Field(None, ge=0)
    instant_payout_eligible: Optional[bool] = None


class ProviderResponse(BaseModel):
    provider_id: str
    current_tier: PlanTier
    subscription_status: SubscriptionStatus
    payout_delay_days: int
    instant_payout_eligible: bool
    available_balance_cents: int
    pending_balance_cents: int
    reserved_payout_cents: int
    payable_balance_cents: int


# --- Payouts ------------------------------------------------------------------


class PayoutCreateRequest(BaseModel):
    """Request body for POST /v1/providers/{provider_id}/payouts"""

    type: PayoutType = PayoutType.STANDARD
    amount_cents: int = Field(..., gt=0, description="Payout amount in cents")
    idempotency_key: Optional[str] = Field(
        None, min_length=1, max_length=100, description="Retries with the same key return the original payout"
    )


class PayoutResponse(BaseModel):
    payout_id: str
    provider_id: str
    type: PayoutType
    amount_cents: int
    fee_cents: int
    net_amount_cents: int
    status: PayoutStatus
    processor_payout_id: Optional[str] = None
    failure_reason: Optional[str] = None
    requested_at: datetime
    expected_arrival: datetime
    arrived_at: Optional[datetime] = None


class PayoutHistoryResponse(BaseModel):
    provider_id: str
    payouts: List[PayoutResponse]


class PayoutTimingResponse(BaseModel):
    provider_id: str
    payout_delay_days: int
    standard_arrival_date: date
    standard_fee_cents: int = 0
    instant_eta_minutes: int
    instant_fee_bps: int
    instant_payout_eligible: bool


# --- Referral credits ---------------------------------------------------------


class CreditIssueRequest(BaseModel):
    """Request body for POST /v1/referrals/credits"""

    referrer_id: str = Field(..., min_length=1)
    amount_cents: int = Field(..., gt=0)
    event_id: Optional[str] = Field(None, min_length=1, description="Qualification event id (idempotency key)")


class CreditResponse(BaseModel):
    credit_id: str
    referrer_id: str
    amount_cents: int
    status: str
    issued_at: datetime
    expires_at: datetime


class CreditRedeemRequest(BaseModel):
    up_to_amount_cents: int = Field(..., ge=0)


class CreditRedeemResponse(BaseModel):
    provider_id: str
    requested_cents: int
    redeemed_cents: int


class CreditExpireResponse(BaseModel):
    as_of: datetime
    expired_cents: int


# --- Reports ------------------------------------------------------------------


class PlanSchema(BaseModel):
    tier: PlanTier
    monthly_price_cents: int
    transaction_fee_bps: int


class PlansResponse(BaseModel):
    plans: List[PlanSchema]


class MRRResponse(BaseModel):
    as_of: datetime
    subscription_mrr_cents: int
    transaction_fee_mrr_cents: int
    total_mrr_cents: int
    arr_cents: int


class TierDistributionResponse(BaseModel):
    distribution: Dict[PlanTier, int]
    total_active: int


class TierRevenueSchema(BaseModel):
    tier: PlanTier
    active_providers: int
    subscription_mrr_cents: int
    transaction_fee_mrr_cents: int
    total_mrr_cents: int
    payment_count: int
    average_fee_bps: float


class RevenueBreakdownResponse(BaseModel):
    as_of: datetime
    tiers: List[TierRevenueSchema]


class LiabilityResponse(BaseModel):
    outstanding_cents: int
    consistent: bool


class CreditExpenseResponse(BaseModel):
    month: str
    issued_cents: int
    redeemed_cents: int
    expired_cents: int


class BalanceReconcileResponse(BaseModel):
    synced: int
    failed: int
