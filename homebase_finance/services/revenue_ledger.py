"""Revenue ledger - payment and refund ingestion, subscription state and recurring revenue reports"""

from datetime import datetime
from typing import Callable, List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from homebase_finance.config import settings
from homebase_finance.domain.models import (
    CompletedPayment,
    MRRReport,
    PlanTier,
    SettlementState,
    SubscriptionStatus,
    TierCounts,
    TierRevenue,
)
from homebase_finance.domain.exceptions import (
    DuplicateEventError,
    InvalidAmountError,
    LedgerIntegrityError,
    PaymentNotFoundError,
    ProviderNotFoundError,
)
from homebase_finance.domain.fees import apply_bps, compute_fee
from homebase_finance.domain.plans import lookup, parse_tier, list_plans
from homebase_finance.domain.revenue import fee_window, subscription_mrr, tier_distribution
from homebase_finance.infrastructure.database.models import PaymentEvent
from homebase_finance.infrastructure.database.repositories import ProviderRepository, PaymentRepository
from homebase_finance.infrastructure.database.session import transaction
from homebase_finance.infrastructure.locking import ProviderLockRegistry, provider_locks
from homebase_finance.infrastructure.observability.logging import log_payment_recorded, log_payment_refunded
from homebase_finance.infrastructure.observability.metrics import record_payment, record_refund, duplicate_events_counter
from homebase_finance.services.accounts import new_account
from homebase_finance.utils.date_utils import to_utc_naive, utcnow


class RevenueLedger:
    """Owns payment events and subscription state; answers MRR questions"""

    def __init__(
        self,
        db: Session,
        locks: ProviderLockRegistry = provider_locks,
        clock: Callable[[], datetime] = utcnow,
        fee_window_days: int | None = None,
    ):
        self.db = db
        self.locks = locks
        self.clock = clock
        self.fee_window_days = fee_window_days or settings.fee_window_days
        self.providers = ProviderRepository(db)
        self.payments = PaymentRepository(db)

    def record_payment(self, payment: CompletedPayment, request_id: Optional[str] = None) -> PaymentEvent:
        """
        Ingest one completed client payment.

        The fee is computed here with the provider's current tier and
        snapshotted on the event, so later plan changes never touch it.
        Net proceeds land in the available or pending balance as the
        processor reported.

        Raises:
            DuplicateEventError: event id already recorded (caller treats as success)
            ProviderNotFoundError: no account for ``payment.provider_id``
            InvalidAmountError: negative gross amount
        """
        if payment.gross_amount_cents < 0:
            raise InvalidAmountError(f"Gross amount must be non-negative, got {payment.gross_amount_cents}")

        try:
            with self.locks.hold(payment.provider_id):
                with transaction(self.db):
                    if self.payments.exists(payment.event_id):
                        raise DuplicateEventError(payment.event_id)

                    account = self.providers.get_for_update(payment.provider_id)
                    if account is None:
                        raise ProviderNotFoundError(payment.provider_id)

                    tier = parse_tier(account.current_tier)
                    fee_bps = lookup(tier).transaction_fee_bps
                    fee_amount = compute_fee(tier, payment.gross_amount_cents)

                    event = PaymentEvent(
                        id=payment.event_id,
                        provider_id=payment.provider_id,
                        gross_amount_cents=payment.gross_amount_cents,
                        fee_amount_cents=fee_amount,
                        fee_bps=fee_bps,
                        tier=tier.value,
                        settlement_state=SettlementState(payment.settlement_state).value,
                        occurred_at=to_utc_naive(payment.occurred_at),
                        recorded_at=self.clock(),
                    )
                    self._insert_event(event)

                    net = payment.gross_amount_cents - fee_amount
                    if event.settlement_state == SettlementState.AVAILABLE.value:
                        account.available_balance_cents += net
                    else:
                        account.pending_balance_cents += net
        except DuplicateEventError:
            duplicate_events_counter.labels(kind="payment").inc()
            raise

        record_payment(tier.value, fee_amount)
        log_payment_recorded(request_id, payment.event_id, payment.provider_id, tier.value,
                             payment.gross_amount_cents, fee_amount)
        return event

    def _insert_event(self, event: PaymentEvent) -> None:
        """Flush the event; a unique-key race with another worker is still a duplicate"""
        try:
            self.payments.add(event)
        except IntegrityError as e:
            self.db.rollback()
            if self.payments.exists(event.id):
                raise DuplicateEventError(event.id) from e
            raise LedgerIntegrityError(f"Could not persist payment {event.id}: {e.orig}") from e

    def record_refund(
        self,
        event_id: str,
        provider_id: str,
        payment_id: str,
        refunded_at: Optional[datetime] = None,
        request_id: Optional[str] = None,
    ) -> PaymentEvent:
        """
        Full refund of a recorded payment.

        The net proceeds come back out of the balance they were credited to,
        which may leave it negative when the money was already paid out.
        The fee stops counting towards transaction-fee MRR for any window
        ending after ``refunded_at``; the fee snapshot itself is kept.

        Raises:
            DuplicateEventError: refund event already applied, or the payment was already refunded
            PaymentNotFoundError: no such payment for ``provider_id``
        """
        try:
            with self.locks.hold(provider_id):
                with transaction(self.db):
                    if self.payments.refund_recorded(event_id):
                        raise DuplicateEventError(event_id)

                    account = self.providers.get_for_update(provider_id)
                    payment = self.payments.get_for_update(payment_id)
                    if account is None or payment is None or payment.provider_id != provider_id:
                        raise PaymentNotFoundError(payment_id)
                    if payment.refunded_at is not None:
                        raise DuplicateEventError(event_id)

                    net = payment.gross_amount_cents - payment.fee_amount_cents
                    if payment.settlement_state == SettlementState.AVAILABLE.value:
                        account.available_balance_cents -= net
                    else:
                        account.pending_balance_cents -= net

                    payment.refund_event_id = event_id
                    payment.refunded_at = to_utc_naive(refunded_at) if refunded_at else self.clock()
                    tier, fee_amount = payment.tier, payment.fee_amount_cents
        except DuplicateEventError:
            duplicate_events_counter.labels(kind="refund").inc()
            raise

        record_refund(tier, fee_amount)
        log_payment_refunded(request_id, event_id, payment_id, provider_id, net)
        return payment

    def record_subscription_active(self, provider_id: str, tier: PlanTier | str) -> None:
        """Provider is paying for ``tier``; repeated calls converge to the same state"""
        self._upsert_subscription(provider_id, SubscriptionStatus.ACTIVE, parse_tier(tier))

    def record_subscription_past_due(self, provider_id: str) -> None:
        """Invoice failed; the tier is kept but no longer counts towards MRR"""
        self._upsert_subscription(provider_id, SubscriptionStatus.PAST_DUE, None)

    def record_subscription_canceled(self, provider_id: str) -> None:
        """Subscription ended; the provider falls back to free-tier fees"""
        self._upsert_subscription(provider_id, SubscriptionStatus.CANCELED, PlanTier.FREE)

    def _upsert_subscription(self, provider_id: str, status: SubscriptionStatus, tier: Optional[PlanTier]) -> None:
        with self.locks.hold(provider_id):
            with transaction(self.db):
                account = self.providers.get_for_update(provider_id)
                if account is None:
                    account = self.providers.add(new_account(provider_id))
                if tier is not None:
                    account.current_tier = tier.value
                account.subscription_status = status.value

    def get_mrr(self, as_of: Optional[datetime] = None) -> MRRReport:
        """
        Monthly recurring revenue as of ``as_of``.

        subscription MRR: monthly price of every active subscription
        transaction-fee MRR: fees from payments in the trailing window,
        less payments refunded by ``as_of``
        """
        as_of = to_utc_naive(as_of) if as_of else self.clock()
        active = [parse_tier(t) for t in self.providers.active_tiers()]
        start, end = fee_window(as_of, self.fee_window_days)
        return MRRReport(
            as_of=as_of,
            subscription_mrr_cents=subscription_mrr(active),
            transaction_fee_mrr_cents=self.payments.fee_total_between(start, end),
        )

    def get_tier_distribution(self) -> TierCounts:
        """Active providers per tier"""
        return tier_distribution(parse_tier(t) for t in self.providers.active_tiers())

    def get_revenue_breakdown(self, as_of: Optional[datetime] = None) -> List[TierRevenue]:
        """Subscription and fee revenue per tier, cheapest tier first"""
        as_of = to_utc_naive(as_of) if as_of else self.clock()
        counts = self.get_tier_distribution()
        start, end = fee_window(as_of, self.fee_window_days)
        fee_stats = {parse_tier(tier): (fees, n, avg) for tier, fees, n, avg in self.payments.fee_stats_by_tier(start, end)}

        breakdown = []
        for plan in list_plans():
            fees, n, avg = fee_stats.get(plan.tier, (0, 0, 0.0))
            breakdown.append(
                TierRevenue(
                    tier=plan.tier,
                    active_providers=counts[plan.tier],
                    subscription_mrr_cents=counts[plan.tier] * plan.monthly_price_cents,
                    transaction_fee_mrr_cents=fees,
                    payment_count=n,
                    average_fee_bps=round(avg, 2),
                )
            )
        return breakdown

    def audit_fee_records(self) -> List[str]:
        """Ids of stored payments whose fee no longer re-derives from gross and bps"""
        return [
            event.id
            for event in self.payments.iter_all()
            if apply_bps(event.gross_amount_cents, event.fee_bps) != event.fee_amount_cents
        ]
