"""Payout scheduler - standard and instant payout requests and their processor lifecycle"""

import logging
import uuid
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple
from sqlalchemy.orm import Session
from homebase_finance.config import settings
from homebase_finance.domain.models import PayoutStatus, PayoutTiming, PayoutType, ProviderSnapshot
from homebase_finance.domain.exceptions import (
    IdempotencyKeyReusedError,
    LedgerIntegrityError,
    PayoutNotFoundError,
    ProcessorRejectedError,
    ProcessorUnavailableError,
    ProviderNotFoundError,
)
from homebase_finance.domain.fees import INSTANT_PAYOUT_FEE_BPS
from homebase_finance.domain.payouts import (
    PayoutQuote,
    assert_transition,
    is_noop_transition,
    quote_instant_payout,
    quote_standard_payout,
    standard_arrival_date,
)
from homebase_finance.infrastructure.clients.processor import ProcessorClient
from homebase_finance.infrastructure.database.models import PayoutRequest
from homebase_finance.infrastructure.database.repositories import ProviderRepository, PayoutRepository
from homebase_finance.infrastructure.database.session import transaction
from homebase_finance.infrastructure.locking import ProviderLockRegistry, provider_locks
from homebase_finance.infrastructure.observability.logging import log_payout_requested, log_payout_transition
from homebase_finance.infrastructure.observability.metrics import (
    payout_transitions_counter,
    record_payout_request,
)
from homebase_finance.services.accounts import apply_processor_account, to_snapshot
from homebase_finance.utils.date_utils import to_utc_naive, utcnow

logger = logging.getLogger(__name__)


class PayoutScheduler:
    """
    Computes payout terms and asks the processor to move money.

    Balances are never decremented when a payout is requested. A requested
    payout only reserves its amount; the balance drops when the processor
    confirms the transfer is in transit.
    """

    def __init__(
        self,
        db: Session,
        processor: ProcessorClient,
        locks: ProviderLockRegistry = provider_locks,
        clock: Callable[[], datetime] = utcnow,
        instant_eta_minutes: int | None = None,
    ):
        self.db = db
        self.processor = processor
        self.locks = locks
        self.clock = clock
        self.instant_eta_minutes = instant_eta_minutes or settings.instant_payout_eta_minutes
        self.providers = ProviderRepository(db)
        self.payouts = PayoutRepository(db)

    def request_standard_payout(
        self,
        provider_id: str,
        amount_cents: int,
        request_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> PayoutRequest:
        """
        Fee-free payout arriving ``payout_delay_days`` business days from today.

        Raises:
            InsufficientBalanceError: amount exceeds available minus in-flight payouts
            ProcessorUnavailableError: processor timed out; nothing was recorded
            IdempotencyKeyReusedError: key already used for a different payout
        """
        return self._request(
            provider_id,
            amount_cents,
            PayoutType.STANDARD,
            lambda snapshot, now: quote_standard_payout(snapshot, amount_cents, now),
            request_id,
            idempotency_key,
        )

    def request_instant_payout(
        self,
        provider_id: str,
        amount_cents: int,
        request_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> PayoutRequest:
        """
        1.5% fee payout to a debit card, estimated to arrive in about 30 minutes.

        Raises:
            InstantPayoutIneligibleError: processor reports no instant capability
            InsufficientBalanceError: same rule as standard payouts
            ProcessorUnavailableError: processor timed out; nothing was recorded
            IdempotencyKeyReusedError: key already used for a different payout
        """
        return self._request(
            provider_id,
            amount_cents,
            PayoutType.INSTANT,
            lambda snapshot, now: quote_instant_payout(snapshot, amount_cents, now, self.instant_eta_minutes),
            request_id,
            idempotency_key,
        )

    def _request(
        self,
        provider_id: str,
        amount_cents: int,
        payout_type: PayoutType,
        make_quote: Callable[[ProviderSnapshot, datetime], PayoutQuote],
        request_id: Optional[str],
        idempotency_key: Optional[str],
    ) -> PayoutRequest:
        """
        With an ``idempotency_key`` a repeated request returns the payout
        already recorded under it, and a request retried after the processor
        timed out reaches the processor with the same key.
        """
        with self.locks.hold(provider_id):
            with transaction(self.db):
                account = self.providers.get_for_update(provider_id)
                if account is None:
                    raise ProviderNotFoundError(provider_id)

                if idempotency_key is not None:
                    existing = self.payouts.get_by_idempotency_key(provider_id, idempotency_key)
                    if existing is not None:
                        if existing.type != payout_type.value or existing.amount_cents != amount_cents:
                            raise IdempotencyKeyReusedError(idempotency_key)
                        record_payout_request(payout_type.value, "replayed")
                        return existing

                now = self.clock()
                snapshot = to_snapshot(account, self.payouts.reserved_cents(provider_id))
                quote = make_quote(snapshot, now)

                payout = PayoutRequest(
                    id=str(uuid.uuid4()),
                    provider_id=provider_id,
                    type=quote.type.value,
                    amount_cents=quote.amount_cents,
                    fee_cents=quote.fee_cents,
                    status=PayoutStatus.REQUESTED.value,
                    idempotency_key=idempotency_key,
                    requested_at=now,
                    expected_arrival=quote.expected_arrival,
                )
                self.payouts.add(payout)

                # Without a caller key our payout id is the processor idempotency key
                processor_key = f"{provider_id}:{idempotency_key}" if idempotency_key else payout.id
                try:
                    accepted = self.processor.create_payout(provider_id, amount_cents, quote.type, processor_key)
                    payout.processor_payout_id = accepted.processor_payout_id
                    outcome = "requested"
                except ProcessorRejectedError as e:
                    assert_transition(PayoutStatus.REQUESTED, PayoutStatus.FAILED)
                    payout.status = PayoutStatus.FAILED.value
                    payout.failure_reason = str(e)
                    outcome = "failed"
                except ProcessorUnavailableError:
                    record_payout_request(quote.type.value, "unavailable")
                    raise

                payout_id, status = payout.id, payout.status

        record_payout_request(quote.type.value, outcome)
        log_payout_requested(request_id, payout_id, provider_id, quote.type.value,
                             quote.amount_cents, quote.fee_cents, status)
        return payout

    def apply_payout_status(
        self,
        processor_payout_id: str,
        status: PayoutStatus | str,
        arrived_at: Optional[datetime] = None,
        failure_reason: Optional[str] = None,
    ) -> PayoutRequest:
        """
        Processor notification that a payout moved.

        Re-delivery of the current status is a no-op. The provider's
        available balance is decremented on the in_transit transition.

        Raises:
            PayoutNotFoundError: unknown processor payout id
            InvalidPayoutTransitionError: transition not allowed by the state machine
            LedgerIntegrityError: the confirmed payout exceeds the recorded balance
        """
        new_status = PayoutStatus(status)
        existing = self.payouts.get_by_processor_id(processor_payout_id)
        if existing is None:
            raise PayoutNotFoundError(processor_payout_id)
        provider_id = existing.provider_id

        with self.locks.hold(provider_id):
            with transaction(self.db):
                payout = self.payouts.get_by_processor_id(processor_payout_id)
                self.db.refresh(payout, with_for_update=True)
                old_status = PayoutStatus(payout.status)
                if is_noop_transition(old_status, new_status):
                    return payout
                assert_transition(old_status, new_status)

                if new_status == PayoutStatus.IN_TRANSIT:
                    account = self.providers.get_for_update(provider_id)
                    if account.available_balance_cents < payout.amount_cents:
                        raise LedgerIntegrityError(
                            f"Payout {payout.id} of {payout.amount_cents} cents exceeds available balance "
                            f"{account.available_balance_cents} for provider {provider_id}"
                        )
                    account.available_balance_cents -= payout.amount_cents
                elif new_status == PayoutStatus.PAID:
                    payout.arrived_at = to_utc_naive(arrived_at) if arrived_at else self.clock()
                elif new_status == PayoutStatus.FAILED:
                    payout.failure_reason = failure_reason or "Payout failed at processor"

                payout.status = new_status.value
                payout_id = payout.id

        payout_transitions_counter.labels(status=new_status.value).inc()
        log_payout_transition(payout_id, provider_id, old_status.value, new_status.value)
        return payout

    def list_payouts(self, provider_id: str, limit: int = 50) -> List[PayoutRequest]:
        """Payout history, newest first"""
        if self.providers.get(provider_id) is None:
            raise ProviderNotFoundError(provider_id)
        return self.payouts.list_by_provider(provider_id, limit=limit)

    def get_payout_timing(self, provider_id: str, today: Optional[date] = None) -> PayoutTiming:
        """Standard arrival date and instant terms, as shown on the provider dashboard"""
        account = self.providers.get(provider_id)
        if account is None:
            raise ProviderNotFoundError(provider_id)
        today = today or self.clock().date()
        return PayoutTiming(
            payout_delay_days=account.payout_delay_days,
            standard_arrival_date=standard_arrival_date(today, account.payout_delay_days),
            instant_eta_minutes=self.instant_eta_minutes,
            instant_fee_bps=INSTANT_PAYOUT_FEE_BPS,
            instant_payout_eligible=account.instant_payout_eligible,
        )

    def sync_balance(self, provider_id: str) -> ProviderSnapshot:
        """
        Replace balances, payout delay and instant eligibility with the
        processor's figures. Payouts the processor has accepted but not yet
        put in transit stay reserved here rather than being deducted twice.

        Raises:
            ProviderNotFoundError: no local account
            ProcessorUnavailableError: processor unreachable; nothing changed
        """
        if self.providers.get(provider_id) is None:
            raise ProviderNotFoundError(provider_id)
        state = self.processor.get_account(provider_id)

        with self.locks.hold(provider_id):
            with transaction(self.db):
                account = self.providers.get_for_update(provider_id)
                reserved = self.payouts.reserved_cents(provider_id)
                apply_processor_account(account, state, reserved)
                self.db.flush()
                snapshot = to_snapshot(account, reserved)
        return snapshot

    def reconcile_all(self) -> Tuple[int, int]:
        """
        Periodic balance reconciliation across every provider.

        One provider's processor failure does not stop the run.
        Returns (synced, failed).
        """
        synced, failed = 0, 0
        for provider_id in self.providers.list_ids():
            try:
                self.sync_balance(provider_id)
                synced += 1
            except (ProcessorUnavailableError, ProcessorRejectedError) as e:
                failed += 1
                logger.warning(f"Balance sync failed: {e}", extra={"provider_id": provider_id})
        return synced, failed
