"""Referral credit ledger - issuance, FIFO redemption, expiry and liability reporting"""

from datetime import datetime, timedelta
from typing import Callable, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from homebase_finance.config import settings
from homebase_finance.domain.models import CreditStatus, MonthlyCreditExpense
from homebase_finance.domain.credits import allocate_credits
from homebase_finance.domain.exceptions import DuplicateEventError, InvalidAmountError, LedgerIntegrityError
from homebase_finance.infrastructure.database.models import ReferralCredit
from homebase_finance.infrastructure.database.repositories import CreditRepository
from homebase_finance.infrastructure.database.session import transaction
from homebase_finance.infrastructure.locking import ProviderLockRegistry, provider_locks
from homebase_finance.infrastructure.observability.logging import log_credits_redeemed
from homebase_finance.infrastructure.observability.metrics import (
    duplicate_events_counter,
    referral_credit_cents_counter,
)
from homebase_finance.utils.date_utils import month_bounds, to_utc_naive, utcnow


class ReferralCreditLedger:
    """
    Tracks what the platform owes referrers.

    Qualification happens upstream; this ledger only accounts for credits
    once a milestone has been reported.
    """

    def __init__(
        self,
        db: Session,
        locks: ProviderLockRegistry = provider_locks,
        clock: Callable[[], datetime] = utcnow,
        ttl_days: int | None = None,
    ):
        self.db = db
        self.locks = locks
        self.clock = clock
        self.ttl_days = ttl_days or settings.referral_credit_ttl_days
        self.credits = CreditRepository(db)

    def issue_credit(
        self,
        referrer_id: str,
        amount_cents: int,
        source_event_id: Optional[str] = None,
    ) -> ReferralCredit:
        """
        Create a pending credit for a qualified referral milestone.

        Raises:
            DuplicateEventError: ``source_event_id`` was already used
            InvalidAmountError: amount is not positive
        """
        if amount_cents <= 0:
            raise InvalidAmountError(f"Credit amount must be positive, got {amount_cents}")

        try:
            with self.locks.hold(referrer_id):
                with transaction(self.db):
                    if source_event_id and self.credits.get_by_source_event(source_event_id):
                        raise DuplicateEventError(source_event_id)
                    now = self.clock()
                    credit = ReferralCredit(
                        referrer_id=referrer_id,
                        amount_cents=amount_cents,
                        status=CreditStatus.PENDING.value,
                        source_event_id=source_event_id,
                        issued_at=now,
                        expires_at=now + timedelta(days=self.ttl_days),
                    )
                    self._insert_credit(credit)
        except DuplicateEventError:
            duplicate_events_counter.labels(kind="credit").inc()
            raise

        referral_credit_cents_counter.labels(action="issued").inc(amount_cents)
        return credit

    def _insert_credit(self, credit: ReferralCredit) -> None:
        try:
            self.credits.add(credit)
        except IntegrityError as e:
            self.db.rollback()
            if credit.source_event_id and self.credits.get_by_source_event(credit.source_event_id):
                raise DuplicateEventError(credit.source_event_id) from e
            raise LedgerIntegrityError(f"Could not persist referral credit: {e.orig}") from e

    def redeem_credits(self, provider_id: str, up_to_amount_cents: int) -> int:
        """
        Apply the provider's pending credits oldest-first against an invoice.

        A credit bigger than what is left to cover is split: the applied part
        becomes a redeemed row, the remainder stays pending with its original
        issue and expiry dates.

        Returns the amount actually redeemed, which may be less than requested.
        """
        with self.locks.hold(provider_id):
            with transaction(self.db):
                now = self.clock()
                pending = self.credits.pending_for_referrer(provider_id, now)
                allocations = allocate_credits(((c.id, c.amount_cents) for c in pending), up_to_amount_cents)
                by_id = {c.id: c for c in pending}

                for allocation in allocations:
                    credit = by_id[allocation.credit_id]
                    if allocation.is_partial:
                        credit.amount_cents = allocation.remainder_cents
                        self.credits.add(
                            ReferralCredit(
                                referrer_id=credit.referrer_id,
                                amount_cents=allocation.applied_cents,
                                status=CreditStatus.REDEEMED.value,
                                split_from_id=credit.id,
                                issued_at=credit.issued_at,
                                expires_at=credit.expires_at,
                                redeemed_at=now,
                            )
                        )
                    else:
                        credit.status = CreditStatus.REDEEMED.value
                        credit.redeemed_at = now

                redeemed = sum(a.applied_cents for a in allocations)

        if redeemed:
            referral_credit_cents_counter.labels(action="redeemed").inc(redeemed)
        log_credits_redeemed(provider_id, up_to_amount_cents, redeemed)
        return redeemed

    def expire_credits(self, as_of: Optional[datetime] = None) -> int:
        """Expire pending credits past their expiry date; returns cents expired"""
        as_of = to_utc_naive(as_of) if as_of else self.clock()
        with transaction(self.db):
            expired = self.credits.pending_expired_by(as_of)
            for credit in expired:
                credit.status = CreditStatus.EXPIRED.value
                credit.expired_at = as_of
            total = sum(c.amount_cents for c in expired)

        if total:
            referral_credit_cents_counter.labels(action="expired").inc(total)
        return total

    def get_outstanding_liability(self) -> int:
        """Sum of all pending credits across every referrer"""
        return self.credits.outstanding_cents()

    def get_monthly_expense(self, month: str) -> MonthlyCreditExpense:
        """
        Credit activity for a ``YYYY-MM`` month, bucketed by the month each
        credit was issued, redeemed or expired.
        """
        start, end = month_bounds(month)
        return MonthlyCreditExpense(
            month=month,
            issued_cents=self.credits.issued_cents_between(start, end),
            redeemed_cents=self.credits.redeemed_cents_between(start, end),
            expired_cents=self.credits.expired_cents_between(start, end),
        )

    def check_liability_consistency(self) -> int:
        """
        Outstanding liability must equal everything issued minus everything
        redeemed or expired, as the monthly expense report sees it.

        Returns the outstanding amount.

        Raises:
            LedgerIntegrityError: the two figures disagree
        """
        outstanding = self.credits.outstanding_cents()
        issued, redeemed, expired = self.credits.lifetime_totals()
        expected = issued - redeemed - expired
        if outstanding != expected:
            raise LedgerIntegrityError(
                f"Referral liability mismatch: pending credits total {outstanding} cents, "
                f"expense history implies {expected} cents"
            )
        return outstanding
