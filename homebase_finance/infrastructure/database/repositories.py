"""Data access layer for ledger entities"""

from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session
from homebase_finance.infrastructure.database.models import (
    ProviderAccount,
    PaymentEvent,
    PayoutRequest,
    ReferralCredit,
)
from homebase_finance.domain.models import CreditStatus, PayoutStatus, SubscriptionStatus


class ProviderRepository:
    """Repository for provider accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, provider_id: str) -> Optional[ProviderAccount]:
        return self.db.get(ProviderAccount, provider_id)

    def get_for_update(self, provider_id: str) -> Optional[ProviderAccount]:
        """Row-lock the provider for the rest of the transaction (no-op on SQLite)"""
        return (
            self.db.query(ProviderAccount)
            .filter(ProviderAccount.id == provider_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def add(self, account: ProviderAccount) -> ProviderAccount:
        self.db.add(account)
        self.db.flush()
        return account

    def list_ids(self) -> List[str]:
        return [row.id for row in self.db.query(ProviderAccount.id).order_by(ProviderAccount.id).all()]

    def active_tiers(self) -> List[str]:
        """Tier of every provider whose subscription is active"""
        rows = (
            self.db.query(ProviderAccount.current_tier)
            .filter(ProviderAccount.subscription_status == SubscriptionStatus.ACTIVE.value)
            .all()
        )
        return [row.current_tier for row in rows]


class PaymentRepository:
    """Repository for completed payment events"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str) -> Optional[PaymentEvent]:
        return self.db.get(PaymentEvent, event_id)

    def exists(self, event_id: str) -> bool:
        return self.get(event_id) is not None

    def get_for_update(self, event_id: str) -> Optional[PaymentEvent]:
        return (
            self.db.query(PaymentEvent)
            .filter(PaymentEvent.id == event_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def refund_recorded(self, refund_event_id: str) -> bool:
        return (
            self.db.query(PaymentEvent.id)
            .filter(PaymentEvent.refund_event_id == refund_event_id)
            .first()
        ) is not None

    def add(self, event: PaymentEvent) -> PaymentEvent:
        self.db.add(event)
        self.db.flush()
        return event

    @staticmethod
    def _in_fee_window(start: datetime, end: datetime):
        """start < occurred_at <= end, and not refunded by ``end``"""
        return and_(
            PaymentEvent.occurred_at > start,
            PaymentEvent.occurred_at <= end,
            or_(PaymentEvent.refunded_at.is_(None), PaymentEvent.refunded_at > end),
        )

    def fee_total_between(self, start: datetime, end: datetime) -> int:
        """Sum of platform fees kept from payments in the window"""
        total = (
            self.db.query(func.coalesce(func.sum(PaymentEvent.fee_amount_cents), 0))
            .filter(self._in_fee_window(start, end))
            .scalar()
        )
        return int(total)

    def fee_stats_by_tier(self, start: datetime, end: datetime) -> List[Tuple[str, int, int, float]]:
        """(tier, fee_total, payment_count, avg_fee_bps) for unrefunded events in the window"""
        rows = (
            self.db.query(
                PaymentEvent.tier,
                func.coalesce(func.sum(PaymentEvent.fee_amount_cents), 0),
                func.count(PaymentEvent.id),
                func.avg(PaymentEvent.fee_bps),
            )
            .filter(self._in_fee_window(start, end))
            .group_by(PaymentEvent.tier)
            .all()
        )
        return [(tier, int(fees), int(count), float(avg or 0)) for tier, fees, count, avg in rows]

    def iter_all(self, batch_size: int = 500):
        return self.db.query(PaymentEvent).order_by(PaymentEvent.occurred_at).yield_per(batch_size)


class PayoutRepository:
    """Repository for payout requests"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, payout: PayoutRequest) -> PayoutRequest:
        self.db.add(payout)
        self.db.flush()
        return payout

    def get_by_processor_id(self, processor_payout_id: str) -> Optional[PayoutRequest]:
        return (
            self.db.query(PayoutRequest)
            .filter(PayoutRequest.processor_payout_id == processor_payout_id)
            .first()
        )

    def get_by_idempotency_key(self, provider_id: str, idempotency_key: str) -> Optional[PayoutRequest]:
        return (
            self.db.query(PayoutRequest)
            .filter(PayoutRequest.provider_id == provider_id, PayoutRequest.idempotency_key == idempotency_key)
            .first()
        )

    def reserved_cents(self, provider_id: str) -> int:
        """Amount tied up in payouts the processor has not yet put in transit"""
        total = (
            self.db.query(func.coalesce(func.sum(PayoutRequest.amount_cents), 0))
            .filter(
                PayoutRequest.provider_id == provider_id,
                PayoutRequest.status == PayoutStatus.REQUESTED.value,
            )
            .scalar()
        )
        return int(total)

    def list_by_provider(self, provider_id: str, limit: int = 50) -> List[PayoutRequest]:
        return (
            self.db.query(PayoutRequest)
            .filter(PayoutRequest.provider_id == provider_id)
            .order_by(PayoutRequest.requested_at.desc())
            .limit(limit)
            .all()
        )


class CreditRepository:
    """Repository for referral credits"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, credit: ReferralCredit) -> ReferralCredit:
        self.db.add(credit)
        self.db.flush()
        return credit

    def get_by_source_event(self, source_event_id: str) -> Optional[ReferralCredit]:
        return (
            self.db.query(ReferralCredit)
            .filter(ReferralCredit.source_event_id == source_event_id)
            .first()
        )

    def pending_for_referrer(self, referrer_id: str, as_of: datetime) -> List[ReferralCredit]:
        """Unexpired pending credits, oldest first"""
        return (
            self.db.query(ReferralCredit)
            .filter(
                ReferralCredit.referrer_id == referrer_id,
                ReferralCredit.status == CreditStatus.PENDING.value,
                ReferralCredit.expires_at > as_of,
            )
            .order_by(ReferralCredit.issued_at.asc(), ReferralCredit.id.asc())
            .all()
        )

    def pending_expired_by(self, as_of: datetime) -> List[ReferralCredit]:
        return (
            self.db.query(ReferralCredit)
            .filter(
                ReferralCredit.status == CreditStatus.PENDING.value,
                ReferralCredit.expires_at <= as_of,
            )
            .all()
        )

    def outstanding_cents(self) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(ReferralCredit.amount_cents), 0))
            .filter(ReferralCredit.status == CreditStatus.PENDING.value)
            .scalar()
        )
        return int(total)

    def issued_cents_between(self, start: datetime, end: datetime) -> int:
        """Credits issued in [start, end); split rows carry the parent's issue date"""
        total = (
            self.db.query(func.coalesce(func.sum(ReferralCredit.amount_cents), 0))
            .filter(ReferralCredit.issued_at >= start, ReferralCredit.issued_at < end)
            .scalar()
        )
        return int(total)

    def redeemed_cents_between(self, start: datetime, end: datetime) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(ReferralCredit.amount_cents), 0))
            .filter(
                ReferralCredit.status == CreditStatus.REDEEMED.value,
                ReferralCredit.redeemed_at >= start,
                ReferralCredit.redeemed_at < end,
            )
            .scalar()
        )
        return int(total)

    def expired_cents_between(self, start: datetime, end: datetime) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(ReferralCredit.amount_cents), 0))
            .filter(
                ReferralCredit.status == CreditStatus.EXPIRED.value,
                ReferralCredit.expired_at >= start,
                ReferralCredit.expired_at < end,
            )
            .scalar()
        )
        return int(total)

    def lifetime_totals(self) -> Tuple[int, int, int]:
        """
        (issued, redeemed, expired) across all time, keyed on the event
        timestamps the monthly expense report aggregates by.
        """
        amount = func.coalesce(func.sum(ReferralCredit.amount_cents), 0)
        issued = self.db.query(amount).scalar()
        redeemed = self.db.query(amount).filter(ReferralCredit.redeemed_at.isnot(None)).scalar()
        expired = self.db.query(amount).filter(ReferralCredit.expired_at.isnot(None)).scalar()
        return int(issued), int(redeemed), int(expired)
