"""SQLAlchemy ORM models for the financial ledger"""

import uuid
from sqlalchemy import Column, String, BigInteger, Boolean, DateTime, Integer, ForeignKey, Text, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from homebase_finance.utils.date_utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class ProviderAccount(Base):
    """One provider organization's plan, payout settings and balances"""

    __tablename__ = "provider_account"

    id = Column(String(64), primary_key=True)
    current_tier = Column(Text, nullable=False, default="free")
    subscription_status = Column(Text, nullable=False, default="active")
    payout_delay_days = Column(Integer, nullable=False, default=2)
    instant_payout_eligible = Column(Boolean, nullable=False, default=False)
    available_balance_cents = Column(BigInteger, nullable=False, default=0)
    pending_balance_cents = Column(BigInteger, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Optimistic concurrency: UPDATE ... WHERE version = :old
    __mapper_args__ = {"version_id_col": version}

    payments = relationship("PaymentEvent", back_populates="provider")
    payouts = relationship("PayoutRequest", back_populates="provider")


class PaymentEvent(Base):
    """One completed client payment; only the refund marker changes after insert"""

    __tablename__ = "payment_event"

    id = Column(String(128), primary_key=True)  # Processor event id
    provider_id = Column(String(64), ForeignKey("provider_account.id"), nullable=False, index=True)
    gross_amount_cents = Column(BigInteger, nullable=False)
    fee_amount_cents = Column(BigInteger, nullable=False)
    fee_bps = Column(Integer, nullable=False)
    tier = Column(Text, nullable=False)
    settlement_state = Column(Text, nullable=False)
    occurred_at = Column(DateTime, nullable=False, index=True)
    recorded_at = Column(DateTime, nullable=False, default=utcnow)
    refund_event_id = Column(String(128), nullable=True, unique=True)
    refunded_at = Column(DateTime, nullable=True)

    provider = relationship("ProviderAccount", back_populates="payments")


class PayoutRequest(Base):
    """Standard or instant payout and its processor-reported status"""

    __tablename__ = "payout_request"

    id = Column(String(36), primary_key=True, default=_uuid)
    provider_id = Column(String(64), ForeignKey("provider_account.id"), nullable=False, index=True)
    type = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    fee_cents = Column(BigInteger, nullable=False, default=0)
    status = Column(Text, nullable=False, default="requested")
    processor_payout_id = Column(String(128), nullable=True, unique=True)
    idempotency_key = Column(String(128), nullable=True)  # Caller-supplied, unique per provider
    failure_reason = Column(Text, nullable=True)
    requested_at = Column(DateTime, nullable=False, default=utcnow)
    expected_arrival = Column(DateTime, nullable=False)
    arrived_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    provider = relationship("ProviderAccount", back_populates="payouts")

    __table_args__ = (UniqueConstraint("provider_id", "idempotency_key", name="uq_payout_request_idempotency"),)

    @property
    def net_amount_cents(self) -> int:
        return self.amount_cents - self.fee_cents


class ReferralCredit(Base):
    """Platform liability owed to a referrer, redeemable against invoices"""

    __tablename__ = "referral_credit"

    id = Column(String(36), primary_key=True, default=_uuid)
    referrer_id = Column(String(64), nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    source_event_id = Column(String(128), nullable=True, unique=True)
    split_from_id = Column(String(36), ForeignKey("referral_credit.id"), nullable=True)
    issued_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    redeemed_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)


Index("ix_referral_credit_fifo", ReferralCredit.referrer_id, ReferralCredit.status, ReferralCredit.issued_at)
