"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from homebase_finance.infrastructure.clients.processor import ProcessorClient
from homebase_finance.infrastructure.clients.alerts import AlertClient
from homebase_finance.infrastructure.database.session import get_db
from homebase_finance.services.accounts import ProviderAccounts
from homebase_finance.services.payout_scheduler import PayoutScheduler
from homebase_finance.services.referral_ledger import ReferralCreditLedger
from homebase_finance.services.revenue_ledger import RevenueLedger


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_processor_client() -> ProcessorClient:
    """Provide payment processor client instance"""
    return ProcessorClient()


def get_alert_client() -> AlertClient:
    """Provide alert webhook client instance"""
    return AlertClient()


def get_provider_accounts(db: Session = Depends(get_db)) -> ProviderAccounts:
    return ProviderAccounts(db)


def get_revenue_ledger(db: Session = Depends(get_db)) -> RevenueLedger:
    return RevenueLedger(db)


def get_payout_scheduler(
    db: Session = Depends(get_db),
    processor: ProcessorClient = Depends(get_processor_client),
) -> PayoutScheduler:
    return PayoutScheduler(db, processor)


def get_referral_ledger(db: Session = Depends(get_db)) -> ReferralCreditLedger:
    return ReferralCreditLedger(db)
