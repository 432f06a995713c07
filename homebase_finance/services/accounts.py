"""Provider account aggregate: onboarding upserts, snapshots and processor sync"""

from typing import Optional
from sqlalchemy.orm import Session
from homebase_finance.config import settings
from homebase_finance.domain.models import (
    PlanTier,
    ProcessorAccount,
    ProviderSnapshot,
    SubscriptionStatus,
)
from homebase_finance.domain.plans import parse_tier
from homebase_finance.domain.exceptions import InvalidAmountError, ProviderNotFoundError
from homebase_finance.infrastructure.database.models import ProviderAccount
from homebase_finance.infrastructure.database.repositories import ProviderRepository, PayoutRepository
from homebase_finance.infrastructure.database.session import transaction
from homebase_finance.infrastructure.locking import ProviderLockRegistry, provider_locks


def to_snapshot(account: ProviderAccount, reserved_payout_cents: int = 0) -> ProviderSnapshot:
    """Detach a provider row into an immutable view for callers"""
    return ProviderSnapshot(
        provider_id=account.id,
        current_tier=parse_tier(account.current_tier),
        subscription_status=SubscriptionStatus(account.subscription_status),
        payout_delay_days=account.payout_delay_days,
        instant_payout_eligible=account.instant_payout_eligible,
        available_balance_cents=account.available_balance_cents,
        pending_balance_cents=account.pending_balance_cents,
        reserved_payout_cents=reserved_payout_cents,
    )


def new_account(provider_id: str) -> ProviderAccount:
    return ProviderAccount(
        id=provider_id,
        current_tier=PlanTier.FREE.value,
        subscription_status=SubscriptionStatus.ACTIVE.value,
        payout_delay_days=settings.default_payout_delay_days,
        instant_payout_eligible=False,
        available_balance_cents=0,
        pending_balance_cents=0,
    )


def apply_processor_account(account: ProviderAccount, state: ProcessorAccount, reserved_payout_cents: int = 0) -> None:
    """
    Overwrite processor-owned fields with what the processor reports.

    The processor sets a payout's amount aside as soon as it accepts it,
    while this ledger debits on in_transit. Payouts still ``requested``
    locally are added back so they are not taken out twice.
    """
    account.available_balance_cents = state.available_balance_cents + reserved_payout_cents
    account.pending_balance_cents = state.pending_balance_cents
    account.payout_delay_days = state.payout_delay_days
    account.instant_payout_eligible = state.instant_payout_eligible


class ProviderAccounts:
    """Entry points used by onboarding / account management"""

    def __init__(self, db: Session, locks: ProviderLockRegistry = provider_locks):
        self.db = db
        self.locks = locks
        self.providers = ProviderRepository(db)
        self.payouts = PayoutRepository(db)

    def upsert(
        self,
        provider_id: str,
        tier: PlanTier | str | None = None,
        payout_delay_days: Optional[int] = None,
        instant_payout_eligible: Optional[bool] = None,
    ) -> ProviderSnapshot:
        """Create the account on first sight, then apply whichever fields are given"""
        parsed_tier = parse_tier(tier) if tier is not None else None
        if payout_delay_days is not None and payout_delay_days < 0:
            raise InvalidAmountError(f"payout_delay_days must be non-negative, got {payout_delay_days}")

        with self.locks.hold(provider_id):
            with transaction(self.db):
                account = self.providers.get_for_update(provider_id)
                if account is None:
                    account = self.providers.add(new_account(provider_id))
                if parsed_tier is not None:
                    account.current_tier = parsed_tier.value
                if payout_delay_days is not None:
                    account.payout_delay_days = payout_delay_days
                if instant_payout_eligible is not None:
                    account.instant_payout_eligible = instant_payout_eligible
                self.db.flush()
                snapshot = to_snapshot(account, self.payouts.reserved_cents(provider_id))
        return snapshot

    def get_snapshot(self, provider_id: str) -> ProviderSnapshot:
        account = self.providers.get(provider_id)
        if account is None:
            raise ProviderNotFoundError(provider_id)
        return to_snapshot(account, self.payouts.reserved_cents(provider_id))
