"""Provider accounts, payouts and credit redemption endpoints"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request

from homebase_finance.api.v1.schemas import (
    CreditRedeemRequest,
    CreditRedeemResponse,
    PayoutCreateRequest,
    PayoutHistoryResponse,
    PayoutResponse,
    PayoutTimingResponse,
    ProviderResponse,
    ProviderUpsertRequest,
)
from homebase_finance.api.dependencies import (
    get_alert_client,
    get_payout_scheduler,
    get_provider_accounts,
    get_referral_ledger,
    get_request_id,
)
from homebase_finance.api.errors import to_http_exception
from homebase_finance.domain.exceptions import DomainException
from homebase_finance.domain.models import PayoutType, ProviderSnapshot
from homebase_finance.infrastructure.clients.alerts import AlertClient
from homebase_finance.infrastructure.database.models import PayoutRequest
from homebase_finance.services.accounts import ProviderAccounts
from homebase_finance.services.payout_scheduler import PayoutScheduler
from homebase_finance.services.referral_ledger import ReferralCreditLedger

router = APIRouter()


def provider_response(snapshot: ProviderSnapshot) -> ProviderResponse:
    return ProviderResponse(
        provider_id=snapshot.provider_id,
        current_tier=snapshot.current_tier,
        subscription_status=snapshot.subscription_status,
        payout_delay_days=snapshot.payout_delay_days,
        instant_payout_eligible=snapshot.instant_payout_eligible,
        available_balance_cents=snapshot.available_balance_cents,
        pending_balance_cents=snapshot.pending_balance_cents,
        reserved_payout_cents=snapshot.reserved_payout_cents,
        payable_balance_cents=snapshot.payable_balance_cents,
    )


def payout_response(payout: PayoutRequest) -> PayoutResponse:
    return PayoutResponse(
        payout_id=payout.id,
        provider_id=payout.provider_id,
        type=payout.type,
        amount_cents=payout.amount_cents,
        fee_cents=payout.fee_cents,
        net_amount_cents=payout.net_amount_cents,
        status=payout.status,
        processor_payout_id=payout.processor_payout_id,
        failure_reason=payout.failure_reason,
        requested_at=payout.requested_at,
        expected_arrival=payout.expected_arrival,
        arrived_at=payout.arrived_at,
    )


@router.put("/providers/{provider_id}", response_model=ProviderResponse)
def upsert_provider(
    provider_id: str,
    body: ProviderUpsertRequest,
    request: Request,
    accounts: ProviderAccounts = Depends(get_provider_accounts),
):
    """Create or update a provider account (onboarding / plan management)"""
    try:
        snapshot = accounts.upsert(
            provider_id,
            tier=body.tier,
            payout_delay_days=body.payout_delay_days,
            instant_payout_eligible=body.instant_payout_eligible,
        )
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request), "upsert_provider")
    return provider_response(snapshot)


@router.get("/providers/{provider_id}", response_model=ProviderResponse)
def get_provider(
    provider_id: str,
    request: Request,
    accounts: ProviderAccounts = Depends(get_provider_accounts),
):
    """Balance snapshot of one provider"""
    try:
        snapshot = accounts.get_snapshot(provider_id)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request), "get_provider")
    return provider_response(snapshot)


@router.post("/providers/{provider_id}/payouts", response_model=PayoutResponse, status_code=201)
def create_payout(
    provider_id: str,
    body: PayoutCreateRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    scheduler: PayoutScheduler = Depends(get_payout_scheduler),
    alert_client: AlertClient = Depends(get_alert_client),
):
    """
    Request a standard or instant payout.

    A processor rejection is recorded as a ``failed`` payout and returned;
    the provider has to re-request manually. Retrying with the same
    ``idempotency_key`` after a 503 never creates a second payout.
    """
    request_id = get_request_id(request)
    try:
        if body.type == PayoutType.INSTANT:
            payout = scheduler.request_instant_payout(
                provider_id, body.amount_cents, request_id=request_id, idempotency_key=body.idempotency_key
            )
        else:
            payout = scheduler.request_standard_payout(
                provider_id, body.amount_cents, request_id=request_id, idempotency_key=body.idempotency_key
            )
    except DomainException as e:
        raise to_http_exception(e, request_id, "create_payout", background_tasks, alert_client)
    return payout_response(payout)


@router.get("/providers/{provider_id}/payouts", response_model=PayoutHistoryResponse)
def list_payouts(
    provider_id: str,
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    scheduler: PayoutScheduler = Depends(get_payout_scheduler),
):
    """Payout history, newest first"""
    try:
        payouts = scheduler.list_payouts(provider_id, limit=limit)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request), "list_payouts")
    return PayoutHistoryResponse(provider_id=provider_id, payouts=[payout_response(p) for p in payouts])


@router.get("/providers/{provider_id}/payout-timing", response_model=PayoutTimingResponse)
def get_payout_timing(
    provider_id: str,
    request: Request,
    scheduler: PayoutScheduler = Depends(get_payout_scheduler),
):
    """When a payout requested today would arrive"""
    try:
        timing = scheduler.get_payout_timing(provider_id)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request), "payout_timing")
    return PayoutTimingResponse(
        provider_id=provider_id,
        payout_delay_days=timing.payout_delay_days,
        standard_arrival_date=timing.standard_arrival_date,
        instant_eta_minutes=timing.instant_eta_minutes,
        instant_fee_bps=timing.instant_fee_bps,
        instant_payout_eligible=timing.instant_payout_eligible,
    )


@router.post("/providers/{provider_id}/balance/sync", response_model=ProviderResponse)
def sync_balance(
    provider_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    scheduler: PayoutScheduler = Depends(get_payout_scheduler),
    alert_client: AlertClient = Depends(get_alert_client),
):
    """Pull balances and payout settings from the processor"""
    request_id = get_request_id(request)
    try:
        snapshot = scheduler.sync_balance(provider_id)
    except DomainException as e:
        raise to_http_exception(e, request_id, "sync_balance", background_tasks, alert_client)
    return provider_response(snapshot)


@router.post("/providers/{provider_id}/credits/redeem", response_model=CreditRedeemResponse)
def redeem_credits(
    provider_id: str,
    body: CreditRedeemRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    credits: ReferralCreditLedger = Depends(get_referral_ledger),
    alert_client: AlertClient = Depends(get_alert_client),
):
    """Apply pending referral credits against an invoice amount"""
    request_id = get_request_id(request)
    try:
        redeemed = credits.redeem_credits(provider_id, body.up_to_amount_cents)
    except DomainException as e:
        raise to_http_exception(e, request_id, "redeem_credits", background_tasks, alert_client)
    return CreditRedeemResponse(
        provider_id=provider_id,
        requested_cents=body.up_to_amount_cents,
        redeemed_cents=redeemed,
    )
