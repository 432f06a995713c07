"""Read-only admin reports: plans, MRR, tier distribution, referral liability"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request

from homebase_finance.api.v1.schemas import (
    BalanceReconcileResponse,
    CreditExpenseResponse,
    LiabilityResponse,
    MRRResponse,
    PlanSchema,
    PlansResponse,
    RevenueBreakdownResponse,
    TierDistributionResponse,
    TierRevenueSchema,
)
from homebase_finance.api.dependencies import (
    get_alert_client,
    get_payout_scheduler,
    get_referral_ledger,
    get_request_id,
    get_revenue_ledger,
)
from homebase_finance.api.errors import report_integrity_violation, to_http_exception
from homebase_finance.domain.exceptions import DomainException, LedgerIntegrityError
from homebase_finance.domain.plans import list_plans
from homebase_finance.infrastructure.clients.alerts import AlertClient
from homebase_finance.services.payout_scheduler import PayoutScheduler
from homebase_finance.services.referral_ledger import ReferralCreditLedger
from homebase_finance.services.revenue_ledger import RevenueLedger

router = APIRouter()


@router.get("/plans", response_model=PlansResponse)
def get_plans():
    """Subscription tiers, cheapest first"""
    return PlansResponse(
        plans=[
            PlanSchema(
                tier=plan.tier,
                monthly_price_cents=plan.monthly_price_cents,
                transaction_fee_bps=plan.transaction_fee_bps,
            )
            for plan in list_plans()
        ]
    )


@router.get("/reports/mrr", response_model=MRRResponse)
def get_mrr(
    as_of: Optional[datetime] = Query(None, description="Defaults to now"),
    revenue: RevenueLedger = Depends(get_revenue_ledger),
):
    """
    Platform MRR/ARR.

    Transaction fees use a trailing 30-day window ending at ``as_of``.
    """
    report = revenue.get_mrr(as_of)
    return MRRResponse(
        as_of=report.as_of,
        subscription_mrr_cents=report.subscription_mrr_cents,
        transaction_fee_mrr_cents=report.transaction_fee_mrr_cents,
        total_mrr_cents=report.total_mrr_cents,
        arr_cents=report.arr_cents,
    )


@router.get("/reports/tier-distribution", response_model=TierDistributionResponse)
def get_tier_distribution(revenue: RevenueLedger = Depends(get_revenue_ledger)):
    """Active providers per plan tier"""
    distribution = revenue.get_tier_distribution()
    return TierDistributionResponse(distribution=distribution, total_active=sum(distribution.values()))


@router.get("/reports/revenue-breakdown", response_model=RevenueBreakdownResponse)
def get_revenue_breakdown(
    as_of: Optional[datetime] = Query(None),
    revenue: RevenueLedger = Depends(get_revenue_ledger),
):
    """Subscription vs transaction-fee revenue per tier"""
    report = revenue.get_mrr(as_of)
    tiers = revenue.get_revenue_breakdown(report.as_of)
    return RevenueBreakdownResponse(
        as_of=report.as_of,
        tiers=[
            TierRevenueSchema(
                tier=t.tier,
                active_providers=t.active_providers,
                subscription_mrr_cents=t.subscription_mrr_cents,
                transaction_fee_mrr_cents=t.transaction_fee_mrr_cents,
                total_mrr_cents=t.total_mrr_cents,
                payment_count=t.payment_count,
                average_fee_bps=t.average_fee_bps,
            )
            for t in tiers
        ],
    )


@router.get("/reports/referral-liability", response_model=LiabilityResponse)
def get_referral_liability(
    request: Request,
    background_tasks: BackgroundTasks,
    credits: ReferralCreditLedger = Depends(get_referral_ledger),
    alert_client: AlertClient = Depends(get_alert_client),
):
    """
    Outstanding referral liability, cross-checked against the expense history.

    A mismatch is still reported (``consistent: false``) but also alerts.
    """
    try:
        outstanding = credits.check_liability_consistency()
    except LedgerIntegrityError as e:
        report_integrity_violation(e, get_request_id(request), "referral_liability", background_tasks, alert_client)
        return LiabilityResponse(outstanding_cents=credits.get_outstanding_liability(), consistent=False)
    return LiabilityResponse(outstanding_cents=outstanding, consistent=True)


@router.get("/reports/referral-expense", response_model=CreditExpenseResponse)
def get_referral_expense(
    month: str = Query(..., description="Calendar month as YYYY-MM"),
    credits: ReferralCreditLedger = Depends(get_referral_ledger),
):
    """Credits issued, redeemed and expired in a calendar month"""
    try:
        expense = credits.get_monthly_expense(month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return CreditExpenseResponse(
        month=expense.month,
        issued_cents=expense.issued_cents,
        redeemed_cents=expense.redeemed_cents,
        expired_cents=expense.expired_cents,
    )


@router.post("/admin/balances/reconcile", response_model=BalanceReconcileResponse)
def reconcile_balances(
    request: Request,
    scheduler: PayoutScheduler = Depends(get_payout_scheduler),
):
    """Sync every provider's balance from the processor"""
    try:
        synced, failed = scheduler.reconcile_all()
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request), "reconcile_balances")
    return BalanceReconcileResponse(synced=synced, failed=failed)
