"""Referral credit issuance and expiry endpoints"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import JSONResponse

from homebase_finance.api.v1.schemas import CreditIssueRequest, CreditResponse, CreditExpireResponse
from homebase_finance.api.dependencies import get_alert_client, get_referral_ledger, get_request_id
from homebase_finance.api.errors import error_body, to_http_exception
from homebase_finance.domain.exceptions import DomainException, DuplicateEventError
from homebase_finance.infrastructure.clients.alerts import AlertClient
from homebase_finance.services.referral_ledger import ReferralCreditLedger
from homebase_finance.utils.date_utils import to_utc_naive, utcnow

router = APIRouter()


@router.post("/referrals/credits", response_model=CreditResponse, status_code=201)
def issue_credit(
    body: CreditIssueRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    credits: ReferralCreditLedger = Depends(get_referral_ledger),
    alert_client: AlertClient = Depends(get_alert_client),
):
    """
    Issue a credit for a qualified referral milestone.

    Re-sending the same ``event_id`` returns 409 with kind ``duplicate``;
    callers should treat that as success.
    """
    request_id = get_request_id(request)
    try:
        credit = credits.issue_credit(body.referrer_id, body.amount_cents, source_event_id=body.event_id)
    except DuplicateEventError as e:
        return JSONResponse(status_code=409, content={"detail": error_body(e)})
    except DomainException as e:
        raise to_http_exception(e, request_id, "issue_credit", background_tasks, alert_client)

    return CreditResponse(
        credit_id=credit.id,
        referrer_id=credit.referrer_id,
        amount_cents=credit.amount_cents,
        status=credit.status,
        issued_at=credit.issued_at,
        expires_at=credit.expires_at,
    )


@router.post("/referrals/credits/expire", response_model=CreditExpireResponse)
def expire_credits(
    request: Request,
    background_tasks: BackgroundTasks,
    as_of: Optional[datetime] = Query(None, description="Expire credits due on or before this time"),
    credits: ReferralCreditLedger = Depends(get_referral_ledger),
    alert_client: AlertClient = Depends(get_alert_client),
):
    """Expire pending credits past their expiry date"""
    as_of = to_utc_naive(as_of) if as_of else utcnow()
    try:
        expired = credits.expire_credits(as_of)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request), "expire_credits", background_tasks, alert_client)
    return CreditExpireResponse(as_of=as_of, expired_cents=expired)
