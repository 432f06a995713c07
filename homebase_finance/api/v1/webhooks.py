"""POST /v1/webhooks/processor - payment processor notifications"""

import logging
from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Request

from homebase_finance.api.v1.schemas import (
    AccountUpdatedEvent,
    PaymentCompletedEvent,
    PaymentRefundedEvent,
    PayoutUpdatedEvent,
    ProcessorEvent,
    SubscriptionActivatedEvent,
    SubscriptionCanceledEvent,
    SubscriptionPastDueEvent,
    WebhookAck,
)
from homebase_finance.api.dependencies import (
    get_alert_client,
    get_payout_scheduler,
    get_provider_accounts,
    get_request_id,
    get_revenue_ledger,
)
from homebase_finance.api.errors import to_http_exception
from homebase_finance.domain.exceptions import DomainException, DuplicateEventError
from homebase_finance.domain.models import CompletedPayment
from homebase_finance.infrastructure.clients.alerts import AlertClient
from homebase_finance.services.accounts import ProviderAccounts
from homebase_finance.services.payout_scheduler import PayoutScheduler
from homebase_finance.services.revenue_ledger import RevenueLedger

router = APIRouter()


@router.post("/webhooks/processor", response_model=WebhookAck)
def receive_processor_event(
    request: Request,
    background_tasks: BackgroundTasks,
    event: ProcessorEvent = Body(..., discriminator="type"),
    revenue: RevenueLedger = Depends(get_revenue_ledger),
    payouts: PayoutScheduler = Depends(get_payout_scheduler),
    accounts: ProviderAccounts = Depends(get_provider_accounts),
    alert_client: AlertClient = Depends(get_alert_client),
):
    """
    Ingest one processor notification.

    Delivery is at-least-once: a re-delivered payment or refund is acknowledged as
    ``duplicate`` with 200 so the processor stops retrying.
    """
    request_id = get_request_id(request)

    try:
        if isinstance(event, PaymentCompletedEvent):
            revenue.record_payment(
                CompletedPayment(
                    event_id=event.id,
                    provider_id=event.provider_id,
                    gross_amount_cents=event.gross_amount_cents,
                    occurred_at=event.occurred_at,
                    settlement_state=event.settlement_state,
                ),
                request_id=request_id,
            )
        elif isinstance(event, PaymentRefundedEvent):
            revenue.record_refund(
                event.id,
                event.provider_id,
                event.payment_id,
                refunded_at=event.refunded_at,
                request_id=request_id,
            )
        elif isinstance(event, PayoutUpdatedEvent):
            payouts.apply_payout_status(
                event.processor_payout_id,
                event.status,
                arrived_at=event.arrived_at,
                failure_reason=event.failure_message,
            )
        elif isinstance(event, SubscriptionActivatedEvent):
            revenue.record_subscription_active(event.provider_id, event.tier)
        elif isinstance(event, SubscriptionPastDueEvent):
            revenue.record_subscription_past_due(event.provider_id)
        elif isinstance(event, SubscriptionCanceledEvent):
            revenue.record_subscription_canceled(event.provider_id)
        elif isinstance(event, AccountUpdatedEvent):
            accounts.upsert(
                event.provider_id,
                payout_delay_days=event.payout_delay_days,
                instant_payout_eligible=event.instant_payouts_enabled,
            )
        else:
            raise HTTPException(status_code=422, detail="Unsupported event type")

    except DuplicateEventError:
        logging.info(f"Duplicate processor event {event.id}", extra={"request_id": request_id})
        return WebhookAck(event_id=event.id, status="duplicate")

    except DomainException as e:
        raise to_http_exception(e, request_id, event.type, background_tasks, alert_client)

    return WebhookAck(event_id=event.id, status="processed")
