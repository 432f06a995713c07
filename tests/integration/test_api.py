"""Integration tests for API endpoints"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from homebase_finance.api.dependencies import get_referral_ledger
from homebase_finance.domain.exceptions import LedgerIntegrityError, ProcessorRejectedError, ProcessorUnavailableError
from homebase_finance.domain.models import ProcessorAccount, ProcessorPayout
from homebase_finance.infrastructure.database.models import ProviderAccount, ReferralCredit
from homebase_finance.services.referral_ledger import ReferralCreditLedger
from homebase_finance.utils.date_utils import next_business_day, utcnow


@pytest.fixture(autouse=True)
def accepting_processor(processor):
    processor.create_payout.side_effect = lambda provider_id, amount, payout_type, key: ProcessorPayout(
        processor_payout_id=f"po_{key}", status="pending"
    )
    return processor


def payment_event(event_id="evt_1", provider_id="prov_1", gross=100000, state="available", hours_ago=1):
    occurred_at = datetime.now(timezone.utc) - timedelta(hours=hours_ago)
    return {
        "id": event_id,
        "type": "payment.completed",
        "provider_id": provider_id,
        "gross_amount_cents": gross,
        "settlement_state": state,
        "occurred_at": occurred_at.isoformat(),
    }


def payout_event(processor_payout_id, status, event_id="evt_po"):
    return {
        "id": event_id,
        "type": "payout.updated",
        "processor_payout_id": processor_payout_id,
        "status": status,
    }


@pytest.fixture
def growth_provider(client: TestClient):
    """Growth provider with $975 available after one $1000 payment"""
    client.put("/v1/providers/prov_1", json={"tier": "growth", "instant_payout_eligible": True})
    client.post("/v1/webhooks/processor", json=payment_event())
    return "prov_1"


def test_health_endpoint(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "homebase_payments_recorded" in response.text


def test_request_id_is_propagated(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_list_plans(client: TestClient):
    response = client.get("/v1/plans")

    assert response.status_code == 200
    plans = response.json()["plans"]
    assert [p["tier"] for p in plans] == ["free", "growth", "pro", "scale"]
    assert plans[1] == {"tier": "growth", "monthly_price_cents": 4900, "transaction_fee_bps": 250}


def test_upsert_and_get_provider(client: TestClient):
    response = client.put("/v1/providers/prov_1", json={"tier": "pro", "payout_delay_days": 3})
    assert response.status_code == 200

    data = client.get("/v1/providers/prov_1").json()
    assert data["current_tier"] == "pro"
    assert data["subscription_status"] == "active"
    assert data["payout_delay_days"] == 3
    assert data["instant_payout_eligible"] is False
    assert data["available_balance_cents"] == 0


def test_unknown_provider_is_404(client: TestClient):
    response = client.get("/v1/providers/ghost")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "provider_not_found"


def test_unknown_tier_is_rejected(client: TestClient):
    response = client.put("/v1/providers/prov_1", json={"tier": "enterprise"})

    assert response.status_code == 422
    assert response.json()["detail"]["kind"] == "rejected"
    assert response.json()["detail"]["code"] == "unknown_tier"


def test_payment_webhook_credits_net_amount(client: TestClient, growth_provider):
    data = client.get("/v1/providers/prov_1").json()

    assert data["available_balance_cents"] == 97500
    mrr = client.get("/v1/reports/mrr").json()
    assert mrr["transaction_fee_mrr_cents"] == 2500
    assert mrr["subscription_mrr_cents"] == 4900


def test_duplicate_payment_webhook_is_acknowledged(client: TestClient, growth_provider):
    response = client.post("/v1/webhooks/processor", json=payment_event())

    assert response.status_code == 200
    assert response.json() == {"event_id": "evt_1", "status": "duplicate"}
    assert client.get("/v1/reports/mrr").json()["transaction_fee_mrr_cents"] == 2500
    assert client.get("/v1/providers/prov_1").json()["available_balance_cents"] == 97500


def test_refund_webhook(client: TestClient, growth_provider):
    refund = {"id": "evt_ref_1", "type": "payment.refunded", "provider_id": "prov_1", "payment_id": "evt_1"}

    assert client.post("/v1/webhooks/processor", json=refund).json()["status"] == "processed"
    assert client.post("/v1/webhooks/processor", json=refund).json()["status"] == "duplicate"

    assert client.get("/v1/providers/prov_1").json()["available_balance_cents"] == 0
    assert client.get("/v1/reports/mrr").json()["transaction_fee_mrr_cents"] == 0


def test_refund_of_unknown_payment_is_404(client: TestClient, growth_provider):
    refund = {"id": "evt_ref_1", "type": "payment.refunded", "provider_id": "prov_1", "payment_id": "evt_missing"}

    response = client.post("/v1/webhooks/processor", json=refund)

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "payment_not_found"


def test_payment_for_unknown_provider_is_404(client: TestClient):
    response = client.post("/v1/webhooks/processor", json=payment_event(provider_id="ghost"))
    assert response.status_code == 404


def test_unknown_webhook_type_is_rejected(client: TestClient):
    response = client.post("/v1/webhooks/processor", json={"id": "evt_x", "type": "charge.disputed"})
    assert response.status_code == 422


def test_unexpected_webhook_field_is_rejected(client: TestClient):
    body = payment_event()
    body["coupon"] = "FREE"
    response = client.post("/v1/webhooks/processor", json=body)
    assert response.status_code == 422


def test_subscription_webhooks(client: TestClient):
    activated = {"id": "evt_s1", "type": "subscription.activated", "provider_id": "prov_1", "tier": "scale"}
    assert client.post("/v1/webhooks/processor", json=activated).status_code == 200
    assert client.get("/v1/providers/prov_1").json()["current_tier"] == "scale"

    canceled = {"id": "evt_s2", "type": "subscription.canceled", "provider_id": "prov_1"}
    assert client.post("/v1/webhooks/processor", json=canceled).status_code == 200

    data = client.get("/v1/providers/prov_1").json()
    assert data["current_tier"] == "free"
    assert data["subscription_status"] == "canceled"


def test_account_updated_webhook(client: TestClient):
    client.put("/v1/providers/prov_1", json={})
    event = {
        "id": "evt_a1",
        "type": "account.updated",
        "provider_id": "prov_1",
        "payout_delay_days": 4,
        "instant_payouts_enabled": True,
    }

    assert client.post("/v1/webhooks/processor", json=event).status_code == 200

    data = client.get("/v1/providers/prov_1").json()
    assert data["payout_delay_days"] == 4
    assert data["instant_payout_eligible"] is True


def test_instant_payout_lifecycle(client: TestClient, growth_provider):
    response = client.post("/v1/providers/prov_1/payouts", json={"type": "instant", "amount_cents": 10000})

    assert response.status_code == 201
    payout = response.json()
    assert payout["fee_cents"] == 150
    assert payout["net_amount_cents"] == 9850
    assert payout["status"] == "requested"

    provider = client.get("/v1/providers/prov_1").json()
    assert provider["available_balance_cents"] == 97500
    assert provider["reserved_payout_cents"] == 10000
    assert provider["payable_balance_cents"] == 87500

    ack = client.post("/v1/webhooks/processor", json=payout_event(payout["processor_payout_id"], "in_transit"))
    assert ack.json()["status"] == "processed"
    assert client.get("/v1/providers/prov_1").json()["available_balance_cents"] == 87500

    client.post("/v1/webhooks/processor", json=payout_event(payout["processor_payout_id"], "paid", "evt_po2"))
    history = client.get("/v1/providers/prov_1/payouts").json()["payouts"]
    assert history[0]["status"] == "paid"
    assert history[0]["arrived_at"] is not None


def test_payout_over_balance_is_rejected(client: TestClient, growth_provider):
    response = client.post("/v1/providers/prov_1/payouts", json={"amount_cents": 97501})

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "insufficient_balance"


def test_payout_processor_down_is_retryable(client: TestClient, processor, growth_provider):
    processor.create_payout.side_effect = ProcessorUnavailableError("Processor timeout after 5.0s")

    response = client.post("/v1/providers/prov_1/payouts", json={"amount_cents": 5000})

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "5"
    assert response.json()["detail"]["kind"] == "retryable"
    assert client.get("/v1/providers/prov_1/payouts").json()["payouts"] == []


def test_payout_retry_with_idempotency_key(client: TestClient, processor, growth_provider):
    body = {"amount_cents": 5000, "idempotency_key": "po-req-1"}
    processor.create_payout.side_effect = ProcessorUnavailableError("Processor timeout after 5.0s")
    assert client.post("/v1/providers/prov_1/payouts", json=body).status_code == 503

    processor.create_payout.side_effect = lambda provider_id, amount, payout_type, key: ProcessorPayout(
        processor_payout_id=f"po_{key}", status="pending"
    )
    first = client.post("/v1/providers/prov_1/payouts", json=body)
    second = client.post("/v1/providers/prov_1/payouts", json=body)

    assert first.status_code == second.status_code == 201
    assert first.json()["payout_id"] == second.json()["payout_id"]
    assert first.json()["processor_payout_id"] == "po_prov_1:po-req-1"
    assert len(client.get("/v1/providers/prov_1/payouts").json()["payouts"]) == 1


def test_idempotency_key_reuse_is_409(client: TestClient, growth_provider):
    client.post("/v1/providers/prov_1/payouts", json={"amount_cents": 5000, "idempotency_key": "po-req-1"})

    response = client.post("/v1/providers/prov_1/payouts", json={"amount_cents": 6000, "idempotency_key": "po-req-1"})

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "idempotency_key_reused"


def test_payout_processor_rejection_returns_failed_payout(client: TestClient, processor, growth_provider):
    processor.create_payout.side_effect = ProcessorRejectedError("No debit card on file for instant payouts", 400)

    response = client.post("/v1/providers/prov_1/payouts", json={"type": "instant", "amount_cents": 5000})

    assert response.status_code == 201
    assert response.json()["status"] == "failed"
    assert response.json()["failure_reason"] == "No debit card on file for instant payouts"


def test_illegal_payout_transition_is_409(client: TestClient, growth_provider):
    payout = client.post("/v1/providers/prov_1/payouts", json={"amount_cents": 5000}).json()

    response = client.post("/v1/webhooks/processor", json=payout_event(payout["processor_payout_id"], "paid"))

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "invalid_payout_transition"


def test_integrity_violation_alerts(client: TestClient, db, alert_client, growth_provider):
    payout = client.post("/v1/providers/prov_1/payouts", json={"amount_cents": 50000}).json()
    db.get(ProviderAccount, "prov_1").available_balance_cents = 1000
    db.commit()

    response = client.post("/v1/webhooks/processor", json=payout_event(payout["processor_payout_id"], "in_transit"))

    assert response.status_code == 500
    assert response.json()["detail"]["kind"] == "integrity"
    alert_client.send_integrity_alert.assert_called_once()
    assert alert_client.send_integrity_alert.call_args.args[0]["operation"] == "payout.updated"


def test_payout_timing(client: TestClient):
    client.put("/v1/providers/prov_1", json={"payout_delay_days": 2})

    data = client.get("/v1/providers/prov_1/payout-timing").json()

    assert data["standard_arrival_date"] == next_business_day(utcnow().date(), 2).isoformat()
    assert data["standard_fee_cents"] == 0
    assert data["instant_fee_bps"] == 150
    assert data["instant_eta_minutes"] == 30


def test_balance_sync(client: TestClient, processor):
    client.put("/v1/providers/prov_1", json={})
    processor.get_account.return_value = ProcessorAccount("prov_1", 42000, 8000, 2, True)

    data = client.post("/v1/providers/prov_1/balance/sync").json()

    assert data["available_balance_cents"] == 42000
    assert data["pending_balance_cents"] == 8000
    assert data["instant_payout_eligible"] is True


def test_reconcile_all(client: TestClient, processor):
    client.put("/v1/providers/prov_a", json={})
    client.put("/v1/providers/prov_b", json={})
    processor.get_account.side_effect = [
        ProcessorAccount("prov_a", 100, 0, 2, False),
        ProcessorUnavailableError("Processor error: 502"),
    ]

    response = client.post("/v1/admin/balances/reconcile")

    assert response.json() == {"synced": 1, "failed": 1}


def test_tier_distribution_and_breakdown(client: TestClient, growth_provider):
    client.put("/v1/providers/prov_2", json={"tier": "scale"})

    distribution = client.get("/v1/reports/tier-distribution").json()
    assert distribution["distribution"] == {"free": 0, "growth": 1, "pro": 0, "scale": 1}
    assert distribution["total_active"] == 2

    tiers = {t["tier"]: t for t in client.get("/v1/reports/revenue-breakdown").json()["tiers"]}
    assert tiers["growth"]["transaction_fee_mrr_cents"] == 2500
    assert tiers["scale"]["subscription_mrr_cents"] == 29900


def test_referral_credit_flow(client: TestClient):
    first = client.post("/v1/referrals/credits", json={"referrer_id": "prov_ref", "amount_cents": 5000, "event_id": "r1"})
    assert first.status_code == 201
    assert first.json()["status"] == "pending"
    client.post("/v1/referrals/credits", json={"referrer_id": "prov_ref", "amount_cents": 5000, "event_id": "r2"})

    redeemed = client.post("/v1/providers/prov_ref/credits/redeem", json={"up_to_amount_cents": 6000}).json()
    assert redeemed["redeemed_cents"] == 6000

    liability = client.get("/v1/reports/referral-liability").json()
    assert liability == {"outstanding_cents": 4000, "consistent": True}

    expense = client.get("/v1/reports/referral-expense", params={"month": utcnow().strftime("%Y-%m")}).json()
    assert expense["issued_cents"] == 10000
    assert expense["redeemed_cents"] == 6000


def test_duplicate_referral_credit_is_409(client: TestClient):
    body = {"referrer_id": "prov_ref", "amount_cents": 5000, "event_id": "r1"}
    client.post("/v1/referrals/credits", json=body)

    response = client.post("/v1/referrals/credits", json=body)

    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "duplicate"
    assert client.get("/v1/reports/referral-liability").json()["outstanding_cents"] == 5000


def test_expire_credits_endpoint(client: TestClient):
    client.post("/v1/referrals/credits", json={"referrer_id": "prov_ref", "amount_cents": 5000})

    response = client.post("/v1/referrals/credits/expire", params={"as_of": "2099-01-01T00:00:00"})

    assert response.json()["expired_cents"] == 5000
    assert client.get("/v1/reports/referral-liability").json() == {"outstanding_cents": 0, "consistent": True}


def test_expire_credits_integrity_failure_alerts(client: TestClient, alert_client):
    credits = MagicMock(spec=ReferralCreditLedger)
    credits.expire_credits.side_effect = LedgerIntegrityError("Ledger write failed: disk I/O error")
    client.app.dependency_overrides[get_referral_ledger] = lambda: credits

    response = client.post("/v1/referrals/credits/expire")

    assert response.status_code == 500
    alert_client.send_integrity_alert.assert_called_once()
    assert alert_client.send_integrity_alert.call_args.args[0]["operation"] == "expire_credits"


def test_liability_mismatch_reports_and_alerts(client: TestClient, db, alert_client):
    credit = client.post("/v1/referrals/credits", json={"referrer_id": "prov_ref", "amount_cents": 5000}).json()
    db.get(ReferralCredit, credit["credit_id"]).status = "redeemed"
    db.commit()

    response = client.get("/v1/reports/referral-liability")

    assert response.status_code == 200
    assert response.json() == {"outstanding_cents": 0, "consistent": False}
    alert_client.send_integrity_alert.assert_called_once()


def test_referral_expense_bad_month(client: TestClient):
    response = client.get("/v1/reports/referral-expense", params={"month": "2026-13"})
    assert response.status_code == 400
