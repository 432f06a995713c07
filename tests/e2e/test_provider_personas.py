"""
E2E flows through the HTTP API with the mock payment processor.

The processor client talks to the mock processor app in-process, so these
run without `make mock-up`.

Provider personas (seeded in the mock processor):
- prov_growth: Growth plan, funded, debit card on file
- prov_free: Free plan, small balance, no debit card
"""

import pytest
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient
from homebase_finance.api.dependencies import get_processor_client
from homebase_finance.infrastructure.clients.processor import ProcessorClient


@pytest.fixture
def api(client: TestClient, mock_processor: ProcessorClient) -> TestClient:
    """API client whose processor calls hit the mock processor"""
    client.app.dependency_overrides[get_processor_client] = lambda: mock_processor
    return client


def webhook(api: TestClient, event: dict) -> dict:
    response = api.post("/v1/webhooks/processor", json=event)
    assert response.status_code == 200, response.text
    return response.json()


def payment(event_id: str, provider_id: str, gross: int) -> dict:
    return {
        "id": event_id,
        "type": "payment.completed",
        "provider_id": provider_id,
        "gross_amount_cents": gross,
        "settlement_state": "available",
        "occurred_at": (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat(),
    }


@pytest.mark.integration
def test_growth_provider_month(api: TestClient):
    """
    prov_growth: subscribes, syncs balance, gets paid, takes an instant payout
    Expected: fees at 2.5%, balance only drops once the payout is in transit
    """
    webhook(api, {"id": "sub_1", "type": "subscription.activated", "provider_id": "prov_growth", "tier": "growth"})

    synced = api.post("/v1/providers/prov_growth/balance/sync").json()
    assert synced["available_balance_cents"] == 250000
    assert synced["instant_payout_eligible"] is True

    webhook(api, payment("pay_1", "prov_growth", 20000))
    assert webhook(api, payment("pay_1", "prov_growth", 20000))["status"] == "duplicate"
    assert api.get("/v1/providers/prov_growth").json()["available_balance_cents"] == 269500

    response = api.post("/v1/providers/prov_growth/payouts", json={"type": "instant", "amount_cents": 10000})
    assert response.status_code == 201
    payout = response.json()
    assert payout["fee_cents"] == 150
    assert payout["processor_payout_id"].startswith("po_")
    assert api.get("/v1/providers/prov_growth").json()["payable_balance_cents"] == 259500

    po = payout["processor_payout_id"]
    webhook(api, {"id": "po_evt_1", "type": "payout.updated", "processor_payout_id": po, "status": "in_transit"})
    webhook(api, {"id": "po_evt_2", "type": "payout.updated", "processor_payout_id": po, "status": "paid"})
    provider = api.get("/v1/providers/prov_growth").json()
    assert provider["available_balance_cents"] == 259500
    assert provider["reserved_payout_cents"] == 0

    mrr = api.get("/v1/reports/mrr").json()
    assert mrr["subscription_mrr_cents"] == 4900
    assert mrr["transaction_fee_mrr_cents"] == 500


@pytest.mark.integration
def test_balance_sync_while_payout_in_flight(api: TestClient):
    """
    prov_growth requests a payout, then a reconciliation runs before the
    processor reports it in transit
    Expected: the payout is reserved once and the in_transit update applies
    """
    api.put("/v1/providers/prov_growth", json={})
    api.post("/v1/providers/prov_growth/balance/sync")
    payout = api.post("/v1/providers/prov_growth/payouts", json={"type": "standard", "amount_cents": 30000}).json()

    assert api.post("/v1/admin/balances/reconcile").json() == {"synced": 1, "failed": 0}
    provider = api.get("/v1/providers/prov_growth").json()
    assert provider["available_balance_cents"] == 250000
    assert provider["payable_balance_cents"] == 220000

    po = payout["processor_payout_id"]
    webhook(api, {"id": "po_evt_1", "type": "payout.updated", "processor_payout_id": po, "status": "in_transit"})
    provider = api.get("/v1/providers/prov_growth").json()
    assert provider["available_balance_cents"] == 220000
    assert provider["reserved_payout_cents"] == 0


@pytest.mark.integration
def test_free_provider_cannot_take_instant_payout(api: TestClient):
    """
    prov_free: no debit card on file
    Expected: instant payout refused before reaching the processor, standard works
    """
    api.put("/v1/providers/prov_free", json={})
    api.post("/v1/providers/prov_free/balance/sync")

    instant = api.post("/v1/providers/prov_free/payouts", json={"type": "instant", "amount_cents": 5000})
    assert instant.status_code == 422
    assert instant.json()["detail"]["code"] == "instant_payout_ineligible"

    standard = api.post("/v1/providers/prov_free/payouts", json={"type": "standard", "amount_cents": 5000})
    assert standard.status_code == 201
    assert standard.json()["fee_cents"] == 0


@pytest.mark.integration
def test_canceled_provider_pays_free_tier_fees(api: TestClient):
    """
    prov_growth cancels mid-month
    Expected: earlier payment keeps its 2.5% fee, later ones pay 8%
    """
    webhook(api, {"id": "sub_1", "type": "subscription.activated", "provider_id": "prov_growth", "tier": "growth"})
    webhook(api, payment("pay_1", "prov_growth", 10000))
    webhook(api, {"id": "sub_2", "type": "subscription.canceled", "provider_id": "prov_growth"})
    webhook(api, payment("pay_2", "prov_growth", 10000))

    mrr = api.get("/v1/reports/mrr").json()
    assert mrr["subscription_mrr_cents"] == 0
    assert mrr["transaction_fee_mrr_cents"] == 250 + 800


@pytest.mark.integration
def test_referrer_redeems_credits_against_invoice(api: TestClient):
    """
    prov_growth refers two providers, then redeems $60 against its invoice
    Expected: $40 of liability remains and the books balance
    """
    for event_id in ("ref_1", "ref_2"):
        response = api.post(
            "/v1/referrals/credits",
            json={"referrer_id": "prov_growth", "amount_cents": 5000, "event_id": event_id},
        )
        assert response.status_code == 201

    redeemed = api.post("/v1/providers/prov_growth/credits/redeem", json={"up_to_amount_cents": 6000}).json()
    assert redeemed["redeemed_cents"] == 6000

    assert api.get("/v1/reports/referral-liability").json() == {"outstanding_cents": 4000, "consistent": True}
