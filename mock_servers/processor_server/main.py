from datetime import date, timedelta
from typing import Dict
import uuid

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

app = FastAPI(title="Mock Payment Processor", version="1.0.0")

# Connected accounts seeded for local runs
SEED_ACCOUNTS: Dict[str, dict] = {
    "prov_growth": {"available": 250_000, "pending": 40_000, "delay_days": 2, "instant": True},
    "prov_free": {"available": 12_000, "pending": 0, "delay_days": 2, "instant": False},
    "prov_scale": {"available": 1_500_000, "pending": 200_000, "delay_days": 1, "instant": True},
}
ACCOUNTS: Dict[str, dict] = {}
PAYOUTS: Dict[str, dict] = {}
IDEMPOTENCY: Dict[str, str] = {}


def reset_state() -> None:
    """Back to the seeded accounts with no payouts"""
    ACCOUNTS.clear()
    ACCOUNTS.update({provider_id: dict(account) for provider_id, account in SEED_ACCOUNTS.items()})
    PAYOUTS.clear()
    IDEMPOTENCY.clear()


reset_state()


class PayoutBody(BaseModel):
    provider_id: str
    amount_cents: int = Field(..., gt=0)
    method: str = "standard"


@app.get("/health")
def health(): return {"status": "ok"}


@app.get("/accounts/{provider_id}")
def get_account(provider_id: str):
    account = ACCOUNTS.get(provider_id)
    if account is None:
        raise HTTPException(status_code=404, detail="account not found")
    return {
        "id": provider_id,
        "balance": {"available": account["available"], "pending": account["pending"]},
        "payout_schedule": {"delay_days": account["delay_days"]},
        "instant_payouts_enabled": account["instant"],
    }


@app.post("/payouts")
def create_payout(body: PayoutBody, idempotency_key: str = Header(..., alias="Idempotency-Key")):
    if idempotency_key in IDEMPOTENCY:
        return PAYOUTS[IDEMPOTENCY[idempotency_key]]

    account = ACCOUNTS.get(body.provider_id)
    if account is None:
        raise HTTPException(status_code=404, detail="account not found")
    if body.method == "instant" and not account["instant"]:
        raise HTTPException(status_code=400, detail="No debit card on file for instant payouts")
    if body.amount_cents > account["available"]:
        raise HTTPException(status_code=400, detail="Insufficient funds in processor balance")

    # Funds leave the available balance as soon as the payout is created
    account["available"] -= body.amount_cents

    days = 0 if body.method == "instant" else account["delay_days"]
    payout = {
        "id": f"po_{uuid.uuid4().hex[:16]}",
        "status": "pending",
        "amount": body.amount_cents,
        "method": body.method,
        "arrival_date": (date.today() + timedelta(days=days)).isoformat(),
    }
    PAYOUTS[payout["id"]] = payout
    IDEMPOTENCY[idempotency_key] = payout["id"]
    return payout
