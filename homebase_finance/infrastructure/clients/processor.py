"""Payment processor HTTP client for balances, payout settings and payout transfers"""

import httpx
from datetime import date
from homebase_finance.domain.models import ProcessorAccount, ProcessorPayout, PayoutType
from homebase_finance.domain.exceptions import ProcessorUnavailableError, ProcessorRejectedError
from homebase_finance.infrastructure.observability.metrics import (
    processor_failures_counter,
    processor_latency_histogram,
)
from homebase_finance.config import settings


class ProcessorClient:
    """
    Client for the external payment processor.

    The engine only reads account state and *requests* transfers here; the
    processor moves the money and reports back through webhooks.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
    ):
        self.base_url = (base_url or settings.processor_api_base).rstrip("/")
        self.api_key = api_key or settings.processor_api_key
        self.timeout = timeout or settings.http_timeout_seconds
        self._http_client = http_client

    def _request(self, operation: str, method: str, path: str, **kwargs) -> dict:
        """
        Raises:
            ProcessorUnavailableError: timeout, network failure or 5xx
            ProcessorRejectedError: 4xx
        """
        client = self._http_client or httpx.Client(timeout=self.timeout)
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            with processor_latency_histogram.labels(operation=operation).time():
                response = client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            response.raise_for_status()
            return response.json()

        except httpx.TimeoutException as e:
            processor_failures_counter.labels(operation=operation).inc()
            raise ProcessorUnavailableError(f"Processor timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status >= 500:
                processor_failures_counter.labels(operation=operation).inc()
                raise ProcessorUnavailableError(f"Processor error: {status}") from e
            raise ProcessorRejectedError(_error_message(e.response), status_code=status) from e
        except httpx.RequestError as e:
            processor_failures_counter.labels(operation=operation).inc()
            raise ProcessorUnavailableError(f"Processor unreachable: {e}") from e
        except ValueError as e:
            processor_failures_counter.labels(operation=operation).inc()
            raise ProcessorUnavailableError(f"Invalid JSON from processor: {e}") from e
        finally:
            if self._http_client is None:
                client.close()

    def get_account(self, provider_id: str) -> ProcessorAccount:
        """Fetch balance, payout schedule and instant-payout capability"""
        data = self._request("get_account", "GET", f"/accounts/{provider_id}")
        try:
            return ProcessorAccount(
                provider_id=provider_id,
                available_balance_cents=int(data["balance"]["available"]),
                pending_balance_cents=int(data["balance"]["pending"]),
                payout_delay_days=int(data["payout_schedule"]["delay_days"]),
                instant_payout_eligible=bool(data["instant_payouts_enabled"]),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise ProcessorUnavailableError(f"Invalid account data from processor: {e}") from e

    def create_payout(
        self,
        provider_id: str,
        amount_cents: int,
        payout_type: PayoutType,
        idempotency_key: str,
    ) -> ProcessorPayout:
        """Ask the processor to start a transfer to the provider's bank or card"""
        data = self._request(
            "create_payout",
            "POST",
            "/payouts",
            json={
                "provider_id": provider_id,
                "amount_cents": amount_cents,
                "method": payout_type.value,
            },
            headers={"Idempotency-Key": idempotency_key},
        )
        try:
            arrival = data.get("arrival_date")
            return ProcessorPayout(
                processor_payout_id=data["id"],
                status=data["status"],
                arrival_date=date.fromisoformat(arrival) if arrival else None,
            )
        except (KeyError, ValueError, TypeError) as e:
            raise ProcessorUnavailableError(f"Invalid payout data from processor: {e}") from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Processor rejected request: {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error") or body.get("detail")
        if isinstance(error, dict):
            error = error.get("message")
        if error:
            return str(error)
    return f"Processor rejected request: {response.status_code}"
