"""Alert webhook client with exponential backoff retry logic"""

import httpx
import asyncio
from typing import Dict, Any
from homebase_finance.config import settings
from homebase_finance.infrastructure.observability.metrics import alert_failure_counter


class AlertClient:
    """Client for paging on-call about ledger integrity violations"""

    def __init__(
        self,
        webhook_url: str | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url or settings.alert_webhook_url
        self.max_retries = max_retries if max_retries is not None else settings.webhook_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.webhook_backoff_base
        self._transport = transport

    async def send_integrity_alert(self, payload: Dict[str, Any]) -> None:
        """
        Send integrity violation alert with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s, 16s (base^attempt)
        - Retries on HTTP error statuses and network failures
        - Re-raises after the final attempt
        """
        attempt = 0
        async with httpx.AsyncClient(transport=self._transport) as client:
            while attempt < self.max_retries:
                try:
                    response = await client.post(
                        self.webhook_url,
                        json={"event": "LEDGER_INTEGRITY_VIOLATION", "service": settings.service_name, **payload},
                        timeout=10.0,
                    )
                    response.raise_for_status()
                    return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError):
                    attempt += 1
                    alert_failure_counter.inc()

                    if attempt >= self.max_retries:
                        # Final failure after all retries
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
