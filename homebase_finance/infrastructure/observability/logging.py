"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

logger = logging.getLogger("homebase_finance.ledger")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "homebase-finance"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)


def log_payment_recorded(
    request_id: Optional[str],
    event_id: str,
    provider_id: str,
    tier: str,
    gross_amount_cents: int,
    fee_amount_cents: int,
) -> None:
    """Log fee computation outcome for revenue reconciliation"""
    logger.info(
        "Payment recorded",
        extra={
            "request_id": request_id,
            "event_id": event_id,
            "provider_id": provider_id,
            "step": "payment_recorded",
            "tier": tier,
            "gross_amount_cents": gross_amount_cents,
            "fee_amount_cents": fee_amount_cents,
        },
    )


def log_payment_refunded(
    request_id: Optional[str],
    event_id: str,
    payment_id: str,
    provider_id: str,
    net_reversed_cents: int,
) -> None:
    logger.info(
        "Payment refunded",
        extra={
            "request_id": request_id,
            "event_id": event_id,
            "payment_id": payment_id,
            "provider_id": provider_id,
            "step": "payment_refunded",
            "net_reversed_cents": net_reversed_cents,
        },
    )


def log_payout_requested(
    request_id: Optional[str],
    payout_id: str,
    provider_id: str,
    payout_type: str,
    amount_cents: int,
    fee_cents: int,
    status: str,
) -> None:
    logger.info(
        "Payout requested",
        extra={
            "request_id": request_id,
            "payout_id": payout_id,
            "provider_id": provider_id,
            "step": "payout_requested",
            "payout_type": payout_type,
            "amount_cents": amount_cents,
            "fee_cents": fee_cents,
            "status": status,
        },
    )


def log_payout_transition(payout_id: str, provider_id: str, old: str, new: str) -> None:
    logger.info(
        "Payout status changed",
        extra={
            "payout_id": payout_id,
            "provider_id": provider_id,
            "step": "payout_transition",
            "from_status": old,
            "to_status": new,
        },
    )


def log_credits_redeemed(provider_id: str, requested_cents: int, redeemed_cents: int) -> None:
    logger.info(
        "Referral credits redeemed",
        extra={
            "provider_id": provider_id,
            "step": "credits_redeemed",
            "requested_cents": requested_cents,
            "redeemed_cents": redeemed_cents,
        },
    )


def log_integrity_violation(request_id: Optional[str], operation: str, detail: str) -> None:
    """Integrity violations page a human; keep them at ERROR"""
    logger.error(
        "Ledger integrity violation",
        extra={
            "request_id": request_id,
            "step": "integrity_violation",
            "operation": operation,
            "detail": detail,
        },
    )
