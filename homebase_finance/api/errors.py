"""Translate domain errors into HTTP responses"""

import logging
from fastapi import BackgroundTasks, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from starlette.exceptions import HTTPException as StarletteHTTPException
from homebase_finance.domain.exceptions import (
    DomainException,
    ErrorKind,
    IdempotencyKeyReusedError,
    InvalidPayoutTransitionError,
    PaymentNotFoundError,
    PayoutNotFoundError,
    ProviderNotFoundError,
)
from homebase_finance.infrastructure.clients.alerts import AlertClient
from homebase_finance.infrastructure.observability.logging import log_integrity_violation
from homebase_finance.infrastructure.observability.metrics import integrity_violations_counter

_STATUS_BY_KIND = {
    ErrorKind.DUPLICATE: 409,
    ErrorKind.REJECTED: 422,
    ErrorKind.RETRYABLE: 503,
    ErrorKind.INTEGRITY: 500,
}

_NOT_FOUND = (ProviderNotFoundError, PayoutNotFoundError, PaymentNotFoundError)
_CONFLICT = (InvalidPayoutTransitionError, IdempotencyKeyReusedError)


def error_body(exc: DomainException) -> dict:
    """``kind`` tells the caller whether to fix input, retry, or contact support"""
    return {"kind": exc.kind.value, "code": exc.code, "message": str(exc)}


def report_integrity_violation(
    exc: DomainException,
    request_id: str,
    operation: str,
    background_tasks: BackgroundTasks | None = None,
    alert_client: AlertClient | None = None,
) -> None:
    """Log at ERROR, count, and schedule an alert webhook when a task queue is available"""
    integrity_violations_counter.labels(operation=operation).inc()
    log_integrity_violation(request_id, operation, str(exc))
    if background_tasks is not None and alert_client is not None:
        background_tasks.add_task(
            alert_client.send_integrity_alert,
            {"request_id": request_id, "operation": operation, "detail": str(exc)},
        )


def to_http_exception(
    exc: DomainException,
    request_id: str,
    operation: str,
    background_tasks: BackgroundTasks | None = None,
    alert_client: AlertClient | None = None,
) -> HTTPException:
    """Map a domain error to an HTTPException, logging and alerting on the way"""
    status = _STATUS_BY_KIND[exc.kind]
    headers = None
    if isinstance(exc, _NOT_FOUND):
        status = 404
    elif isinstance(exc, _CONFLICT):
        status = 409

    if exc.kind == ErrorKind.INTEGRITY:
        report_integrity_violation(exc, request_id, operation, background_tasks, alert_client)
    elif exc.kind == ErrorKind.RETRYABLE:
        headers = {"Retry-After": "5"}
        logging.warning(f"Transient failure in {operation}: {exc}", extra={"request_id": request_id})
    else:
        logging.info(f"Rejected {operation}: {exc}", extra={"request_id": request_id})

    http_exc = HTTPException(status_code=status, detail=error_body(exc), headers=headers)
    # Raising discards the endpoint's BackgroundTasks; carry them to the handler
    http_exc.background = background_tasks
    return http_exc


async def http_exception_with_background(request: Request, exc: StarletteHTTPException):
    """Default HTTPException response, still running any tasks queued before the error"""
    response = await http_exception_handler(request, exc)
    response.background = getattr(exc, "background", None)
    return response
