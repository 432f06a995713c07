"""Domain-specific exceptions

Every error carries an ``ErrorKind`` so callers can tell a rejected request
from a transient failure or an integrity problem without parsing messages.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """How a caller should react to a failed operation"""

    DUPLICATE = "duplicate"  # Already applied; treat as success, do not retry
    REJECTED = "rejected"  # Bad input; surface verbatim, never retry
    RETRYABLE = "retryable"  # Transient; nothing was written, retry with backoff
    INTEGRITY = "integrity"  # Ledger invariant broken; abort and alert


class DomainException(Exception):
    """Base exception for domain layer"""

    kind: ErrorKind = ErrorKind.REJECTED
    code: str = "domain_error"


class DuplicateEventError(DomainException):
    """External event id has already been recorded"""

    kind = ErrorKind.DUPLICATE
    code = "duplicate_event"

    def __init__(self, event_id: str):
        super().__init__(f"Event {event_id} already recorded")
        self.event_id = event_id


class UnknownTierError(DomainException):
    """Tier is not part of the plan catalog"""

    code = "unknown_tier"

    def __init__(self, tier: object):
        super().__init__(f"Unknown plan tier: {tier!r}")
        self.tier = tier


class InvalidAmountError(DomainException):
    """Money amount is negative or otherwise unusable"""

    code = "invalid_amount"


class ProviderNotFoundError(DomainException):
    code = "provider_not_found"

    def __init__(self, provider_id: str):
        super().__init__(f"Provider {provider_id} not found")
        self.provider_id = provider_id


class PayoutNotFoundError(DomainException):
    code = "payout_not_found"

    def __init__(self, payout_ref: str):
        super().__init__(f"Payout {payout_ref} not found")
        self.payout_ref = payout_ref


class InsufficientBalanceError(DomainException):
    """Requested payout exceeds the payable balance"""

    code = "insufficient_balance"

    def __init__(self, requested_cents: int, payable_cents: int):
        super().__init__(
            f"Requested {requested_cents} cents but only {payable_cents} cents are available for payout"
        )
        self.requested_cents = requested_cents
        self.payable_cents = payable_cents


class InstantPayoutIneligibleError(DomainException):
    """Processor reports that instant payouts are not enabled for this provider"""

    code = "instant_payout_ineligible"

    def __init__(self, provider_id: str):
        super().__init__(f"Provider {provider_id} is not eligible for instant payouts (no debit card on file)")
        self.provider_id = provider_id


class InvalidPayoutTransitionError(DomainException):
    code = "invalid_payout_transition"

    def __init__(self, old: str, new: str):
        super().__init__(f"Illegal payout transition: {old} -> {new}")
        self.old = old
        self.new = new


class IdempotencyKeyReusedError(DomainException):
    """Idempotency key already used for a payout with different terms"""

    code = "idempotency_key_reused"

    def __init__(self, idempotency_key: str):
        super().__init__(f"Idempotency key {idempotency_key} was already used for a different payout")
        self.idempotency_key = idempotency_key


class PaymentNotFoundError(DomainException):
    code = "payment_not_found"

    def __init__(self, payment_id: str):
        super().__init__(f"Payment {payment_id} not found")
        self.payment_id = payment_id


class ProcessorUnavailableError(DomainException):
    """Payment processor timed out or returned a server error"""

    kind = ErrorKind.RETRYABLE
    code = "processor_unavailable"


class ProcessorRejectedError(DomainException):
    """Payment processor refused the request (4xx)"""

    code = "processor_rejected"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConcurrentUpdateError(DomainException):
    """Provider row changed underneath an optimistic update"""

    kind = ErrorKind.RETRYABLE
    code = "concurrent_update"


class LedgerIntegrityError(DomainException):
    """A ledger write could not complete atomically or an invariant check failed"""

    kind = ErrorKind.INTEGRITY
    code = "ledger_integrity"
