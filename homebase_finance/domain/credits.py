"""Referral credit redemption policy"""

from dataclasses import dataclass
from typing import Iterable, List, Tuple
from homebase_finance.domain.exceptions import InvalidAmountError


@dataclass
class CreditAllocation:
    """How much of one pending credit an invoice consumes"""

    credit_id: str
    available_cents: int
    applied_cents: int

    @property
    def is_partial(self) -> bool:
        return self.applied_cents < self.available_cents

    @property
    def remainder_cents(self) -> int:
        return self.available_cents - self.applied_cents


def allocate_credits(pending: Iterable[Tuple[str, int]], up_to_amount_cents: int) -> List[CreditAllocation]:
    """
    Apply pending credits oldest-first until ``up_to_amount_cents`` is covered.

    ``pending`` must already be ordered oldest-first. The last credit touched
    may be applied partially; its remainder stays pending.

    Example:
        two $50 credits, redeem $60 -> [50 of 50, 10 of 50]
    """
    if up_to_amount_cents < 0:
        raise InvalidAmountError(f"Redemption amount must be non-negative, got {up_to_amount_cents}")

    remaining = up_to_amount_cents
    allocations = []
    for credit_id, amount_cents in pending:
        if remaining == 0:
            break
        applied = min(amount_cents, remaining)
        allocations.append(CreditAllocation(credit_id=credit_id, available_cents=amount_cents, applied_cents=applied))
        remaining -= applied
    return allocations
