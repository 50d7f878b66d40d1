"""
Module: backoffice_engines.allocation
Responsibility:
    Plan how an amount of settlement money (payment, advance, credit or
    debit note) is spread across a party's open bills, oldest first.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The advance allocator
    service loads and locks the bills, calls plan_fifo_allocation(), and
    applies the plan.

Invariants enforced:
    - No slice exceeds its bill's outstanding (total - paid).
    - Σ slices == min(amount, Σ outstanding); nothing is invented.
    - Bills are consumed strictly in the order given; the caller supplies
      settlement order (doc date, creation time, number).

Failure modes:
    - ValueError on a negative amount, or a candidate whose amount_paid
      exceeds its total.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from backoffice_kernel.db.types import to_decimal
from backoffice_engines.tracer import traced_engine

ZERO = Decimal("0")


@dataclass(frozen=True)
class AllocationCandidate:
    """A bill that can receive settlement."""

    target_id: UUID
    total_amount: Decimal
    amount_paid: Decimal

    def __post_init__(self) -> None:
        if self.amount_paid > self.total_amount:
            raise ValueError(
                f"Bill {self.target_id} paid {self.amount_paid} exceeds total {self.total_amount}"
            )

    @property
    def outstanding(self) -> Decimal:
        return self.total_amount - self.amount_paid


@dataclass(frozen=True)
class AllocationSlice:
    """The part of the amount applied to one bill."""

    target_id: UUID
    amount: Decimal
    new_amount_paid: Decimal
    fully_paid: bool


@dataclass(frozen=True)
class AllocationPlan:
    requested: Decimal
    slices: tuple[AllocationSlice, ...]

    @property
    def applied(self) -> Decimal:
        return sum((s.amount for s in self.slices), ZERO)

    @property
    def remaining(self) -> Decimal:
        return self.requested - self.applied


@traced_engine("allocation", "1.0", fingerprint_fields=("amount",))
def plan_fifo_allocation(
    amount: Decimal,
    candidates: Sequence[AllocationCandidate],
) -> AllocationPlan:
    """
    Walk ``candidates`` in order taking min(remaining, outstanding) from each.

    Stops when the amount is used up or the bills run out.  Bills with
    nothing outstanding are skipped.
    """
    amount = to_decimal(amount)
    if amount < ZERO:
        raise ValueError(f"Allocation amount cannot be negative: {amount}")

    remaining = amount
    slices: list[AllocationSlice] = []
    for candidate in candidates:
        if remaining <= ZERO:
            break
        outstanding = candidate.outstanding
        if outstanding <= ZERO:
            continue
        take = min(remaining, outstanding)
        new_paid = candidate.amount_paid + take
        slices.append(
            AllocationSlice(
                target_id=candidate.target_id,
                amount=take,
                new_amount_paid=new_paid,
                fully_paid=new_paid >= candidate.total_amount,
            )
        )
        remaining -= take

    return AllocationPlan(requested=amount, slices=tuple(slices))
