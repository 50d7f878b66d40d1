"""
backoffice_services.advance_allocator -- FIFO settlement of bills.

Responsibility:
    Applies the unapplied balance of a settlement source (payment,
    advance receipt, credit note, debit note) against a party's open bills,
    oldest first, and undoes those applications when either side is voided.

Architecture position:
    Services -- orchestration over the pure allocation engine and the
    kernel.  Called by the document factory (after payments, advances and
    notes), by the reversal engine (release on void) and by the BackOffice
    facade (explicit allocation).

Invariants enforced:
    - A bill's amount_paid never exceeds its total; a source never applies
      more than its balance_amount (OverAllocationError).
    - Σ live allocations into a bill == amount_paid, and Σ live allocations
      out of a source == adjusted_amount.  Every change to those columns
      goes through an Allocation row.
    - Source and bills are locked (SELECT ... FOR UPDATE) in one id-ordered
      pass before any figure is read, so an allocation and a void of the
      same document serialize without a lock cycle.
    - An explicit target list may not name a bill twice.
    - Bill statuses follow bill_status_for(); source statuses follow
      settlement_status_for().

Failure modes:
    - OverAllocationError: requested amount exceeds the source balance.
    - InvalidAllocationTargetError: target is void, not a bill of the
      source's party, or the wrong bill kind.
    - DocumentNotFoundError: source or target does not exist.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from backoffice_engines.allocation import AllocationCandidate, plan_fifo_allocation
from backoffice_kernel.db.types import to_decimal
from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.exceptions import (
    InvalidAllocationTargetError,
    InvalidAmountError,
    OverAllocationError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.allocation import Allocation
from backoffice_kernel.models.document import (
    BILL_KINDS,
    SETTLEMENT_KINDS,
    Document,
)
from backoffice_kernel.models.party import PartyKind
from backoffice_kernel.selectors.document_selector import DocumentSelector, bill_kind_for
from backoffice_kernel.services.document_lock import DocumentLock

logger = get_logger("services.allocation")

ZERO = Decimal("0")


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of applying one source."""

    source: Document
    allocations: tuple[Allocation, ...] = field(default_factory=tuple)

    @property
    def applied(self) -> Decimal:
        return sum((a.amount for a in self.allocations), ZERO)

    @property
    def audit_subject(self) -> Document:
        return self.source

    @property
    def audit_payload(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "allocations": [
                {"target_id": a.target_id, "amount": a.amount} for a in self.allocations
            ],
        }


class AdvanceAllocator:
    """
    Applies settlement sources to bills and releases applications.

    Contract:
        Receives the session and clock by constructor injection; the actor
        is passed per call.  Never commits.
    """

    def __init__(self, session: Session, clock: Clock) -> None:
        self._session = session
        self._clock = clock
        self._locks = DocumentLock(session)
        self._documents = DocumentSelector(session)

    def allocate(
        self,
        source_id: UUID,
        actor_id: UUID,
        amount: Decimal | None = None,
        target_ids: Sequence[UUID] | None = None,
    ) -> AllocationResult:
        """
        Apply up to ``amount`` (default: the whole balance) of a source.

        Targets default to the party's open bills in settlement order.
        Explicit targets are used in the order given.

        Raises:
            OverAllocationError: If amount exceeds the source's balance.
            InvalidAmountError: If amount is not positive.
            InvalidAllocationTargetError: If a target cannot receive it.
        """
        source = self._documents.get(source_id)
        if source.kind_enum not in SETTLEMENT_KINDS:
            raise InvalidAllocationTargetError(
                str(source.id), f"{source.kind_enum.value} cannot be applied to bills"
            )

        explicit = target_ids is not None
        if explicit:
            candidate_ids = list(target_ids)
            if len(set(candidate_ids)) != len(candidate_ids):
                raise InvalidAllocationTargetError(
                    str(source.id), "a bill is listed more than once"
                )
        else:
            candidate_ids = [
                bill.id for bill in self._documents.open_bills(source.party_id, source.party.kind)
            ]

        # One sorted pass over source and bills, the same order void uses.
        locked = self._locks.lock_many([source_id, *candidate_ids])
        source = locked[source_id]
        if source.is_void:
            raise InvalidAllocationTargetError(str(source.id), "source is void")

        available = source.balance_amount
        if amount is None:
            amount = available
        else:
            amount = to_decimal(amount)
            if amount <= ZERO:
                raise InvalidAmountError(amount, "amount", "must be positive")
            if amount > available:
                raise OverAllocationError(str(source.id), amount, available)

        if amount <= ZERO:
            return AllocationResult(source=source)

        bill_kind = bill_kind_for(source.party.kind)
        bills = []
        for target_id in candidate_ids:
            bill = locked[target_id]
            if not explicit and bill.is_void:
                continue
            if bill.kind_enum != bill_kind or bill.kind_enum not in BILL_KINDS:
                raise InvalidAllocationTargetError(
                    str(bill.id), f"expected a {bill_kind.value}, got {bill.kind_enum.value}"
                )
            if bill.party_id != source.party_id:
                raise InvalidAllocationTargetError(str(bill.id), "bill belongs to another party")
            if bill.is_void:
                raise InvalidAllocationTargetError(str(bill.id), "bill is void")
            bills.append(bill)

        plan = plan_fifo_allocation(
            amount=amount,
            candidates=[
                AllocationCandidate(
                    target_id=bill.id,
                    total_amount=bill.total_amount,
                    amount_paid=bill.amount_paid,
                )
                for bill in bills
            ],
        )

        by_id = {bill.id: bill for bill in bills}
        now = self._clock.now()
        allocations: list[Allocation] = []
        for piece in plan.slices:
            bill = by_id[piece.target_id]
            bill.amount_paid = piece.new_amount_paid
            bill.updated_by_id = actor_id
            bill.refresh_payment_status()

            allocation = Allocation(
                source_id=source.id,
                target_id=bill.id,
                amount=piece.amount,
                allocated_at=now,
                created_by_id=actor_id,
            )
            self._session.add(allocation)
            allocations.append(allocation)

        source.adjusted_amount = source.adjusted_amount + plan.applied
        source.updated_by_id = actor_id
        source.refresh_settlement_status()
        self._session.flush()

        logger.info(
            "allocation_applied",
            extra={
                "source_id": str(source.id),
                "source_number": source.number,
                "applied": str(plan.applied),
                "bill_count": len(allocations),
                "source_balance": str(source.balance_amount),
            },
        )
        return AllocationResult(source=source, allocations=tuple(allocations))

    def apply_open_credits(
        self, party_id: UUID, party_kind: PartyKind, actor_id: UUID
    ) -> list[AllocationResult]:
        """Apply every unapplied credit of the party, oldest first."""
        results: list[AllocationResult] = []
        for credit in self._documents.open_credits(party_kind, party_id):
            if not self._documents.open_bills(party_id, party_kind):
                break
            result = self.allocate(credit.id, actor_id)
            if result.allocations:
                results.append(result)
        return results

    def counterparty_ids(self, document_id: UUID) -> set[UUID]:
        """Ids of the documents on the other side of live allocations."""
        return {
            a.target_id if a.source_id == document_id else a.source_id
            for a in self._documents.allocations_for(document_id, live_only=True)
        }

    def release(
        self,
        document: Document,
        actor_id: UUID,
        locked: dict[UUID, Document] | None = None,
    ) -> list[Allocation]:
        """
        Undo every live allocation touching ``document``.

        Bills get their amount_paid back down, sources regain their balance,
        and each allocation row is stamped released.  The caller holds the
        lock on ``document`` and passes any counterparties it locked with
        it; the rest are locked here.
        """
        live = self._documents.allocations_for(document.id, live_only=True)
        if not live:
            return []

        locked = dict(locked or {})
        locked[document.id] = document
        others = {
            a.target_id if a.source_id == document.id else a.source_id for a in live
        }
        locked.update(self._locks.lock_many(others.difference(locked)))

        now = self._clock.now()
        for allocation in live:
            source = locked[allocation.source_id]
            target = locked[allocation.target_id]

            target.amount_paid = target.amount_paid - allocation.amount
            target.updated_by_id = actor_id
            target.refresh_payment_status()

            source.adjusted_amount = source.adjusted_amount - allocation.amount
            source.updated_by_id = actor_id
            source.refresh_settlement_status()

            allocation.released_at = now
            allocation.released_by_id = actor_id
            allocation.updated_by_id = actor_id

        self._session.flush()
        logger.info(
            "allocations_released",
            extra={
                "document_id": str(document.id),
                "count": len(live),
                "amount": str(sum((a.amount for a in live), ZERO)),
            },
        )
        return live
