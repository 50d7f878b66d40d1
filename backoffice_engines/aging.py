"""
Module: backoffice_engines.aging
Responsibility:
    Bucket each party's open bills by days past due and put unapplied
    credits on account, producing a receivables or payables aging report.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  May only import the
    kernel domain DTOs.

Invariants enforced:
    - No clock access: ``as_of`` is always passed in.
    - Age is measured from the bill's due date, or its document date when
      it has none.  Bills not yet due (age <= 0) are ``current``.
    - Unapplied credits are subtracted in ``current`` as on-account
      amounts, so a party's aging total equals its ledger outstanding.
    - Every amount lands in exactly one bucket.

Failure modes:
    - ValueError from bucket definitions that are not strictly ascending or
      whose last bucket is bounded.

Usage:
    report = build_aging_report(
        as_of=date(2024, 12, 31),
        bills=selector.open_bill_summaries(PartyKind.DEALER),
        credits=selector.unapplied_credits(PartyKind.DEALER),
    )
    report.row_for(dealer_id).total
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from backoffice_kernel.domain.dtos import OpenBill, UnappliedCredit
from backoffice_engines.tracer import traced_engine

ZERO = Decimal("0")


@dataclass(frozen=True)
class AgeBucket:
    """Days-past-due band; max_days None is the open-ended last band."""

    name: str
    max_days: int | None


DEFAULT_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("current", 0),
    AgeBucket("0-30", 30),
    AgeBucket("31-60", 60),
    AgeBucket("61-90", 90),
    AgeBucket("91-120", 120),
    AgeBucket("121-180", 180),
    AgeBucket("181-360", 360),
    AgeBucket("360+", None),
)


def validate_buckets(buckets: Sequence[AgeBucket]) -> None:
    if not buckets:
        raise ValueError("At least one aging bucket is required")
    if buckets[-1].max_days is not None:
        raise ValueError("The last aging bucket must be open-ended")
    previous: int | None = None
    for bucket in buckets[:-1]:
        if bucket.max_days is None:
            raise ValueError(f"Only the last bucket may be open-ended: {bucket.name}")
        if previous is not None and bucket.max_days <= previous:
            raise ValueError(f"Aging buckets must ascend: {bucket.name}")
        previous = bucket.max_days


def age_in_days(as_of: date, due_date: date | None, doc_date: date) -> int:
    return (as_of - (due_date or doc_date)).days


def classify(age_days: int, buckets: Sequence[AgeBucket] = DEFAULT_BUCKETS) -> AgeBucket:
    for bucket in buckets:
        if bucket.max_days is None or age_days <= bucket.max_days:
            return bucket
    # validate_buckets() guarantees an open-ended last bucket
    raise ValueError(f"No bucket for age {age_days}")


@dataclass(frozen=True)
class AgedBill:
    document_id: UUID
    number: str
    age_days: int
    bucket: str
    outstanding: Decimal


@dataclass(frozen=True)
class PartyAging:
    """One party's row of the aging report."""

    party_id: UUID
    amounts: dict[str, Decimal]
    bills: tuple[AgedBill, ...] = ()
    on_account: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return sum(self.amounts.values(), ZERO)


@dataclass(frozen=True)
class AgingReport:
    as_of: date
    bucket_names: tuple[str, ...]
    rows: tuple[PartyAging, ...] = field(default_factory=tuple)

    @property
    def total(self) -> Decimal:
        return sum((row.total for row in self.rows), ZERO)

    def totals_by_bucket(self) -> dict[str, Decimal]:
        totals = {name: ZERO for name in self.bucket_names}
        for row in self.rows:
            for name, value in row.amounts.items():
                totals[name] += value
        return totals

    def row_for(self, party_id: UUID) -> PartyAging | None:
        for row in self.rows:
            if row.party_id == party_id:
                return row
        return None


@traced_engine("aging", "1.0", fingerprint_fields=("as_of",))
def build_aging_report(
    as_of: date,
    bills: Sequence[OpenBill],
    credits: Sequence[UnappliedCredit] = (),
    buckets: Sequence[AgeBucket] = DEFAULT_BUCKETS,
) -> AgingReport:
    """
    Build the aging report.

    Parties appear in order of first appearance among bills, then credits.
    """
    validate_buckets(buckets)
    names = tuple(b.name for b in buckets)
    current = names[0]

    amounts: dict[UUID, dict[str, Decimal]] = {}
    aged: dict[UUID, list[AgedBill]] = {}
    on_account: dict[UUID, Decimal] = {}

    def row(party_id: UUID) -> dict[str, Decimal]:
        if party_id not in amounts:
            amounts[party_id] = {name: ZERO for name in names}
            aged[party_id] = []
            on_account[party_id] = ZERO
        return amounts[party_id]

    for bill in bills:
        outstanding = bill.outstanding
        if outstanding <= ZERO:
            continue
        days = age_in_days(as_of, bill.due_date, bill.doc_date)
        bucket = classify(days, buckets)
        row(bill.party_id)[bucket.name] += outstanding
        aged[bill.party_id].append(
            AgedBill(
                document_id=bill.document_id,
                number=bill.number,
                age_days=days,
                bucket=bucket.name,
                outstanding=outstanding,
            )
        )

    for credit in credits:
        if credit.balance_amount <= ZERO:
            continue
        row(credit.party_id)[current] -= credit.balance_amount
        on_account[credit.party_id] += credit.balance_amount

    rows = tuple(
        PartyAging(
            party_id=party_id,
            amounts=party_amounts,
            bills=tuple(aged[party_id]),
            on_account=on_account[party_id],
        )
        for party_id, party_amounts in amounts.items()
    )
    return AgingReport(as_of=as_of, bucket_names=names, rows=rows)
