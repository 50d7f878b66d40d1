"""
backoffice_services.financial_year_closer -- year-end close with carry-forward.

Responsibility:
    Seals a financial year and writes each party's net movement for that
    year as its opening balance in the successor year.

Architecture position:
    Services -- orchestration over FinancialYearService and LedgerSelector.

Invariants enforced:
    - The year row is locked for the whole close; two concurrent closes of
      the same year serialize and the second fails AlreadyClosed.
    - Every party with ledger activity dated inside the year gets exactly
      one opening row in the successor, netted to one side:
      (net, 0) when Σdebit - Σcredit >= 0, else (0, -net).
    - All-or-nothing: a failure leaves no opening rows and the year open.

Failure modes:
    - FinancialYearNotFoundError, FinancialYearAlreadyClosedError.
    - NoSuccessorFYError: no open year starts after this one ends.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.exceptions import (
    FinancialYearAlreadyClosedError,
    NoSuccessorFYError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.financial_year import FinancialYear, OpeningBalance
from backoffice_kernel.selectors.ledger_selector import LedgerSelector
from backoffice_kernel.services.financial_year_service import FinancialYearService

logger = get_logger("services.fy_close")

ZERO = Decimal("0")


@dataclass(frozen=True)
class CloseResult:
    financial_year: FinancialYear
    successor: FinancialYear
    opening_balances: tuple[OpeningBalance, ...]

    @property
    def total_debit(self) -> Decimal:
        return sum((row.opening_debit for row in self.opening_balances), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((row.opening_credit for row in self.opening_balances), ZERO)

    @property
    def audit_subject(self) -> FinancialYear:
        return self.financial_year

    @property
    def audit_payload(self) -> dict[str, Any]:
        return {
            "successor_code": self.successor.code,
            "party_count": len(self.opening_balances),
            "total_debit": self.total_debit,
            "total_credit": self.total_credit,
        }


class FinancialYearCloser:
    """Closes financial years.  Never commits."""

    def __init__(self, session: Session, clock: Clock) -> None:
        self._session = session
        self._clock = clock
        self._years = FinancialYearService(session)
        self._ledger = LedgerSelector(session)

    def close(self, fy_id: UUID, actor_id: UUID, notes: str | None = None) -> CloseResult:
        """
        Close ``fy_id`` and carry balances into its successor.

        When the closed year was the active one, the successor becomes
        active.
        """
        fy = self._years.lock(fy_id)
        if fy.is_closed:
            logger.warning("financial_year_close_rejected", extra={"fy_code": fy.code})
            raise FinancialYearAlreadyClosedError(fy.code)

        successor = self._years.find_successor(fy)
        if successor is None:
            logger.warning("financial_year_has_no_successor", extra={"fy_code": fy.code})
            raise NoSuccessorFYError(fy.code)

        rows: list[OpeningBalance] = []
        for party_id, debit, credit in self._ledger.activity_by_party(
            fy.start_date, fy.end_date
        ):
            net = debit - credit
            rows.append(
                self._years.upsert_opening_balance(
                    successor.id,
                    party_id,
                    opening_debit=net if net >= ZERO else ZERO,
                    opening_credit=ZERO if net >= ZERO else -net,
                    actor_id=actor_id,
                )
            )

        was_active = fy.is_active
        fy.close(actor_id, self._clock.now(), notes)
        fy.updated_by_id = actor_id
        self._session.flush()
        if was_active:
            self._years.set_active(successor.id, actor_id)

        result = CloseResult(
            financial_year=fy,
            successor=successor,
            opening_balances=tuple(rows),
        )
        logger.info(
            "financial_year_closed",
            extra={
                "fy_code": fy.code,
                "successor_code": successor.code,
                "party_count": len(rows),
                "total_debit": str(result.total_debit),
                "total_credit": str(result.total_credit),
            },
        )
        return result
