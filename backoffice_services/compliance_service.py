"""
backoffice_services.compliance_service -- GST returns and receivables reports.

Responsibility:
    Loads non-void documents for a period, maps them onto the return
    engine's inputs and builds GSTR-1, GSTR-3B, the aging report, the
    ledger-derived outstanding report and the dealer TDS/TCS summary.
    Also cross-checks a party's ledger balance against its aging total.

Architecture position:
    Services -- read-only orchestration over the kernel selectors and
    backoffice_engines.gst_returns / backoffice_engines.aging.

Invariants enforced:
    - Reads only: no locks, no writes.
    - Void documents never appear in any return or report.
    - For every party, ledger balance == aging total == outstanding-report
      figure (re-signed for suppliers).
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from backoffice_config.schema import CompanySettings
from backoffice_engines.aging import (
    DEFAULT_BUCKETS,
    AgeBucket,
    AgingReport,
    build_aging_report,
)
from backoffice_engines.gst_returns import (
    DeductionPayment,
    DeductionSummaryRow,
    ReturnDocument,
    ReturnLine,
    build_deduction_summary,
    build_gstr1,
    build_gstr3b,
    filing_period,
)
from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.domain.dtos import PartyBalance
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.document import (
    Document,
    DocumentKind,
    PaymentDirection,
)
from backoffice_kernel.models.party import PartyKind
from backoffice_kernel.selectors.document_selector import DocumentSelector
from backoffice_kernel.selectors.ledger_selector import LedgerSelector

logger = get_logger("services.compliance")

ZERO = Decimal("0")


@dataclass(frozen=True)
class PartyReconciliation:
    """One party's balance seen three ways; all three must agree."""

    party_id: UUID
    balance: Decimal
    outstanding: Decimal
    aging_total: Decimal

    @property
    def is_consistent(self) -> bool:
        return self.outstanding == self.aging_total


def month_range(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def to_return_document(document: Document) -> ReturnDocument:
    """Flatten a document and its lines for the return builders."""
    party = document.party
    state_code = getattr(document, "place_of_supply", None) or party.state_code
    return ReturnDocument(
        number=document.number,
        doc_date=document.doc_date,
        party_gstin=party.gst_number,
        party_state_code=state_code,
        is_intra_state=document.is_intra_state,
        lines=tuple(
            ReturnLine(
                hsn_code=line.hsn_code,
                uqc=line.product.uqc,
                qty=line.qty,
                gst_rate=line.gst_rate,
                taxable_value=line.amount,
                cgst=line.cgst_amount,
                sgst=line.sgst_amount,
                igst=line.igst_amount,
                total=line.total_amount,
            )
            for line in document.lines
        ),
    )


class ComplianceService:
    """Builds returns and reports.  Stateless apart from its injected collaborators."""

    def __init__(self, session: Session, settings: CompanySettings, clock: Clock) -> None:
        self._session = session
        self._settings = settings
        self._clock = clock
        self._documents = DocumentSelector(session)
        self._ledger = LedgerSelector(session)

    def _returns(self, kind: DocumentKind, start: date, end: date) -> list[ReturnDocument]:
        return [
            to_return_document(doc) for doc in self._documents.in_range(kind, start, end)
        ]

    # ------------------------------------------------------------------
    # GST returns
    # ------------------------------------------------------------------

    def gstr1_for_range(self, start_date: date, end_date: date, fp: str) -> dict[str, Any]:
        payload = build_gstr1(
            gstin=self._settings.gstin,
            fp=fp,
            invoices=self._returns(DocumentKind.INVOICE, start_date, end_date),
            credit_notes=self._returns(DocumentKind.CREDIT_NOTE, start_date, end_date),
            debit_notes=self._returns(DocumentKind.DEBIT_NOTE, start_date, end_date),
            home_state_code=self._settings.home_state_code,
            default_uqc=self._settings.default_uqc,
        )
        logger.info(
            "gstr1_built",
            extra={
                "fp": fp,
                "b2b_parties": len(payload["b2b"]),
                "b2cs_rows": len(payload["b2cs"]),
                "hsn_rows": len(payload["hsn"]["data"]),
            },
        )
        return payload

    def gstr1(self, year: int, month: int) -> dict[str, Any]:
        """GSTR-1 payload for a calendar month."""
        fp = filing_period(year, month)
        start, end = month_range(year, month)
        return self.gstr1_for_range(start, end, fp)

    def gstr3b(self, start_date: date, end_date: date) -> dict[str, Any]:
        summary = build_gstr3b(
            invoices=self._returns(DocumentKind.INVOICE, start_date, end_date),
            credit_notes=self._returns(DocumentKind.CREDIT_NOTE, start_date, end_date),
            purchases=self._returns(DocumentKind.PURCHASE_INVOICE, start_date, end_date),
            debit_notes=self._returns(DocumentKind.DEBIT_NOTE, start_date, end_date),
        )
        logger.info(
            "gstr3b_built",
            extra={
                "start_date": str(start_date),
                "end_date": str(end_date),
                "net_tax_payable": str(summary["net_tax_payable"]["total"]),
            },
        )
        return summary

    # ------------------------------------------------------------------
    # Receivables / payables
    # ------------------------------------------------------------------

    def _buckets(self) -> tuple[AgeBucket, ...]:
        configured = tuple(
            AgeBucket(b.name, b.max_days) for b in self._settings.aging_buckets
        )
        return configured or DEFAULT_BUCKETS

    def aging(
        self,
        party_kind: PartyKind = PartyKind.DEALER,
        as_of: date | None = None,
    ) -> AgingReport:
        """
        Aging of open bills as of a date (default: today).

        Bills and credits dated after ``as_of`` are left out.  Settlement is
        taken as it stands now.
        """
        as_of = as_of or self._clock.today()
        bills = [
            b for b in self._documents.open_bill_summaries(party_kind) if b.doc_date <= as_of
        ]
        credits = [
            c for c in self._documents.unapplied_credits(party_kind) if c.doc_date <= as_of
        ]
        return build_aging_report(
            as_of=as_of, bills=bills, credits=credits, buckets=self._buckets()
        )

    def outstanding_report(
        self,
        party_kind: PartyKind | None = None,
        as_of: date | None = None,
        include_zero: bool = False,
    ) -> list[PartyBalance]:
        return self._ledger.party_balances(party_kind, as_of, include_zero)

    def tds_tcs_summary(self, start_date: date, end_date: date) -> list[DeductionSummaryRow]:
        """Dealer-wise TDS/TCS on payments received in the range."""
        payments = self._documents.in_range(DocumentKind.PAYMENT, start_date, end_date)
        return build_deduction_summary(
            payments=[
                DeductionPayment(
                    party_id=payment.party_id,
                    party_name=payment.party.name,
                    party_gstin=payment.party.gst_number,
                    amount=payment.total_amount,
                    tds_amount=payment.tds_amount,
                    tcs_amount=payment.tcs_amount,
                    net_amount=payment.net_amount,
                )
                for payment in payments
                if payment.direction == PaymentDirection.RECEIVED.value
            ]
        )

    def reconcile_party(self, party_id: UUID) -> PartyReconciliation:
        """Compare the ledger with the open-document view of one party."""
        position = self._ledger.party_position(party_id)
        report = build_aging_report(
            as_of=self._clock.today(),
            bills=self._documents.open_bill_summaries(position.kind, party_id),
            credits=self._documents.unapplied_credits(position.kind, party_id),
            buckets=self._buckets(),
        )
        row = report.row_for(party_id)
        result = PartyReconciliation(
            party_id=party_id,
            balance=position.balance,
            outstanding=position.outstanding,
            aging_total=row.total if row is not None else ZERO,
        )
        if not result.is_consistent:
            logger.error(
                "party_reconciliation_mismatch",
                extra={
                    "party_id": str(party_id),
                    "outstanding": str(result.outstanding),
                    "aging_total": str(result.aging_total),
                },
            )
        return result
