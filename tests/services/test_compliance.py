"""
Tests for GST returns and receivables reports built from posted documents.

Covers:
- GSTR-1 sections (b2b, b2cs, hsn, cdnr) for one filing month
- GSTR-3B net tax after input tax credit
- TDS/TCS summary of receipts
- Aging, outstanding report and party reconciliation
"""

from datetime import date
from decimal import Decimal

import pytest

from backoffice_kernel.domain.dtos import PurchaseLineInput, ReturnLineInput
from backoffice_kernel.models.party import PartyKind


@pytest.fixture
def july_sales(sell, dealer, outstation_dealer):
    """One registered intra-state sale and one unregistered inter-state sale."""
    return (
        sell(qty="10", rate="100", party=dealer, doc_date=date(2024, 7, 1)),
        sell(qty="10", rate="100", party=outstation_dealer, doc_date=date(2024, 7, 3)),
    )


class TestGstr1:
    def test_header(self, office, july_sales, settings):
        payload = office.gstr1(2024, 7)

        assert payload["gstin"] == settings.gstin
        assert payload["fp"] == "072024"

    def test_b2b_registered_dealer(self, office, july_sales):
        registered, _ = july_sales

        (party,) = office.gstr1(2024, 7)["b2b"]

        assert party["ctin"] == "36AAACS1234A1Z1"
        (invoice,) = party["inv"]
        assert invoice["inum"] == registered.number
        assert invoice["idt"] == "01-07-2024"
        assert invoice["val"] == Decimal("1180.00")
        assert invoice["pos"] == "36"
        assert invoice["itms"] == [
            {
                "num": 1,
                "itm_det": {
                    "rt": 18,
                    "txval": Decimal("1000.00"),
                    "camt": Decimal("90.00"),
                    "samt": Decimal("90.00"),
                    "iamt": Decimal("0.00"),
                    "csamt": Decimal("0"),
                },
            }
        ]

    def test_b2cs_unregistered_inter_state(self, office, july_sales):
        (row,) = office.gstr1(2024, 7)["b2cs"]

        assert row["sply_ty"] == "INTER"
        assert row["pos"] == "27"
        assert row["typ"] == "OE"
        assert row["rt"] == 18
        assert row["txval"] == Decimal("1000.00")
        assert row["iamt"] == Decimal("180.00")

    def test_b2cs_dealer_without_state_code(self, office, sell, test_actor_id):
        walk_in = office.create_party("D009", "Counter Sale", PartyKind.DEALER, test_actor_id)
        invoice = sell(qty="10", rate="100", party=walk_in, doc_date=date(2024, 7, 4))

        (row,) = office.gstr1(2024, 7)["b2cs"]

        assert invoice.is_intra_state is False
        assert row["sply_ty"] == "INTER"
        assert row["pos"] == "97"
        assert row["iamt"] == Decimal("180.00")
        assert row["camt"] == Decimal("0.00")

    def test_hsn_summary_covers_all_invoices(self, office, july_sales):
        (row,) = office.gstr1(2024, 7)["hsn"]["data"]

        assert row["hsn_sc"] == "3004"
        assert row["uqc"] == "BOX"
        assert row["qty"] == Decimal("20.00")
        assert row["txval"] == Decimal("2000.00")

    def test_void_and_other_months_left_out(self, office, sell, july_sales, test_actor_id):
        cancelled = sell(qty="1", doc_date=date(2024, 7, 20))
        office.void(cancelled.id, "Raised in error", test_actor_id)
        sell(qty="1", doc_date=date(2024, 8, 2))

        payload = office.gstr1(2024, 7)

        numbers = [inv["inum"] for party in payload["b2b"] for inv in party["inv"]]
        assert cancelled.number not in numbers
        assert len(numbers) == 1

    def test_cdnr_lists_credit_notes(self, office, july_sales, test_actor_id):
        registered, _ = july_sales
        note = office.create_credit_note(
            registered.id,
            [ReturnLineInput(source_line_id=registered.lines[0].id, qty=Decimal("4"))],
            "Damaged",
            test_actor_id,
            doc_date=date(2024, 7, 10),
        )

        (party,) = office.gstr1(2024, 7)["cdnr"]

        assert party["ctin"] == "36AAACS1234A1Z1"
        assert party["nt"][0]["ntty"] == "C"
        assert party["nt"][0]["nt_num"] == note.number
        assert party["nt"][0]["val"] == Decimal("472.00")


class TestGstr3b:
    def test_net_payable_after_itc(self, office, sell, supplier, product, test_actor_id):
        sell(qty="10", rate="100", doc_date=date(2024, 7, 1))
        office.create_purchase_invoice(
            supplier.id, date(2024, 7, 2), "MP/7781",
            [PurchaseLineInput(product_id=product.id, qty=Decimal("5"), rate=Decimal("60"), batch_no="B777")],
            test_actor_id,
        )

        summary = office.gstr3b(date(2024, 7, 1), date(2024, 7, 31))

        assert summary["table3_1"]["taxable_value"] == Decimal("1000.00")
        assert summary["table4_itc"]["cgst"] == Decimal("27.00")
        assert summary["net_tax_payable"]["cgst"] == Decimal("63.00")
        assert summary["net_tax_payable"]["sgst"] == Decimal("63.00")
        assert summary["net_tax_payable"]["total"] == Decimal("126.00")

    def test_split_by_supply_type(self, office, july_sales):
        summary = office.gstr3b(date(2024, 7, 1), date(2024, 7, 31))

        assert summary["table3_2"]["intra_state"]["taxable_value"] == Decimal("1000.00")
        assert summary["table3_2"]["inter_state"]["igst"] == Decimal("180.00")


class TestTdsTcsSummary:
    def test_only_payments_with_deductions(self, office, bill_exact, dealer, test_actor_id):
        bill_exact("12000")
        office.record_payment(
            dealer.id, date(2024, 7, 10), Decimal("10000"), "NEFT", test_actor_id,
            tds_rate=Decimal("2"), tcs_rate=Decimal("0.1"),
        )
        office.record_payment(dealer.id, date(2024, 7, 12), Decimal("2000"), "CASH", test_actor_id)

        (row,) = office.tds_tcs_summary(date(2024, 7, 1), date(2024, 7, 31))

        assert row.party_id == dealer.id
        assert row.payment_count == 1
        assert row.gross_total == Decimal("10000.00")
        assert row.tds_total == Decimal("200.00")
        assert row.tcs_total == Decimal("10.00")
        assert row.net_total == Decimal("9810.00")

    def test_outside_range(self, office, bill_exact, dealer, test_actor_id):
        bill_exact("1000")
        office.record_payment(
            dealer.id, date(2024, 7, 10), Decimal("1000"), "NEFT", test_actor_id,
            tds_rate=Decimal("1"),
        )

        assert office.tds_tcs_summary(date(2024, 8, 1), date(2024, 8, 31)) == []


class TestAging:
    """Dealer terms are 30 days, so bills age from doc_date + 30."""

    def test_buckets_by_days_past_due(self, office, bill_exact, dealer):
        bill_exact("100", doc_date=date(2024, 6, 1))   # due 07-01, 45 days
        bill_exact("200", doc_date=date(2024, 7, 1))   # due 07-31, 15 days
        bill_exact("400", doc_date=date(2024, 8, 10))  # not yet due
        bill_exact("800", doc_date=date(2024, 8, 20))  # after as_of

        report = office.aging(PartyKind.DEALER, as_of=date(2024, 8, 15))

        row = report.row_for(dealer.id)
        assert row.amounts["31-60"] == Decimal("100")
        assert row.amounts["0-30"] == Decimal("200")
        assert row.amounts["current"] == Decimal("400")
        assert row.total == Decimal("700")

    def test_unapplied_credit_on_account(self, office, bill_exact, dealer, test_actor_id):
        bill_exact("1000", doc_date=date(2024, 6, 1))
        office.record_payment(dealer.id, date(2024, 7, 1), Decimal("1500"), "NEFT", test_actor_id)

        row = office.aging(PartyKind.DEALER).row_for(dealer.id)

        assert row.on_account == Decimal("500")
        assert row.amounts["current"] == Decimal("-500")
        assert row.total == Decimal("-500")

    def test_defaults_to_today(self, office, bill_exact, deterministic_clock):
        bill_exact("100")

        assert office.aging().as_of == deterministic_clock.today()


class TestOutstandingReport:
    def test_dealers_with_balances(self, office, sell, dealer, outstation_dealer, supplier):
        sell(party=dealer)

        rows = office.outstanding_report(PartyKind.DEALER)

        assert [r.party_code for r in rows] == ["D001"]
        assert rows[0].outstanding == Decimal("1180.00")

    def test_include_zero(self, office, sell, dealer, outstation_dealer):
        sell(party=dealer)

        rows = office.outstanding_report(PartyKind.DEALER, include_zero=True)

        assert [r.party_code for r in rows] == ["D001", "D002"]

    def test_supplier_outstanding_is_positive(self, office, supplier, product, test_actor_id):
        office.create_purchase_invoice(
            supplier.id, date(2024, 7, 2), "MP/7781",
            [PurchaseLineInput(product_id=product.id, qty=Decimal("50"), rate=Decimal("60"), batch_no="B777")],
            test_actor_id,
        )

        (row,) = office.outstanding_report(PartyKind.SUPPLIER)

        assert row.balance == Decimal("-3540.00")
        assert row.outstanding == Decimal("3540.00")

    def test_as_of(self, office, bill_exact, dealer):
        bill_exact("100", doc_date=date(2024, 7, 1))
        bill_exact("200", doc_date=date(2024, 8, 1))

        (row,) = office.outstanding_report(PartyKind.DEALER, as_of=date(2024, 7, 31))

        assert row.balance == Decimal("100.00")


class TestReconcileParty:
    def test_partly_paid_dealer(self, office, sell, dealer, test_actor_id):
        sell()
        office.record_payment(dealer.id, date(2024, 7, 5), Decimal("500"), "NEFT", test_actor_id)

        result = office.reconcile_party(dealer.id)

        assert result.balance == Decimal("680.00")
        assert result.aging_total == Decimal("680.00")
        assert result.is_consistent

    def test_overpaid_dealer(self, office, bill_exact, dealer, test_actor_id):
        bill_exact("1000")
        office.record_payment(dealer.id, date(2024, 7, 5), Decimal("1500"), "NEFT", test_actor_id)

        result = office.reconcile_party(dealer.id)

        assert result.outstanding == Decimal("-500.00")
        assert result.is_consistent

    def test_supplier(self, office, supplier, product, test_actor_id):
        office.create_purchase_invoice(
            supplier.id, date(2024, 7, 2), "MP/7781",
            [PurchaseLineInput(product_id=product.id, qty=Decimal("50"), rate=Decimal("60"), batch_no="B777")],
            test_actor_id,
        )

        result = office.reconcile_party(supplier.id)

        assert result.outstanding == Decimal("3540.00")
        assert result.aging_total == Decimal("3540.00")
        assert result.is_consistent

    def test_party_without_activity(self, office, outstation_dealer):
        result = office.reconcile_party(outstation_dealer.id)

        assert result.balance == Decimal("0")
        assert result.aging_total == Decimal("0")
        assert result.is_consistent
