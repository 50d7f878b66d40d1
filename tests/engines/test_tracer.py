"""
Tests for the engine tracer.
"""

from datetime import date
from decimal import Decimal

from backoffice_engines.aging import build_aging_report
from backoffice_engines.gst import calculate_gst
from backoffice_engines.tracer import compute_input_fingerprint


def _traces(records, engine_name):
    return [
        r for r in records
        if r["message"] == "BACKOFFICE_ENGINE_TRACE" and r.get("engine_name") == engine_name
    ]


class TestInputFingerprint:
    """Fingerprints are deterministic and scale-insensitive."""

    def test_same_inputs_same_fingerprint(self):
        fields = ("taxable_amount", "rate")
        a = compute_input_fingerprint(fields, {"taxable_amount": Decimal("1000"), "rate": Decimal("18")})
        b = compute_input_fingerprint(fields, {"taxable_amount": Decimal("1000"), "rate": Decimal("18")})

        assert a == b
        assert len(a) == 16

    def test_decimal_scale_ignored(self):
        fields = ("rate",)

        assert compute_input_fingerprint(fields, {"rate": Decimal("18")}) == (
            compute_input_fingerprint(fields, {"rate": Decimal("18.00")})
        )

    def test_different_inputs_differ(self):
        fields = ("rate",)

        assert compute_input_fingerprint(fields, {"rate": Decimal("5")}) != (
            compute_input_fingerprint(fields, {"rate": Decimal("18")})
        )

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("rate",), {}) == (
            compute_input_fingerprint(("rate",), {"rate": None})
        )


class TestTracedEngine:
    """The decorator emits one trace per call."""

    def test_gst_call_traced(self, captured_logs):
        calculate_gst(
            taxable_amount=Decimal("1000"),
            rate=Decimal("18"),
            party_state_code="36",
            home_state_code="36",
        )

        traces = _traces(captured_logs(), "gst")
        assert len(traces) == 1
        trace = traces[0]
        assert trace["trace_type"] == "BACKOFFICE_ENGINE_TRACE"
        assert trace["engine_version"] == "1.0"
        assert len(trace["input_fingerprint"]) == 16
        assert trace["duration_ms"] >= 0
        assert trace["logger"] == "backoffice.engines.tracer"

    def test_aging_call_traced(self, captured_logs):
        build_aging_report(as_of=date(2024, 7, 1), bills=[])

        traces = _traces(captured_logs(), "aging")
        assert len(traces) == 1
        assert traces[0]["input_fingerprint"]
