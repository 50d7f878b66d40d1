"""
Back office settings schema.

Frozen dataclasses parsed from YAML by the loader.  Services receive a
CompanySettings instance by injection; the kernel never sees it.
"""

from __future__ import annotations

from dataclasses import dataclass


# ---------------------------------------------------------------------------
# Numbering
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SeriesDef:
    """Printed prefix of one document number series."""

    series: str  # invoice, order, payment, ...
    prefix: str  # RC, SO, RCPT, ...


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgingBucketDef:
    name: str
    max_days: int | None = None  # None = open-ended last bucket


# ---------------------------------------------------------------------------
# Company
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompanySettings:
    """Everything the services need to know about the operating company."""

    company_name: str
    gstin: str
    home_state_code: str
    default_payment_terms_days: int = 30
    number_padding: int = 3
    default_uqc: str = "NOS"
    auto_apply_open_credits: bool = True
    series: tuple[SeriesDef, ...] = ()
    aging_buckets: tuple[AgingBucketDef, ...] = ()
    checksum: str = ""

    def prefix_for(self, series: str) -> str:
        for definition in self.series:
            if definition.series == series:
                return definition.prefix
        raise ValueError(f"No number series configured for {series!r}")
