"""
Settings loader (``backoffice_config.loader``).

Responsibility
--------------
Loads the settings YAML file and parses it into a frozen
``CompanySettings``.  Runtime callers go through
``backoffice_config.get_active_config()``, not this module.

Invariants enforced
-------------------
* Parse and validation errors raise ``ValueError`` or ``KeyError`` with
  descriptive messages; required keys have no silent defaults.
* ``compute_checksum`` is a deterministic SHA-256 over the raw YAML data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``company`` keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from backoffice_config.schema import AgingBucketDef, CompanySettings, SeriesDef

REQUIRED_SERIES = (
    "order",
    "purchase_order",
    "invoice",
    "purchase_invoice",
    "credit_note",
    "debit_note",
    "payment",
    "supplier_payment",
    "advance_receipt",
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_series(data: dict[str, Any]) -> tuple[SeriesDef, ...]:
    series = tuple(
        SeriesDef(series=str(name), prefix=str(prefix))
        for name, prefix in sorted(data.items())
    )
    missing = set(REQUIRED_SERIES) - {s.series for s in series}
    if missing:
        raise ValueError(f"Number series missing prefixes: {sorted(missing)}")
    return series


def parse_aging_buckets(data: list[dict[str, Any]]) -> tuple[AgingBucketDef, ...]:
    buckets = tuple(
        AgingBucketDef(
            name=str(item["name"]),
            max_days=int(item["max_days"]) if item.get("max_days") is not None else None,
        )
        for item in data
    )
    if not buckets or buckets[-1].max_days is not None:
        raise ValueError("aging_buckets must end with an open-ended bucket")
    bounded = [b.max_days for b in buckets[:-1]]
    if any(days is None for days in bounded) or bounded != sorted(set(bounded)):
        raise ValueError("aging_buckets max_days must be strictly ascending")
    return buckets


def parse_settings(data: dict[str, Any]) -> CompanySettings:
    """
    Parse the full settings document.

    Raises:
        KeyError: A required key is missing.
        ValueError: A value is out of range.
    """
    company = data["company"]
    numbering = data.get("numbering", {})
    billing = data.get("billing", {})
    reporting = data.get("reporting", {})

    home_state_code = str(company["home_state_code"])
    if len(home_state_code) != 2:
        raise ValueError(f"home_state_code must be two characters: {home_state_code!r}")

    padding = int(numbering.get("padding", 3))
    if padding < 1:
        raise ValueError(f"numbering.padding must be at least 1: {padding}")

    terms = int(billing.get("default_payment_terms_days", 30))
    if terms < 0:
        raise ValueError(f"default_payment_terms_days cannot be negative: {terms}")

    return CompanySettings(
        company_name=str(company["name"]),
        gstin=str(company["gstin"]),
        home_state_code=home_state_code,
        default_payment_terms_days=terms,
        number_padding=padding,
        default_uqc=str(reporting.get("default_uqc", "NOS")),
        auto_apply_open_credits=bool(billing.get("auto_apply_open_credits", True)),
        series=parse_series(numbering["series"]),
        aging_buckets=parse_aging_buckets(reporting["aging_buckets"]),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> CompanySettings:
    return parse_settings(load_yaml_file(path))
