"""
Module: backoffice_kernel.models.party
Responsibility: ORM persistence for the dealers the company sells to and the
    suppliers it buys from.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique (uq_party_code).
    - kind is fixed at creation; dealers receive invoices, suppliers issue
      purchase invoices.
    - state_code drives the intra/inter-state GST decision.  A null state
      code is treated as inter-state by the tax calculator.

Failure modes:
    - IntegrityError on duplicate code.
    - PartyInactiveError / WrongPartyKindError are raised upstream by the
      document factory using is_active and kind.
"""

from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase


class PartyKind(str, Enum):
    """Which side of the business a party sits on."""

    DEALER = "dealer"
    SUPPLIER = "supplier"


class Party(TrackedBase):
    """
    Dealer or supplier the company transacts with.

    Contract:
        Identity anchor for every document, ledger entry and opening balance.

    Guarantees:
        - code is globally unique.
        - gst_number is None for unregistered parties (B2C in GSTR-1).

    Non-goals:
        - Does not hold a running balance; balances are always derived from
          ledger_entries.
    """

    __tablename__ = "parties"

    __table_args__ = (
        UniqueConstraint("code", name="uq_party_code"),
        Index("idx_party_kind", "kind"),
        Index("idx_party_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    kind: Mapped[PartyKind] = mapped_column(String(20), nullable=False)

    # Two-digit GST state code, e.g. "36" for Telangana
    state_code: Mapped[str | None] = mapped_column(String(2), nullable=True)

    # GSTIN; None means unregistered
    gst_number: Mapped[str | None] = mapped_column(String(15), nullable=True)

    # Falls back to the company default when None
    payment_terms_days: Mapped[int | None] = mapped_column(nullable=True)

    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def kind_enum(self) -> PartyKind:
        return PartyKind(self.kind)

    @property
    def is_dealer(self) -> bool:
        return self.kind_enum == PartyKind.DEALER

    @property
    def is_supplier(self) -> bool:
        return self.kind_enum == PartyKind.SUPPLIER

    @property
    def is_registered(self) -> bool:
        """True when the party has a GSTIN (B2B rather than B2C)."""
        return bool(self.gst_number)

    def __repr__(self) -> str:
        return f"<Party {self.code}: {self.name} ({self.kind_enum.value})>"
