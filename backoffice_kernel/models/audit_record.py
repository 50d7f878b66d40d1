"""
Module: backoffice_kernel.models.audit_record
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only; no UPDATE or DELETE (ORM listeners).
    - hash = H(table_name | record_id | action | payload_hash | prev_hash).
      Validated by AuditRecorder.validate_chain().
    - seq is strictly increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.

Audit relevance:
    Every mutating back office operation (document creation, void,
    allocation, status change, stock-in, financial-year create/activate/
    close, party and product creation) writes one AuditRecord inside the
    same transaction as the change it describes.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    PARTY_CREATED = "party_created"
    PRODUCT_CREATED = "product_created"
    STOCK_RECEIVED = "stock_received"

    DOCUMENT_CREATED = "document_created"
    DOCUMENT_VOIDED = "document_voided"
    STATUS_CHANGED = "status_changed"

    ALLOCATION_APPLIED = "allocation_applied"

    FINANCIAL_YEAR_CREATED = "financial_year_created"
    FINANCIAL_YEAR_ACTIVATED = "financial_year_activated"
    FINANCIAL_YEAR_CLOSED = "financial_year_closed"


class AuditRecord(Base):
    """
    Audit record with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis record.
        - before_state is None for creations.
    """

    __tablename__ = "audit_records"

    __table_args__ = (
        Index("idx_audit_record", "table_name", "record_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    table_name: Mapped[str] = mapped_column(String(50), nullable=False)

    record_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[AuditAction] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    before_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    after_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Extra context such as the void reason
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def __repr__(self) -> str:
        return f"<AuditRecord #{self.seq} {self.action} on {self.table_name}:{self.record_id}>"
