"""
Module: backoffice_kernel.models.sequence
Responsibility: Named counter rows behind document numbering and the audit
    sequence.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - name is unique.  Each row is read and incremented only while locked
      (SELECT ... FOR UPDATE) by SequenceService.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Document series use names like ``invoice:2024-25``; the audit chain uses
    ``audit_record``.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
