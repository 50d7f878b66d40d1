"""
SequenceService -- gap-free document numbering via locked counter rows.

Responsibility:
    Provides strictly increasing integers per named sequence and formats
    them into document numbers such as ``RC/2024-25/001``.  Uses a dedicated
    counter table with row-level locking (``SELECT ... FOR UPDATE``) so that
    two concurrent invoices can never receive the same number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by the
    document factory (one series per document kind and financial year) and
    by AuditRecorder (the ``audit_record`` sequence).

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth for
      the next value.  MAX(number)+1 is never used.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  If the enclosing operation rolls back, the
      number is released and the next document reuses it.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
    - SequenceCollisionError: the formatted number already exists on a
      document (raised by the document factory on flush).
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")

DEFAULT_NUMBER_PADDING = 3


def format_document_number(
    prefix: str,
    fy_code: str,
    value: int,
    padding: int = DEFAULT_NUMBER_PADDING,
) -> str:
    """
    Render ``PREFIX/FY/NNN``.

    The counter is zero-padded to ``padding`` digits; wider values are
    printed in full, never truncated.
    """
    return f"{prefix}/{fy_code}/{str(value).zfill(padding)}"


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Guarantees:
        - ``SELECT ... FOR UPDATE`` serializes concurrent allocations for
          the same sequence.
        - Gap-free under normal operation; a rolled-back caller returns its
          value to the sequence.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        with session.begin_nested():
            number = sequences.next_document_number("invoice", "2024-25", "RC")
    """

    AUDIT_RECORD = "audit_record"

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the named counter (creating it on first use), increment it and
        return the new value.

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              committed value for this sequence name.
            - The counter row stays locked until the transaction completes.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            # First use.  Another transaction may create it at the same
            # time; a savepoint keeps the caller's work intact on conflict.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def next_document_number(
        self,
        series: str,
        fy_code: str,
        prefix: str,
        padding: int = DEFAULT_NUMBER_PADDING,
    ) -> str:
        """
        Allocate the next number of a document series within a financial year.

        Each (series, fy_code) pair has its own counter, so numbering restarts
        at 001 every financial year.

        Args:
            series: Document series, e.g. "invoice".
            fy_code: Financial year code, e.g. "2024-25".
            prefix: Printed prefix, e.g. "RC".
            padding: Minimum digit width of the counter.

        Returns:
            e.g. "RC/2024-25/001".
        """
        value = self.next_value(f"{series}:{fy_code}")
        number = format_document_number(prefix, fy_code, value, padding)
        logger.info(
            "document_number_allocated",
            extra={"series": series, "fy_code": fy_code, "number": number},
        )
        return number
