"""
AuditRecorder -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit records (actor, before-state,
    after-state, payload) for every mutating back office operation, and
    validates the chain for tamper detection.  The ``audited`` decorator
    wraps each mutating operation so that the operation, its sub-ledger
    writes and its audit record commit or roll back together.

Architecture position:
    Kernel > Services -- imperative shell.  ``audited`` is applied to every
    mutating method of the BackOffice facade.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never MAX(seq)+1).  The
      audit counter row stays locked until commit, so concurrent writers
      append to the chain one at a time and always see the latest hash.
    - hash = H(table_name | record_id | action | payload_hash | prev_hash).
    - Append-only: AuditRecord is protected by ORM listeners.
    - No mutation without a trail: an ``audited`` operation that fails
      after mutating rolls back its savepoint, audit record included.

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.
"""

import functools
import inspect as pyinspect
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import inspect, select
from sqlalchemy.orm import Session

from backoffice_kernel.db.base import Base
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.exceptions import AuditChainBrokenError
from backoffice_kernel.logging_config import LogContext, get_logger
from backoffice_kernel.models.audit_record import AuditAction, AuditRecord
from backoffice_kernel.services.sequence_service import SequenceService
from backoffice_kernel.utils.hashing import hash_audit_record, hash_payload, to_json_safe

logger = get_logger("services.audit")


def snapshot(obj: Base) -> dict[str, Any]:
    """Column values of an ORM row as plain JSON data."""
    mapper = inspect(obj).mapper
    return to_json_safe({attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs})


@dataclass(frozen=True)
class AuditTrailEntry:
    """A single entry in a record's audit trail."""

    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID
    before_state: dict[str, Any] | None
    after_state: dict[str, Any] | None
    payload: dict[str, Any]
    hash: str


class AuditRecorder:
    """
    Service for creating and validating tamper-evident audit records.

    Guarantees:
        - Every record's ``hash`` is a deterministic function of
          ``(table_name, record_id, action, payload_hash, prev_hash)``.
        - Sequence numbers come from SequenceService's locked counter.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last = self._session.execute(
            select(AuditRecord).order_by(AuditRecord.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last.hash if last else None

    def record(
        self,
        table_name: str,
        record_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        before_state: dict[str, Any] | None = None,
        after_state: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditRecord:
        """
        Append one audit record to the chain.

        Postconditions:
            - A new AuditRecord is flushed with the next ``seq`` and
              ``prev_hash`` equal to the previous record's ``hash``.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_RECORD)
        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload({
            "before": before_state,
            "after": after_state,
            "payload": payload_data,
        })
        record_hash = hash_audit_record(
            table_name=table_name,
            record_id=str(record_id),
            action=AuditAction(action).value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_record = AuditRecord(
            seq=seq,
            table_name=table_name,
            record_id=record_id,
            action=AuditAction(action).value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            before_state=before_state,
            after_state=after_state,
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=record_hash,
        )
        self._session.add(audit_record)
        self._session.flush()

        logger.info(
            "audit_record_created",
            extra={
                "table_name": table_name,
                "record_id": str(record_id),
                "action": AuditAction(action).value,
                "seq": seq,
            },
        )
        return audit_record

    def record_change(
        self,
        subject: Base,
        action: AuditAction,
        actor_id: UUID,
        before_state: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditRecord:
        """Audit an ORM row, taking the after-state from its current values."""
        self._session.flush()
        return self.record(
            table_name=subject.__tablename__,
            record_id=subject.id,
            action=action,
            actor_id=actor_id,
            before_state=before_state,
            after_state=snapshot(subject),
            payload=payload,
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        records = self._session.execute(
            select(AuditRecord).order_by(AuditRecord.seq)
        ).scalars().all()

        if not records:
            return True

        if records[0].prev_hash is not None:
            logger.critical("audit_chain_broken", extra={"seq": records[0].seq})
            raise AuditChainBrokenError(str(records[0].id), "None", records[0].prev_hash)

        for i, rec in enumerate(records):
            expected_hash = hash_audit_record(
                table_name=rec.table_name,
                record_id=str(rec.record_id),
                action=AuditAction(rec.action).value,
                payload_hash=rec.payload_hash,
                prev_hash=rec.prev_hash,
            )
            if rec.hash != expected_hash:
                logger.critical("audit_chain_broken", extra={"seq": rec.seq})
                raise AuditChainBrokenError(str(rec.id), expected_hash, rec.hash)

            recomputed_payload_hash = hash_payload({
                "before": rec.before_state,
                "after": rec.after_state,
                "payload": rec.payload or {},
            })
            if rec.payload_hash != recomputed_payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": rec.seq})
                raise AuditChainBrokenError(
                    str(rec.id), recomputed_payload_hash, rec.payload_hash
                )

            if i > 0 and rec.prev_hash != records[i - 1].hash:
                logger.critical("audit_chain_broken", extra={"seq": rec.seq})
                raise AuditChainBrokenError(
                    str(rec.id), records[i - 1].hash, rec.prev_hash or "None"
                )

        logger.info("audit_chain_valid", extra={"record_count": len(records)})
        return True

    def get_trail(self, table_name: str, record_id: UUID) -> tuple[AuditTrailEntry, ...]:
        """All audit records for one row, oldest first."""
        records = self._session.execute(
            select(AuditRecord)
            .where(
                AuditRecord.table_name == table_name,
                AuditRecord.record_id == record_id,
            )
            .order_by(AuditRecord.seq)
        ).scalars().all()

        return tuple(
            AuditTrailEntry(
                seq=rec.seq,
                action=AuditAction(rec.action).value,
                occurred_at=rec.occurred_at,
                actor_id=rec.actor_id,
                before_state=rec.before_state,
                after_state=rec.after_state,
                payload=rec.payload or {},
                hash=rec.hash,
            )
            for rec in records
        )


def audited(
    action: AuditAction,
    subject_arg: str | None = None,
    subject_model: type[Base] | None = None,
    payload_args: tuple[str, ...] = (),
) -> Callable:
    """
    Run a mutating method as one savepoint-scoped unit with an audit record.

    The decorated method must belong to an object exposing ``session`` and
    ``audit_recorder`` and must take an ``actor_id`` argument.

    The audited row is either:
      - the row named by ``subject_arg`` (loaded with ``subject_model``
        before the call, so the record carries a before-state), or
      - the return value, when it is an ORM row, or
      - ``result.audit_subject`` for result objects.

    ``result.audit_payload`` (when present) and the arguments named in
    ``payload_args`` are stored as the record payload.

    Any exception rolls back the savepoint (mutations and audit record
    alike) and propagates unchanged.
    """
    def decorator(fn: Callable) -> Callable:
        signature = pyinspect.signature(fn)

        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            bound = signature.bind(self, *args, **kwargs)
            bound.apply_defaults()
            arguments = bound.arguments
            actor_id = arguments["actor_id"]
            session: Session = self.session
            recorder: AuditRecorder = self.audit_recorder

            with LogContext.bind(actor_id=str(actor_id), operation=fn.__name__):
                with session.begin_nested():
                    subject = None
                    before_state = None
                    if subject_arg is not None:
                        subject = session.get(subject_model, arguments[subject_arg])
                        if subject is not None:
                            before_state = snapshot(subject)

                    result = fn(self, *args, **kwargs)

                    if subject is None:
                        if isinstance(result, Base):
                            subject = result
                        else:
                            subject = result.audit_subject

                    payload = dict(getattr(result, "audit_payload", None) or {})
                    for name in payload_args:
                        payload[name] = arguments.get(name)

                    recorder.record_change(
                        subject=subject,
                        action=action,
                        actor_id=actor_id,
                        before_state=before_state,
                        payload=payload,
                    )
                return result

        return wrapper

    return decorator
