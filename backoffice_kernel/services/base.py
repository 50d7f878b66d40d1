"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    service in the kernel layer.  Concrete services receive a SQLAlchemy
    ``Session`` and persist through ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  The BackOffice facade (or a
    test) owns the savepoint and the outer commit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from backoffice_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide query-only (read) methods -- those belong in
          ``backoffice_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
