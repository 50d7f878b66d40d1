"""
DocumentLock -- row-level locks on documents for void and allocation.

Responsibility:
    Loads a document with ``SELECT ... FOR UPDATE`` on its header and kind
    rows so that a void and an allocation touching the same document run
    one after the other, never interleaved.

Architecture position:
    Kernel > Services.  Used by the reversal engine and the advance
    allocator before they read any settlement figure.

Invariants enforced:
    - The concrete kind is resolved first and the lock is taken through the
      kind's model, so payload columns (amount_paid, balance_amount) are
      re-read under the lock rather than served from the identity map.
    - lock_many() locks in ascending id order so that two callers locking
      overlapping sets cannot deadlock.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.exceptions import DocumentNotFoundError
from backoffice_kernel.models.document import MODEL_BY_KIND, Document, DocumentKind
from backoffice_kernel.services.base import BaseService


class DocumentLock(BaseService[Document]):

    def __init__(self, session: Session):
        super().__init__(session)

    def lock(self, document_id: UUID, kind: DocumentKind | None = None) -> Document:
        """
        Lock and reload one document.

        Raises:
            DocumentNotFoundError: If absent or of a different kind.
        """
        found_kind = self.session.execute(
            select(Document.kind).where(Document.id == document_id)
        ).scalar_one_or_none()
        if found_kind is None or (kind is not None and found_kind != DocumentKind(kind).value):
            raise DocumentNotFoundError(
                str(document_id), DocumentKind(kind).value if kind else None
            )

        model = MODEL_BY_KIND[DocumentKind(found_kind)]
        return self.session.execute(
            select(model)
            .where(model.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

    def lock_many(self, document_ids: Iterable[UUID]) -> dict[UUID, Document]:
        return {
            document_id: self.lock(document_id)
            for document_id in sorted(set(document_ids), key=str)
        }
