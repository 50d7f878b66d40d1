"""
Typed Exception Hierarchy for the Back Office Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the back office (HTTP handlers, batch importers, the CLI) must be
able to tell "the dealer is inactive" apart from "the batch ran out of stock"
without parsing message strings. Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A class-level CODE attribute (machine-readable, API-safe)
  3. Structured DATA stored as attributes (not just a message string)

Example:
    try:
        back_office.create_invoice(...)
    except InsufficientStockError as e:
        api_response(code=e.code, batch=e.batch_id, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BackOfficeError:

    BackOfficeError (base)
    |
    +-- ValidationError
    |   +-- PartyNotFoundError
    |   +-- PartyInactiveError
    |   +-- WrongPartyKindError
    |   +-- ProductNotFoundError
    |   +-- InvalidQuantityError
    |   +-- InvalidAmountError
    |   +-- DocumentNotFoundError
    |   +-- InvalidStatusTransitionError
    |   +-- ReturnQuantityExceededError
    |
    +-- InventoryError
    |   +-- InsufficientStockError
    |   +-- BatchNotFoundError
    |
    +-- ReversalError
    |   +-- AlreadyVoidError
    |   +-- NotVoidableError
    |   +-- DependentDocumentsError
    |
    +-- AllocationError
    |   +-- OverAllocationError
    |   +-- InvalidAllocationTargetError
    |
    +-- FinancialYearError
    |   +-- FinancialYearNotFoundError
    |   +-- FinancialYearAlreadyClosedError
    |   +-- NoSuccessorFYError
    |   +-- ClosedFinancialYearError
    |   +-- FinancialYearOverlapError
    |
    +-- SequenceError
    |   +-- SequenceCollisionError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|--------------------------------------
Validation      | VALIDATION_ERROR              | Malformed request (empty reason, no lines)
                | PARTY_NOT_FOUND               | Party ID doesn't exist
                | PARTY_INACTIVE                | Party is deactivated
                | WRONG_PARTY_KIND              | Dealer expected, supplier given (or vice versa)
                | PRODUCT_NOT_FOUND             | Product ID doesn't exist
                | INVALID_QUANTITY              | Quantity <= 0
                | INVALID_AMOUNT                | Negative rate or non-positive amount
                | DOCUMENT_NOT_FOUND            | Document ID doesn't exist
                | INVALID_STATUS_TRANSITION     | Status machine forbids the move
                | RETURN_QUANTITY_EXCEEDED      | Return qty > sold qty - already returned
----------------|-------------------------------|--------------------------------------
Inventory       | INSUFFICIENT_STOCK            | Batch would go negative
                | BATCH_NOT_FOUND               | Batch ID doesn't exist
----------------|-------------------------------|--------------------------------------
Reversal        | ALREADY_VOID                  | Document was already voided
                | NOT_VOIDABLE                  | Kind cannot be voided (orders)
                | DEPENDENT_DOCUMENTS           | Live notes still reference the document
----------------|-------------------------------|--------------------------------------
Allocation      | OVER_ALLOCATION               | Amount exceeds the source balance
                | INVALID_ALLOCATION_TARGET     | Target is void, settled or foreign
----------------|-------------------------------|--------------------------------------
Financial Year  | FINANCIAL_YEAR_NOT_FOUND      | No FY with that id / covering a date
                | FINANCIAL_YEAR_ALREADY_CLOSED | FY already closed
                | NO_SUCCESSOR_FY               | No open FY starts after this one
                | CLOSED_FINANCIAL_YEAR         | Posting dated inside a closed FY
                | FINANCIAL_YEAR_OVERLAP        | Date range conflicts with another FY
----------------|-------------------------------|--------------------------------------
Sequence        | SEQUENCE_COLLISION            | Document number already taken
----------------|-------------------------------|--------------------------------------
Audit           | AUDIT_CHAIN_BROKEN            | Hash chain validation failed
----------------|-------------------------------|--------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Modifying an append-only or closed row

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation happens before any mutation. Anything raised inside an atomic
   unit rolls the savepoint back and propagates unchanged to the caller.

2. Catch categories where the reaction is the same:

    except FinancialYearError as e:
        notify_user(f"{e.code}: pick a date in an open financial year")

3. AuditChainBrokenError and ImmutabilityViolationError indicate tampering
   or a programming error. Never retry them.
===============================================================================
"""

from decimal import Decimal


class BackOfficeError(Exception):
    """
    Base exception for all back office errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BACK_OFFICE_ERROR"


# Validation exceptions


class ValidationError(BackOfficeError):
    """A request failed validation before anything was written."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class PartyNotFoundError(ValidationError):
    """Party with given ID was not found."""

    code: str = "PARTY_NOT_FOUND"

    def __init__(self, party_id: str):
        self.party_id = party_id
        super().__init__(f"Party not found: {party_id}", field="party_id")


class PartyInactiveError(ValidationError):
    """Party exists but is deactivated."""

    code: str = "PARTY_INACTIVE"

    def __init__(self, party_id: str, party_code: str):
        self.party_id = party_id
        self.party_code = party_code
        super().__init__(f"Party {party_code} is inactive", field="party_id")


class WrongPartyKindError(ValidationError):
    """A dealer was required where a supplier was given, or vice versa."""

    code: str = "WRONG_PARTY_KIND"

    def __init__(self, party_id: str, expected: str, actual: str):
        self.party_id = party_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Party {party_id} is a {actual}, expected a {expected}",
            field="party_id",
        )


class ProductNotFoundError(ValidationError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}", field="product_id")


class InvalidQuantityError(ValidationError):
    """Quantity must be strictly positive."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: Decimal | str):
        self.quantity = str(quantity)
        super().__init__(
            f"Quantity must be greater than zero, got {quantity}", field="qty"
        )


class InvalidAmountError(ValidationError):
    """Monetary amount is out of range (negative rate, non-positive payment)."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal | str, field: str, reason: str):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid {field} {amount}: {reason}", field=field)


class DocumentNotFoundError(ValidationError):
    """Document with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str, kind: str | None = None):
        self.document_id = document_id
        self.kind = kind
        label = kind or "Document"
        super().__init__(f"{label} not found: {document_id}", field="document_id")


class InvalidStatusTransitionError(ValidationError):
    """The document's status machine forbids the requested transition."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(
        self, document_id: str, kind: str, from_status: str, to_status: str
    ):
        self.document_id = document_id
        self.kind = kind
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot move {kind} {document_id} from {from_status} to {to_status}",
            field="status",
        )


class ReturnQuantityExceededError(ValidationError):
    """Returned quantity exceeds what is still returnable on the source line."""

    code: str = "RETURN_QUANTITY_EXCEEDED"

    def __init__(
        self, source_line_id: str, requested: Decimal, available: Decimal
    ):
        self.source_line_id = source_line_id
        self.requested = str(requested)
        self.available = str(available)
        super().__init__(
            f"Cannot return {requested} against line {source_line_id}: "
            f"only {available} remaining",
            field="qty",
        )


# Inventory exceptions


class InventoryError(BackOfficeError):
    """Base exception for inventory-related errors."""

    code: str = "INVENTORY_ERROR"


class InsufficientStockError(InventoryError):
    """A debit would take the batch below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        batch_id: str,
        requested: Decimal,
        available: Decimal,
        batch_no: str | None = None,
    ):
        self.batch_id = batch_id
        self.batch_no = batch_no
        self.requested = str(requested)
        self.available = str(available)
        super().__init__(
            f"Insufficient stock in batch {batch_no or batch_id}: "
            f"requested {requested}, available {available}"
        )


class BatchNotFoundError(InventoryError):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


# Reversal exceptions


class ReversalError(BackOfficeError):
    """Base exception for void-related errors."""

    code: str = "REVERSAL_ERROR"


class AlreadyVoidError(ReversalError):
    """Document was already voided. Voids happen at most once."""

    code: str = "ALREADY_VOID"

    def __init__(self, document_id: str, number: str | None = None):
        self.document_id = document_id
        self.number = number
        super().__init__(f"Document {number or document_id} is already void")


class NotVoidableError(ReversalError):
    """Document kind has no postings to compensate and cannot be voided."""

    code: str = "NOT_VOIDABLE"

    def __init__(self, document_id: str, kind: str, reason: str):
        self.document_id = document_id
        self.kind = kind
        self.reason = reason
        super().__init__(f"Cannot void {kind} {document_id}: {reason}")


class DependentDocumentsError(ReversalError):
    """Live documents still reference the document being voided."""

    code: str = "DEPENDENT_DOCUMENTS"

    def __init__(self, document_id: str, dependent_numbers: list[str]):
        self.document_id = document_id
        self.dependent_numbers = list(dependent_numbers)
        super().__init__(
            f"Document {document_id} has live dependent documents: "
            f"{', '.join(dependent_numbers)}"
        )


# Allocation exceptions


class AllocationError(BackOfficeError):
    """Base exception for settlement allocation errors."""

    code: str = "ALLOCATION_ERROR"


class OverAllocationError(AllocationError):
    """Requested allocation exceeds the source's unapplied balance."""

    code: str = "OVER_ALLOCATION"

    def __init__(self, source_id: str, requested: Decimal, available: Decimal):
        self.source_id = source_id
        self.requested = str(requested)
        self.available = str(available)
        super().__init__(
            f"Cannot allocate {requested} from {source_id}: "
            f"only {available} unapplied"
        )


class InvalidAllocationTargetError(AllocationError):
    """Target document cannot receive an allocation."""

    code: str = "INVALID_ALLOCATION_TARGET"

    def __init__(self, target_id: str, reason: str):
        self.target_id = target_id
        self.reason = reason
        super().__init__(f"Cannot allocate to {target_id}: {reason}")


# Financial year exceptions


class FinancialYearError(BackOfficeError):
    """Base exception for financial-year errors."""

    code: str = "FINANCIAL_YEAR_ERROR"


class FinancialYearNotFoundError(FinancialYearError):
    """No financial year with that id (or covering that date)."""

    code: str = "FINANCIAL_YEAR_NOT_FOUND"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Financial year not found: {identifier}")


class FinancialYearAlreadyClosedError(FinancialYearError):
    """Financial year is already closed."""

    code: str = "FINANCIAL_YEAR_ALREADY_CLOSED"

    def __init__(self, fy_code: str):
        self.fy_code = fy_code
        super().__init__(f"Financial year {fy_code} is already closed")


class NoSuccessorFYError(FinancialYearError):
    """No open financial year starts after the one being closed."""

    code: str = "NO_SUCCESSOR_FY"

    def __init__(self, fy_code: str):
        self.fy_code = fy_code
        super().__init__(
            f"No open financial year follows {fy_code}; "
            "create the next year before closing"
        )


class ClosedFinancialYearError(FinancialYearError):
    """Attempted to post a document dated inside a closed financial year."""

    code: str = "CLOSED_FINANCIAL_YEAR"

    def __init__(self, fy_code: str, posting_date: str):
        self.fy_code = fy_code
        self.posting_date = posting_date
        super().__init__(
            f"Cannot post on {posting_date}: financial year {fy_code} is closed"
        )


class FinancialYearOverlapError(FinancialYearError):
    """Date range overlaps an existing financial year."""

    code: str = "FINANCIAL_YEAR_OVERLAP"

    def __init__(self, fy_code: str, existing_code: str):
        self.fy_code = fy_code
        self.existing_code = existing_code
        super().__init__(
            f"Financial year {fy_code} overlaps existing year {existing_code}"
        )


# Sequence exceptions


class SequenceError(BackOfficeError):
    """Base exception for document numbering errors."""

    code: str = "SEQUENCE_ERROR"


class SequenceCollisionError(SequenceError):
    """Allocated document number is already taken."""

    code: str = "SEQUENCE_COLLISION"

    def __init__(self, number: str):
        self.number = number
        super().__init__(f"Document number already in use: {number}")


# Audit exceptions


class AuditError(BackOfficeError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_record_id: str, expected_hash: str, actual_hash: str):
        self.audit_record_id = audit_record_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_record_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability exceptions


class ImmutabilityError(BackOfficeError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Ledger entries, inventory transactions and audit records are append-only;
    a closed financial year cannot be edited.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
