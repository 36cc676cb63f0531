"""
Typed Exception Hierarchy for the Cold-Storage Inventory Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Inventory operations fail for a small number of well-understood reasons:
bad input, a missing record, a caller acting outside its facility, not
enough stock on hand, or the datastore aborting a transaction. Callers
(HTTP adapters, CLI scripts, retry loops) must tell these apart without
parsing messages.

Every exception therefore carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. A STATUS class attribute (stable category signal for thin adapters)
  4. Structured DATA attributes (not just a message string)

Example:
    try:
        ledger.create_delivery(caller, facility_id, depositor_id, requests)
    except InsufficientStockError as e:
        return {"error": e.code, "available": e.available}
    except TransientError:
        # Safe to retry the whole unit of work
        ...

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- ValidationError                 status=bad_request
    |   +-- InvalidStockLabelError
    |   +-- StockInvariantError
    |
    +-- NotFoundError                   status=not_found
    |   +-- FacilityNotFoundError
    |   +-- DepositorNotFoundError
    |   +-- ReceiptNotFoundError
    |   +-- DeliveryNotFoundError
    |   +-- StockLineNotFoundError
    |
    +-- UnauthorizedError               status=forbidden
    |
    +-- InsufficientStockError          status=conflict
    +-- ReceiptReferencedError          status=conflict
    |
    +-- TransientError                  status=unavailable (retryable)
        +-- ConcurrentModificationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|------------------------------------------------
VALIDATION_ERROR            | Malformed input (negative, empty, duplicate)
INVALID_STOCK_LABEL         | Variety or bag size normalizes to nothing
STOCK_INVARIANT_VIOLATION   | A write would break 0 <= current <= initial
FACILITY_NOT_FOUND          | Facility ID doesn't exist
DEPOSITOR_NOT_FOUND         | Depositor ID doesn't exist
RECEIPT_NOT_FOUND           | Receipt ID doesn't exist
DELIVERY_NOT_FOUND          | Delivery ID doesn't exist
STOCK_LINE_NOT_FOUND        | Receipt has no (variety, size) line
UNAUTHORIZED                | Caller acts outside its facility / not admin
INSUFFICIENT_STOCK          | Withdrawal exceeds current quantity
RECEIPT_REFERENCED          | Receipt delete refused, deliveries point at it
TRANSIENT_ERROR             | Datastore aborted (deadlock, lock timeout)
CONCURRENT_MODIFICATION     | Compare-and-swap update matched no row

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Inherit from Exception, not ValueError / LookupError. Domain errors are
   catchable as a group and never confused with programming errors.

2. ``code`` and ``status`` are class attributes, readable without an
   instance (API docs, adapters mapping status to HTTP).

3. Only TransientError is retryable. Everything else is deterministic and
   will fail again with the same input.

===============================================================================
"""

from uuid import UUID

# Status signal -> HTTP-like code, for adapters that speak HTTP.
ERROR_STATUS: dict[str, int] = {
    "bad_request": 400,
    "forbidden": 403,
    "not_found": 404,
    "conflict": 409,
    "unavailable": 503,
    "internal": 500,
}


class LedgerError(Exception):
    """
    Base exception for all inventory ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification and a `status` signal for adapters.
    """

    code: str = "LEDGER_ERROR"
    status: str = "internal"
    retryable: bool = False


# Validation


class ValidationError(LedgerError):
    """Input failed validation. Nothing was written."""

    code: str = "VALIDATION_ERROR"
    status: str = "bad_request"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidStockLabelError(ValidationError):
    """A variety or bag size name is empty after normalization."""

    code: str = "INVALID_STOCK_LABEL"

    def __init__(self, kind: str, raw_value: str):
        self.kind = kind
        self.raw_value = raw_value
        super().__init__(f"Invalid {kind} name: {raw_value!r}", field=kind)


class StockInvariantError(ValidationError):
    """
    A stock line would leave the range 0 <= current <= initial.

    Raised when an edit or a reversal would push a line's current quantity
    above its initial quantity (or below zero).
    """

    code: str = "STOCK_INVARIANT_VIOLATION"

    def __init__(
        self,
        receipt_id: UUID | str,
        variety: str,
        bag_size: str,
        current_quantity: int,
        initial_quantity: int,
    ):
        self.receipt_id = str(receipt_id)
        self.variety = variety
        self.bag_size = bag_size
        self.current_quantity = current_quantity
        self.initial_quantity = initial_quantity
        super().__init__(
            f"Stock line {variety}/{bag_size} on receipt {receipt_id} would hold "
            f"{current_quantity} of {initial_quantity} bags"
        )


# Not found


class NotFoundError(LedgerError):
    """Base for missing records."""

    code: str = "NOT_FOUND"
    status: str = "not_found"


class FacilityNotFoundError(NotFoundError):
    """Facility with given ID was not found."""

    code: str = "FACILITY_NOT_FOUND"

    def __init__(self, facility_id: UUID | str):
        self.facility_id = str(facility_id)
        super().__init__(f"Facility not found: {facility_id}")


class DepositorNotFoundError(NotFoundError):
    """Depositor with given ID was not found."""

    code: str = "DEPOSITOR_NOT_FOUND"

    def __init__(self, depositor_id: UUID | str):
        self.depositor_id = str(depositor_id)
        super().__init__(f"Depositor not found: {depositor_id}")


class ReceiptNotFoundError(NotFoundError):
    """Receipt with given ID was not found."""

    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, receipt_id: UUID | str):
        self.receipt_id = str(receipt_id)
        super().__init__(f"Receipt not found: {receipt_id}")


class DeliveryNotFoundError(NotFoundError):
    """Delivery with given ID was not found."""

    code: str = "DELIVERY_NOT_FOUND"

    def __init__(self, delivery_id: UUID | str):
        self.delivery_id = str(delivery_id)
        super().__init__(f"Delivery not found: {delivery_id}")


class StockLineNotFoundError(NotFoundError):
    """Receipt exists but holds no line for the requested variety and size."""

    code: str = "STOCK_LINE_NOT_FOUND"

    def __init__(self, receipt_id: UUID | str, variety: str, bag_size: str):
        self.receipt_id = str(receipt_id)
        self.variety = variety
        self.bag_size = bag_size
        super().__init__(
            f"Receipt {receipt_id} has no stock line for {variety}/{bag_size}"
        )


# Authorization


class UnauthorizedError(LedgerError):
    """Caller may not act on a resource owned by another facility."""

    code: str = "UNAUTHORIZED"
    status: str = "forbidden"

    def __init__(self, actor_id: UUID | str, resource: str, reason: str):
        self.actor_id = str(actor_id)
        self.resource = resource
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not access {resource}: {reason}")


# Stock conflicts


class InsufficientStockError(LedgerError):
    """Requested withdrawal exceeds the line's current quantity."""

    code: str = "INSUFFICIENT_STOCK"
    status: str = "conflict"

    def __init__(
        self,
        receipt_id: UUID | str,
        variety: str,
        bag_size: str,
        requested: int,
        available: int,
    ):
        self.receipt_id = str(receipt_id)
        self.variety = variety
        self.bag_size = bag_size
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {variety}/{bag_size} on receipt {receipt_id}: "
            f"requested {requested}, available {available}"
        )


class ReceiptReferencedError(LedgerError):
    """Receipt cannot be deleted while deliveries reference it."""

    code: str = "RECEIPT_REFERENCED"
    status: str = "conflict"

    def __init__(self, receipt_id: UUID | str, delivery_count: int):
        self.receipt_id = str(receipt_id)
        self.delivery_count = delivery_count
        super().__init__(
            f"Receipt {receipt_id} is referenced by {delivery_count} delivery line(s)"
        )


# Transient


class TransientError(LedgerError):
    """
    The datastore aborted the unit of work.

    Covers deadlocks, serialization failures, lock timeouts and a lost
    compare-and-swap. The whole unit of work may be retried.
    """

    code: str = "TRANSIENT_ERROR"
    status: str = "unavailable"
    retryable: bool = True


class ConcurrentModificationError(TransientError):
    """A conditional stock update matched no row: someone else got there first."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, stock_line_id: UUID | str, expected_quantity: int):
        self.stock_line_id = str(stock_line_id)
        self.expected_quantity = expected_quantity
        super().__init__(
            f"Stock line {stock_line_id} changed concurrently "
            f"(expected current quantity {expected_quantity})"
        )
