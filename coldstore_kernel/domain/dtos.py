"""
DTOs -- Immutable data crossing the ledger boundary.

Responsibility:
    Request objects (CallerContext, StockLineSpec, DeliveryLineRequest,
    ReceiptEdit) validated on construction, and result objects
    (ReceiptInfo, DeliveryInfo and their line types) returned by services
    instead of live ORM rows.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ``from_model()``
    class methods are boundary converters invoked only by services and
    selectors.

Invariants enforced:
    - Quantities are plain ints (bool rejected) and never negative.
    - Variety and bag size names are canonical (see domain.values).

Failure modes:
    - ValidationError / InvalidStockLabelError on construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from coldstore_kernel.domain.values import BagSize, StorageLocation, Variety
from coldstore_kernel.exceptions import ValidationError

if TYPE_CHECKING:
    from coldstore_kernel.models.delivery import Delivery, DeliveryLine
    from coldstore_kernel.models.receipt import Receipt, StockLine


def require_quantity(value: object, field: str) -> int:
    """Return ``value`` if it is a non-negative int, else raise ValidationError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer, got {value!r}", field=field)
    if value < 0:
        raise ValidationError(f"{field} must not be negative, got {value}", field=field)
    return value


def _label(value: Variety | BagSize | str, kind: type) -> str:
    if isinstance(value, kind):
        return value.name
    return kind(value).name


def require_uuid(value: object, field: str) -> UUID:
    """Return ``value`` as a UUID; strings are parsed, anything else rejected."""
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError as exc:
            raise ValidationError(f"{field} is not a valid id: {value!r}", field=field) from exc
    raise ValidationError(f"{field} must be a UUID, got {value!r}", field=field)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CallerContext:
    """
    Authenticated identity supplied by the surrounding system.

    Non-admin callers act only within ``facility_id``.  Administrators may
    act on any facility and perform receipt deletion.
    """

    actor_id: UUID
    facility_id: UUID | None = None
    is_admin: bool = False


@dataclass(frozen=True)
class StockLineSpec:
    """
    One (variety, bag size) entry on a receipt being created or edited.

    ``current_quantity`` defaults to ``initial_quantity`` when omitted on
    create.  Edits require it explicitly.
    """

    variety: str
    bag_size: str
    initial_quantity: int
    current_quantity: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "variety", _label(self.variety, Variety))
        object.__setattr__(self, "bag_size", _label(self.bag_size, BagSize))
        require_quantity(self.initial_quantity, "initial_quantity")
        if self.current_quantity is not None:
            require_quantity(self.current_quantity, "current_quantity")
            if self.current_quantity > self.initial_quantity:
                raise ValidationError(
                    f"current_quantity {self.current_quantity} exceeds "
                    f"initial_quantity {self.initial_quantity} for "
                    f"{self.variety}/{self.bag_size}",
                    field="current_quantity",
                )

    @property
    def key(self) -> tuple[str, str]:
        return (self.variety, self.bag_size)

    @property
    def resolved_current(self) -> int:
        if self.current_quantity is None:
            return self.initial_quantity
        return self.current_quantity

    @property
    def is_empty(self) -> bool:
        return self.initial_quantity == 0 and self.resolved_current == 0


@dataclass(frozen=True)
class DeliveryLineRequest:
    """Withdraw ``quantity_to_remove`` bags of (variety, size) from a receipt."""

    receipt_id: UUID
    variety: str
    bag_size: str
    quantity_to_remove: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "receipt_id", require_uuid(self.receipt_id, "receipt_id"))
        object.__setattr__(self, "variety", _label(self.variety, Variety))
        object.__setattr__(self, "bag_size", _label(self.bag_size, BagSize))
        require_quantity(self.quantity_to_remove, "quantity_to_remove")

    @property
    def key(self) -> tuple[UUID, str, str]:
        return (self.receipt_id, self.variety, self.bag_size)


@dataclass(frozen=True)
class ReceiptEdit:
    """
    Changes to apply to an existing receipt.  ``None`` leaves a field as is.

    ``variety`` and ``stock_lines`` go together: the receipt's lines are
    replaced by ``stock_lines`` under ``variety``.
    """

    remarks: str | None = None
    submission_date: date | None = None
    fulfilled: bool | None = None
    variety: str | None = None
    stock_lines: tuple[StockLineSpec, ...] | None = None
    location: StorageLocation | None = None

    def __post_init__(self) -> None:
        if self.stock_lines is not None:
            object.__setattr__(self, "stock_lines", tuple(self.stock_lines))
            if self.variety is None:
                raise ValidationError(
                    "variety is required when replacing stock lines", field="variety"
                )
        if self.variety is not None:
            object.__setattr__(self, "variety", _label(self.variety, Variety))
            if self.stock_lines is None:
                raise ValidationError(
                    "stock_lines are required when changing variety", field="stock_lines"
                )

    @property
    def replaces_lines(self) -> bool:
        return self.stock_lines is not None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockLineInfo:
    id: UUID
    variety: str
    bag_size: str
    initial_quantity: int
    current_quantity: int

    @classmethod
    def from_model(cls, line: StockLine) -> StockLineInfo:
        return cls(
            id=line.id,
            variety=line.variety,
            bag_size=line.bag_size,
            initial_quantity=line.initial_quantity,
            current_quantity=line.current_quantity,
        )


@dataclass(frozen=True)
class ReceiptInfo:
    """Read-only view of a receipt and its stock lines."""

    id: UUID
    facility_id: UUID
    depositor_id: UUID
    voucher_type: str
    voucher_number: int
    submission_date: date
    fulfilled: bool
    stock_snapshot_at_creation: int
    location: StorageLocation
    remarks: str | None
    stock_lines: tuple[StockLineInfo, ...]

    @classmethod
    def from_model(cls, receipt: Receipt) -> ReceiptInfo:
        return cls(
            id=receipt.id,
            facility_id=receipt.facility_id,
            depositor_id=receipt.depositor_id,
            voucher_type=receipt.voucher_type,
            voucher_number=receipt.voucher_number,
            submission_date=receipt.submission_date,
            fulfilled=receipt.fulfilled,
            stock_snapshot_at_creation=receipt.stock_snapshot_at_creation,
            location=StorageLocation(
                floor=receipt.location_floor,
                row=receipt.location_row,
                chamber=receipt.location_chamber,
            ),
            remarks=receipt.remarks,
            stock_lines=tuple(StockLineInfo.from_model(line) for line in receipt.stock_lines),
        )

    def line(self, variety: str, bag_size: str) -> StockLineInfo | None:
        """Find a line by (variety, size), normalizing the lookup names."""
        key = (Variety(variety).name, BagSize(bag_size).name)
        for line in self.stock_lines:
            if (line.variety, line.bag_size) == key:
                return line
        return None

    @property
    def total_current(self) -> int:
        return sum(line.current_quantity for line in self.stock_lines)


@dataclass(frozen=True)
class DeliveryLineInfo:
    source_receipt_id: UUID
    source_voucher_number: int
    variety: str
    bag_size: str
    quantity_removed: int
    quantity_before: int

    @classmethod
    def from_model(cls, line: DeliveryLine) -> DeliveryLineInfo:
        return cls(
            source_receipt_id=line.source_receipt_id,
            source_voucher_number=line.source_voucher_number,
            variety=line.variety,
            bag_size=line.bag_size,
            quantity_removed=line.quantity_removed,
            quantity_before=line.quantity_before,
        )


@dataclass(frozen=True)
class DeliveryInfo:
    """Read-only view of a delivery and the exact quantities it removed."""

    id: UUID
    facility_id: UUID
    depositor_id: UUID
    voucher_type: str
    voucher_number: int
    extraction_date: date
    stock_snapshot_at_creation: int
    remarks: str | None
    lines: tuple[DeliveryLineInfo, ...]

    @classmethod
    def from_model(cls, delivery: Delivery) -> DeliveryInfo:
        return cls(
            id=delivery.id,
            facility_id=delivery.facility_id,
            depositor_id=delivery.depositor_id,
            voucher_type=delivery.voucher_type,
            voucher_number=delivery.voucher_number,
            extraction_date=delivery.extraction_date,
            stock_snapshot_at_creation=delivery.stock_snapshot_at_creation,
            remarks=delivery.remarks,
            lines=tuple(DeliveryLineInfo.from_model(line) for line in delivery.lines),
        )

    @property
    def total_removed(self) -> int:
        return sum(line.quantity_removed for line in self.lines)
