"""
Module: coldstore_kernel.models.receipt
Responsibility: ORM persistence for receipts (incoming stock vouchers) and
    their stock lines -- the only place where bag quantities live.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Voucher uniqueness: (facility_id, voucher_number) is UNIQUE
      (uq_receipt_voucher).  Numbers come from VoucherNumberingService.
    - Stock range: 0 <= current_quantity <= initial_quantity on every line
      (CHECK constraints ck_stock_line_*).  Services check first and raise
      typed errors; the constraints are the last line.
    - Line identity: (receipt_id, variety, bag_size) is UNIQUE.
    - No empty lines: a line with both quantities zero is never written
      (enforced by ReceiptLedger validation).

Failure modes:
    - IntegrityError on duplicate voucher number or duplicate line key.
    - IntegrityError on CHECK violation if a caller bypasses the services.

Audit relevance:
    stock_snapshot_at_creation records the facility's total current stock
    at the moment the receipt was written, so historical vouchers can be
    read with the stock context they were issued in.
"""

from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coldstore_kernel.db.base import TrackedBase, UUIDString


class VoucherType(str, Enum):
    """Kind of voucher; each kind has its own per-facility number sequence."""

    RECEIPT = "RECEIPT"
    DELIVERY = "DELIVERY"


class Receipt(TrackedBase):
    """
    An incoming-stock voucher.

    Contract:
        Holds one or more StockLines for a single depositor at a single
        facility.  current_quantity on each line is drawn down by deliveries
        and restored when those deliveries are edited or deleted.

    Guarantees:
        - voucher_number is unique within the facility.
        - fulfilled caches "every line is at zero" as of the last write that
          touched this receipt.  It is recomputed on write paths only.
    """

    __tablename__ = "receipts"

    __table_args__ = (
        UniqueConstraint("facility_id", "voucher_number", name="uq_receipt_voucher"),
        Index("idx_receipt_facility_depositor", "facility_id", "depositor_id"),
        Index("idx_receipt_submission_date", "facility_id", "submission_date"),
    )

    facility_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("facilities.id"),
        nullable=False,
    )

    depositor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("depositors.id"),
        nullable=False,
    )

    voucher_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=VoucherType.RECEIPT.value,
    )

    voucher_number: Mapped[int] = mapped_column(
        nullable=False,
    )

    submission_date: Mapped[date] = mapped_column(
        nullable=False,
    )

    fulfilled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Facility total current stock, including this receipt, when written
    stock_snapshot_at_creation: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )

    # Storage location inside the facility
    location_floor: Mapped[str] = mapped_column(String(50), nullable=False)
    location_row: Mapped[str] = mapped_column(String(50), nullable=False)
    location_chamber: Mapped[str] = mapped_column(String(50), nullable=False)

    remarks: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Relationships
    stock_lines: Mapped[list["StockLine"]] = relationship(
        back_populates="receipt",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="StockLine.line_seq",
    )

    def __repr__(self) -> str:
        return f"<Receipt {self.id} #{self.voucher_number} fulfilled={self.fulfilled}>"

    @property
    def total_current(self) -> int:
        return sum(line.current_quantity for line in self.stock_lines)

    @property
    def total_initial(self) -> int:
        return sum(line.initial_quantity for line in self.stock_lines)


class StockLine(TrackedBase):
    """
    Quantity of one (variety, bag size) on one receipt.

    Contract:
        current_quantity is the number of bags still in storage.  It only
        changes through StockMovementService (conditional UPDATEs) or a
        receipt edit.
    """

    __tablename__ = "stock_lines"

    __table_args__ = (
        UniqueConstraint("receipt_id", "variety", "bag_size", name="uq_stock_line_key"),
        CheckConstraint("initial_quantity >= 0", name="ck_stock_line_initial_nonneg"),
        CheckConstraint("current_quantity >= 0", name="ck_stock_line_current_nonneg"),
        CheckConstraint(
            "current_quantity <= initial_quantity",
            name="ck_stock_line_current_le_initial",
        ),
        Index("idx_stock_line_variety_size", "variety", "bag_size"),
    )

    receipt_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("receipts.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Normalized names (see domain.values.Variety / BagSize)
    variety: Mapped[str] = mapped_column(String(100), nullable=False)
    bag_size: Mapped[str] = mapped_column(String(100), nullable=False)

    initial_quantity: Mapped[int] = mapped_column(nullable=False)
    current_quantity: Mapped[int] = mapped_column(nullable=False)

    # Order of entry on the voucher
    line_seq: Mapped[int] = mapped_column(nullable=False, default=0)

    receipt: Mapped["Receipt"] = relationship(back_populates="stock_lines")

    def __repr__(self) -> str:
        return (
            f"<StockLine {self.variety}/{self.bag_size} "
            f"{self.current_quantity}/{self.initial_quantity}>"
        )
