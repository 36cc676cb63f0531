"""
Module: coldstore_kernel.models.delivery
Responsibility: ORM persistence for deliveries (withdrawal vouchers) and the
    per-line record of exactly what each delivery removed from which receipt.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Voucher uniqueness: (facility_id, voucher_number) is UNIQUE
      (uq_delivery_voucher), independent of receipt numbering.
    - quantity_removed > 0 on every line (ck_delivery_line_positive).
    - A DeliveryLine records the exact decrement it caused, so reversal
      restores exactly that amount.

Design note:
    source_receipt_id is an indexed reference, not a foreign key.  An
    administrator may force-delete a receipt that deliveries still point
    at; the delivery rows survive as history.

Audit relevance:
    quantity_before and source_voucher_number preserve the state of the
    source line at withdrawal time.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coldstore_kernel.db.base import TrackedBase, UUIDString
from coldstore_kernel.models.receipt import VoucherType


class Delivery(TrackedBase):
    """An outgoing-stock voucher drawing bags from one or more receipts."""

    __tablename__ = "deliveries"

    __table_args__ = (
        UniqueConstraint("facility_id", "voucher_number", name="uq_delivery_voucher"),
        Index("idx_delivery_facility_depositor", "facility_id", "depositor_id"),
        Index("idx_delivery_extraction_date", "facility_id", "extraction_date"),
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
        default=VoucherType.DELIVERY.value,
    )

    voucher_number: Mapped[int] = mapped_column(
        nullable=False,
    )

    extraction_date: Mapped[date] = mapped_column(
        nullable=False,
    )

    # Facility total current stock after this delivery's decrements
    stock_snapshot_at_creation: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )

    remarks: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Relationships
    lines: Mapped[list["DeliveryLine"]] = relationship(
        back_populates="delivery",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DeliveryLine.line_seq",
    )

    def __repr__(self) -> str:
        return f"<Delivery {self.id} #{self.voucher_number}>"

    @property
    def total_removed(self) -> int:
        return sum(line.quantity_removed for line in self.lines)


class DeliveryLine(TrackedBase):
    """One withdrawal of one (variety, bag size) from one receipt."""

    __tablename__ = "delivery_lines"

    __table_args__ = (
        CheckConstraint("quantity_removed > 0", name="ck_delivery_line_positive"),
        Index("idx_delivery_line_source", "source_receipt_id"),
    )

    delivery_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("deliveries.id", ondelete="CASCADE"),
        nullable=False,
    )

    source_receipt_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    source_voucher_number: Mapped[int] = mapped_column(nullable=False)

    variety: Mapped[str] = mapped_column(String(100), nullable=False)
    bag_size: Mapped[str] = mapped_column(String(100), nullable=False)

    quantity_removed: Mapped[int] = mapped_column(nullable=False)

    # Source line's current quantity just before this withdrawal
    quantity_before: Mapped[int] = mapped_column(nullable=False)

    line_seq: Mapped[int] = mapped_column(nullable=False, default=0)

    delivery: Mapped["Delivery"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return (
            f"<DeliveryLine {self.variety}/{self.bag_size} "
            f"-{self.quantity_removed} from {self.source_receipt_id}>"
        )
