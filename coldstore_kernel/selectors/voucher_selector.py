"""
Module: coldstore_kernel.selectors.voucher_selector
Responsibility: Read-only listings of receipts and deliveries: per facility,
    per depositor, per variety, a depositor's combined history and the
    facility day book.
Architecture position: Kernel > Selectors.

Failure modes:
    - ValidationError for a negative limit or offset, or an unknown voucher
      type filter.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select

from coldstore_kernel.domain.dtos import DeliveryInfo, ReceiptInfo
from coldstore_kernel.domain.values import Variety
from coldstore_kernel.exceptions import ValidationError
from coldstore_kernel.models.delivery import Delivery
from coldstore_kernel.models.receipt import Receipt, StockLine, VoucherType
from coldstore_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class VoucherEntry:
    """One receipt or delivery in a mixed listing."""

    voucher_type: VoucherType
    id: UUID
    voucher_number: int
    depositor_id: UUID
    voucher_date: date
    created_at: datetime | None
    total_bags: int


@dataclass(frozen=True)
class DayBookPage:
    entries: tuple[VoucherEntry, ...]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.entries) < self.total


def _receipt_entry(receipt: Receipt) -> VoucherEntry:
    return VoucherEntry(
        voucher_type=VoucherType.RECEIPT,
        id=receipt.id,
        voucher_number=receipt.voucher_number,
        depositor_id=receipt.depositor_id,
        voucher_date=receipt.submission_date,
        created_at=receipt.created_at,
        total_bags=receipt.total_initial,
    )


def _delivery_entry(delivery: Delivery) -> VoucherEntry:
    return VoucherEntry(
        voucher_type=VoucherType.DELIVERY,
        id=delivery.id,
        voucher_number=delivery.voucher_number,
        depositor_id=delivery.depositor_id,
        voucher_date=delivery.extraction_date,
        created_at=delivery.created_at,
        total_bags=delivery.total_removed,
    )


def _newest_first(entry: VoucherEntry) -> tuple:
    # Receipts before deliveries on the same date and number
    return (
        entry.voucher_date,
        entry.voucher_number,
        entry.voucher_type == VoucherType.RECEIPT,
    )


class VoucherSelector(BaseSelector[Receipt]):
    """Listings over receipts and deliveries."""

    def _receipts(
        self,
        facility_id: UUID,
        depositor_id: UUID | None = None,
        variety: str | None = None,
    ) -> list[Receipt]:
        query = select(Receipt).where(Receipt.facility_id == facility_id)
        if depositor_id is not None:
            query = query.where(Receipt.depositor_id == depositor_id)
        if variety is not None:
            name = Variety(variety).name
            query = query.where(Receipt.stock_lines.any(StockLine.variety == name))
        query = query.order_by(Receipt.voucher_number)
        return list(self.session.execute(query).scalars().all())

    def _deliveries(
        self,
        facility_id: UUID,
        depositor_id: UUID | None = None,
    ) -> list[Delivery]:
        query = select(Delivery).where(Delivery.facility_id == facility_id)
        if depositor_id is not None:
            query = query.where(Delivery.depositor_id == depositor_id)
        query = query.order_by(Delivery.voucher_number)
        return list(self.session.execute(query).scalars().all())

    def list_receipts(
        self,
        facility_id: UUID,
        depositor_id: UUID | None = None,
        variety: str | None = None,
    ) -> list[ReceiptInfo]:
        """Receipts by voucher number, optionally for one depositor or variety."""
        return [ReceiptInfo.from_model(r) for r in self._receipts(facility_id, depositor_id, variety)]

    def list_deliveries(
        self,
        facility_id: UUID,
        depositor_id: UUID | None = None,
    ) -> list[DeliveryInfo]:
        return [DeliveryInfo.from_model(d) for d in self._deliveries(facility_id, depositor_id)]

    def depositor_history(self, facility_id: UUID, depositor_id: UUID) -> list[VoucherEntry]:
        """Every receipt and delivery of the depositor, newest first."""
        entries = [_receipt_entry(r) for r in self._receipts(facility_id, depositor_id)]
        entries += [_delivery_entry(d) for d in self._deliveries(facility_id, depositor_id)]
        return sorted(entries, key=_newest_first, reverse=True)

    def day_book(
        self,
        facility_id: UUID,
        voucher_type: VoucherType | str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> DayBookPage:
        """
        The facility's vouchers newest first, one page at a time.

        Args:
            facility_id: Facility whose vouchers are listed.
            voucher_type: RECEIPT, DELIVERY, or None for both.
            limit: Page size (> 0).
            offset: Entries to skip (>= 0).
        """
        if limit <= 0 or offset < 0:
            raise ValidationError(
                f"Invalid page: limit={limit} offset={offset}", field="limit"
            )
        if voucher_type is not None:
            try:
                voucher_type = VoucherType(voucher_type)
            except ValueError as exc:
                raise ValidationError(
                    f"Unknown voucher type: {voucher_type!r}", field="voucher_type"
                ) from exc

        entries: list[VoucherEntry] = []
        if voucher_type in (None, VoucherType.RECEIPT):
            entries += [_receipt_entry(r) for r in self._receipts(facility_id)]
        if voucher_type in (None, VoucherType.DELIVERY):
            entries += [_delivery_entry(d) for d in self._deliveries(facility_id)]
        entries.sort(key=_newest_first, reverse=True)

        return DayBookPage(
            entries=tuple(entries[offset:offset + limit]),
            total=len(entries),
            limit=limit,
            offset=offset,
        )
