"""
ReceiptLedger -- incoming stock vouchers.

Responsibility:
    Creates receipts with validated, normalized stock lines; edits their
    direct fields, lines and location; and lets an administrator delete
    them.  Each receipt draws its number from the facility's RECEIPT
    sequence and records the facility stock total at the time it was
    written.

Architecture position:
    Kernel > Services.  Uses VoucherNumberingService, DirectoryService and
    StockSelector (for the stock snapshot figure).

Invariants enforced:
    - Lines: quantities are non-negative ints with current <= initial;
      all-zero lines are dropped; at least one line remains; no two lines
      share a (variety, size).
    - Snapshot: stock_snapshot_at_creation is the current stock of every
      other receipt of the facility plus this receipt's own current total,
      recomputed after every edit.
    - Deletion: administrators only.  By default a receipt that deliveries
      still reference is not deleted (ReceiptReferencedError); ``force=True``
      deletes it anyway and leaves those delivery lines in place.

Failure modes:
    - ValidationError, NotFoundError, UnauthorizedError,
      ReceiptReferencedError, TransientError.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from coldstore_kernel.domain.clock import Clock, SystemClock
from coldstore_kernel.domain.dtos import (
    CallerContext,
    ReceiptEdit,
    ReceiptInfo,
    StockLineSpec,
)
from coldstore_kernel.domain.fulfillment import receipt_is_fulfilled
from coldstore_kernel.domain.values import StorageLocation
from coldstore_kernel.exceptions import (
    ReceiptNotFoundError,
    ReceiptReferencedError,
    UnauthorizedError,
    ValidationError,
)
from coldstore_kernel.logging_config import LogContext, get_logger
from coldstore_kernel.models.delivery import DeliveryLine
from coldstore_kernel.models.receipt import Receipt, StockLine, VoucherType
from coldstore_kernel.selectors.stock_selector import StockSelector
from coldstore_kernel.services.base import BaseService
from coldstore_kernel.services.directory_service import DirectoryService
from coldstore_kernel.services.stock_movement import StockMovementService
from coldstore_kernel.services.voucher_service import VoucherNumberingService

logger = get_logger("services.receipt")

StockLineInput = StockLineSpec | Mapping


def _coerce_spec(raw: StockLineInput) -> StockLineSpec:
    if isinstance(raw, StockLineSpec):
        return raw
    try:
        return StockLineSpec(**raw)
    except TypeError as exc:
        raise ValidationError(f"Malformed stock line: {raw!r}", field="stock_lines") from exc


def _coerce_location(raw: StorageLocation | Mapping) -> StorageLocation:
    if isinstance(raw, StorageLocation):
        return raw
    try:
        return StorageLocation(**raw)
    except TypeError as exc:
        raise ValidationError(f"Malformed storage location: {raw!r}", field="location") from exc


def _prepare_lines(specs: Iterable[StockLineSpec]) -> list[StockLineSpec]:
    """Drop all-zero lines, reject duplicates, require at least one line."""
    kept: list[StockLineSpec] = []
    seen: set[tuple[str, str]] = set()
    for spec in specs:
        if spec.key in seen:
            raise ValidationError(
                f"Duplicate stock line for {spec.variety}/{spec.bag_size}",
                field="stock_lines",
            )
        seen.add(spec.key)
        if not spec.is_empty:
            kept.append(spec)
    if not kept:
        raise ValidationError(
            "A receipt needs at least one stock line with a non-zero quantity",
            field="stock_lines",
        )
    return kept


class ReceiptLedger(BaseService[Receipt]):
    """
    Write side for receipts.

    Contract:
        Public methods return ReceiptInfo DTOs.  Nothing is committed; the
        caller owns the outer transaction.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._vouchers = VoucherNumberingService(session)
        self._directory = DirectoryService(session)
        self._movement = StockMovementService(session)
        self._stock = StockSelector(session)

    def _get_receipt(self, receipt_id: UUID) -> Receipt:
        receipt = self.session.get(Receipt, receipt_id)
        if receipt is None:
            raise ReceiptNotFoundError(receipt_id)
        return receipt

    def _lock_receipt(self, receipt_id: UUID) -> Receipt:
        receipt = self._movement.lock_receipts([receipt_id]).get(receipt_id)
        if receipt is None:
            raise ReceiptNotFoundError(receipt_id)
        return receipt

    def _snapshot_for(self, receipt: Receipt) -> int:
        others = self._stock.current_total_stock(
            receipt.facility_id, exclude_receipt_id=receipt.id
        )
        return others + receipt.total_current

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_receipt(self, caller: CallerContext, receipt_id: UUID) -> ReceiptInfo:
        receipt = self._get_receipt(receipt_id)
        self._authorize(caller, receipt.facility_id, f"receipt {receipt_id}")
        return ReceiptInfo.from_model(receipt)

    def peek_next_receipt_number(self, caller: CallerContext, facility_id: UUID) -> int:
        """Number the next receipt at ``facility_id`` would receive."""
        self._authorize(caller, facility_id, f"facility {facility_id}")
        self._directory.require_facility(facility_id)
        return self._vouchers.peek(facility_id, VoucherType.RECEIPT)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_receipt(
        self,
        caller: CallerContext,
        facility_id: UUID,
        depositor_id: UUID,
        stock_lines: Iterable[StockLineInput],
        location: StorageLocation | Mapping,
        remarks: str | None = None,
        submission_date: date | None = None,
    ) -> ReceiptInfo:
        """
        Record bags received from a depositor.

        Args:
            caller: Identity of the store operator.
            facility_id: Facility receiving the stock.
            depositor_id: Farmer depositing the stock.
            stock_lines: One entry per (variety, bag size).
            location: Floor, row and chamber inside the facility.
            remarks: Free text printed on the voucher.
            submission_date: Defaults to the clock's current date.

        Raises:
            ValidationError, NotFoundError, UnauthorizedError, TransientError.
        """
        self._authorize(caller, facility_id, f"facility {facility_id}")
        self._directory.require_facility(facility_id)
        self._directory.require_depositor(depositor_id)
        specs = _prepare_lines(_coerce_spec(raw) for raw in stock_lines)
        where = _coerce_location(location)

        with LogContext.for_operation(caller.actor_id, facility_id):
            with self._atomic():
                existing_total = self._stock.current_total_stock(facility_id)
                number = self._vouchers.next(facility_id, VoucherType.RECEIPT)
                receipt = Receipt(
                    facility_id=facility_id,
                    depositor_id=depositor_id,
                    voucher_type=VoucherType.RECEIPT.value,
                    voucher_number=number,
                    submission_date=submission_date or self._clock.today(),
                    location_floor=where.floor,
                    location_row=where.row,
                    location_chamber=where.chamber,
                    remarks=remarks,
                    created_by_id=caller.actor_id,
                )
                receipt.stock_lines = [
                    StockLine(
                        variety=spec.variety,
                        bag_size=spec.bag_size,
                        initial_quantity=spec.initial_quantity,
                        current_quantity=spec.resolved_current,
                        line_seq=seq,
                        created_by_id=caller.actor_id,
                    )
                    for seq, spec in enumerate(specs)
                ]
                receipt.fulfilled = receipt_is_fulfilled(receipt.stock_lines)
                receipt.stock_snapshot_at_creation = existing_total + receipt.total_current
                self.session.add(receipt)
                self.session.flush()

            with LogContext.bind(voucher_id=receipt.id):
                logger.info(
                    "receipt_created",
                    extra={
                        "receipt_id": str(receipt.id),
                        "voucher_number": number,
                        "line_count": len(specs),
                        "total_bags": receipt.total_current,
                        "stock_snapshot": receipt.stock_snapshot_at_creation,
                    },
                )
        return ReceiptInfo.from_model(receipt)

    def edit_receipt(
        self,
        caller: CallerContext,
        receipt_id: UUID,
        edit: ReceiptEdit,
    ) -> ReceiptInfo:
        """
        Apply ``edit`` to a receipt and recompute its stock snapshot.

        Replacement lines are matched to existing ones by (variety, size):
        matches are updated in place, unmatched existing lines are removed
        and new keys are inserted.  Unless ``edit.fulfilled`` is given, the
        fulfilled flag is re-evaluated whenever lines change.
        """
        receipt = self._get_receipt(receipt_id)
        self._authorize(caller, receipt.facility_id, f"receipt {receipt_id}")

        specs: list[StockLineSpec] | None = None
        if edit.replaces_lines:
            raw_specs = [
                _coerce_spec(
                    raw
                    if isinstance(raw, StockLineSpec) or "variety" in raw
                    else {**raw, "variety": edit.variety}
                )
                for raw in edit.stock_lines
            ]
            for spec in raw_specs:
                if spec.current_quantity is None:
                    raise ValidationError(
                        f"current_quantity is required for {spec.bag_size} when editing",
                        field="current_quantity",
                    )
            specs = _prepare_lines(
                StockLineSpec(
                    variety=edit.variety,
                    bag_size=spec.bag_size,
                    initial_quantity=spec.initial_quantity,
                    current_quantity=spec.current_quantity,
                )
                for spec in raw_specs
            )

        with LogContext.for_operation(caller.actor_id, receipt.facility_id, receipt_id):
            with self._atomic():
                receipt = self._lock_receipt(receipt_id)

                if edit.remarks is not None:
                    receipt.remarks = edit.remarks
                if edit.submission_date is not None:
                    receipt.submission_date = edit.submission_date
                if edit.location is not None:
                    where = _coerce_location(edit.location)
                    receipt.location_floor = where.floor
                    receipt.location_row = where.row
                    receipt.location_chamber = where.chamber
                if specs is not None:
                    self._replace_lines(receipt, specs, caller.actor_id)

                if edit.fulfilled is not None:
                    receipt.fulfilled = edit.fulfilled
                elif specs is not None:
                    receipt.fulfilled = receipt_is_fulfilled(receipt.stock_lines)

                receipt.updated_by_id = caller.actor_id
                self.session.flush()
                receipt.stock_snapshot_at_creation = self._snapshot_for(receipt)
                self.session.flush()

            logger.info(
                "receipt_edited",
                extra={
                    "receipt_id": str(receipt.id),
                    "voucher_number": receipt.voucher_number,
                    "lines_replaced": specs is not None,
                    "stock_snapshot": receipt.stock_snapshot_at_creation,
                },
            )
        return ReceiptInfo.from_model(receipt)

    def _replace_lines(
        self,
        receipt: Receipt,
        specs: list[StockLineSpec],
        actor_id: UUID,
    ) -> None:
        existing = {(line.variety, line.bag_size): line for line in receipt.stock_lines}
        wanted = {spec.key for spec in specs}

        for key, line in existing.items():
            if key not in wanted:
                receipt.stock_lines.remove(line)
        # Deletes go out before inserts reuse a (variety, size) key
        self.session.flush()

        for seq, spec in enumerate(specs):
            line = existing.get(spec.key)
            if line is not None:
                line.initial_quantity = spec.initial_quantity
                line.current_quantity = spec.resolved_current
                line.line_seq = seq
                line.updated_by_id = actor_id
            else:
                receipt.stock_lines.append(
                    StockLine(
                        variety=spec.variety,
                        bag_size=spec.bag_size,
                        initial_quantity=spec.initial_quantity,
                        current_quantity=spec.resolved_current,
                        line_seq=seq,
                        created_by_id=actor_id,
                    )
                )

    def delete_receipt(
        self,
        caller: CallerContext,
        receipt_id: UUID,
        force: bool = False,
    ) -> None:
        """
        Administrative removal of a receipt.

        Deliveries referencing the receipt are never reversed.  Without
        ``force`` their existence blocks the delete; with ``force`` their
        lines are kept as history pointing at a receipt that is gone.

        Raises:
            ReceiptNotFoundError, UnauthorizedError, ReceiptReferencedError.
        """
        receipt = self._get_receipt(receipt_id)
        if not caller.is_admin:
            raise UnauthorizedError(
                caller.actor_id,
                f"receipt {receipt_id}",
                "receipt deletion requires an administrator",
            )

        with LogContext.for_operation(caller.actor_id, receipt.facility_id, receipt_id):
            with self._atomic():
                # Deliveries lock the receipt before referencing it
                receipt = self._lock_receipt(receipt_id)
                references = self.session.execute(
                    select(func.count(DeliveryLine.id)).where(
                        DeliveryLine.source_receipt_id == receipt_id
                    )
                ).scalar_one()
                if references and not force:
                    raise ReceiptReferencedError(receipt_id, references)

                voucher_number = receipt.voucher_number
                self.session.delete(receipt)
                self.session.flush()

            if references:
                logger.warning(
                    "receipt_deleted_with_deliveries",
                    extra={
                        "receipt_id": str(receipt_id),
                        "voucher_number": voucher_number,
                        "delivery_line_count": references,
                    },
                )
            logger.info(
                "receipt_deleted",
                extra={"receipt_id": str(receipt_id), "voucher_number": voucher_number},
            )
