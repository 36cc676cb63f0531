"""
DeliveryLedger -- withdrawal vouchers.

Responsibility:
    Creates, edits and deletes deliveries.  Every operation is a single
    atomic unit (SAVEPOINT) covering the locked read of source quantities,
    the sufficiency checks, the compare-and-swap decrements or reversals,
    the fulfillment writes, the voucher number and the delivery row itself.

Architecture position:
    Kernel > Services.  Delegates quantity changes to StockMovementService,
    numbering to VoucherNumberingService and the stock snapshot figure to
    StockSelector.

Invariants enforced:
    - Atomicity: a failure at any step leaves no decrement and no delivery.
    - Exact reversal: a delivery line records the exact quantity it removed;
      edit and delete put back exactly that amount.
    - Facility scoping: a caller acts only on its own facility's vouchers,
      and a delivery only draws from receipts of its own facility and
      depositor.

Failure modes:
    - ValidationError: malformed, negative or all-zero line requests, or a
      receipt belonging to a different depositor.
    - NotFoundError: facility, depositor, receipt, stock line or delivery.
    - UnauthorizedError: cross-facility access.
    - InsufficientStockError: a request exceeds the line's current quantity.
    - TransientError: datastore abort or lost compare-and-swap; retry the
      whole call.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from coldstore_kernel.domain.clock import Clock, SystemClock
from coldstore_kernel.domain.dtos import CallerContext, DeliveryInfo, DeliveryLineRequest
from coldstore_kernel.exceptions import (
    DeliveryNotFoundError,
    ReceiptNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from coldstore_kernel.logging_config import LogContext, get_logger
from coldstore_kernel.models.delivery import Delivery, DeliveryLine
from coldstore_kernel.models.receipt import Receipt, VoucherType
from coldstore_kernel.selectors.stock_selector import StockSelector
from coldstore_kernel.services.base import BaseService
from coldstore_kernel.services.directory_service import DirectoryService
from coldstore_kernel.services.stock_movement import AppliedDecrement, StockMovementService
from coldstore_kernel.services.voucher_service import VoucherNumberingService

logger = get_logger("services.delivery")

LineRequestInput = DeliveryLineRequest | Mapping


class DeliveryLedger(BaseService[Delivery]):
    """
    Write side for deliveries.

    Contract:
        Public methods return DeliveryInfo DTOs.  Nothing is committed; the
        caller owns the outer transaction (see db.engine.run_in_transaction).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._movement = StockMovementService(session)
        self._vouchers = VoucherNumberingService(session)
        self._directory = DirectoryService(session)
        self._stock = StockSelector(session)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_delivery(self, delivery_id: UUID) -> Delivery:
        delivery = self.session.get(Delivery, delivery_id)
        if delivery is None:
            raise DeliveryNotFoundError(delivery_id)
        return delivery

    @staticmethod
    def _prepare(line_requests: Iterable[LineRequestInput]) -> list[DeliveryLineRequest]:
        """Validate, merge duplicates and drop zero requests."""
        merged: dict[tuple[UUID, str, str], int] = {}
        for raw in line_requests:
            if isinstance(raw, DeliveryLineRequest):
                request = raw
            else:
                try:
                    request = DeliveryLineRequest(**raw)
                except TypeError as exc:
                    raise ValidationError(
                        f"Malformed delivery line request: {raw!r}", field="line_requests"
                    ) from exc
            merged[request.key] = merged.get(request.key, 0) + request.quantity_to_remove

        requests = [
            DeliveryLineRequest(
                receipt_id=receipt_id,
                variety=variety,
                bag_size=bag_size,
                quantity_to_remove=quantity,
            )
            for (receipt_id, variety, bag_size), quantity in merged.items()
            if quantity > 0
        ]
        if not requests:
            raise ValidationError(
                "A delivery must remove a positive quantity from at least one line",
                field="line_requests",
            )
        return requests

    def _apply(
        self,
        caller: CallerContext,
        facility_id: UUID,
        depositor_id: UUID,
        requests: list[DeliveryLineRequest],
    ) -> tuple[list[AppliedDecrement], dict[UUID, Receipt]]:
        receipts = self._movement.lock_receipts(r.receipt_id for r in requests)

        for request in requests:
            receipt = receipts.get(request.receipt_id)
            if receipt is None:
                raise ReceiptNotFoundError(request.receipt_id)
            if receipt.facility_id != facility_id:
                raise UnauthorizedError(
                    caller.actor_id,
                    f"receipt {receipt.id}",
                    "receipt belongs to another facility",
                )
            if receipt.depositor_id != depositor_id:
                raise ValidationError(
                    f"Receipt {receipt.id} belongs to a different depositor",
                    field="receipt_id",
                )

        applied = self._movement.decrement(requests, receipts, caller.actor_id)
        return applied, receipts

    @staticmethod
    def _build_lines(applied: list[AppliedDecrement], actor_id: UUID) -> list[DeliveryLine]:
        return [
            DeliveryLine(
                source_receipt_id=a.receipt_id,
                source_voucher_number=a.source_voucher_number,
                variety=a.variety,
                bag_size=a.bag_size,
                quantity_removed=a.quantity_removed,
                quantity_before=a.quantity_before,
                line_seq=seq,
                created_by_id=actor_id,
            )
            for seq, a in enumerate(applied)
        ]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_delivery(self, caller: CallerContext, delivery_id: UUID) -> DeliveryInfo:
        delivery = self._get_delivery(delivery_id)
        self._authorize(caller, delivery.facility_id, f"delivery {delivery_id}")
        return DeliveryInfo.from_model(delivery)

    def peek_next_delivery_number(self, caller: CallerContext, facility_id: UUID) -> int:
        """Number the next delivery at ``facility_id`` would receive."""
        self._authorize(caller, facility_id, f"facility {facility_id}")
        self._directory.require_facility(facility_id)
        return self._vouchers.peek(facility_id, VoucherType.DELIVERY)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_delivery(
        self,
        caller: CallerContext,
        facility_id: UUID,
        depositor_id: UUID,
        line_requests: Iterable[LineRequestInput],
        remarks: str | None = None,
        extraction_date: date | None = None,
    ) -> DeliveryInfo:
        """
        Withdraw bags from one or more receipts as one delivery voucher.

        Every request is checked against the locked source line before any
        write.  If one request fails, nothing is decremented and no
        delivery exists afterwards.

        Raises:
            ValidationError, NotFoundError, UnauthorizedError,
            InsufficientStockError, TransientError.
        """
        self._authorize(caller, facility_id, f"facility {facility_id}")
        self._directory.require_facility(facility_id)
        self._directory.require_depositor(depositor_id)
        requests = self._prepare(line_requests)

        with LogContext.for_operation(caller.actor_id, facility_id):
            with self._atomic():
                applied, receipts = self._apply(caller, facility_id, depositor_id, requests)
                self._movement.sync_fulfillment(receipts.values(), caller.actor_id)

                number = self._vouchers.next(facility_id, VoucherType.DELIVERY)
                delivery = Delivery(
                    facility_id=facility_id,
                    depositor_id=depositor_id,
                    voucher_type=VoucherType.DELIVERY.value,
                    voucher_number=number,
                    extraction_date=extraction_date or self._clock.today(),
                    stock_snapshot_at_creation=self._stock.current_total_stock(facility_id),
                    remarks=remarks,
                    created_by_id=caller.actor_id,
                )
                delivery.lines = self._build_lines(applied, caller.actor_id)
                self.session.add(delivery)
                self.session.flush()

            with LogContext.bind(voucher_id=delivery.id):
                logger.info(
                    "delivery_created",
                    extra={
                        "delivery_id": str(delivery.id),
                        "voucher_number": number,
                        "line_count": len(applied),
                        "total_removed": sum(a.quantity_removed for a in applied),
                    },
                )
        return DeliveryInfo.from_model(delivery)

    def edit_delivery(
        self,
        caller: CallerContext,
        delivery_id: UUID,
        line_requests: Iterable[LineRequestInput],
        remarks: str | None = None,
    ) -> DeliveryInfo:
        """
        Replace a delivery's lines.

        The old decrements are reversed and the new ones applied in the
        same savepoint, so no intermediate state is ever visible.  The
        voucher number is kept.
        """
        delivery = self._get_delivery(delivery_id)
        self._authorize(caller, delivery.facility_id, f"delivery {delivery_id}")
        requests = self._prepare(line_requests)

        with LogContext.for_operation(caller.actor_id, delivery.facility_id, delivery_id):
            with self._atomic():
                touched = self._movement.restore(delivery.lines, caller.actor_id)
                applied, receipts = self._apply(
                    caller, delivery.facility_id, delivery.depositor_id, requests
                )
                touched.update(receipts)
                self._movement.sync_fulfillment(touched.values(), caller.actor_id)

                delivery.lines.clear()
                self.session.flush()
                delivery.lines.extend(self._build_lines(applied, caller.actor_id))
                if remarks is not None:
                    delivery.remarks = remarks
                delivery.stock_snapshot_at_creation = self._stock.current_total_stock(
                    delivery.facility_id
                )
                delivery.updated_by_id = caller.actor_id
                self.session.flush()

            logger.info(
                "delivery_edited",
                extra={
                    "delivery_id": str(delivery.id),
                    "voucher_number": delivery.voucher_number,
                    "line_count": len(applied),
                },
            )
        return DeliveryInfo.from_model(delivery)

    def delete_delivery(self, caller: CallerContext, delivery_id: UUID) -> None:
        """
        Reverse every decrement of the delivery and remove it.

        Receipts that were fulfilled become unfulfilled again where stock
        comes back; the flag is written here, not left for a later read.
        """
        delivery = self._get_delivery(delivery_id)
        self._authorize(caller, delivery.facility_id, f"delivery {delivery_id}")

        with LogContext.for_operation(caller.actor_id, delivery.facility_id, delivery_id):
            voucher_number = delivery.voucher_number
            with self._atomic():
                touched = self._movement.restore(delivery.lines, caller.actor_id)
                self._movement.sync_fulfillment(touched.values(), caller.actor_id)
                self.session.delete(delivery)
                self.session.flush()

            logger.info(
                "delivery_deleted",
                extra={"delivery_id": str(delivery_id), "voucher_number": voucher_number},
            )
