"""
StockMovementService -- the only code that changes a line's current quantity
after the receipt is written.

Responsibility:
    Locks the receipts a withdrawal or reversal touches, checks every
    requested quantity before writing anything, applies the changes as
    compare-and-swap UPDATEs, and refreshes each touched receipt's cached
    ``fulfilled`` flag.

Architecture position:
    Kernel > Services.  Used by DeliveryLedger for create, edit and delete.
    Must be called inside the caller's savepoint (``BaseService._atomic``);
    it never opens or closes transactions itself.

Invariants enforced:
    - No negative stock: a decrement larger than the line's current
      quantity raises InsufficientStockError before any UPDATE is issued.
    - current <= initial: a reversal that would exceed the initial quantity
      raises StockInvariantError.
    - Compare-and-swap: each UPDATE is filtered on the line id, its variety
      and size, and the exact current quantity read under lock.  A zero row
      count means another writer got there first and raises
      ConcurrentModificationError, aborting the whole unit.
    - Lock order: receipts and lines are locked in primary-key order so two
      overlapping withdrawals cannot deadlock on each other.

Failure modes:
    - StockLineNotFoundError when a receipt has no (variety, size) line.
    - InsufficientStockError, StockInvariantError, ConcurrentModificationError.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select, update

from coldstore_kernel.domain.dtos import DeliveryLineRequest
from coldstore_kernel.domain.fulfillment import receipt_is_fulfilled
from coldstore_kernel.exceptions import (
    ConcurrentModificationError,
    InsufficientStockError,
    StockInvariantError,
    StockLineNotFoundError,
)
from coldstore_kernel.logging_config import get_logger
from coldstore_kernel.models.delivery import DeliveryLine
from coldstore_kernel.models.receipt import Receipt, StockLine
from coldstore_kernel.services.base import BaseService

logger = get_logger("services.stock_movement")


@dataclass(frozen=True)
class AppliedDecrement:
    """What one withdrawal did to one stock line."""

    stock_line_id: UUID
    receipt_id: UUID
    source_voucher_number: int
    variety: str
    bag_size: str
    quantity_removed: int
    quantity_before: int


class StockMovementService(BaseService[StockLine]):
    """Locked, all-or-nothing quantity changes on stock lines."""

    def lock_receipts(self, receipt_ids: Iterable[UUID]) -> dict[UUID, Receipt]:
        """
        SELECT ... FOR UPDATE the receipts and their lines.

        Returns only the receipts that exist; callers decide whether a
        missing one is an error.  Loaded rows are refreshed from the
        database so stale identity-map values never feed a decision.
        """
        ids = sorted(set(receipt_ids), key=str)
        if not ids:
            return {}

        receipts = self.session.execute(
            select(Receipt)
            .where(Receipt.id.in_(ids))
            .order_by(Receipt.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()

        self.session.execute(
            select(StockLine)
            .where(StockLine.receipt_id.in_(ids))
            .order_by(StockLine.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()

        return {receipt.id: receipt for receipt in receipts}

    @staticmethod
    def _find_line(receipt: Receipt, variety: str, bag_size: str) -> StockLine | None:
        for line in receipt.stock_lines:
            if line.variety == variety and line.bag_size == bag_size:
                return line
        return None

    def _compare_and_swap(
        self,
        line: StockLine,
        expected: int,
        new_value: int,
        actor_id: UUID,
    ) -> None:
        result = self.session.execute(
            update(StockLine)
            .where(
                StockLine.id == line.id,
                StockLine.variety == line.variety,
                StockLine.bag_size == line.bag_size,
                StockLine.current_quantity == expected,
            )
            .values(current_quantity=new_value, updated_by_id=actor_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "stock_line_cas_failed",
                extra={
                    "stock_line_id": str(line.id),
                    "expected_quantity": expected,
                },
            )
            raise ConcurrentModificationError(line.id, expected)

    def decrement(
        self,
        requests: Sequence[DeliveryLineRequest],
        receipts: dict[UUID, Receipt],
        actor_id: UUID,
    ) -> list[AppliedDecrement]:
        """
        Withdraw every request or none of them.

        ``requests`` must already be merged (one request per line key) and
        every referenced receipt must be present in ``receipts`` (locked).
        """
        plan: list[tuple[DeliveryLineRequest, Receipt, StockLine, int]] = []
        for request in requests:
            receipt = receipts[request.receipt_id]
            line = self._find_line(receipt, request.variety, request.bag_size)
            if line is None:
                raise StockLineNotFoundError(receipt.id, request.variety, request.bag_size)
            available = line.current_quantity
            if request.quantity_to_remove > available:
                logger.info(
                    "insufficient_stock",
                    extra={
                        "receipt_id": str(receipt.id),
                        "variety": request.variety,
                        "bag_size": request.bag_size,
                        "requested": request.quantity_to_remove,
                        "available": available,
                    },
                )
                raise InsufficientStockError(
                    receipt.id,
                    request.variety,
                    request.bag_size,
                    request.quantity_to_remove,
                    available,
                )
            plan.append((request, receipt, line, available))

        applied: list[AppliedDecrement] = []
        for request, receipt, line, before in plan:
            self._compare_and_swap(line, before, before - request.quantity_to_remove, actor_id)
            applied.append(
                AppliedDecrement(
                    stock_line_id=line.id,
                    receipt_id=receipt.id,
                    source_voucher_number=receipt.voucher_number,
                    variety=line.variety,
                    bag_size=line.bag_size,
                    quantity_removed=request.quantity_to_remove,
                    quantity_before=before,
                )
            )
            logger.debug(
                "stock_decremented",
                extra={
                    "stock_line_id": str(line.id),
                    "quantity_removed": request.quantity_to_remove,
                    "quantity_before": before,
                },
            )
        return applied

    def restore(
        self,
        delivery_lines: Iterable[DeliveryLine],
        actor_id: UUID,
    ) -> dict[UUID, Receipt]:
        """
        Put the quantities recorded on ``delivery_lines`` back.

        Lines whose source receipt or stock line no longer exists (receipt
        force-deleted, or its lines replaced by an edit) are skipped with a
        warning.  Returns the receipts that were touched, still locked.
        """
        totals: dict[tuple[UUID, str, str], int] = defaultdict(int)
        for dl in delivery_lines:
            totals[(dl.source_receipt_id, dl.variety, dl.bag_size)] += dl.quantity_removed

        receipts = self.lock_receipts(key[0] for key in totals)
        touched: dict[UUID, Receipt] = {}

        for (receipt_id, variety, bag_size), quantity in sorted(
            totals.items(), key=lambda item: (str(item[0][0]), item[0][1], item[0][2])
        ):
            receipt = receipts.get(receipt_id)
            line = self._find_line(receipt, variety, bag_size) if receipt is not None else None
            if line is None:
                logger.warning(
                    "reversal_source_missing",
                    extra={
                        "receipt_id": str(receipt_id),
                        "variety": variety,
                        "bag_size": bag_size,
                        "quantity": quantity,
                    },
                )
                continue

            before = line.current_quantity
            after = before + quantity
            if after > line.initial_quantity:
                raise StockInvariantError(
                    receipt_id, variety, bag_size, after, line.initial_quantity
                )
            self._compare_and_swap(line, before, after, actor_id)
            touched[receipt_id] = receipt
            logger.debug(
                "stock_restored",
                extra={
                    "stock_line_id": str(line.id),
                    "quantity_restored": quantity,
                    "quantity_before": before,
                },
            )
        return touched

    def sync_fulfillment(self, receipts: Iterable[Receipt], actor_id: UUID) -> None:
        """Re-read each receipt's lines and write ``fulfilled`` where it changed."""
        for receipt in receipts:
            lines = self.session.execute(
                select(StockLine)
                .where(StockLine.receipt_id == receipt.id)
                .execution_options(populate_existing=True)
            ).scalars().all()
            fulfilled = receipt_is_fulfilled(lines)
            if receipt.fulfilled != fulfilled:
                receipt.fulfilled = fulfilled
                receipt.updated_by_id = actor_id
                logger.info(
                    "fulfillment_changed",
                    extra={
                        "receipt_id": str(receipt.id),
                        "voucher_number": receipt.voucher_number,
                        "fulfilled": fulfilled,
                    },
                )
        self.session.flush()
