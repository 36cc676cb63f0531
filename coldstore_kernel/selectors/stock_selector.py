"""
Module: coldstore_kernel.selectors.stock_selector
Responsibility: Stock summaries derived from receipts and deliveries at query
    time -- current, historical, and a conservation check.  No running total
    is stored anywhere; every figure is recomputed from StockLine and
    DeliveryLine rows.
Architecture position: Kernel > Selectors.

Invariants checked:
    Conservation -- per (variety, size), the initial quantity of the receipts
    in scope minus what deliveries have removed from those receipts equals
    their current quantity.  ``conservation_discrepancies()`` returns the
    rows where it does not hold; an empty list means the ledger is
    consistent.

Failure modes:
    - Returns empty results when the scope holds no vouchers.
    - A receipt force-deleted while deliveries referenced it leaves those
      deliveries in ``summarize()`` removals with no matching receipt stock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import distinct, func, select

from coldstore_kernel.models.delivery import Delivery, DeliveryLine
from coldstore_kernel.models.receipt import Receipt, StockLine
from coldstore_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class StockScope:
    """
    Which vouchers a summary covers.

    Both fields None means every facility (administrative view).  A
    depositor without a facility covers that depositor everywhere.
    """

    facility_id: UUID | None = None
    depositor_id: UUID | None = None

    @classmethod
    def everywhere(cls) -> StockScope:
        return cls()

    @classmethod
    def facility(cls, facility_id: UUID) -> StockScope:
        return cls(facility_id=facility_id)

    @classmethod
    def depositor(cls, facility_id: UUID | None, depositor_id: UUID) -> StockScope:
        return cls(facility_id=facility_id, depositor_id=depositor_id)


@dataclass(frozen=True)
class SizeSummary:
    """Totals for one bag size of one variety."""

    size: str
    initial_quantity: int
    current_quantity: int
    quantity_removed: int


@dataclass(frozen=True)
class VarietySummary:
    """Totals for one variety, one entry per bag size, sizes sorted by name."""

    variety: str
    sizes: tuple[SizeSummary, ...]

    @property
    def initial_quantity(self) -> int:
        return sum(s.initial_quantity for s in self.sizes)

    @property
    def current_quantity(self) -> int:
        return sum(s.current_quantity for s in self.sizes)

    @property
    def quantity_removed(self) -> int:
        return sum(s.quantity_removed for s in self.sizes)

    def size(self, name: str) -> SizeSummary | None:
        for s in self.sizes:
            if s.size == name:
                return s
        return None


@dataclass(frozen=True)
class ConservationDiscrepancy:
    """A (variety, size) whose receipts and deliveries disagree."""

    variety: str
    size: str
    initial_quantity: int
    quantity_removed: int
    current_quantity: int

    @property
    def difference(self) -> int:
        return self.initial_quantity - self.quantity_removed - self.current_quantity


def _merge(
    receipt_rows: dict[tuple[str, str], tuple[int, int]],
    removed_rows: dict[tuple[str, str], int],
) -> list[VarietySummary]:
    """Outer-join the two groupings on (variety, size), defaulting to 0."""
    keys = set(receipt_rows) | set(removed_rows)
    by_variety: dict[str, list[SizeSummary]] = {}
    for variety, size in sorted(keys):
        initial, current = receipt_rows.get((variety, size), (0, 0))
        by_variety.setdefault(variety, []).append(
            SizeSummary(
                size=size,
                initial_quantity=initial,
                current_quantity=current,
                quantity_removed=removed_rows.get((variety, size), 0),
            )
        )
    return [VarietySummary(variety=v, sizes=tuple(sizes)) for v, sizes in by_variety.items()]


class StockSelector(BaseSelector[StockLine]):
    """
    Read-only stock aggregation.

    Contract:
        All sums are returned as int (PostgreSQL returns NUMERIC for
        SUM(BIGINT); values are converted).  Results are ordered by variety
        then size.
    """

    @staticmethod
    def _filter_receipts(query, scope: StockScope):
        if scope.facility_id is not None:
            query = query.where(Receipt.facility_id == scope.facility_id)
        if scope.depositor_id is not None:
            query = query.where(Receipt.depositor_id == scope.depositor_id)
        return query

    @staticmethod
    def _filter_deliveries(query, scope: StockScope):
        if scope.facility_id is not None:
            query = query.where(Delivery.facility_id == scope.facility_id)
        if scope.depositor_id is not None:
            query = query.where(Delivery.depositor_id == scope.depositor_id)
        return query

    def _receipt_totals(
        self,
        scope: StockScope,
        as_of: date | None = None,
    ) -> dict[tuple[str, str], tuple[int, int]]:
        query = (
            select(
                StockLine.variety,
                StockLine.bag_size,
                func.coalesce(func.sum(StockLine.initial_quantity), 0),
                func.coalesce(func.sum(StockLine.current_quantity), 0),
            )
            .join(Receipt, StockLine.receipt_id == Receipt.id)
            .group_by(StockLine.variety, StockLine.bag_size)
        )
        query = self._filter_receipts(query, scope)
        if as_of is not None:
            query = query.where(Receipt.submission_date <= as_of)
        return {
            (variety, size): (int(initial), int(current))
            for variety, size, initial, current in self.session.execute(query).all()
        }

    def _removed_totals(
        self,
        scope: StockScope,
        as_of: date | None = None,
    ) -> dict[tuple[str, str], int]:
        query = (
            select(
                DeliveryLine.variety,
                DeliveryLine.bag_size,
                func.coalesce(func.sum(DeliveryLine.quantity_removed), 0),
            )
            .join(Delivery, DeliveryLine.delivery_id == Delivery.id)
            .group_by(DeliveryLine.variety, DeliveryLine.bag_size)
        )
        query = self._filter_deliveries(query, scope)
        if as_of is not None:
            query = query.where(Delivery.extraction_date <= as_of)
        return {
            (variety, size): int(removed)
            for variety, size, removed in self.session.execute(query).all()
        }

    def summarize(self, scope: StockScope) -> list[VarietySummary]:
        """
        Current stock per variety and size.

        Receipts in scope give initial and current totals; deliveries in
        scope give removed totals; the two are outer-joined on
        (variety, size).
        """
        return _merge(self._receipt_totals(scope), self._removed_totals(scope))

    def summarize_as_of(self, scope: StockScope, as_of: date) -> list[VarietySummary]:
        """
        Stock as it stood at the end of ``as_of``.

        Receipts submitted on or before the date contribute their initial
        quantity; deliveries extracted on or before it contribute their
        removals.  Current is initial minus removed.
        """
        receipts = self._receipt_totals(scope, as_of=as_of)
        removed = self._removed_totals(scope, as_of=as_of)
        replayed = {
            key: (initial, initial - removed.get(key, 0))
            for key, (initial, _current) in receipts.items()
        }
        return _merge(replayed, removed)

    def current_total_stock(
        self,
        facility_id: UUID,
        exclude_receipt_id: UUID | None = None,
    ) -> int:
        """Sum of current quantity over every stock line in the facility."""
        query = (
            select(func.coalesce(func.sum(StockLine.current_quantity), 0))
            .join(Receipt, StockLine.receipt_id == Receipt.id)
            .where(Receipt.facility_id == facility_id)
        )
        if exclude_receipt_id is not None:
            query = query.where(Receipt.id != exclude_receipt_id)
        return int(self.session.execute(query).scalar_one())

    def varieties_for_depositor(self, facility_id: UUID, depositor_id: UUID) -> list[str]:
        """Distinct varieties the depositor has on receipt at the facility."""
        query = (
            select(distinct(StockLine.variety))
            .join(Receipt, StockLine.receipt_id == Receipt.id)
            .where(Receipt.facility_id == facility_id)
            .where(Receipt.depositor_id == depositor_id)
            .order_by(StockLine.variety)
        )
        return list(self.session.execute(query).scalars().all())

    def conservation_discrepancies(self, scope: StockScope) -> list[ConservationDiscrepancy]:
        """
        (variety, size) rows where initial - removed != current.

        Removals are counted only from delivery lines whose source receipt
        is in scope, so deliveries are matched to the stock they drew from.
        """
        receipts = self._receipt_totals(scope)

        query = (
            select(
                DeliveryLine.variety,
                DeliveryLine.bag_size,
                func.coalesce(func.sum(DeliveryLine.quantity_removed), 0),
            )
            .join(Receipt, DeliveryLine.source_receipt_id == Receipt.id)
            .group_by(DeliveryLine.variety, DeliveryLine.bag_size)
        )
        query = self._filter_receipts(query, scope)
        removed = {
            (variety, size): int(total)
            for variety, size, total in self.session.execute(query).all()
        }

        discrepancies = []
        for variety, size in sorted(set(receipts) | set(removed)):
            initial, current = receipts.get((variety, size), (0, 0))
            taken = removed.get((variety, size), 0)
            if initial - taken != current:
                discrepancies.append(
                    ConservationDiscrepancy(
                        variety=variety,
                        size=size,
                        initial_quantity=initial,
                        quantity_removed=taken,
                        current_quantity=current,
                    )
                )
        return discrepancies
