"""Selectors for the inventory ledger (read side)."""

from coldstore_kernel.selectors.stock_selector import (
    ConservationDiscrepancy,
    SizeSummary,
    StockScope,
    StockSelector,
    VarietySummary,
)
from coldstore_kernel.selectors.voucher_selector import (
    DayBookPage,
    VoucherEntry,
    VoucherSelector,
)

__all__ = [
    "ConservationDiscrepancy",
    "DayBookPage",
    "SizeSummary",
    "StockScope",
    "StockSelector",
    "VarietySummary",
    "VoucherEntry",
    "VoucherSelector",
]
