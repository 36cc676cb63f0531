"""Services for the inventory ledger (write side)."""

from coldstore_kernel.services.delivery_service import DeliveryLedger
from coldstore_kernel.services.directory_service import (
    DepositorInfo,
    DirectoryService,
    FacilityInfo,
)
from coldstore_kernel.services.receipt_service import ReceiptLedger
from coldstore_kernel.services.sequence_service import SequenceService
from coldstore_kernel.services.stock_movement import AppliedDecrement, StockMovementService
from coldstore_kernel.services.voucher_service import VoucherNumberingService

__all__ = [
    "AppliedDecrement",
    "DeliveryLedger",
    "DepositorInfo",
    "DirectoryService",
    "FacilityInfo",
    "ReceiptLedger",
    "SequenceService",
    "StockMovementService",
    "VoucherNumberingService",
]
