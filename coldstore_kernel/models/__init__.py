"""Domain models for the inventory ledger."""

from coldstore_kernel.models.delivery import Delivery, DeliveryLine
from coldstore_kernel.models.facility import Depositor, Facility
from coldstore_kernel.models.receipt import Receipt, StockLine, VoucherType
from coldstore_kernel.models.sequence import SequenceCounter

__all__ = [
    "Delivery",
    "DeliveryLine",
    "Depositor",
    "Facility",
    "Receipt",
    "SequenceCounter",
    "StockLine",
    "VoucherType",
]
