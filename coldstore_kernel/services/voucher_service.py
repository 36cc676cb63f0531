"""
VoucherNumberingService -- per-facility receipt and delivery numbers.

Each (facility, voucher kind) pair owns one counter row in
``sequence_counters``.  ``next()`` must run inside the same transaction as
the insert that uses the number; the counter row stays locked until that
transaction ends, so two concurrent creations for one facility serialize
on it and never share a number.  The UNIQUE (facility_id, voucher_number)
constraints on receipts and deliveries are the backstop.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from coldstore_kernel.logging_config import get_logger
from coldstore_kernel.models.receipt import VoucherType
from coldstore_kernel.services.sequence_service import SequenceService

logger = get_logger("services.voucher")


class VoucherNumberingService:
    """Issues monotonically increasing voucher numbers starting at 1."""

    def __init__(self, session: Session):
        self._sequences = SequenceService(session)

    @staticmethod
    def sequence_name(facility_id: UUID, kind: VoucherType) -> str:
        return f"voucher:{VoucherType(kind).value}:{facility_id}"

    def next(self, facility_id: UUID, kind: VoucherType) -> int:
        """Allocate the next number for ``kind`` at ``facility_id``."""
        number = self._sequences.next_value(self.sequence_name(facility_id, kind))
        logger.info(
            "voucher_number_issued",
            extra={
                "facility_id": str(facility_id),
                "voucher_type": VoucherType(kind).value,
                "voucher_number": number,
            },
        )
        return number

    def peek(self, facility_id: UUID, kind: VoucherType) -> int:
        """The number ``next()`` would return now, without consuming it."""
        current = self._sequences.current_value(self.sequence_name(facility_id, kind))
        return (current or 0) + 1
