"""
Fulfillment Evaluator -- has a receipt been fully withdrawn?

Pure functions over anything exposing ``variety`` and ``current_quantity``
(ORM StockLine rows or DTOs).  The ``Receipt.fulfilled`` column is a
write-time cache of ``receipt_is_fulfilled``; it is refreshed by the write
paths that decrement or restore stock and is never recomputed on read.
"""

from typing import Iterable, Protocol

from coldstore_kernel.domain.values import Variety


class HasStock(Protocol):
    variety: str
    current_quantity: int


def is_fulfilled(lines: Iterable[HasStock], variety: Variety | str) -> bool:
    """True iff every line of ``variety`` has a current quantity of zero."""
    target = variety.name if isinstance(variety, Variety) else Variety(variety).name
    return all(line.current_quantity == 0 for line in lines if line.variety == target)


def receipt_is_fulfilled(lines: Iterable[HasStock]) -> bool:
    """True iff every variety on the receipt is fulfilled."""
    lines = list(lines)
    varieties = {line.variety for line in lines}
    return all(is_fulfilled(lines, v) for v in varieties)
