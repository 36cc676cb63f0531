"""
Value Objects -- Immutable labels for stored stock.

Responsibility:
    Canonical names for crop varieties and bag sizes, and the storage
    location of a receipt inside a facility.  Every string that is later
    grouped or matched on (aggregator, fulfillment, delivery line lookup)
    passes through one of these constructors first.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - A label is stripped, has internal whitespace runs collapsed to a
      single hyphen, and then has its first character uppercased.
      "  pukhraj " and "Pukhraj" are the same variety; "Kufri Jyoti"
      becomes "Kufri-Jyoti" and "LR" stays "LR".
    - Bag sizes are lowercased before the first character is uppercased,
      so "RATION goli" and "ration-goli" are both "Ration-goli".
    - An empty label is rejected with InvalidStockLabelError.

Failure modes:
    - InvalidStockLabelError on empty / whitespace-only / non-string input.
    - ValidationError on an empty location component.
"""

import re
from dataclasses import dataclass

from coldstore_kernel.exceptions import InvalidStockLabelError, ValidationError

_WHITESPACE = re.compile(r"\s+")


def normalize_label(raw: str, kind: str = "label", fold_case: bool = False) -> str:
    """Canonical form shared by Variety and BagSize; BagSize folds case."""
    if not isinstance(raw, str):
        raise InvalidStockLabelError(kind, repr(raw))
    collapsed = _WHITESPACE.sub("-", raw.strip())
    if not collapsed:
        raise InvalidStockLabelError(kind, raw)
    if fold_case:
        collapsed = collapsed.lower()
    return collapsed[0].upper() + collapsed[1:]


@dataclass(frozen=True, slots=True)
class Variety:
    """
    Crop variety name (e.g. "Pukhraj", "Jyoti").

    Contract:
        Normalized on construction; two Variety values are equal iff their
        canonical names are equal.

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - name is never empty
    """

    name: str

    def __post_init__(self) -> None:
        # Override frozen to set normalized value
        object.__setattr__(self, "name", normalize_label(self.name, "variety"))

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class BagSize:
    """Bag size grade (e.g. "Goli", "Seed", "Ration", "Cut-tok")."""

    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalize_label(self.name, "bag_size", fold_case=True))

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class StorageLocation:
    """Where a receipt's bags sit: floor, row and chamber."""

    floor: str
    row: str
    chamber: str

    def __post_init__(self) -> None:
        for field_name in ("floor", "row", "chamber"):
            value = getattr(self, field_name)
            value = str(value).strip() if value is not None else ""
            if not value:
                raise ValidationError(
                    f"Storage location {field_name} must not be empty",
                    field=f"location.{field_name}",
                )
            object.__setattr__(self, field_name, value)

    def __str__(self) -> str:
        return f"{self.floor}/{self.row}/{self.chamber}"
