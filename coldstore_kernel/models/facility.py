"""
Module: coldstore_kernel.models.facility
Responsibility: ORM persistence for the two identity anchors of the ledger:
    the cold-storage facility that owns vouchers and the depositor (farmer)
    whose bags are stored.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - The ledger never mutates facility or depositor rows; they are created
      by the surrounding profile/registration system (or by
      DirectoryService for tests and local tooling).

Failure modes:
    - FacilityNotFoundError / DepositorNotFoundError raised upstream by
      DirectoryService when an ID does not resolve.
"""

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from coldstore_kernel.db.base import TrackedBase


class Facility(TrackedBase):
    """A cold-storage warehouse. Every voucher belongs to exactly one."""

    __tablename__ = "facilities"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Facility {self.id} {self.name!r}>"


class Depositor(TrackedBase):
    """A farmer who deposits bags. May store at several facilities."""

    __tablename__ = "depositors"

    __table_args__ = (
        Index("idx_depositor_mobile", "mobile_number"),
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    mobile_number: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Depositor {self.id} {self.name!r}>"
