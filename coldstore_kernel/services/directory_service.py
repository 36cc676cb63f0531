"""
Service layer for facilities and depositors.

The ledger treats both as read-only references supplied by the
surrounding registration system; ``require_*`` are the lookups every
ledger operation performs.  The ``create_*`` / ``register_*`` methods
exist for bootstrapping, tests and operator tooling.

Returns FacilityInfo / DepositorInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from coldstore_kernel.exceptions import (
    DepositorNotFoundError,
    FacilityNotFoundError,
    ValidationError,
)
from coldstore_kernel.logging_config import get_logger
from coldstore_kernel.models.facility import Depositor, Facility
from coldstore_kernel.services.base import BaseService

logger = get_logger("services.directory")


@dataclass(frozen=True)
class FacilityInfo:
    id: UUID
    name: str


@dataclass(frozen=True)
class DepositorInfo:
    id: UUID
    name: str
    mobile_number: str | None


class DirectoryService(BaseService[Depositor]):
    """Facility and depositor lookups."""

    def _get_facility(self, facility_id: UUID) -> Facility:
        facility = self.session.get(Facility, facility_id)
        if facility is None:
            raise FacilityNotFoundError(facility_id)
        return facility

    def _get_depositor(self, depositor_id: UUID) -> Depositor:
        depositor = self.session.get(Depositor, depositor_id)
        if depositor is None:
            raise DepositorNotFoundError(depositor_id)
        return depositor

    def require_facility(self, facility_id: UUID) -> FacilityInfo:
        """Raise FacilityNotFoundError unless the facility exists."""
        facility = self._get_facility(facility_id)
        return FacilityInfo(id=facility.id, name=facility.name)

    def require_depositor(self, depositor_id: UUID) -> DepositorInfo:
        """Raise DepositorNotFoundError unless the depositor exists."""
        depositor = self._get_depositor(depositor_id)
        return DepositorInfo(
            id=depositor.id,
            name=depositor.name,
            mobile_number=depositor.mobile_number,
        )

    def create_facility(self, name: str, actor_id: UUID) -> FacilityInfo:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Facility name must not be empty", field="name")
        facility = Facility(name=name, created_by_id=actor_id)
        self.session.add(facility)
        self.session.flush()
        logger.info("facility_created", extra={"facility_id": str(facility.id)})
        return FacilityInfo(id=facility.id, name=facility.name)

    def register_depositor(
        self,
        name: str,
        actor_id: UUID,
        mobile_number: str | None = None,
    ) -> DepositorInfo:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Depositor name must not be empty", field="name")
        depositor = Depositor(name=name, mobile_number=mobile_number, created_by_id=actor_id)
        self.session.add(depositor)
        self.session.flush()
        logger.info("depositor_registered", extra={"depositor_id": str(depositor.id)})
        return DepositorInfo(
            id=depositor.id,
            name=depositor.name,
            mobile_number=depositor.mobile_number,
        )
