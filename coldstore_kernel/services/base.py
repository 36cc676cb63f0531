"""
BaseService -- abstract base for all ledger services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service.  Services receive a SQLAlchemy ``Session``
    and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back the outer transaction.
    - Atomic units: multi-step mutations run inside ``self._atomic()``, a
      SAVEPOINT.  A failure inside rolls back every write of the unit and
      leaves the caller's outer transaction usable.
    - Facility scoping: ``self._authorize()`` is the single check that a
      caller may touch a facility's vouchers.

Failure modes:
    - UnauthorizedError from ``_authorize``.
    - TransientError when the datastore aborts inside ``_atomic``
      (OperationalError: deadlock, lock timeout, serialization failure).
"""

from abc import ABC
from contextlib import contextmanager
from typing import Generator, Generic, TypeVar
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from coldstore_kernel.db.base import Base
from coldstore_kernel.domain.dtos import CallerContext
from coldstore_kernel.exceptions import TransientError, UnauthorizedError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all ledger services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide reporting queries -- those belong in
          ``coldstore_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

    @contextmanager
    def _atomic(self) -> Generator[None, None, None]:
        """Run the enclosed writes in a SAVEPOINT; all or nothing."""
        try:
            with self.session.begin_nested():
                yield
        except OperationalError as exc:
            self.session.expire_all()
            raise TransientError(f"Datastore aborted the operation: {exc.orig}") from exc
        except Exception:
            # Rows refreshed inside the savepoint may still hold undone values
            self.session.expire_all()
            raise

    @staticmethod
    def _authorize(caller: CallerContext, facility_id: UUID, resource: str) -> None:
        """Raise UnauthorizedError unless ``caller`` may act on ``facility_id``."""
        if caller.is_admin:
            return
        if caller.facility_id is None:
            raise UnauthorizedError(caller.actor_id, resource, "caller has no facility")
        if caller.facility_id != facility_id:
            raise UnauthorizedError(
                caller.actor_id, resource, "resource belongs to another facility"
            )
