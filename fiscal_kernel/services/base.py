"""
BaseService -- common session handling for kernel services.

Responsibility:
    Holds the injected SQLAlchemy ``Session`` and converts storage failures
    into PersistenceError so callers never see raw driver exceptions.

Architecture position:
    Kernel > Services.  Every service that reads or writes the relational
    store extends this class.

Transaction ownership:
    Services flush by default and leave commit to the caller.  Services that
    must make each state transition durable on its own (the correction
    event worker, the registry lookup cache) pass ``commit=True``.

Failure modes:
    - PersistenceError, chained from the SQLAlchemyError.  The session is
      rolled back first so it stays usable.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fiscal_kernel.db.base import Base
from fiscal_kernel.exceptions import PersistenceError
from fiscal_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

logger = get_logger("services.base")


class BaseService(ABC, Generic[ModelType]):
    """Abstract base class for kernel services."""

    def __init__(self, session: Session):
        self.session = session

    def _persist(
        self,
        entity: ModelType,
        operation: str,
        commit: bool = False,
    ) -> None:
        """Flush (and optionally commit) ``entity``; wrap storage errors."""
        try:
            self.session.add(entity)
            if commit:
                self.session.commit()
            else:
                self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                "persistence_failed",
                extra={
                    "entity_type": type(entity).__name__,
                    "entity_id": str(entity.id),
                    "operation": operation,
                    "error": str(exc),
                },
            )
            raise PersistenceError(
                entity_type=type(entity).__name__,
                entity_id=str(entity.id),
                operation=operation,
            ) from exc
