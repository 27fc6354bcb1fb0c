"""
ORM-level immutability enforcement for authority artifacts.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here inspect attribute history and raise
ImmutabilityViolationError, aborting the flush, when a write would alter an
artifact the tax authority has already ruled on:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() ---------^
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

Entity            | When immutable                 | Fields
------------------|--------------------------------|-------------------------------
CorrectionEvent   | After status is terminal       | AUTHORITY_FIELDS
CorrectionEvent   | Always                         | (no deletes)
FiscalEmission    | Once protocol_number is set    | protocol_number

The transition INTO a terminal status is itself allowed: the check looks at
whether the record WAS terminal before this flush, using attribute history.

Usage:

    from fiscal_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    unregister_immutability_listeners()  # tests only
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from fiscal_kernel.exceptions import ImmutabilityViolationError
from fiscal_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, entity_id: str, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_correction_event_immutability(mapper, connection, target):
    """
    Prevent updates to correction events that already reached a terminal status.

    1. status changing FROM a terminal value: block.
    2. status unchanged AND terminal: block changes to any authority field.
    3. status changing TO a terminal value: allow (this is the transmission
       outcome being recorded).
    """
    from fiscal_kernel.models.correction_event import (
        AUTHORITY_FIELDS,
        TERMINAL_STATUSES,
        CorrectionEvent,
    )

    if not isinstance(target, CorrectionEvent):
        return

    terminal_values = {status.value for status in TERMINAL_STATUSES}
    status_history = get_history(target, "status")

    was_terminal = False
    if status_history.deleted:
        was_terminal = status_history.deleted[0] in terminal_values
    elif not status_history.added:
        was_terminal = target.status in terminal_values

    if not was_terminal:
        return

    for field in AUTHORITY_FIELDS:
        if get_history(target, field).has_changes():
            _block(
                entity_type="CorrectionEvent",
                entity_id=str(target.id),
                operation="UPDATE",
                field=field,
                reason=f"Cannot modify field '{field}' on a terminal correction event",
            )


def _check_correction_event_delete(mapper, connection, target):
    """Correction events are never deleted."""
    _block(
        entity_type="CorrectionEvent",
        entity_id=str(target.id),
        operation="DELETE",
        reason="Correction events cannot be deleted",
    )


def _check_emission_protocol_immutability(mapper, connection, target):
    """
    A stored protocol number is the authority's receipt: never cleared, never
    replaced.  Filling a blank one is allowed.
    """
    history = get_history(target, "protocol_number")
    if not history.deleted:
        return

    previous = history.deleted[0]
    if previous is None or str(previous).strip() == "":
        return

    current = history.added[0] if history.added else None
    if current != previous:
        _block(
            entity_type="FiscalEmission",
            entity_id=str(target.id),
            operation="UPDATE",
            field="protocol_number",
            reason="Cannot clear or replace an existing protocol number",
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already present are not added twice.
    """
    from fiscal_kernel.models.correction_event import CorrectionEvent
    from fiscal_kernel.models.fiscal_emission import FiscalEmission

    _safe_add_listener(CorrectionEvent, "before_update", _check_correction_event_immutability)
    _safe_add_listener(CorrectionEvent, "before_delete", _check_correction_event_delete)
    _safe_add_listener(FiscalEmission, "before_update", _check_emission_protocol_immutability)

    logger.info("immutability_listeners_registered")


def _safe_add_listener(target, event_name, listener_fn):
    if not event.contains(target, event_name, listener_fn):
        event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to violate the rules on purpose.
    """
    from fiscal_kernel.models.correction_event import CorrectionEvent
    from fiscal_kernel.models.fiscal_emission import FiscalEmission

    _safe_remove_listener(CorrectionEvent, "before_update", _check_correction_event_immutability)
    _safe_remove_listener(CorrectionEvent, "before_delete", _check_correction_event_delete)
    _safe_remove_listener(FiscalEmission, "before_update", _check_emission_protocol_immutability)
