"""
JobHandler protocol and JobHandlerRegistry.

Contract:
    ``JobHandler`` defines the interface every job handler must implement.
    ``JobHandlerRegistry`` stores registered handlers keyed by ``job_type``
    and dispatches delivered payloads to them.
    ``default_handler_registry()`` returns a fresh, empty registry.

Architecture:
    fiscal_batch/tasks.  Only stdlib and the kernel's exception and
    logging modules; concrete handlers bring in services.

Invariants enforced:
    One handler per ``job_type`` string.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from fiscal_kernel.exceptions import JobHandlerNotRegisteredError
from fiscal_kernel.logging_config import get_logger

logger = get_logger("batch.registry")


@runtime_checkable
class JobHandler(Protocol):
    """Protocol for handlers of delivered jobs.

    Contract:
        - ``job_type``: unique string key registered in JobHandlerRegistry.
        - ``description``: human-readable label for logs.
        - ``handle()``: processes ONE delivered payload.

    Non-goals:
        - Does NOT retry.  Redelivery belongs to the delivery system.
    """

    @property
    def job_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def handle(self, payload: dict[str, Any]) -> Any:
        """Process one delivered payload.

        Raises whatever the underlying service raises; the delivery system
        decides whether to redeliver.
        """
        ...


class JobHandlerRegistry:
    """Registry mapping job_type strings to JobHandler implementations.

    Contract:
        - ``register()`` adds a handler; raises ValueError on duplicate.
        - ``get()`` retrieves by job_type; raises
          JobHandlerNotRegisteredError if missing.
        - ``dispatch()`` routes a payload to its handler.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, handler: JobHandler) -> None:
        if handler.job_type in self._handlers:
            raise ValueError(
                f"Job type '{handler.job_type}' is already registered"
            )
        self._handlers[handler.job_type] = handler

    def get(self, job_type: str) -> JobHandler:
        try:
            return self._handlers[job_type]
        except KeyError:
            raise JobHandlerNotRegisteredError(job_type, self.list_job_types()) from None

    def dispatch(self, job_type: str, payload: dict[str, Any]) -> Any:
        handler = self.get(job_type)
        logger.info("job_dispatched", extra={"job_type": job_type})
        return handler.handle(payload)

    def list_job_types(self) -> tuple[str, ...]:
        """Return all registered job_type strings, sorted."""
        return tuple(sorted(self._handlers.keys()))

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._handlers


def default_handler_registry() -> JobHandlerRegistry:
    """Create and return a fresh, empty JobHandlerRegistry."""
    return JobHandlerRegistry()
