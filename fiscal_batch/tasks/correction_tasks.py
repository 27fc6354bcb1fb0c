"""
Job handlers: correction events.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from fiscal_kernel.exceptions import InvalidJobPayloadError
from fiscal_kernel.logging_config import LogContext, get_logger
from fiscal_kernel.models.correction_event import CorrectionEvent
from fiscal_kernel.services.correction_event_service import CORRECTION_EVENT_JOB_TYPE
from fiscal_kernel.services.correction_event_worker import CorrectionEventWorker

logger = get_logger("batch.correction_tasks")

REQUIRED_KEYS = ("correction_event_id", "company_id")


def _parse_payload(payload: Any) -> tuple[UUID, UUID]:
    if not isinstance(payload, dict):
        raise InvalidJobPayloadError(CORRECTION_EVENT_JOB_TYPE, list(REQUIRED_KEYS))

    missing = [key for key in REQUIRED_KEYS if not payload.get(key)]
    if missing:
        raise InvalidJobPayloadError(CORRECTION_EVENT_JOB_TYPE, missing)

    parsed: list[UUID] = []
    invalid: list[str] = []
    for key in REQUIRED_KEYS:
        value = payload[key]
        try:
            parsed.append(value if isinstance(value, UUID) else UUID(str(value)))
        except ValueError:
            invalid.append(f"{key} (not a UUID)")
    if invalid:
        raise InvalidJobPayloadError(CORRECTION_EVENT_JOB_TYPE, invalid)
    return parsed[0], parsed[1]


class CorrectionEventJobHandler:
    """Delivers ``{correction_event_id, company_id}`` jobs to the worker."""

    def __init__(self, worker: CorrectionEventWorker):
        self.worker = worker

    @property
    def job_type(self) -> str:
        return CORRECTION_EVENT_JOB_TYPE

    @property
    def description(self) -> str:
        return "Sign and transmit a correction letter to the tax authority"

    def handle(self, payload: dict[str, Any]) -> CorrectionEvent:
        event_id, company_id = _parse_payload(payload)
        job_id = payload.get("job_id") or uuid4()
        with LogContext.bind(job_id=job_id):
            logger.info(
                "correction_job_started",
                extra={"correction_event_id": str(event_id)},
            )
            event = self.worker.process(event_id, company_id)
            logger.info(
                "correction_job_finished",
                extra={"correction_event_id": str(event_id), "status": event.status},
            )
            return event
