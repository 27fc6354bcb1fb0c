"""
fiscal_batch.tasks -- Handler protocol, registry, and handler implementations.
"""

from fiscal_batch.tasks.base import (
    JobHandler,
    JobHandlerRegistry,
    default_handler_registry,
)
from fiscal_batch.tasks.correction_tasks import CorrectionEventJobHandler

__all__ = [
    "CorrectionEventJobHandler",
    "JobHandler",
    "JobHandlerRegistry",
    "default_handler_registry",
]
