"""
fiscal_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` returns the process-wide ``FiscalConfig``,
    loading it on first use.  ``reset_active_config()`` drops the cached
    copy so tests and tools can reload with a different file or
    environment.

Architecture position:
    Configuration.  The kernel never imports from ``fiscal_config``;
    entrypoints (scripts, job wiring) pass the parsed sections down.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fiscal_config.loader import load_config
from fiscal_config.schema import (
    AuthorityConfig,
    CorrectionConfig,
    DatabaseConfig,
    FiscalConfig,
    RegistryConfig,
)

_logger = logging.getLogger("fiscal_kernel.config")

_active: FiscalConfig | None = None


def get_active_config(path: Path | str | None = None) -> FiscalConfig:
    """Return the cached configuration, loading it when absent.

    ``path`` only takes effect on the call that loads; reset first to
    switch files.
    """
    global _active
    if _active is None:
        _active = load_config(path)
        _logger.info(
            "fiscal_config_loaded",
            extra={
                "source": _active.source,
                "authority_environment": _active.authority.default_environment,
                "registry_environment": _active.registry.environment,
            },
        )
    return _active


def reset_active_config() -> None:
    global _active
    _active = None


__all__ = [
    "AuthorityConfig",
    "CorrectionConfig",
    "DatabaseConfig",
    "FiscalConfig",
    "RegistryConfig",
    "get_active_config",
    "load_config",
    "reset_active_config",
]
