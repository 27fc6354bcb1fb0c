"""
Fiscal configuration schema.

Frozen dataclasses the loader parses ``defaults.yaml`` (or an operator
supplied file) into.  Defaults here match the shipped YAML so a partial
file only needs the keys it changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthorityConfig:
    """Transport behaviour towards the tax authority web services."""

    timeout_seconds: float = 5.0
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    default_environment: str = "staging"

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("authority.timeout_seconds must be positive")
        if self.max_attempts < 1:
            raise ValueError("authority.max_attempts must be >= 1")
        if self.base_delay_seconds < 0:
            raise ValueError("authority.base_delay_seconds must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("authority.backoff_multiplier must be >= 1")


@dataclass(frozen=True)
class CorrectionConfig:
    """Correction letter text and sequence limits."""

    min_text_length: int = 15
    max_text_length: int = 1000
    max_sequence: int = 20

    def __post_init__(self) -> None:
        if not 0 < self.min_text_length <= self.max_text_length:
            raise ValueError(
                "correction.min_text_length must be positive and <= max_text_length"
            )
        if self.max_sequence < 1:
            raise ValueError("correction.max_sequence must be >= 1")


@dataclass(frozen=True)
class RegistryConfig:
    """Registry lookup cache."""

    cache_days: int = 30
    environment: str = "production"

    def __post_init__(self) -> None:
        if self.cache_days < 0:
            raise ValueError("registry.cache_days must be >= 0")


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite://"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FiscalConfig:
    """Complete runtime configuration."""

    authority: AuthorityConfig = field(default_factory=AuthorityConfig)
    correction: CorrectionConfig = field(default_factory=CorrectionConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    source: str | None = None
