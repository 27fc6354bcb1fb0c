"""
Configuration Loader (``fiscal_config.loader``).

Responsibility
--------------
Reads a YAML file and parses it into the frozen dataclasses of
``fiscal_config.schema``, then applies ``FISCAL_*`` environment overrides.

Architecture position
---------------------
**Config layer**.  Consumed by ``fiscal_config.get_active_config()`` and by
tests that want an explicit file.  Kernel services never read files or
environment variables themselves; they take the parsed sections.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or bad values  -> ``ValueError`` with the offending section.
"""

from __future__ import annotations

import os
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from fiscal_config.schema import (
    AuthorityConfig,
    CorrectionConfig,
    DatabaseConfig,
    FiscalConfig,
    RegistryConfig,
)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "FISCAL_CONFIG_PATH"
DATABASE_URL_ENV = "FISCAL_DATABASE_URL"
AUTHORITY_TIMEOUT_ENV = "FISCAL_AUTHORITY_TIMEOUT"
ENVIRONMENT_ENV = "FISCAL_ENVIRONMENT"

_ENVIRONMENTS = ("production", "staging")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def _section(cls: type, name: str, data: Any) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise ValueError(f"Section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown keys in section '{name}': {unknown}")
    try:
        return cls(**data)
    except TypeError as exc:
        raise ValueError(f"Invalid section '{name}': {exc}") from exc


def _check_environment(value: str, where: str) -> str:
    normalized = str(value).strip().lower()
    if normalized not in _ENVIRONMENTS:
        raise ValueError(f"{where} must be one of {list(_ENVIRONMENTS)}, got {value!r}")
    return normalized


def parse_config(data: Mapping[str, Any], source: str | None = None) -> FiscalConfig:
    """Build a FiscalConfig from an already-parsed mapping."""
    authority = _section(AuthorityConfig, "authority", data.get("authority"))
    registry = _section(RegistryConfig, "registry", data.get("registry"))
    _check_environment(authority.default_environment, "authority.default_environment")
    _check_environment(registry.environment, "registry.environment")
    return FiscalConfig(
        authority=authority,
        correction=_section(CorrectionConfig, "correction", data.get("correction")),
        registry=registry,
        database=_section(DatabaseConfig, "database", data.get("database")),
        source=source,
    )


def apply_env_overrides(config: FiscalConfig, environ: Mapping[str, str]) -> FiscalConfig:
    """Overlay the ``FISCAL_*`` environment variables on ``config``."""
    url = environ.get(DATABASE_URL_ENV)
    if url:
        config = replace(config, database=replace(config.database, url=url))

    timeout = environ.get(AUTHORITY_TIMEOUT_ENV)
    if timeout:
        try:
            seconds = float(timeout)
        except ValueError:
            raise ValueError(f"{AUTHORITY_TIMEOUT_ENV} must be a number, got {timeout!r}") from None
        config = replace(config, authority=replace(config.authority, timeout_seconds=seconds))

    environment = environ.get(ENVIRONMENT_ENV)
    if environment:
        config = replace(
            config,
            authority=replace(
                config.authority,
                default_environment=_check_environment(environment, ENVIRONMENT_ENV),
            ),
        )
    return config


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> FiscalConfig:
    """
    Load configuration from ``path``, else ``$FISCAL_CONFIG_PATH``, else the
    shipped defaults, then apply environment overrides.
    """
    env = os.environ if environ is None else environ
    resolved = Path(path or env.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config = parse_config(load_yaml_file(resolved), source=str(resolved))
    return apply_env_overrides(config, env)
