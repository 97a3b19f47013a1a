"""
Runtime configuration (``pos_ledger.config``).

Responsibility
--------------
Reads database and logging settings from a YAML file and the environment
into a frozen ``PosLedgerConfig``.  Nothing here opens connections; callers
pass the config into ``create_engine_from_url`` and ``configure_logging``.

Resolution order (later wins)
-----------------------------
1. Defaults on ``PosLedgerConfig``.
2. The YAML file: ``path`` argument, else ``$POS_LEDGER_CONFIG``, else none.
3. ``$DATABASE_URL`` and ``$POS_LEDGER_LOG_LEVEL``.

Failure modes
-------------
* Missing YAML file given explicitly  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or values of the wrong type  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

DEFAULT_DATABASE_URL = "sqlite:///pos_ledger.db"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class PosLedgerConfig:
    """Settings for one ledger process."""

    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_busy_timeout: float = 30.0
    log_level: str = "INFO"

    def engine_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``create_engine_from_url``."""
        return {
            "echo": self.echo_sql,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
            "pool_recycle": self.pool_recycle,
            "sqlite_busy_timeout": self.sqlite_busy_timeout,
        }


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level, got {type(data).__name__}")
    return data


def parse_config(data: Mapping[str, Any], base: PosLedgerConfig | None = None) -> PosLedgerConfig:
    """
    Build a config from a mapping, on top of ``base`` (defaults if None).

    Accepts either a flat mapping or one nested under ``database`` and
    ``logging`` sections, as in ``config/pos_ledger.yaml``.
    """
    flat: dict[str, Any] = {}
    for key, value in data.items():
        if key in ("database", "logging") and isinstance(value, Mapping):
            for sub_key, sub_value in value.items():
                flat[_SECTION_KEYS.get((key, sub_key), sub_key)] = sub_value
        else:
            flat[key] = value

    known = {f.name: f for f in fields(PosLedgerConfig)}
    unknown = sorted(set(flat) - set(known))
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    values: dict[str, Any] = {}
    for key, value in flat.items():
        values[key] = _coerce(key, value, known[key].type)
    if "log_level" in values:
        values["log_level"] = values["log_level"].strip().upper()

    config = replace(base or PosLedgerConfig(), **values)
    _check(config)
    return config


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> PosLedgerConfig:
    """
    Resolve the active configuration.

    Args:
        path: YAML file to read.  Falls back to ``$POS_LEDGER_CONFIG``.
        environ: Environment mapping (defaults to ``os.environ``).
    """
    env = os.environ if environ is None else environ

    config = PosLedgerConfig()
    path = path or env.get("POS_LEDGER_CONFIG")
    if path:
        config = parse_config(load_yaml_file(Path(path)), base=config)

    overrides: dict[str, Any] = {}
    if env.get("DATABASE_URL"):
        overrides["database_url"] = env["DATABASE_URL"]
    if env.get("POS_LEDGER_LOG_LEVEL"):
        overrides["log_level"] = env["POS_LEDGER_LOG_LEVEL"]
    if overrides:
        config = parse_config(overrides, base=config)

    return config


_SECTION_KEYS = {
    ("database", "url"): "database_url",
    ("database", "echo"): "echo_sql",
    ("logging", "level"): "log_level",
}


def _coerce(key: str, value: Any, type_name: Any) -> Any:
    type_name = getattr(type_name, "__name__", type_name)
    if type_name == "bool":
        if isinstance(value, bool):
            return value
        raise ValueError(f"{key} must be true or false, got {value!r}")
    if type_name == "int":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if type_name == "float":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        raise ValueError(f"{key} must be a number, got {value!r}")
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value


def _check(config: PosLedgerConfig) -> None:
    if not config.database_url.strip():
        raise ValueError("database_url must not be empty")
    if config.log_level.upper() not in _LOG_LEVELS:
        raise ValueError(
            f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {config.log_level!r}"
        )
    for name in ("pool_size", "pool_timeout", "pool_recycle"):
        if getattr(config, name) <= 0:
            raise ValueError(f"{name} must be positive")
    if config.max_overflow < 0:
        raise ValueError("max_overflow must not be negative")
    if config.sqlite_busy_timeout < 0:
        raise ValueError("sqlite_busy_timeout must not be negative")
