"""
Engine configuration.

Settings come from an optional JSON file and are then overridden by
``CELL_DOCTOR_*`` environment variables, e.g. ``CELL_DOCTOR_CHUNK_ROWS=500``.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from cell_doctor.errors import CellDoctorError

ENV_PREFIX = "CELL_DOCTOR_"
SUPPORTED_CONFIG_SUFFIXES = {".json", ".yml", ".yaml"}
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(CellDoctorError):
    pass


@dataclass(frozen=True)
class EngineConfig:
    max_history_entries: int = 20
    chunk_rows: int = 1000
    outlier_sigma: float = 3.0
    outlier_min_values: int = 4
    serial_min: float = 1
    serial_max: float = 80_000
    queue_mutations: bool = True

    def __post_init__(self) -> None:
        if self.max_history_entries < 1:
            raise ConfigError("max_history_entries must be at least 1")
        if self.chunk_rows < 1:
            raise ConfigError("chunk_rows must be at least 1")
        if self.outlier_sigma <= 0:
            raise ConfigError("outlier_sigma must be positive")
        if self.outlier_min_values < 2:
            raise ConfigError("outlier_min_values must be at least 2")
        if self.serial_min > self.serial_max:
            raise ConfigError("serial_min must not exceed serial_max")

    @property
    def serial_range(self) -> tuple[float, float]:
        return (self.serial_min, self.serial_max)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "EngineConfig":
        known = {item.name: item for item in fields(cls)}
        unknown = sorted(set(payload) - set(known))
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
        values = {name: _coerce(name, known[name].type, value) for name, value in payload.items()}
        return cls(**values)

    def with_env(self, environ: Mapping[str, str] | None = None) -> "EngineConfig":
        environ = os.environ if environ is None else environ
        overrides = {}
        for item in fields(self):
            raw = environ.get(ENV_PREFIX + item.name.upper())
            if raw is not None:
                overrides[item.name] = _coerce(item.name, item.type, raw)
        return replace(self, **overrides) if overrides else self

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _coerce(name: str, annotation: Any, value: Any) -> Any:
    type_name = annotation if isinstance(annotation, str) else getattr(annotation, "__name__", str(annotation))
    try:
        if type_name == "bool":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(value)
        if isinstance(value, bool):
            raise ValueError(value)
        if type_name == "int":
            number = float(value)
            if not number.is_integer():
                raise ValueError(value)
            return int(number)
        if type_name == "float":
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from exc
    return value


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> EngineConfig:
    config = EngineConfig()
    if path is not None:
        config = EngineConfig.from_mapping(read_config_file(Path(path)))
    return config.with_env(environ)


def read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be .json, .yml, or .yaml")
    if suffix in {".yml", ".yaml"}:
        raise ConfigError("YAML configs are not supported yet. Use JSON for now.")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    return payload


def starter_config_text() -> str:
    return json.dumps(EngineConfig().to_dict(), indent=2) + "\n"
