"""
Settings for market_signals.

The YAML file mirrors the `Settings` tree below: one section each for
detection thresholds, scoring weights, aggregation cache behaviour, the
per-source registry and logging. Every leaf can be overridden from the
environment using `MARKET_SIGNALS_` plus the upper-cased path joined with a
double underscore:

    MARKET_SIGNALS_DETECTION__MIN_EVIDENCE_POINTS=3
    MARKET_SIGNALS_DETECTION__SIGNAL_TYPES='["anomaly", "correlation"]'
    MARKET_SIGNALS_SOURCES__REDDIT__ENABLED=false

Values that look like JSON (arrays, objects, true/false/null, numbers) are
decoded before validation; everything else stays a string and is left for
pydantic to coerce.

Any failure while reading or validating surfaces as `ConfigError`.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from .custom_types import (
    DataSourceType,
    DetectionConfig,
    RateLimit,
    ScoringWeights,
    SourceConfiguration,
)

ENV_PREFIX = "MARKET_SIGNALS_"
_JSON_LITERALS = ("true", "false", "null")


class ConfigError(Exception):
    """Raised when settings cannot be read or do not validate."""


class AggregationSettings(BaseModel):
    cache_ttl_sec: int = Field(300, gt=0)
    default_hours: int = Field(24, gt=0)
    min_data_points: int = Field(5, ge=0)


class SourceSettings(BaseModel):
    """One `sources:` entry; the source type is the mapping key."""
    enabled: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)
    rate_limit: Optional[RateLimit] = None


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    aggregation: AggregationSettings = Field(default_factory=AggregationSettings)
    sources: Dict[DataSourceType, SourceSettings] = Field(default_factory=dict)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def source_configurations(self) -> List[SourceConfiguration]:
        """Registry records for every configured source, in file order."""
        return [
            SourceConfiguration(
                source_type=source_type,
                enabled=entry.enabled,
                config=dict(entry.config),
                rate_limit=entry.rate_limit,
            )
            for source_type, entry in self.sources.items()
        ]


def _read_yaml(path: Path) -> Any:
    if not path.is_file():
        raise ConfigError(f"Configuration file not found at: {path}")
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file at {path}: {e}") from e


def _decode_env_value(raw: str) -> Any:
    looks_structured = raw[:1] in ("[", "{") and raw[-1:] in ("]", "}")
    looks_literal = raw.lower() in _JSON_LITERALS or raw.replace(".", "", 1).isdigit()
    if not (looks_structured or looks_literal):
        return raw
    try:
        return json.loads(raw.lower() if raw.lower() in _JSON_LITERALS else raw)
    except json.JSONDecodeError:
        return raw


def _env_overrides(environ=None, prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """Collect `PREFIX_A__B__C=value` variables into {'a': {'b': {'c': value}}}."""
    environ = os.environ if environ is None else environ
    tree: Dict[str, Any] = {}
    for name, raw in environ.items():
        if not name.startswith(prefix):
            continue
        path = name[len(prefix):].strip("_").lower().split("__")
        node = tree
        for key in path[:-1]:
            node = node.setdefault(key, {})
        node[path[-1]] = _decode_env_value(raw)
    return tree


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """New dict with `overrides` laid over `base`; nested mappings merge, anything else replaces."""
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def validate_settings(config: Dict[str, Any]) -> Settings:
    try:
        return Settings.model_validate(config)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        logger.error(f"Invalid settings ({len(problems)} problem(s)):\n  " + "\n  ".join(problems))
        raise ConfigError("Failed to validate settings.") from e


def load_settings(path: str = "settings.yaml") -> Settings:
    """Read `path`, apply `MARKET_SIGNALS_*` overrides and validate.

    Raises:
        ConfigError: missing, unparsable, empty or non-mapping file, or a
            schema violation after overrides are applied.
    """
    logger.info(f"Loading settings from '{path}'")
    raw = _read_yaml(Path(path))
    if not raw:
        raise ConfigError(f"YAML file '{path}' is empty or invalid.")
    if not isinstance(raw, dict):
        raise ConfigError(f"YAML file '{path}' must contain a mapping at the top level.")

    settings = validate_settings(_deep_merge(raw, _env_overrides()))
    logger.success(f"Settings loaded from '{path}'")
    return settings
