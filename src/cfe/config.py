"""
Engine configuration.

Loaded from YAML the same way page definitions are:

    backend_url: "http://localhost:8012"
    auto_close_interval_ms: 1500
    group_delimiter: "_COLON_"
    default_mode: PAGING        # or SCROLLING; omit to derive from the schema
    log_level: INFO
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

import yaml

from cfe.fieldkeys import DEFAULT_DELIMITER
from cfe.paging import Mode


@dataclass
class EngineConfig:
    backend_url: str = ""
    auto_close_interval_ms: int = 1500
    group_delimiter: str = DEFAULT_DELIMITER
    default_mode: Optional[Mode] = None
    log_level: str = "INFO"


def config_from_dict(d: Optional[Dict[str, Any]]) -> EngineConfig:
    d = dict(d or {})
    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(d) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
    if d.get("default_mode") is not None:
        d["default_mode"] = Mode(str(d["default_mode"]).upper())
    if "auto_close_interval_ms" in d:
        d["auto_close_interval_ms"] = int(d["auto_close_interval_ms"])
    return EngineConfig(**d)


def config_from_yaml(text: str) -> EngineConfig:
    return config_from_dict(yaml.safe_load(text))


def load_config(path: str) -> EngineConfig:
    with open(path, "r", encoding="utf-8") as f:
        return config_from_yaml(f.read())


def configure_logging(config: EngineConfig) -> None:
    """Basic console logging for scripts; the library itself adds no handlers."""
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
