"""Runtime configuration for the live trace client."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_URL = "wss://localhost:8080/ws/"
URL_ENV_VAR = "LIVETRACE_URL"


@dataclass(slots=True)
class StreamConfig:
    """
    Connection, subscription and display settings.

    ``selection`` maps dataset ids to the field ids to subscribe to. The
    defaults request the whole stored range (``start_ts == stop_ts == 0``)
    and leave down-sampling to the server.
    """

    url: str = DEFAULT_URL
    verify_tls: bool = True

    start_ts: float = 0.0
    stop_ts: float = 0.0
    max_plot_points: Optional[int] = None
    selection: Dict[int, List[str]] = field(default_factory=dict)

    log_level: str = "INFO"

    # Plot front end
    plot_window_seconds: float = 0.0
    refresh_interval_ms: int = 50

    def sanitized(self) -> StreamConfig:
        """Return a copy with values coerced and clamped."""
        max_points = self.max_plot_points
        if max_points is not None:
            max_points = max(1, int(max_points))
        return StreamConfig(
            url=str(self.url).strip() or DEFAULT_URL,
            verify_tls=bool(self.verify_tls),
            start_ts=float(self.start_ts),
            stop_ts=float(self.stop_ts),
            max_plot_points=max_points,
            selection=_normalize_selection(self.selection),
            log_level=str(self.log_level or "INFO").upper(),
            plot_window_seconds=max(0.0, float(self.plot_window_seconds)),
            refresh_interval_ms=max(10, int(self.refresh_interval_ms)),
        )


def _normalize_selection(raw: Any) -> Dict[int, List[str]]:
    if not raw:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"selection must be a mapping of dataset id to fields, got {type(raw).__name__}")
    selection: Dict[int, List[str]] = {}
    for dataset_id, field_ids in raw.items():
        if isinstance(field_ids, (str, int)):
            field_ids = [field_ids]
        selection[int(dataset_id)] = [str(f) for f in field_ids or []]
    return selection


STREAM_KEYS = frozenset(f.name for f in fields(StreamConfig))


def _settings_from(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Collect :class:`StreamConfig` keys from ``data``.

    Keys may sit at the top level or inside a ``stream`` block; the block
    wins when both set the same key. Anything else is logged and dropped.
    """
    block = data.get("stream")
    if block is not None and not isinstance(block, Mapping):
        raise ValueError(f"'stream' must be a mapping, got {type(block).__name__}")

    settings: Dict[str, Any] = {}
    for source in (data, block or {}):
        for key, value in source.items():
            if key in STREAM_KEYS:
                settings[key] = value
            elif key != "stream":
                logger.warning("Ignoring unknown config key %r", key)
    return settings


def config_from_mapping(data: Mapping[str, Any] | None) -> StreamConfig:
    """Build a sanitized :class:`StreamConfig`; ``LIVETRACE_URL`` overrides the URL."""
    cfg = StreamConfig(**_settings_from(data or {}))
    env_url = os.environ.get(URL_ENV_VAR)
    if env_url:
        cfg.url = env_url
    return cfg.sanitized()


def load_config(path: str | Path | None) -> StreamConfig:
    """Read a YAML config; no path or a missing file gives the defaults."""
    cfg_path = Path(path) if path is not None else None
    if cfg_path is None or not cfg_path.is_file():
        return config_from_mapping(None)
    try:
        raw = yaml.safe_load(cfg_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Cannot parse {cfg_path}: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"{cfg_path} must hold a mapping, not {type(raw).__name__}")
    return config_from_mapping(raw)


__all__ = ["StreamConfig", "config_from_mapping", "load_config", "DEFAULT_URL", "URL_ENV_VAR"]
