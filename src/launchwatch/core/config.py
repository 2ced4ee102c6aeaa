from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigError

ROOT_CONFIG_FILENAME = "launchwatch.yml"
ROOT_OVERRIDE_FILENAME = "launchwatch.override.yml"

DEFAULT_FEED_URL = "https://ll.thespacedevs.com/2.0.0/launch/upcoming/"
DEFAULT_LOG_PATH = ".launchwatch/launchwatch.log"


@dataclasses.dataclass(frozen=True)
class LogConfig:
    path: Path
    max_bytes: int
    backup_count: int


@dataclasses.dataclass(frozen=True)
class TrackingConfig:
    feed_url: str = DEFAULT_FEED_URL
    feed_limit: int = 100
    poll_interval_seconds: int = 55
    refresh_every: int = 5
    startup_delay_seconds: int = 60
    request_timeout_seconds: int = 20
    scrub_threshold_minutes: int = 5

    @classmethod
    def from_raw(cls, raw: Any) -> "TrackingConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        defaults = cls()
        feed_url = str(cfg.get("feed_url", defaults.feed_url)).strip()
        if not feed_url.startswith(("http://", "https://")):
            raise ConfigError("tracking.feed_url must be an http(s) URL")
        return cls(
            feed_url=feed_url,
            feed_limit=_positive_int(cfg, "feed_limit", defaults.feed_limit),
            poll_interval_seconds=_positive_int(
                cfg, "poll_interval_seconds", defaults.poll_interval_seconds
            ),
            refresh_every=_positive_int(cfg, "refresh_every", defaults.refresh_every),
            startup_delay_seconds=_non_negative_int(
                cfg, "startup_delay_seconds", defaults.startup_delay_seconds
            ),
            request_timeout_seconds=_positive_int(
                cfg, "request_timeout_seconds", defaults.request_timeout_seconds
            ),
            scrub_threshold_minutes=_positive_int(
                cfg, "scrub_threshold_minutes", defaults.scrub_threshold_minutes
            ),
        )


@dataclasses.dataclass(frozen=True)
class AppConfig:
    root: Path
    raw: Dict[str, Any]
    tracking: TrackingConfig
    log: LogConfig

    def section(self, name: str) -> Dict[str, Any]:
        value = self.raw.get(name)
        return value if isinstance(value, dict) else {}


def _positive_int(cfg: dict[str, Any], key: str, default: int) -> int:
    value = cfg.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"tracking.{key} must be an integer")
    if value <= 0:
        raise ConfigError(f"tracking.{key} must be > 0")
    return value


def _non_negative_int(cfg: dict[str, Any], key: str, default: int) -> int:
    value = cfg.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"tracking.{key} must be an integer")
    if value < 0:
        raise ConfigError(f"tracking.{key} must be >= 0")
    return value


def _load_yaml_dict(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def _merge_defaults(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def _parse_log_config(root: Path, raw: Any) -> LogConfig:
    cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
    path_value = cfg.get("path", DEFAULT_LOG_PATH)
    if not isinstance(path_value, str) or not path_value.strip():
        raise ConfigError("log.path must be a string path")
    max_bytes = cfg.get("max_bytes", 10 * 1024 * 1024)
    backup_count = cfg.get("backup_count", 3)
    if not isinstance(max_bytes, int) or max_bytes <= 0:
        raise ConfigError("log.max_bytes must be a positive integer")
    if not isinstance(backup_count, int) or backup_count < 0:
        raise ConfigError("log.backup_count must be a non-negative integer")
    return LogConfig(
        path=(root / path_value).resolve(),
        max_bytes=max_bytes,
        backup_count=backup_count,
    )


def load_app_config(path: Optional[Path] = None) -> AppConfig:
    """Load ``launchwatch.yml`` (plus an optional override file) from ``path``.

    ``path`` may be the config file itself or the directory containing it.
    A missing file yields an all-defaults config.
    """
    target = (path or Path.cwd()).resolve()
    if target.is_file():
        root = target.parent
        base = _load_yaml_dict(target)
    else:
        root = target
        base = _load_yaml_dict(root / ROOT_CONFIG_FILENAME)
    override_path = root / ROOT_OVERRIDE_FILENAME
    try:
        override = _load_yaml_dict(override_path)
    except ConfigError as exc:
        raise ConfigError(
            f"Invalid override config {override_path}; fix or delete it: {exc}"
        ) from exc
    raw = _merge_defaults(base, override) if override else base
    return AppConfig(
        root=root,
        raw=raw,
        tracking=TrackingConfig.from_raw(raw.get("tracking")),
        log=_parse_log_config(root, raw.get("log")),
    )
