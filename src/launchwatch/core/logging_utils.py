from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from .time_utils import now_iso

_CONFIGURED_LOG_PATHS: dict[str, Path] = {}
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _coerce_field(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_coerce_field(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _coerce_field(item) for key, item in value.items()}
    return repr(value)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Emit one structured log line: a JSON object keyed by ``event``."""
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"ts": now_iso(), "event": event}
    for key, value in fields.items():
        payload[key] = _coerce_field(value)
    if exc is not None:
        payload["error"] = str(exc)
        payload["error_type"] = type(exc).__name__
    logger.log(
        level,
        json.dumps(payload, separators=(",", ":"), sort_keys=False),
        exc_info=exc if exc is not None and level >= logging.ERROR else None,
    )


def setup_rotating_logger(name: str, log_config: Any) -> logging.Logger:
    """Attach a rotating file handler (and stderr) to ``name`` once per path."""
    logger = logging.getLogger(name)
    log_path = Path(log_config.path)
    if _CONFIGURED_LOG_PATHS.get(name) == log_path:
        return logger

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(_LOG_FORMAT)
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=int(log_config.max_bytes),
        backupCount=int(log_config.backup_count),
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    _CONFIGURED_LOG_PATHS[name] = log_path
    return logger
