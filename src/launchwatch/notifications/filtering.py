from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Optional

from ..core.logging_utils import log_event
from ..launches.agencies import LAUNCH_AGENCIES, resolve_agency
from ..launches.models import LaunchRecord
from .settings import SubscriberSettings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=512)
def _compile(pattern: str) -> Optional[re.Pattern[str]]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        log_event(
            logger,
            logging.WARNING,
            "notifications.filter.invalid_regex",
            pattern=pattern,
            exc=exc,
        )
        return None


def passes_deny_filters(
    settings: SubscriberSettings,
    record: LaunchRecord,
    agencies: dict[str, str] = LAUNCH_AGENCIES,
) -> bool:
    return all(resolve_agency(key, agencies) != record.lsp for key in settings.filters)


def passes_allow_filters(
    settings: SubscriberSettings,
    record: LaunchRecord,
    agencies: dict[str, str] = LAUNCH_AGENCIES,
) -> bool:
    if not settings.allow_filters:
        return True
    return any(
        resolve_agency(key, agencies) == record.lsp for key in settings.allow_filters
    )


def passes_payload_filters(settings: SubscriberSettings, record: LaunchRecord) -> bool:
    for pattern in settings.payload_filters:
        compiled = _compile(pattern)
        if compiled is not None and compiled.search(record.payload):
            return False
    return True


def passes_filters(
    settings: SubscriberSettings,
    record: LaunchRecord,
    agencies: dict[str, str] = LAUNCH_AGENCIES,
) -> bool:
    """Deny list, allow list and payload regexes must all let the launch through."""
    return (
        passes_deny_filters(settings, record, agencies)
        and passes_allow_filters(settings, record, agencies)
        and passes_payload_filters(settings, record)
    )
