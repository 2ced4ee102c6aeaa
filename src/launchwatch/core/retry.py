from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Coroutine, Optional, TypeVar, cast

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .exceptions import TransientError

T = TypeVar("T")
AsyncFunc = Callable[..., Coroutine[Any, Any, T]]


def retry_transient(
    max_attempts: int = 5,
    base_wait: float = 1.0,
    max_wait: float = 60.0,
    jitter: float = 1.0,
    *,
    logger: Optional[logging.Logger] = None,
) -> Callable[[AsyncFunc[T]], AsyncFunc[T]]:
    """
    Retry an async callable while it raises ``TransientError``.

    Anything else (including ``PermanentError``) propagates on the first
    attempt. After ``max_attempts`` the last transient error is re-raised.
    """
    retry_logger = logger or logging.getLogger(__name__)

    def decorator(func: AsyncFunc[T]) -> AsyncFunc[T]:
        @wraps(func)
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential_jitter(initial=base_wait, max=max_wait, jitter=jitter),
            retry=retry_if_exception_type(TransientError),
            before_sleep=before_sleep_log(retry_logger, logging.WARNING),
            reraise=True,
        )
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return cast(T, await func(*args, **kwargs))

        return wrapper

    return decorator
