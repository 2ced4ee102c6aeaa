from __future__ import annotations

import pytest

from launchwatch.core.exceptions import PermanentError, TransientError
from launchwatch.core.retry import retry_transient


@pytest.mark.anyio
async def test_retries_transient_errors_until_success() -> None:
    attempts = {"count": 0}

    @retry_transient(max_attempts=3, base_wait=0.0, max_wait=0.0, jitter=0.0)
    async def flaky() -> str:
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise TransientError("try again")
        return "ok"

    assert await flaky() == "ok"
    assert attempts["count"] == 3


@pytest.mark.anyio
async def test_reraises_last_transient_error_after_max_attempts() -> None:
    attempts = {"count": 0}

    @retry_transient(max_attempts=2, base_wait=0.0, max_wait=0.0, jitter=0.0)
    async def always_down() -> None:
        attempts["count"] += 1
        raise TransientError(f"down {attempts['count']}")

    with pytest.raises(TransientError, match="down 2"):
        await always_down()
    assert attempts["count"] == 2


@pytest.mark.anyio
async def test_permanent_errors_are_not_retried() -> None:
    attempts = {"count": 0}

    @retry_transient(max_attempts=5, base_wait=0.0, max_wait=0.0, jitter=0.0)
    async def forbidden() -> None:
        attempts["count"] += 1
        raise PermanentError("nope")

    with pytest.raises(PermanentError):
        await forbidden()
    assert attempts["count"] == 1
