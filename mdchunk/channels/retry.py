"""Retry with exponential backoff for chat API sends."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import httpx
from loguru import logger
from telegram.error import TelegramError

# Recoverable network error patterns
RECOVERABLE_ERRORS = {
    "Timed out",
    "Connection reset",
    "Connection refused",
    "Connection aborted",
    "Network is unreachable",
    "Host is unreachable",
    "Name or service not known",
    "Temporary failure in name resolution",
    "Connect timeout",
    "Read timeout",
    "Write timeout",
    "Socket timeout",
}

RECOVERABLE_STATUS_CODES = (429, 500, 502, 503, 504)


def is_recoverable_error(err: Exception) -> bool:
    """Check if error is recoverable (network-related) and worth retrying."""
    err_str = str(err).lower()
    # Check by error type
    if isinstance(err, httpx.HTTPStatusError):
        return err.response.status_code in RECOVERABLE_STATUS_CODES
    if isinstance(err, httpx.TransportError):
        return True
    if isinstance(err, TelegramError):
        if any(str(code) in err_str for code in RECOVERABLE_STATUS_CODES):
            return True
    # Check by error message patterns
    for pattern in RECOVERABLE_ERRORS:
        if pattern.lower() in err_str:
            return True
    return False


async def send_with_retry(
    send: Callable[..., Awaitable[Any]],
    *args: Any,
    max_retries: int = 3,
    base_delay: float = 1.0,
    **kwargs: Any,
) -> Any:
    """Call ``send(*args, **kwargs)``, retrying recoverable errors with exponential backoff."""
    max_retries = max(1, max_retries)
    last_error: Exception | None = None
    for attempt in range(max_retries):
        try:
            return await send(*args, **kwargs)
        except Exception as e:
            last_error = e
            if not is_recoverable_error(e) or attempt == max_retries - 1:
                raise
            delay = base_delay * (2 ** attempt)  # Exponential backoff
            logger.warning(f"Send failed (attempt {attempt + 1}/{max_retries}), retrying in {delay}s: {e}")
            await asyncio.sleep(delay)

    raise last_error
