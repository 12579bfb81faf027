"""
Retry/backoff and rate-limit-aware HTTP download helper.
Used by ingest.remote to pull story exports from a URL (e.g. a pre-signed bucket link).
"""

import logging
import os
import time
import random
import email.utils
from datetime import datetime, timezone
from typing import Optional, Dict, Any
import requests

logger = logging.getLogger(__name__)

# retry/backoff defaults from environment
# - STORY_MAX_RETRIES: int
# - STORY_BACKOFF_BASE: float (seconds)
# - STORY_BACKOFF_JITTER: float (seconds) - if not set, jitter defaults to backoff base
# - STORY_MAX_BACKOFF: float (seconds)
DEFAULT_MAX_RETRIES = int(os.getenv("STORY_MAX_RETRIES", "3"))
DEFAULT_BACKOFF_BASE = float(os.getenv("STORY_BACKOFF_BASE", "0.5"))
_env_jitter = os.getenv("STORY_BACKOFF_JITTER")
DEFAULT_BACKOFF_JITTER = float(_env_jitter) if _env_jitter is not None and _env_jitter != "" else None
DEFAULT_MAX_BACKOFF = float(os.getenv("STORY_MAX_BACKOFF", "120.0"))
DEFAULT_TIMEOUT = 30.0

# hard cap on any single wait, whatever the server asks for
MAX_WAIT_SECONDS = 300.0

# runtime-overrides
_runtime_max_retries: Optional[int] = None
_runtime_backoff_base: Optional[float] = None
_runtime_backoff_jitter: Optional[float] = None
_runtime_max_backoff: Optional[float] = None


def configure_retry(
    max_retries: Optional[int] = None, backoff_base: Optional[float] = None, backoff_jitter: Optional[float] = None, max_backoff: Optional[float] = None
):
    """Configure retry/backoff defaults at runtime (e.g. from CLI)."""
    global _runtime_max_retries, _runtime_backoff_base, _runtime_backoff_jitter, _runtime_max_backoff
    if max_retries is not None:
        _runtime_max_retries = int(max_retries)
    if backoff_base is not None:
        _runtime_backoff_base = float(backoff_base)
    if backoff_jitter is not None:
        _runtime_backoff_jitter = float(backoff_jitter)
    if max_backoff is not None:
        _runtime_max_backoff = float(max_backoff)


def reset_retry():
    """Drop runtime overrides and go back to the environment defaults."""
    global _runtime_max_retries, _runtime_backoff_base, _runtime_backoff_jitter, _runtime_max_backoff
    _runtime_max_retries = None
    _runtime_backoff_base = None
    _runtime_backoff_jitter = None
    _runtime_max_backoff = None


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        pass
    try:
        dt = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())


def _header_number(headers: Dict[str, Any], key: str, cast):
    val = headers.get(key)
    if val is None:
        return None
    try:
        return cast(val)
    except (TypeError, ValueError):
        return None


def _parse_rate_headers(resp):
    """Return (retry_after_seconds, remaining, reset_epoch) from a response; absent or bad values are None."""
    headers = getattr(resp, 'headers', None) or {}
    return (
        _parse_retry_after(headers.get('Retry-After')),
        _header_number(headers, 'X-RateLimit-Remaining', int),
        _header_number(headers, 'X-RateLimit-Reset', float),
    )


def _first_set(*values):
    """First value that is not None (explicit argument, then runtime override, then env default)."""
    for value in values:
        if value is not None:
            return value
    return None


def _resolve_backoff_params(backoff_base: Optional[float], backoff_jitter: Optional[float], max_backoff: Optional[float]):
    base = float(_first_set(backoff_base, _runtime_backoff_base, DEFAULT_BACKOFF_BASE))
    # jitter falls back to the base delay when nothing configures it
    jitter = float(_first_set(backoff_jitter, _runtime_backoff_jitter, DEFAULT_BACKOFF_JITTER, base))
    cap = float(_first_set(max_backoff, _runtime_max_backoff, DEFAULT_MAX_BACKOFF))
    return base, jitter, cap


RETRY_STATUSES = frozenset({429, 502, 503, 504})


def _should_retry_response(status: int, retry_after: Optional[float], remaining: Optional[int]) -> bool:
    return status in RETRY_STATUSES or retry_after is not None or (remaining is not None and remaining <= 0)


def _compute_wait_seconds(retry_after: Optional[float], reset_at: Optional[float], backoff: float, jitter: float) -> float:
    """Server hints first (Retry-After, then X-RateLimit-Reset), else exponential backoff; capped at MAX_WAIT_SECONDS."""
    if retry_after is not None:
        wait = float(retry_after)
    elif reset_at:
        wait = max(0.0, float(reset_at) - time.time())
    else:
        wait = backoff
    return min(wait + random.uniform(0, jitter), MAX_WAIT_SECONDS)


def _attempt_request_once(url: str, headers: Dict[str, str], timeout: float):
    """One GET. Returns (outcome, data) with outcome in 'success', 'retry', 'fail', 'error'."""
    try:
        resp = requests.get(url, headers=headers or {}, timeout=timeout)
    except requests.RequestException as ex:
        return 'error', {'exception': str(ex)}

    status = getattr(resp, 'status_code', 0)
    if status != 200:
        retry_after, remaining, reset_at = _parse_rate_headers(resp)
        if _should_retry_response(status, retry_after, remaining):
            return 'retry', {'status': status, 'retry_after': retry_after, 'reset_at': reset_at}
    outcome = 'success' if status == 200 else 'fail'
    return outcome, {'content': resp.content, 'status': status, 'headers': dict(resp.headers or {})}


def _result(content: Any, status: int, headers: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> Dict[str, Any]:
    return {'content': content, 'status': status, 'headers': headers or {}, 'error': error, 'timestamp': time.time()}


def fetch_with_retries(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
    backoff_jitter: Optional[float] = None,
    max_backoff: Optional[float] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    """GET `url` with retries on connection errors, 429/5xx and exhausted rate limits.

    Returns a dict with `content` (bytes or None), `status` (0 when no response was received),
    `headers`, `error` and `timestamp`. Explicit arguments win over configure_retry() values,
    which win over the STORY_* environment defaults. `max_retries` counts attempts, at least one.
    """
    backoff, jitter, cap = _resolve_backoff_params(backoff_base, backoff_jitter, max_backoff)
    attempts = max(1, int(_first_set(max_retries, _runtime_max_retries, DEFAULT_MAX_RETRIES)))
    last = _result(None, 0)

    for attempt in range(1, attempts + 1):
        outcome, data = _attempt_request_once(url, headers or {}, timeout)
        if outcome in ('success', 'fail'):
            return _result(data['content'], data['status'], data['headers'])

        if outcome == 'error':
            logger.warning("Request to %s failed (attempt %d/%d): %s", url, attempt, attempts, data['exception'])
            last = _result(None, 0, error=data['exception'])
            wait = min(backoff + random.uniform(0, jitter), cap)
        else:
            logger.warning("Request to %s returned %s (attempt %d/%d)", url, data['status'], attempt, attempts)
            last = _result(None, data['status'])
            wait = _compute_wait_seconds(data['retry_after'], data['reset_at'], backoff, jitter)
        backoff = min(backoff * 2, cap)
        # no sleep after the final attempt
        if attempt < attempts:
            time.sleep(wait)

    return last


__all__ = ["configure_retry", "reset_retry", "fetch_with_retries"]
