"""Shared utilities: logging, retry decorator, rate limiter, time helpers."""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import sys
import time
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Iterator, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

_JAKARTA = timezone(timedelta(hours=7))


# ── Structured JSON logging ───────────────────────────────────────────

_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class _JSONFormatter(logging.Formatter):
    """One JSON object per line; ``extra={...}`` keys are carried through."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "where": f"{record.module}:{record.lineno}",
            "msg": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


_QUIET_LOGGERS = {"httpx": logging.WARNING, "httpcore": logging.WARNING, "yfinance": logging.CRITICAL}


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Route every record through the JSON formatter, to stderr and optionally ``log_file``."""
    formatter = _JSONFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name, lvl in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(lvl)


# ── Retry decorator with exponential backoff ──────────────────────────

def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
    *,
    max_delay: float = 30.0,
) -> Callable:
    """Retry an async callable on ``exceptions``, doubling the pause each time.

    Once attempts run out the last exception propagates as-is, so callers
    can still match on its type::

        @retry(max_attempts=2, base_delay=0.5, exceptions=(httpx.TransportError,))
        async def fetch(url): ...
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        log = logging.getLogger(fn.__module__)

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 1
            while True:
                try:
                    return await fn(*args, **kwargs)
                except exceptions as exc:
                    if attempt == max_attempts:
                        raise
                    pause = min(max_delay, base_delay * 2 ** (attempt - 1))
                    log.warning(
                        "%s attempt %d/%d raised %s: %s; sleeping %.1fs",
                        fn.__qualname__,
                        attempt,
                        max_attempts,
                        type(exc).__name__,
                        exc,
                        pause,
                    )
                    await asyncio.sleep(pause)
                    attempt += 1

        return wrapper

    return decorator


# ── Rate limiter ──────────────────────────────────────────────────────

class RateLimiter:
    """Sliding-window limiter: at most ``max_calls`` entries per ``period`` seconds.

    Callers past the quota wait for the oldest call to leave the window::

        limiter = RateLimiter(max_calls=60, period=60)
        async with limiter:
            info = await asyncio.to_thread(load_quote)
    """

    def __init__(
        self,
        max_calls: int,
        period: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_calls = max(1, max_calls)
        self.period = period
        self._clock = clock
        self._window: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        while self._window and now - self._window[0] >= self.period:
            self._window.popleft()

    def delay(self) -> float:
        """Seconds the next caller would wait right now."""
        now = self._clock()
        self._evict(now)
        if len(self._window) < self.max_calls:
            return 0.0
        return max(0.0, self.period - (now - self._window[0]))

    async def __aenter__(self) -> RateLimiter:
        async with self._lock:
            wait = self.delay()
            if wait > 0:
                logger.debug("Rate limit reached, waiting %.2fs", wait)
                await asyncio.sleep(wait)
                self._evict(self._clock())
            self._window.append(self._clock())
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


# ── Timestamp helpers ─────────────────────────────────────────────────

def utc_now() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into a timezone-aware datetime."""
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def idx_market_status(now: datetime | None = None) -> str:
    """IDX session state: ``open`` 09:00-15:50 WIB, ``pre-market`` from 08:00, else ``closed``."""
    now = now or utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(_JAKARTA)
    if local.weekday() >= 5:
        return "closed"

    minutes = local.hour * 60 + local.minute
    if 9 * 60 <= minutes <= 15 * 60 + 50:
        return "open"
    if 8 * 60 <= minutes < 9 * 60:
        return "pre-market"
    return "closed"


# ── Iteration helpers ─────────────────────────────────────────────────

def chunked(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive lists of at most ``size`` items."""
    batch: list[T] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch
