"""Sliding-window rate limiter for LLM calls.

Tracks requests and tokens over the last 60 seconds. When a limit would be
exceeded the caller sleeps until enough of the window has expired; the
limiter never raises.
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


@dataclass
class RateLimitConfig:
    """Provider limits.

    Attributes:
        requests_per_minute: Maximum calls per window (0 = unlimited)
        tokens_per_minute: Maximum tokens per window (0 = unlimited)
    """

    requests_per_minute: int = 15
    tokens_per_minute: int = 200_000

    def __post_init__(self) -> None:
        if self.requests_per_minute < 0:
            raise ValueError(f"requests_per_minute must be >= 0, got {self.requests_per_minute}")
        if self.tokens_per_minute < 0:
            raise ValueError(f"tokens_per_minute must be >= 0, got {self.tokens_per_minute}")


@dataclass
class _TokenEntry:
    at: float
    count: int


@dataclass
class TokenReservation:
    """Tokens held in the window for an in-flight call.

    Attributes:
        entry: Window entry holding the estimate until usage is recorded
        waited: Seconds spent waiting for the budget
    """

    entry: _TokenEntry
    waited: float = 0.0

    @property
    def tokens(self) -> int:
        return self.entry.count


class RateLimiter:
    """Thread-safe sliding-window limiter.

    ``clock`` and ``sleep`` are injectable so tests can run without waiting.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._requests: deque[float] = deque()
        self._tokens: deque[_TokenEntry] = deque()

    def _prune(self, now: float) -> None:
        cutoff = now - WINDOW_SECONDS
        while self._requests and self._requests[0] <= cutoff:
            self._requests.popleft()
        while self._tokens and self._tokens[0].at <= cutoff:
            self._tokens.popleft()

    def wait_for_slot(self) -> float:
        """Block until a request may be made, then record it.

        Returns:
            Seconds spent waiting
        """
        limit = self.config.requests_per_minute
        waited = 0.0
        while True:
            with self._lock:
                now = self._clock()
                self._prune(now)
                if limit == 0 or len(self._requests) < limit:
                    self._requests.append(now)
                    return waited
                delay = self._requests[0] + WINDOW_SECONDS - now
            logger.debug("Request limit reached, waiting %.1fs", delay)
            self._sleep(max(delay, 0.0))
            waited += max(delay, 0.0)

    def wait_for_token_budget(self, estimated_tokens: int) -> TokenReservation:
        """Block until ``estimated_tokens`` fit in the window, then reserve them.

        The estimate counts against the window as soon as this returns, so
        concurrent callers wait on each other's in-flight calls. Pass the
        reservation to ``record_usage`` to replace the estimate with the
        actual total. A request larger than the whole budget only waits for
        an empty window.
        """
        limit = self.config.tokens_per_minute
        estimated_tokens = max(estimated_tokens, 0)
        waited = 0.0
        while True:
            with self._lock:
                now = self._clock()
                self._prune(now)
                used = sum(entry.count for entry in self._tokens)
                if limit == 0 or not self._tokens or used + estimated_tokens <= limit:
                    entry = _TokenEntry(now, estimated_tokens)
                    self._tokens.append(entry)
                    return TokenReservation(entry=entry, waited=waited)
                delay = self._tokens[0].at + WINDOW_SECONDS - now
            logger.debug("Token budget exhausted (%d used), waiting %.1fs", used, delay)
            self._sleep(max(delay, 0.0))
            waited += max(delay, 0.0)

    def record_usage(self, tokens: int, reservation: TokenReservation | None = None) -> None:
        """Record tokens actually consumed by a completed call.

        A reservation still inside the window is adjusted in place; otherwise
        the usage is added as a new entry. A non-positive count is ignored and
        leaves any reserved estimate standing.
        """
        if tokens <= 0:
            return
        with self._lock:
            now = self._clock()
            if reservation is not None and reservation.entry.at > now - WINDOW_SECONDS:
                reservation.entry.count = tokens
            else:
                self._tokens.append(_TokenEntry(now, tokens))

    def tokens_in_window(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return sum(entry.count for entry in self._tokens)
