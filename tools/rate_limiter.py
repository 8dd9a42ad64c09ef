"""
Rate Limiter
------------
Fixed-window request counter per tool.

A tool without a configured window is never limited. Bursts at a
window boundary are accepted.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional
import logging
import time


@dataclass
class RateLimitConfig:
    """Default window applied to tools flagged as rate limited."""
    max_requests: int = 60
    window_seconds: float = 60.0


@dataclass
class RateLimitWindow:
    """Counter state for one tool."""
    tool_name: str
    max_requests: int
    window_seconds: float
    current_requests: int
    reset_time: float


@dataclass
class RateLimitInfo:
    """Snapshot suitable for rate-limit response headers."""
    limit: int
    remaining: int
    reset: float
    retry_after: Optional[float] = None


class FixedWindowRateLimiter:
    """
    Fixed-window rate limiter keyed by tool name.

    The clock is injectable so tests can step through windows.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}
        self._logger = logging.getLogger("bridge.tools.rate_limiter")

    def configure(self, tool_name: str, max_requests: int, window_seconds: float) -> RateLimitWindow:
        """Install (or replace) the window for a tool."""
        if max_requests < 0:
            raise ValueError(f"max_requests must be >= 0, got {max_requests}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be > 0, got {window_seconds}")

        window = RateLimitWindow(
            tool_name=tool_name,
            max_requests=max_requests,
            window_seconds=window_seconds,
            current_requests=0,
            reset_time=self._clock() + window_seconds,
        )
        self._windows[tool_name] = window
        self._logger.debug(f"Rate limit for {tool_name}: {max_requests}/{window_seconds}s")
        return window

    def allow(self, tool_name: str) -> bool:
        """Count one request; False when the window is exhausted."""
        window = self._windows.get(tool_name)
        if window is None:
            return True

        now = self._clock()
        if now > window.reset_time:
            window.current_requests = 0
            window.reset_time = now + window.window_seconds

        if window.current_requests >= window.max_requests:
            self._logger.info(f"Rate limit hit for {tool_name}")
            return False

        window.current_requests += 1
        return True

    def retry_after(self, tool_name: str) -> float:
        """Seconds until the current window resets (0 when unlimited)."""
        window = self._windows.get(tool_name)
        if window is None:
            return 0.0
        return max(0.0, window.reset_time - self._clock())

    def get_window(self, tool_name: str) -> Optional[RateLimitWindow]:
        return self._windows.get(tool_name)

    def remove(self, tool_name: str) -> bool:
        return self._windows.pop(tool_name, None) is not None

    def reset(self, tool_name: Optional[str] = None) -> None:
        """Zero the counters for one tool or all tools."""
        now = self._clock()
        windows = [self._windows[tool_name]] if tool_name in self._windows else []
        if tool_name is None:
            windows = list(self._windows.values())
        for window in windows:
            window.current_requests = 0
            window.reset_time = now + window.window_seconds

    def info(self, tool_name: str) -> Optional[RateLimitInfo]:
        window = self._windows.get(tool_name)
        if window is None:
            return None

        remaining = max(0, window.max_requests - window.current_requests)
        return RateLimitInfo(
            limit=window.max_requests,
            remaining=remaining,
            reset=window.reset_time,
            retry_after=self.retry_after(tool_name) if remaining == 0 else None,
        )

    def __contains__(self, tool_name: str) -> bool:
        return tool_name in self._windows
