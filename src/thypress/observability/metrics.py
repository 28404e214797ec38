"""Request metrics — counters and rolling response times.

Counters are incremented from request handlers and read (then reset) by
the periodic reporter every ``REPORT_INTERVAL`` seconds.

Thread Safety:
    All methods are protected by a ``threading.Lock``.  Safe for
    concurrent increments from the event loop and worker threads.

"""

from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Literal

REPORT_INTERVAL = 10.0
MAX_SAMPLES = 10_000

type Outcome = Literal["http_cache", "server_cache", "render"]


@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    """Counter values at one instant.

    Attributes:
        requests: Requests handled.
        http_cache_hits: 304 responses.
        server_cache_hits: Responses served from a cache layer.
        server_render_hits: Responses that required rendering.
        avg_response_ms: Mean of the response-time samples.

    """

    requests: int
    http_cache_hits: int
    server_cache_hits: int
    server_render_hits: int
    avg_response_ms: float

    @property
    def cache_hit_rate(self) -> float:
        """Share of recorded outcomes that needed no render, in percent."""
        hits = self.http_cache_hits + self.server_cache_hits
        attempts = hits + self.server_render_hits
        if not attempts:
            return 0.0
        return hits / attempts * 100

    def format_line(self, clock: str | None = None) -> str:
        stamp = clock or time.strftime("%H:%M:%S")
        return (
            f"[{stamp}] {self.requests} req/{int(REPORT_INTERVAL)}s | "
            f"Avg: {self.avg_response_ms:.2f}ms | "
            f"Cache: {self.cache_hit_rate:.0f}% "
            f"(HTTP304: {self.http_cache_hits}, Cached: {self.server_cache_hits}, "
            f"Rendered: {self.server_render_hits})"
        )


class RequestMetrics:
    """Per-process request counters.

    Args:
        max_samples: Maximum response-time samples kept between reports.

    """

    __slots__ = (
        "_lock",
        "_samples",
        "http_cache_hits",
        "requests",
        "server_cache_hits",
        "server_render_hits",
    )

    def __init__(self, max_samples: int = MAX_SAMPLES) -> None:
        self._lock = threading.Lock()
        self._samples: deque[float] = deque(maxlen=max_samples)
        self.requests = 0
        self.http_cache_hits = 0
        self.server_cache_hits = 0
        self.server_render_hits = 0

    def record_request(self, elapsed_ms: float) -> None:
        with self._lock:
            self.requests += 1
            self._samples.append(elapsed_ms)

    def record(self, outcome: Outcome) -> None:
        """Count how a response was produced."""
        with self._lock:
            if outcome == "http_cache":
                self.http_cache_hits += 1
            elif outcome == "server_cache":
                self.server_cache_hits += 1
            else:
                self.server_render_hits += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            samples = list(self._samples)
            return MetricsSnapshot(
                requests=self.requests,
                http_cache_hits=self.http_cache_hits,
                server_cache_hits=self.server_cache_hits,
                server_render_hits=self.server_render_hits,
                avg_response_ms=sum(samples) / len(samples) if samples else 0.0,
            )

    def reset(self) -> None:
        with self._lock:
            self.requests = 0
            self.http_cache_hits = 0
            self.server_cache_hits = 0
            self.server_render_hits = 0
            self._samples.clear()

    def report(self) -> MetricsSnapshot | None:
        """Print one summary line and reset, if any request was seen."""
        from thypress.console import dim

        snap = self.snapshot()
        if not snap.requests:
            return None
        dim(snap.format_line())
        self.reset()
        return snap


async def report_periodically(metrics: RequestMetrics, interval: float = REPORT_INTERVAL) -> None:
    """Report metrics every *interval* seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        metrics.report()
