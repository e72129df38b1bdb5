"""Zero-impact in-memory proxy counters.

Plain integers incremented on the single-threaded event loop: no locks,
no I/O.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class ProxyMetrics:
    """Counters for the playlist, segment and dispatch paths."""

    playlist_cache_hits: int = 0
    playlist_upstream_fetches: int = 0
    upstream_failures: int = 0
    segment_cache_hits: int = 0
    segment_passthroughs: int = 0
    jobs_submitted: int = 0
    jobs_failed: int = 0
    jobs_skipped_cached: int = 0
    jobs_after_stop: int = 0
    _start_ns: int = field(default_factory=time.perf_counter_ns)

    def incr(self, counter: str, amount: int = 1) -> None:
        """Increment a named counter (attribute name)."""
        if counter.startswith("_") or not isinstance(getattr(self, counter, None), int):
            raise AttributeError(f"Unknown counter: {counter}")
        setattr(self, counter, getattr(self, counter) + amount)

    @property
    def uptime_seconds(self) -> float:
        return (time.perf_counter_ns() - self._start_ns) / 1_000_000_000

    def snapshot(self) -> dict[str, object]:
        """Return a JSON-serializable summary."""
        return {
            "uptime_seconds": round(self.uptime_seconds, 1),
            "playlists": {
                "cache_hits": self.playlist_cache_hits,
                "upstream_fetches": self.playlist_upstream_fetches,
                "upstream_failures": self.upstream_failures,
            },
            "segments": {
                "cache_hits": self.segment_cache_hits,
                "passthroughs": self.segment_passthroughs,
            },
            "dispatch": {
                "submitted": self.jobs_submitted,
                "failed": self.jobs_failed,
                "skipped_cached": self.jobs_skipped_cached,
                "after_stop": self.jobs_after_stop,
            },
        }
