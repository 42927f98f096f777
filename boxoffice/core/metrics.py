"""
Monitoring and metrics for scheduling and reservations
"""

import time
import logging
from typing import Dict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import asyncio

from boxoffice.core.exceptions import SeatUnavailableError, TransientNetworkError

logger = logging.getLogger(__name__)


@dataclass
class ReservationMetrics:
    """Reservation and scheduling counters"""
    total_commits: int = 0
    successful_commits: int = 0
    rejected_commits: int = 0  # seat already taken
    failed_commits: int = 0  # anything else
    transient_failures: int = 0
    seats_sold: int = 0

    schedule_batches: int = 0
    showtimes_created: int = 0
    conflicts_reported: int = 0
    conflict_overrides: int = 0

    concurrent_commits: int = 0
    max_concurrent_commits: int = 0

    commit_times: list = field(default_factory=list)

    def add_commit_time(self, duration: float):
        self.commit_times.append(duration)
        if len(self.commit_times) > 1000:  # Keep only last 1000 for memory
            self.commit_times = self.commit_times[-1000:]

    def get_percentiles(self) -> Dict[str, float]:
        if not self.commit_times:
            return {"p50": 0.0, "p95": 0.0, "p99": 0.0}

        sorted_times = sorted(self.commit_times)
        length = len(sorted_times)
        return {
            "p50": sorted_times[int(length * 0.5)],
            "p95": sorted_times[min(int(length * 0.95), length - 1)],
            "p99": sorted_times[min(int(length * 0.99), length - 1)],
        }

    def get_rejection_rate(self) -> float:
        if self.total_commits == 0:
            return 0.0
        return (self.rejected_commits / self.total_commits) * 100

    def to_dict(self) -> Dict:
        percentiles = self.get_percentiles()
        return {
            "reservations": {
                "total_commits": self.total_commits,
                "successful_commits": self.successful_commits,
                "rejected_commits": self.rejected_commits,
                "failed_commits": self.failed_commits,
                "transient_failures": self.transient_failures,
                "seats_sold": self.seats_sold,
                "rejection_rate_percent": self.get_rejection_rate(),
                "percentiles_ms": {k: v * 1000 for k, v in percentiles.items()},
            },
            "scheduling": {
                "schedule_batches": self.schedule_batches,
                "showtimes_created": self.showtimes_created,
                "conflicts_reported": self.conflicts_reported,
                "conflict_overrides": self.conflict_overrides,
            },
            "concurrency": {
                "current_concurrent_commits": self.concurrent_commits,
                "max_concurrent_commits": self.max_concurrent_commits,
            },
        }


class MetricsCollector:
    """Metrics collector for the reservation core"""

    def __init__(self):
        self.metrics = ReservationMetrics()
        self.logger = logging.getLogger(__name__)
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def track_commit(self, seat_count: int):
        """Context manager to track one reservation commit"""
        start_time = time.time()

        async with self._lock:
            self.metrics.concurrent_commits += 1
            if self.metrics.concurrent_commits > self.metrics.max_concurrent_commits:
                self.metrics.max_concurrent_commits = self.metrics.concurrent_commits

        try:
            yield
        except Exception as e:
            duration = time.time() - start_time
            async with self._lock:
                self.metrics.total_commits += 1
                self.metrics.concurrent_commits -= 1
                self.metrics.add_commit_time(duration)
                if isinstance(e, SeatUnavailableError):
                    self.metrics.rejected_commits += 1
                elif isinstance(e, TransientNetworkError):
                    self.metrics.transient_failures += 1
                    self.metrics.failed_commits += 1
                else:
                    self.metrics.failed_commits += 1
            raise
        else:
            duration = time.time() - start_time
            async with self._lock:
                self.metrics.total_commits += 1
                self.metrics.successful_commits += 1
                self.metrics.seats_sold += seat_count
                self.metrics.concurrent_commits -= 1
                self.metrics.add_commit_time(duration)

            if duration > 5.0:
                self.logger.warning(f"Slow reservation commit: {duration:.2f}s")

    async def record_schedule_batch(self, created: int, conflicts: int, forced: bool):
        async with self._lock:
            self.metrics.schedule_batches += 1
            self.metrics.showtimes_created += created
            self.metrics.conflicts_reported += conflicts
            if forced and conflicts:
                self.metrics.conflict_overrides += 1

    async def get_metrics(self) -> Dict:
        async with self._lock:
            return self.metrics.to_dict()


# Global instances
metrics_collector = MetricsCollector()
