from collections import Counter
from functools import lru_cache
from threading import Lock


class PipelineMetrics:
    """Process-wide counters and gauges. Build once, hand to every component."""

    def __init__(self):
        self._counters: Counter = Counter()
        self._gauges: dict[str, float] = {}
        self._lock = Lock()

    def _inc(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[key] += amount

    def _set(self, key: str, value: float) -> None:
        with self._lock:
            self._gauges[key] = value

    def record_batch_request(self) -> None:
        self._inc("batch_requests")

    def record_batch_success(self) -> None:
        self._inc("batch_success")

    def record_batch_failure(self) -> None:
        self._inc("batch_failure")

    def record_upload_accepted(self) -> None:
        self._inc("uploads_accepted")

    def record_upload_rejected(self) -> None:
        self._inc("uploads_rejected")

    def queue_entered(self) -> None:
        with self._lock:
            self._gauges["processing_queue_size"] = self._gauges.get("processing_queue_size", 0) + 1

    def queue_left(self) -> None:
        with self._lock:
            self._gauges["processing_queue_size"] = max(0, self._gauges.get("processing_queue_size", 0) - 1)

    def record_batch_duration(self, seconds: float) -> None:
        with self._lock:
            self._gauges["batch_duration_seconds_total"] = self._gauges.get("batch_duration_seconds_total", 0.0) + seconds

    def record_processed_file_size(self, size_bytes: int) -> None:
        self._set("processed_file_size_bytes", size_bytes)

    def snapshot(self) -> dict:
        with self._lock:
            return {**self._counters, **self._gauges}


@lru_cache
def get_metrics() -> PipelineMetrics:
    return PipelineMetrics()
