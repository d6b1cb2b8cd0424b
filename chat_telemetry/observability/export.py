"""
Export boundary for CHAT_TELEMETRY.

Completed traces and log records are handed to a BufferedExporter, which
queues them in a bounded buffer and delivers them to a Sink from a
background thread. Producers never block and never see sink failures:
overflow is handled by the drop policy, failed batches are retried a
bounded number of times and then dropped.
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from enum import Enum
from typing import Any

from ..constants import (
    DEFAULT_EXPORT_BATCH_SIZE,
    DEFAULT_EXPORT_BUFFER_SIZE,
    DEFAULT_EXPORT_FLUSH_INTERVAL_SECONDS,
    DEFAULT_EXPORT_MAX_RETRIES,
    DEFAULT_EXPORT_RETRY_BACKOFF_SECONDS,
)

logger = logging.getLogger(__name__)

KIND_TRACE = "trace"
KIND_LOG = "log"


class DropPolicy(str, Enum):
    """What to discard when the export buffer is full."""

    DROP_OLDEST = "drop_oldest"
    DROP_NEWEST = "drop_newest"


class Sink(ABC):
    """
    Destination for exported telemetry (tracing backend, log aggregator...).

    ``export`` receives a batch of ``{"kind": "trace" | "log", "payload": {...}}``
    items and raises on failure. It is only ever called from one thread at a
    time.
    """

    name = "sink"

    @abstractmethod
    def export(self, batch: list[dict[str, Any]]) -> None:
        """Deliver a batch; raise ExportError (or an I/O error) on failure."""
        pass

    def close(self) -> None:
        """Release sink resources."""
        pass


class InMemorySink(Sink):
    """Sink that keeps every delivered item in memory."""

    name = "memory"

    def __init__(self):
        self.items: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def export(self, batch: list[dict[str, Any]]) -> None:
        with self._lock:
            self.items.extend(batch)

    @property
    def traces(self) -> list[dict[str, Any]]:
        with self._lock:
            return [item["payload"] for item in self.items if item["kind"] == KIND_TRACE]

    @property
    def logs(self) -> list[dict[str, Any]]:
        with self._lock:
            return [item["payload"] for item in self.items if item["kind"] == KIND_LOG]

    def clear(self) -> None:
        with self._lock:
            self.items.clear()


class LoggingSink(Sink):
    """Sink writing one JSON line per item to a stdlib logger."""

    name = "logging"

    def __init__(self, logger_name: str = "chat_telemetry.export", level: int = logging.INFO):
        self._logger = logging.getLogger(logger_name)
        self._level = level

    def export(self, batch: list[dict[str, Any]]) -> None:
        for item in batch:
            self._logger.log(self._level, json.dumps(item, default=str, sort_keys=True))


class BufferedExporter:
    """
    Bounded, non-blocking export queue in front of a Sink.

    Example:
        exporter = BufferedExporter(LoggingSink(), max_buffer_size=1000)
        exporter.start()
        exporter.submit_log({"message": "chat_started", ...})
        ...
        exporter.shutdown()
    """

    def __init__(
        self,
        sink: Sink,
        max_buffer_size: int = DEFAULT_EXPORT_BUFFER_SIZE,
        batch_size: int = DEFAULT_EXPORT_BATCH_SIZE,
        max_retries: int = DEFAULT_EXPORT_MAX_RETRIES,
        drop_policy: DropPolicy = DropPolicy.DROP_OLDEST,
        retry_backoff_seconds: float = DEFAULT_EXPORT_RETRY_BACKOFF_SECONDS,
        flush_interval_seconds: float = DEFAULT_EXPORT_FLUSH_INTERVAL_SECONDS,
    ):
        """
        Initialize the exporter. The worker thread is not started until start().

        Args:
            sink: Destination for exported items
            max_buffer_size: Maximum queued items
            batch_size: Maximum items per sink call
            max_retries: Retries per failed batch before it is dropped
            drop_policy: Which item to discard when the buffer is full
            retry_backoff_seconds: Linear backoff step between retries
            flush_interval_seconds: Longest the worker waits for a full batch
        """
        self._sink = sink
        self._max_buffer_size = max_buffer_size
        self._batch_size = batch_size
        self._max_retries = max_retries
        self._drop_policy = DropPolicy(drop_policy)
        self._retry_backoff_seconds = retry_backoff_seconds
        self._flush_interval_seconds = flush_interval_seconds

        self._buffer: deque[dict[str, Any]] = deque()
        self._condition = threading.Condition()
        self._delivery_lock = threading.Lock()
        self._in_flight = 0
        self._stopping = False
        self._thread: threading.Thread | None = None

        self._submitted = 0
        self._exported = 0
        self._dropped = 0
        self._failed_batches = 0

    @property
    def sink(self) -> Sink:
        return self._sink

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def submit(self, kind: str, payload: dict[str, Any]) -> bool:
        """
        Queue one item without blocking.

        Returns:
            False if the item was rejected (buffer full under DROP_NEWEST, or
            exporter shut down), True otherwise
        """
        item = {"kind": kind, "payload": payload}
        with self._condition:
            if self._stopping:
                self._dropped += 1
                return False
            self._submitted += 1
            if len(self._buffer) >= self._max_buffer_size:
                self._dropped += 1
                if self._drop_policy is DropPolicy.DROP_NEWEST:
                    logger.debug("Export buffer full, dropping newest item")
                    return False
                self._buffer.popleft()
                logger.debug("Export buffer full, dropped oldest item")
            self._buffer.append(item)
            if len(self._buffer) >= self._batch_size:
                self._condition.notify()
        return True

    def submit_trace(self, trace: dict[str, Any]) -> bool:
        return self.submit(KIND_TRACE, trace)

    def submit_log(self, record: dict[str, Any]) -> bool:
        return self.submit(KIND_LOG, record)

    # ------------------------------------------------------------------
    # Delivery side
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background delivery thread (idempotent)."""
        if self.running:
            return
        with self._condition:
            self._stopping = False
        self._thread = threading.Thread(
            target=self._run, name=f"telemetry-export-{self._sink.name}", daemon=True
        )
        self._thread.start()
        logger.debug(f"Export worker started for sink {self._sink.name}")

    def _run(self) -> None:
        while True:
            with self._condition:
                if not self._buffer and not self._stopping:
                    self._condition.wait(timeout=self._flush_interval_seconds)
                if self._stopping and not self._buffer:
                    return
            try:
                self.drain()
            except Exception:
                # The worker outlives any single bad batch
                logger.exception(f"Export worker for sink {self._sink.name} failed to drain")

    def _take_batch(self) -> list[dict[str, Any]]:
        with self._condition:
            batch = []
            while self._buffer and len(batch) < self._batch_size:
                batch.append(self._buffer.popleft())
            self._in_flight += len(batch)
            return batch

    def _deliver(self, batch: list[dict[str, Any]]) -> bool:
        attempts = 0
        try:
            while True:
                attempts += 1
                try:
                    self._sink.export(batch)
                except Exception as e:
                    # Sinks wrap arbitrary backends, so any failure is retried then dropped
                    if attempts > self._max_retries:
                        logger.exception(
                            f"Dropping {len(batch)} telemetry items after {attempts} "
                            f"failed export attempts to {self._sink.name}: {e}"
                        )
                        with self._condition:
                            self._dropped += len(batch)
                            self._failed_batches += 1
                        return False
                    logger.warning(
                        f"Export to {self._sink.name} failed (attempt {attempts}), retrying: {e}"
                    )
                    if self._retry_backoff_seconds > 0:
                        time.sleep(self._retry_backoff_seconds * attempts)
                    continue
                with self._condition:
                    self._exported += len(batch)
                return True
        finally:
            with self._condition:
                self._in_flight -= len(batch)
                self._condition.notify_all()

    def drain(self) -> int:
        """
        Deliver everything currently buffered on the calling thread.

        Returns:
            Number of items delivered successfully
        """
        delivered = 0
        with self._delivery_lock:
            while True:
                batch = self._take_batch()
                if not batch:
                    return delivered
                if self._deliver(batch):
                    delivered += len(batch)

    def flush(self, timeout: float | None = None) -> bool:
        """
        Wait until the buffer is empty and no batch is in flight.

        Drains synchronously when no worker thread is running.

        Returns:
            True if everything queued before the call was handled in time
        """
        if not self.running:
            self.drain()
            return True

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._condition:
            self._condition.notify()
            while self._buffer or self._in_flight:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._condition.wait(timeout=remaining)
        return True

    def shutdown(self, timeout: float | None = 5.0) -> None:
        """
        Stop accepting items, deliver what is queued and close the sink.

        If the worker is still delivering when ``timeout`` expires, shutdown
        returns without draining or closing the sink; the worker keeps
        delivering the remaining items and exits once the buffer is empty.
        """
        with self._condition:
            self._stopping = True
            self._condition.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(
                    f"Export worker for sink {self._sink.name} did not stop within "
                    f"{timeout}s; leaving remaining items to it and not closing the sink"
                )
                return
            self._thread = None
        self.drain()
        self._sink.close()
        logger.debug(f"Export worker for sink {self._sink.name} shut down")

    def stats(self) -> dict[str, Any]:
        with self._condition:
            buffered = len(self._buffer)
            return {
                "sink": self._sink.name,
                "running": self.running,
                "buffered": buffered,
                "capacity": self._max_buffer_size,
                "usage_percent": round(buffered / self._max_buffer_size * 100, 2),
                "submitted": self._submitted,
                "exported": self._exported,
                "dropped": self._dropped,
                "failed_batches": self._failed_batches,
                "drop_policy": self._drop_policy.value,
            }
