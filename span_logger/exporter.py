import asyncio
import logging
import queue
import threading
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from .admin_service import LoggingAdminService
from .config import SpanLoggerConfig
from .models import TraceRecord
from .utils import get_host_address

logger = logging.getLogger(__name__)


class LogSink(Protocol):
    def publish(self, record: TraceRecord) -> None:
        ...


class LogExporter(threading.Thread):
    """Background sink that batches finished records and ships them to the admin."""

    _MIN_POLL = 0.01
    _MAX_POLL = 0.1

    def __init__(self, config: SpanLoggerConfig, client: Optional[LoggingAdminService] = None) -> None:
        super().__init__(name="span-logger-exporter", daemon=True)
        self.config = config
        self._queue: "queue.Queue[TraceRecord]" = queue.Queue(maxsize=config.queue_size)
        self._stop_event = threading.Event()
        if client is None and config.api_url:
            client = LoggingAdminService(api_url=config.api_url)
        self._client = client

    def publish(self, record: TraceRecord) -> None:
        if self._stop_event.is_set():
            logger.warning("Exporter is stopped, record for trace %s is not reported", record.trace_id)
            if self.config.enable_console_fallback:
                self._log_records([record])
            return
        try:
            self._queue.put_nowait(record)
        except queue.Full:
            logger.warning("Log queue is full, dropping record for trace %s", record.trace_id)

    def run(self) -> None:
        batch: List[TraceRecord] = []
        deadline = time.monotonic() + self.config.flush_interval

        while not (self._stop_event.is_set() and self._queue.empty()):
            record = self._next_record(deadline)
            if record is not None:
                batch.append(record)
            if len(batch) >= self.config.batch_size or time.monotonic() >= deadline:
                if batch:
                    self._flush(batch)
                    batch = []
                deadline = time.monotonic() + self.config.flush_interval

        # Whatever is left when stopped is reported before the thread exits.
        if batch:
            self._flush(batch)

    def stop(self) -> None:
        self._stop_event.set()

    def _next_record(self, deadline: float) -> Optional[TraceRecord]:
        # Poll in short slices so stop() is noticed without waiting a full interval.
        timeout = min(max(deadline - time.monotonic(), self._MIN_POLL), self._MAX_POLL)
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def build_payload(self, records: List[TraceRecord]) -> Dict[str, Any]:
        try:
            service_ip = get_host_address()
        except OSError:
            service_ip = None
        return {
            "clientServiceId": self.config.service_id,
            "clientServiceIp": service_ip,
            "clientServicePort": str(self.config.service_port),
            "loggers": [record.to_payload() for record in records],
        }

    def _flush(self, records: List[TraceRecord]) -> None:
        if self._client is None:
            self._log_records(records)
            return

        # Failed requests are also reported separately for detailed debugging
        error_records = [
            r for r in records if r.exception_stack or (r.http_status is not None and r.http_status >= 400)
        ]

        self._send(self._client.send_logs, records, "report")
        if error_records:
            self._send(self._client.send_error_logs, error_records, "error report")

    def _send(self, send: Callable[[dict], Awaitable[None]], records: List[TraceRecord], kind: str) -> None:
        try:
            asyncio.run(send(self.build_payload(records)))
        except Exception:
            logger.exception("Failed to export %s with %d log records", kind, len(records))
            if self.config.enable_console_fallback:
                self._log_records(records)

    def _log_records(self, records: List[TraceRecord]) -> None:
        for record in records:
            logger.info("trace record: %s", record.to_payload())
