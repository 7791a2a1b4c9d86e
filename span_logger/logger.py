from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from .config import SpanLoggerConfig
from .context import get_record
from .exporter import LogExporter, LogSink
from .interceptor import LoggingInterceptor
from .models import RequestSnapshot, ResponseSnapshot, TraceRecord


class TraceCapture:
    def __init__(self, record: Optional[TraceRecord] = None) -> None:
        self.record = record
        self.response: Optional[ResponseSnapshot] = None
        self.error: Optional[BaseException] = None

    def set_response(
        self,
        *,
        status_code: int,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
    ) -> None:
        self.response = ResponseSnapshot(status_code=status_code, headers=dict(headers or {}), body=body)

    def set_error(self, error: BaseException) -> None:
        self.error = error


class TraceLogger:
    def __init__(self, config: SpanLoggerConfig, sink: Optional[LogSink] = None) -> None:
        self.config = config
        self.exporter: Optional[LogExporter] = None
        if sink is None:
            self.exporter = LogExporter(config)
            self.exporter.start()
            sink = self.exporter
        self.sink = sink
        self.interceptor = LoggingInterceptor(config, sink)

    def begin_request(self, request: RequestSnapshot) -> TraceCapture:
        self.interceptor.pre_handle(request)
        return TraceCapture(get_record())

    def finish_request(self, capture: TraceCapture) -> None:
        self.interceptor.after_completion(capture.response, capture.error, record=capture.record)

    @contextmanager
    def capture_request(self, request: RequestSnapshot) -> Iterator[TraceCapture]:
        """
        Trace one inbound request for the duration of the block.

        The carrier is bound on entry and always cleared on exit. Errors raised
        inside the block are recorded and re-raised unchanged.
        """
        capture = self.begin_request(request)

        try:
            yield capture
        except BaseException as exc:
            capture.set_error(exc)
            raise
        finally:
            self.finish_request(capture)

    def shutdown(self, wait: bool = True) -> None:
        if self.exporter is None:
            return
        self.exporter.stop()
        if wait:
            self.exporter.join(timeout=self.config.flush_interval + 1)
