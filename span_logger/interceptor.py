"""Inbound trace establishment and completion.

``pre_handle`` runs before the application handler and binds a fresh
``TraceRecord`` into the context carrier; ``after_completion`` runs after the
handler (also when it raised), publishes the record and clears the carrier.
Neither method ever fails the request.
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import SpanLoggerConfig
from .context import get_record, remove_record, set_record
from .exporter import LogSink
from .matcher import is_ignored
from .models import RequestSnapshot, ResponseSnapshot, TraceRecord
from .utils import epoch_millis, format_stack, get_host_address, redact_payload, to_json, truncate

__all__ = ["LoggingInterceptor", "INTERNAL_SERVER_ERROR"]

logger = logging.getLogger(__name__)

INTERNAL_SERVER_ERROR = 500
_DEFAULT_STATUS = 200


class LoggingInterceptor:
    def __init__(self, config: SpanLoggerConfig, sink: LogSink) -> None:
        self.config = config
        self.sink = sink

    def is_ignored(self, uri: str) -> bool:
        return is_ignored(uri, self.config.ignore_paths)

    def pre_handle(self, request: RequestSnapshot) -> bool:
        """Establish the trace for ``request``. Always returns True (proceed)."""
        if self.is_ignored(request.uri):
            return True

        record = TraceRecord()
        try:
            record.request_ip = request.ip
            record.request_uri = request.uri
            record.request_method = request.method
            record.request_param = to_json(redact_payload(request.params, self.config.redact_keys))
            record.request_body = truncate(request.body, self.config.max_body_size)
            record.request_headers = to_json(redact_payload(request.headers, self.config.redact_keys))
            record.http_status = _DEFAULT_STATUS
            record.start_time = epoch_millis()
            record.service_id = self.config.service_id
            record.service_port = str(self.config.service_port)
            record.trace_id = self._get_or_create_trace_id(request)
            record.parent_span_id = self._get_parent_span_id(request)
            record.span_id = self.config.span_generator.create_span_id()
            logger.debug("Request span id: %s", record.span_id)
            record.service_ip = get_host_address()
        except Exception as exc:
            record.exception_stack = format_stack(exc)
        finally:
            set_record(record)
        return True

    def after_completion(
        self,
        response: Optional[ResponseSnapshot] = None,
        error: Optional[BaseException] = None,
        record: Optional[TraceRecord] = None,
    ) -> None:
        """
        Finalize and publish the request's record, then clear the carrier.

        ``record`` is the record bound by ``pre_handle``; it defaults to the
        carrier's current value and is passed explicitly when completion runs
        in a different context, e.g. after a streamed response body.
        """
        try:
            if record is None:
                record = get_record()
            if record is not None:
                self._finalize(record, response, error)
                self.sink.publish(record)
        except Exception:
            logger.exception("Failed to finalize trace record")
        finally:
            remove_record()

    def _finalize(
        self,
        record: TraceRecord,
        response: Optional[ResponseSnapshot],
        error: Optional[BaseException],
    ) -> None:
        if error is not None:
            logger.debug("Request raised %s, marking record as failed", type(error).__name__)
            record.http_status = INTERNAL_SERVER_ERROR
            record.exception_stack = format_stack(error)
        if response is not None:
            record.http_status = response.status_code
            record.response_headers = to_json(redact_payload(response.headers, self.config.redact_keys))
            record.response_body = truncate(response.body, self.config.max_body_size)
        # A failed setup may have left the identifiers unset.
        if not record.trace_id:
            record.trace_id = self.config.trace_generator.create_trace_id()
        if not record.span_id:
            record.span_id = self.config.span_generator.create_span_id()
        record.end_time = epoch_millis()
        if record.start_time is None:
            record.start_time = record.end_time
        record.time_consuming = record.end_time - record.start_time

    def _get_or_create_trace_id(self, request: RequestSnapshot) -> str:
        trace_id = request.header(self.config.trace_header)
        if not trace_id:
            logger.debug("Request has no trace id header, creating a new trace id")
            trace_id = self.config.trace_generator.create_trace_id()
        logger.debug("Request trace id: %s", trace_id)
        return trace_id

    def _get_parent_span_id(self, request: RequestSnapshot) -> Optional[str]:
        parent_span_id = request.header(self.config.parent_span_header) or None
        logger.debug("Request parent span id: %s", parent_span_id)
        return parent_span_id
