import asyncio
import json
import logging
import time

import httpx
import pytest

from span_logger.admin_service import LoggingAdminService
from span_logger.config import SpanLoggerConfig
from span_logger.context import get_record
from span_logger.exporter import LogExporter
from span_logger.logger import TraceLogger
from span_logger.models import RequestSnapshot, TraceRecord


class AdminTransport(httpx.MockTransport):
    def __init__(self, status_code: int = 200, failing_paths=()) -> None:
        self.calls = []
        self.status_code = status_code
        self.failing_paths = set(failing_paths)
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.url.path, json.loads(request.content)))
        if request.url.path in self.failing_paths:
            return httpx.Response(502)
        return httpx.Response(self.status_code)


@pytest.fixture
def exporter_config() -> SpanLoggerConfig:
    return SpanLoggerConfig(service_id="orders-service", service_port=8080, api_url="http://admin", queue_size=2)


def make_exporter(config: SpanLoggerConfig, transport: AdminTransport) -> LogExporter:
    return LogExporter(config, client=LoggingAdminService(config.api_url, transport=transport))


def test_flush_sends_report_and_error_report(exporter_config, monkeypatch):
    monkeypatch.setattr("span_logger.exporter.get_host_address", lambda: "10.1.1.1")
    transport = AdminTransport()
    exporter = make_exporter(exporter_config, transport)
    ok = TraceRecord(trace_id="T1", span_id="S1", http_status=200)
    failed = TraceRecord(trace_id="T1", span_id="S2", http_status=500, exception_stack="Traceback")

    exporter._flush([ok, failed])

    assert [path for path, _ in transport.calls] == ["/logging/report", "/logging/error-report"]
    report = transport.calls[0][1]
    assert report["clientServiceId"] == "orders-service"
    assert report["clientServiceIp"] == "10.1.1.1"
    assert report["clientServicePort"] == "8080"
    assert report["loggers"] == [
        {"traceId": "T1", "spanId": "S1", "httpStatus": 200},
        {"traceId": "T1", "spanId": "S2", "httpStatus": 500, "exceptionStack": "Traceback"},
    ]
    assert [entry["spanId"] for entry in transport.calls[1][1]["loggers"]] == ["S2"]


def test_flush_failure_falls_back_to_logging(exporter_config, caplog):
    exporter = make_exporter(exporter_config, AdminTransport(status_code=503))

    with caplog.at_level(logging.INFO, logger="span_logger.exporter"):
        exporter._flush([TraceRecord(trace_id="T1", span_id="S1", http_status=200)])

    assert "Failed to export report with 1 log records" in caplog.text
    assert "'traceId': 'T1'" in caplog.text


def test_error_report_failure_only_falls_back_for_error_records(exporter_config, caplog):
    exporter = make_exporter(exporter_config, AdminTransport(failing_paths={"/logging/error-report"}))
    ok = TraceRecord(trace_id="T1", span_id="S1", http_status=200)
    failed = TraceRecord(trace_id="T1", span_id="S2", http_status=500)

    with caplog.at_level(logging.INFO, logger="span_logger.exporter"):
        exporter._flush([ok, failed])

    assert "Failed to export error report with 1 log records" in caplog.text
    assert "Failed to export report" not in caplog.text
    assert "'spanId': 'S2'" in caplog.text
    assert "'spanId': 'S1'" not in caplog.text


def test_publish_after_stop_is_logged(exporter_config, caplog):
    transport = AdminTransport()
    exporter = make_exporter(exporter_config, transport)
    exporter.stop()

    with caplog.at_level(logging.INFO, logger="span_logger.exporter"):
        exporter.publish(TraceRecord(trace_id="T7", span_id="S7"))

    assert exporter._queue.empty()
    assert "record for trace T7 is not reported" in caplog.text
    assert "'traceId': 'T7'" in caplog.text


def test_exporter_flushes_by_batch_size(monkeypatch):
    monkeypatch.setattr("span_logger.exporter.get_host_address", lambda: "10.1.1.1")
    config = SpanLoggerConfig(service_id="orders-service", api_url="http://admin", batch_size=2, flush_interval=30)
    transport = AdminTransport()
    exporter = make_exporter(config, transport)
    exporter.start()
    try:
        exporter.publish(TraceRecord(trace_id="T1", span_id="S1", http_status=200))
        exporter.publish(TraceRecord(trace_id="T1", span_id="S2", http_status=200))
        for _ in range(100):
            if transport.calls:
                break
            time.sleep(0.05)
    finally:
        exporter.stop()
        exporter.join(timeout=5)

    assert [entry["spanId"] for entry in transport.calls[0][1]["loggers"]] == ["S1", "S2"]


def test_publish_drops_when_queue_full(exporter_config, caplog):
    exporter = make_exporter(exporter_config, AdminTransport())

    for index in range(3):
        exporter.publish(TraceRecord(trace_id=f"T{index}"))

    assert exporter._queue.qsize() == 2
    assert "dropping record for trace T2" in caplog.text


def test_exporter_thread_drains_on_stop(monkeypatch):
    monkeypatch.setattr("span_logger.exporter.get_host_address", lambda: "10.1.1.1")
    config = SpanLoggerConfig(service_id="orders-service", api_url="http://admin", batch_size=100, flush_interval=0.2)
    transport = AdminTransport()
    exporter = make_exporter(config, transport)
    exporter.start()

    exporter.publish(TraceRecord(trace_id="T1", span_id="S1", http_status=200))
    exporter.stop()
    exporter.join(timeout=5)

    assert not exporter.is_alive()
    assert transport.calls[0][1]["loggers"][0]["traceId"] == "T1"


def test_trace_logger_capture_request_reraises(config, sink):
    trace_logger = TraceLogger(config, sink=sink)

    with pytest.raises(KeyError):
        with trace_logger.capture_request(RequestSnapshot(uri="/orders/1", method="GET")):
            raise KeyError("missing")

    assert sink.records[0].http_status == 500
    assert trace_logger.exporter is None
    trace_logger.shutdown()


def test_trace_logger_capture_request_records_response(config, sink):
    trace_logger = TraceLogger(config, sink=sink)

    with trace_logger.capture_request(RequestSnapshot(uri="/orders/1", method="GET")) as capture:
        assert capture.record.trace_id == "T1"
        capture.set_response(status_code=204, headers={"x-served-by": "a"})

    assert get_record() is None
    assert sink.records[0].http_status == 204


def test_trace_logger_capture_request_clears_carrier_on_cancellation(config, sink):
    trace_logger = TraceLogger(config, sink=sink)
    seen = []

    async def handle():
        try:
            with trace_logger.capture_request(RequestSnapshot(uri="/orders/1", method="GET")):
                seen.append(get_record().trace_id)
                await asyncio.sleep(3600)
        finally:
            seen.append(get_record())

    async def main():
        task = asyncio.create_task(handle())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(main())

    assert seen == ["T1", None]
    assert len(sink.records) == 1
    assert sink.records[0].http_status == 500
    assert "CancelledError" in sink.records[0].exception_stack
