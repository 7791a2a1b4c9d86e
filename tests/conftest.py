"""Pytest configuration and fixtures."""

from typing import List

import pytest

from span_logger.config import SpanLoggerConfig
from span_logger.context import remove_record
from span_logger.generators import SpanGenerator, TraceGenerator
from span_logger.models import TraceRecord


class ListSink:
    def __init__(self) -> None:
        self.records: List[TraceRecord] = []

    def publish(self, record: TraceRecord) -> None:
        self.records.append(record)


class SequenceTraceGenerator(TraceGenerator):
    def __init__(self, prefix: str = "T") -> None:
        self.prefix = prefix
        self.count = 0

    def create_trace_id(self) -> str:
        self.count += 1
        return f"{self.prefix}{self.count}"


class SequenceSpanGenerator(SpanGenerator):
    def __init__(self, prefix: str = "S") -> None:
        self.prefix = prefix
        self.count = 0

    def create_span_id(self) -> str:
        self.count += 1
        return f"{self.prefix}{self.count}"


@pytest.fixture(autouse=True)
def clear_carrier():
    remove_record()
    yield
    remove_record()


@pytest.fixture
def sink() -> ListSink:
    return ListSink()


@pytest.fixture
def config() -> SpanLoggerConfig:
    return SpanLoggerConfig(
        service_id="orders-service",
        service_port=8080,
        ignore_paths=("/health", "/static/**"),
        trace_generator=SequenceTraceGenerator(),
        span_generator=SequenceSpanGenerator(),
        redact_keys=("authorization",),
    )
