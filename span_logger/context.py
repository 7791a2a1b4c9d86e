from contextvars import ContextVar
from typing import Optional

from .models import TraceRecord

_record_var: ContextVar[Optional[TraceRecord]] = ContextVar("span_logger_record", default=None)


def get_record() -> Optional[TraceRecord]:
    return _record_var.get()


def set_record(record: TraceRecord) -> None:
    _record_var.set(record)


def remove_record() -> None:
    _record_var.set(None)


def get_trace_id() -> Optional[str]:
    record = _record_var.get()
    return record.trace_id if record else None


def get_span_id() -> Optional[str]:
    record = _record_var.get()
    return record.span_id if record else None
