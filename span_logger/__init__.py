from .config import SpanLoggerConfig
from .context import get_record, get_span_id, get_trace_id
from .generators import SpanGenerator, TraceGenerator
from .interceptor import LoggingInterceptor
from .logger import TraceCapture, TraceLogger
from .models import RequestSnapshot, ResponseSnapshot, TraceRecord
from .propagation import inject_trace_headers, traced_async_client, traced_client
from .fastapi_integration import TraceLoggingMiddleware, setup_observability

__all__ = [
    "SpanLoggerConfig",
    "TraceGenerator",
    "SpanGenerator",
    "TraceRecord",
    "RequestSnapshot",
    "ResponseSnapshot",
    "LoggingInterceptor",
    "TraceLogger",
    "TraceCapture",
    "TraceLoggingMiddleware",
    "setup_observability",
    "get_record",
    "get_trace_id",
    "get_span_id",
    "inject_trace_headers",
    "traced_client",
    "traced_async_client",
]
