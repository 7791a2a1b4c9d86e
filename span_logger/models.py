from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Optional

_PAYLOAD_KEYS = {
    "trace_id": "traceId",
    "span_id": "spanId",
    "parent_span_id": "parentSpanId",
    "request_ip": "requestIp",
    "request_uri": "requestUri",
    "request_method": "requestMethod",
    "request_param": "requestParam",
    "request_body": "requestBody",
    "request_headers": "requestHeaders",
    "response_headers": "responseHeaders",
    "response_body": "responseBody",
    "http_status": "httpStatus",
    "start_time": "startTime",
    "end_time": "endTime",
    "time_consuming": "timeConsuming",
    "service_id": "serviceId",
    "service_ip": "serviceIp",
    "service_port": "servicePort",
    "exception_stack": "exceptionStack",
}


@dataclass(slots=True)
class TraceRecord:
    trace_id: Optional[str] = None
    span_id: Optional[str] = None
    parent_span_id: Optional[str] = None
    request_ip: Optional[str] = None
    request_uri: Optional[str] = None
    request_method: Optional[str] = None
    request_param: Optional[str] = None
    request_body: Optional[str] = None
    request_headers: Optional[str] = None
    response_headers: Optional[str] = None
    response_body: Optional[str] = None
    http_status: Optional[int] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    time_consuming: Optional[int] = None
    service_id: Optional[str] = None
    service_ip: Optional[str] = None
    service_port: Optional[str] = None
    exception_stack: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {_PAYLOAD_KEYS[key]: value for key, value in asdict(self).items() if value is not None}


@dataclass(slots=True)
class RequestSnapshot:
    """Framework-neutral view of an inbound request."""

    uri: str
    method: str
    ip: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    body: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass(slots=True)
class ResponseSnapshot:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
