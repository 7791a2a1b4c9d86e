from typing import Optional

import httpx


class LoggingAdminService:
    """Client for the logging admin that stores reported records."""

    REPORT_PATH = "/logging/report"
    ERROR_REPORT_PATH = "/logging/error-report"

    def __init__(self, api_url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.base_url = api_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def send_logs(self, payload: dict) -> None:
        await self._call("POST", self.REPORT_PATH, json=payload)

    async def send_error_logs(self, payload: dict) -> None:
        await self._call("POST", self.ERROR_REPORT_PATH, json=payload)

    async def _call(self, method: str, path: str, **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
            return response
