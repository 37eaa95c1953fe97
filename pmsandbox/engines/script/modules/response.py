"""
Response module for script engine: the read-only `pm.response` accessor.

Body accessors are coroutines so a script awaits them the same way whether the
body is already in memory or came back from pm.sendRequest.
"""

import copy
import json
from http import HTTPStatus
from typing import Any

import httpx

from pmsandbox.models import ContentType, MockResponse


def _reason_phrase(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""


class ResponseAccessor:
    """`pm.response`: status, timing, headers, cookies and decoded body."""

    __slots__ = (
        "_response",
        "code",
        "status",
        "responseTime",
        "contentType",
        "headers",
        "cookies",
    )

    def __init__(self, response: MockResponse) -> None:
        self._response = response
        self.code = response.status_code
        self.status = _reason_phrase(response.status_code)
        self.responseTime = response.response_time_ms
        self.contentType = response.content_type.value
        # case-insensitive, order-preserving
        self.headers = httpx.Headers(list(response.headers.items()))
        self.cookies = list(response.cookies)

    def _raw_text(self) -> str | None:
        body = self._response.body
        if isinstance(body, (bytes, bytearray)):
            return bytes(body).decode("utf-8", errors="replace")
        return None

    async def text(self) -> str:
        raw = self._raw_text()
        if raw is not None:
            return raw
        body = self._response.body
        if body is None:
            return ""
        if isinstance(body, str) and self._response.content_type == ContentType.HTML:
            return body
        return json.dumps(body)

    async def json(self) -> Any:
        """Parsed JSON body. Raises ValueError when the body is not JSON."""
        raw = self._raw_text()
        if raw is None and self._response.content_type == ContentType.JSON:
            return copy.deepcopy(self._response.body)
        if raw is None:
            raw = await self.text()
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Response body is not valid JSON: {e.msg}") from e

    async def body(self) -> Any:
        """Body decoded per content type: parsed JSON, or the raw markup string."""
        if self._response.content_type == ContentType.JSON:
            return await self.json()
        return await self.text()

    def __repr__(self) -> str:
        return f"<Response {self.code} {self.status} ({self.contentType})>"
