"""
HTTP module for script engine: pm.sendRequest(options).

Uses httpx with timeout. Outbound requests are restricted to hosts listed in
``SCRIPT_HTTP_ALLOWED_HOSTS`` and never reach private/internal addresses (SSRF).
Failures are not raised into the script: they are logged, reported on the result
channel as a console error, and the call resolves to None.
"""

import ipaddress
import logging
import socket
import time
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

import httpx

from pmsandbox.engines.script.modules.response import ResponseAccessor
from pmsandbox.models import ConsoleMessage, ContentType, MockResponse

_log = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 30.0

_BLOCKED_NETWORKS = [
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),  # link-local / cloud metadata
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),  # IPv6 private
    ipaddress.ip_network("fe80::/10"),  # IPv6 link-local
]


def _is_private_ip(host: str) -> bool:
    """Return True if *host* resolves to a private/reserved IP address."""
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        try:
            resolved = socket.getaddrinfo(host, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
            addr = ipaddress.ip_address(resolved[0][4][0])
        except (socket.gaierror, OSError, IndexError):
            return True  # cannot resolve → block
    return any(addr in net for net in _BLOCKED_NETWORKS)


def _host_matches(hostname: str, allowed_hosts: frozenset[str]) -> bool:
    """Check if *hostname* is permitted by the allow-list.

    Supported patterns:
    - ``*``             → allow all public hosts
    - ``api.example.com`` → exact match
    - ``*.example.com``   → any subdomain of example.com (not example.com itself)
    """
    if "*" in allowed_hosts:
        return True
    if hostname in allowed_hosts:
        return True
    for pattern in allowed_hosts:
        if pattern.startswith("*.") and hostname.endswith(pattern[1:]):
            return True
    return False


def _check_url_allowed(url: str, allowed_hosts: frozenset[str]) -> None:
    """Raise ``PermissionError`` when the URL target is not allowed."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise PermissionError(f"URL scheme '{parsed.scheme}' is not allowed; only http/https.")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise PermissionError("URL has no hostname.")

    if _is_private_ip(hostname):
        raise PermissionError(f"Requests to private/internal addresses are blocked: {hostname}")

    if not _host_matches(hostname, allowed_hosts):
        raise PermissionError(
            f"Host '{hostname}' is not in SCRIPT_HTTP_ALLOWED_HOSTS. "
            f"Allowed: {', '.join(sorted(allowed_hosts)) or '(none)'}."
        )


def _request_kwargs(options: str | Mapping[str, Any]) -> tuple[str, str, dict[str, Any]]:
    """Postman-style request options -> (method, url, httpx kwargs)."""
    if isinstance(options, str):
        return "GET", options, {}
    if not isinstance(options, Mapping) or not options.get("url"):
        raise ValueError("sendRequest needs a URL string or a mapping with 'url'.")

    method = str(options.get("method") or "GET").upper()
    kwargs: dict[str, Any] = {}
    headers = options.get("headers", options.get("header"))
    if isinstance(headers, Mapping):
        kwargs["headers"] = {str(k): str(v) for k, v in headers.items()}
    elif isinstance(headers, list):
        # [{"key": ..., "value": ...}]
        kwargs["headers"] = [(str(h["key"]), str(h["value"])) for h in headers]

    body = options.get("body")
    if isinstance(body, Mapping) and body.get("mode") == "raw":
        kwargs["content"] = str(body.get("raw", ""))
    elif isinstance(body, (str, bytes)):
        kwargs["content"] = body
    if "json" in options:
        kwargs["json"] = options["json"]
    return method, str(options["url"]), kwargs


def _to_mock_response(resp: httpx.Response, elapsed_ms: int) -> MockResponse:
    ct = resp.headers.get("content-type", "")
    return MockResponse(
        body=resp.content,
        content_type=ContentType.JSON if "json" in ct else ContentType.HTML,
        headers=dict(resp.headers.items()),
        cookies=resp.headers.get_list("set-cookie"),
        status_code=resp.status_code,
        response_time_ms=elapsed_ms,
    )


class _HttpModule:
    """`pm.sendRequest`: one httpx.AsyncClient reused for the lifetime of a script
    execution, closed by the isolation host when the execution ends."""

    __slots__ = ("_client", "_hosts", "_timeout", "_reporter", "_transport")

    def __init__(
        self,
        *,
        reporter: Any,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        allowed_hosts: frozenset[str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._reporter = reporter
        self._timeout = timeout
        self._hosts = allowed_hosts if allowed_hosts is not None else frozenset()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def __call__(self, options: str | Mapping[str, Any]) -> ResponseAccessor | None:
        try:
            method, url, kwargs = _request_kwargs(options)
            _check_url_allowed(url, self._hosts)
            started = time.perf_counter()
            resp = await self._get_client().request(method, url, **kwargs)
            elapsed_ms = int((time.perf_counter() - started) * 1000)
        except (httpx.HTTPError, PermissionError, ValueError) as e:
            _log.warning("sendRequest failed: %s", e)
            self._reporter.send(
                ConsoleMessage(level="error", args=[f"sendRequest failed: {e}"])
            )
            return None
        return ResponseAccessor(_to_mock_response(resp, elapsed_ms))

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            except httpx.HTTPError as e:
                _log.warning("sendRequest client close failed: %s", e)
            self._client = None


def make_http_module(
    *,
    reporter: Any,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    allowed_hosts: frozenset[str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> _HttpModule:
    """Build the ``sendRequest`` callable.

    *allowed_hosts*: parsed from ``SCRIPT_HTTP_ALLOWED_HOSTS``.
    Empty set means **no** outbound HTTP is permitted from scripts.
    """
    return _HttpModule(
        reporter=reporter, timeout=timeout, allowed_hosts=allowed_hosts, transport=transport
    )
