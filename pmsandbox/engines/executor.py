"""
ScriptRunner: validate, then execute on an isolation host and collect the report.

A rejected script raises ScriptValidationError and nothing executes. An accepted
script always yields an ExecutionReport, whichever host ran it.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from pmsandbox.core.channel import ResultChannel, ResultCollector
from pmsandbox.core.config import settings
from pmsandbox.engines.hosts import HostKind, IsolationHost, create_host
from pmsandbox.engines.script import build_surface
from pmsandbox.engines.validator import ValidatorMode, validate_script
from pmsandbox.models import EnvValue, ExecutionReport, MockResponse, ValidationResult

_log = logging.getLogger(__name__)


class ScriptValidationError(ValueError):
    """Raised when the validator rejects a script; carries the ValidationResult."""

    def __init__(self, result: ValidationResult) -> None:
        super().__init__("; ".join(result.messages) or "Script rejected by validator")
        self.result = result


class ScriptRunner:
    """
    run(source, response, environment, ...) -> ExecutionReport

    *host*: a started isolation host. When omitted, one of *host_kind* (default
    SCRIPT_ISOLATION_HOST) is created on first run and owned by the runner.
    """

    def __init__(
        self,
        host: IsolationHost | None = None,
        *,
        host_kind: HostKind | str | None = None,
        mode: ValidatorMode | str | None = None,
        http_allowed_hosts: frozenset[str] | None = None,
        http_timeout: float | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._host = host
        self._owns_host = False
        self.host_kind = HostKind(host_kind or settings.SCRIPT_ISOLATION_HOST)
        self.mode = ValidatorMode(mode or settings.VALIDATOR_MODE)
        self._http_allowed_hosts = (
            http_allowed_hosts
            if http_allowed_hosts is not None
            else settings.script_http_allowed_hosts
        )
        self._http_timeout = (
            http_timeout if http_timeout is not None else settings.SCRIPT_HTTP_TIMEOUT
        )
        self._http_transport = http_transport

    def validate(self, source: str) -> ValidationResult:
        return validate_script(source, self.mode)

    async def _get_host(self) -> IsolationHost:
        if self._host is None:
            self._host = await asyncio.to_thread(create_host, self.host_kind)
            self._owns_host = True
        return self._host

    async def run(
        self,
        source: str,
        response: MockResponse,
        environment: Mapping[str, EnvValue] | None = None,
        *,
        globals_: Mapping[str, EnvValue] | None = None,
        variables: Mapping[str, EnvValue] | None = None,
        collection_variables: Mapping[str, EnvValue] | None = None,
        timeout: float | None = None,
    ) -> ExecutionReport:
        """
        Validate *source*; on acceptance run it against *response* and wait for the
        completion signal. Raises ScriptValidationError on rejection and
        ScriptTimeoutError when the signal is later than *timeout* seconds
        (default SCRIPT_EXEC_TIMEOUT; 0 waits forever).
        """
        result = self.validate(source)
        if not result.is_valid:
            raise ScriptValidationError(result)

        host = await self._get_host()
        channel = ResultChannel()
        surface = build_surface(
            response,
            dict(environment or {}),
            channel,
            globals_=globals_,
            variables=variables,
            collection_variables=collection_variables,
            http_allowed_hosts=self._http_allowed_hosts,
            http_timeout=self._http_timeout,
            http_transport=self._http_transport,
        )
        collector = ResultCollector(channel, surface.environment.snapshot())
        host.execute(source, surface)
        wait_for: Any = timeout if timeout is not None else settings.SCRIPT_EXEC_TIMEOUT
        report = await collector.wait(wait_for)
        _log.debug(
            "script finished on %s host: %d result(s), error=%s",
            host.kind.value,
            len(report.results),
            report.error,
        )
        return report

    def close(self) -> None:
        """Close the host if this runner created it."""
        if self._owns_host and self._host is not None:
            self._host.close()
            self._host = None
            self._owns_host = False
