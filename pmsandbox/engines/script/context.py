"""
ScriptSurface: the `pm` and `console` bindings one script execution receives.

Built fresh per execution from explicit inputs (response, environment snapshot,
variable scopes, result channel); nothing is shared between executions.
"""

import asyncio
import inspect
import logging
from collections.abc import Mapping
from types import SimpleNamespace
from typing import Any

import httpx

from pmsandbox.models import (
    TEST_PASSED_MESSAGE,
    EnvValue,
    MockResponse,
    TestResult,
    TestResultMessage,
    TestStatus,
)

from .modules import (
    Environment,
    ResponseAccessor,
    expect,
    make_env_module,
    make_http_module,
    make_log_module,
    parse_html,
)

_log = logging.getLogger(__name__)


class ScriptSurface:
    """
    Injects pm (test, expect, response, parseHTML, environment, globals,
    collectionVariables, variables, sendRequest) and console into the script.

    Every observable side effect is a message on `reporter`.
    """

    parameter_names = ("pm", "console")

    def __init__(
        self,
        *,
        response: MockResponse,
        reporter: Any,
        environment: Environment | Mapping[str, EnvValue] | None = None,
        globals_: Mapping[str, EnvValue] | None = None,
        variables: Mapping[str, EnvValue] | None = None,
        collection_variables: Mapping[str, EnvValue] | None = None,
        http_allowed_hosts: frozenset[str] | None = None,
        http_timeout: float = 30.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
        log_extra: dict[str, Any] | None = None,
    ) -> None:
        self.response = response
        self.reporter = reporter
        if isinstance(environment, Environment):
            self.environment = environment
        else:
            self.environment = Environment(environment, reporter)

        self._globals = dict(globals_ or {})
        self._variables = dict(variables or {})
        self._collection_variables = dict(collection_variables or {})
        self._http_allowed_hosts = frozenset(http_allowed_hosts or ())
        self._http_timeout = http_timeout
        self.http_transport = http_transport

        self.http = make_http_module(
            reporter=reporter,
            timeout=http_timeout,
            allowed_hosts=self._http_allowed_hosts,
            transport=http_transport,
        )
        self.console = make_log_module(
            reporter=reporter, logger_instance=logger, extra=log_extra
        )
        self._vars = make_env_module(
            environment=self.environment,
            globals_=self._globals,
            variables=self._variables,
            collection_variables=self._collection_variables,
        )

    def test(self, name: str, fn: Any) -> None:
        """Run one synchronous check; report exactly one TestResult, never raise."""
        try:
            outcome = fn()
            if inspect.isawaitable(outcome):
                if inspect.iscoroutine(outcome):
                    outcome.close()
                raise TypeError("Test callback must be synchronous, got an awaitable")
        except asyncio.CancelledError:
            raise
        except BaseException as e:
            result = TestResult(
                name=str(name),
                status=TestStatus.FAIL,
                message=str(e) or type(e).__name__,
            )
        else:
            result = TestResult(
                name=str(name), status=TestStatus.SUCCESS, message=TEST_PASSED_MESSAGE
            )
        self.reporter.send(TestResultMessage(result=result))

    def to_dict(self) -> dict[str, Any]:
        """Keyword arguments for `run_script`: pm and console."""
        pm = SimpleNamespace(
            test=self.test,
            expect=expect,
            response=ResponseAccessor(self.response),
            parseHTML=parse_html,
            **self._vars,
        )
        if self._http_allowed_hosts:
            pm.sendRequest = self.http
        return {"pm": pm, "console": self.console}

    def to_wire(self) -> dict[str, Any]:
        """Plain-data description, enough to rebuild the surface in another context."""
        return {
            "response": self.response.model_dump(),
            "environment": self.environment.snapshot(),
            "globals": dict(self._globals),
            "variables": dict(self._variables),
            "collection_variables": dict(self._collection_variables),
            "http_allowed_hosts": sorted(self._http_allowed_hosts),
            "http_timeout": self._http_timeout,
        }

    @classmethod
    def from_wire(
        cls,
        data: Mapping[str, Any],
        reporter: Any,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ScriptSurface":
        return cls(
            response=MockResponse.model_validate(data["response"]),
            reporter=reporter,
            environment=data.get("environment"),
            globals_=data.get("globals"),
            variables=data.get("variables"),
            collection_variables=data.get("collection_variables"),
            http_allowed_hosts=frozenset(data.get("http_allowed_hosts") or ()),
            http_timeout=data.get("http_timeout", 30.0),
            http_transport=http_transport,
        )

    async def aclose(self) -> None:
        """Release per-execution resources (the sendRequest client)."""
        await self.http.aclose()


def build_surface(
    response: MockResponse,
    environment: Environment | Mapping[str, EnvValue] | None,
    reporter: Any,
    **kwargs: Any,
) -> ScriptSurface:
    """Construct the capability surface for one execution."""
    return ScriptSurface(
        response=response, reporter=reporter, environment=environment, **kwargs
    )
