"""Unit tests for ScriptRunner (engines.executor)."""

import asyncio
from unittest.mock import MagicMock, patch

import httpx
import pytest

from pmsandbox.core.channel import ScriptTimeoutError
from pmsandbox.engines.executor import ScriptRunner, ScriptValidationError
from pmsandbox.engines.hosts import CompartmentHost, DirectHost, HostKind
from pmsandbox.models import ContentType, MockResponse, TestStatus

SCENARIO_SCRIPT = (
    'pm.test("code is 200", lambda: pm.expect(pm.response.code).to.equal(200))\n'
    "r = await pm.response.json()\n"
    'pm.test("has message", lambda: pm.expect(r).to.have.property("message", "Success"))\n'
)

SCENARIO_RESPONSE = MockResponse(
    status_code=200, content_type=ContentType.JSON, body={"message": "Success"}
)


def _run(coro) -> object:
    return asyncio.run(coro)


@pytest.mark.parametrize("mode", ["deny", "allow"])
def test_end_to_end_scenario(mode: str) -> None:
    runner = ScriptRunner(CompartmentHost(), mode=mode)
    assert runner.validate(SCENARIO_SCRIPT).is_valid
    report = _run(runner.run(SCENARIO_SCRIPT, SCENARIO_RESPONSE))
    assert [r.status for r in report.results] == [TestStatus.SUCCESS, TestStatus.SUCCESS]
    assert report.passed
    assert report.error is None


def test_rejection_scenario_runs_nothing() -> None:
    host = MagicMock()
    runner = ScriptRunner(host)
    with pytest.raises(ScriptValidationError) as exc_info:
        _run(runner.run('fetch("/x")', SCENARIO_RESPONSE))
    result = exc_info.value.result
    assert result.is_valid is False
    assert len(result.diagnostics) == 1
    assert "fetch" in result.diagnostics[0].message
    host.execute.assert_not_called()


def test_environment_round_trip() -> None:
    src = (
        'pm.environment.set("k", "v")\n'
        'pm.test("reads back", lambda: pm.expect(pm.environment.get("k")).to.equal("v"))\n'
    )
    report = _run(ScriptRunner(DirectHost()).run(src, MockResponse(), {"a": 1}))
    assert [(m.key, m.value) for m in report.environment_changes] == [("k", "v")]
    assert report.environment == {"a": 1, "k": "v"}
    assert report.results[0].status == TestStatus.SUCCESS


def test_variable_scopes_are_passed_through() -> None:
    src = (
        'pm.test("g", lambda: pm.expect(pm.globals.get("g")).to.equal("G"))\n'
        'pm.test("v", lambda: pm.expect(pm.variables.get("c")).to.equal("C"))\n'
    )
    report = _run(
        ScriptRunner(DirectHost()).run(
            src,
            MockResponse(),
            globals_={"g": "G"},
            collection_variables={"c": "C"},
        )
    )
    assert report.passed


def test_timeout_when_done_never_arrives() -> None:
    host = MagicMock()  # accepts the job and never reports
    runner = ScriptRunner(host)
    with pytest.raises(ScriptTimeoutError, match="timed out"):
        _run(runner.run("x = 1", MockResponse(), timeout=0.05))


@patch("pmsandbox.engines.executor.settings")
def test_defaults_come_from_settings(mock_settings: MagicMock) -> None:
    mock_settings.SCRIPT_ISOLATION_HOST = "direct"
    mock_settings.VALIDATOR_MODE = "allow"
    mock_settings.script_http_allowed_hosts = frozenset()
    mock_settings.SCRIPT_HTTP_TIMEOUT = 5.0
    mock_settings.SCRIPT_EXEC_TIMEOUT = 10
    runner = ScriptRunner()
    assert runner.host_kind == HostKind.DIRECT
    assert runner.mode.value == "allow"
    report = _run(runner.run('pm.test("t", lambda: None)', MockResponse()))
    assert report.passed
    runner.close()


def test_send_request_through_runner() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": 9})

    src = (
        'res = await pm.sendRequest("https://api.example.com/item")\n'
        "data = await res.json()\n"
        'pm.test("id", lambda: pm.expect(data["id"]).to.equal(9))\n'
    )
    runner = ScriptRunner(
        CompartmentHost(),
        http_allowed_hosts=frozenset({"api.example.com"}),
        http_transport=httpx.MockTransport(handler),
    )
    with patch("pmsandbox.engines.script.modules.http._is_private_ip", return_value=False):
        report = _run(runner.run(src, MockResponse()))
    assert report.passed, report


def test_send_request_failure_is_a_console_error() -> None:
    src = (
        'res = await pm.sendRequest("https://blocked.example.org/")\n'
        'pm.test("none", lambda: pm.expect(res).to.be.null)\n'
    )
    runner = ScriptRunner(
        DirectHost(),
        http_allowed_hosts=frozenset({"api.example.com"}),
        http_transport=httpx.MockTransport(lambda r: httpx.Response(200)),
    )
    with patch("pmsandbox.engines.script.modules.http._is_private_ip", return_value=False):
        report = _run(runner.run(src, MockResponse()))
    assert report.error is None
    assert report.passed
    assert report.console[0].level == "error"


@pytest.mark.parametrize("mode", ["deny", "allow"])
def test_host_escape_scripts_are_rejected(mode: str) -> None:
    host = MagicMock()
    runner = ScriptRunner(host, mode=mode)
    for src in (
        "async def g():\n    pass\nb = g().cr_frame.f_builtins\nb['__import__']('os').getcwd()",
        "counts = dict(n=0)\ncounts['n'] += 1",
        "label = 'code {}'.format(pm.response.code)",
    ):
        with pytest.raises(ScriptValidationError):
            _run(runner.run(src, SCENARIO_RESPONSE))
    host.execute.assert_not_called()


def test_system_exit_is_rejected_before_running() -> None:
    host = MagicMock()
    with pytest.raises(ScriptValidationError) as exc_info:
        _run(
            ScriptRunner(host).run(
                'pm.test("first", lambda: None)\nraise SystemExit(3)', MockResponse()
            )
        )
    assert exc_info.value.result.messages == ["Invalid identifier 'SystemExit' detected."]
    host.execute.assert_not_called()
