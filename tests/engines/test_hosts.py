"""Isolation hosts: every host must report the same outcomes for the same script."""

import asyncio
from collections.abc import Generator

import pytest

from pmsandbox.core.channel import ResultChannel, ResultCollector
from pmsandbox.engines.hosts import (
    CompartmentHost,
    DirectHost,
    EmbeddedHost,
    HostKind,
    HostPool,
    WorkerHost,
    create_host,
)
from pmsandbox.engines.script import build_surface
from pmsandbox.models import ContentType, ExecutionReport, MockResponse, TestStatus

RESPONSE = MockResponse(
    status_code=200,
    content_type=ContentType.JSON,
    body={"message": "Success", "items": [1, 2, 3]},
)

SCRIPT = (
    'pm.environment.set("seen", "yes")\n'
    'pm.test("code is 200", lambda: pm.expect(pm.response.code).to.equal(200))\n'
    "r = await pm.response.json()\n"
    'pm.test("has message", lambda: pm.expect(r).to.have.property("message", "Success"))\n'
    'pm.test("wrong message", lambda: pm.expect(r["message"]).to.equal("Nope"))\n'
    "total = 0\n"
    'for n in r["items"]:\n'
    "    total += n\n"
    'pm.test("sum", lambda: pm.expect(total).to.equal(6))\n'
    'console.log("seen", pm.environment.get("seen"))\n'
)


def _run(coro) -> object:
    return asyncio.run(coro)


async def _execute(
    host: object,
    source: str,
    response: MockResponse = RESPONSE,
    environment: dict | None = None,
) -> ExecutionReport:
    channel = ResultChannel()
    surface = build_surface(response, dict(environment or {}), channel)
    collector = ResultCollector(channel, surface.environment.snapshot())
    host.execute(source, surface)  # type: ignore[attr-defined]
    return await collector.wait(20)


@pytest.fixture(scope="module")
def hosts() -> Generator[dict[HostKind, object], None, None]:
    started = {kind: create_host(kind) for kind in HostKind}
    yield started
    for host in started.values():
        host.close()


ALL_KINDS = list(HostKind)


@pytest.mark.parametrize("kind", ALL_KINDS)
def test_end_to_end_report(hosts: dict, kind: HostKind) -> None:
    report = _run(_execute(hosts[kind], SCRIPT, environment={"base": "1"}))
    assert report.completed
    assert report.error is None
    assert [(r.name, r.status) for r in report.results] == [
        ("code is 200", TestStatus.SUCCESS),
        ("has message", TestStatus.SUCCESS),
        ("wrong message", TestStatus.FAIL),
        ("sum", TestStatus.SUCCESS),
    ]
    assert report.results[2].message == "expected 'Success' to equal 'Nope'"
    assert [(c.key, c.value) for c in report.environment_changes] == [("seen", "yes")]
    assert report.environment == {"base": "1", "seen": "yes"}
    assert report.console[0].args == ["seen", "yes"]


EQUIVALENCE_SCRIPTS = [
    SCRIPT,
    # refused by the restricted compiler before anything runs
    "pm.test('before', lambda: None)\ncounts = {'n': 0}\ncounts['n'] += 1\n",
    # refused by the attribute guard after the first test
    "pm.test('before', lambda: None)\n"
    "label = 'code {}'.format(pm.response.code)\n"
    "pm.test('after', lambda: None)\n",
    "async def g():\n    pass\nb = g().cr_frame.f_builtins\n",
]


@pytest.mark.parametrize("source", EQUIVALENCE_SCRIPTS)
def test_hosts_are_equivalent(hosts: dict, source: str) -> None:
    outcomes = {}
    for kind in ALL_KINDS:
        report = _run(_execute(hosts[kind], source))
        outcomes[kind] = ([(r.status, r.message) for r in report.results], report.error)
    first = outcomes[ALL_KINDS[0]]
    assert all(o == first for o in outcomes.values()), outcomes


def test_restricted_refusals_are_reported_as_errors(hosts: dict) -> None:
    aug = _run(_execute(hosts[HostKind.DIRECT], EQUIVALENCE_SCRIPTS[1]))
    assert aug.results == []
    assert aug.error is not None and aug.error.startswith("SyntaxError")
    fmt = _run(_execute(hosts[HostKind.WORKER], EQUIVALENCE_SCRIPTS[2]))
    assert [r.name for r in fmt.results] == ["before"]
    assert fmt.error is not None and fmt.error.startswith("NotImplementedError")


@pytest.mark.parametrize("kind", ALL_KINDS)
@pytest.mark.parametrize("exc", ["SystemExit", "KeyboardInterrupt", "GeneratorExit"])
def test_interpreter_exit_is_contained(hosts: dict, kind: HostKind, exc: str) -> None:
    src = f'pm.test("first", lambda: None)\nraise {exc}(3)\npm.test("never", lambda: None)'
    report = _run(_execute(hosts[kind], src))
    assert [r.name for r in report.results] == ["first"]
    assert report.error == f"{exc}: 3"
    assert report.completed
    assert hosts[kind].is_alive()


@pytest.mark.parametrize("kind", ALL_KINDS)
def test_interpreter_exit_inside_test_is_a_failure(hosts: dict, kind: HostKind) -> None:
    src = (
        "def leave():\n"
        "    raise SystemExit(2)\n"
        'pm.test("exits", leave)\n'
        'pm.test("after", lambda: None)\n'
    )
    report = _run(_execute(hosts[kind], src))
    assert [(r.name, r.status) for r in report.results] == [
        ("exits", TestStatus.FAIL),
        ("after", TestStatus.SUCCESS),
    ]
    assert report.error is None


@pytest.mark.parametrize("kind", ALL_KINDS)
def test_uncaught_error_after_results(hosts: dict, kind: HostKind) -> None:
    src = 'pm.test("one", lambda: None)\nraise ValueError("boom")\npm.test("never", lambda: None)'
    report = _run(_execute(hosts[kind], src))
    assert [r.name for r in report.results] == ["one"]
    assert report.error == "ValueError: boom"
    assert report.completed


@pytest.mark.parametrize("kind", ALL_KINDS)
def test_name_error_is_reported(hosts: dict, kind: HostKind) -> None:
    report = _run(_execute(hosts[kind], "x = not_defined_anywhere"))
    assert report.error == "NameError: name 'not_defined_anywhere' is not defined"


@pytest.mark.parametrize("kind", ALL_KINDS)
def test_each_execution_gets_fresh_scope(hosts: dict, kind: HostKind) -> None:
    _run(_execute(hosts[kind], "counter = 1"))
    report = _run(_execute(hosts[kind], "console.log(counter)"))
    assert report.error is not None
    assert "counter" in report.error


@pytest.mark.parametrize("kind", ALL_KINDS)
def test_html_body(hosts: dict, kind: HostKind) -> None:
    response = MockResponse(
        content_type=ContentType.HTML, body=b"<html><body><h1>Hello</h1></body></html>"
    )
    src = (
        "doc = pm.parseHTML(await pm.response.text())\n"
        'pm.test("heading", lambda: pm.expect(doc.querySelector("h1").textContent).to.equal("Hello"))\n'
    )
    report = _run(_execute(hosts[kind], src, response=response))
    assert [r.status for r in report.results] == [TestStatus.SUCCESS]


class TestContract:
    def test_worker_execute_before_start_raises(self) -> None:
        with pytest.raises(RuntimeError, match="before start"):
            WorkerHost().execute("x = 1", None)  # type: ignore[arg-type]

    def test_worker_handshake(self) -> None:
        host = WorkerHost()
        assert host.is_alive() is False
        host.start()
        try:
            assert host.is_alive()
            host.start()  # idempotent
            assert host.is_alive()
        finally:
            host.close()
        assert host.is_alive() is False

    def test_closed_in_process_host_refuses(self) -> None:
        for host in (DirectHost(), CompartmentHost()):
            host.close()
            with pytest.raises(RuntimeError, match="closed"):
                host.execute("x = 1", None)  # type: ignore[arg-type]

    def test_embedded_starts_on_demand(self) -> None:
        host = EmbeddedHost()
        try:
            report = _run(_execute(host, 'pm.test("t", lambda: None)'))
            assert report.results[0].status == TestStatus.SUCCESS
            assert host.is_alive()
        finally:
            host.close()

    def test_create_host_unknown_kind(self) -> None:
        with pytest.raises(ValueError):
            create_host("iframe")

    def test_create_host_kinds(self) -> None:
        host = create_host("direct")
        assert isinstance(host, DirectHost)
        assert host.kind == HostKind.DIRECT


class TestHostPool:
    def test_reuses_live_host(self) -> None:
        pool = HostPool()
        try:
            assert pool.get("compartment") is pool.get(HostKind.COMPARTMENT)
            assert pool.stats() == {"compartment": True}
        finally:
            pool.close()

    def test_replaces_dead_host(self) -> None:
        pool = HostPool()
        try:
            first = pool.get(HostKind.DIRECT)
            first.close()
            second = pool.get(HostKind.DIRECT)
            assert second is not first
            assert second.is_alive()
        finally:
            pool.close()
