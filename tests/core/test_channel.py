"""Unit tests for core.channel: ResultChannel, RelayChannel, ResultCollector."""

import asyncio

import pytest

from pmsandbox.core.channel import (
    RelayChannel,
    ResultChannel,
    ResultCollector,
    ScriptTimeoutError,
)
from pmsandbox.models import (
    ConsoleMessage,
    DoneMessage,
    ErrorMessage,
    SetEnvMessage,
    TestResult,
    TestResultMessage,
    TestStatus,
    decode_message,
    encode_message,
)


def _run(coro) -> object:
    return asyncio.run(coro)


def _result(name: str, status: TestStatus = TestStatus.SUCCESS) -> TestResultMessage:
    return TestResultMessage(result=TestResult(name=name, status=status, message="m"))


class TestResultChannel:
    def test_fan_out_in_order(self) -> None:
        channel = ResultChannel()
        a: list = []
        b: list = []
        channel.subscribe(a.append)
        channel.subscribe(b.append)
        channel.send(DoneMessage())
        assert a == b == [DoneMessage()]

    def test_unsubscribe(self) -> None:
        channel = ResultChannel()
        seen: list = []
        unsubscribe = channel.subscribe(seen.append)
        unsubscribe()
        unsubscribe()  # idempotent
        channel.send(DoneMessage())
        assert seen == []

    def test_broken_listener_does_not_stop_others(self) -> None:
        channel = ResultChannel()
        seen: list = []

        def broken(_: object) -> None:
            raise RuntimeError("listener bug")

        channel.subscribe(broken)
        channel.subscribe(seen.append)
        channel.send(DoneMessage())
        assert seen == [DoneMessage()]


class TestRelayChannel:
    def test_posts_plain_dicts(self) -> None:
        posted: list = []
        relay = RelayChannel(posted.append)
        relay.send(SetEnvMessage(key="k", value=1))
        assert posted == [{"type": "setEnv", "key": "k", "value": 1}]

    def test_wire_format(self) -> None:
        assert encode_message(ErrorMessage(message="x")) == {"type": "error", "message": "x"}
        assert encode_message(_result("t")) == {
            "type": "testResult",
            "result": {"name": "t", "status": "success", "message": "m"},
        }
        assert encode_message(ConsoleMessage(level="warn", args=["a"])) == {
            "type": "console",
            "level": "warn",
            "args": ["a"],
        }
        assert decode_message({"type": "done"}) == DoneMessage()

    def test_decode_rejects_unknown_type(self) -> None:
        with pytest.raises(ValueError):
            decode_message({"type": "nope"})


class TestResultCollector:
    def test_accumulates_until_done(self) -> None:
        async def run() -> object:
            channel = ResultChannel()
            collector = ResultCollector(channel, {"a": "1"})
            channel.send(_result("one"))
            channel.send(SetEnvMessage(key="b", value="2"))
            channel.send(ConsoleMessage(args=["hi"]))
            channel.send(ErrorMessage(message="first"))
            channel.send(ErrorMessage(message="second"))
            channel.send(_result("two", TestStatus.FAIL))
            channel.send(DoneMessage())
            return await collector.wait(1)

        report = _run(run())
        assert [r.name for r in report.results] == ["one", "two"]
        assert report.environment == {"a": "1", "b": "2"}
        assert report.console[0].args == ["hi"]
        assert report.error == "first"
        assert report.completed
        assert report.passed is False

    def test_wait_times_out(self) -> None:
        async def run() -> None:
            await ResultCollector(ResultChannel()).wait(0.01)

        with pytest.raises(ScriptTimeoutError):
            _run(run())

    def test_stops_listening_after_wait(self) -> None:
        async def run() -> object:
            channel = ResultChannel()
            collector = ResultCollector(channel)
            channel.send(DoneMessage())
            report = await collector.wait(1)
            channel.send(_result("late"))
            return report

        assert _run(run()).results == []
