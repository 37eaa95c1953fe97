"""Unit tests for engines.script.sandbox."""

import ast
import asyncio

import pytest

from pmsandbox.engines.script.sandbox import (
    build_restricted_globals,
    compile_script,
    guarded_getattr,
    inplace_var,
    load_script_function,
    wrap_script,
)
from pmsandbox.engines.validator import parse_script


def _run(coro) -> object:
    return asyncio.run(coro)


class TestWrapScript:
    def test_body_moves_into_async_function(self) -> None:
        tree = wrap_script(parse_script("x = 1\ny = 2"))
        func = tree.body[0]
        assert isinstance(func, ast.AsyncFunctionDef)
        assert func.name == "run_script"
        assert [a.arg for a in func.args.args] == ["pm", "console"]
        assert len(func.body) == 2

    def test_line_numbers_preserved(self) -> None:
        tree = wrap_script(parse_script("\n\nz = 3"))
        assert tree.body[0].body[0].lineno == 3

    def test_empty_script_gets_pass(self) -> None:
        tree = wrap_script(parse_script(""))
        assert isinstance(tree.body[0].body[0], ast.Pass)


class TestCompileScript:
    def test_compile_simple(self) -> None:
        assert compile_script("x = 1") is not None

    def test_compile_list_comp(self) -> None:
        assert compile_script("result = [x * 2 for x in [1, 2, 3]]") is not None

    def test_compile_await(self) -> None:
        assert compile_script("body = await pm.response.text()") is not None

    def test_compile_syntax_error(self) -> None:
        with pytest.raises(SyntaxError):
            compile_script("def f(  ")

    def test_private_attribute_rejected_by_policy(self) -> None:
        with pytest.raises(SyntaxError):
            compile_script("x = pm.__class__")


class TestBuildRestrictedGlobals:
    def test_includes_builtins_and_guards(self) -> None:
        g = build_restricted_globals()
        assert "__builtins__" in g
        assert "_getattr_" in g
        assert "_getiter_" in g
        assert "_write_" in g
        assert "_inplacevar_" in g

    def test_no_dangerous_builtins(self) -> None:
        safe = build_restricted_globals()["__builtins__"]
        for name in ("open", "exec", "eval", "__import__", "compile", "getattr"):
            assert name not in safe
        assert "list" in safe
        assert "enumerate" in safe

    def test_fresh_per_call(self) -> None:
        assert build_restricted_globals() is not build_restricted_globals()


class TestRestrictedExecution:
    def _call(self, source: str, **kwargs: object) -> dict:
        seen: dict = {}

        class Sink:
            def log(self, value: object) -> None:
                seen["value"] = value

        fn = load_script_function(compile_script(source), build_restricted_globals())
        _run(fn(pm=kwargs.get("pm"), console=Sink()))
        return seen

    def test_runs_loops_and_augmented_assignment(self) -> None:
        seen = self._call("total = 0\nfor n in [1, 2, 3]:\n    total += n\nconsole.log(total)")
        assert seen["value"] == 6

    def test_dict_and_list_writes(self) -> None:
        seen = self._call("d = {}\nd['a'] = [1]\nd['a'].append(2)\nconsole.log(d)")
        assert seen["value"] == {"a": [1, 2]}

    def test_open_is_not_defined(self) -> None:
        with pytest.raises(NameError, match="open"):
            self._call("open('/etc/passwd')")

    def test_missing_attribute_raises(self) -> None:
        with pytest.raises(AttributeError):
            self._call("console.log(console.nope)")

    def test_run_script_is_coroutine_function(self) -> None:
        fn = load_script_function(compile_script("x = 1"), build_restricted_globals())
        coro = fn(pm=None, console=None)
        assert asyncio.iscoroutine(coro)
        _run(coro)

    def test_augmented_item_assignment_refused_at_compile(self) -> None:
        with pytest.raises(SyntaxError, match="Augmented assignment"):
            compile_script("counts = {'n': 0}\ncounts['n'] += 1")

    def test_str_format_refused_at_runtime(self) -> None:
        with pytest.raises(NotImplementedError):
            self._call("console.log('code {}'.format(200))")

    def test_frame_attributes_refused_at_compile(self) -> None:
        with pytest.raises(SyntaxError):
            compile_script("async def g():\n    pass\nb = g().cr_frame")


class TestGuards:
    def test_guarded_getattr_missing_raises(self) -> None:
        with pytest.raises(AttributeError):
            guarded_getattr(object(), "missing")

    def test_guarded_getattr_default(self) -> None:
        assert guarded_getattr(object(), "missing", 5) == 5

    def test_guarded_getattr_private_blocked(self) -> None:
        with pytest.raises(AttributeError):
            guarded_getattr(object(), "__class__")

    def test_inplace_var(self) -> None:
        assert inplace_var("+=", 1, 2) == 3
        assert inplace_var("*=", [1], 2) == [1, 1]
