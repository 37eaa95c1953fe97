"""
Compilation of test scripts into an awaitable `run_script(pm, console)`.

The script body is wrapped at AST level into an async function so top-level
`await` is legal and line numbers stay those of the submitted source. Every
isolation host compiles with compile_script (RestrictedPython, with a policy that
admits async/await) and runs against build_restricted_globals(), so a script
behaves the same whichever host runs it.

Blocked in restricted globals: open, exec, eval, __import__, compile, getattr, etc.
"""

import ast
import builtins
import operator
from typing import Any

from RestrictedPython import RestrictingNodeTransformer, compile_restricted
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safe_builtins,
    safer_getattr,
)

from pmsandbox.engines.validator import parse_script

SCRIPT_FUNCTION = "run_script"
SCRIPT_PARAMETERS = ("pm", "console")

_EXTRA_BUILTINS = (
    "list", "dict", "set", "frozenset", "tuple", "len", "range", "min", "max", "sum",
    "abs", "sorted", "enumerate", "zip", "any", "all", "reversed", "map", "filter",
    "isinstance", "str", "int", "float", "bool",
)

_MISSING = object()

_INPLACE_OPS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "^=": operator.ixor,
    "|=": operator.ior,
    "@=": operator.imatmul,
}


class ScriptPolicy(RestrictingNodeTransformer):
    """RestrictedPython policy that also admits `async def` and `await`."""

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:
        return self.visit_FunctionDef(node)

    def visit_Await(self, node: ast.Await) -> ast.AST:
        return self.node_contents_visit(node)


def wrap_script(
    tree: ast.Module,
    parameters: tuple[str, ...] = SCRIPT_PARAMETERS,
) -> ast.Module:
    """Move the module body into `async def run_script(<parameters>)`."""
    wrapper = ast.parse(
        f"async def {SCRIPT_FUNCTION}({', '.join(parameters)}):\n    pass\n"
    )
    func = wrapper.body[0]
    assert isinstance(func, ast.AsyncFunctionDef)
    if tree.body:
        func.body = tree.body
    return ast.fix_missing_locations(wrapper)


def compile_script(
    script: str,
    filename: str = "<script>",
    parameters: tuple[str, ...] = SCRIPT_PARAMETERS,
) -> Any:
    """
    Compile script with RestrictedPython. Raises SyntaxError on failure, including
    constructs the restricting policy rejects.

    Returns a code object that defines `run_script` when exec'd.
    """
    tree = wrap_script(parse_script(script, filename), parameters)
    code = compile_restricted(tree, filename, "exec", policy=ScriptPolicy)
    if code is None:
        raise SyntaxError("RestrictedPython: compile failed")
    return code


def guarded_getattr(obj: Any, name: str, default: Any = _MISSING) -> Any:
    """safer_getattr that raises AttributeError for missing attributes."""
    value = safer_getattr(obj, name, _MISSING)
    if value is _MISSING:
        if default is not _MISSING:
            return default
        return getattr(obj, name)
    return value


def inplace_var(op: str, x: Any, y: Any) -> Any:
    func = _INPLACE_OPS.get(op)
    if func is None:
        raise SyntaxError(f"Unsupported augmented assignment: {op}")
    return func(x, y)


def apply_call(f: Any, *args: Any, **kwargs: Any) -> Any:
    return f(*args, **kwargs)


def _make_safe_builtins() -> dict[str, Any]:
    """safe_builtins plus container and iteration helpers."""
    safe = dict(safe_builtins)
    for name in _EXTRA_BUILTINS:
        safe.setdefault(name, getattr(builtins, name))
    return safe


def _make_guard_globals() -> dict[str, Any]:
    """Guards required by RestrictedPython's rewritten bytecode."""
    return {
        "_getattr_": guarded_getattr,
        "_getiter_": default_guarded_getiter,
        "_getitem_": default_guarded_getitem,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": inplace_var,
        "_apply_": apply_call,
        "__metaclass__": type,
    }


def build_restricted_globals() -> dict[str, Any]:
    """Fresh globals for one restricted execution: safe builtins and guards, nothing else."""
    safe = _make_safe_builtins()
    g: dict[str, Any] = {
        "__builtins__": safe,
        "__name__": "script",
    }
    g.update(_make_guard_globals())
    return g


def load_script_function(code: Any, g: dict[str, Any]) -> Any:
    """exec the compiled wrapper into *g* and return `run_script`."""
    exec(code, g)
    return g[SCRIPT_FUNCTION]
