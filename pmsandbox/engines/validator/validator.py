"""
Static analysis of test scripts before execution.

The script is parsed with top-level `await` permitted, every locally declared name is
collected, then one traversal in source order checks identifier references, call
targets, attribute access, imports, augmented item assignment, `async for`/`async with`
and `while True:` loops against the mode's policy.

Usage::

    result = validate_script("fetch('/x')")
    # result.is_valid is False; result.diagnostics[0].message names 'fetch'

The check is flow-insensitive: a name declared anywhere in the script counts as
declared everywhere.
"""

import ast
import logging

from pmsandbox.engines.validator.policies import (
    BLOCKED_ATTRIBUTES,
    SURFACE_ROOT,
    ValidatorMode,
    ValidatorPolicy,
    intrinsic_members,
    policy_for,
)
from pmsandbox.models import Diagnostic, DiagnosticRange, Severity, ValidationResult

_log = logging.getLogger(__name__)

SCRIPT_FILENAME = "<script>"


def parse_script(source: str, filename: str = SCRIPT_FILENAME) -> ast.Module:
    """Parse script source; `await` is legal at the top level. Raises SyntaxError."""
    return compile(
        source,
        filename,
        "exec",
        flags=ast.PyCF_ONLY_AST | ast.PyCF_ALLOW_TOP_LEVEL_AWAIT,
        dont_inherit=True,
    )


def collect_declarations(tree: ast.AST) -> set[str]:
    """Every name the script binds anywhere: assignments, defs, parameters, handlers."""
    declared: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Store):
            declared.add(node.id)
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            declared.add(node.name)
        elif isinstance(node, ast.arg):
            declared.add(node.arg)
        elif isinstance(node, ast.ExceptHandler) and node.name:
            declared.add(node.name)
        elif type(node).__name__ in ("MatchAs", "MatchStar") and getattr(node, "name", None):
            declared.add(node.name)
        elif type(node).__name__ == "MatchMapping" and getattr(node, "rest", None):
            declared.add(node.rest)
    return declared


def _is_private(name: str) -> bool:
    return name.startswith("_") and name != "_"


def _node_range(node: ast.AST) -> DiagnosticRange:
    line = getattr(node, "lineno", 0) or 0
    col = getattr(node, "col_offset", 0) or 0
    end_line = getattr(node, "end_lineno", None) or line
    end_col = getattr(node, "end_col_offset", None)
    if end_col is None:
        end_col = col
    return DiagnosticRange(
        start_line=line,
        start_col=col + 1,
        end_line=end_line,
        end_col=end_col + 1,
    )


class _ScriptChecker(ast.NodeVisitor):
    """Single source-order traversal shared by both modes; the policy decides."""

    def __init__(self, policy: ValidatorPolicy, declared: set[str]) -> None:
        self.policy = policy
        self.declared = declared
        self.diagnostics: list[Diagnostic] = []

    def _report(self, node: ast.AST, message: str, severity: Severity = Severity.ERROR) -> None:
        self.diagnostics.append(
            Diagnostic(message=message, severity=severity, range=_node_range(node))
        )

    # -- identifiers --------------------------------------------------------

    def _identifier_allowed(self, name: str) -> bool:
        if _is_private(name):
            return False
        if self.policy.mode == ValidatorMode.DENY:
            return name not in self.policy.disallowed_identifiers or name in self.declared
        return name in self.policy.allowed_identifiers or name in self.declared

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Store):
            if _is_private(node.id):
                self._report(node, f"Invalid identifier '{node.id}' detected.")
            return
        if not self._identifier_allowed(node.id):
            self._report(node, f"Invalid identifier '{node.id}' detected.")

    def visit_arg(self, node: ast.arg) -> None:
        if _is_private(node.arg):
            self._report(node, f"Invalid identifier '{node.arg}' detected.")
        self.generic_visit(node)

    # -- calls --------------------------------------------------------------

    def _call_allowed(self, name: str) -> bool:
        if self.policy.mode == ValidatorMode.DENY:
            # a declared name does not make a deny-listed callee callable
            return name not in self.policy.disallowed_functions
        return name in self.declared or name in self.policy.allowed_functions

    def visit_Call(self, node: ast.Call) -> None:
        if isinstance(node.func, ast.Name) and not self._call_allowed(node.func.id):
            self._report(
                node,
                f"Use of function '{node.func.id}' is not allowed due to security risks.",
            )
        self.generic_visit(node)

    # -- member access ------------------------------------------------------

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_") or node.attr in BLOCKED_ATTRIBUTES:
            self._report(node, f"Access to attribute '{node.attr}' is not allowed.")
        elif self.policy.mode == ValidatorMode.ALLOW and isinstance(node.value, ast.Name):
            owner = node.value.id
            if (
                owner != SURFACE_ROOT
                and owner in self.policy.intrinsics
                and owner not in self.declared
                and node.attr not in intrinsic_members(owner)
            ):
                self._report(node, f"Use of member '{owner}.{node.attr}' is not allowed.")
        self.generic_visit(node)

    # -- statements ---------------------------------------------------------

    def visit_Import(self, node: ast.Import) -> None:
        self._report(node, "Import statements are not allowed.")

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        self._report(node, "Import statements are not allowed.")

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        if isinstance(node.target, (ast.Subscript, ast.Attribute)):
            self._report(node, "Augmented assignment to items or attributes is not allowed.")
        self.generic_visit(node)

    def visit_AsyncFor(self, node: ast.AsyncFor) -> None:
        self._report(node, "'async for' loops are not allowed.")
        self.generic_visit(node)

    def visit_AsyncWith(self, node: ast.AsyncWith) -> None:
        self._report(node, "'async with' blocks are not allowed.")
        self.generic_visit(node)

    def visit_While(self, node: ast.While) -> None:
        if isinstance(node.test, ast.Constant) and node.test.value is True:
            self._report(node, "Potential infinite loop detected.", Severity.WARNING)
        self.generic_visit(node)


def _syntax_error_diagnostic(e: SyntaxError) -> Diagnostic:
    line = e.lineno or 0
    col = e.offset or 0
    end_line = getattr(e, "end_lineno", None) or line
    end_col = getattr(e, "end_offset", None) or col + 1
    return Diagnostic(
        message=f"Syntax error: {e.msg}",
        severity=Severity.ERROR,
        range=DiagnosticRange(
            start_line=line, start_col=col, end_line=end_line, end_col=end_col
        ),
    )


def validate_script(
    source: str,
    mode: ValidatorMode | str = ValidatorMode.DENY,
) -> ValidationResult:
    """
    Decide whether a script may run. Never raises for malformed input: a parse
    failure becomes one Error diagnostic. Valid iff no Error diagnostics.
    """
    policy = policy_for(mode)
    try:
        tree = parse_script(source)
    except SyntaxError as e:
        diagnostics = [_syntax_error_diagnostic(e)]
    except ValueError as e:
        # e.g. null bytes in the source on older interpreters
        diagnostics = [
            Diagnostic(
                message=f"Syntax error: {e}",
                severity=Severity.ERROR,
                range=DiagnosticRange(start_line=0, start_col=0, end_line=0, end_col=1),
            )
        ]
    else:
        checker = _ScriptChecker(policy, collect_declarations(tree))
        checker.visit(tree)
        diagnostics = checker.diagnostics

    is_valid = not any(d.severity == Severity.ERROR for d in diagnostics)
    if not is_valid:
        _log.info(
            "script rejected (%s mode): %d diagnostic(s)", policy.mode.value, len(diagnostics)
        )
    return ValidationResult(
        is_valid=is_valid,
        diagnostics=diagnostics,
        messages=[d.message for d in diagnostics],
    )
