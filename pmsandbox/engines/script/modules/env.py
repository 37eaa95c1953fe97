"""
Variable modules for script engine: environment (read/write), globals,
collectionVariables and variables (read-only).

Every Environment.set updates the in-memory mapping and reports a setEnv message
on the result channel in the same call; nothing changes the store silently.
"""

from collections.abc import Mapping
from typing import Any

from pmsandbox.models import EnvValue, SetEnvMessage


def _check_value(key: Any, value: Any) -> None:
    if not isinstance(key, str):
        raise TypeError(f"Variable name must be a string, got {type(key).__name__}")
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise TypeError(
            f"Variable '{key}' must be a string or number, got {type(value).__name__}"
        )


class VariableScope:
    """Read-only view over a caller-supplied snapshot."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, EnvValue] | None = None) -> None:
        self._values = dict(values or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._values

    def toObject(self) -> dict[str, EnvValue]:
        return dict(self._values)


class Environment(VariableScope):
    """Per-execution environment store; seeded from a snapshot, discarded afterwards."""

    __slots__ = ("_reporter",)

    def __init__(self, snapshot: Mapping[str, EnvValue] | None, reporter: Any) -> None:
        super().__init__(snapshot)
        self._reporter = reporter

    def set(self, key: str, value: EnvValue) -> None:
        _check_value(key, value)
        self._values[key] = value
        self._reporter.send(SetEnvMessage(key=key, value=value))

    def snapshot(self) -> dict[str, EnvValue]:
        return dict(self._values)


class ResolvedVariables:
    """`pm.variables`: first scope that defines the key wins."""

    __slots__ = ("_scopes",)

    def __init__(self, *scopes: VariableScope) -> None:
        self._scopes = scopes

    def get(self, key: str, default: Any = None) -> Any:
        for scope in self._scopes:
            if scope.has(key):
                return scope.get(key)
        return default

    def has(self, key: str) -> bool:
        return any(scope.has(key) for scope in self._scopes)

    def toObject(self) -> dict[str, EnvValue]:
        merged: dict[str, EnvValue] = {}
        for scope in reversed(self._scopes):
            merged.update(scope.toObject())
        return merged


def make_env_module(
    *,
    environment: Environment,
    globals_: Mapping[str, EnvValue] | None = None,
    variables: Mapping[str, EnvValue] | None = None,
    collection_variables: Mapping[str, EnvValue] | None = None,
) -> dict[str, Any]:
    """Build the variable members of `pm`: environment, globals, collectionVariables, variables."""
    global_scope = VariableScope(globals_)
    collection_scope = VariableScope(collection_variables)
    local_scope = VariableScope(variables)
    return {
        "environment": environment,
        "globals": global_scope,
        "collectionVariables": collection_scope,
        "variables": ResolvedVariables(
            local_scope, environment, collection_scope, global_scope
        ),
    }
