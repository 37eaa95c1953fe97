"""
Assertion module for script engine: pm.expect(value) fluent checks.

Chains (`to`, `be`, `have`, ...) return the same expectation; `not_` negates the
next check. A failed check raises AssertionFailure with a readable message, e.g.
"expected 404 to equal 200".
"""

import json
import math
import re
from collections.abc import Callable, Iterable, Mapping
from typing import Any

_MISSING = object()

_TYPE_NAMES: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, Mapping),
    "array": lambda v: isinstance(v, (list, tuple)),
    "null": lambda v: v is None,
    "undefined": lambda v: v is None,
    "function": callable,
}


class AssertionFailure(AssertionError):
    """Raised by a failed pm.expect check."""

    pass


def _fmt(value: Any) -> str:
    if isinstance(value, str):
        return repr(value)
    try:
        return json.dumps(value, default=repr, sort_keys=True)
    except (TypeError, ValueError):
        return repr(value)


def _lookup(subject: Any, name: str) -> Any:
    if isinstance(subject, Mapping):
        return subject.get(name, _MISSING)
    if name.startswith("_"):
        return _MISSING
    return getattr(subject, name, _MISSING)


class Expectation:
    def __init__(self, subject: Any, message: str | None = None) -> None:
        self._subject = subject
        self._message = message
        self._negate = False

    def _check(self, ok: bool, expectation: str) -> "Expectation":
        if self._negate:
            ok = not ok
            expectation = "not " + expectation
        self._negate = False
        if not ok:
            prefix = f"{self._message}: " if self._message else ""
            raise AssertionFailure(f"{prefix}expected {_fmt(self._subject)} {expectation}")
        return self

    # -- language chains ----------------------------------------------------

    @property
    def to(self) -> "Expectation":
        return self

    @property
    def be(self) -> "Expectation":
        return self

    @property
    def been(self) -> "Expectation":
        return self

    @property
    def that(self) -> "Expectation":
        return self

    @property
    def which(self) -> "Expectation":
        return self

    @property
    def has(self) -> "Expectation":
        return self

    @property
    def have(self) -> "Expectation":
        return self

    @property
    def at(self) -> "Expectation":
        return self

    @property
    def of(self) -> "Expectation":
        return self

    @property
    def deep(self) -> "Expectation":
        # Python equality is already structural.
        return self

    @property
    def not_(self) -> "Expectation":
        self._negate = not self._negate
        return self

    # -- value assertions (properties) -------------------------------------

    @property
    def ok(self) -> "Expectation":
        return self._check(bool(self._subject), "to be truthy")

    @property
    def true(self) -> "Expectation":
        return self._check(self._subject is True, "to be true")

    @property
    def false(self) -> "Expectation":
        return self._check(self._subject is False, "to be false")

    @property
    def null(self) -> "Expectation":
        return self._check(self._subject is None, "to be null")

    @property
    def undefined(self) -> "Expectation":
        return self._check(self._subject is None, "to be undefined")

    @property
    def exist(self) -> "Expectation":
        return self._check(self._subject is not None, "to exist")

    @property
    def NaN(self) -> "Expectation":
        ok = isinstance(self._subject, float) and math.isnan(self._subject)
        return self._check(ok, "to be NaN")

    @property
    def empty(self) -> "Expectation":
        try:
            ok = len(self._subject) == 0
        except TypeError:
            ok = False
        return self._check(ok, "to be empty")

    # -- comparisons --------------------------------------------------------

    def equal(self, expected: Any) -> "Expectation":
        return self._check(self._subject == expected, f"to equal {_fmt(expected)}")

    eq = equal
    equals = equal
    eql = equal

    def a(self, type_name: str) -> "Expectation":
        test = _TYPE_NAMES.get(type_name.lower())
        if test is None:
            raise ValueError(f"Unknown type name '{type_name}'")
        article = "an" if type_name[:1].lower() in "aeiou" else "a"
        return self._check(test(self._subject), f"to be {article} {type_name}")

    an = a

    def instanceOf(self, cls: type) -> "Expectation":
        return self._check(
            isinstance(self._subject, cls), f"to be an instance of {cls.__name__}"
        )

    def above(self, n: Any) -> "Expectation":
        return self._check(self._subject > n, f"to be above {_fmt(n)}")

    gt = above
    greaterThan = above

    def least(self, n: Any) -> "Expectation":
        return self._check(self._subject >= n, f"to be at least {_fmt(n)}")

    gte = least

    def below(self, n: Any) -> "Expectation":
        return self._check(self._subject < n, f"to be below {_fmt(n)}")

    lt = below
    lessThan = below

    def most(self, n: Any) -> "Expectation":
        return self._check(self._subject <= n, f"to be at most {_fmt(n)}")

    lte = most

    def within(self, low: Any, high: Any) -> "Expectation":
        return self._check(
            low <= self._subject <= high, f"to be within {_fmt(low)}..{_fmt(high)}"
        )

    def oneOf(self, options: Iterable[Any]) -> "Expectation":
        options = list(options)
        return self._check(self._subject in options, f"to be one of {_fmt(options)}")

    def match(self, pattern: str) -> "Expectation":
        ok = isinstance(self._subject, str) and re.search(pattern, self._subject) is not None
        return self._check(ok, f"to match {pattern!r}")

    def satisfy(self, predicate: Callable[[Any], Any]) -> "Expectation":
        return self._check(bool(predicate(self._subject)), "to satisfy the given predicate")

    # -- membership and structure -------------------------------------------

    def include(self, member: Any) -> "Expectation":
        subject = self._subject
        if isinstance(subject, Mapping) and isinstance(member, Mapping):
            ok = all(k in subject and subject[k] == v for k, v in member.items())
        else:
            try:
                ok = member in subject
            except TypeError:
                ok = False
        return self._check(ok, f"to include {_fmt(member)}")

    contain = include
    contains = include
    includes = include

    def keys(self, *names: Any) -> "Expectation":
        if len(names) == 1 and isinstance(names[0], (list, tuple, set)):
            names = tuple(names[0])
        subject = self._subject
        ok = isinstance(subject, Mapping) and all(n in subject for n in names)
        return self._check(ok, f"to have keys {_fmt(list(names))}")

    def lengthOf(self, n: int) -> "Expectation":
        try:
            ok = len(self._subject) == n
        except TypeError:
            ok = False
        return self._check(ok, f"to have a length of {n}")

    length = lengthOf

    # -- response checks ----------------------------------------------------

    def status(self, code: int) -> "Expectation":
        actual = getattr(self._subject, "code", _MISSING)
        return self._check(actual == code, f"to have status code {code}")

    def header(self, name: str, value: Any = _MISSING) -> "Expectation":
        headers = getattr(self._subject, "headers", None)
        present = headers is not None and name in headers
        if value is _MISSING:
            return self._check(present, f"to have header {_fmt(name)}")
        ok = present and headers.get(name) == value
        return self._check(ok, f"to have header {_fmt(name)} with value {_fmt(value)}")

    def property(self, name: str, value: Any = _MISSING) -> "Expectation":
        """Check a key/attribute exists (and equals value); later checks target it."""
        found = _lookup(self._subject, name)
        if value is _MISSING:
            self._check(found is not _MISSING, f"to have property {_fmt(name)}")
        else:
            self._check(
                found is not _MISSING and found == value,
                f"to have property {_fmt(name)} of {_fmt(value)}",
            )
        if found is _MISSING:
            return self
        return Expectation(found, self._message)


def expect(value: Any, message: str | None = None) -> Expectation:
    return Expectation(value, message)
