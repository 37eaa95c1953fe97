"""
Capability-surface modules: assertions, response, env, http, html, log.
"""

from pmsandbox.engines.script.modules.assertions import (
    AssertionFailure,
    Expectation,
    expect,
)
from pmsandbox.engines.script.modules.env import (
    Environment,
    ResolvedVariables,
    VariableScope,
    make_env_module,
)
from pmsandbox.engines.script.modules.html import HtmlDocument, HtmlElement, parse_html
from pmsandbox.engines.script.modules.http import make_http_module
from pmsandbox.engines.script.modules.log import make_log_module
from pmsandbox.engines.script.modules.response import ResponseAccessor

__all__ = [
    "AssertionFailure",
    "Environment",
    "Expectation",
    "HtmlDocument",
    "HtmlElement",
    "ResolvedVariables",
    "ResponseAccessor",
    "VariableScope",
    "expect",
    "make_env_module",
    "make_http_module",
    "make_log_module",
    "parse_html",
]
