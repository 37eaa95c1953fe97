"""
pm-sandbox: static validation and isolated execution of post-response test scripts.

Exports: validate_script, ScriptRunner, ScriptSurface, create_host, HostKind.
"""

from pmsandbox.engines.executor import ScriptRunner
from pmsandbox.engines.hosts import HostKind, create_host
from pmsandbox.engines.script import ScriptSurface
from pmsandbox.engines.validator import validate_script

__all__ = [
    "HostKind",
    "ScriptRunner",
    "ScriptSurface",
    "create_host",
    "validate_script",
]
