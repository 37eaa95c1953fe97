"""
Engines: static validator, script surface and compilers, isolation hosts, ScriptRunner.
"""

from pmsandbox.engines.executor import ScriptRunner, ScriptValidationError
from pmsandbox.engines.hosts import HostKind, create_host
from pmsandbox.engines.script import ScriptSurface, build_surface
from pmsandbox.engines.validator import ValidatorMode, validate_script

__all__ = [
    "HostKind",
    "ScriptRunner",
    "ScriptSurface",
    "ScriptValidationError",
    "ValidatorMode",
    "build_surface",
    "create_host",
    "validate_script",
]
