"""
Script engine: capability surface and compiler for test scripts.

Exports: ScriptSurface, build_surface, compile_script, build_restricted_globals,
load_script_function.
"""

from .context import ScriptSurface, build_surface
from .sandbox import (
    build_restricted_globals,
    compile_script,
    load_script_function,
)

__all__ = [
    "ScriptSurface",
    "build_surface",
    "compile_script",
    "build_restricted_globals",
    "load_script_function",
]
