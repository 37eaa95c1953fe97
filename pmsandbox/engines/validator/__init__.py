"""
Static validator for test scripts.

Exports: validate_script, parse_script, ValidatorMode.
"""

from .policies import ValidatorMode
from .validator import parse_script, validate_script

__all__ = [
    "ValidatorMode",
    "parse_script",
    "validate_script",
]
