#!/usr/bin/env python3
"""
Validate a post-response test script and run it against a mocked response.

The response file is JSON with the MockResponse fields, e.g.
  {"status_code": 200, "content_type": "json", "body": {"message": "Success"}}

Usage:
  python scripts/run_test_script.py SCRIPT [--response FILE] [--env FILE]
      [--host worker|compartment|embedded|direct] [--mode deny|allow] [--validate-only]

Exit status: 0 when the script is accepted and every test passed, 1 otherwise.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pmsandbox.core.channel import ScriptTimeoutError
from pmsandbox.core.config import settings
from pmsandbox.engines.executor import ScriptRunner, ScriptValidationError
from pmsandbox.engines.hosts import HostKind
from pmsandbox.models import MockResponse


def _load_json(path: str | None) -> Any:
    if not path:
        return None
    return json.loads(Path(path).read_text(encoding="utf-8"))


async def _run(args: argparse.Namespace, source: str) -> int:
    runner = ScriptRunner(host_kind=args.host, mode=args.mode)
    if args.validate_only:
        result = runner.validate(source)
        print(result.model_dump_json(indent=2))
        return 0 if result.is_valid else 1

    response = MockResponse.model_validate(_load_json(args.response) or {})
    environment = _load_json(args.env) or {}
    try:
        report = await runner.run(source, response, environment, timeout=args.timeout)
    except ScriptValidationError as e:
        print(e.result.model_dump_json(indent=2))
        return 1
    except ScriptTimeoutError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        runner.close()
    print(report.model_dump_json(indent=2))
    return 0 if report.passed else 1


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Validate and run a test script against a mocked HTTP response."
    )
    parser.add_argument("script", help="Path to the test script (Python source)")
    parser.add_argument("--response", help="JSON file describing the mocked response")
    parser.add_argument("--env", help="JSON file with the environment snapshot")
    parser.add_argument(
        "--host",
        choices=[k.value for k in HostKind],
        default=settings.SCRIPT_ISOLATION_HOST,
        help="Isolation host (default SCRIPT_ISOLATION_HOST)",
    )
    parser.add_argument(
        "--mode",
        choices=["deny", "allow"],
        default=settings.VALIDATOR_MODE,
        help="Validator mode (default VALIDATOR_MODE)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for completion (default SCRIPT_EXEC_TIMEOUT)",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Only run the static validator",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    source = Path(args.script).read_text(encoding="utf-8")
    sys.exit(asyncio.run(_run(args, source)))


if __name__ == "__main__":
    main()
