"""
Test-script endpoints: static validation and isolated execution.
"""

import asyncio
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from pmsandbox.core.channel import ScriptTimeoutError
from pmsandbox.core.config import settings
from pmsandbox.engines.executor import ScriptRunner, ScriptValidationError
from pmsandbox.engines.hosts import HostKind, get_host_pool
from pmsandbox.engines.validator import validate_script
from pmsandbox.models import ExecutionReport, ValidationResult
from pmsandbox.schemas import Envelope, RunIn, ValidateIn, envelope

_log = logging.getLogger(__name__)

router = APIRouter(prefix="/scripts", tags=["scripts"])


@router.post("/validate")
def validate(body: ValidateIn) -> ValidationResult:
    """
    Check a script without running it. Always 200; see is_valid and diagnostics.
    """
    return validate_script(body.source, body.mode or settings.VALIDATOR_MODE)


@router.post("/run", response_model=Envelope[ExecutionReport])
async def run(body: RunIn) -> Envelope[ExecutionReport] | JSONResponse:
    """
    Validate, then execute on the chosen isolation host (default SCRIPT_ISOLATION_HOST).

    400 with the ValidationResult as data when the script is rejected;
    504 when the completion signal does not arrive within the timeout.
    """
    kind = body.host or HostKind(settings.SCRIPT_ISOLATION_HOST)
    host = await asyncio.to_thread(get_host_pool().get, kind)
    runner = ScriptRunner(host, mode=body.mode)
    try:
        report = await runner.run(
            body.source,
            body.response,
            body.environment,
            globals_=body.globals,
            variables=body.variables,
            collection_variables=body.collection_variables,
            timeout=body.timeout,
        )
    except ScriptValidationError as e:
        return JSONResponse(
            status_code=400,
            content=envelope(e.result, success=False, message="Script rejected by validator"),
        )
    except ScriptTimeoutError as e:
        _log.warning("script run on %s host timed out: %s", kind.value, e)
        return JSONResponse(
            status_code=504,
            content=envelope(success=False, message=str(e)),
        )
    return Envelope[ExecutionReport](
        success=report.passed,
        message=report.error,
        data=report,
    )
