"""
Polling router.
Operator controls for the ingestion + distribution cycle runner.
"""

from fastapi import APIRouter, Depends

from shared.utils.exceptions import InternalError
from shared.utils.schemas import CommandResult
from shared.utils.kds_schemas import CycleSummaryOutput, PollingStatusOutput
from kds_api.core.dependencies import get_container
from kds_api.services import KdsContainer

router = APIRouter(prefix="/api/polling", tags=["polling"])


@router.get("/status", response_model=PollingStatusOutput)
def polling_status(container: KdsContainer = Depends(get_container)) -> PollingStatusOutput:
    return container.polling.status()


@router.post("/start", response_model=CommandResult)
async def start_polling(container: KdsContainer = Depends(get_container)) -> CommandResult:
    started = await container.polling.start()
    message = "Polling started" if started else "Polling already running"
    return CommandResult(success=started, message=message)


@router.post("/stop", response_model=CommandResult)
async def stop_polling(container: KdsContainer = Depends(get_container)) -> CommandResult:
    stopped = await container.polling.stop()
    message = "Polling stopped" if stopped else "Polling was not running"
    return CommandResult(success=stopped, message=message)


@router.post("/force", response_model=CycleSummaryOutput)
async def force_poll(container: KdsContainer = Depends(get_container)) -> CycleSummaryOutput:
    """
    Run one cycle now, waiting for a scheduled cycle in flight.
    Returns 500 when the cycle failed; the error is in /status.
    """
    summary = await container.polling.force_poll()
    if summary is None:
        raise InternalError("Poll cycle failed", last_error=container.polling.status().last_error)
    return summary
