"""
Memo feed and tip/withdraw endpoints.
"""
import logging

from fastapi import APIRouter, Depends

from deps import Pagination, get_controller, pagination_params
from domain.enums import ActionOutcome
from domain.errors import BlockchainError, ConflictError, PermissionDeniedError
from domain.responses import paginated_response, success_response
from models import ActionResult, SubmitTipRequest
from services.sync_controller import SyncController

logger = logging.getLogger(__name__)

router = APIRouter(tags=["memos"])


def _respond(result: ActionResult) -> dict:
    """Map an ActionOutcome onto the HTTP error taxonomy."""
    details = {"outcome": result.outcome.value}
    if result.tx_hash:
        details["txHash"] = result.tx_hash

    if result.outcome == ActionOutcome.NOT_READY:
        raise ConflictError(result.detail or "Wallet not connected", details=details)
    if result.outcome == ActionOutcome.DENIED:
        raise PermissionDeniedError(result.detail or "Permission denied", details=details)
    if result.outcome == ActionOutcome.FAILED:
        raise BlockchainError(result.detail or "Transaction failed", details=details)
    return success_response(result.model_dump(by_alias=True, mode="json"))


@router.get("/memos")
async def list_memos(
    page: Pagination = Depends(pagination_params),
    controller: SyncController = Depends(get_controller),
):
    """Memo feed in arrival order: historical first, then live arrivals."""
    snapshot = controller.store.snapshot()
    items = [
        m.model_dump(by_alias=True)
        for m in snapshot[page["offset"]:page["offset"] + page["limit"]]
    ]
    response = paginated_response(
        items, limit=page["limit"], offset=page["offset"], total=len(snapshot)
    )
    response["meta"]["version"] = controller.store.version
    return response


@router.post("/tip")
async def submit_tip(
    request: SubmitTipRequest,
    controller: SyncController = Depends(get_controller),
):
    """Buy a tea: sends buyTea with the fixed tip amount and waits for it to be mined."""
    result = await controller.submit_tip(request.name, request.message)
    return _respond(result)


@router.post("/withdraw")
async def withdraw(controller: SyncController = Depends(get_controller)):
    """Withdraw the contract balance (owner only)."""
    result = await controller.withdraw()
    return _respond(result)
