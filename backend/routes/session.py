"""
Wallet session endpoints — status, connect, disconnect.
"""
import logging

from fastapi import APIRouter, Depends

from deps import get_controller
from domain.responses import success_response
from models import SessionStatusResponse
from services.sync_controller import SyncController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["session"])


def _status_payload(controller: SyncController) -> dict:
    return SessionStatusResponse(**controller.status()).model_dump(by_alias=True, mode="json")


@router.get("")
async def get_session(controller: SyncController = Depends(get_controller)):
    """Current session state, account and owner."""
    return success_response(_status_payload(controller))


@router.post("/connect")
async def connect_wallet(controller: SyncController = Depends(get_controller)):
    """
    Connect the wallet and start syncing memos.

    Failures (no provider, denied authorization) leave the session
    DISCONNECTED; the returned state tells the page what happened.
    """
    await controller.connect()
    return success_response(_status_payload(controller))


@router.post("/disconnect")
async def disconnect_wallet(controller: SyncController = Depends(get_controller)):
    await controller.disconnect()
    return success_response(_status_payload(controller))
