"""
Shared FastAPI dependencies.

Routers import the controller and pagination helpers from here.
"""

from __future__ import annotations

from typing import TypedDict

from fastapi import Query, Request

from domain.errors import ServiceUnavailableError
from services.sync_controller import SyncController


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


def get_controller(request: Request) -> SyncController:
    """The process-wide SyncController created in the app lifespan."""
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise ServiceUnavailableError("Session controller not initialized")
    return controller
