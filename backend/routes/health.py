"""
Health check endpoint.
"""
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from config import settings
from exceptions import NoProviderError
from web3_client import web3_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Health check — verifies Ethereum node connectivity."""
    try:
        block_number = await web3_client.get_block_number()
        return {
            "status": "healthy",
            "node_connected": True,
            "last_block": block_number,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    except NoProviderError as e:
        logger.warning(f"Health check: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "node_connected": False,
                "environment": settings.environment,
                "error": "No wallet provider configured",
            },
        )
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "node_connected": False,
                "environment": settings.environment,
                "error": "Node unreachable",
            },
        )
