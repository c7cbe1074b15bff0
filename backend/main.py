"""
Buy-a-Tea — FastAPI Application

Serves the single tipping page and the JSON endpoints behind it. One
SyncController lives for the whole process: it connects the wallet, binds
the BuyMeATea contract, loads historical memos and keeps the live NewMemo
subscription running.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from config import settings
from domain.responses import error_response
from routes import health, memos, session

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: build the controller (optionally connect). Shutdown: tear the session down."""
    settings.validate_production_settings()

    from services.sync_controller import SyncController
    from services.wallet_service import ConnectionGate, build_wallet_provider

    provider = build_wallet_provider()
    if provider is None:
        logger.warning("No wallet provider configured; connect will fail until RPC_URL is set")

    controller = SyncController(ConnectionGate(provider))
    app.state.controller = controller

    if settings.auto_connect:
        state = await controller.connect()
        logger.info(f"Auto-connect finished in state {state.value}")

    yield  # app runs here

    try:
        await controller.close()
    except Exception as e:
        logger.warning(f"Controller shutdown failed: {e}")

    from web3_client import web3_client
    await web3_client.close()

    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="Buy a Tea!",
    description="Tip the BuyMeATea contract and follow the memo feed",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(session.router)
app.include_router(memos.router)


# ── Listener Status Endpoint ───────────────────────────────────────

@app.get("/listener/status", tags=["listener"])
async def get_listener_status():
    """Status of the live NewMemo subscription plus feed metrics."""
    from services.listener_metrics import get_subscription_metrics

    controller = getattr(app.state, "controller", None)
    subscription = controller.subscription if controller else None
    status = subscription.get_status() if subscription else {"running": False}
    status["metrics"] = get_subscription_metrics().to_dict()
    return status


# ── Page ────────────────────────────────────────────────────────────

frontend_dir = os.path.join(os.path.dirname(os.path.dirname(__file__)), "frontend")


@app.get("/", include_in_schema=False)
async def index():
    """The tipping page."""
    page = os.path.join(frontend_dir, "index.html")
    if not os.path.exists(page):
        return JSONResponse(
            status_code=404,
            content=error_response("not_found", "Frontend not bundled"),
        )
    return FileResponse(page)


# ── Exception Handler ───────────────────────────────────────────────


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never returns raw exception details to clients; the traceback is logged.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_response("internal_server_error", "Internal server error"),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    # DomainError carries structured error info
    if hasattr(exc, "message") and hasattr(exc, "details"):
        error_code = exc.__class__.__name__.replace("Error", "").lower()
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(error_code, exc.message, exc.details),
        )

    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            "http_error", message, detail if isinstance(detail, dict) else None
        ),
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
