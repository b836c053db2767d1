"""Kaiwa REST API -- chat endpoints served at localhost:8430.

FastAPI application mounting the chat router plus service health, status
and a live telemetry snapshot.
"""

from __future__ import annotations

import platform
import threading
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kaiwa import __version__
from kaiwa.log import logger
from kaiwa.routes import error_response

_start_time: float = 0.0


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

def _cleanup_sessions() -> None:
    try:
        from kaiwa.intelligence.chat import ChatService
        ChatService().cleanup_old_sessions()
    except Exception:
        logger.warning("Session cleanup failed on startup", exc_info=True)


def _on_startup() -> None:
    """Open the conversation store and prune stale sessions in the background."""
    global _start_time
    _start_time = time.time()

    from kaiwa.history.store import ConversationStore
    ConversationStore.get()

    threading.Thread(target=_cleanup_sessions, daemon=True).start()
    logger.info("Kaiwa API started")


def _on_shutdown() -> None:
    try:
        from kaiwa.history.store import ConversationStore
        ConversationStore.get().close_all()
    except Exception:
        logger.debug("Failed to close conversation store connections on shutdown")
    logger.info("Kaiwa API stopped")


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    _on_startup()
    yield
    _on_shutdown()


def _cors_origins() -> list[str]:
    try:
        from kaiwa.config.loader import get_server_config
        return list(get_server_config().get("cors_origins", []))
    except Exception:
        logger.debug("Config unavailable for CORS origins, allowing none")
        return []


# ---------------------------------------------------------------------------
# App creation + router mounting
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Kaiwa",
    description="Chat backend that turns system telemetry into text, card, list, table and chart responses",
    version=__version__,
    lifespan=_lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)

from kaiwa.routes.chat import router as chat_router

app.include_router(chat_router)


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return structured JSON instead of HTML 500."""
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return error_response(500, "Internal server error")


@app.exception_handler(404)
async def _not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return error_response(404, "Not found", f"{request.url.path} does not exist")


# ---------------------------------------------------------------------------
# Core endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/status")
def status() -> dict:
    from kaiwa.config.loader import get_llm_config
    return {
        "agent": "kaiwa",
        "version": __version__,
        "hostname": platform.node(),
        "platform": platform.system(),
        "python_version": platform.python_version(),
        "llm_provider": get_llm_config().get("provider", "offline"),
        "uptime_seconds": round(time.time() - _start_time, 1),
    }


@app.get("/context/live")
def live_context() -> dict:
    """Snapshot this machine's telemetry as a context tree (for use as systemContext)."""
    from kaiwa.core.collector import collect_context
    return collect_context()
