"""Chat endpoints -- messages, sessions, history, plus direct classify/format access."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Path, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from kaiwa.log import logger
from kaiwa.models import MAX_MESSAGE_LENGTH, ChatRequest
from kaiwa.routes import error_response

router = APIRouter(prefix="/chat", tags=["chat"])

DEMO_USER = "demo-user"


class AnalyzeRequest(BaseModel):
    """Validated schema for classifier-only requests."""
    message: str = Field(..., max_length=MAX_MESSAGE_LENGTH)
    context: Any = None


class FormatRequest(BaseModel):
    """Validated schema for renderer-only requests."""
    message: str = Field(default="", max_length=MAX_MESSAGE_LENGTH)
    content: Any = None
    format: str | None = Field(default=None, max_length=32)


def _service():
    from kaiwa.intelligence.chat import ChatService
    return ChatService()


@router.post("/message")
def send_message(body: ChatRequest) -> dict:
    """Process a chat message in its session and return the formatted response."""
    logger.info("Processing chat message from user: %s, session: %s", body.user_id, body.session_id)
    return _service().process_message(body).to_wire()


@router.post("/public/demo")
def demo_message(body: ChatRequest) -> dict:
    """Unauthenticated demo endpoint; every message is attributed to the demo user."""
    request = body.model_copy(update={"user_id": DEMO_USER})
    logger.info("Processing demo message (%d chars)", len(request.message))
    return _service().process_message(request).to_wire()


@router.get("/history/{session_id}")
def chat_history(session_id: str = Path(max_length=256)) -> dict:
    history = _service().get_history(session_id)
    return {"session_id": session_id, "messages": history, "count": len(history)}


@router.get("/sessions")
def user_sessions(user_id: str = Query(..., min_length=1, max_length=256)) -> dict:
    sessions = _service().get_user_sessions(user_id)
    return {"user_id": user_id, "sessions": sessions, "count": len(sessions)}


@router.post("/session/{session_id}/end", response_model=None)
def end_session(session_id: str = Path(max_length=256)) -> dict | JSONResponse:
    if not _service().end_session(session_id):
        return error_response(404, "Session not found", f"Session '{session_id}' does not exist")
    return {"message": "Session ended successfully"}


@router.delete("/session/{session_id}/history")
def clear_history(session_id: str = Path(max_length=256)) -> dict:
    deleted = _service().clear_history(session_id)
    return {"message": "History cleared successfully", "deleted": deleted}


@router.get("/health")
def chat_health() -> dict:
    return {
        "status": "healthy",
        "service": "Kaiwa Chat API",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/analyze")
def analyze_message(body: AnalyzeRequest) -> dict:
    """Classifier and context analyzer output for a message, without calling the LLM."""
    from kaiwa.intelligence.analyzer import analyze
    from kaiwa.intelligence.classifier import classify
    return {
        "analysis": classify(body.message, body.context).model_dump(mode="json", by_alias=True),
        "context_analysis": analyze(body.context).model_dump(mode="json"),
    }


@router.post("/format")
def format_content(body: FormatRequest) -> dict:
    """Render arbitrary content in the requested format."""
    from kaiwa.intelligence.renderer import render
    return render(body.message, body.content, body.format).model_dump(mode="json", by_alias=True)
