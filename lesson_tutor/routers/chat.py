import logging
from contextlib import aclosing
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from lesson_tutor.api_models import ApiResponse, ChatRequest, ModelUpdateRequest
from lesson_tutor.config import API_RESPONSES
from lesson_tutor.dependencies import get_orchestrator
from lesson_tutor.exceptions import InvalidModelError, MissingInputError, SessionBusyError
from lesson_tutor.orchestrator import PreparedTurn, TurnOrchestrator, TurnStream

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat/{session_id}", tags=["Chat"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}


def _ok(data) -> JSONResponse:
    return JSONResponse(status_code=200, content=ApiResponse(success=True, data=data).to_content())


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ApiResponse(success=False, error=message).to_content())


async def _encode(fragments: TurnStream) -> AsyncIterator[bytes]:
    async with aclosing(fragments):
        async for fragment in fragments:
            yield fragment.encode("utf-8")


class TurnStreamingResponse(StreamingResponse):
    """Streams a turn as UTF-8 text and settles the session however the response ends."""

    def __init__(self, fragments: TurnStream):
        self.fragments = fragments
        super().__init__(
            _encode(fragments),
            media_type="text/plain; charset=utf-8",
            headers=STREAM_HEADERS,
        )

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            # The body iterator may never have been pulled if the client left early.
            await self.fragments.aclose()


@router.get("/messages")
async def get_messages(session_id: str, orchestrator: TurnOrchestrator = Depends(get_orchestrator)):
    return _ok(orchestrator.get_state(session_id).to_json())


@router.post("/chat")
async def chat(
    session_id: str,
    body: ChatRequest,
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
):
    try:
        turn: PreparedTurn = orchestrator.begin_turn(
            session_id, body.message, attachments=body.attachments, model=body.model
        )
    except MissingInputError:
        return _error(400, API_RESPONSES["MISSING_MESSAGE"])
    except SessionBusyError:
        log.info("Rejected turn for busy session %s", session_id)
        return _error(409, API_RESPONSES["SESSION_BUSY"])

    if body.stream:
        return TurnStreamingResponse(orchestrator.stream_turn(turn))

    try:
        state = await orchestrator.run_turn(turn)
    except Exception as e:
        log.error("Turn failed for session %s: %s", session_id, e)
        return _error(500, API_RESPONSES["PROCESSING_ERROR"])
    return _ok(state.to_json())


@router.delete("/clear")
async def clear(session_id: str, orchestrator: TurnOrchestrator = Depends(get_orchestrator)):
    return _ok(orchestrator.clear(session_id).to_json())


@router.post("/model")
async def update_model(
    session_id: str,
    body: ModelUpdateRequest,
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
):
    try:
        state = orchestrator.set_model(session_id, body.model)
    except InvalidModelError:
        return _error(400, API_RESPONSES["INVALID_MODEL"])
    return _ok(state.to_json())
