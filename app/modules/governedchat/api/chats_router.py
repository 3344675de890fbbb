from typing import AsyncIterator, List
import logging
import uuid

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from app.modules.governedchat.api.dependencies import get_history_store, get_orchestrator, get_user_id
from app.modules.governedchat.schema.chat import (
    ChatCompletionDelta,
    ChatRequest,
    ChatSessionItem,
    ChatSessionMessage,
)
from app.modules.governedchat.services.orchestrator import ChatOrchestrator, ChatPipelineError
from app.services.memory.history import SqlSessionHistoryStore
from core.config import SERVICE_UNAVAILABLE_MESSAGE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chats", tags=["Chats"])

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


def service_unavailable() -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": SERVICE_UNAVAILABLE_MESSAGE})


async def _single_chunk(line: str) -> AsyncIterator[str]:
    yield line


def ndjson_response(session_id: str, content: str) -> StreamingResponse:
    """Stream the whole buffered answer as one NDJSON line."""
    line = ChatCompletionDelta.build(session_id, content).to_ndjson()
    return StreamingResponse(
        _single_chunk(line),
        media_type=NDJSON_MEDIA_TYPE,
        headers={"Transfer-Encoding": "chunked"},
    )


@router.post("/stream")
async def post_chat_stream(
    req: ChatRequest,
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> Response:
    question = req.question
    user_id = get_user_id(request, req)
    session_id = req.session_id or str(uuid.uuid4())

    if not req.messages or not question or not user_id:
        logger.error("Invalid or missing messages in the request body")
        return bad_request("Invalid or missing messages in the request body")

    logger.info(f"Start: userId: {user_id}, sessionId: {session_id}")

    try:
        outcome = await orchestrator.handle(
            authorization=request.headers.get("Authorization"),
            user_id=user_id,
            session_id=session_id,
            question=question,
        )
    except ChatPipelineError as e:
        logger.error(
            f"Error when processing chat-post request at {e.stage}: {type(e.cause).__name__}: {e.cause}",
            exc_info=e.cause,
        )
        return service_unavailable()

    return ndjson_response(outcome.session_id, outcome.content)


@router.get("", response_model=List[ChatSessionItem])
async def list_chats(
    request: Request,
    history: SqlSessionHistoryStore = Depends(get_history_store),
):
    user_id = get_user_id(request)
    if not user_id:
        return bad_request("Invalid or missing userId in the request")
    try:
        sessions = await history.list_sessions(user_id)
    except Exception as e:
        logger.error(f"Error when listing chats for {user_id}: {e}", exc_info=True)
        return service_unavailable()
    return [ChatSessionItem(**s) for s in sessions]


@router.get("/{session_id}", response_model=List[ChatSessionMessage])
async def get_chat(
    session_id: str,
    request: Request,
    history: SqlSessionHistoryStore = Depends(get_history_store),
):
    user_id = get_user_id(request)
    if not user_id:
        return bad_request("Invalid or missing userId in the request")
    try:
        messages = await history.get_session_messages(session_id, user_id)
    except Exception as e:
        logger.error(f"Error when fetching chat {session_id}: {e}", exc_info=True)
        return service_unavailable()
    if messages is None:
        return JSONResponse(status_code=404, content={"error": f"Session {session_id} not found"})
    return [ChatSessionMessage(**m) for m in messages]


@router.delete("/{session_id}", status_code=204)
async def delete_chat(
    session_id: str,
    request: Request,
    history: SqlSessionHistoryStore = Depends(get_history_store),
):
    user_id = get_user_id(request)
    if not user_id:
        return bad_request("Invalid or missing userId in the request")
    try:
        await history.delete_session(session_id, user_id)
    except Exception as e:
        logger.error(f"Error when deleting chat {session_id}: {e}", exc_info=True)
        return service_unavailable()
    return Response(status_code=204)
