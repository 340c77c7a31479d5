"""OpenAI-compatible model listing and chat completion routes."""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Header, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from ...schemas import ChatCompletion, ChatCompletionRequest, ModelCard, ModelList
from ...streaming.gateway import collect_completion
from ...translator import build_transcript

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/models", response_model=ModelList)
async def list_models(request: Request) -> ModelList:
    """List the model ids this bridge accepts."""
    settings = request.app.state.settings
    return ModelList(data=[ModelCard(id=model_id) for model_id in settings.available_models])


@router.post("/chat/completions", response_model=None)
async def chat_completions(
    payload: ChatCompletionRequest,
    request: Request,
    x_client_id: str | None = Header(default=None, alias="X-Client-Id"),
) -> StreamingResponse | ChatCompletion:
    """Run a chat completion against Notion, streamed as SSE or aggregated."""
    state = request.app.state
    settings = state.settings

    credential = await state.pool.active()
    if credential is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No valid Notion credential is available; add or revalidate one",
        )

    client_id = x_client_id or f"client-{uuid.uuid4()}"
    transcript = build_transcript(
        payload,
        credential,
        model_mapping=settings.model_mapping,
        legacy_model=settings.legacy_model,
        timezone_name=settings.notion_timezone,
    )
    logger.info(
        "Chat completion for client %s: model=%s messages=%d stream=%s identity=%s",
        client_id,
        payload.model,
        len(payload.messages),
        payload.stream,
        credential.identity,
    )

    session = state.gateway.execute(transcript, client_id, credential=credential, model=payload.model)

    if not payload.stream:
        try:
            return await collect_completion(session, payload.model)
        finally:
            state.registry.close(client_id, session)

    async def event_stream():
        try:
            async for frame in session:
                yield frame
        finally:
            # Runs on normal end and on client disconnect
            state.registry.close(client_id, session)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
