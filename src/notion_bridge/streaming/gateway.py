"""Streaming gateway: dispatch transcripts to Notion and translate the NDJSON reply.

``execute`` returns the output session immediately; a background task does
the dispatch and writes ``chat.completion.chunk`` frames into that session as
Notion's body arrives. Every request ends with exactly one terminal sequence
(a final chunk plus ``data: [DONE]``), written through ``StreamSession.finish``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable

import httpx

from ..config import Settings
from ..errors import (
    AllSessionsInvalid,
    GatewayError,
    UpstreamAuthExhausted,
    UpstreamStatusError,
    UpstreamTimeout,
    UpstreamTransportError,
)
from ..schemas import ChatCompletion, ChatCompletionChunk, CompletionChoice, CompletionMessage, TranscriptPayload
from ..sessions.credentials import CredentialEntry, build_upstream_headers
from ..sessions.pool import SessionPool
from .decoder import NDJSONDecoder, content_of
from .registry import StreamRegistry, StreamSession

logger = logging.getLogger(__name__)

# One dispatch plus one failover after a 401
MAX_ATTEMPTS = 2

NO_CONTENT_MESSAGE = "No content was received from Notion; retry or switch credentials."
TIMEOUT_MESSAGE = "Request timed out waiting for Notion to respond."


class StreamState(str, Enum):
    INIT = "init"
    DISPATCHED = "dispatched"
    FIRST_BYTE = "first_byte"
    STREAMING = "streaming"
    COMPLETED = "completed"
    UNAUTHORIZED = "unauthorized"
    RETRY_DISPATCHED = "retry_dispatched"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass
class _Exchange:
    session: StreamSession
    payload: TranscriptPayload
    model: str
    credential: CredentialEntry | None
    completion_id: str = field(default_factory=lambda: f"chatcmpl-{uuid.uuid4()}")
    state: StreamState = StreamState.INIT
    attempts: int = 0
    received: bool = False
    emitted: int = 0

    def chunk(self, content: str | None, finish_reason: str | None = None) -> str:
        return ChatCompletionChunk.build(
            self.model, content, finish_reason, chunk_id=self.completion_id
        ).to_sse()


class StreamingGateway:
    def __init__(
        self,
        pool: SessionPool,
        registry: StreamRegistry,
        settings: Settings,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._pool = pool
        self._registry = registry
        self._settings = settings
        self._client_factory = client_factory or self._default_client

    def execute(
        self,
        payload: TranscriptPayload,
        client_id: str,
        *,
        credential: CredentialEntry | None = None,
        model: str | None = None,
    ) -> StreamSession:
        """Register an output session for ``client_id`` and start streaming into it.

        ``credential`` should be the entry the payload was built for; when
        omitted, the pool's active entry is used. Must be called from a
        running event loop.
        """
        session = StreamSession(client_id)
        self._registry.register(client_id, session)
        session.write(":\n\n")

        exchange = _Exchange(
            session=session,
            payload=payload,
            model=model or "notion",
            credential=credential,
        )
        loop = asyncio.get_running_loop()
        session.timeout_handle = loop.call_later(
            self._settings.request_timeout_seconds, self._on_timeout, exchange
        )
        task = loop.create_task(self._run(exchange), name=f"notion-stream-{client_id}")
        session.attach_task(task)
        return session

    def _on_timeout(self, exchange: _Exchange) -> None:
        session = exchange.session
        session.timeout_handle = None
        if session.closed or exchange.received:
            return
        exchange.state = StreamState.TIMED_OUT
        error = UpstreamTimeout(TIMEOUT_MESSAGE)
        logger.warning(
            "No response from Notion within %.0fs for client %s",
            self._settings.request_timeout_seconds,
            session.client_id,
        )
        session.finish(exchange.chunk(str(error), error.finish_reason))

    async def _run(self, exchange: _Exchange) -> None:
        session = exchange.session
        try:
            await self._stream(exchange)
        except GatewayError as e:
            exchange.state = StreamState.ERROR
            logger.error("Notion request failed for client %s: %s", session.client_id, e)
            session.finish(exchange.chunk(str(e), e.finish_reason))
        except Exception as e:
            exchange.state = StreamState.ERROR
            logger.exception("Unexpected error streaming for client %s", session.client_id)
            session.finish(exchange.chunk(f"Error processing request: {e}", "error"))

    async def _stream(self, exchange: _Exchange) -> None:
        credential = exchange.credential or await self._pool.active()
        if credential is None:
            raise AllSessionsInvalid("No valid Notion credential is available")

        body = json.dumps(exchange.payload.dump())

        for attempt in range(MAX_ATTEMPTS):
            exchange.attempts = attempt + 1
            exchange.credential = credential
            exchange.state = StreamState.DISPATCHED if attempt == 0 else StreamState.RETRY_DISPATCHED
            logger.info(
                "Dispatching to Notion as %s (attempt %d, client %s)",
                credential.identity,
                exchange.attempts,
                exchange.session.client_id,
            )
            try:
                async with self._client_factory() as client:
                    async with self._open(client, credential, body) as response:
                        if response.status_code == 401:
                            exchange.state = StreamState.UNAUTHORIZED
                            logger.error("Notion rejected credential %s (401)", credential.identity)
                            await self._pool.mark_invalid(credential.identity)
                            if attempt + 1 >= MAX_ATTEMPTS:
                                raise UpstreamAuthExhausted(
                                    "Notion rejected the credential again after failover"
                                )
                            credential = await self._pool.get_next()
                            if credential is None:
                                raise AllSessionsInvalid("All Notion credentials are invalid")
                            if credential.tenant != exchange.payload.space_id:
                                # spaceId and threadId still refer to the first credential
                                logger.warning(
                                    "Retrying as %s with payload built for space %s (credential space %s)",
                                    credential.identity,
                                    exchange.payload.space_id,
                                    credential.tenant,
                                )
                            continue

                        if not response.is_success:
                            raise UpstreamStatusError(response.status_code)

                        await self._consume(exchange, response)
                        return
            except httpx.TransportError as e:
                raise UpstreamTransportError(f"Notion request failed: {e}", cause=e) from e

    @asynccontextmanager
    async def _open(
        self, client: httpx.AsyncClient, credential: CredentialEntry, body: str
    ) -> AsyncIterator[httpx.Response]:
        headers = build_upstream_headers(credential, self._settings)
        if self._settings.relay_server_url:
            envelope = {
                "method": "POST",
                "url": self._settings.notion_api_url,
                "headers": headers,
                "body": body,
                "stream": True,
            }
            if self._settings.proxy_url:
                envelope["proxy"] = self._settings.proxy_url
            request = client.stream("POST", self._settings.relay_server_url, json=envelope)
        else:
            request = client.stream(
                "POST", self._settings.notion_api_url, headers=headers, content=body
            )
        async with request as response:
            yield response

    async def _consume(self, exchange: _Exchange, response: httpx.Response) -> None:
        session = exchange.session
        decoder = NDJSONDecoder()

        async for data in response.aiter_bytes():
            if session.closed:
                logger.info("Client %s went away, dropping Notion stream", session.client_id)
                return
            if not exchange.received:
                exchange.received = True
                exchange.state = StreamState.FIRST_BYTE
                session.cancel_timeout()
                logger.info("Connected to Notion for client %s", session.client_id)
                exchange.state = StreamState.STREAMING
            for obj in decoder.consume(data):
                await self._emit(exchange, obj)

        for obj in decoder.flush():
            await self._emit(exchange, obj)

        if session.closed:
            return
        await self._complete(exchange)

    async def _emit(self, exchange: _Exchange, obj: Any) -> None:
        text = content_of(obj)
        if text is None:
            return
        if await exchange.session.send(exchange.chunk(text)):
            exchange.emitted += 1

    async def _complete(self, exchange: _Exchange) -> None:
        session = exchange.session
        exchange.state = StreamState.COMPLETED
        frames = []
        if exchange.emitted:
            if self._settings.rotate_on_success:
                nxt = await self._pool.get_next()
                if nxt is not None:
                    logger.info("Rotated to credential %s", nxt.identity)
        else:
            logger.warning("Notion stream for client %s ended without content", session.client_id)
            frames.append(exchange.chunk(NO_CONTENT_MESSAGE, "no_content"))
        frames.append(exchange.chunk(None, "stop"))
        logger.info(
            "Response complete for client %s (%d content chunk(s))", session.client_id, exchange.emitted
        )
        session.finish(*frames)

    def _default_client(self) -> httpx.AsyncClient:
        proxy = None if self._settings.relay_server_url else self._settings.proxy_url
        return httpx.AsyncClient(
            proxy=proxy,
            timeout=httpx.Timeout(None, connect=self._settings.connect_timeout_seconds),
        )


async def collect_completion(session: StreamSession, model: str) -> ChatCompletion:
    """Drain a session into a single non-streaming completion."""
    parts: list[str] = []
    finish_reason = "stop"
    diagnostic: str | None = None

    async for frame in session:
        if not frame.startswith("data: "):
            continue
        data = frame[len("data: "):].strip()
        if data == "[DONE]":
            break
        chunk = ChatCompletionChunk.model_validate_json(data)
        choice = chunk.choices[0]
        if choice.finish_reason is None:
            if choice.delta.content:
                parts.append(choice.delta.content)
        elif choice.finish_reason != "stop":
            finish_reason = choice.finish_reason
            diagnostic = choice.delta.content

    content = "".join(parts)
    if not content and diagnostic:
        content = diagnostic
    return ChatCompletion(
        model=model,
        choices=[CompletionChoice(message=CompletionMessage(content=content), finish_reason=finish_reason)],
    )
