"""Shared test helpers (fake Notion backend, SSE frame parsing)."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Iterable

import httpx

from notion_bridge.config import Settings
from notion_bridge.streaming.registry import DONE_FRAME, StreamSession

COOKIE_A = "notion_user_id=user-a; notion_space_id=space-a; token_v2=secret-a"
COOKIE_B = "notion_user_id=user-b; notion_space_id=space-b; token_v2=secret-b"
COOKIE_C = "notion_user_id=user-c; notion_space_id=space-c; token_v2=secret-c"

Handler = Callable[[httpx.Request], Awaitable[httpx.Response]]


def make_settings(**overrides) -> Settings:
    """Build settings from env-style names, ignoring any local .env file."""
    values = {
        "NOTION_COOKIE": COOKIE_A,
        "PROXY_AUTH_TOKEN": "test-token",
        "PERSISTENCE_BACKEND": "memory",
        "NOTION_API_URL": "https://notion.test/api/v3/runInferenceTranscript",
        "REQUEST_TIMEOUT_SECONDS": 5,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def ndjson(*objects: Any) -> bytes:
    """Encode objects as newline-delimited JSON."""
    return b"".join(json.dumps(obj, ensure_ascii=False).encode() + b"\n" for obj in objects)


def content_line(text: str) -> dict[str, Any]:
    return {"type": "markdown-chat", "value": text}


async def chunked(parts: Iterable[bytes], delay: float = 0.0):
    """Yield body parts one by one, as a streaming upstream would."""
    for part in parts:
        if delay:
            await asyncio.sleep(delay)
        yield part


def client_factory(handler: Handler, calls: list[httpx.Request] | None = None):
    """Build an ``httpx.AsyncClient`` factory backed by ``handler``.

    Every request seen is appended to ``calls`` when given.
    """

    async def recording(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return await handler(request)

    def factory() -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(recording))

    return factory


def identity_of(request: httpx.Request) -> str:
    return request.headers["x-notion-active-user-header"]


async def drain(session: StreamSession) -> list[str]:
    return [frame async for frame in session]


def parse_frames(frames: Iterable[str]) -> list[dict[str, Any] | str]:
    """Decode SSE frames; data chunks become dicts, the terminal marker stays ``"[DONE]"``.

    Comment frames (keepalives) are dropped.
    """
    parsed: list[dict[str, Any] | str] = []
    for frame in frames:
        if frame == DONE_FRAME:
            parsed.append("[DONE]")
        elif frame.startswith("data: "):
            parsed.append(json.loads(frame[len("data: "):]))
    return parsed


def contents(parsed: list[dict[str, Any] | str]) -> list[str]:
    """Content deltas of non-terminal chunks."""
    return [
        item["choices"][0]["delta"]["content"]
        for item in parsed
        if isinstance(item, dict) and item["choices"][0]["finish_reason"] is None
    ]


def finish_reasons(parsed: list[dict[str, Any] | str]) -> list[str]:
    return [
        item["choices"][0]["finish_reason"]
        for item in parsed
        if isinstance(item, dict) and item["choices"][0]["finish_reason"] is not None
    ]
