"""Translate OpenAI-style chat requests into Notion transcript payloads."""

from __future__ import annotations

import random
import uuid
from datetime import datetime, timezone
from typing import Callable, Mapping

from .config import DEFAULT_TIMEZONE, LEGACY_MODEL
from .schemas import (
    ChatCompletionRequest,
    ContentPart,
    TranscriptConfigValue,
    TranscriptContextValue,
    TranscriptItem,
    TranscriptPayload,
)
from .sessions.credentials import CredentialEntry

_SPACE_WORDS = ["Project", "Workspace", "Team", "Studio", "Lab", "Hub", "Zone", "Space"]


def _new_trace_id() -> str:
    return str(uuid.uuid4())


def normalize_content(content: str | list[ContentPart] | None) -> str:
    """Collapse message content to text; non-text parts are dropped."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.text for part in content if part.type == "text" and isinstance(part.text, str)
        )
    return ""


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_transcript(
    request: ChatCompletionRequest,
    credential: CredentialEntry,
    *,
    now: datetime | None = None,
    trace_id_factory: Callable[[], str] = _new_trace_id,
    model_mapping: Mapping[str, str] | None = None,
    legacy_model: str = LEGACY_MODEL,
    timezone_name: str = DEFAULT_TIMEZONE,
    rng: random.Random | None = None,
) -> TranscriptPayload:
    """Build the runInferenceTranscript body for ``request`` as ``credential``.

    Pure: no I/O and no validation, message shape is checked upstream.
    """
    rng = rng or random.Random()
    timestamp = _iso(now or datetime.now(timezone.utc))
    mapping = model_mapping or {}

    transcript: list[TranscriptItem] = []

    if request.model == legacy_model:
        transcript.append(TranscriptItem(type="config", value=TranscriptConfigValue().dump()))
    else:
        model_name = mapping.get(request.model, request.model)
        transcript.append(
            TranscriptItem(type="config", value=TranscriptConfigValue(model=model_name).dump())
        )

    context = TranscriptContextValue(
        user_id=credential.identity,
        space_id=credential.tenant,
        timezone=timezone_name,
        user_name=f"User{rng.randint(100, 999)}",
        space_name=f"{rng.choice(_SPACE_WORDS)} {rng.randint(1, 99)}",
        space_view_id=trace_id_factory(),
        current_datetime=timestamp,
    )
    transcript.append(TranscriptItem(type="context", value=context.dump()))
    transcript.append(TranscriptItem(type="agent-integration"))

    for message in request.messages:
        text = normalize_content(message.content)
        if message.role in ("system", "user"):
            transcript.append(
                TranscriptItem(
                    type="user",
                    value=[[text]],
                    user_id=credential.identity,
                    created_at=message.created_at or timestamp,
                )
            )
        elif message.role == "assistant":
            transcript.append(
                TranscriptItem(
                    type="markdown-chat",
                    value=text,
                    trace_id=message.trace_id or trace_id_factory(),
                    created_at=message.created_at or timestamp,
                )
            )

    return TranscriptPayload(
        space_id=credential.tenant,
        transcript=transcript,
        thread_id=credential.conversation_context or None,
        trace_id=trace_id_factory(),
    )
