from __future__ import annotations

import time
import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

FinishReason = Literal["stop", "error", "timeout", "no_content"]


# --- Inbound chat API -------------------------------------------------------


class ContentPart(BaseModel):
    """One typed part of a multi-part message; only ``text`` parts are kept."""

    model_config = {"extra": "allow"}

    type: str
    text: str | None = None


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str | list[ContentPart]
    trace_id: str | None = Field(default=None, alias="traceId")
    created_at: str | None = Field(default=None, alias="createdAt")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class ChatCompletionRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    stream: bool = False

    model_config = {"extra": "ignore"}

    @field_validator("messages")
    @classmethod
    def _non_empty(cls, value: list[ChatMessage]) -> list[ChatMessage]:
        if not value:
            raise ValueError("'messages' must be a non-empty array")
        return value


# --- Outbound chat API ------------------------------------------------------


def _completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4()}"


class ChoiceDelta(BaseModel):
    content: str | None = None


class ChunkChoice(BaseModel):
    index: int = 0
    delta: ChoiceDelta = Field(default_factory=ChoiceDelta)
    finish_reason: FinishReason | None = None


class ChatCompletionChunk(BaseModel):
    id: str = Field(default_factory=_completion_id)
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str = "notion"
    choices: list[ChunkChoice]

    @classmethod
    def build(
        cls,
        model: str,
        content: str | None,
        finish_reason: FinishReason | None = None,
        chunk_id: str | None = None,
    ) -> ChatCompletionChunk:
        return cls(
            id=chunk_id or _completion_id(),
            model=model,
            choices=[ChunkChoice(delta=ChoiceDelta(content=content), finish_reason=finish_reason)],
        )

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json()}\n\n"


class CompletionMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class CompletionChoice(BaseModel):
    index: int = 0
    message: CompletionMessage
    finish_reason: FinishReason


class Usage(BaseModel):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class ChatCompletion(BaseModel):
    id: str = Field(default_factory=_completion_id)
    object: Literal["chat.completion"] = "chat.completion"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str
    choices: list[CompletionChoice]
    usage: Usage = Field(default_factory=Usage)


class ModelCard(BaseModel):
    id: str
    object: Literal["model"] = "model"
    owned_by: str = "notion"


class ModelList(BaseModel):
    object: Literal["list"] = "list"
    data: list[ModelCard]


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str
    initialized: bool
    valid_cookies: int
    active_streams: int


# --- Notion transcript payload ----------------------------------------------


class _CamelModel(BaseModel):
    model_config = {"populate_by_name": True}

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TranscriptConfigValue(_CamelModel):
    type: str = "markdown-chat"
    model: str | None = None


class TranscriptContextValue(_CamelModel):
    user_id: str = Field(alias="userId")
    space_id: str = Field(alias="spaceId")
    surface: str = "home_module"
    timezone: str
    user_name: str = Field(alias="userName")
    space_name: str = Field(alias="spaceName")
    space_view_id: str = Field(alias="spaceViewId")
    current_datetime: str = Field(alias="currentDatetime")


class TranscriptItem(_CamelModel):
    type: Literal["config", "context", "agent-integration", "user", "markdown-chat"]
    value: Any = None
    user_id: str | None = Field(default=None, alias="userId")
    trace_id: str | None = Field(default=None, alias="traceId")
    created_at: str | None = Field(default=None, alias="createdAt")


class DebugOverrides(_CamelModel):
    cached_inferences: dict[str, Any] = Field(default_factory=dict, alias="cachedInferences")
    annotation_inferences: dict[str, Any] = Field(default_factory=dict, alias="annotationInferences")
    emit_inferences: bool = Field(default=False, alias="emitInferences")


class TranscriptPayload(_CamelModel):
    space_id: str = Field(alias="spaceId")
    transcript: list[TranscriptItem]
    # Absent (not null) starts a new Notion conversation
    thread_id: str | None = Field(default=None, alias="threadId")
    create_thread: bool = Field(default=False, alias="createThread")
    trace_id: str = Field(alias="traceId")
    debug_overrides: DebugOverrides = Field(default_factory=DebugOverrides, alias="debugOverrides")
    generate_title: bool = Field(default=False, alias="generateTitle")
    save_all_thread_operations: bool = Field(default=False, alias="saveAllThreadOperations")


# --- Admin surface ----------------------------------------------------------


class AddCookiesRequest(BaseModel):
    cookies: str = Field(..., min_length=1)
    thread_id: str | None = Field(default=None, alias="threadId")

    model_config = {"populate_by_name": True}


class SetThreadRequest(BaseModel):
    user_id: str = Field(..., alias="userId", min_length=1)
    thread_id: str | None = Field(default=None, alias="threadId")

    model_config = {"populate_by_name": True}


class ToggleRequest(BaseModel):
    enabled: bool
