"""Upstream streaming: NDJSON decoding, per-client sessions and the gateway."""

from .decoder import NDJSONDecoder, content_of
from .gateway import StreamingGateway, StreamState, collect_completion
from .registry import DONE_FRAME, StreamRegistry, StreamSession

__all__ = [
    "NDJSONDecoder",
    "content_of",
    "StreamingGateway",
    "StreamState",
    "collect_completion",
    "DONE_FRAME",
    "StreamRegistry",
    "StreamSession",
]
