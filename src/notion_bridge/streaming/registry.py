"""Per-client output streams.

A ``StreamSession`` is the channel between the gateway (writer) and the HTTP
response (reader). The ``StreamRegistry`` keeps at most one open session per
client id: registering a new one closes the previous one first.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable

logger = logging.getLogger(__name__)

DONE_FRAME = "data: [DONE]\n\n"

# Content frames a reader may fall behind by before writers wait
MAX_PENDING_FRAMES = 256

_EOF = None


class StreamSession:
    def __init__(self, client_id: str, max_pending: int = MAX_PENDING_FRAMES) -> None:
        self.client_id = client_id
        self.max_pending = max_pending
        self.timeout_handle: asyncio.TimerHandle | None = None
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False
        self._task: asyncio.Task | None = None
        self._close_callbacks: list[Callable[[StreamSession], None]] = []
        self._drained = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, frame: str) -> bool:
        """Queue a frame; returns False once the session is closed."""
        if self._closed:
            return False
        self._queue.put_nowait(frame)
        return True

    async def send(self, frame: str) -> bool:
        """Like ``write``, but waits while the reader is ``max_pending`` frames behind.

        Terminal frames go through ``finish`` and never wait, so a request can
        always end even when its reader has stalled.
        """
        while not self._closed and self._queue.qsize() >= self.max_pending:
            self._drained.clear()
            await self._drained.wait()
        return self.write(frame)

    def finish(self, *frames: str) -> bool:
        """Write the terminal frames followed by ``[DONE]`` and close.

        Only the first call has any effect, so a request ends with exactly one
        terminal sequence whichever path gets there first.
        """
        if self._closed:
            return False
        for frame in frames:
            self._queue.put_nowait(frame)
        self._queue.put_nowait(DONE_FRAME)
        self.close()
        return True

    def close(self) -> None:
        """End the session. Idempotent; stops the producing task if another caller closes."""
        if self._closed:
            return
        self._closed = True
        self.cancel_timeout()
        self._queue.put_nowait(_EOF)
        self._drained.set()
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        for callback in self._close_callbacks:
            try:
                callback(self)
            except Exception:
                logger.exception("Close callback failed for client %s", self.client_id)

    def cancel_timeout(self) -> None:
        if self.timeout_handle is not None:
            self.timeout_handle.cancel()
            self.timeout_handle = None

    def attach_task(self, task: asyncio.Task) -> None:
        self._task = task

    def add_close_callback(self, callback: Callable[[StreamSession], None]) -> None:
        self._close_callbacks.append(callback)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            self._drained.set()
            if frame is _EOF:
                return
            yield frame


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class StreamRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, StreamSession] = {}

    def register(self, client_id: str, session: StreamSession) -> StreamSession:
        previous = self._sessions.get(client_id)
        if previous is not None and previous is not session:
            logger.info("Superseding open stream for client %s", client_id)
            self.close(client_id)

        self._sessions[client_id] = session
        session.add_close_callback(self._deregister)
        logger.debug("Registered stream for client %s", client_id)
        return session

    def close(self, client_id: str, session: StreamSession | None = None) -> None:
        """Close the client's stream. Idempotent.

        With ``session`` given, only that exact session is closed, so a
        superseded request tearing down never closes its successor.
        """
        current = self._sessions.get(client_id)
        if current is None or (session is not None and current is not session):
            return
        logger.debug("Closing stream for client %s", client_id)
        self._sessions.pop(client_id, None)
        current.close()

    def close_all(self) -> None:
        logger.info("Closing all active streams (%d)", len(self._sessions))
        for client_id in list(self._sessions):
            self.close(client_id)

    def get(self, client_id: str) -> StreamSession | None:
        return self._sessions.get(client_id)

    def has(self, client_id: str) -> bool:
        return client_id in self._sessions

    def active_count(self) -> int:
        return len(self._sessions)

    def _deregister(self, session: StreamSession) -> None:
        if self._sessions.get(session.client_id) is session:
            del self._sessions[session.client_id]
            logger.debug("Stream for client %s ended and was removed", session.client_id)
