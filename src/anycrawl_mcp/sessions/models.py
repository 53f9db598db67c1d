"""Session data model."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from anycrawl_mcp.protocol import ProtocolEngine

logger = logging.getLogger(__name__)

DEFAULT_TENANT = "default"

# Undelivered messages kept per session while no event stream drains them
OUTBOX_LIMIT = 1000


class SessionState(str, Enum):
    """Lifecycle state of a session."""

    ACTIVE = "active"
    PENDING_CLOSE = "pending_close"
    EXPIRED = "expired"


class TransportKind(str, Enum):
    """Stateful transport a session belongs to; each kind has its own token namespace."""

    STREAMABLE_HTTP = "mcp"
    SSE = "sse"


@dataclass
class Session:
    """One logical client conversation.

    Owns its protocol engine and an outbox of JSON-RPC payloads that an
    attached event stream drains.
    """

    session_token: str
    tenant_id: str
    kind: TransportKind
    engine: ProtocolEngine
    state: SessionState = SessionState.ACTIVE
    created_at: float = 0.0
    last_activity_at: float = 0.0
    outbox: asyncio.Queue[dict[str, Any]] = field(default_factory=lambda: asyncio.Queue(maxsize=OUTBOX_LIMIT))
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    closed: asyncio.Event = field(default_factory=asyncio.Event)
    stream_generation: int = 0
    streaming: bool = False
    superseded: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    async def send(self, message: dict[str, Any]) -> None:
        """Queue a message for the event stream, dropping it if the outbox is full."""
        try:
            self.outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for session {self.session_token}, dropping message")

    async def notify(self, message: dict[str, Any]) -> None:
        """Queue a server notification; discarded while no event stream is attached."""
        if not self.streaming:
            logger.debug(f"No event stream for session {self.session_token}, dropping notification")
            return
        await self.send(message)

    async def next_message(self, generation: int | None = None) -> dict[str, Any] | None:
        """Wait for the next outbound message.

        Args:
            generation: Generation of the calling stream; a replaced stream gets None

        Returns:
            The message, or None once the session has been closed or the
            stream replaced
        """
        if self.closed.is_set():
            return None
        if generation is not None and generation != self.stream_generation:
            return None

        getter = asyncio.ensure_future(self.outbox.get())
        waiters = {getter, asyncio.ensure_future(self.closed.wait())}
        if generation is not None:
            waiters.add(asyncio.ensure_future(self.superseded.wait()))
        try:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        if getter in done:
            return getter.result()
        return None

    def attach_stream(self) -> int:
        """Register a newly opened event stream and return its generation.

        Any earlier stream stops reading the outbox. Only the most recently
        attached stream may report the transport as closed.
        """
        self.superseded.set()
        self.superseded = asyncio.Event()
        self.stream_generation += 1
        self.streaming = True
        return self.stream_generation

    def detach_stream(self, generation: int) -> bool:
        """Record that the stream of ``generation`` went away.

        Returns:
            True if it was the current stream
        """
        if generation != self.stream_generation:
            return False
        self.streaming = False
        return True

    def close(self) -> None:
        """Release the engine and end any attached stream."""
        self.state = SessionState.EXPIRED
        self.closed.set()
        self.engine.close()


@dataclass(frozen=True)
class PendingDeletion:
    """A scheduled purge of a session whose transport closed."""

    tenant_id: str
    session_token: str
    kind: TransportKind
    deadline: float

    @property
    def key(self) -> tuple[str, str, TransportKind]:
        return (self.tenant_id, self.session_token, self.kind)
