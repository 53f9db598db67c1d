"""SessionRegistry: session creation, lookup, reactivation and delayed cleanup."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

from anycrawl_mcp.errors import InvalidSessionError
from anycrawl_mcp.sessions.models import PendingDeletion, Session, SessionState, TransportKind

if TYPE_CHECKING:
    from anycrawl_mcp.protocol import ProtocolEngine

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 300.0
DEFAULT_CLEANUP_INTERVAL = 30.0

INVALID_SESSION_MESSAGE = "Bad Request: No valid session ID provided"


def _new_token() -> str:
    return uuid.uuid4().hex


def mask_tenant(tenant_id: str) -> str:
    """Shorten a tenant credential for log output."""
    if len(tenant_id) <= 8:
        return tenant_id
    return f"{tenant_id[:6]}***"


class SessionRegistry:
    """Owns every stateful session, partitioned by transport kind and tenant.

    All mutations happen inside synchronous methods, so each one completes
    within a single event-loop turn. Sessions whose transport closed are kept
    for a grace period and purged by a periodic sweep unless a request
    reactivates them first.
    """

    def __init__(
        self,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            grace_period: Seconds a closed session stays resumable
            cleanup_interval: Seconds between cleanup sweeps
            clock: Monotonic time source, replaceable in tests
            token_factory: Token generator (default: random uuid4 hex)
        """
        self.grace_period = grace_period
        self.cleanup_interval = cleanup_interval
        self.clock = clock
        self.token_factory = token_factory or _new_token
        self._partitions: dict[TransportKind, dict[str, dict[str, Session]]] = {kind: {} for kind in TransportKind}
        self._pending: dict[tuple[str, str, TransportKind], PendingDeletion] = {}
        self._task: asyncio.Task[None] | None = None

    def create(self, tenant_id: str, kind: TransportKind, engine: ProtocolEngine) -> Session:
        """Register a new session with a registry-generated token.

        The engine's notifications are routed to the new session's outbox.
        """
        partition = self._partitions[kind].setdefault(tenant_id, {})
        token = self.token_factory()
        while token in partition:
            token = self.token_factory()

        now = self.clock()
        session = Session(
            session_token=token,
            tenant_id=tenant_id,
            kind=kind,
            engine=engine,
            created_at=now,
            last_activity_at=now,
        )
        engine.notify = session.notify
        partition[token] = session

        logger.info(f"Created {kind.value} session {token} for tenant {mask_tenant(tenant_id)}")
        return session

    def get(self, tenant_id: str, token: str, kind: TransportKind) -> Session | None:
        """Look up a session without touching its state."""
        return self._partitions[kind].get(tenant_id, {}).get(token)

    def resolve(self, tenant_id: str, token: str | None, kind: TransportKind) -> Session:
        """Return the session a request addresses, reactivating it if needed.

        Never creates a session.

        Raises:
            InvalidSessionError: If the token is missing, unknown or expired
        """
        if not token:
            raise InvalidSessionError(INVALID_SESSION_MESSAGE)

        session = self.get(tenant_id, token, kind)
        if session is None or session.state is SessionState.EXPIRED:
            raise InvalidSessionError(INVALID_SESSION_MESSAGE)

        if session.state is SessionState.PENDING_CLOSE:
            self._pending.pop((tenant_id, token, kind), None)
            session.state = SessionState.ACTIVE
            logger.info(f"Reactivated {kind.value} session {token} for tenant {mask_tenant(tenant_id)}")

        session.last_activity_at = self.clock()
        return session

    def find_by_token(self, token: str | None, kind: TransportKind) -> Session:
        """Resolve a session by token alone, scanning every tenant partition.

        Raises:
            InvalidSessionError: If no tenant holds a live session with this token
        """
        if token:
            for tenant_id, partition in self._partitions[kind].items():
                if token in partition:
                    return self.resolve(tenant_id, token, kind)
        raise InvalidSessionError(INVALID_SESSION_MESSAGE)

    def mark_closed(self, tenant_id: str, token: str, kind: TransportKind) -> None:
        """Schedule deletion after the grace period; the transport went away."""
        session = self.get(tenant_id, token, kind)
        if session is None or session.state is not SessionState.ACTIVE:
            return

        deadline = self.clock() + self.grace_period
        entry = PendingDeletion(tenant_id, token, kind, deadline)
        self._pending[entry.key] = entry
        session.state = SessionState.PENDING_CLOSE
        logger.info(
            f"Scheduled deletion of {kind.value} session {token} for tenant "
            f"{mask_tenant(tenant_id)} in {self.grace_period:g}s"
        )

    def reschedule_if_detached(self, session: Session) -> None:
        """Put a session whose event stream is gone back on its grace period.

        A request may reactivate such a session, but nothing would report
        its close again, so the deletion is rescheduled once the request
        is done.
        """
        if session.stream_generation and not session.streaming:
            self.mark_closed(session.tenant_id, session.session_token, session.kind)

    def close(self, tenant_id: str, token: str, kind: TransportKind) -> bool:
        """Purge a session immediately. Safe to call more than once.

        Returns:
            True if a session was removed
        """
        return self._purge(tenant_id, token, kind)

    def _purge(self, tenant_id: str, token: str, kind: TransportKind) -> bool:
        self._pending.pop((tenant_id, token, kind), None)
        partition = self._partitions[kind].get(tenant_id)
        session = partition.pop(token, None) if partition else None
        if session is None:
            return False

        session.close()
        logger.info(f"Removed {kind.value} session {token} for tenant {mask_tenant(tenant_id)}")
        return True

    def sweep(self) -> int:
        """Purge every closed session whose grace period has elapsed.

        A failure purging one session is logged and does not stop the others.

        Returns:
            Number of sessions purged
        """
        now = self.clock()
        due = [entry for entry in self._pending.values() if entry.deadline <= now]

        purged = 0
        for entry in due:
            session = self.get(entry.tenant_id, entry.session_token, entry.kind)
            if session is not None and session.state is not SessionState.PENDING_CLOSE:
                self._pending.pop(entry.key, None)
                continue
            try:
                if self._purge(entry.tenant_id, entry.session_token, entry.kind):
                    purged += 1
            except Exception:
                logger.exception(f"Failed to clean up {entry.kind.value} session {entry.session_token}")

        if purged:
            logger.info(f"Cleanup completed: deleted {purged} expired sessions")
        return purged

    def start(self) -> None:
        """Start the periodic cleanup sweep on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_cleanup())
            logger.debug(f"Session cleanup running every {self.cleanup_interval:g}s")

    async def stop(self) -> None:
        """Stop the cleanup sweep and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_cleanup(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.sweep()

    def close_all(self) -> int:
        """Purge every session regardless of state."""
        keys = [(session.tenant_id, session.session_token, session.kind) for session in self]
        closed = 0
        for key in keys:
            try:
                if self._purge(*key):
                    closed += 1
            except Exception:
                logger.exception(f"Failed to close {key[2].value} session {key[1]}")
        return closed

    async def __aenter__(self) -> SessionRegistry:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
        self.close_all()

    def __iter__(self) -> Iterator[Session]:
        for tenants in self._partitions.values():
            for partition in tenants.values():
                yield from list(partition.values())

    def __len__(self) -> int:
        return sum(len(partition) for tenants in self._partitions.values() for partition in tenants.values())

    def pending_deletions(self) -> list[PendingDeletion]:
        return list(self._pending.values())

    def stats(self) -> dict[str, Any]:
        """Session counts per transport kind and state, for the stats endpoint."""
        by_kind: dict[str, dict[str, int]] = {}
        for kind, tenants in self._partitions.items():
            counts = {state.value: 0 for state in SessionState if state is not SessionState.EXPIRED}
            for partition in tenants.values():
                for session in partition.values():
                    counts[session.state.value] = counts.get(session.state.value, 0) + 1
            by_kind[kind.value] = {"tenants": sum(1 for p in tenants.values() if p), **counts}

        return {
            "total": len(self),
            "pending_deletions": len(self._pending),
            "grace_period_seconds": self.grace_period,
            "cleanup_interval_seconds": self.cleanup_interval,
            "by_transport": by_kind,
        }
