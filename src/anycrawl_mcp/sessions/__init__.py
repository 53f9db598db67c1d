"""Session lifecycle: models and the registry that owns them."""

from anycrawl_mcp.sessions.models import (
    DEFAULT_TENANT,
    PendingDeletion,
    Session,
    SessionState,
    TransportKind,
)
from anycrawl_mcp.sessions.registry import SessionRegistry

__all__ = [
    "DEFAULT_TENANT",
    "PendingDeletion",
    "Session",
    "SessionRegistry",
    "SessionState",
    "TransportKind",
]
