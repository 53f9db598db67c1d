"""Metrics tracking for tool calls."""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class ToolCallMetrics:
    """Metrics for a single tool call."""

    tool: str
    timestamp: datetime
    success: bool
    elapsed_ms: float | None = None
    error: str | None = None


@dataclass
class ServerMetrics:
    """Process-wide tool call metrics."""

    start_time: datetime = field(default_factory=datetime.now)
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    calls_by_tool: Counter[str] = field(default_factory=Counter)
    recent_calls: deque[ToolCallMetrics] = field(default_factory=lambda: deque(maxlen=50))
    recent_errors: deque[ToolCallMetrics] = field(default_factory=lambda: deque(maxlen=20))

    def record_call(
        self,
        tool: str,
        success: bool,
        elapsed_ms: float | None = None,
        error: str | None = None,
    ) -> None:
        """Record a tool call.

        Args:
            tool: Tool name
            success: Whether the call produced a non-error result
            elapsed_ms: Time taken in milliseconds
            error: Error message if failed
        """
        self.total_calls += 1
        self.calls_by_tool[tool] += 1

        if success:
            self.successful_calls += 1
        else:
            self.failed_calls += 1

        metrics = ToolCallMetrics(
            tool=tool,
            timestamp=datetime.now(),
            success=success,
            elapsed_ms=elapsed_ms,
            error=error,
        )
        self.recent_calls.append(metrics)
        if not success:
            self.recent_errors.append(metrics)

    def get_uptime_seconds(self) -> float:
        """Get server uptime in seconds."""
        return (datetime.now() - self.start_time).total_seconds()

    def get_success_rate(self) -> float:
        """Get success rate as percentage."""
        if self.total_calls == 0:
            return 0.0
        return (self.successful_calls / self.total_calls) * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary for JSON serialization."""
        uptime_seconds = self.get_uptime_seconds()

        return {
            "uptime": {
                "seconds": uptime_seconds,
                "formatted": self._format_uptime(uptime_seconds),
            },
            "start_time": self.start_time.isoformat(),
            "tool_calls": {
                "total": self.total_calls,
                "successful": self.successful_calls,
                "failed": self.failed_calls,
                "success_rate": round(self.get_success_rate(), 2),
                "by_tool": dict(self.calls_by_tool),
            },
            "recent_calls": [
                {
                    "tool": c.tool,
                    "timestamp": c.timestamp.isoformat(),
                    "success": c.success,
                    "elapsed_ms": c.elapsed_ms,
                }
                for c in list(self.recent_calls)[-10:][::-1]  # Last 10 calls, newest first
            ],
            "recent_errors": [
                {
                    "tool": c.tool,
                    "timestamp": c.timestamp.isoformat(),
                    "error": c.error,
                }
                for c in list(self.recent_errors)[-10:][::-1]
            ],
        }

    @staticmethod
    def _format_uptime(seconds: float) -> str:
        """Format uptime in human-readable format."""
        if seconds < 60:
            return f"{int(seconds)}s"
        elif seconds < 3600:
            minutes = int(seconds / 60)
            secs = int(seconds % 60)
            return f"{minutes}m {secs}s"
        elif seconds < 86400:
            hours = int(seconds / 3600)
            minutes = int((seconds % 3600) / 60)
            return f"{hours}h {minutes}m"
        else:
            days = int(seconds / 86400)
            hours = int((seconds % 86400) / 3600)
            return f"{days}d {hours}h"


# Global metrics instance
_metrics = ServerMetrics()


def get_metrics() -> ServerMetrics:
    """Get the global metrics instance."""
    return _metrics


def record_tool_call(
    tool: str,
    success: bool,
    elapsed_ms: float | None = None,
    error: str | None = None,
) -> None:
    """Record a tool call in the global metrics."""
    _metrics.record_call(tool, success, elapsed_ms, error)
