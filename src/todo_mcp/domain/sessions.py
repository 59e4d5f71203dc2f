"""Domain models for protocol sessions."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

RequestId = int | str


class SessionStatus(StrEnum):
    """Lifecycle states of a protocol session."""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class SessionRecord:
    """Canonical state of one client session, owned by the registry."""

    id: str
    status: SessionStatus = SessionStatus.UNINITIALIZED
    pending_requests: set[RequestId] = field(default_factory=set)
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    last_active_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    protocol_version: str | None = None
    client_info: dict[str, object] = field(default_factory=dict)
    client_initialized: bool = False
    close_reason: str | None = None

    def touch(self) -> None:
        """Record client activity."""
        self.last_active_at = datetime.now(tz=UTC)

    def idle_seconds(self, now: datetime | None = None) -> float:
        current = now or datetime.now(tz=UTC)
        return (current - self.last_active_at).total_seconds()
