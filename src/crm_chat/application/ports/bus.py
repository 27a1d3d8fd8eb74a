from __future__ import annotations

from typing import Any, AsyncIterator, Protocol

Event = tuple[str, dict[str, Any]]


class EventPublisher(Protocol):
    async def publish(self, event_type: str, payload: dict[str, Any]) -> None: ...


class Subscription(Protocol):
    """Live channel returned by every subscribe call. Must be closed by its owner."""

    async def get(self) -> Event | None:
        """Next event, or None once the subscription is closed."""
        ...

    def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[Event]: ...


class EventSource(Protocol):
    def subscribe(self, *topics: str) -> Subscription: ...
