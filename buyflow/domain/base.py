"""Building blocks of the checkout model.

ValueObject marks immutable data such as money and addresses.
AggregateRoot gives CheckoutAttempt its identity and an event log, and
DomainEvent is the record written to that log on each state change.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID, uuid4


@dataclass(frozen=True)
class ValueObject:
    """Immutable data compared by value."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened to a checkout attempt.

    Subclasses set ``event_type`` and add their own fields; every field
    beyond the common ones below ends up in the serialized payload.

    Attributes:
        attempt_id: Attempt that recorded the event.
        checkout_token: Remote checkout token at the time, if any.
        event_id: Unique identifier for this event instance.
        occurred_at: When the event was recorded.
    """

    event_type: ClassVar[str]
    _envelope: ClassVar[frozenset[str]] = frozenset(
        {"attempt_id", "checkout_token", "event_id", "occurred_at"}
    )

    attempt_id: str = ""
    checkout_token: str | None = None
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_utcnow)

    @property
    def payload(self) -> dict[str, Any]:
        data = {}
        for f in fields(self):
            if f.name in self._envelope:
                continue
            value = getattr(self, f.name)
            data[f.name] = list(value) if isinstance(value, tuple) else value
        return data

    def to_dict(self) -> dict[str, Any]:
        """Serialize for audit logs."""
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "attempt_id": self.attempt_id,
            "checkout_token": self.checkout_token,
            "payload": self.payload,
        }


IdT = TypeVar("IdT")
EventT = TypeVar("EventT", bound=DomainEvent)


@dataclass(kw_only=True, eq=False)
class AggregateRoot(Generic[IdT]):
    """Identity, revision counter and event log of an aggregate.

    Aggregates are equal when their ids are. ``version`` goes up on every
    change so a caller holding an attempt can tell it moved on.
    """

    id: IdT
    version: int = field(default=1, compare=False)
    updated_at: datetime = field(default_factory=_utcnow, compare=False)
    _events: list[DomainEvent] = field(
        default_factory=list,
        init=False,
        repr=False,
        compare=False,
    )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def _record_event(self, event_type: type[EventT], **event_fields: Any) -> EventT:
        event = event_type(attempt_id=str(self.id), **event_fields)
        self._events.append(event)
        return event

    def collect_events(self) -> list[DomainEvent]:
        """Return the events recorded so far and start a new log."""
        events, self._events = self._events, []
        return events

    def _touch(self) -> None:
        self.updated_at = _utcnow()
        self.version += 1
