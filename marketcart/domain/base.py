"""Base classes for the domain layer.

Provides the building blocks shared by every aggregate: value objects,
entities, aggregate roots that buffer domain events, and the domain
event base itself.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID, uuid4


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ============================================================================
# Value Object Base
# ============================================================================


@dataclass(frozen=True)
class ValueObject(ABC):
    """Base class for value objects.

    Value objects are immutable and compared by their attributes.
    Changing one means building a new instance (``dataclasses.replace``).
    """

    pass


# ============================================================================
# Entity Base
# ============================================================================


T = TypeVar("T")


@dataclass
class Entity(ABC, Generic[T]):
    """Base class for entities.

    Entities keep their identity across state changes; two entities
    are equal when they share a type and an id.

    Attributes:
        id: Unique identifier for this entity.
    """

    id: T

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


# ============================================================================
# Domain Event Base
# ============================================================================


@dataclass(frozen=True)
class DomainEvent(ABC):
    """Base class for domain events.

    Events are immutable records of something that already happened.
    They are buffered on the aggregate that raised them and handed to
    the notification publisher once the aggregate is persisted.

    Attributes:
        event_id: Unique identifier for this event instance.
        event_type: Dotted event name (set by subclass).
        occurred_at: When the event happened.
        aggregate_id: Id of the aggregate that raised the event.
        aggregate_type: Type name of that aggregate.
    """

    event_type: ClassVar[str]

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utc_now)
    aggregate_id: str = field(default="")
    aggregate_type: str = field(default="")

    def to_dict(self) -> dict[str, Any]:
        """Serialize the event for logging and webhook delivery.

        Returns:
            Envelope with the event metadata and its payload.
        """
        return {
            "event_id": str(self.event_id),
            "event_type": self.event_type,
            "occurred_at": self.occurred_at.isoformat(),
            "aggregate_id": self.aggregate_id,
            "aggregate_type": self.aggregate_type,
            "payload": self._payload(),
        }

    @abstractmethod
    def _payload(self) -> dict[str, Any]:
        """Return the event-specific payload."""


E = TypeVar("E", bound=DomainEvent)


# ============================================================================
# Aggregate Root Base
# ============================================================================


@dataclass(kw_only=True)
class AggregateRoot(Entity[T], Generic[T]):
    """Base class for aggregate roots.

    Aggregate roots guard the invariants of everything they own and
    are the only objects repositories load and save.

    Attributes:
        version: Optimistic locking version, incremented on every mutation.
        persisted_version: Version this copy was loaded or last saved at,
            None until the aggregate is first saved.
        created_at: When the aggregate was created.
        updated_at: When the aggregate was last modified.
    """

    aggregate_type: ClassVar[str] = ""

    version: int = field(default=1, compare=False)
    persisted_version: int | None = field(default=None, init=False, repr=False, compare=False)
    created_at: datetime = field(default_factory=utc_now, compare=False)
    updated_at: datetime = field(default_factory=utc_now, compare=False)
    _events: list[DomainEvent] = field(
        default_factory=list,
        init=False,
        repr=False,
        compare=False,
    )

    def _record(self, event_class: type[E], **payload: Any) -> E:
        """Build an event stamped with this aggregate's identity and buffer it.

        Args:
            event_class: Event type to instantiate.
            **payload: Event-specific fields.

        Returns:
            The recorded event.
        """
        event = event_class(
            aggregate_id=str(self.id),
            aggregate_type=self.aggregate_type or type(self).__name__,
            **payload,
        )
        self._events.append(event)
        return event

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear the buffered events."""
        events = self._events.copy()
        self._events.clear()
        return events

    def _touch(self) -> None:
        """Bump ``updated_at`` and ``version``."""
        self.updated_at = utc_now()
        self.version += 1
