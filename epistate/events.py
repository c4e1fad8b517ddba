"""State-change events and the in-memory event sink.

Components report what they did (status changes, infections, quarantine
changes, tracing actions, tests, vaccinations, warnings) as small
dataclasses. Reporting and CSV writers live outside the engine and read
from the EventLog.

When enabled=False, all methods are no-ops.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import List, Optional, Type, TypeVar

from epistate.types import (
    DiseaseStatus,
    QuarantineStatus,
    TestStatus,
    VaccinationType,
    VirusStrain,
)


@dataclass(frozen=True)
class Event:
    day: int


@dataclass(frozen=True)
class StatusChangeEvent(Event):
    person_id: str
    old_status: DiseaseStatus
    new_status: DiseaseStatus


@dataclass(frozen=True)
class InfectionEvent(Event):
    """One committed transmission."""
    time: float
    person_id: str
    infector_id: str
    strain: VirusStrain
    container_id: str
    activity: str
    probability: float
    unvac_probability: float


@dataclass(frozen=True)
class InitialInfectionEvent(Event):
    person_id: str
    strain: VirusStrain


@dataclass(frozen=True)
class QuarantineChangeEvent(Event):
    person_id: str
    old_status: QuarantineStatus
    new_status: QuarantineStatus
    reason: str


@dataclass(frozen=True)
class TracingEvent(Event):
    """Quarantine propagated from an index person to one contact."""
    index_id: str
    contact_id: str
    household: bool


@dataclass(frozen=True)
class TestEvent(Event):
    __test__ = False  # not a pytest class

    person_id: str
    result: TestStatus


@dataclass(frozen=True)
class VaccinationEvent(Event):
    person_id: str
    vaccine_type: VaccinationType
    booster: bool


@dataclass(frozen=True)
class WarningEvent(Event):
    source: str
    message: str


E = TypeVar('E', bound=Event)


class EventLog:
    """Thread-safe append-only event sink."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._events: List[Event] = []
        self._lock = threading.Lock()

    def record(self, event: Event) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: Type[E], day: Optional[int] = None) -> List[E]:
        """Events of one type, optionally restricted to a single day."""
        with self._lock:
            return [
                e for e in self._events
                if isinstance(e, event_type) and (day is None or e.day == day)
            ]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        return len(self._events)
