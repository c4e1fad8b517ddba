"""Contact tracing engine.

When a person starts showing symptoms (or tests positive), the
progression model calls trace() once the tracing delay has passed. The
engine then quarantines the person's traced contacts recorded within the
tracing period before the trigger day.

  - Household members are quarantined unconditionally when
    quarantine_household_members is set (no probability, no capacity).
  - Every other contact is traced independently with
    tracing_probability.
  - A finite daily capacity truncates the day's work in person-id
    order. per_contact counts processed contacts, per_person counts
    index persons. Whatever exceeds the capacity is dropped for the day.

Tracing never downgrades a stricter quarantine and never changes
disease status.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Mapping, Optional

import numpy as np

from epistate.config import SimulationConfig
from epistate.events import EventLog, QuarantineChangeEvent, TracingEvent
from epistate.person import Person
from epistate.types import (
    HOSPITALISED,
    DiseaseStatus,
    QuarantineStatus,
    parse_enum,
    start_of_day,
)
from epistate.utils import find_valid_entry, int_keys

logger = logging.getLogger(__name__)


def set_quarantine(
    person: Person,
    status: QuarantineStatus,
    day: int,
    reason: str,
    events: Optional[EventLog] = None,
) -> bool:
    """Change a person's quarantine status and report it.

    Returns:
        False if the person already had exactly this status.
    """
    old = person.quarantine_status
    if old == status:
        return False
    person.set_quarantine_status(status, day)
    if events is not None:
        events.record(QuarantineChangeEvent(day, person.person_id, old, status, reason))
    return True


def build_households(persons: Mapping[str, Person]) -> Dict[str, List[str]]:
    """Household id → sorted member ids."""
    households: Dict[str, List[str]] = defaultdict(list)
    for pid, person in persons.items():
        if person.household_id is not None:
            households[person.household_id].append(pid)
    return {hh: sorted(members) for hh, members in households.items()}


class TracingEngine:
    """Capacity- and delay-constrained quarantine propagation."""

    def __init__(
        self,
        config: SimulationConfig,
        persons: Mapping[str, Person],
        rng: np.random.Generator,
        events: Optional[EventLog] = None,
    ):
        self.config = config.tracing
        self.persons = persons
        self.rng = rng
        self.events = events
        self.households = build_households(persons)
        self.quarantine_status = parse_enum(QuarantineStatus, self.config.quarantine_status)
        self.capacity_schedule = int_keys(self.config.capacity_schedule)

        self.iteration = 0
        self.capacity_left: Optional[int] = None
        self.traced_today = 0

    @property
    def delay(self) -> int:
        return self.config.tracing_delay_days

    def is_active(self, day: int) -> bool:
        start = self.config.start_day
        return start is not None and day >= start

    def set_iteration(self, day: int) -> None:
        self.iteration = day
        self.capacity_left = find_valid_entry(
            self.capacity_schedule, self.config.capacity, day
        )
        self.traced_today = 0

    def apply_equipment_rate(self) -> int:
        """Make persons without a tracing device untraceable.

        Returns:
            Number of persons made untraceable.
        """
        rate = self.config.equipment_rate
        if rate >= 1.0:
            return 0
        removed = 0
        for pid in sorted(self.persons):
            if self.rng.random() >= rate:
                self.persons[pid].traceable = False
                removed += 1
        logger.info("%d of %d persons carry no tracing device", removed, len(self.persons))
        return removed

    def contact_cutoff(self, trigger_day: int) -> float:
        """Earliest contact time still eligible for a trigger on *trigger_day*."""
        return start_of_day(trigger_day - self.config.tracing_period_days)

    def _quarantine(self, index: Person, contact: Person, day: int, household: bool) -> bool:
        if contact.quarantine_status >= self.quarantine_status:
            return False
        set_quarantine(contact, self.quarantine_status, day, "tracing", self.events)
        if self.events is not None:
            self.events.record(TracingEvent(day, index.person_id, contact.person_id, household))
        return True

    def trace(self, person: Person, day: int, trigger_day: Optional[int] = None) -> List[str]:
        """Quarantine the traced contacts of *person*.

        Args:
            person: Index person.
            day: Current day (quarantine date).
            trigger_day: Day of symptom onset or positive test;
                defaults to day - tracing_delay_days.

        Returns:
            Ids of persons quarantined by this call, in processing order.
        """
        if not self.is_active(day):
            return []
        if trigger_day is None:
            trigger_day = day - self.delay

        per_person = self.config.capacity_type == "per_person"
        if per_person and self.capacity_left is not None:
            if self.capacity_left <= 0:
                return []
            self.capacity_left -= 1

        quarantined: List[str] = []
        handled = {person.person_id}

        if self.config.quarantine_household_members and person.household_id is not None:
            for pid in self.households.get(person.household_id, []):
                if pid in handled:
                    continue
                handled.add(pid)
                member = self.persons[pid]
                if member.disease_status in HOSPITALISED:
                    continue
                if self._quarantine(person, member, day, household=True):
                    quarantined.append(pid)

        if self.config.tracing_probability <= 0.0:
            return quarantined

        for pid in person.traceable_contacts(self.contact_cutoff(trigger_day)):
            if pid in handled:
                continue
            handled.add(pid)
            contact = self.persons.get(pid)
            if contact is None or contact.disease_status in HOSPITALISED:
                continue
            if (not self.config.trace_susceptible
                    and contact.disease_status == DiseaseStatus.SUSCEPTIBLE):
                continue
            if contact.quarantine_status >= self.quarantine_status:
                continue

            if not per_person and self.capacity_left is not None:
                if self.capacity_left <= 0:
                    break
                self.capacity_left -= 1

            if self.rng.random() < self.config.tracing_probability:
                if self._quarantine(person, contact, day, household=False):
                    quarantined.append(pid)

        self.traced_today += len(quarantined)
        return quarantined
