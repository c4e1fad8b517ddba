"""Testing model.

Strategies:
  none        no testing
  fixed_days  everybody is eligible on the listed weekdays (day % 7)
  activities  persons performing one of the listed activities today

Eligible persons not tested within retest_interval_days are tested in
person-id order until the day's capacity is used up; the rest are
skipped for the day. Results carry configurable false-positive and
false-negative rates. A positive result can put the person into home
quarantine and, after the tracing delay, triggers contact tracing.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence

import numpy as np

from epistate.config import SimulationConfig
from epistate.events import EventLog, TestEvent
from epistate.person import Person
from epistate.tracing import set_quarantine
from epistate.types import HOSPITALISED, INFECTIOUS, QuarantineStatus, TestStatus
from epistate.utils import find_valid_entry, int_keys


class TestingModel:
    __test__ = False  # not a pytest class

    def __init__(
        self,
        config: SimulationConfig,
        rng: np.random.Generator,
        events: Optional[EventLog] = None,
    ):
        self.config = config.testing
        self.rng = rng
        self.events = events
        self.capacity_schedule = int_keys(self.config.capacity_schedule)
        self.activities = frozenset(self.config.activities)
        self.iteration = 0
        self.capacity_left = 0

    def set_iteration(self, day: int) -> None:
        self.iteration = day
        self.capacity_left = find_valid_entry(
            self.capacity_schedule, self.config.capacity, day
        )

    def is_eligible(self, person: Person, day: int, activities: Iterable[str]) -> bool:
        strategy = self.config.strategy
        if strategy == "none":
            return False
        if person.disease_status in HOSPITALISED:
            return False
        since = person.days_since_test(day)
        if since is not None and since < self.config.retest_interval_days:
            return False
        if strategy == "fixed_days":
            return (day % 7) in self.config.fixed_days
        return any(a in self.activities for a in activities)

    def test_person(self, person: Person, day: int) -> TestStatus:
        """Test one person, applying the error rates."""
        u = self.rng.random()
        if person.disease_status in INFECTIOUS:
            result = TestStatus.NEGATIVE if u < self.config.false_negative_rate else TestStatus.POSITIVE
        else:
            result = TestStatus.POSITIVE if u < self.config.false_positive_rate else TestStatus.NEGATIVE
        person.set_test_status(result, day)
        if self.events is not None:
            self.events.record(TestEvent(day, person.person_id, result))
        if result == TestStatus.POSITIVE and self.config.quarantine_positive:
            if person.quarantine_status == QuarantineStatus.NO:
                set_quarantine(person, QuarantineStatus.AT_HOME, day, "test", self.events)
        return result

    def perform_testing(
        self,
        persons: Sequence[Person],
        day: int,
        activities: Mapping[str, Iterable[str]],
    ) -> int:
        """Test eligible persons in the given (person-id) order.

        Args:
            persons: Persons sorted by id.
            day: Current day.
            activities: Person id → activities performed today.

        Returns:
            Number of tests performed.
        """
        if self.config.strategy == "none":
            return 0
        performed = 0
        for person in persons:
            if self.capacity_left <= 0:
                break
            if not self.is_eligible(person, day, activities.get(person.person_id, ())):
                continue
            self.test_person(person, day)
            self.capacity_left -= 1
            performed += 1
        return performed
