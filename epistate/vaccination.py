"""Vaccination model.

Compliance is decided once at the start of a run: persons drawn as
non-compliant are marked unvaccinable for good. Each day up to the
day's capacity of first doses goes to randomly chosen eligible persons
(vaccinable, unvaccinated, susceptible, old enough); the vaccine type
is drawn from vaccine_mix. Boosters go to persons whose last dose is at
least booster_after_days old, up to booster_capacity per day. Recently
recovered persons are skipped for both.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from epistate.config import SimulationConfig
from epistate.events import EventLog, VaccinationEvent
from epistate.person import Person
from epistate.types import (
    DiseaseStatus,
    VaccinationStatus,
    VaccinationType,
    parse_enum,
)
from epistate.utils import find_valid_entry, int_keys


class VaccinationModel:

    def __init__(
        self,
        config: SimulationConfig,
        rng: np.random.Generator,
        events: Optional[EventLog] = None,
    ):
        self.config = config.vaccination
        self.default_age = config.infection.default_age
        self.rng = rng
        self.events = events
        self.capacity_schedule = int_keys(self.config.capacity_schedule)

        mix = {parse_enum(VaccinationType, k): float(v)
               for k, v in self.config.vaccine_mix.items() if v > 0}
        self.types: List[VaccinationType] = sorted(mix)
        total = sum(mix.values())
        self.shares = np.array([mix[t] / total for t in self.types]) if total > 0 else None
        self.booster_type = parse_enum(VaccinationType, self.config.booster_type)

    def init_compliance(self, persons: Sequence[Person]) -> int:
        """Mark non-compliant persons unvaccinable.

        Returns:
            Number of persons marked.
        """
        if self.config.compliance >= 1.0:
            return 0
        marked = 0
        for person in persons:
            if self.rng.random() >= self.config.compliance:
                person.mark_unvaccinable()
                marked += 1
        return marked

    def _old_enough(self, person: Person) -> bool:
        age = self.default_age if person.age is None else person.age
        return age >= self.config.min_age

    def handle_vaccination(self, persons: Sequence[Person], day: int) -> int:
        """Administer the day's first doses and boosters.

        Args:
            persons: Persons sorted by id.
            day: Current day.

        Returns:
            Number of doses given.
        """
        given = 0
        capacity = find_valid_entry(self.capacity_schedule, self.config.capacity, day)
        if capacity > 0 and self.shares is not None:
            candidates = [
                p for p in persons
                if p.vaccinable
                and p.vaccination_status == VaccinationStatus.NO
                and p.disease_status == DiseaseStatus.SUSCEPTIBLE
                and self._old_enough(p)
                and not p.is_recently_recovered(day)
            ]
            n = min(capacity, len(candidates))
            if n > 0:
                chosen = self.rng.choice(len(candidates), size=n, replace=False)
                for idx in sorted(chosen):
                    person = candidates[idx]
                    vtype = self.types[self.rng.choice(len(self.types), p=self.shares)]
                    person.set_vaccination_status(VaccinationStatus.YES, vtype, day)
                    if self.events is not None:
                        self.events.record(VaccinationEvent(day, person.person_id, vtype, False))
                    given += 1

        boosters = self.config.booster_capacity
        if boosters > 0:
            for person in persons:
                if boosters <= 0:
                    break
                if (person.vaccination_status != VaccinationStatus.YES
                        or person.re_vaccination_status == VaccinationStatus.YES
                        or not person.vaccinable
                        or person.is_recently_recovered(day)):
                    continue
                if person.days_since_vaccination(day) < self.config.booster_after_days:
                    continue
                person.set_re_vaccination_status(VaccinationStatus.YES, day, self.booster_type)
                if self.events is not None:
                    self.events.record(
                        VaccinationEvent(day, person.person_id, self.booster_type, True)
                    )
                boosters -= 1
                given += 1
        return given
