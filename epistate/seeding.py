"""Random initial infections.

Each day the seeding schedule gives how many persons to infect; the
total is bounded by initial_infections. Candidates are susceptible
persons matching the optional district and age filters. When fewer
candidates than needed match, the whole population is used instead and
a warning is logged and reported.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from epistate.config import SimulationConfig
from epistate.events import EventLog, InitialInfectionEvent, WarningEvent
from epistate.person import Person
from epistate.types import DiseaseStatus, VirusStrain, parse_enum, start_of_day
from epistate.utils import find_valid_entry, int_keys

logger = logging.getLogger(__name__)


class RandomInitialInfections:

    def __init__(
        self,
        config: SimulationConfig,
        rng: np.random.Generator,
        events: Optional[EventLog] = None,
    ):
        self.config = config.seeding
        self.default_age = config.infection.default_age
        self.rng = rng
        self.events = events
        self.strain = parse_enum(VirusStrain, self.config.strain)
        self.schedule = int_keys(self.config.infections_per_day)
        self.infections_left = self.config.initial_infections

    def _matches(self, person: Person) -> bool:
        cfg = self.config
        if cfg.district is not None and person.district != cfg.district:
            return False
        age = self.default_age if person.age is None else person.age
        if cfg.lower_age is not None and age < cfg.lower_age:
            return False
        if cfg.upper_age is not None and age > cfg.upper_age:
            return False
        return True

    def handle_infections(self, persons: Sequence[Person], day: int) -> int:
        """Seed today's initial infections.

        Args:
            persons: Persons sorted by id.
            day: Current day.

        Returns:
            Number of persons infected.
        """
        if self.infections_left <= 0:
            return 0
        wanted = min(find_valid_entry(self.schedule, 1, day), self.infections_left)
        if wanted <= 0:
            return 0

        candidates = [
            p for p in persons
            if p.disease_status == DiseaseStatus.SUSCEPTIBLE and self._matches(p)
        ]
        if len(candidates) < wanted:
            message = (
                f"Not enough persons match the initial infection requirement "
                f"({len(candidates)} < {wanted}), using whole population"
            )
            logger.warning(message)
            if self.events is not None:
                self.events.record(WarningEvent(day, "seeding", message))
            candidates = list(persons)

        infected = 0
        now = start_of_day(day)
        for idx in self.rng.permutation(len(candidates)):
            if infected >= wanted:
                break
            person = candidates[idx]
            if person.disease_status != DiseaseStatus.SUSCEPTIBLE:
                continue
            person.set_initial_infection(now, self.strain)
            if self.events is not None:
                self.events.record(InitialInfectionEvent(day, person.person_id, self.strain))
            logger.debug("Person %s has initial infection", person.person_id)
            infected += 1

        self.infections_left -= infected
        return infected
