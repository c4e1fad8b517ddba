"""Shared fixtures: per-test context objects, no global registries."""

from typing import Dict, Optional

import pytest

from epistate.config import SimulationConfig, default_config
from epistate.events import EventLog
from epistate.model import Visit
from epistate.person import Person
from epistate.restrictions import RestrictionSchedule
from epistate.rng import create_rng_hierarchy
from epistate.types import DiseaseStatus, VirusStrain, start_of_day


def fixed(days):
    return {'type': 'fixed', 'days': days}


def fixed_transitions():
    """Deterministic dwell times for exact day-boundary checks."""
    return {
        'infected_but_not_contagious': {'contagious': fixed(4)},
        'contagious': {'showing_symptoms': fixed(2), 'recovered': fixed(12)},
        'showing_symptoms': {'seriously_sick': fixed(4), 'recovered': fixed(10)},
        'seriously_sick': {'critical': fixed(1), 'recovered': fixed(13)},
        'critical': {'seriously_sick_after_critical': fixed(9)},
        'seriously_sick_after_critical': {'recovered': fixed(1)},
    }


def fixed_config(**overrides) -> SimulationConfig:
    """Default config with fixed dwell times and no severe courses."""
    config = default_config()
    config.progression.transitions = fixed_transitions()
    config.progression.seriously_sick_by_age = {200: 0.0}
    config.progression.critical_by_age = {200: 0.0}
    for section, values in overrides.items():
        for key, value in values.items():
            setattr(getattr(config, section), key, value)
    return config


class TestContext:
    """Per-test population factory with its own id counter and event log."""
    __test__ = False  # not a pytest class

    def __init__(self, config: Optional[SimulationConfig] = None):
        self.config = config or default_config()
        self.events = EventLog()
        self.persons: Dict[str, Person] = {}
        self.rngs = create_rng_hierarchy(self.config.simulation.seed)
        self._next_id = 0

    def create_person(
        self,
        age: Optional[int] = 30,
        household_id: Optional[str] = None,
        district: Optional[str] = None,
        traceable: bool = True,
    ) -> Person:
        person = Person(
            f"p{self._next_id:05d}", age=age, household_id=household_id,
            district=district, traceable=traceable,
        )
        self._next_id += 1
        self.persons[person.person_id] = person
        return person

    def create_persons(self, n: int, **kwargs):
        return [self.create_person(**kwargs) for _ in range(n)]

    def infect(self, person: Person, day: int, strain=VirusStrain.WILD_TYPE) -> Person:
        person.set_initial_infection(start_of_day(day), strain)
        return person

    def make_symptomatic(self, person: Person, day: int, strain=VirusStrain.WILD_TYPE) -> Person:
        """Walk a susceptible person to showing symptoms on *day*."""
        self.infect(person, day, strain)
        person.set_disease_status(start_of_day(day), DiseaseStatus.CONTAGIOUS)
        person.set_disease_status(start_of_day(day), DiseaseStatus.SHOWING_SYMPTOMS)
        return person

    def make_contagious(self, person: Person, day: int, strain=VirusStrain.WILD_TYPE) -> Person:
        self.infect(person, day, strain)
        person.set_disease_status(start_of_day(day), DiseaseStatus.CONTAGIOUS)
        return person


@pytest.fixture
def ctx() -> TestContext:
    return TestContext()


@pytest.fixture
def fixed_ctx() -> TestContext:
    return TestContext(fixed_config())


def outbreak_config(workers: int = 1, seed: int = 11) -> SimulationConfig:
    """Config exercising seeding, testing, tracing and vaccination together."""
    config = default_config()
    config.simulation.seed = seed
    config.simulation.iterations = 30
    config.simulation.parallel_workers = workers
    config.infection.calibration_parameter = 5e-5
    config.infection.outdoor_fraction = {0: 0.3}
    config.seeding.initial_infections = 4
    config.seeding.infections_per_day = {0: 4}
    config.tracing.start_day = 8
    config.tracing.tracing_probability = 0.7
    config.tracing.capacity = 10
    config.testing.strategy = "fixed_days"
    config.testing.fixed_days = [0, 3]
    config.testing.capacity = 15
    config.vaccination.capacity = 3
    config.vaccination.vaccine_mix = {'mrna': 0.5, 'vector': 0.5}
    config.vaccination.compliance = 0.8
    config.progression.quarantine_symptomatic = True
    return config


def outbreak_restrictions() -> RestrictionSchedule:
    return RestrictionSchedule({
        5: {'leisure': {'remaining_fraction': 0.6, 'mask_usage': {'surgical': 0.5}}},
        12: {'work': {'remaining_fraction': 0.8, 'ci_correction': 0.7}},
    })


def town(n: int = 120, household_size: int = 4, n_workplaces: int = 6):
    """Small population with households, workplaces, a school and leisure venues."""
    persons = [
        Person(f"p{i:04d}", age=5 + (i * 7) % 80, household_id=f"h{i // household_size:03d}")
        for i in range(n)
    ]
    visits = []
    for i, p in enumerate(persons):
        home = f"home_{p.household_id}"
        visits.append(Visit(p.person_id, home, "home", 0.0, 28800.0))
        if 18 <= p.age < 65:
            visits.append(Visit(p.person_id, f"work_{i % n_workplaces}", "work", 32400.0, 61200.0))
        elif p.age < 18:
            visits.append(Visit(p.person_id, "school", "educ_primary", 30600.0, 50400.0))
        visits.append(Visit(p.person_id, f"venue_{i % 5}", "leisure", 64800.0, 72000.0))
        visits.append(Visit(p.person_id, home, "home", 75600.0, 86400.0))
    return persons, visits
