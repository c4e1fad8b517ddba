"""Daily simulation loop.

Each simulated day runs in phases:

  1. set_iteration() on every component (outdoor fraction, capacities).
  2. Sequential: random initial infections, then vaccination.
  3. Participation: which planned visits take place given restrictions,
     quarantine and hospitalisation.
  4. Contact phase (parallel): containers are evaluated by a thread
     pool. Every container draws from its own generator derived from
     (seed, day, container index), and workers write only the target's
     pending-infection slot and traced-contact map, so the outcome does
     not depend on the number of workers.
  5. Commit phase (sequential, person-id order): pending infections,
     testing, progression with tracing, traced-contact purge.
  6. Daily compartment counts.

Input is a population of Person objects and a daily activity
trajectory of Visit records; the trajectory is either one list reused
every day or a callable day → visits.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from epistate.antibodies import AntibodyModel
from epistate.config import SimulationConfig, validate_config
from epistate.events import EventLog, InfectionEvent, StatusChangeEvent
from epistate.infection import FaceMaskModel, InfectionModel
from epistate.person import PendingInfection, Person
from epistate.progression import ProgressionModel
from epistate.restrictions import Restriction, RestrictionSchedule, activity_params
from epistate.rng import container_rng, create_rng_hierarchy
from epistate.seeding import RandomInitialInfections
from epistate.testing import TestingModel
from epistate.tracing import TracingEngine
from epistate.types import (
    HOSPITALISED,
    INFECTIOUS,
    DiseaseStatus,
    QuarantineStatus,
    start_of_day,
)
from epistate.vaccination import VaccinationModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Visit:
    """One planned stay of a person in a container (seconds into the day)."""
    person_id: str
    container_id: str
    activity: str
    enter: float
    leave: float


@dataclass
class Container:
    container_id: str
    visits: List[Visit] = field(default_factory=list)


Trajectory = Union[Sequence[Visit], Callable[[int], Iterable[Visit]]]


@dataclass
class DailyCounts:
    day: int
    status_counts: np.ndarray
    new_infections: int = 0
    initial_infections: int = 0
    quarantined: int = 0
    tests: int = 0
    vaccinations: int = 0
    traced: int = 0


@dataclass
class SimulationResult:
    """Daily timeseries of one run."""
    n_days: int = 0
    # (n_days, len(DiseaseStatus)) persons per status at end of day
    status_counts: Optional[np.ndarray] = None
    new_infections: Optional[np.ndarray] = None
    initial_infections: Optional[np.ndarray] = None
    quarantined: Optional[np.ndarray] = None
    tests: Optional[np.ndarray] = None
    vaccinations: Optional[np.ndarray] = None
    traced: Optional[np.ndarray] = None
    events: Optional[EventLog] = None

    def counts_of(self, status: DiseaseStatus) -> np.ndarray:
        return self.status_counts[:, int(status)]

    @classmethod
    def from_days(cls, days: Sequence[DailyCounts], events: Optional[EventLog] = None):
        n_status = len(DiseaseStatus)
        return cls(
            n_days=len(days),
            status_counts=(np.array([d.status_counts for d in days], dtype=np.int64)
                           if days else np.zeros((0, n_status), dtype=np.int64)),
            new_infections=np.array([d.new_infections for d in days], dtype=np.int64),
            initial_infections=np.array([d.initial_infections for d in days], dtype=np.int64),
            quarantined=np.array([d.quarantined for d in days], dtype=np.int64),
            tests=np.array([d.tests for d in days], dtype=np.int64),
            vaccinations=np.array([d.vaccinations for d in days], dtype=np.int64),
            traced=np.array([d.traced for d in days], dtype=np.int64),
            events=events,
        )


class EpidemicModel:
    """Owns the population and all engine components of one run."""

    def __init__(
        self,
        config: SimulationConfig,
        persons: Iterable[Person],
        trajectory: Trajectory,
        restrictions: Optional[RestrictionSchedule] = None,
        events: Optional[EventLog] = None,
    ):
        validate_config(config)
        self.config = config
        self.persons: Dict[str, Person] = {}
        for person in sorted(persons, key=lambda p: p.person_id):
            if person.person_id in self.persons:
                raise ValueError(f"Duplicate person id '{person.person_id}'")
            self.persons[person.person_id] = person
        self.ordered: List[Person] = list(self.persons.values())

        self.trajectory = trajectory
        self.restrictions = restrictions or RestrictionSchedule()
        self.events = events if events is not None else EventLog(config.simulation.record_events)
        self.activities = activity_params(config.infection)

        seed = config.simulation.seed
        self.seed = seed
        self.rngs = create_rng_hierarchy(seed)

        self.tracing = TracingEngine(config, self.persons, self.rngs['tracing'], self.events)
        self.progression = ProgressionModel(
            config, self.rngs['progression'], self.tracing, self.events
        )
        self.antibodies = AntibodyModel(config.antibodies)
        self.infection = InfectionModel(
            config, self.progression, self.antibodies, FaceMaskModel(seed)
        )
        self.testing = TestingModel(config, self.rngs['testing'], self.events)
        self.vaccination = VaccinationModel(config, self.rngs['vaccination'], self.events)
        self.seeding = RandomInitialInfections(config, self.rngs['seeding'], self.events)

        self.tracing.apply_equipment_rate()
        self.vaccination.init_compliance(self.ordered)
        self.day = 0

    # ── Phases ──────────────────────────────────────────────────────

    def visits_for_day(self, day: int) -> List[Visit]:
        visits = self.trajectory(day) if callable(self.trajectory) else self.trajectory
        return sorted(visits, key=lambda v: (v.person_id, v.enter, v.container_id))

    def participation(
        self,
        day: int,
        restrictions: Mapping[str, Restriction],
    ) -> List[Visit]:
        """Visits that take place today."""
        home = self.config.simulation.home_activity
        rng = self.rngs['participation']
        decided: Dict[tuple, bool] = {}
        active: List[Visit] = []
        for visit in self.visits_for_day(day):
            person = self.persons.get(visit.person_id)
            if person is None:
                raise ValueError(f"Visit of unknown person '{visit.person_id}'")
            if visit.activity not in self.activities:
                raise ValueError(f"Visit with unknown activity '{visit.activity}'")
            if person.disease_status in HOSPITALISED:
                continue
            if person.quarantine_status == QuarantineStatus.FULL:
                continue
            if person.quarantine_status == QuarantineStatus.AT_HOME and visit.activity != home:
                continue

            key = (visit.person_id, visit.activity)
            if key not in decided:
                fraction = restrictions[visit.activity].remaining_fraction
                if fraction >= 1.0:
                    decided[key] = True
                elif fraction <= 0.0:
                    decided[key] = False
                else:
                    decided[key] = rng.random() < fraction
            if decided[key]:
                active.append(visit)
        return active

    def _evaluate_container(
        self,
        day: int,
        index: int,
        container: Container,
        restrictions: Mapping[str, Restriction],
    ) -> int:
        rng = container_rng(self.seed, day, index)
        record_contacts = self.config.tracing.start_day is not None
        min_duration = self.config.tracing.min_contact_duration_sec
        day_start = start_of_day(day)
        candidates = 0

        visits = container.visits
        for i, a in enumerate(visits):
            pa = self.persons[a.person_id]
            for b in visits[i + 1:]:
                if a.person_id == b.person_id:
                    continue
                joint = min(a.leave, b.leave) - max(a.enter, b.enter)
                if joint <= 0:
                    continue
                pb = self.persons[b.person_id]
                time = day_start + max(a.enter, b.enter)

                if record_contacts and joint >= min_duration:
                    pa.add_traceable_contact(pb, time)
                    pb.add_traceable_contact(pa, time)

                if pa.disease_status == DiseaseStatus.SUSCEPTIBLE and pb.disease_status in INFECTIOUS:
                    pairs = ((pa, a, pb, b),)
                elif pb.disease_status == DiseaseStatus.SUSCEPTIBLE and pa.disease_status in INFECTIOUS:
                    pairs = ((pb, b, pa, a),)
                else:
                    continue

                for target, tv, infector, iv in pairs:
                    act1 = self.activities[tv.activity]
                    act2 = self.activities[iv.activity]
                    intensity = max(act1.contact_intensity, act2.contact_intensity)
                    result = self.infection.evaluate(
                        target, infector, restrictions, act1, act2,
                        intensity, joint, rng,
                    )
                    if rng.random() < result.probability:
                        target.possible_infection(PendingInfection(
                            time=time,
                            infector_id=infector.person_id,
                            container_id=container.container_id,
                            strain=infector.virus_strain,
                            activity=tv.activity,
                            probability=result.probability,
                            unvac_probability=result.unvac_probability,
                        ))
                        candidates += 1
        return candidates

    def contact_phase(
        self,
        day: int,
        visits: Sequence[Visit],
        restrictions: Mapping[str, Restriction],
    ) -> int:
        """Evaluate all containers; returns the number of infection candidates."""
        grouped: Dict[str, Container] = {}
        for visit in visits:
            grouped.setdefault(visit.container_id, Container(visit.container_id)).visits.append(visit)
        containers = [grouped[cid] for cid in sorted(grouped)]

        # Dwell-time draws belong to the sequential phase
        for person in self.ordered:
            if person.disease_status in INFECTIOUS:
                self.progression.next_transition_days(person)

        workers = self.config.simulation.parallel_workers
        if workers <= 1 or len(containers) <= 1:
            return sum(
                self._evaluate_container(day, i, c, restrictions)
                for i, c in enumerate(containers)
            )
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(self._evaluate_container, day, i, c, restrictions)
                for i, c in enumerate(containers)
            ]
            return sum(f.result() for f in futures)

    def commit_phase(self, day: int, visits: Sequence[Visit]) -> int:
        """Sequential state commit; returns the number of new infections."""
        new_infections = 0
        for person in self.ordered:
            event = person.check_infection()
            if event is None:
                continue
            new_infections += 1
            self.events.record(InfectionEvent(
                day, event.time, person.person_id, event.infector_id, event.strain,
                event.container_id, event.activity, event.probability,
                event.unvac_probability,
            ))
            self.events.record(StatusChangeEvent(
                day, person.person_id, DiseaseStatus.SUSCEPTIBLE,
                DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS,
            ))

        activities: Dict[str, List[str]] = defaultdict(list)
        for visit in visits:
            activities[visit.person_id].append(visit.activity)
        self.testing.perform_testing(self.ordered, day, activities)

        for person in self.ordered:
            self.progression.update_state(person, day)

        tr = self.config.tracing
        cutoff = start_of_day(day - tr.tracing_delay_days - tr.tracing_period_days)
        for person in self.ordered:
            person.clear_traceable_contacts(cutoff)
        return new_infections

    # ── Driver ──────────────────────────────────────────────────────

    def run_day(self) -> DailyCounts:
        day = self.day
        self.infection.set_iteration(day)
        self.progression.set_iteration(day)
        self.tracing.set_iteration(day)
        self.testing.set_iteration(day)

        initial = self.seeding.handle_infections(self.ordered, day)
        doses = self.vaccination.handle_vaccination(self.ordered, day)

        restrictions = self.restrictions.for_day(self.activities, day)
        visits = self.participation(day, restrictions)
        self.contact_phase(day, visits, restrictions)

        tests_before = self.testing.capacity_left
        new_infections = self.commit_phase(day, visits)

        counts = np.zeros(len(DiseaseStatus), dtype=np.int64)
        quarantined = 0
        for person in self.ordered:
            counts[person.disease_status] += 1
            if person.quarantine_status != QuarantineStatus.NO:
                quarantined += 1

        self.day += 1
        return DailyCounts(
            day=day,
            status_counts=counts,
            new_infections=new_infections,
            initial_infections=initial,
            quarantined=quarantined,
            tests=tests_before - self.testing.capacity_left,
            vaccinations=doses,
            traced=self.tracing.traced_today,
        )

    def run(self, n_days: Optional[int] = None, recorder=None) -> SimulationResult:
        """Run *n_days* (default: configured iterations) from the current day."""
        if n_days is None:
            n_days = self.config.simulation.iterations - self.day
        days: List[DailyCounts] = []
        for _ in range(max(n_days, 0)):
            counts = self.run_day()
            days.append(counts)
            if recorder is not None:
                recorder.capture(self)
            if counts.day % 10 == 0:
                logger.info(
                    "day %d: %d new infections, %d infectious",
                    counts.day, counts.new_infections,
                    int(sum(counts.status_counts[s] for s in INFECTIOUS)),
                )
        return SimulationResult.from_days(days, self.events)


def run_simulation(
    config: SimulationConfig,
    persons: Iterable[Person],
    trajectory: Trajectory,
    restrictions: Optional[RestrictionSchedule] = None,
    events: Optional[EventLog] = None,
) -> SimulationResult:
    """Build an EpidemicModel and run it for config.simulation.iterations days."""
    model = EpidemicModel(config, persons, trajectory, restrictions, events)
    return model.run()
