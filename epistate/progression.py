"""Disease progression state machine.

Each person in a non-terminal status has a cached (next status, dwell
days) pair, drawn once when the status is entered and never re-rolled.
Once per day update_state() commits every transition that is due, so
zero-day dwell times chain several transitions on the same day.

Branches:
  contagious       → showing_symptoms with symptomatic_probability
  showing_symptoms → seriously_sick with P(age) × strain factor
  seriously_sick   → critical with P(age) × strain factor
otherwise the branch goes to recovered.

Dwell times come from TransitionDistribution: fixed, log-normal with
mean/std, or log-normal with median/std, rounded to whole days.

update_state() also releases expired quarantines, applies symptomatic
and hospital quarantine, returns waned recoveries to susceptible, and
hands persons to the tracing engine tracing_delay_days after symptom
onset or a positive test.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from epistate.config import SimulationConfig, validate_transition_table
from epistate.events import EventLog, StatusChangeEvent
from epistate.person import Person
from epistate.tracing import TracingEngine, set_quarantine
from epistate.types import (
    HOSPITALISED,
    PROGRESSION_EDGES,
    DiseaseStatus,
    QuarantineStatus,
    TestStatus,
    parse_enum,
    start_of_day,
)
from epistate.utils import step_lookup


@dataclass(frozen=True)
class TransitionDistribution:
    """Dwell-time distribution of one progression edge (days)."""
    kind: str
    mean: float
    std: float = 0.0

    @classmethod
    def fixed(cls, days: float) -> "TransitionDistribution":
        return cls('fixed', float(days))

    @classmethod
    def lognormal(cls, mean: float, std: float) -> "TransitionDistribution":
        return cls('lognormal', float(mean), float(std))

    @classmethod
    def lognormal_median(cls, median: float, std: float) -> "TransitionDistribution":
        return cls('lognormal_median', float(median), float(std))

    @classmethod
    def from_spec(cls, spec: Mapping[str, Any]) -> "TransitionDistribution":
        kind = spec['type']
        if kind == 'fixed':
            return cls.fixed(spec['days'])
        if kind == 'lognormal':
            return cls.lognormal(spec['mean'], spec['std'])
        if kind == 'lognormal_median':
            return cls.lognormal_median(spec['median'], spec['std'])
        raise ValueError(f"Unknown distribution type '{kind}'")

    def lognormal_params(self) -> Tuple[float, float]:
        """(mu, sigma) of the underlying normal distribution."""
        if self.kind == 'lognormal':
            sigma2 = math.log(1.0 + (self.std / self.mean) ** 2)
            return math.log(self.mean) - sigma2 / 2.0, math.sqrt(sigma2)
        # median/std: solve e^{σ²}(e^{σ²} − 1) = (std/median)²
        ratio2 = (self.std / self.mean) ** 2
        x = (1.0 + math.sqrt(1.0 + 4.0 * ratio2)) / 2.0
        return math.log(self.mean), math.sqrt(math.log(x))

    def draw(self, rng: np.random.Generator) -> int:
        if self.kind == 'fixed' or self.std == 0.0 or self.mean == 0.0:
            return int(round(self.mean))
        mu, sigma = self.lognormal_params()
        return int(round(rng.lognormal(mu, sigma)))


class ProgressionModel:
    """Daily state machine over DiseaseStatus."""

    def __init__(
        self,
        config: SimulationConfig,
        rng: np.random.Generator,
        tracing: Optional[TracingEngine] = None,
        events: Optional[EventLog] = None,
    ):
        validate_transition_table(config.progression)
        self.config = config
        self.pg = config.progression
        self.rng = rng
        self.tracing = tracing
        self.events = events
        self.default_age = config.infection.default_age

        self.transitions: Dict[DiseaseStatus, Dict[DiseaseStatus, TransitionDistribution]] = {}
        for src, targets in self.pg.transitions.items():
            self.transitions[parse_enum(DiseaseStatus, src)] = {
                parse_enum(DiseaseStatus, dst): TransitionDistribution.from_spec(spec)
                for dst, spec in targets.items()
            }

        # person id → (status the draw was made in, next status, dwell days)
        self._next: Dict[str, Tuple[DiseaseStatus, DiseaseStatus, int]] = {}
        self.iteration = 0

    def set_iteration(self, day: int) -> None:
        self.iteration = day

    # ── Branching & dwell times ─────────────────────────────────────

    def _age(self, person: Person) -> int:
        return self.default_age if person.age is None else person.age

    def seriously_sick_probability(self, person: Person) -> float:
        p = step_lookup(self.pg.seriously_sick_by_age, self._age(person))
        if person.virus_strain is not None:
            p *= self.config.strain_params(person.virus_strain).factor_seriously_sick
        return min(p, 1.0)

    def critical_probability(self, person: Person) -> float:
        p = step_lookup(self.pg.critical_by_age, self._age(person))
        if person.virus_strain is not None:
            p *= self.config.strain_params(person.virus_strain).factor_critical
        return min(p, 1.0)

    def _decide_next(self, person: Person) -> DiseaseStatus:
        status = person.disease_status
        edges = PROGRESSION_EDGES[status]
        if len(edges) == 1:
            return edges[0]
        worse, better = edges
        if status == DiseaseStatus.CONTAGIOUS:
            p = self.pg.symptomatic_probability
        elif status == DiseaseStatus.SHOWING_SYMPTOMS:
            p = self.seriously_sick_probability(person)
        else:
            p = self.critical_probability(person)
        return worse if self.rng.random() < p else better

    def _ensure(self, person: Person) -> Tuple[DiseaseStatus, int]:
        status = person.disease_status
        cached = self._next.get(person.person_id)
        if cached is None or cached[0] != status:
            next_status = self._decide_next(person)
            days = self.transitions[status][next_status].draw(self.rng)
            cached = (status, next_status, days)
            self._next[person.person_id] = cached
        return cached[1], cached[2]

    def next_disease_status(self, person: Person) -> DiseaseStatus:
        """Status the person will move to next (drawn on status entry)."""
        return self._ensure(person)[0]

    def next_transition_days(self, person: Person) -> int:
        """Dwell days in the current status before the next transition."""
        return self._ensure(person)[1]

    # ── Daily update ────────────────────────────────────────────────

    def _set_status(self, person: Person, day: int, status: DiseaseStatus) -> None:
        old = person.disease_status
        person.set_disease_status(start_of_day(day), status)
        if self.events is not None:
            self.events.record(StatusChangeEvent(day, person.person_id, old, status))

        if status == DiseaseStatus.SHOWING_SYMPTOMS and self.pg.quarantine_symptomatic:
            if person.quarantine_status == QuarantineStatus.NO:
                set_quarantine(person, QuarantineStatus.AT_HOME, day, "symptoms", self.events)
        elif status == DiseaseStatus.SERIOUSLY_SICK and self.pg.hospital_quarantine:
            set_quarantine(person, QuarantineStatus.FULL, day, "hospital", self.events)
        elif status == DiseaseStatus.RECOVERED:
            if person.quarantine_status == QuarantineStatus.FULL and old in HOSPITALISED:
                set_quarantine(person, QuarantineStatus.NO, day, "discharged", self.events)

    def _release_quarantine(self, person: Person, day: int) -> None:
        if person.quarantine_status == QuarantineStatus.NO:
            return
        if person.disease_status in HOSPITALISED:
            return
        duration = self.config.tracing.quarantine_duration_days
        if person.days_since_quarantine(day) >= duration:
            set_quarantine(person, QuarantineStatus.NO, day, "released", self.events)

    def _maybe_trace(self, person: Person, day: int) -> None:
        if self.tracing is None or not self.tracing.is_active(day):
            return
        delay = self.tracing.delay
        if (person.test_status == TestStatus.POSITIVE
                and person.days_since_test(day) == delay):
            self.tracing.trace(person, day, trigger_day=person.test_day)
        elif (person.had_disease_status(DiseaseStatus.SHOWING_SYMPTOMS)
                and person.days_since(DiseaseStatus.SHOWING_SYMPTOMS, day) == delay):
            self.tracing.trace(person, day, trigger_day=day - delay)

    def update_state(self, person: Person, day: int) -> List[DiseaseStatus]:
        """Commit every transition due on *day*.

        Returns:
            The statuses entered today, in order.
        """
        entered: List[DiseaseStatus] = []
        self._release_quarantine(person, day)

        while person.disease_status in PROGRESSION_EDGES:
            next_status, days = self._ensure(person)
            if person.days_since(person.disease_status, day) < days:
                break
            self._set_status(person, day, next_status)
            entered.append(next_status)

        immunity = self.pg.immunity_duration_days
        if (person.disease_status == DiseaseStatus.RECOVERED and immunity is not None
                and person.days_since(DiseaseStatus.RECOVERED, day) >= immunity):
            self._set_status(person, day, DiseaseStatus.SUSCEPTIBLE)
            entered.append(DiseaseStatus.SUSCEPTIBLE)

        if person.disease_status not in PROGRESSION_EDGES:
            self._next.pop(person.person_id, None)

        self._maybe_trace(person, day)
        return entered

    # ── Checkpointing ───────────────────────────────────────────────

    def state_snapshot(self) -> Dict[str, List]:
        return {
            pid: [status.name, next_status.name, days]
            for pid, (status, next_status, days) in sorted(self._next.items())
        }

    def restore_state(self, state: Mapping[str, List]) -> None:
        self._next = {
            pid: (parse_enum(DiseaseStatus, s), parse_enum(DiseaseStatus, n), int(d))
            for pid, (s, n, d) in state.items()
        }
