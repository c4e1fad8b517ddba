"""Per-person epidemic state.

A Person is the atomic unit mutated by every other component. It holds
identity (id, age, household, district, traceability) and the mutable
epidemic state: disease status with its status-change log, infection
and vaccination histories, quarantine and test status, individual
susceptibility, traced contacts, and the single-slot pending infection.

Concurrency: during the contact phase many workers may offer a pending
infection or record a traced contact for the same person. Both writes
go through a per-person lock held only for the compare-and-set, so the
earliest candidate wins regardless of thread scheduling. All other
mutators are called from the sequential commit phase only.

Invalid state queries (days since a status never reached, re-vaccination
before a first dose) raise PersonStateError.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from epistate.types import (
    ALLOWED_TRANSITIONS,
    DiseaseStatus,
    QuarantineStatus,
    TestStatus,
    VaccinationStatus,
    VaccinationType,
    VirusStrain,
    day_of,
    parse_enum,
)

RECENTLY_RECOVERED_DAYS = 180


class PersonStateError(RuntimeError):
    """Caller invariant violated when querying or mutating a Person."""


@dataclass(frozen=True)
class InfectionRecord:
    day: int
    strain: VirusStrain


@dataclass(frozen=True)
class VaccinationRecord:
    day: int
    vaccine_type: VaccinationType
    booster: bool = False


@dataclass(frozen=True)
class PendingInfection:
    """Candidate infection offered during the contact phase.

    Candidates are ordered by (time, infector_id, container_id); the
    smallest key is committed.
    """
    time: float
    infector_id: str
    container_id: str
    strain: VirusStrain
    activity: str = ""
    probability: float = 0.0
    unvac_probability: float = 0.0

    def sort_key(self) -> Tuple[float, str, str]:
        return (self.time, self.infector_id, self.container_id)


class Person:
    """Identity plus mutable epidemic state of one individual."""

    def __init__(
        self,
        person_id: str,
        age: Optional[int] = None,
        household_id: Optional[str] = None,
        district: Optional[str] = None,
        traceable: bool = True,
    ):
        if age is not None and age < 0:
            raise ValueError(f"Age must be non-negative, got {age}")
        self.person_id = str(person_id)
        self.age = age
        self.household_id = household_id
        self.district = district
        self.traceable = traceable

        self.disease_status = DiseaseStatus.SUSCEPTIBLE
        # status → time (seconds) the status was first entered this episode
        self.status_change_log: Dict[DiseaseStatus, float] = {}
        self.virus_strain: Optional[VirusStrain] = None
        self.infection_container: Optional[str] = None
        self.infection_history: List[InfectionRecord] = []

        self.vaccination_status = VaccinationStatus.NO
        self.re_vaccination_status = VaccinationStatus.NO
        self.vaccination_history: List[VaccinationRecord] = []
        self._vaccinable = True

        self.quarantine_status = QuarantineStatus.NO
        self.quarantine_day: Optional[int] = None
        self.test_status = TestStatus.UNTESTED
        self.test_day: Optional[int] = None

        self.susceptibility = 1.0

        self._traced_contacts: Dict[str, float] = {}
        self._pending: Optional[PendingInfection] = None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return (f"Person({self.person_id!r}, age={self.age}, "
                f"status={self.disease_status.name})")

    # ── Disease status ──────────────────────────────────────────────

    def set_disease_status(self, time: float, status: DiseaseStatus) -> None:
        """Move to *status* at *time* (seconds).

        Raises:
            PersonStateError: If the edge is not part of the state machine.
        """
        status = DiseaseStatus(status)
        if (self.disease_status, status) not in ALLOWED_TRANSITIONS:
            raise PersonStateError(
                f"Illegal transition {self.disease_status.name} -> {status.name} "
                f"for person {self.person_id}"
            )
        self.disease_status = status

        # Back to susceptible: drop the old episode, keep the recovery date
        if status == DiseaseStatus.SUSCEPTIBLE:
            self.status_change_log = {
                s: t for s, t in self.status_change_log.items()
                if s == DiseaseStatus.RECOVERED
            }

        # Recovered is kept across episodes, so each recovery overwrites it
        if status not in self.status_change_log or status == DiseaseStatus.RECOVERED:
            self.status_change_log[status] = time

    def had_disease_status(self, status: DiseaseStatus) -> bool:
        return status in self.status_change_log

    def days_since(self, status: DiseaseStatus, day: int) -> int:
        """Days elapsed since *status* was entered, counted from start of day.

        Raises:
            PersonStateError: If the person was never in *status*.
        """
        if status not in self.status_change_log:
            raise PersonStateError(
                f"Person {self.person_id} was never {DiseaseStatus(status).name}"
            )
        return day - day_of(self.status_change_log[status])

    def is_recently_recovered(self, day: int) -> bool:
        if self.disease_status == DiseaseStatus.RECOVERED:
            return True
        return (
            self.disease_status == DiseaseStatus.SUSCEPTIBLE
            and self.num_infections >= 1
            and self.had_disease_status(DiseaseStatus.RECOVERED)
            and self.days_since(DiseaseStatus.RECOVERED, day) <= RECENTLY_RECOVERED_DAYS
        )

    # ── Infections ──────────────────────────────────────────────────

    @property
    def num_infections(self) -> int:
        return len(self.infection_history)

    def set_initial_infection(self, time: float, strain: VirusStrain) -> None:
        """Seed an infection without an infector."""
        self.set_disease_status(time, DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS)
        self.virus_strain = VirusStrain(strain)
        self.infection_container = None
        self.infection_history.append(InfectionRecord(day_of(time), self.virus_strain))

    def possible_infection(self, candidate: PendingInfection) -> bool:
        """Offer a candidate; keep it only if it is earlier than the current one.

        Returns:
            True if *candidate* now occupies the pending slot.
        """
        with self._lock:
            if self._pending is None or candidate.sort_key() < self._pending.sort_key():
                self._pending = candidate
                return True
            return False

    @property
    def pending_infection(self) -> Optional[PendingInfection]:
        return self._pending

    def check_infection(self) -> Optional[PendingInfection]:
        """Commit the pending infection, if any, and clear the slot."""
        with self._lock:
            event, self._pending = self._pending, None
        if event is None:
            return None
        self.set_disease_status(event.time, DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS)
        self.virus_strain = event.strain
        self.infection_container = event.container_id
        self.infection_history.append(InfectionRecord(day_of(event.time), event.strain))
        return event

    def days_since_infection(self, day: int, strain: Optional[VirusStrain] = None) -> int:
        """Days since the latest infection (optionally with *strain*).

        Raises:
            PersonStateError: If there is no such infection.
        """
        for record in reversed(self.infection_history):
            if strain is None or record.strain == strain:
                return day - record.day
        what = "infected" if strain is None else f"infected with {VirusStrain(strain).name}"
        raise PersonStateError(f"Person {self.person_id} was never {what}")

    # ── Quarantine & testing ────────────────────────────────────────

    def set_quarantine_status(self, status: QuarantineStatus, day: int) -> None:
        self.quarantine_status = QuarantineStatus(status)
        self.quarantine_day = day

    def days_since_quarantine(self, day: int) -> int:
        if self.quarantine_day is None:
            raise PersonStateError(f"Person {self.person_id} was never quarantined")
        return day - self.quarantine_day

    def set_test_status(self, status: TestStatus, day: int) -> None:
        self.test_status = TestStatus(status)
        self.test_day = day

    def days_since_test(self, day: int) -> Optional[int]:
        """Days since the last test, or None if never tested."""
        if self.test_day is None:
            return None
        return day - self.test_day

    # ── Vaccination ─────────────────────────────────────────────────

    @property
    def vaccinable(self) -> bool:
        return self._vaccinable

    def mark_unvaccinable(self) -> None:
        """Exclude this person from vaccination for the rest of the run."""
        self._vaccinable = False

    @property
    def num_vaccinations(self) -> int:
        return len(self.vaccination_history)

    @property
    def vaccination_type(self) -> Optional[VaccinationType]:
        if not self.vaccination_history:
            return None
        return self.vaccination_history[0].vaccine_type

    def set_vaccination_status(
        self,
        status: VaccinationStatus,
        vaccine_type: VaccinationType,
        day: int,
    ) -> None:
        """Record the first vaccine dose.

        Raises:
            ValueError: If *status* is not YES.
        """
        if status != VaccinationStatus.YES:
            raise ValueError("Vaccination status can only be set to YES")
        self.vaccination_status = VaccinationStatus.YES
        self.vaccination_history.append(
            VaccinationRecord(day, VaccinationType(vaccine_type), booster=False)
        )

    def set_re_vaccination_status(
        self,
        status: VaccinationStatus,
        day: int,
        vaccine_type: Optional[VaccinationType] = None,
    ) -> None:
        """Record a booster dose (defaults to the first dose's vaccine type).

        Raises:
            PersonStateError: If there was no first vaccination.
            ValueError: If *status* is not YES.
        """
        if self.vaccination_status != VaccinationStatus.YES:
            raise PersonStateError(
                f"Person {self.person_id} needs a first vaccination before re-vaccination"
            )
        if status != VaccinationStatus.YES:
            raise ValueError("Re-vaccination status can only be set to YES")
        if vaccine_type is None:
            vaccine_type = self.vaccination_type
        self.re_vaccination_status = VaccinationStatus.YES
        self.vaccination_history.append(
            VaccinationRecord(day, VaccinationType(vaccine_type), booster=True)
        )

    def days_since_vaccination(self, day: int) -> int:
        """Days since the most recent dose.

        Raises:
            PersonStateError: If the person was never vaccinated.
        """
        if not self.vaccination_history:
            raise PersonStateError(f"Person {self.person_id} was never vaccinated")
        return day - self.vaccination_history[-1].day

    # ── Traced contacts ─────────────────────────────────────────────

    def add_traceable_contact(self, other: "Person", time: float) -> bool:
        """Remember a contact with *other* at *time* if both are traceable.

        The latest contact time per person is kept.
        """
        if not (self.traceable and other.traceable):
            return False
        with self._lock:
            previous = self._traced_contacts.get(other.person_id)
            if previous is None or time > previous:
                self._traced_contacts[other.person_id] = time
        return True

    def traceable_contacts(self, after: float) -> List[str]:
        """Ids of persons contacted at or after *after*, sorted by id."""
        with self._lock:
            return sorted(pid for pid, t in self._traced_contacts.items() if t >= after)

    def clear_traceable_contacts(self, before: float) -> None:
        """Forget contacts older than *before*."""
        with self._lock:
            self._traced_contacts = {
                pid: t for pid, t in self._traced_contacts.items() if t >= before
            }

    # ── Serialisation ───────────────────────────────────────────────

    def to_state(self) -> Dict[str, Any]:
        """JSON-serialisable copy of every mutable field."""
        pending = None
        if self._pending is not None:
            p = self._pending
            pending = {
                'time': p.time, 'infector_id': p.infector_id,
                'container_id': p.container_id, 'strain': p.strain.name,
                'activity': p.activity, 'probability': p.probability,
                'unvac_probability': p.unvac_probability,
            }
        return {
            'person_id': self.person_id,
            'age': self.age,
            'household_id': self.household_id,
            'district': self.district,
            'traceable': self.traceable,
            'disease_status': self.disease_status.name,
            'status_change_log': {
                s.name: t for s, t in sorted(self.status_change_log.items())
            },
            'virus_strain': self.virus_strain.name if self.virus_strain is not None else None,
            'infection_container': self.infection_container,
            'infection_history': [[r.day, r.strain.name] for r in self.infection_history],
            'vaccination_status': self.vaccination_status.name,
            're_vaccination_status': self.re_vaccination_status.name,
            'vaccination_history': [
                [r.day, r.vaccine_type.name, r.booster] for r in self.vaccination_history
            ],
            'vaccinable': self._vaccinable,
            'quarantine_status': self.quarantine_status.name,
            'quarantine_day': self.quarantine_day,
            'test_status': self.test_status.name,
            'test_day': self.test_day,
            'susceptibility': self.susceptibility,
            'traced_contacts': dict(sorted(self._traced_contacts.items())),
            'pending_infection': pending,
        }

    def restore_state(self, state: Dict[str, Any]) -> None:
        """Overwrite all mutable fields from a to_state() dict."""
        self.age = state['age']
        self.household_id = state['household_id']
        self.district = state['district']
        self.traceable = state['traceable']
        self.disease_status = parse_enum(DiseaseStatus, state['disease_status'])
        self.status_change_log = {
            parse_enum(DiseaseStatus, s): float(t)
            for s, t in state['status_change_log'].items()
        }
        strain = state['virus_strain']
        self.virus_strain = parse_enum(VirusStrain, strain) if strain is not None else None
        self.infection_container = state['infection_container']
        self.infection_history = [
            InfectionRecord(int(d), parse_enum(VirusStrain, s))
            for d, s in state['infection_history']
        ]
        self.vaccination_status = parse_enum(VaccinationStatus, state['vaccination_status'])
        self.re_vaccination_status = parse_enum(VaccinationStatus, state['re_vaccination_status'])
        self.vaccination_history = [
            VaccinationRecord(int(d), parse_enum(VaccinationType, t), bool(b))
            for d, t, b in state['vaccination_history']
        ]
        self._vaccinable = state['vaccinable']
        self.quarantine_status = parse_enum(QuarantineStatus, state['quarantine_status'])
        self.quarantine_day = state['quarantine_day']
        self.test_status = parse_enum(TestStatus, state['test_status'])
        self.test_day = state['test_day']
        self.susceptibility = float(state['susceptibility'])
        with self._lock:
            self._traced_contacts = {
                str(k): float(v) for k, v in state['traced_contacts'].items()
            }
            p = state['pending_infection']
            self._pending = None if p is None else PendingInfection(
                time=float(p['time']), infector_id=p['infector_id'],
                container_id=p['container_id'],
                strain=parse_enum(VirusStrain, p['strain']),
                activity=p['activity'], probability=p['probability'],
                unvac_probability=p['unvac_probability'],
            )

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> "Person":
        person = cls(state['person_id'])
        person.restore_state(state)
        return person
