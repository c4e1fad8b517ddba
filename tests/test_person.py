"""Tests for epistate.person — per-person state, pending infections, serialisation."""

import json
import threading

import pytest

from epistate.person import PendingInfection, Person, PersonStateError
from epistate.types import (
    DiseaseStatus,
    QuarantineStatus,
    TestStatus,
    VaccinationStatus,
    VaccinationType,
    VirusStrain,
    start_of_day,
)


def _candidate(time, infector="p9", container="c1", strain=VirusStrain.WILD_TYPE):
    return PendingInfection(time=time, infector_id=infector, container_id=container, strain=strain)


class TestConstruction:
    def test_defaults(self):
        p = Person("a", age=40)
        assert p.disease_status == DiseaseStatus.SUSCEPTIBLE
        assert p.quarantine_status == QuarantineStatus.NO
        assert p.test_status == TestStatus.UNTESTED
        assert p.vaccination_status == VaccinationStatus.NO
        assert p.susceptibility == 1.0
        assert p.num_infections == 0
        assert p.vaccinable

    def test_negative_age(self):
        with pytest.raises(ValueError, match="non-negative"):
            Person("a", age=-1)


class TestDiseaseStatus:
    def test_status_log_records_first_time(self, ctx):
        p = ctx.create_person()
        ctx.infect(p, 2)
        assert p.had_disease_status(DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS)
        assert p.days_since(DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS, 5) == 3

    def test_days_since_floors_to_day_start(self, ctx):
        p = ctx.create_person()
        p.set_initial_infection(start_of_day(4) + 80000.0, VirusStrain.ALPHA)
        assert p.days_since(DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS, 4) == 0
        assert p.days_since(DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS, 5) == 1

    def test_days_since_never_reached(self, ctx):
        p = ctx.create_person()
        with pytest.raises(PersonStateError, match="never SHOWING_SYMPTOMS"):
            p.days_since(DiseaseStatus.SHOWING_SYMPTOMS, 3)

    def test_illegal_transition(self, ctx):
        p = ctx.create_person()
        with pytest.raises(PersonStateError, match="Illegal transition"):
            p.set_disease_status(0.0, DiseaseStatus.SHOWING_SYMPTOMS)
        assert p.disease_status == DiseaseStatus.SUSCEPTIBLE

    def test_return_to_susceptible_clears_log_except_recovered(self, ctx):
        p = ctx.create_person()
        ctx.make_symptomatic(p, 0)
        p.set_disease_status(start_of_day(10), DiseaseStatus.RECOVERED)
        p.set_disease_status(start_of_day(100), DiseaseStatus.SUSCEPTIBLE)
        assert set(p.status_change_log) == {DiseaseStatus.RECOVERED, DiseaseStatus.SUSCEPTIBLE}
        assert not p.had_disease_status(DiseaseStatus.SHOWING_SYMPTOMS)
        assert p.days_since(DiseaseStatus.RECOVERED, 110) == 100

    def test_recently_recovered(self, ctx):
        p = ctx.create_person()
        ctx.make_contagious(p, 0)
        p.set_disease_status(start_of_day(10), DiseaseStatus.RECOVERED)
        assert p.is_recently_recovered(11)
        p.set_disease_status(start_of_day(20), DiseaseStatus.SUSCEPTIBLE)
        assert p.is_recently_recovered(190)
        assert not p.is_recently_recovered(191)

    def test_reinfection_history(self, ctx):
        p = ctx.create_person()
        ctx.make_contagious(p, 0, VirusStrain.DELTA)
        p.set_disease_status(start_of_day(10), DiseaseStatus.RECOVERED)
        p.set_disease_status(start_of_day(100), DiseaseStatus.SUSCEPTIBLE)
        ctx.infect(p, 150, VirusStrain.OMICRON_BA1)
        assert p.num_infections == len(p.infection_history) == 2
        assert p.days_since_infection(160) == 10
        assert p.days_since_infection(160, VirusStrain.DELTA) == 160
        with pytest.raises(PersonStateError):
            p.days_since_infection(160, VirusStrain.ALPHA)


class TestPendingInfection:
    def test_earliest_wins(self, ctx):
        p = ctx.create_person()
        assert p.possible_infection(_candidate(500.0))
        assert p.possible_infection(_candidate(100.0, infector="p2"))
        assert not p.possible_infection(_candidate(300.0))
        assert p.pending_infection.time == 100.0

    def test_tie_broken_by_infector_then_container(self, ctx):
        p = ctx.create_person()
        p.possible_infection(_candidate(100.0, infector="p5", container="c2"))
        p.possible_infection(_candidate(100.0, infector="p3", container="c9"))
        p.possible_infection(_candidate(100.0, infector="p3", container="c1"))
        assert p.pending_infection.infector_id == "p3"
        assert p.pending_infection.container_id == "c1"

    def test_order_independent_under_threads(self, ctx):
        candidates = [_candidate(float(1000 - i), infector=f"p{i:03d}") for i in range(200)]
        p = ctx.create_person()

        def offer(chunk):
            for c in chunk:
                p.possible_infection(c)

        threads = [threading.Thread(target=offer, args=(candidates[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert p.pending_infection.time == 801.0

    def test_check_infection_commits_and_clears(self, ctx):
        p = ctx.create_person()
        p.possible_infection(_candidate(start_of_day(3) + 10.0, strain=VirusStrain.ALPHA))
        event = p.check_infection()
        assert event is not None
        assert p.disease_status == DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS
        assert p.virus_strain == VirusStrain.ALPHA
        assert p.infection_container == "c1"
        assert p.infection_history[-1].day == 3
        assert p.pending_infection is None
        assert p.check_infection() is None


class TestQuarantineAndTests:
    def test_days_since_quarantine(self, ctx):
        p = ctx.create_person()
        with pytest.raises(PersonStateError, match="never quarantined"):
            p.days_since_quarantine(3)
        p.set_quarantine_status(QuarantineStatus.AT_HOME, 4)
        assert p.days_since_quarantine(9) == 5

    def test_days_since_test(self, ctx):
        p = ctx.create_person()
        assert p.days_since_test(5) is None
        p.set_test_status(TestStatus.NEGATIVE, 2)
        assert p.days_since_test(5) == 3


class TestVaccination:
    def test_first_dose(self, ctx):
        p = ctx.create_person()
        p.set_vaccination_status(VaccinationStatus.YES, VaccinationType.MRNA, 10)
        assert p.vaccination_type == VaccinationType.MRNA
        assert p.num_vaccinations == 1
        assert p.days_since_vaccination(15) == 5

    def test_only_yes_allowed(self, ctx):
        p = ctx.create_person()
        with pytest.raises(ValueError, match="YES"):
            p.set_vaccination_status(VaccinationStatus.NO, VaccinationType.MRNA, 10)

    def test_revaccination_requires_first_dose(self, ctx):
        p = ctx.create_person()
        with pytest.raises(PersonStateError, match="first vaccination"):
            p.set_re_vaccination_status(VaccinationStatus.YES, 10)

    def test_revaccination_only_yes(self, ctx):
        p = ctx.create_person()
        p.set_vaccination_status(VaccinationStatus.YES, VaccinationType.VECTOR, 1)
        with pytest.raises(ValueError, match="YES"):
            p.set_re_vaccination_status(VaccinationStatus.NO, 10)

    def test_booster_defaults_to_first_type(self, ctx):
        p = ctx.create_person()
        p.set_vaccination_status(VaccinationStatus.YES, VaccinationType.VECTOR, 1)
        p.set_re_vaccination_status(VaccinationStatus.YES, 100)
        assert p.vaccination_history[-1].vaccine_type == VaccinationType.VECTOR
        assert p.vaccination_history[-1].booster
        assert p.re_vaccination_status == VaccinationStatus.YES
        assert p.days_since_vaccination(110) == 10

    def test_never_vaccinated(self, ctx):
        with pytest.raises(PersonStateError, match="never vaccinated"):
            ctx.create_person().days_since_vaccination(3)

    def test_unvaccinable_is_one_way(self, ctx):
        p = ctx.create_person()
        p.mark_unvaccinable()
        assert not p.vaccinable
        with pytest.raises(AttributeError):
            p.vaccinable = True


class TestTracedContacts:
    def test_only_traceable_pairs(self, ctx):
        a = ctx.create_person()
        b = ctx.create_person(traceable=False)
        assert not a.add_traceable_contact(b, 10.0)
        assert a.traceable_contacts(0.0) == []

    def test_latest_time_kept_and_filter(self, ctx):
        a, b, c = ctx.create_persons(3)
        a.add_traceable_contact(c, start_of_day(5))
        a.add_traceable_contact(b, start_of_day(2))
        a.add_traceable_contact(b, start_of_day(1))
        assert a.traceable_contacts(start_of_day(2)) == [b.person_id, c.person_id]
        assert a.traceable_contacts(start_of_day(3)) == [c.person_id]

    def test_clear_older_contacts(self, ctx):
        a, b, c = ctx.create_persons(3)
        a.add_traceable_contact(b, start_of_day(1))
        a.add_traceable_contact(c, start_of_day(6))
        a.clear_traceable_contacts(start_of_day(4))
        assert a.traceable_contacts(0.0) == [c.person_id]


class TestSerialisation:
    def _populated(self, ctx):
        p = ctx.create_person(age=67, household_id="h1", district="north")
        other = ctx.create_person()
        ctx.make_symptomatic(p, 3, VirusStrain.DELTA)
        p.set_vaccination_status(VaccinationStatus.YES, VaccinationType.MRNA, 1)
        p.set_re_vaccination_status(VaccinationStatus.YES, 2, VaccinationType.OMICRON_UPDATE)
        p.set_quarantine_status(QuarantineStatus.AT_HOME, 5)
        p.set_test_status(TestStatus.POSITIVE, 5)
        p.susceptibility = 0.7
        p.add_traceable_contact(other, start_of_day(4) + 3600.0)
        p.possible_infection(_candidate(123.0))
        p.mark_unvaccinable()
        return p

    def test_roundtrip_equality(self, ctx):
        p = self._populated(ctx)
        restored = Person.from_state(p.to_state())
        assert restored.to_state() == p.to_state()
        assert restored.infection_history == p.infection_history
        assert restored.vaccination_history == p.vaccination_history
        assert restored.status_change_log == p.status_change_log
        assert restored.pending_infection == p.pending_infection
        assert not restored.vaccinable

    def test_roundtrip_through_json(self, ctx):
        p = self._populated(ctx)
        state = json.loads(json.dumps(p.to_state()))
        restored = Person.from_state(state)
        assert restored.to_state() == p.to_state()
        assert restored.traceable_contacts(0.0) == p.traceable_contacts(0.0)
