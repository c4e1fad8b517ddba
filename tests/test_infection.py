"""Tests for epistate.infection — dose-response contact probabilities."""

import math

import numpy as np
import pytest

from epistate.antibodies import AntibodyModel
from epistate.infection import FaceMaskModel, InfectionModel
from epistate.progression import ProgressionModel
from epistate.restrictions import OPEN, Restriction
from epistate.types import (
    DiseaseStatus,
    FaceMask,
    VaccinationStatus,
    VaccinationType,
    VirusStrain,
    start_of_day,
)

from conftest import TestContext, fixed_config

HOUR = 3600.0


def _curve(x, mean=0.5, std=2.6):
    return math.exp(-((x - mean) ** 2) / (2.0 * std ** 2))


def _build(config):
    ctx = TestContext(config)
    progression = ProgressionModel(config, ctx.rngs['progression'])
    model = InfectionModel(config, progression, AntibodyModel(config.antibodies))
    return ctx, model


@pytest.fixture
def setup():
    return _build(fixed_config(progression={'symptomatic_probability': 1.0}))


def _open(model):
    return {name: OPEN for name in model.activities}


def _prob(model, target, infector, act1='home', act2='home', restrictions=None,
          joint_time=HOUR, seed=0):
    a1 = model.activities[act1]
    a2 = model.activities[act2]
    return model.evaluate(
        target, infector, restrictions or _open(model), a1, a2,
        max(a1.contact_intensity, a2.contact_intensity), joint_time,
        np.random.default_rng(seed),
    )


class TestInfectivityCurve:
    def test_peak_is_one(self, setup):
        _, model = setup
        assert model._density(0.5) == pytest.approx(1.0)

    def test_symptomatic_uses_days_since_onset(self, setup):
        ctx, model = setup
        p = ctx.make_symptomatic(ctx.create_person(), 10)
        model.set_iteration(13)
        assert model.infectivity(p) == pytest.approx(_curve(3.0))

    def test_contagious_before_symptoms(self, setup):
        ctx, model = setup
        p = ctx.make_contagious(ctx.create_person(), 4)
        model.set_iteration(4)
        assert model.infectivity(p) == pytest.approx(_curve(2.0))
        model.set_iteration(5)
        assert model.infectivity(p) == pytest.approx(_curve(1.0))

    def test_contagious_asymptomatic_course(self):
        ctx, model = _build(fixed_config(progression={'symptomatic_probability': 0.0}))
        p = ctx.make_contagious(ctx.create_person(), 4)
        model.set_iteration(5)
        assert model.infectivity(p) == pytest.approx(_curve(1.0 - 6.0))

    def test_not_contagious_yet(self, setup):
        ctx, model = setup
        p = ctx.infect(ctx.create_person(), 0)
        model.set_iteration(1)
        assert model.infectivity(p) == 0.0


class TestEvaluate:
    def test_closed_form(self, setup):
        ctx, model = setup
        target, infector = ctx.create_persons(2)
        ctx.make_symptomatic(infector, 0)
        model.set_iteration(0)
        result = _prob(model, target, infector)
        expected = 1.0 - math.exp(-1.36e-5 * 1.0 * HOUR * _curve(0.0))
        assert result.probability == pytest.approx(expected)
        assert result.immunity_factor == 1.0
        assert result.unvac_probability == pytest.approx(result.probability)

    def test_non_infectious_infector(self, setup):
        ctx, model = setup
        target, healthy, incubating = ctx.create_persons(3)
        ctx.infect(incubating, 0)
        model.set_iteration(1)
        assert _prob(model, target, healthy).probability == 0.0
        assert _prob(model, target, incubating).probability == 0.0

    def test_probability_grows_with_intensity_and_time(self, setup):
        ctx, model = setup
        target, infector = ctx.create_persons(2)
        ctx.make_symptomatic(infector, 0)
        model.set_iteration(0)
        home = _prob(model, target, infector).probability
        assert _prob(model, target, infector, 'work', 'work').probability > home
        assert _prob(model, target, infector, joint_time=4 * HOUR).probability > home

    def test_strain_infectiousness(self, setup):
        ctx, model = setup
        target, wild, delta = ctx.create_persons(3)
        ctx.make_symptomatic(wild, 0)
        ctx.make_symptomatic(delta, 0, VirusStrain.DELTA)
        model.set_iteration(0)
        assert (_prob(model, target, delta).probability
                > _prob(model, target, wild).probability)

    def test_same_strain_within_sterilizing_window(self, setup):
        ctx, model = setup
        target, infector, other = ctx.create_persons(3)
        ctx.make_contagious(target, 0)
        target.set_disease_status(start_of_day(10), DiseaseStatus.RECOVERED)
        target.set_disease_status(start_of_day(20), DiseaseStatus.SUSCEPTIBLE)
        ctx.make_symptomatic(infector, 50)
        ctx.make_symptomatic(other, 50, VirusStrain.DELTA)
        model.set_iteration(50)
        assert _prob(model, target, infector).probability == 0.0
        assert _prob(model, target, other).probability > 0.0

    def test_sterilizing_window_expires(self, setup):
        ctx, model = setup
        target, infector = ctx.create_persons(2)
        ctx.make_contagious(target, 0)
        target.set_disease_status(start_of_day(10), DiseaseStatus.RECOVERED)
        target.set_disease_status(start_of_day(20), DiseaseStatus.SUSCEPTIBLE)
        ctx.make_symptomatic(infector, 91)
        model.set_iteration(91)
        assert _prob(model, target, infector).probability > 0.0

    def test_vaccination_lowers_probability(self, setup):
        ctx, model = setup
        naive, vaccinated, infector = ctx.create_persons(3)
        vaccinated.set_vaccination_status(VaccinationStatus.YES, VaccinationType.MRNA, 0)
        ctx.make_symptomatic(infector, 10)
        model.set_iteration(10)
        base = _prob(model, naive, infector)
        protected = _prob(model, vaccinated, infector)
        assert protected.probability < base.probability
        assert protected.immunity_factor < 1.0
        assert protected.unvac_probability >= protected.probability
        assert protected.unvac_probability == pytest.approx(base.probability)

    def test_infector_antibodies_reduce_shedding(self, setup):
        ctx, model = setup
        target, plain, vaccinated = ctx.create_persons(3)
        vaccinated.set_vaccination_status(VaccinationStatus.YES, VaccinationType.MRNA, 0)
        ctx.make_symptomatic(plain, 10)
        ctx.make_symptomatic(vaccinated, 10)
        model.set_iteration(10)
        p_plain = _prob(model, target, plain).probability
        p_vacc = _prob(model, target, vaccinated).probability
        assert p_vacc < p_plain
        # Reduction is bounded by infector_antibody_reduction
        assert p_vacc > (1.0 - 0.25) * p_plain * 0.99

    def test_current_infection_does_not_protect_infector(self, setup):
        ctx, model = setup
        target, a, b = ctx.create_persons(3)
        ctx.make_symptomatic(a, 10)
        ctx.make_symptomatic(b, 10)
        model.set_iteration(12)
        assert (_prob(model, target, a).probability
                == pytest.approx(_prob(model, target, b).probability))

    def test_ci_correction_takes_minimum(self, setup):
        ctx, model = setup
        target, infector = ctx.create_persons(2)
        ctx.make_symptomatic(infector, 0)
        model.set_iteration(0)
        restrictions = _open(model)
        restrictions['work'] = Restriction(ci_correction=0.5)
        corrected = _prob(model, target, infector, 'home', 'work', restrictions)
        plain = _prob(model, target, infector, 'home', 'work')
        assert corrected.probability < plain.probability

    def test_masks_reduce_probability(self, setup):
        ctx, model = setup
        target, infector = ctx.create_persons(2)
        ctx.make_symptomatic(infector, 0)
        model.set_iteration(0)
        masked = _open(model)
        masked['work'] = Restriction(mask_usage={FaceMask.N95: 1.0})
        plain = _prob(model, target, infector, 'work', 'work').probability
        with_masks = _prob(model, target, infector, 'work', 'work', masked).probability
        lam_plain = -math.log(1.0 - plain)
        lam_masked = -math.log(1.0 - with_masks)
        assert lam_masked == pytest.approx(lam_plain * 0.15 * 0.025)

    def test_calc_infection_probability_matches(self, setup):
        ctx, model = setup
        target, infector = ctx.create_persons(2)
        ctx.make_symptomatic(infector, 0)
        model.set_iteration(0)
        a = model.activities['home']
        p = model.calc_infection_probability(
            target, infector, _open(model), a, a, 1.0, HOUR, np.random.default_rng(0)
        )
        assert p == pytest.approx(_prob(model, target, infector).probability)


class TestIndoorOutdoor:
    def test_seasonal_activities_outdoors(self):
        config = fixed_config(infection={'outdoor_fraction': {0: 1.0}})
        _, model = _build(config)
        model.set_iteration(0)
        rng = np.random.default_rng(1)
        home = model.activities['home']
        leisure = model.activities['leisure']
        assert model.indoor_outdoor_factor(leisure, home, rng) == 0.05
        assert model.indoor_outdoor_factor(home, home, rng) == 1.0

    def test_winter_is_indoors(self, setup):
        _, model = setup
        model.set_iteration(0)
        leisure = model.activities['leisure']
        assert model.indoor_outdoor_factor(leisure, leisure, np.random.default_rng(1)) == 1.0


class TestFaceMaskModel:
    def test_uniform_is_stable(self):
        masks = FaceMaskModel(seed=3)
        u = masks.uniform("p1", 4, "work")
        assert u == masks.uniform("p1", 4, "work")
        assert 0.0 <= u < 1.0
        assert u != masks.uniform("p1", 5, "work")

    def test_no_usage_means_no_mask(self, ctx):
        p = ctx.create_person()
        assert FaceMaskModel(1).worn_mask(p, "work", OPEN, 0) == FaceMask.NONE

    def test_full_usage(self, ctx):
        p = ctx.create_person()
        r = Restriction(mask_usage={FaceMask.SURGICAL: 1.0})
        assert FaceMaskModel(1).worn_mask(p, "work", r, 0) == FaceMask.SURGICAL

    def test_shares_respected(self, ctx):
        persons = ctx.create_persons(2000)
        r = Restriction(mask_usage={FaceMask.CLOTH: 0.5})
        model = FaceMaskModel(7)
        worn = sum(model.worn_mask(p, "shop_daily", r, 3) == FaceMask.CLOTH for p in persons)
        assert 900 < worn < 1100


def test_age_without_value_uses_default(setup):
    ctx, model = setup
    assert model.age_index(ctx.create_person(age=None)) == 40
    assert model.age_index(ctx.create_person(age=150)) == 127
