"""Dose-response infection model.

The probability that one contact transmits is

    P = 1 − exp(−λ)

with λ the product of independent hazard factors:

    calibration × susc(age_target) × infect(age_infector) × contact_intensity
    × joint_time × min(ciCorr_1, ciCorr_2) × susceptibility_target
    × curve(infector) × strain_infectiousness × shedding × intake
    × indoor_outdoor × 1 / (1 + ab_target^β)

Age curves are tabulated once over ages 0–127. The infector's own
antibodies reduce its infectivity by up to infector_antibody_reduction;
its current infection does not count. A target infected with the same
strain within sterilizing_immunity_days has susceptibility 0.

Alongside P the model reports the probability a target would face
without any vaccinations (the "unvaccinated-equivalent" probability).
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

import numpy as np
from scipy.stats import norm

from epistate.antibodies import AntibodyModel
from epistate.config import SimulationConfig
from epistate.person import Person
from epistate.progression import ProgressionModel
from epistate.restrictions import ActivityParams, Restriction, activity_params
from epistate.types import (
    MASK_INTAKE,
    MASK_SHEDDING,
    DiseaseStatus,
    FaceMask,
    VirusStrain,
)
from epistate.utils import age_lookup_table, int_keys, interpolate_schedule

N_AGES = 128


class FaceMaskModel:
    """Mask worn by a person in an activity on a day.

    The draw is a hash of (seed, person, day, activity), so it is the
    same for every contact of that visit and independent of evaluation
    order.
    """

    def __init__(self, seed: int):
        self.seed = seed

    def uniform(self, person_id: str, day: int, activity: str) -> float:
        key = f"{self.seed}:{person_id}:{day}:{activity}".encode('utf-8')
        digest = hashlib.blake2b(key, digest_size=8).digest()
        return int.from_bytes(digest, 'little') / 2.0 ** 64

    def worn_mask(
        self,
        person: Person,
        activity: str,
        restriction: Restriction,
        day: int,
    ) -> FaceMask:
        if not restriction.mask_usage:
            return FaceMask.NONE
        u = self.uniform(person.person_id, day, activity)
        cumulative = 0.0
        # Most protective masks first
        for mask in sorted(restriction.mask_usage, reverse=True):
            cumulative += restriction.mask_usage[mask]
            if u < cumulative:
                return mask
        return FaceMask.NONE


@dataclass(frozen=True)
class InfectionProbability:
    probability: float
    unvac_probability: float
    immunity_factor: float


class InfectionModel:
    """Per-contact transmission probability."""

    def __init__(
        self,
        config: SimulationConfig,
        progression: ProgressionModel,
        antibodies: AntibodyModel,
        mask_model: Optional[FaceMaskModel] = None,
    ):
        inf = config.infection
        self.config = config
        self.progression = progression
        self.antibodies = antibodies
        self.mask_model = mask_model or FaceMaskModel(config.simulation.seed)
        self.activities: Dict[str, ActivityParams] = activity_params(inf)

        self.susceptibility = age_lookup_table(int_keys(inf.age_susceptibility), N_AGES)
        self.infectivity_by_age = age_lookup_table(int_keys(inf.age_infectivity), N_AGES)
        self.default_age = inf.default_age

        self.strain_infectiousness = np.array(
            [config.strain_params(s).infectiousness for s in VirusStrain],
            dtype=np.float64,
        )

        # Infectiousness curve peaking at 1.0
        self.curve = norm(loc=inf.infectivity_curve_mean, scale=inf.infectivity_curve_std)
        self.scale = 1.0 / float(self.curve.pdf(inf.infectivity_curve_mean))
        self._density_cache: Dict[float, float] = {}

        self.iteration = 0
        self.outdoor_fraction = 0.0

    def set_iteration(self, day: int) -> None:
        self.iteration = day
        self.outdoor_fraction = interpolate_schedule(
            int_keys(self.config.infection.outdoor_fraction), day
        )

    def age_index(self, person: Person) -> int:
        age = self.default_age if person.age is None else person.age
        return min(max(int(age), 0), N_AGES - 1)

    def _density(self, x: float) -> float:
        value = self._density_cache.get(x)
        if value is None:
            value = float(self.curve.pdf(x)) * self.scale
            self._density_cache[x] = value
        return value

    def infectivity(self, infector: Person) -> float:
        """Infectiousness of *infector* today from its disease phase.

        Showing symptoms: curve at days since symptom onset.
        Contagious heading to symptoms: curve at days before onset.
        Contagious heading to recovery: curve centred on the middle of
        the contagious period.
        """
        day = self.iteration
        status = infector.disease_status
        if status == DiseaseStatus.SHOWING_SYMPTOMS:
            return self._density(float(infector.days_since(status, day)))
        if status == DiseaseStatus.CONTAGIOUS:
            next_status = self.progression.next_disease_status(infector)
            transition_days = self.progression.next_transition_days(infector)
            days_since = infector.days_since(status, day)
            if next_status == DiseaseStatus.SHOWING_SYMPTOMS:
                return self._density(float(transition_days - days_since))
            if next_status == DiseaseStatus.RECOVERED:
                return self._density(days_since - transition_days / 2.0)
        return 0.0

    def indoor_outdoor_factor(
        self,
        act1: ActivityParams,
        act2: ActivityParams,
        rng: np.random.Generator,
    ) -> float:
        if not (act1.seasonal or act2.seasonal):
            return 1.0
        if rng.random() < self.outdoor_fraction:
            return self.config.infection.outdoor_factor
        return 1.0

    def had_recent_same_strain(self, target: Person, strain: VirusStrain) -> bool:
        limit = self.config.infection.sterilizing_immunity_days
        return any(
            r.strain == strain and self.iteration - r.day <= limit
            for r in target.infection_history
        )

    def evaluate(
        self,
        target: Person,
        infector: Person,
        restrictions: Mapping[str, Restriction],
        act1: ActivityParams,
        act2: ActivityParams,
        contact_intensity: float,
        joint_time: float,
        rng: np.random.Generator,
    ) -> InfectionProbability:
        """Transmission probability for one contact.

        Args:
            target: Person who may get infected (performing act1).
            infector: Infectious person (performing act2).
            restrictions: Activity name → Restriction valid today.
            act1: Target's activity.
            act2: Infector's activity.
            contact_intensity: Contact intensity of the container.
            joint_time: Seconds both persons spent in the container.
            rng: Random source for the indoor/outdoor draw.

        Returns:
            InfectionProbability with the actual and the
            unvaccinated-equivalent probability.
        """
        day = self.iteration
        strain = infector.virus_strain
        if strain is None:
            return InfectionProbability(0.0, 0.0, 1.0)

        r1 = restrictions[act1.name]
        r2 = restrictions[act2.name]
        ci_correction = min(r1.ci_correction, r2.ci_correction)

        susceptibility = self.susceptibility[self.age_index(target)]
        infectivity = self.infectivity_by_age[self.age_index(infector)]

        ab_target = self.antibodies.relative_antibody_level(target, day, strain)
        # The ongoing infection does not protect the infector yet
        ab_infector = self.antibodies.relative_antibody_level(
            infector, day, strain, n_infections=infector.num_infections - 1
        )
        ab_unvac = self.antibodies.relative_antibody_level(
            target, day, strain, include_vaccinations=False
        )

        indoor_outdoor = self.indoor_outdoor_factor(act1, act2, rng)
        shedding = MASK_SHEDDING[self.mask_model.worn_mask(infector, act2.name, r2, day)]
        intake = MASK_INTAKE[self.mask_model.worn_mask(target, act1.name, r1, day)]

        reduction = self.config.infection.infector_antibody_reduction
        infectivity *= 1.0 - reduction * (1.0 - self.antibodies.immunity_factor(ab_infector))

        if self.had_recent_same_strain(target, strain):
            susceptibility = 0.0

        base = (
            self.config.infection.calibration_parameter
            * susceptibility * infectivity * contact_intensity * joint_time
            * ci_correction
            * target.susceptibility
            * self.infectivity(infector)
            * self.strain_infectiousness[strain]
            * shedding * intake * indoor_outdoor
        )
        immunity_factor = self.antibodies.immunity_factor(ab_target)
        probability = 1.0 - np.exp(-base * immunity_factor)
        unvac = 1.0 - np.exp(-base * self.antibodies.immunity_factor(ab_unvac))
        return InfectionProbability(float(probability), float(unvac), immunity_factor)

    def calc_infection_probability(
        self,
        target: Person,
        infector: Person,
        restrictions: Mapping[str, Restriction],
        act1: ActivityParams,
        act2: ActivityParams,
        contact_intensity: float,
        joint_time: float,
        rng: np.random.Generator,
    ) -> float:
        return self.evaluate(
            target, infector, restrictions, act1, act2,
            contact_intensity, joint_time, rng,
        ).probability
