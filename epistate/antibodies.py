"""Antibody model: immunization history → per-strain protection.

Replays a person's immunization events (infections and vaccine doses)
in chronological order and tracks the antibody level against every
strain as a vector:

  - First event:  level[s] = initial_factor[type] / ak50[s]
                  (variant_initial_levels[type][s] overrides where set)
  - Later events: level[s] = min(max_level, level[s] × boost_factor[type])
  - Other days:   level[s] *= 0.5^(1/half_life)

An event day replaces that day's decay step, so a gap between events
on days a < b decays by (b - a - 1) days and the query day d decays by
(d - last_event) days. The closed form is identical to replaying day by
day.

All tables are numpy arrays indexed by VirusStrain / VaccinationType,
built once from the validated AntibodySection. Unconfigured vaccine
types hold NaN and raise ConfigurationError when replayed.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np

from epistate.config import AntibodySection, ConfigurationError, validate_antibody_tables
from epistate.person import Person
from epistate.types import OMICRON_STRAINS, VaccinationType, VirusStrain, parse_enum

N_STRAINS = len(VirusStrain)
N_TYPES = len(VaccinationType)


class AntibodyModel:
    """Stateless per-strain antibody replay."""

    def __init__(self, config: AntibodySection):
        validate_antibody_tables(config)
        self.config = config
        self.beta = float(config.beta)
        self.max_level = float(config.max_level)
        self.daily_decay = 0.5 ** (1.0 / config.half_life_days)

        self.ak50 = np.zeros(N_STRAINS, dtype=np.float64)
        for key, value in config.ak50_per_strain.items():
            self.ak50[parse_enum(VirusStrain, key)] = value

        self.initial_factor = np.full(N_TYPES, np.nan, dtype=np.float64)
        self.boost_factor = np.full(N_TYPES, np.nan, dtype=np.float64)
        for key, value in config.initial_factor.items():
            self.initial_factor[parse_enum(VaccinationType, key)] = value
        for key, value in config.boost_factor.items():
            self.boost_factor[parse_enum(VaccinationType, key)] = value

        # Absolute first-event levels overriding factor / ak50 (NaN = no override)
        self.initial_levels = np.full((N_TYPES, N_STRAINS), np.nan, dtype=np.float64)
        for vtype, levels in config.variant_initial_levels.items():
            row = parse_enum(VaccinationType, vtype)
            for strain, level in (levels or {}).items():
                self.initial_levels[row, parse_enum(VirusStrain, strain)] = level

        nwo = config.natural_with_omicron
        if nwo is not None:
            row = VaccinationType.NATURAL_WITH_OMICRON
            self.initial_factor[row] = nwo['initial_factor']
            self.boost_factor[row] = nwo['boost_factor']
            for strain, level in (nwo['levels'] or {}).items():
                self.initial_levels[row, parse_enum(VirusStrain, strain)] = level

        self.omicron_infection_type = parse_enum(
            VaccinationType, config.omicron_infection_type
        )

    def infection_type(self, strain: VirusStrain) -> VaccinationType:
        """Immunization category of an infection with *strain*."""
        if strain in OMICRON_STRAINS:
            return self.omicron_infection_type
        return VaccinationType.NATURAL

    def immunity_events(
        self,
        person: Person,
        n_infections: Optional[int] = None,
        include_vaccinations: bool = True,
    ) -> List[Tuple[int, VaccinationType]]:
        """Chronological (day, type) immunization events, one per day.

        Args:
            person: Person whose history is replayed.
            n_infections: Use only the first n infections (None = all).
            include_vaccinations: False gives the infection-only history.

        Returns:
            Sorted list of (day, VaccinationType). A vaccination on the
            same day as an infection replaces the infection.
        """
        infections = person.infection_history
        if n_infections is not None:
            infections = infections[:max(n_infections, 0)]

        events = {}
        for record in infections:
            events[record.day] = self.infection_type(record.strain)
        if include_vaccinations:
            for record in person.vaccination_history:
                events[record.day] = record.vaccine_type
        return sorted(events.items())

    def antibody_levels(
        self,
        person: Person,
        day: int,
        n_infections: Optional[int] = None,
        include_vaccinations: bool = True,
    ) -> np.ndarray:
        """Antibody level against every strain on *day*.

        Returns:
            Array of shape (len(VirusStrain),); all zeros without events.

        Raises:
            ConfigurationError: If an event's vaccine type is unconfigured.
        """
        levels: Optional[np.ndarray] = None
        last_day = 0
        for event_day, vtype in self.immunity_events(person, n_infections, include_vaccinations):
            if event_day > day:
                break
            if levels is None:
                factor = self.initial_factor[vtype]
                if np.isnan(factor):
                    raise ConfigurationError(
                        f"No antibody initialisation configured for '{vtype.name.lower()}'"
                    )
                levels = factor / self.ak50
                override = self.initial_levels[vtype]
                mask = ~np.isnan(override)
                levels[mask] = override[mask]
                np.minimum(levels, self.max_level, out=levels)
            else:
                factor = self.boost_factor[vtype]
                if np.isnan(factor):
                    raise ConfigurationError(
                        f"No antibody boost configured for '{vtype.name.lower()}'"
                    )
                levels *= self.daily_decay ** (event_day - last_day - 1)
                levels = np.minimum(self.max_level, levels * factor)
            last_day = event_day

        if levels is None:
            return np.zeros(N_STRAINS, dtype=np.float64)
        return levels * self.daily_decay ** (day - last_day)

    def relative_antibody_level(
        self,
        person: Person,
        day: int,
        strain: VirusStrain,
        n_infections: Optional[int] = None,
        include_vaccinations: bool = True,
    ) -> float:
        """Antibody level against one strain on *day* (0.0 without history)."""
        if not person.infection_history and not person.vaccination_history:
            return 0.0
        return float(
            self.antibody_levels(person, day, n_infections, include_vaccinations)[strain]
        )

    def immunity_factor(self, level: float) -> float:
        """Hazard multiplier 1 / (1 + level^beta)."""
        return 1.0 / (1.0 + level ** self.beta)
