"""Configuration system for epistate.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Every calibration parameter consumed by the engine lives in a typed
dataclass section. Sections are constructed once at startup, validated
exhaustively, and passed by reference into each component's constructor.

Immunological and progression tables must be complete: every strain and
every vaccine type must resolve, and every progression edge must belong
to the disease state machine. Gaps raise ConfigurationError at load time
instead of being patched with defaults.
"""

from __future__ import annotations

import copy
import dataclasses
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from epistate.types import (
    PROGRESSION_EDGES,
    DiseaseStatus,
    QuarantineStatus,
    VaccinationType,
    VirusStrain,
    parse_enum,
)


class ConfigurationError(ValueError):
    """Incomplete or inconsistent immunological / progression tables."""


DISTRIBUTION_KEYS = {
    'fixed': ('days',),
    'lognormal': ('mean', 'std'),
    'lognormal_median': ('median', 'std'),
}


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Top-level simulation timing and control."""
    seed: int = 4711
    iterations: int = 100
    parallel_workers: int = 1     # Threads for the contact phase (1 = serial)
    home_activity: str = "home"   # Only activity kept under home quarantine
    record_events: bool = True


def _default_activities() -> Dict[str, Dict[str, Any]]:
    return {
        'home':            {'contact_intensity': 1.0},
        'quarantine_home': {'contact_intensity': 1.0},
        'work':            {'contact_intensity': 1.47},
        'business':        {'contact_intensity': 1.47},
        'errands':         {'contact_intensity': 1.47},
        'leisure':         {'contact_intensity': 9.24, 'seasonal': True},
        'visit':           {'contact_intensity': 9.24, 'seasonal': True},
        'educ_kiga':       {'contact_intensity': 11.0},
        'educ_primary':    {'contact_intensity': 11.0},
        'educ_secondary':  {'contact_intensity': 11.0},
        'educ_higher':     {'contact_intensity': 5.5},
        'shop_daily':      {'contact_intensity': 0.88},
        'shop_other':      {'contact_intensity': 0.88},
        'pt':              {'contact_intensity': 10.0},
    }


@dataclass
class InfectionSection:
    """Dose-response transmission parameters.

    λ = calibration × susc(age_t) × infect(age_i) × ci × ciCorr × t_joint
        × susceptibility_t × curve(infector) × strain × masks × outdoor
        × 1/(1 + ab^β)
    """
    calibration_parameter: float = 1.36e-5
    # Age breakpoint → factor, linearly interpolated over ages 0–127
    age_susceptibility: Dict[int, float] = field(
        default_factory=lambda: {0: 1.0, 120: 1.0}
    )
    age_infectivity: Dict[int, float] = field(
        default_factory=lambda: {0: 1.0, 120: 1.0}
    )
    default_age: int = 40             # Used for persons without an age

    sterilizing_immunity_days: int = 90   # Same-strain reinfection block
    infector_antibody_reduction: float = 0.25

    # Seasonality: day → outdoor fraction of seasonal activities
    outdoor_fraction: Dict[int, float] = field(default_factory=lambda: {0: 0.0})
    outdoor_factor: float = 0.05      # Hazard multiplier for outdoor contacts

    # Infectiousness curve over days relative to symptom onset
    infectivity_curve_mean: float = 0.5
    infectivity_curve_std: float = 2.6

    activities: Dict[str, Dict[str, Any]] = field(default_factory=_default_activities)


@dataclass
class StrainParams:
    """Per-strain multipliers."""
    infectiousness: float = 1.0
    factor_seriously_sick: float = 1.0
    factor_critical: float = 1.0


def _default_strains() -> Dict[str, Dict[str, float]]:
    return {
        'wild_type':   {'infectiousness': 1.0, 'factor_seriously_sick': 1.0},
        'alpha':       {'infectiousness': 1.65, 'factor_seriously_sick': 1.0},
        'delta':       {'infectiousness': 3.3, 'factor_seriously_sick': 2.0},
        'omicron_ba1': {'infectiousness': 3.3 * 2.0, 'factor_seriously_sick': 1.0},
        'omicron_ba2': {'infectiousness': 3.3 * 2.0 * 1.7, 'factor_seriously_sick': 1.0},
        'strain_a':    {'infectiousness': 3.3 * 2.0 * 1.7, 'factor_seriously_sick': 1.0},
    }


@dataclass
class AntibodySection:
    """Antibody waning and boosting tables.

    First immunization: level[s] = initial_factor[type] / ak50[s],
    then variant_initial_levels[type][s] overrides where given.
    Later immunizations: level[s] = min(max_level, level[s] × boost_factor[type]).
    Between events: level halves every half_life_days.
    """
    half_life_days: float = 80.0
    max_level: float = 20.0
    beta: float = 1.0

    ak50_per_strain: Dict[str, float] = field(default_factory=lambda: {
        'wild_type': 0.2,
        'alpha': 0.2,
        'delta': 0.5,
        'omicron_ba1': 2.5,
        'omicron_ba2': 2.5 * 1.4,
        'strain_a': 2.5 * 1.4,
    })
    initial_factor: Dict[str, float] = field(default_factory=lambda: {
        'generic': 1.0,
        'mrna': 2.0,
        'vector': 0.5,
        'omicron_update': 2.0,
        'natural': 1.0,
    })
    boost_factor: Dict[str, float] = field(default_factory=lambda: {
        'generic': 1.0,
        'mrna': 20.0,
        'vector': 5.0,
        'omicron_update': 20.0,
        'natural': 10.0,
    })
    variant_initial_levels: Dict[str, Dict[str, float]] = field(default_factory=lambda: {
        'omicron_update': {'omicron_ba1': 2.0 / 0.2, 'omicron_ba2': 2.0 / 0.2},
    })
    # Natural infection after Omicron exposure: must be supplied explicitly.
    # Keys: initial_factor, boost_factor, levels (strain → absolute level)
    natural_with_omicron: Optional[Dict[str, Any]] = None
    omicron_infection_type: str = "natural"   # or "natural_with_omicron"


def _default_transitions() -> Dict[str, Dict[str, Dict[str, Any]]]:
    def lnm(median: float, std: float) -> Dict[str, Any]:
        return {'type': 'lognormal_median', 'median': median, 'std': std}

    return {
        'infected_but_not_contagious': {'contagious': lnm(4.0, 4.0)},
        'contagious': {'showing_symptoms': lnm(2.0, 2.0),
                       'recovered': lnm(4.0, 4.0)},
        'showing_symptoms': {'seriously_sick': lnm(4.0, 4.0),
                             'recovered': lnm(8.0, 8.0)},
        'seriously_sick': {'critical': lnm(1.0, 1.0),
                           'recovered': lnm(14.0, 14.0)},
        'critical': {'seriously_sick_after_critical': lnm(21.0, 21.0)},
        'seriously_sick_after_critical': {'recovered': lnm(7.0, 7.0)},
    }


@dataclass
class ProgressionSection:
    """Disease progression state machine parameters."""
    transitions: Dict[str, Dict[str, Dict[str, Any]]] = field(
        default_factory=_default_transitions
    )
    symptomatic_probability: float = 0.8
    # Upper-exclusive age bound → probability
    seriously_sick_by_age: Dict[int, float] = field(default_factory=lambda: {
        10: 0.0006, 20: 0.0019, 30: 0.0075, 40: 0.020, 50: 0.043,
        60: 0.082, 70: 0.118, 80: 0.166, 200: 0.184,
    })
    critical_by_age: Dict[int, float] = field(default_factory=lambda: {
        40: 0.050, 50: 0.063, 60: 0.122, 70: 0.274, 80: 0.432, 200: 0.709,
    })
    immunity_duration_days: Optional[int] = None   # None = recovered is permanent
    quarantine_symptomatic: bool = False           # Symptomatic → home quarantine
    hospital_quarantine: bool = True               # Seriously sick → full quarantine


@dataclass
class TracingSection:
    """Contact tracing parameters. Tracing is off until start_day."""
    start_day: Optional[int] = None
    tracing_probability: float = 1.0
    tracing_delay_days: int = 0
    tracing_period_days: int = 3
    capacity: Optional[int] = None                 # None = unlimited
    capacity_schedule: Dict[int, int] = field(default_factory=dict)
    capacity_type: str = "per_contact"             # or "per_person"
    quarantine_household_members: bool = False
    trace_susceptible: bool = True
    min_contact_duration_sec: float = 0.0
    equipment_rate: float = 1.0
    quarantine_status: str = "at_home"             # or "full"
    quarantine_duration_days: int = 14


@dataclass
class TestingSection:
    """Testing strategy and capacity."""
    __test__ = False  # not a pytest class

    strategy: str = "none"         # "none", "fixed_days", "activities"
    capacity: int = 0
    capacity_schedule: Dict[int, int] = field(default_factory=dict)
    false_positive_rate: float = 0.03
    false_negative_rate: float = 0.10
    activities: List[str] = field(default_factory=list)
    fixed_days: List[int] = field(default_factory=list)
    retest_interval_days: int = 7
    quarantine_positive: bool = True


@dataclass
class VaccinationSection:
    """Vaccine supply and allocation."""
    capacity: int = 0
    capacity_schedule: Dict[int, int] = field(default_factory=dict)
    vaccine_mix: Dict[str, float] = field(default_factory=lambda: {'mrna': 1.0})
    compliance: float = 1.0
    min_age: int = 12
    booster_capacity: int = 0
    booster_after_days: int = 180
    booster_type: str = "mrna"


@dataclass
class SeedingSection:
    """Random initial infections."""
    initial_infections: int = 0
    infections_per_day: Dict[int, int] = field(default_factory=lambda: {0: 1})
    lower_age: Optional[int] = None
    upper_age: Optional[int] = None
    district: Optional[str] = None
    strain: str = "wild_type"


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    infection: InfectionSection = field(default_factory=InfectionSection)
    strains: Dict[str, StrainParams] = field(default_factory=lambda: {
        k: StrainParams(**v) for k, v in _default_strains().items()
    })
    antibodies: AntibodySection = field(default_factory=AntibodySection)
    progression: ProgressionSection = field(default_factory=ProgressionSection)
    tracing: TracingSection = field(default_factory=TracingSection)
    testing: TestingSection = field(default_factory=TestingSection)
    vaccination: VaccinationSection = field(default_factory=VaccinationSection)
    seeding: SeedingSection = field(default_factory=SeedingSection)

    def strain_params(self, strain: VirusStrain) -> StrainParams:
        """Parameters of *strain* (keys matched by enum name)."""
        matches = [params for key, params in self.strains.items()
                   if parse_enum(VirusStrain, key) == strain]
        if not matches:
            raise ConfigurationError(f"No strain parameters for {strain.name}")
        if len(matches) > 1:
            raise ConfigurationError(f"Duplicate strain parameters for {strain.name}")
        return matches[0]


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Args:
        base: Base dictionary (modified in place).
        override: Override dictionary.

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


SECTION_MAP = {
    'simulation': SimulationSection,
    'infection': InfectionSection,
    'antibodies': AntibodySection,
    'progression': ProgressionSection,
    'tracing': TracingSection,
    'testing': TestingSection,
    'vaccination': VaccinationSection,
    'seeding': SeedingSection,
}


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections: Dict[str, Any] = {}
    for key, cls in SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()

    # Strain table: defaults overlaid with whatever the YAML specifies,
    # keys normalised to the lowercase member names of the defaults
    strain_dicts = _default_strains()
    if isinstance(data.get('strains'), dict):
        overrides = _resolve_keys(data['strains'], VirusStrain, "strains")
        deep_merge(strain_dicts, {
            strain.name.lower(): copy.deepcopy(values)
            for strain, values in overrides.items()
        })
    sections['strains'] = {
        k: _dict_to_section(StrainParams, v or {}) for k, v in strain_dicts.items()
    }

    return SimulationConfig(**sections)


def config_to_dict(config: SimulationConfig) -> Dict[str, Any]:
    """Plain-dict view of a config (YAML/JSON serialisable)."""
    return dataclasses.asdict(config)


def config_to_yaml(config: SimulationConfig) -> str:
    """Serialise a config to YAML text."""
    return yaml.safe_dump(config_to_dict(config), sort_keys=True)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def _check_probability(name: str, value: float) -> None:
    if not (0.0 <= value <= 1.0):
        raise ValueError(f"{name} must be in [0, 1], got {value}")


def _resolve_keys(table: Dict, enum_cls, name: str) -> Dict:
    """Map a name-keyed table onto enum members.

    Unknown names and two keys naming the same member are errors.
    """
    resolved = {}
    for key, value in table.items():
        try:
            member = parse_enum(enum_cls, key)
        except ValueError as e:
            raise ConfigurationError(f"{name}: {e}") from None
        if member in resolved:
            raise ConfigurationError(
                f"{name}: duplicate entries for {member.name.lower()}"
            )
        resolved[member] = value
    return resolved


def validate_antibody_tables(ab: AntibodySection) -> None:
    """Exhaustive strain × vaccine-type coverage check.

    Raises:
        ConfigurationError: On any missing or non-positive entry.
    """
    ak50 = _resolve_keys(ab.ak50_per_strain, VirusStrain, "antibodies.ak50_per_strain")
    missing = [s.name.lower() for s in VirusStrain if s not in ak50]
    if missing:
        raise ConfigurationError(
            f"antibodies.ak50_per_strain missing strains: {missing}"
        )
    for strain, value in ak50.items():
        if value is None or value <= 0:
            raise ConfigurationError(
                f"antibodies.ak50_per_strain[{strain.name.lower()}] must be > 0, got {value}"
            )

    required_types = [t for t in VaccinationType if t != VaccinationType.NATURAL_WITH_OMICRON]
    for table_name in ('initial_factor', 'boost_factor'):
        table = _resolve_keys(getattr(ab, table_name), VaccinationType,
                              f"antibodies.{table_name}")
        missing = [t.name.lower() for t in required_types if t not in table]
        if missing:
            raise ConfigurationError(
                f"antibodies.{table_name} missing vaccine types: {missing}"
            )
        for vtype, value in table.items():
            if value is None or value < 0:
                raise ConfigurationError(
                    f"antibodies.{table_name}[{vtype.name.lower()}] must be >= 0, got {value}"
                )

    variant = _resolve_keys(ab.variant_initial_levels, VaccinationType,
                            "antibodies.variant_initial_levels")
    for vtype, levels in variant.items():
        _resolve_keys(levels or {}, VirusStrain,
                      f"antibodies.variant_initial_levels[{vtype.name.lower()}]")

    if ab.natural_with_omicron is not None:
        nwo = ab.natural_with_omicron
        for key in ('initial_factor', 'boost_factor', 'levels'):
            if key not in nwo:
                raise ConfigurationError(
                    f"antibodies.natural_with_omicron requires '{key}'"
                )
        _resolve_keys(nwo['levels'] or {}, VirusStrain,
                      "antibodies.natural_with_omicron.levels")

    try:
        infection_type = parse_enum(VaccinationType, ab.omicron_infection_type)
    except ValueError as e:
        raise ConfigurationError(f"antibodies.omicron_infection_type: {e}") from None
    if infection_type not in (VaccinationType.NATURAL, VaccinationType.NATURAL_WITH_OMICRON):
        raise ConfigurationError(
            "antibodies.omicron_infection_type must be 'natural' or "
            f"'natural_with_omicron', got '{ab.omicron_infection_type}'"
        )
    if (infection_type == VaccinationType.NATURAL_WITH_OMICRON
            and ab.natural_with_omicron is None):
        raise ConfigurationError(
            "antibodies.omicron_infection_type='natural_with_omicron' requires "
            "antibodies.natural_with_omicron to be configured"
        )

    if ab.half_life_days <= 0:
        raise ValueError(f"antibodies.half_life_days must be > 0, got {ab.half_life_days}")
    if ab.max_level <= 0:
        raise ValueError(f"antibodies.max_level must be > 0, got {ab.max_level}")


def validate_transition_table(pg: ProgressionSection) -> None:
    """Every edge must lie on the state machine, every branch must be timed.

    Raises:
        ConfigurationError: On unknown statuses, illegal edges, missing
            branches, or malformed distribution specs.
    """
    table = _resolve_keys(pg.transitions, DiseaseStatus, "progression.transitions")
    for src, targets in table.items():
        if src not in PROGRESSION_EDGES:
            raise ConfigurationError(
                f"progression.transitions: {src.name.lower()} has no outgoing edges"
            )
        resolved = _resolve_keys(targets or {}, DiseaseStatus,
                                 f"progression.transitions[{src.name.lower()}]")
        for dst, spec in resolved.items():
            if dst not in PROGRESSION_EDGES[src]:
                raise ConfigurationError(
                    f"progression.transitions: illegal edge "
                    f"{src.name.lower()} -> {dst.name.lower()}"
                )
            kind = (spec or {}).get('type')
            if kind not in DISTRIBUTION_KEYS:
                raise ConfigurationError(
                    f"progression.transitions[{src.name.lower()}][{dst.name.lower()}]: "
                    f"type must be one of {sorted(DISTRIBUTION_KEYS)}, got '{kind}'"
                )
            for key in DISTRIBUTION_KEYS[kind]:
                if key not in spec:
                    raise ConfigurationError(
                        f"progression.transitions[{src.name.lower()}][{dst.name.lower()}]: "
                        f"'{kind}' requires '{key}'"
                    )
                if spec[key] < 0:
                    raise ConfigurationError(
                        f"progression.transitions[{src.name.lower()}][{dst.name.lower()}]."
                        f"{key} must be >= 0"
                    )
        missing = [d.name.lower() for d in PROGRESSION_EDGES[src] if d not in resolved]
        if missing:
            raise ConfigurationError(
                f"progression.transitions[{src.name.lower()}] missing targets: {missing}"
            )
    missing_src = [s.name.lower() for s in PROGRESSION_EDGES if s not in table]
    if missing_src:
        raise ConfigurationError(
            f"progression.transitions missing states: {missing_src}"
        )


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints.

    Raises:
        ConfigurationError: Incomplete strain / vaccine / progression tables.
        ValueError: Any other invalid value.
    """
    sim = config.simulation
    if sim.seed < 0:
        raise ValueError("simulation.seed must be non-negative")
    if sim.iterations < 0:
        raise ValueError("simulation.iterations must be non-negative")
    if sim.parallel_workers < 1:
        raise ValueError(
            f"simulation.parallel_workers must be >= 1, got {sim.parallel_workers}"
        )

    # Infection
    inf = config.infection
    if inf.calibration_parameter < 0:
        raise ValueError("infection.calibration_parameter must be non-negative")
    for name in ('age_susceptibility', 'age_infectivity'):
        table = getattr(inf, name)
        if not table:
            raise ValueError(f"infection.{name} must have at least one breakpoint")
        for age, value in table.items():
            if int(age) < 0 or int(age) > 127:
                raise ValueError(f"infection.{name}: age {age} outside 0–127")
            if value < 0:
                raise ValueError(f"infection.{name}[{age}] must be non-negative")
    if inf.infectivity_curve_std <= 0:
        raise ValueError("infection.infectivity_curve_std must be positive")
    _check_probability("infection.infector_antibody_reduction", inf.infector_antibody_reduction)
    for day, fraction in inf.outdoor_fraction.items():
        _check_probability(f"infection.outdoor_fraction[{day}]", fraction)
    if inf.outdoor_factor < 0:
        raise ValueError("infection.outdoor_factor must be non-negative")
    for name, params in inf.activities.items():
        if params.get('contact_intensity', 0.0) < 0:
            raise ValueError(f"infection.activities[{name}].contact_intensity must be >= 0")
    if sim.home_activity not in inf.activities:
        raise ValueError(
            f"simulation.home_activity '{sim.home_activity}' is not a configured activity"
        )

    # Strains
    strains = _resolve_keys(config.strains, VirusStrain, "strains")
    missing = [s.name.lower() for s in VirusStrain if s not in strains]
    if missing:
        raise ConfigurationError(f"strains missing entries: {missing}")
    for strain, params in strains.items():
        if params.infectiousness < 0:
            raise ValueError(f"strains[{strain.name.lower()}].infectiousness must be >= 0")

    # Immunology & progression
    validate_antibody_tables(config.antibodies)
    validate_transition_table(config.progression)
    pg = config.progression
    _check_probability("progression.symptomatic_probability", pg.symptomatic_probability)
    for name in ('seriously_sick_by_age', 'critical_by_age'):
        table = getattr(pg, name)
        if not table:
            raise ConfigurationError(f"progression.{name} must not be empty")
        for bound, p in table.items():
            _check_probability(f"progression.{name}[{bound}]", p)
    if pg.immunity_duration_days is not None and pg.immunity_duration_days < 0:
        raise ValueError("progression.immunity_duration_days must be >= 0")

    # Tracing
    tr = config.tracing
    _check_probability("tracing.tracing_probability", tr.tracing_probability)
    _check_probability("tracing.equipment_rate", tr.equipment_rate)
    if tr.tracing_delay_days < 0 or tr.tracing_period_days < 0:
        raise ValueError("tracing delay and period must be non-negative")
    if tr.capacity is not None and tr.capacity < 0:
        raise ValueError("tracing.capacity must be non-negative")
    if tr.capacity_type not in {"per_contact", "per_person"}:
        raise ValueError(
            f"tracing.capacity_type must be 'per_contact' or 'per_person', "
            f"got '{tr.capacity_type}'"
        )
    status = parse_enum(QuarantineStatus, tr.quarantine_status)
    if status == QuarantineStatus.NO:
        raise ValueError("tracing.quarantine_status must be 'at_home' or 'full'")
    if (tr.start_day is not None and tr.tracing_probability == 0.0
            and not tr.quarantine_household_members):
        warnings.warn(
            "tracing.start_day is set but tracing_probability is 0 and "
            "household quarantine is off; tracing will quarantine nobody.",
            UserWarning,
            stacklevel=2,
        )

    # Testing
    te = config.testing
    valid_strategies = {"none", "fixed_days", "activities"}
    if te.strategy not in valid_strategies:
        raise ValueError(
            f"testing.strategy must be one of {valid_strategies}, got '{te.strategy}'"
        )
    _check_probability("testing.false_positive_rate", te.false_positive_rate)
    _check_probability("testing.false_negative_rate", te.false_negative_rate)
    if te.capacity < 0:
        raise ValueError("testing.capacity must be non-negative")
    if te.strategy == "activities" and not te.activities:
        raise ValueError("testing.activities required for strategy 'activities'")

    # Vaccination
    va = config.vaccination
    _check_probability("vaccination.compliance", va.compliance)
    if va.capacity < 0 or va.booster_capacity < 0:
        raise ValueError("vaccination capacities must be non-negative")
    mix = _resolve_keys(va.vaccine_mix, VaccinationType, "vaccination.vaccine_mix")
    if va.capacity > 0 or va.capacity_schedule:
        total = sum(mix.values())
        if total <= 0:
            raise ValueError("vaccination.vaccine_mix shares must sum to > 0")
    for vtype in mix:
        if vtype in (VaccinationType.NATURAL, VaccinationType.NATURAL_WITH_OMICRON):
            raise ValueError(f"vaccination.vaccine_mix: '{vtype.name.lower()}' is not a vaccine")
    parse_enum(VaccinationType, va.booster_type)

    # Seeding
    se = config.seeding
    if se.initial_infections < 0:
        raise ValueError("seeding.initial_infections must be non-negative")
    if (se.lower_age is not None and se.upper_age is not None
            and se.lower_age > se.upper_age):
        raise ValueError(
            f"seeding.lower_age ({se.lower_age}) must be <= "
            f"upper_age ({se.upper_age})"
        )
    parse_enum(VirusStrain, se.strain)


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        sweep_overrides: Optional dict of parameter sweep overrides.

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
