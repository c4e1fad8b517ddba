"""Core data types for epistate.

This module is the SINGLE SOURCE OF TRUTH for:
  - DiseaseStatus, QuarantineStatus, TestStatus, VaccinationStatus enums
  - VirusStrain, VaccinationType, FaceMask closed enumerations
  - The disease progression state machine (PROGRESSION_EDGES)
  - Time constants shared by all modules

All closed enumerations are IntEnums so they can index numpy lookup
tables directly (antibody tables, mask factors).
"""

from enum import IntEnum
from typing import Dict, FrozenSet, Tuple, Type, TypeVar

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# TIME
# ═══════════════════════════════════════════════════════════════════════

SECONDS_PER_DAY = 86400.0


def day_of(time_sec: float) -> int:
    """Simulation day containing the given time (seconds since start)."""
    return int(np.floor(time_sec / SECONDS_PER_DAY))


def start_of_day(day: int) -> float:
    """Time in seconds at which *day* begins."""
    return day * SECONDS_PER_DAY


# ═══════════════════════════════════════════════════════════════════════
# PERSON STATUS ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class DiseaseStatus(IntEnum):
    """Disease compartments of one infection episode.

    SUSCEPTIBLE → INFECTED_BUT_NOT_CONTAGIOUS → CONTAGIOUS
      → SHOWING_SYMPTOMS → SERIOUSLY_SICK → CRITICAL
      → SERIOUSLY_SICK_AFTER_CRITICAL → RECOVERED
    with early exits to RECOVERED, and RECOVERED → SUSCEPTIBLE
    when immunity wanes.
    """
    SUSCEPTIBLE                   = 0
    INFECTED_BUT_NOT_CONTAGIOUS   = 1
    CONTAGIOUS                    = 2
    SHOWING_SYMPTOMS              = 3
    SERIOUSLY_SICK                = 4
    CRITICAL                      = 5
    SERIOUSLY_SICK_AFTER_CRITICAL = 6
    RECOVERED                     = 7


class QuarantineStatus(IntEnum):
    NO      = 0
    AT_HOME = 1
    FULL    = 2


class TestStatus(IntEnum):
    """Latest test result of a person."""
    __test__ = False  # not a pytest class

    UNTESTED = 0
    POSITIVE = 1
    NEGATIVE = 2


class VaccinationStatus(IntEnum):
    NO  = 0
    YES = 1


# ═══════════════════════════════════════════════════════════════════════
# IMMUNOLOGICAL ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class VirusStrain(IntEnum):
    """Modeled viral strains. Every table keyed by strain must cover all."""
    WILD_TYPE   = 0
    ALPHA       = 1
    DELTA       = 2
    OMICRON_BA1 = 3
    OMICRON_BA2 = 4
    STRAIN_A    = 5


OMICRON_STRAINS: FrozenSet[VirusStrain] = frozenset({
    VirusStrain.OMICRON_BA1,
    VirusStrain.OMICRON_BA2,
})


class VaccinationType(IntEnum):
    """Immunizing event categories (vaccines and natural infection)."""
    GENERIC              = 0
    MRNA                 = 1
    VECTOR               = 2
    OMICRON_UPDATE       = 3
    NATURAL              = 4
    NATURAL_WITH_OMICRON = 5


class FaceMask(IntEnum):
    """Mask types, ordered from least to most protective."""
    NONE     = 0
    CLOTH    = 1
    SURGICAL = 2
    N95      = 3


# Shedding / intake multipliers indexed by FaceMask value
MASK_SHEDDING = np.array([1.0, 0.6, 0.3, 0.15], dtype=np.float64)
MASK_INTAKE = np.array([1.0, 0.5, 0.2, 0.025], dtype=np.float64)


# ═══════════════════════════════════════════════════════════════════════
# PROGRESSION STATE MACHINE
# ═══════════════════════════════════════════════════════════════════════

# Outgoing edges driven by the progression model (dwell-time based).
# The first target of a branching state is the "worse" outcome.
PROGRESSION_EDGES: Dict[DiseaseStatus, Tuple[DiseaseStatus, ...]] = {
    DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS: (DiseaseStatus.CONTAGIOUS,),
    DiseaseStatus.CONTAGIOUS: (DiseaseStatus.SHOWING_SYMPTOMS,
                               DiseaseStatus.RECOVERED),
    DiseaseStatus.SHOWING_SYMPTOMS: (DiseaseStatus.SERIOUSLY_SICK,
                                     DiseaseStatus.RECOVERED),
    DiseaseStatus.SERIOUSLY_SICK: (DiseaseStatus.CRITICAL,
                                   DiseaseStatus.RECOVERED),
    DiseaseStatus.CRITICAL: (DiseaseStatus.SERIOUSLY_SICK_AFTER_CRITICAL,),
    DiseaseStatus.SERIOUSLY_SICK_AFTER_CRITICAL: (DiseaseStatus.RECOVERED,),
}

# Every legal edge, including the externally triggered ones
ALLOWED_TRANSITIONS: FrozenSet[Tuple[DiseaseStatus, DiseaseStatus]] = frozenset(
    {(src, dst) for src, dsts in PROGRESSION_EDGES.items() for dst in dsts}
    | {(DiseaseStatus.SUSCEPTIBLE, DiseaseStatus.INFECTED_BUT_NOT_CONTAGIOUS),
       (DiseaseStatus.RECOVERED, DiseaseStatus.SUSCEPTIBLE)}
)

# Persons in these states are hospitalised and skip all activities
HOSPITALISED: FrozenSet[DiseaseStatus] = frozenset({
    DiseaseStatus.SERIOUSLY_SICK,
    DiseaseStatus.CRITICAL,
    DiseaseStatus.SERIOUSLY_SICK_AFTER_CRITICAL,
})

# Persons in these states can transmit
INFECTIOUS: FrozenSet[DiseaseStatus] = frozenset({
    DiseaseStatus.CONTAGIOUS,
    DiseaseStatus.SHOWING_SYMPTOMS,
})


# ═══════════════════════════════════════════════════════════════════════
# NAME PARSING
# ═══════════════════════════════════════════════════════════════════════

E = TypeVar('E', bound=IntEnum)


def parse_enum(enum_cls: Type[E], value) -> E:
    """Resolve a config value to an enum member.

    Accepts members, integer values, and names in any case
    ("mRNA", "omicron_ba1", "OMICRON_BA1").

    Raises:
        ValueError: If the value names no member of *enum_cls*.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
        return enum_cls(int(value))
    key = str(value).strip().upper()
    try:
        return enum_cls[key]
    except KeyError:
        raise ValueError(
            f"'{value}' is not a valid {enum_cls.__name__}; "
            f"expected one of {[m.name.lower() for m in enum_cls]}"
        ) from None
