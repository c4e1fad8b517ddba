"""Utility functions for epistate.

General-purpose helpers: breakpoint interpolation, day schedules, hashing.
"""

from __future__ import annotations

import hashlib
from typing import Dict, Mapping, Optional, TypeVar

import numpy as np

T = TypeVar('T')


def interpolate_entry(breakpoints: Mapping[int, float], x: float) -> float:
    """Piecewise-linear interpolation over integer breakpoints.

    Values outside the covered range are clamped to the first/last entry.

    Args:
        breakpoints: Mapping of breakpoint (e.g. age) → value.
        x: Query point.

    Returns:
        Interpolated value.

    Raises:
        ValueError: If breakpoints is empty.
    """
    if not breakpoints:
        raise ValueError("Cannot interpolate over an empty breakpoint table")
    keys = np.array(sorted(breakpoints), dtype=np.float64)
    vals = np.array([breakpoints[k] for k in sorted(breakpoints)], dtype=np.float64)
    return float(np.interp(x, keys, vals))


def age_lookup_table(breakpoints: Mapping[int, float], n_ages: int = 128) -> np.ndarray:
    """Tabulate interpolated breakpoint values for ages 0 .. n_ages-1."""
    keys = np.array(sorted(breakpoints), dtype=np.float64)
    vals = np.array([breakpoints[k] for k in sorted(breakpoints)], dtype=np.float64)
    return np.interp(np.arange(n_ages, dtype=np.float64), keys, vals)


def step_lookup(bounds: Mapping[int, float], x: float) -> float:
    """Step-table lookup: value of the smallest bound strictly above *x*.

    ``{10: 0.1, 20: 0.2, 200: 0.3}`` yields 0.1 for x < 10, 0.2 for
    10 ≤ x < 20, and 0.3 above. Values past the last bound take the
    last entry.
    """
    last = 0.0
    for bound in sorted(bounds):
        last = bounds[bound]
        if x < bound:
            return float(last)
    return float(last)


def find_valid_entry(schedule: Optional[Mapping[int, T]], default: T, day: int) -> T:
    """Entry of the latest schedule key ≤ *day*, else *default*.

    Schedules map a start day to a value that stays valid until the
    next key, e.g. ``{0: 100, 30: 500}``.
    """
    if not schedule:
        return default
    result = default
    for start in sorted(schedule):
        if start > day:
            break
        result = schedule[start]
    return result


def interpolate_schedule(schedule: Mapping[int, float], day: int) -> float:
    """Linear interpolation of a day → value schedule (clamped at ends)."""
    if not schedule:
        return 0.0
    return interpolate_entry(schedule, day)


def int_keys(mapping: Optional[Dict]) -> Dict[int, object]:
    """Copy a mapping with its keys coerced to int (YAML may give strings)."""
    if not mapping:
        return {}
    return {int(k): v for k, v in mapping.items()}


def config_hash(yaml_text: str) -> str:
    """SHA-256 of a YAML config string (for snapshot tagging)."""
    return hashlib.sha256(yaml_text.encode('utf-8')).hexdigest()
