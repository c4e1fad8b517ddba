"""Daily restriction table.

Policy components outside the engine decide, per activity and day, how
much of the activity still takes place (remaining_fraction), how much
closer or looser contacts are (ci_correction), and which masks people
wear (mask_usage: FaceMask → share). The engine only looks up the
restriction valid on a given day.

A schedule entry stays valid until the next entry for the same
activity, e.g. ``{0: {'work': {...}}, 30: {'work': {...}}}``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from epistate.config import InfectionSection
from epistate.types import FaceMask, parse_enum
from epistate.utils import find_valid_entry


@dataclass(frozen=True)
class ActivityParams:
    """Container-specific transmission parameters of one activity."""
    name: str
    contact_intensity: float = 1.0
    seasonal: bool = False


def activity_params(config: InfectionSection) -> Dict[str, ActivityParams]:
    return {
        name: ActivityParams(
            name=name,
            contact_intensity=float(spec.get('contact_intensity', 1.0)),
            seasonal=bool(spec.get('seasonal', False)),
        )
        for name, spec in config.activities.items()
    }


@dataclass(frozen=True)
class Restriction:
    remaining_fraction: float = 1.0
    ci_correction: float = 1.0
    mask_usage: Mapping[FaceMask, float] = field(default_factory=dict)

    def __post_init__(self):
        if not (0.0 <= self.remaining_fraction <= 1.0):
            raise ValueError(
                f"remaining_fraction must be in [0, 1], got {self.remaining_fraction}"
            )
        if self.ci_correction < 0:
            raise ValueError(f"ci_correction must be >= 0, got {self.ci_correction}")
        total = sum(self.mask_usage.values())
        if total > 1.0 + 1e-9:
            raise ValueError(f"mask_usage shares sum to {total} > 1")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Restriction":
        masks = {
            parse_enum(FaceMask, k): float(v)
            for k, v in (data.get('mask_usage') or {}).items()
        }
        return cls(
            remaining_fraction=float(data.get('remaining_fraction', 1.0)),
            ci_correction=float(data.get('ci_correction', 1.0)),
            mask_usage=masks,
        )


OPEN = Restriction()


class RestrictionSchedule:
    """Activity → day → Restriction, with latest-entry-wins lookup."""

    def __init__(self, schedule: Optional[Mapping[int, Mapping[str, Any]]] = None):
        self._by_activity: Dict[str, Dict[int, Restriction]] = {}
        for day, entries in (schedule or {}).items():
            for activity, spec in (entries or {}).items():
                self.set(int(day), activity, spec)

    def set(self, day: int, activity: str, restriction) -> None:
        if not isinstance(restriction, Restriction):
            restriction = Restriction.from_dict(restriction)
        self._by_activity.setdefault(activity, {})[day] = restriction

    def restriction(self, activity: str, day: int) -> Restriction:
        return find_valid_entry(self._by_activity.get(activity), OPEN, day)

    def for_day(self, activities, day: int) -> Dict[str, Restriction]:
        """Restrictions of every listed activity valid on *day*."""
        return {name: self.restriction(name, day) for name in activities}
