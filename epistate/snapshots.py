"""Engine checkpoints.

A snapshot holds everything needed to resume a run bit-exactly at a day
boundary: every person's mutable state, the progression model's cached
dwell-time draws, the state of every RNG stream, and the seeding budget.
Snapshots are plain dicts tagged with a hash of the configuration they
were taken under, and are saved as JSON.

Usage:
    recorder = SnapshotRecorder(enabled=True, interval_days=7)
    model.run(recorder=recorder)
    recorder.save("checkpoints.json")

    snap = load_snapshot("day_28.json")
    restore_snapshot(fresh_model, snap)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from epistate.config import config_to_yaml
from epistate.rng import restore_rng_state, rng_state_snapshot
from epistate.utils import config_hash

SNAPSHOT_VERSION = 1


def capture_snapshot(model) -> Dict[str, Any]:
    """Complete, JSON-serialisable state of an EpidemicModel."""
    return {
        'version': SNAPSHOT_VERSION,
        'config_hash': config_hash(config_to_yaml(model.config)),
        'day': model.day,
        'persons': [p.to_state() for p in model.ordered],
        'progression': model.progression.state_snapshot(),
        'rng': rng_state_snapshot(model.rngs),
        'seeding_left': model.seeding.infections_left,
    }


def restore_snapshot(model, snapshot: Dict[str, Any], check_config: bool = True) -> None:
    """Overwrite an EpidemicModel's state from capture_snapshot() output.

    Raises:
        ValueError: On version or configuration mismatch.
        KeyError: If the snapshot names a person the model does not have.
    """
    if snapshot.get('version') != SNAPSHOT_VERSION:
        raise ValueError(
            f"Unsupported snapshot version {snapshot.get('version')}, "
            f"expected {SNAPSHOT_VERSION}"
        )
    if check_config:
        expected = config_hash(config_to_yaml(model.config))
        if snapshot['config_hash'] != expected:
            raise ValueError("Snapshot was taken under a different configuration")

    for state in snapshot['persons']:
        pid = state['person_id']
        if pid not in model.persons:
            raise KeyError(f"Snapshot person '{pid}' is not part of the population")
        model.persons[pid].restore_state(state)
    model.progression.restore_state(snapshot['progression'])
    restore_rng_state(model.rngs, snapshot['rng'])
    model.seeding.infections_left = snapshot['seeding_left']
    model.day = snapshot['day']


def save_snapshot(snapshot: Dict[str, Any], path: Union[str, Path]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(snapshot, f)


def load_snapshot(path: Union[str, Path]) -> Dict[str, Any]:
    with open(path) as f:
        return json.load(f)


class SnapshotRecorder:
    """Periodic checkpoints during a run.

    When enabled=False, all methods are no-ops.
    """

    def __init__(
        self,
        enabled: bool = False,
        interval_days: int = 1,
        start_day: int = 0,
        end_day: int = 999999,
    ):
        """
        Args:
            enabled: Master switch. False = no-ops everywhere.
            interval_days: Capture every N days (1 = daily, 7 = weekly).
            start_day: First simulation day to record.
            end_day: Last simulation day to record.
        """
        self.enabled = enabled
        self.interval_days = interval_days
        self.start_day = start_day
        self.end_day = end_day
        # day boundary (next day to simulate) → snapshot
        self.snapshots: Dict[int, Dict[str, Any]] = {}

    def should_capture(self, day: int) -> bool:
        if not self.enabled:
            return False
        if day < self.start_day or day > self.end_day:
            return False
        return (day % self.interval_days) == 0

    def capture(self, model) -> None:
        """Capture after a simulated day (keyed by the next day to run)."""
        if not self.should_capture(model.day):
            return
        self.snapshots[model.day] = capture_snapshot(model)

    def get_days(self) -> List[int]:
        return sorted(self.snapshots)

    def get_snapshot(self, day: int) -> Optional[Dict[str, Any]]:
        return self.snapshots.get(day)

    def save(self, path: Union[str, Path]) -> None:
        if not self.snapshots:
            return
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump({str(d): s for d, s in sorted(self.snapshots.items())}, f)

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'SnapshotRecorder':
        with open(path) as f:
            data = json.load(f)
        recorder = cls(enabled=False)  # Don't capture, just hold data
        recorder.snapshots = {int(d): s for d, s in data.items()}
        return recorder
