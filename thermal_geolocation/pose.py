"""Platform pose samples and pose lookup.

A PlatformPose is the drone position and gimbal orientation at one flight
step. Poses are immutable: an altitude correction produces a new pose via
``with_altitude_bias`` so trial corrections never disturb the recorded data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from thermal_geolocation.types import Degrees, Meters

logger = logging.getLogger(__name__)

# Gimbal depression angles outside this band are unusual for survey flights.
TYPICAL_MIN_DEPRESSION_DEG = 25.0
TYPICAL_MAX_DEPRESSION_DEG = 92.0


@dataclass(frozen=True)
class PlatformPose:
    """Position and camera orientation of the platform at one flight step.

    Attributes:
        step_id: Flight step (frame sample) identifier.
        northing: Northing in meters.
        easting: Easting in meters.
        altitude: Altitude above the vertical datum in meters.
        heading_deg: Camera heading, degrees clockwise from north.
        depression_deg: Camera depression, degrees below horizontal
            (90 is straight down).
        leg_id: Flight leg the step belongs to, if known.
    """

    step_id: int
    northing: Meters
    easting: Meters
    altitude: Meters
    heading_deg: Degrees
    depression_deg: Degrees
    leg_id: Optional[int] = None

    def __post_init__(self) -> None:
        if not -180.0 <= self.depression_deg <= 180.0:
            raise ValueError(f"Depression must be within [-180, 180] degrees, got {self.depression_deg}")
        if not (TYPICAL_MIN_DEPRESSION_DEG <= self.depression_deg <= TYPICAL_MAX_DEPRESSION_DEG):
            logger.warning(
                f"Step {self.step_id}: depression {self.depression_deg:.1f} deg is outside the "
                f"typical range [{TYPICAL_MIN_DEPRESSION_DEG}, {TYPICAL_MAX_DEPRESSION_DEG}]"
            )

    def with_altitude_bias(self, bias_m: float) -> PlatformPose:
        """Return a copy of this pose with ``bias_m`` added to the altitude."""
        if bias_m == 0.0:
            return self
        return replace(self, altitude=Meters(self.altitude + bias_m))

    def to_dict(self) -> dict:
        return {
            'step_id': self.step_id,
            'leg_id': self.leg_id,
            'northing': float(self.northing),
            'easting': float(self.easting),
            'altitude': float(self.altitude),
            'heading_deg': float(self.heading_deg),
            'depression_deg': float(self.depression_deg),
        }

    @classmethod
    def from_dict(cls, data: dict) -> PlatformPose:
        try:
            return cls(
                step_id=int(data['step_id']),
                northing=Meters(float(data['northing'])),
                easting=Meters(float(data['easting'])),
                altitude=Meters(float(data['altitude'])),
                heading_deg=Degrees(float(data['heading_deg'])),
                depression_deg=Degrees(float(data['depression_deg'])),
                leg_id=int(data['leg_id']) if data.get('leg_id') is not None else None,
            )
        except KeyError as e:
            raise ValueError(f"Pose entry missing required field: {e}") from e


class PoseTable(Mapping[int, PlatformPose]):
    """Read-only mapping of step_id to PlatformPose, ordered by step.

    Applying a bias returns a new table; the original is left untouched.
    """

    def __init__(self, poses: Iterable[PlatformPose]):
        by_step: Dict[int, PlatformPose] = {}
        for pose in poses:
            if pose.step_id in by_step:
                raise ValueError(f"Duplicate pose for step {pose.step_id}")
            by_step[pose.step_id] = pose
        self._poses = dict(sorted(by_step.items()))

    def __getitem__(self, step_id: int) -> PlatformPose:
        return self._poses[step_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._poses)

    def __len__(self) -> int:
        return len(self._poses)

    def __repr__(self) -> str:
        return f"PoseTable({len(self)} poses)"

    @property
    def min_step(self) -> Optional[int]:
        return next(iter(self._poses), None)

    @property
    def max_step(self) -> Optional[int]:
        return next(reversed(self._poses), None) if self._poses else None

    def in_step_range(self, min_step: int, max_step: int) -> List[PlatformPose]:
        """Poses with min_step <= step_id <= max_step."""
        return [p for s, p in self._poses.items() if min_step <= s <= max_step]

    def for_leg(self, leg_id: int) -> List[PlatformPose]:
        return [p for p in self._poses.values() if p.leg_id == leg_id]

    def leg_ids(self) -> List[int]:
        return sorted({p.leg_id for p in self._poses.values() if p.leg_id is not None})

    def with_altitude_bias(
        self,
        bias_m: float,
        min_step: Optional[int] = None,
        max_step: Optional[int] = None,
    ) -> PoseTable:
        """Return a new table with the bias applied to poses in the step range.

        With no range, every pose is corrected.
        """
        if not self._poses:
            return self
        lo = self.min_step if min_step is None else min_step
        hi = self.max_step if max_step is None else max_step
        return PoseTable(
            p.with_altitude_bias(bias_m) if lo <= p.step_id <= hi else p
            for p in self._poses.values()
        )
