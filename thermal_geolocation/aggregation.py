"""Per-object aggregation of single-frame location estimates.

A TrackedObject collects the observations claimed for one (assumed
stationary) object and keeps running statistics over the successfully
located ones:

- centroid: mean northing/easting/elevation of the estimates
- sum_location_error_m: sum of horizontal distances from each estimate to
  the centroid
- height mean/min/max and sum_height_error_m: sum of |h_i - mean h|

Objects live in an ObjectStore keyed by integer id; observations refer to
their object by id only. Ids come from an explicit IdGenerator so separate
runs and tests never share counters.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from thermal_geolocation.location_estimator import LocationEstimate, LocationEstimator
from thermal_geolocation.observations import (
    ComputedBy,
    Failed,
    HeightMethod,
    ImageObservation,
)
from thermal_geolocation.pose import PlatformPose
from thermal_geolocation.types import Meters

logger = logging.getLogger(__name__)

# Fraction of a bounding box covered by an inscribed ellipse (pi / 4).
ELLIPSE_AREA_FRACTION = 0.785


class IdGenerator:
    """Monotonic integer id source."""

    def __init__(self, start: int = 1):
        self._next = start

    def next_id(self) -> int:
        value = self._next
        self._next += 1
        return value

    def peek(self) -> int:
        return self._next


@dataclass(frozen=True)
class SignificanceThresholds:
    """Thresholds deciding whether an object is worth calibrating against.

    Attributes:
        min_hot_pixels: Largest sighting must have more hot pixels than this.
        max_hot_pixels: Largest sighting must not exceed this (0 disables).
        min_hot_density: Minimum ratio of hot pixels to the ellipse
            inscribed in the largest bounding box.
        min_duration_steps: Minimum number of flight steps the object spans.
        min_height_m: Objects taller than this are significant even if small.
    """

    min_hot_pixels: int = 5
    max_hot_pixels: int = 0
    min_hot_density: float = 0.1
    min_duration_steps: int = 2
    min_height_m: Meters = Meters(2.0)

    def __post_init__(self) -> None:
        if self.min_hot_pixels < 0:
            raise ValueError(f"min_hot_pixels must be non-negative, got {self.min_hot_pixels}")
        if self.max_hot_pixels < 0:
            raise ValueError(f"max_hot_pixels must be non-negative, got {self.max_hot_pixels}")
        if not 0.0 <= self.min_hot_density <= 1.0:
            raise ValueError(f"min_hot_density must be within [0, 1], got {self.min_hot_density}")
        if self.min_duration_steps < 1:
            raise ValueError(f"min_duration_steps must be at least 1, got {self.min_duration_steps}")


@dataclass
class Claim:
    """An observation claimed by an object, with its latest estimate."""

    observation: ImageObservation
    estimate: Optional[LocationEstimate] = None


@dataclass
class TrackedObject:
    """One tracked object and its aggregate statistics."""

    object_id: int
    claims: List[Claim] = field(default_factory=list)

    centroid_northing: Meters = Meters(0.0)
    centroid_easting: Meters = Meters(0.0)
    centroid_elevation: Meters = Meters(0.0)
    mean_height_m: Meters = Meters(0.0)
    min_height_m: Meters = Meters(0.0)
    max_height_m: Meters = Meters(0.0)
    sum_location_error_m: Meters = Meters(0.0)
    sum_height_error_m: Meters = Meters(0.0)
    num_located: int = 0

    max_hot_pixels: int = 0
    max_box_width: int = 0
    max_box_height: int = 0
    first_step: Optional[int] = None
    last_step: Optional[int] = None
    significant: bool = False

    @property
    def observations(self) -> List[ImageObservation]:
        return [c.observation for c in self.claims]

    @property
    def num_observations(self) -> int:
        return len(self.claims)

    @property
    def mean_location_error_m(self) -> float:
        return self.sum_location_error_m / self.num_located if self.num_located else 0.0

    @property
    def duration_steps(self) -> int:
        if self.first_step is None or self.last_step is None:
            return 0
        return self.last_step - self.first_step + 1

    @property
    def hot_density(self) -> float:
        area = self.max_box_width * self.max_box_height * ELLIPSE_AREA_FRACTION
        return self.max_hot_pixels / area if area > 0 else 0.0

    def within_steps(self, min_step: int, max_step: int) -> bool:
        """True if every claimed observation lies inside the step range."""
        return (
            self.first_step is not None
            and self.last_step is not None
            and min_step <= self.first_step
            and self.last_step <= max_step
        )

    def recompute(self) -> None:
        """Recompute all statistics from the claims."""
        located = [c.estimate for c in self.claims if c.estimate is not None]
        self.num_located = len(located)

        if located:
            n = len(located)
            self.centroid_northing = Meters(sum(e.northing for e in located) / n)
            self.centroid_easting = Meters(sum(e.easting for e in located) / n)
            self.centroid_elevation = Meters(sum(e.elevation for e in located) / n)
            self.sum_location_error_m = Meters(
                sum(e.distance_to(self.centroid_northing, self.centroid_easting) for e in located)
            )
            heights = [e.height_m for e in located]
            self.mean_height_m = Meters(sum(heights) / n)
            self.min_height_m = Meters(min(heights))
            self.max_height_m = Meters(max(heights))
            self.sum_height_error_m = Meters(sum(abs(h - self.mean_height_m) for h in heights))
        else:
            self.centroid_northing = Meters(0.0)
            self.centroid_easting = Meters(0.0)
            self.centroid_elevation = Meters(0.0)
            self.sum_location_error_m = Meters(0.0)
            self.mean_height_m = Meters(0.0)
            self.min_height_m = Meters(0.0)
            self.max_height_m = Meters(0.0)
            self.sum_height_error_m = Meters(0.0)

        observations = self.observations
        if observations:
            self.max_hot_pixels = max(o.num_hot_pixels for o in observations)
            self.max_box_width = max(o.box_width for o in observations)
            self.max_box_height = max(o.box_height for o in observations)
            self.first_step = min(o.step_id for o in observations)
            self.last_step = max(o.step_id for o in observations)
        else:
            self.max_hot_pixels = 0
            self.max_box_width = 0
            self.max_box_height = 0
            self.first_step = None
            self.last_step = None

    def summary(self) -> dict:
        return {
            'object_id': self.object_id,
            'observations': self.num_observations,
            'located': self.num_located,
            'northing': round(float(self.centroid_northing), 3),
            'easting': round(float(self.centroid_easting), 3),
            'elevation': round(float(self.centroid_elevation), 3),
            'sum_location_error_m': round(float(self.sum_location_error_m), 4),
            'mean_height_m': round(float(self.mean_height_m), 3),
            'min_height_m': round(float(self.min_height_m), 3),
            'max_height_m': round(float(self.max_height_m), 3),
            'sum_height_error_m': round(float(self.sum_height_error_m), 4),
            'significant': self.significant,
        }


def is_significant(obj: TrackedObject, thresholds: SignificanceThresholds) -> bool:
    """Decide whether an object is large, dense and persistent enough."""
    pixels_ok = obj.max_hot_pixels > thresholds.min_hot_pixels and (
        thresholds.max_hot_pixels <= 0 or obj.max_hot_pixels <= thresholds.max_hot_pixels
    )
    density_ok = obj.hot_density >= thresholds.min_hot_density
    duration_ok = obj.duration_steps >= thresholds.min_duration_steps
    height_good = obj.num_located > 0 and obj.mean_height_m > thresholds.min_height_m
    pixels_good = obj.max_hot_pixels > 2 * thresholds.min_hot_pixels
    return pixels_ok and density_ok and duration_ok and (height_good or pixels_good)


class ObjectStore(Mapping[int, TrackedObject]):
    """Arena of tracked objects keyed by object id."""

    def __init__(self, objects: Iterable[TrackedObject] = ()):
        self._objects: Dict[int, TrackedObject] = {}
        for obj in objects:
            self.add(obj)

    def __getitem__(self, object_id: int) -> TrackedObject:
        return self._objects[object_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._objects)

    def __len__(self) -> int:
        return len(self._objects)

    def add(self, obj: TrackedObject) -> None:
        if obj.object_id in self._objects:
            raise ValueError(f"Object {obj.object_id} is already in the store")
        self._objects[obj.object_id] = obj

    def replace(self, obj: TrackedObject) -> None:
        if obj.object_id not in self._objects:
            raise ValueError(f"Object {obj.object_id} is not in the store")
        self._objects[obj.object_id] = obj

    def within_steps(self, min_step: int, max_step: int, significant_only: bool = True) -> List[TrackedObject]:
        """Objects whose observations all lie inside the step range."""
        return [
            o
            for o in self._objects.values()
            if o.within_steps(min_step, max_step) and (o.significant or not significant_only)
        ]


@dataclass(frozen=True)
class ErrorSummary:
    """Location and height error totals over a set of objects."""

    num_objects: int
    sum_location_error_m: Meters
    min_location_error_m: Meters
    max_location_error_m: Meters
    sum_height_error_m: Meters
    min_height_error_m: Meters
    max_height_error_m: Meters

    @property
    def mean_location_error_m(self) -> float:
        return self.sum_location_error_m / self.num_objects if self.num_objects else 0.0

    @property
    def mean_height_error_m(self) -> float:
        return self.sum_height_error_m / self.num_objects if self.num_objects else 0.0


def summarize_objects(objects: Iterable[TrackedObject]) -> ErrorSummary:
    objects = list(objects)
    if not objects:
        zero = Meters(0.0)
        return ErrorSummary(0, zero, zero, zero, zero, zero, zero)
    location = [o.sum_location_error_m for o in objects]
    height = [o.sum_height_error_m for o in objects]
    return ErrorSummary(
        num_objects=len(objects),
        sum_location_error_m=Meters(math.fsum(location)),
        min_location_error_m=Meters(min(location)),
        max_location_error_m=Meters(max(location)),
        sum_height_error_m=Meters(math.fsum(height)),
        min_height_error_m=Meters(min(height)),
        max_height_error_m=Meters(max(height)),
    )


class ObservationAggregator:
    """Folds single-frame estimates into tracked objects.

    Args:
        estimator: Estimator used by ``observe`` and ``rebuild``.
        store: Object arena new tracks are registered in.
        id_generator: Source of new object ids.
        thresholds: Significance thresholds applied after every update.
    """

    def __init__(
        self,
        estimator: LocationEstimator,
        store: Optional[ObjectStore] = None,
        id_generator: Optional[IdGenerator] = None,
        thresholds: Optional[SignificanceThresholds] = None,
    ):
        self.estimator = estimator
        self.store = store if store is not None else ObjectStore()
        self.id_generator = id_generator if id_generator is not None else IdGenerator()
        self.thresholds = thresholds if thresholds is not None else SignificanceThresholds()

    def new_track(self) -> TrackedObject:
        obj = TrackedObject(object_id=self.id_generator.next_id())
        self.store.add(obj)
        return obj

    def claim_observation(
        self,
        track: TrackedObject,
        observation: ImageObservation,
        estimate: Optional[LocationEstimate],
    ) -> ImageObservation:
        """Attach an observation and its estimate to a track.

        A missing estimate is recorded as a failed height derivation and
        does not contribute to the statistics.

        Returns:
            The claimed observation, carrying the object id and height status.
        """
        if observation.object_id is not None and observation.object_id != track.object_id:
            raise ValueError(
                f"Observation {observation.observation_id} is already claimed by object "
                f"{observation.object_id}"
            )
        status = ComputedBy(HeightMethod.LINE_OF_SIGHT) if estimate is not None else Failed("no ground intersection")
        claimed = observation.claimed_by(track.object_id).with_height_status(status)
        track.claims.append(Claim(observation=claimed, estimate=estimate))
        self._refresh(track)
        return claimed

    def observe(
        self,
        track: TrackedObject,
        observation: ImageObservation,
        pose: PlatformPose,
    ) -> Optional[LocationEstimate]:
        """Estimate an observation's location and claim it for ``track``."""
        estimate = self.estimator.calculate_target_location(observation, pose)
        self.claim_observation(track, observation, estimate)
        return estimate

    def rebuild(
        self,
        track: TrackedObject,
        poses: Mapping[int, PlatformPose],
    ) -> TrackedObject:
        """Re-derive a track from its observations and the given poses.

        The input track is not modified; the result has the same id and
        observations with fresh estimates and statistics.

        Raises:
            ValueError: If an observation's step has no pose.
        """
        rebuilt = TrackedObject(object_id=track.object_id)
        for claim in track.claims:
            observation = claim.observation
            pose = poses.get(observation.step_id)
            if pose is None:
                raise ValueError(
                    f"No pose for step {observation.step_id} "
                    f"(observation {observation.observation_id}, object {track.object_id})"
                )
            estimate = self.estimator.calculate_target_location(observation, pose)
            status = (
                ComputedBy(HeightMethod.LINE_OF_SIGHT) if estimate is not None else Failed("no ground intersection")
            )
            rebuilt.claims.append(
                Claim(observation=observation.reset_height_status().with_height_status(status), estimate=estimate)
            )
        self._refresh(rebuilt)
        return rebuilt

    def _refresh(self, track: TrackedObject) -> None:
        track.recompute()
        track.significant = is_significant(track, self.thresholds)
