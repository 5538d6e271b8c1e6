"""
Flight segment altitude-bias calibration.

The platform altitude reported by the positioning system can carry a
systematic offset over a flight segment. A stationary object seen from many
steps should geolocate to the same place every time; with a wrong altitude
the line-of-sight intersections smear out along the viewing direction.
This module searches for the single altitude correction per segment that
minimises the summed location error of the segment's significant objects.

Search (greedy line search, all trials deterministic):

1. Evaluate bias 0: this is the original error and the initial best.
2. Step upwards in ``coarse_step_m`` increments up to the bound, stopping
   at the first step that does not improve on the best.
3. Step downwards symmetrically.
4. Try best + ``fine_step_m``; if that does not improve, best - fine step.
5. Commit the best trial.

A trial only becomes the new best if it lowers the summed location error by
at least ``min_improvement_m``.

Each trial is a pure evaluation: corrected poses and freshly derived object
statistics are built from the original poses and observations and nothing
is written back until the commit.

Usage Example:
    >>> calibrator = SegmentAltitudeCalibrator(aggregator)
    >>> segment = FlightSegment.from_leg(1, leg_id=3, poses=poses)
    >>> bias = calibrator.calibrate_segment(segment, poses, store)
    >>> print(f"Segment {segment.name}: {bias:+.1f}m")
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
from numpy.polynomial import Polynomial

from thermal_geolocation.aggregation import (
    ObjectStore,
    ObservationAggregator,
    TrackedObject,
    summarize_objects,
)
from thermal_geolocation.pose import PoseTable
from thermal_geolocation.types import Meters

logger = logging.getLogger(__name__)

MIN_SEGMENT_STEPS = 4


def id_to_letter(segment_id: int) -> str:
    """Spreadsheet style name for an id: 1 -> A, 26 -> Z, 27 -> AA."""
    if segment_id < 1:
        return str(segment_id)
    letters = ""
    n = segment_id
    while n > 0:
        n, remainder = divmod(n - 1, 26)
        letters = chr(ord('A') + remainder) + letters
    return letters


@dataclass(frozen=True)
class CalibrationSettings:
    """Altitude-bias search parameters.

    Attributes:
        coarse_step_m: Step between coarse trials.
        fine_step_m: Step of the final fine-tuning trials.
        max_abs_bias_m: Search bound when the flight had a ground-level
            altitude fix.
        max_abs_bias_no_ground_fix_m: Wider bound used without that fix.
        min_improvement_m: Minimum drop in summed location error for a
            trial to replace the current best.
        has_ground_fix: Whether the flight altitude was fixed at ground level
            before take-off.
    """

    coarse_step_m: Meters = Meters(0.2)
    fine_step_m: Meters = Meters(0.1)
    max_abs_bias_m: Meters = Meters(8.0)
    max_abs_bias_no_ground_fix_m: Meters = Meters(15.0)
    min_improvement_m: Meters = Meters(0.02)
    has_ground_fix: bool = True

    def __post_init__(self) -> None:
        if self.coarse_step_m <= 0 or self.fine_step_m <= 0:
            raise ValueError(
                f"Search steps must be positive, got coarse={self.coarse_step_m}, fine={self.fine_step_m}"
            )
        if self.max_abs_bias_m < 0 or self.max_abs_bias_no_ground_fix_m < 0:
            raise ValueError("Bias bounds must be non-negative")
        if self.min_improvement_m < 0:
            raise ValueError(f"min_improvement_m must be non-negative, got {self.min_improvement_m}")

    @property
    def search_bound_m(self) -> float:
        return float(self.max_abs_bias_m if self.has_ground_fix else self.max_abs_bias_no_ground_fix_m)


@dataclass
class FlightSegment:
    """A contiguous range of flight steps sharing one altitude correction.

    A segment is either a whole flight leg (``leg_id`` set) or an explicit
    step range.
    """

    segment_id: int
    min_step: int
    max_step: int
    leg_id: Optional[int] = None
    altitude_bias_m: Meters = Meters(0.0)
    original_sum_location_error_m: Meters = Meters(0.0)
    original_sum_height_error_m: Meters = Meters(0.0)
    best_sum_location_error_m: Meters = Meters(0.0)
    best_sum_height_error_m: Meters = Meters(0.0)
    num_significant_objects: int = 0

    def __post_init__(self) -> None:
        if self.min_step > self.max_step:
            raise ValueError(
                f"Segment {self.segment_id}: min_step ({self.min_step}) exceeds max_step ({self.max_step})"
            )

    @property
    def name(self) -> str:
        return id_to_letter(self.segment_id)

    @property
    def num_steps(self) -> int:
        return self.max_step - self.min_step + 1

    @classmethod
    def from_leg(cls, segment_id: int, leg_id: int, poses: PoseTable) -> Optional[FlightSegment]:
        """Segment covering every pose of a flight leg, or None if the leg is too short."""
        steps = [p.step_id for p in poses.for_leg(leg_id)]
        if len(steps) < MIN_SEGMENT_STEPS:
            logger.debug(f"Leg {leg_id} has {len(steps)} steps, need {MIN_SEGMENT_STEPS}")
            return None
        return cls(segment_id=segment_id, min_step=min(steps), max_step=max(steps), leg_id=leg_id)

    @classmethod
    def from_step_range(
        cls,
        segment_id: int,
        min_step: int,
        max_step: int,
        poses: PoseTable,
    ) -> Optional[FlightSegment]:
        """Segment over an explicit step range, or None if it spans too few poses."""
        if max_step - min_step + 1 < MIN_SEGMENT_STEPS:
            return None
        if len(poses.in_step_range(min_step, max_step)) < MIN_SEGMENT_STEPS:
            return None
        return cls(segment_id=segment_id, min_step=min_step, max_step=max_step)

    def select_poses(self, poses: PoseTable) -> PoseTable:
        if self.leg_id is not None:
            return PoseTable(p for p in poses.for_leg(self.leg_id) if self.min_step <= p.step_id <= self.max_step)
        return PoseTable(poses.in_step_range(self.min_step, self.max_step))

    def objects_within(self, store: ObjectStore) -> List[TrackedObject]:
        """Significant objects whose observations all fall inside this segment."""
        return store.within_steps(self.min_step, self.max_step)

    def to_dict(self) -> dict:
        n = self.num_significant_objects
        return {
            'segment_id': self.segment_id,
            'name': self.name,
            'leg_id': self.leg_id,
            'min_step': self.min_step,
            'max_step': self.max_step,
            'altitude_bias_m': round(float(self.altitude_bias_m), 3),
            'num_significant_objects': n,
            'original_sum_location_error_m': round(float(self.original_sum_location_error_m), 4),
            'original_sum_height_error_m': round(float(self.original_sum_height_error_m), 4),
            'best_sum_location_error_m': round(float(self.best_sum_location_error_m), 4),
            'best_sum_height_error_m': round(float(self.best_sum_height_error_m), 4),
            'original_avg_location_error_m': round(float(self.original_sum_location_error_m) / n, 4) if n else 0.0,
            'original_avg_height_error_m': round(float(self.original_sum_height_error_m) / n, 4) if n else 0.0,
            'best_avg_location_error_m': round(float(self.best_sum_location_error_m) / n, 4) if n else 0.0,
            'best_avg_height_error_m': round(float(self.best_sum_height_error_m) / n, 4) if n else 0.0,
        }

    @classmethod
    def from_dict(cls, data: dict) -> FlightSegment:
        try:
            return cls(
                segment_id=int(data['segment_id']),
                min_step=int(data['min_step']),
                max_step=int(data['max_step']),
                leg_id=int(data['leg_id']) if data.get('leg_id') is not None else None,
                altitude_bias_m=Meters(float(data.get('altitude_bias_m', 0.0))),
                original_sum_location_error_m=Meters(float(data.get('original_sum_location_error_m', 0.0))),
                original_sum_height_error_m=Meters(float(data.get('original_sum_height_error_m', 0.0))),
                best_sum_location_error_m=Meters(float(data.get('best_sum_location_error_m', 0.0))),
                best_sum_height_error_m=Meters(float(data.get('best_sum_height_error_m', 0.0))),
                num_significant_objects=int(data.get('num_significant_objects', 0)),
            )
        except KeyError as e:
            raise ValueError(f"Segment entry missing required field: {e}") from e


@dataclass(frozen=True)
class TrialResult:
    """Outcome of evaluating one altitude bias."""

    bias_m: float
    sum_location_error_m: float
    sum_height_error_m: float
    objects: Dict[int, TrackedObject] = field(default_factory=dict, compare=False, repr=False)
    num_located: int = 0


@dataclass(frozen=True)
class PolynomialSurvey:
    """Diagnostic polynomial fit of summed location error against bias."""

    sample_biases: np.ndarray
    sample_errors: np.ndarray
    polynomial: Polynomial
    suggested_bias_m: float
    predicted_error_m: float


class SegmentAltitudeCalibrator:
    """Finds and commits the altitude correction for flight segments.

    Args:
        aggregator: Aggregator whose estimator and significance thresholds
            are used to re-derive objects for each trial.
        settings: Search parameters.
    """

    def __init__(self, aggregator: ObservationAggregator, settings: Optional[CalibrationSettings] = None):
        self.aggregator = aggregator
        self.settings = settings if settings is not None else CalibrationSettings()

    def evaluate(
        self,
        bias_m: float,
        poses: PoseTable,
        objects: Sequence[TrackedObject],
    ) -> TrialResult:
        """Re-derive ``objects`` with every pose raised by ``bias_m``.

        Neither the poses nor the objects passed in are modified.
        """
        corrected = poses.with_altitude_bias(bias_m)
        derived = {obj.object_id: self.aggregator.rebuild(obj, corrected) for obj in objects}
        summary = summarize_objects(derived.values())
        num_located = sum(obj.num_located for obj in derived.values())
        logger.debug(
            f"Trial bias {bias_m:+.2f}m: sum location error {summary.sum_location_error_m:.4f}m, "
            f"sum height error {summary.sum_height_error_m:.4f}m, {num_located} located"
        )
        return TrialResult(
            bias_m=bias_m,
            sum_location_error_m=float(summary.sum_location_error_m),
            sum_height_error_m=float(summary.sum_height_error_m),
            objects=derived,
            num_located=num_located,
        )

    def _improves(self, candidate: TrialResult, best: TrialResult) -> bool:
        # Fewer located sightings shrink the error sums without a better fit.
        if candidate.num_located < best.num_located:
            logger.debug(
                f"Trial bias {candidate.bias_m:+.2f}m locates {candidate.num_located} observations, "
                f"best locates {best.num_located}; rejected"
            )
            return False
        return best.sum_location_error_m - candidate.sum_location_error_m >= self.settings.min_improvement_m

    def search(self, poses: PoseTable, objects: Sequence[TrackedObject]) -> tuple:
        """Run the greedy search.

        Returns:
            (original, best) TrialResult pair.
        """
        original = self.evaluate(0.0, poses, objects)
        best = original

        coarse = float(self.settings.coarse_step_m)
        fine = float(self.settings.fine_step_m)
        num_coarse = int(math.floor(self.settings.search_bound_m / coarse + 1e-9))

        for direction in (1, -1):
            for i in range(1, num_coarse + 1):
                trial = self.evaluate(round(direction * i * coarse, 6), poses, objects)
                if not self._improves(trial, best):
                    break
                best = trial

        candidates = [
            self.evaluate(round(best.bias_m + fine, 6), poses, objects),
            self.evaluate(round(best.bias_m - fine, 6), poses, objects),
        ]
        improving = [trial for trial in candidates if self._improves(trial, best)]
        if improving:
            best = min(improving, key=lambda trial: trial.sum_location_error_m)

        return original, best

    def calibrate_segment(
        self,
        segment: FlightSegment,
        poses: PoseTable,
        store: ObjectStore,
        objects: Optional[Sequence[TrackedObject]] = None,
    ) -> float:
        """Find, commit and return the segment's altitude bias.

        Args:
            segment: Segment to calibrate. Its result fields are updated.
            poses: All recorded (uncorrected) poses.
            store: Object arena; objects of the winning trial replace the
                stored ones.
            objects: Objects to calibrate against. Defaults to the
                significant objects lying fully inside the segment.

        Raises:
            ValueError: If the segment has no poses, or an object has no
                claimed observations.
        """
        segment_poses = segment.select_poses(poses)
        if len(segment_poses) == 0:
            raise ValueError(
                f"Segment {segment.name} (steps {segment.min_step}-{segment.max_step}) has no pose samples"
            )
        if objects is None:
            objects = segment.objects_within(store)
        objects = list(objects)
        for obj in objects:
            if obj.num_observations == 0:
                raise ValueError(f"Object {obj.object_id} has no claimed observations")

        segment.num_significant_objects = len(objects)
        if not objects:
            logger.info(f"Segment {segment.name}: no significant objects, keeping altitude unchanged")
            segment.altitude_bias_m = Meters(0.0)
            segment.original_sum_location_error_m = Meters(0.0)
            segment.original_sum_height_error_m = Meters(0.0)
            segment.best_sum_location_error_m = Meters(0.0)
            segment.best_sum_height_error_m = Meters(0.0)
            return 0.0

        original, best = self.search(segment_poses, objects)

        for obj in best.objects.values():
            store.replace(obj)
        segment.altitude_bias_m = Meters(best.bias_m)
        segment.original_sum_location_error_m = Meters(original.sum_location_error_m)
        segment.original_sum_height_error_m = Meters(original.sum_height_error_m)
        segment.best_sum_location_error_m = Meters(best.sum_location_error_m)
        segment.best_sum_height_error_m = Meters(best.sum_height_error_m)

        logger.info(
            f"Segment {segment.name} (steps {segment.min_step}-{segment.max_step}, {len(objects)} objects): "
            f"bias {best.bias_m:+.2f}m, location error {original.sum_location_error_m:.3f}m -> "
            f"{best.sum_location_error_m:.3f}m"
        )
        return best.bias_m

    def calibrate_segments(
        self,
        segments: Iterable[FlightSegment],
        poses: PoseTable,
        store: ObjectStore,
    ) -> List[FlightSegment]:
        """Calibrate independent segments one after another."""
        calibrated = []
        for segment in segments:
            self.calibrate_segment(segment, poses, store)
            calibrated.append(segment)
        return calibrated

    def survey_polynomial(
        self,
        segment: FlightSegment,
        poses: PoseTable,
        store: ObjectStore,
        sample_start_m: float = -4.0,
        sample_step_m: float = 0.5,
        num_samples: int = 16,
        degree: int = 5,
        scan_bound_m: float = 9.0,
        scan_step_m: float = 0.1,
    ) -> Optional[PolynomialSurvey]:
        """Fit a polynomial to sampled errors and report its minimum.

        Diagnostic only: nothing is committed to the segment or the store.

        Returns:
            PolynomialSurvey, or None if the segment has no significant
            objects or too few samples for the requested degree.
        """
        segment_poses = segment.select_poses(poses)
        objects = segment.objects_within(store)
        if len(segment_poses) == 0 or not objects or num_samples <= degree:
            return None

        biases = np.array([sample_start_m + i * sample_step_m for i in range(num_samples)])
        errors = np.array([self.evaluate(float(b), segment_poses, objects).sum_location_error_m for b in biases])
        polynomial = Polynomial.fit(biases, errors, degree)

        num_scan = int(round(2 * scan_bound_m / scan_step_m))
        scan = np.linspace(-scan_bound_m, scan_bound_m, num_scan + 1)
        predicted = polynomial(scan)
        best_index = int(np.argmin(predicted))

        logger.info(
            f"Segment {segment.name}: polynomial survey suggests {scan[best_index]:+.1f}m "
            f"(predicted error {predicted[best_index]:.3f}m)"
        )
        return PolynomialSurvey(
            sample_biases=biases,
            sample_errors=errors,
            polynomial=polynomial,
            suggested_bias_m=float(scan[best_index]),
            predicted_error_m=float(predicted[best_index]),
        )


def apply_committed_biases(segments: Iterable[FlightSegment], poses: PoseTable) -> PoseTable:
    """Apply stored segment biases to the matching poses.

    Used after reloading calibration results so that later processing sees
    corrected altitudes.
    """
    biases: Dict[int, float] = {}
    for segment in segments:
        if segment.altitude_bias_m == 0:
            continue
        for pose in segment.select_poses(poses).values():
            biases[pose.step_id] = float(segment.altitude_bias_m)
    return PoseTable(p.with_altitude_bias(biases.get(p.step_id, 0.0)) for p in poses.values())
