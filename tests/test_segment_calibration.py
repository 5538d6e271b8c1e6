#!/usr/bin/env python3
"""
Tests for flight segment altitude-bias calibration.

The synthetic flight (see synthetic_flight.py) reports its altitude 1m low,
so the search should settle on a +1m correction.

Run with: python -m pytest tests/test_segment_calibration.py -v
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.dirname(__file__))

from hypothesis import given, settings
from hypothesis import strategies as st

import synthetic_flight
from thermal_geolocation.aggregation import IdGenerator, ObjectStore, ObservationAggregator, TrackedObject
from thermal_geolocation.camera_config import get_camera_model
from thermal_geolocation.location_estimator import LocationEstimator
from thermal_geolocation.pose import PlatformPose, PoseTable
from thermal_geolocation.segment_calibration import (
    CalibrationSettings,
    FlightSegment,
    SegmentAltitudeCalibrator,
    TrialResult,
    apply_committed_biases,
    id_to_letter,
)

# ============================================================================
# Fixtures
# ============================================================================


def _build(altitude_error_m=1.0):
    """Aggregate the synthetic tracks against poses with the given altitude error."""
    poses = synthetic_flight.make_poses(altitude_error_m)
    estimator = LocationEstimator(get_camera_model(), synthetic_flight.terrain())
    aggregator = ObservationAggregator(estimator, ObjectStore(), IdGenerator())
    for observations in synthetic_flight.make_tracks():
        track = aggregator.new_track()
        for observation in observations:
            aggregator.observe(track, observation, poses[observation.step_id])
    return poses, aggregator


@pytest.fixture
def flight():
    return _build(altitude_error_m=1.0)


# ============================================================================
# Segments
# ============================================================================


class TestFlightSegment:
    def test_from_leg(self, flight):
        poses, _ = flight
        segment = FlightSegment.from_leg(1, leg_id=1, poses=poses)
        assert (segment.min_step, segment.max_step) == (1, len(synthetic_flight.FLIGHT_NORTHINGS))
        assert segment.name == "A"
        assert FlightSegment.from_leg(2, leg_id=9, poses=poses) is None

    def test_from_step_range_needs_four_steps(self, flight):
        poses, _ = flight
        assert FlightSegment.from_step_range(1, 3, 5, poses) is None
        assert FlightSegment.from_step_range(1, 3, 6, poses) is not None
        assert FlightSegment.from_step_range(1, 100, 120, poses) is None

    def test_objects_must_lie_fully_inside(self, flight):
        poses, aggregator = flight
        whole = FlightSegment(1, 1, 19)
        partial = FlightSegment(2, 1, 10)
        assert len(whole.objects_within(aggregator.store)) == 2
        assert partial.objects_within(aggregator.store) == []

    def test_invalid_range(self):
        with pytest.raises(ValueError, match="exceeds max_step"):
            FlightSegment(1, 10, 5)

    def test_dict_round_trip_keeps_results(self):
        segment = FlightSegment(
            3, 10, 40, leg_id=2, altitude_bias_m=1.2, best_sum_location_error_m=3.0, num_significant_objects=2
        )
        data = segment.to_dict()
        assert data['name'] == "C"
        assert data['best_avg_location_error_m'] == pytest.approx(1.5)
        assert FlightSegment.from_dict(data) == segment

    def test_id_to_letter(self):
        assert [id_to_letter(i) for i in (1, 2, 26, 27, 28, 52, 53)] == ["A", "B", "Z", "AA", "AB", "AZ", "BA"]


# ============================================================================
# Greedy search
# ============================================================================


class TestCalibrateSegment:
    def test_recovers_altitude_bias(self, flight):
        poses, aggregator = flight
        segment = FlightSegment.from_leg(1, 1, poses)
        bias = SegmentAltitudeCalibrator(aggregator).calibrate_segment(segment, poses, aggregator.store)

        assert bias == pytest.approx(1.0, abs=0.15)
        assert segment.altitude_bias_m == bias
        assert segment.num_significant_objects == 2
        assert segment.best_sum_location_error_m < segment.original_sum_location_error_m
        assert segment.best_sum_location_error_m < 0.5

    def test_commit_replaces_stored_objects(self, flight):
        poses, aggregator = flight
        originals = {obj_id: obj for obj_id, obj in aggregator.store.items()}
        original_errors = {obj_id: obj.sum_location_error_m for obj_id, obj in originals.items()}

        segment = FlightSegment.from_leg(1, 1, poses)
        SegmentAltitudeCalibrator(aggregator).calibrate_segment(segment, poses, aggregator.store)

        for obj_id, original in originals.items():
            committed = aggregator.store[obj_id]
            assert committed is not original
            assert original.sum_location_error_m == original_errors[obj_id]
            assert committed.sum_location_error_m < original.sum_location_error_m

    def test_no_bias_when_altitude_is_correct(self):
        poses, aggregator = _build(altitude_error_m=0.0)
        segment = FlightSegment.from_leg(1, 1, poses)
        bias = SegmentAltitudeCalibrator(aggregator).calibrate_segment(segment, poses, aggregator.store)
        assert bias == 0.0
        assert segment.best_sum_location_error_m == segment.original_sum_location_error_m

    def test_negative_bias(self):
        poses, aggregator = _build(altitude_error_m=-0.6)
        segment = FlightSegment.from_leg(1, 1, poses)
        bias = SegmentAltitudeCalibrator(aggregator).calibrate_segment(segment, poses, aggregator.store)
        assert bias == pytest.approx(-0.6, abs=0.15)

    def test_deterministic(self):
        results = []
        for _ in range(2):
            poses, aggregator = _build(altitude_error_m=1.0)
            segment = FlightSegment.from_leg(1, 1, poses)
            SegmentAltitudeCalibrator(aggregator).calibrate_segment(segment, poses, aggregator.store)
            results.append(segment.to_dict())
        assert results[0] == results[1]

    def test_search_bound_then_fine_tune(self, flight):
        poses, aggregator = flight
        bounded = CalibrationSettings(max_abs_bias_m=0.6)
        segment = FlightSegment.from_leg(1, 1, poses)
        bias = SegmentAltitudeCalibrator(aggregator, bounded).calibrate_segment(segment, poses, aggregator.store)
        # Coarse steps stop at the 0.6m bound; fine tuning adds 0.1m.
        assert bias == pytest.approx(0.7)

    def test_wider_bound_without_ground_fix(self):
        assert CalibrationSettings().search_bound_m == 8.0
        assert CalibrationSettings(has_ground_fix=False).search_bound_m == 15.0

    def test_evaluate_is_pure(self, flight):
        poses, aggregator = flight
        objects = list(aggregator.store.values())
        before = [o.summary() for o in objects]
        trial = SegmentAltitudeCalibrator(aggregator).evaluate(1.0, poses, objects)
        assert [o.summary() for o in objects] == before
        assert all(poses[s].altitude == synthetic_flight.TRUE_ALTITUDE - 1.0 for s in poses)
        assert trial.sum_location_error_m < sum(o.sum_location_error_m for o in objects)
        assert trial.num_located == sum(o.num_located for o in objects)

    def test_empty_object_set_keeps_zero_bias(self, flight):
        poses, aggregator = flight
        segment = FlightSegment(1, 1, 19)
        bias = SegmentAltitudeCalibrator(aggregator).calibrate_segment(segment, poses, aggregator.store, objects=[])
        assert bias == 0.0
        assert segment.num_significant_objects == 0

    def test_segment_without_poses_raises(self, flight):
        poses, aggregator = flight
        segment = FlightSegment(1, 200, 210)
        with pytest.raises(ValueError, match="no pose samples"):
            SegmentAltitudeCalibrator(aggregator).calibrate_segment(segment, poses, aggregator.store)

    def test_object_without_observations_raises(self, flight):
        poses, aggregator = flight
        segment = FlightSegment(1, 1, 19)
        with pytest.raises(ValueError, match="no claimed observations"):
            SegmentAltitudeCalibrator(aggregator).calibrate_segment(
                segment, poses, aggregator.store, objects=[TrackedObject(object_id=42)]
            )

    def test_calibrate_segments(self, flight):
        poses, aggregator = flight
        segments = [FlightSegment.from_leg(1, 1, poses), FlightSegment(2, 1, 3)]
        calibrated = SegmentAltitudeCalibrator(aggregator).calibrate_segments(segments, poses, aggregator.store)
        assert calibrated[0].altitude_bias_m == pytest.approx(1.0, abs=0.15)
        assert calibrated[1].altitude_bias_m == 0.0


class ScriptedCalibrator(SegmentAltitudeCalibrator):
    """Calibrator whose trial results come from a bias -> (error, located) table."""

    def __init__(self, trials, settings=None):
        super().__init__(aggregator=None, settings=settings)
        self.trials = trials

    def evaluate(self, bias_m, poses, objects):
        error, located = self.trials.get(bias_m, (100.0, 10))
        return TrialResult(bias_m, error, 0.0, num_located=located)


class TestSearchSteps:
    def test_fine_tune_keeps_the_better_side(self):
        calibrator = ScriptedCalibrator({0.0: (10.0, 10), 0.1: (9.0, 10), -0.1: (8.0, 10)})
        original, best = calibrator.search(PoseTable([]), [])
        assert original.bias_m == 0.0
        assert best.bias_m == -0.1

    def test_fine_tune_takes_the_only_improving_side(self):
        calibrator = ScriptedCalibrator({0.0: (10.0, 10), 0.1: (10.0, 10), -0.1: (9.0, 10)})
        _, best = calibrator.search(PoseTable([]), [])
        assert best.bias_m == -0.1

    def test_fine_tune_below_threshold_keeps_best(self):
        calibrator = ScriptedCalibrator({0.0: (10.0, 10), 0.1: (9.99, 10), -0.1: (9.99, 10)})
        _, best = calibrator.search(PoseTable([]), [])
        assert best.bias_m == 0.0

    def test_trial_that_loses_sightings_is_rejected(self):
        calibrator = ScriptedCalibrator({0.0: (10.0, 10), 0.2: (5.0, 10), 0.4: (1.0, 9)})
        _, best = calibrator.search(PoseTable([]), [])
        # 0.4 looks better only because one observation dropped out of range.
        assert best.bias_m == 0.2
        assert best.num_located == 10


# ============================================================================
# Diagnostics and reapplication
# ============================================================================


class TestPolynomialSurvey:
    def test_survey_does_not_commit(self, flight):
        poses, aggregator = flight
        segment = FlightSegment.from_leg(1, 1, poses)
        before = [o.summary() for o in aggregator.store.values()]

        survey = SegmentAltitudeCalibrator(aggregator).survey_polynomial(segment, poses, aggregator.store)

        assert survey is not None
        assert len(survey.sample_biases) == 16
        assert survey.sample_biases[0] == pytest.approx(-4.0)
        assert survey.sample_biases[-1] == pytest.approx(3.5)
        assert -9.0 <= survey.suggested_bias_m <= 9.0
        assert segment.altitude_bias_m == 0.0
        assert [o.summary() for o in aggregator.store.values()] == before

    def test_survey_without_objects(self, flight):
        poses, aggregator = flight
        segment = FlightSegment(1, 1, 5)
        assert SegmentAltitudeCalibrator(aggregator).survey_polynomial(segment, poses, aggregator.store) is None


def test_apply_committed_biases_only_touches_segment_steps():
    poses = PoseTable(PlatformPose(s, float(s), 0.0, 100.0, 0.0, 60.0) for s in range(1, 11))
    segments = [FlightSegment(1, 1, 5, altitude_bias_m=1.5), FlightSegment(2, 6, 8)]
    corrected = apply_committed_biases(segments, poses)
    assert [corrected[s].altitude for s in range(1, 11)] == [101.5] * 5 + [100.0] * 5
    assert poses[1].altitude == 100.0


# ============================================================================
# Properties
# ============================================================================


@settings(deadline=None, max_examples=8)
@given(altitude_error_m=st.floats(min_value=-2.5, max_value=2.5))
def test_committed_bias_never_worse_than_original(altitude_error_m):
    poses, aggregator = _build(altitude_error_m=altitude_error_m)
    segment = FlightSegment.from_leg(1, 1, poses)
    SegmentAltitudeCalibrator(aggregator).calibrate_segment(segment, poses, aggregator.store)
    assert segment.num_significant_objects == 2
    assert segment.best_sum_location_error_m <= segment.original_sum_location_error_m
