"""Flight scenario files: poses, terrain and tracked observations.

A scenario bundles everything a geolocation/calibration run needs besides
the configuration:

    flight: demo-flight
    terrain: {type: flat, height: 40.0}
    ground: {type: flat, height: 38.5}      # optional, defaults to terrain
    poses:
      - {step_id: 1, leg_id: 1, northing: 0.0, easting: 0.0, altitude: 100.0,
         heading_deg: 0.0, depression_deg: 45.0}
    tracks:
      - observations:
          - {observation_id: 1, step_id: 1, box_x: 318, box_y: 250,
             box_width: 5, box_height: 5, num_hot_pixels: 20}
    segments:                               # optional
      - {leg_id: 1}
      - {min_step: 10, max_step: 30}

Without a ``segments`` list, one segment per flight leg is used, or a single
segment over all steps when no pose carries a leg id.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import yaml

from thermal_geolocation.aggregation import IdGenerator, ObjectStore, ObservationAggregator
from thermal_geolocation.camera_config import get_camera_distortion, get_camera_model
from thermal_geolocation.config import GeolocationConfig
from thermal_geolocation.location_estimator import LocationEstimator
from thermal_geolocation.observations import ImageObservation
from thermal_geolocation.pose import PlatformPose, PoseTable
from thermal_geolocation.segment_calibration import FlightSegment
from thermal_geolocation.terrain import TerrainSurface, terrain_from_dict

logger = logging.getLogger(__name__)


@dataclass
class Scenario:
    name: str
    terrain: TerrainSurface
    poses: PoseTable
    tracks: List[List[ImageObservation]] = field(default_factory=list)
    ground: Optional[TerrainSurface] = None
    segment_specs: List[dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'Scenario':
        if not isinstance(data, dict):
            raise ValueError(f"Scenario must be a mapping, got {type(data).__name__}")
        if 'terrain' not in data:
            raise ValueError("Scenario is missing the 'terrain' section")
        if not data.get('poses'):
            raise ValueError("Scenario has no poses")

        tracks = []
        for i, track in enumerate(data.get('tracks') or []):
            entries = track.get('observations') if isinstance(track, dict) else None
            if not entries:
                raise ValueError(f"Track {i} has no observations")
            tracks.append([ImageObservation.from_dict(o) for o in entries])

        return cls(
            name=str(data.get('flight', 'flight')),
            terrain=terrain_from_dict(data['terrain']),
            ground=terrain_from_dict(data['ground']) if data.get('ground') else None,
            poses=PoseTable(PlatformPose.from_dict(p) for p in data['poses']),
            tracks=tracks,
            segment_specs=list(data.get('segments') or []),
        )

    def build_segments(self) -> List[FlightSegment]:
        """Flight segments declared by the scenario, or one per leg."""
        segments = []
        if self.segment_specs:
            for segment_id, spec in enumerate(self.segment_specs, start=1):
                if 'leg_id' in spec:
                    segment = FlightSegment.from_leg(segment_id, int(spec['leg_id']), self.poses)
                else:
                    segment = FlightSegment.from_step_range(
                        segment_id, int(spec['min_step']), int(spec['max_step']), self.poses
                    )
                if segment is None:
                    logger.warning(f"Segment {segment_id} {spec} is too short, skipping")
                    continue
                segments.append(segment)
            return segments

        leg_ids = self.poses.leg_ids()
        if leg_ids:
            for segment_id, leg_id in enumerate(leg_ids, start=1):
                segment = FlightSegment.from_leg(segment_id, leg_id, self.poses)
                if segment is not None:
                    segments.append(segment)
            return segments

        segment = FlightSegment.from_step_range(1, self.poses.min_step, self.poses.max_step, self.poses)
        return [segment] if segment is not None else []


def load_scenario(path: str) -> Scenario:
    """Load a scenario YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the scenario is malformed
    """
    scenario_path = Path(path)
    if not scenario_path.exists():
        raise FileNotFoundError(f"Scenario file not found: {path}")
    with open(scenario_path, 'r') as f:
        data = yaml.safe_load(f)
    if data is None:
        raise ValueError(f"Scenario file is empty: {path}")
    return Scenario.from_dict(data)


def build_estimator(config: GeolocationConfig, scenario: Scenario) -> LocationEstimator:
    distortion = get_camera_distortion(config.camera) if config.correct_distortion else None
    return LocationEstimator(
        camera=get_camera_model(config.camera),
        terrain=scenario.terrain,
        ground=scenario.ground,
        settings=config.estimator,
        distortion=distortion,
    )


def aggregate_tracks(
    config: GeolocationConfig,
    scenario: Scenario,
) -> Tuple[ObservationAggregator, ObjectStore]:
    """Locate every observation and fold each track into an object.

    Raises:
        ValueError: If an observation refers to a step with no pose.
    """
    aggregator = ObservationAggregator(
        estimator=build_estimator(config, scenario),
        store=ObjectStore(),
        id_generator=IdGenerator(),
        thresholds=config.significance,
    )
    for observations in scenario.tracks:
        track = aggregator.new_track()
        for observation in observations:
            pose = scenario.poses.get(observation.step_id)
            if pose is None:
                raise ValueError(
                    f"Observation {observation.observation_id} refers to step {observation.step_id} "
                    f"which has no pose"
                )
            aggregator.observe(track, observation, pose)
    return aggregator, aggregator.store
