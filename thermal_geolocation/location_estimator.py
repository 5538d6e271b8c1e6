"""
Single-frame target geolocation.

Projects the centroid of an observed hot object through the camera model,
marches the resulting ray against the terrain surface and scores the result
by how far the ground point moves when the pixel is nudged by one pixel.

Usage Example:
    >>> from thermal_geolocation.camera_config import get_camera_model
    >>> from thermal_geolocation.terrain import FlatTerrain
    >>> from thermal_geolocation.pose import PlatformPose
    >>> estimator = LocationEstimator(get_camera_model(), FlatTerrain(40.0))
    >>> pose = PlatformPose(1, 100.0, 50.0, 140.0, 0.0, 90.0)
    >>> estimate = estimator.locate_pixel(320.0, 256.0, pose)
    >>> round(estimate.northing, 3), round(estimate.easting, 3), round(estimate.elevation, 3)
    (100.0, 50.0, 40.0)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from thermal_geolocation.camera_parameters import CameraModel, DistortionCoefficients
from thermal_geolocation.observations import ImageObservation
from thermal_geolocation.pose import PlatformPose
from thermal_geolocation.ray_projection import (
    UP,
    CameraRayProjector,
    horizontal_distance,
    split_world_point,
    world_point,
)
from thermal_geolocation.terrain import TerrainSurface
from thermal_geolocation.terrain_intersection import (
    DEFAULT_MAX_DISTANCE_M,
    DEFAULT_STEP_M,
    NEAR_HORIZONTAL_EPSILON,
    TerrainIntersector,
)
from thermal_geolocation.types import Degrees, Meters, Unitless

logger = logging.getLogger(__name__)

STRAIGHT_DOWN_TOLERANCE_DEG = 1e-3
CONFIDENCE_PIXEL_DELTA = 1.0


@dataclass(frozen=True)
class EstimatorSettings:
    """Tunable limits for single-frame geolocation.

    Attributes:
        max_range_m: Maximum horizontal distance from platform to target.
        ray_step_m: Ray marching step length.
        ray_max_distance_m: Maximum distance marched along the ray.
        vertical_epsilon: Rays with a vertical component not below
            -vertical_epsilon are treated as never reaching the ground.
        min_depression_deg: Poses with a shallower camera are rejected.
        min_height_above_terrain_m: Poses closer to the terrain are rejected.
        straight_down_tolerance_deg: A pixel ray within this angle of
            vertical is treated as looking straight down.
    """

    max_range_m: Meters = Meters(DEFAULT_MAX_DISTANCE_M)
    ray_step_m: Meters = Meters(DEFAULT_STEP_M)
    ray_max_distance_m: Meters = Meters(DEFAULT_MAX_DISTANCE_M)
    vertical_epsilon: float = NEAR_HORIZONTAL_EPSILON
    min_depression_deg: Degrees = Degrees(15.0)
    min_height_above_terrain_m: Meters = Meters(10.0)
    straight_down_tolerance_deg: Degrees = Degrees(STRAIGHT_DOWN_TOLERANCE_DEG)

    def __post_init__(self) -> None:
        if self.max_range_m <= 0:
            raise ValueError(f"max_range_m must be positive, got {self.max_range_m}")
        if self.ray_step_m <= 0:
            raise ValueError(f"ray_step_m must be positive, got {self.ray_step_m}")
        if self.ray_max_distance_m < self.ray_step_m:
            raise ValueError(
                f"ray_max_distance_m ({self.ray_max_distance_m}) must be at least "
                f"ray_step_m ({self.ray_step_m})"
            )
        if self.vertical_epsilon < 0:
            raise ValueError(f"vertical_epsilon must be non-negative, got {self.vertical_epsilon}")
        if self.min_height_above_terrain_m < 0:
            raise ValueError(
                f"min_height_above_terrain_m must be non-negative, got {self.min_height_above_terrain_m}"
            )


@dataclass(frozen=True)
class LocationEstimate:
    """World location of an observed object.

    Attributes:
        northing: Target northing in meters.
        easting: Target easting in meters.
        elevation: Target elevation above the datum in meters.
        confidence: 0-1 score; 1 means a one pixel error barely moves the
            ground point.
        height_m: Elevation above the ground model at the target location.
    """

    northing: Meters
    easting: Meters
    elevation: Meters
    confidence: Unitless
    height_m: Meters = Meters(0.0)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be within [0, 1], got {self.confidence}")

    def distance_to(self, northing: float, easting: float) -> float:
        """Horizontal distance to a point."""
        return math.hypot(self.northing - northing, self.easting - easting)


class LocationEstimator:
    """Locates observed objects on the terrain from a single frame.

    Args:
        camera: Camera model.
        terrain: Surface the line of sight is intersected with.
        ground: Optional ground model used for object heights. Defaults to
            ``terrain``.
        settings: Range, ray marching and rejection limits.
        distortion: Optional radial distortion pre-correction.
    """

    def __init__(
        self,
        camera: CameraModel,
        terrain: TerrainSurface,
        ground: Optional[TerrainSurface] = None,
        settings: Optional[EstimatorSettings] = None,
        distortion: Optional[DistortionCoefficients] = None,
    ):
        self.camera = camera
        self.terrain = terrain
        self.ground = ground if ground is not None else terrain
        self.settings = settings if settings is not None else EstimatorSettings()
        self.projector = CameraRayProjector(camera, distortion)
        self.intersector = TerrainIntersector(
            step_m=self.settings.ray_step_m,
            max_distance_m=self.settings.ray_max_distance_m,
            vertical_epsilon=self.settings.vertical_epsilon,
        )

    def calculate_target_location(
        self,
        observation: ImageObservation,
        pose: PlatformPose,
    ) -> Optional[LocationEstimate]:
        """Locate an observation's bounding box centroid.

        Returns:
            LocationEstimate, or None if the pose is unsuitable, the ray does
            not meet the terrain or the target is out of range.
        """
        px, py = observation.centroid
        estimate = self.locate_pixel(px, py, pose)
        if estimate is None:
            logger.debug(
                f"Observation {observation.observation_id} at step {observation.step_id}: no location"
            )
        return estimate

    def locate_pixel(self, px: float, py: float, pose: PlatformPose) -> Optional[LocationEstimate]:
        """Locate the ground point seen at pixel (px, py) from ``pose``."""
        if not self._pose_usable(pose):
            return None

        origin = world_point(pose.northing, pose.easting, pose.altitude)
        target = self._ground_point(px, py, pose, origin)
        if target is None:
            return None

        if horizontal_distance(target, origin) > self.settings.max_range_m:
            logger.debug(
                f"Step {pose.step_id}: target {horizontal_distance(target, origin):.1f}m away "
                f"exceeds range {self.settings.max_range_m}m"
            )
            return None

        confidence = self._confidence(px, py, pose, origin, target)
        northing, easting, elevation = split_world_point(target)
        height = elevation - self.ground.elevation(northing, easting)
        return LocationEstimate(
            northing=Meters(northing),
            easting=Meters(easting),
            elevation=Meters(elevation),
            confidence=Unitless(confidence),
            height_m=Meters(height),
        )

    def _pose_usable(self, pose: PlatformPose) -> bool:
        if pose.depression_deg < self.settings.min_depression_deg:
            logger.debug(
                f"Step {pose.step_id}: depression {pose.depression_deg:.1f} deg below minimum "
                f"{self.settings.min_depression_deg}"
            )
            return False
        height = pose.altitude - self.terrain.elevation(pose.northing, pose.easting)
        if height < self.settings.min_height_above_terrain_m:
            logger.debug(
                f"Step {pose.step_id}: platform {height:.1f}m above terrain, minimum is "
                f"{self.settings.min_height_above_terrain_m}m"
            )
            return False
        return True

    def _ground_point(
        self,
        px: float,
        py: float,
        pose: PlatformPose,
        origin: np.ndarray,
    ) -> Optional[np.ndarray]:
        direction = self.projector.pixel_to_world_direction(px, py, pose.heading_deg, pose.depression_deg)
        if direction[UP] < -math.cos(math.radians(self.settings.straight_down_tolerance_deg)):
            # Ray within tolerance of vertical: the target is the terrain below the platform.
            ground = self.terrain.elevation(pose.northing, pose.easting)
            return world_point(pose.northing, pose.easting, ground)
        return self.intersector.raycast(origin, direction, self.terrain)

    def _raycast_pixel(
        self,
        px: float,
        py: float,
        pose: PlatformPose,
        origin: np.ndarray,
    ) -> Optional[np.ndarray]:
        direction = self.projector.pixel_to_world_direction(px, py, pose.heading_deg, pose.depression_deg)
        return self.intersector.raycast(origin, direction, self.terrain)

    def _confidence(
        self,
        px: float,
        py: float,
        pose: PlatformPose,
        origin: np.ndarray,
        target: np.ndarray,
    ) -> float:
        """1 / (1 + mean ground shift for a one pixel nudge in x and in y)."""
        target_dx = self._raycast_pixel(px + CONFIDENCE_PIXEL_DELTA, py, pose, origin)
        target_dy = self._raycast_pixel(px, py + CONFIDENCE_PIXEL_DELTA, pose, origin)
        if target_dx is None or target_dy is None:
            return 0.0
        shift = (np.linalg.norm(target_dx - target) + np.linalg.norm(target_dy - target)) / 2.0
        return float(np.clip(1.0 / (1.0 + shift), 0.0, 1.0))
