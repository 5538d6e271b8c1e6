"""Fixed-step ray marching against a terrain surface."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from thermal_geolocation.ray_projection import EAST, NORTH, UP
from thermal_geolocation.terrain import TerrainSurface
from thermal_geolocation.types import Meters

logger = logging.getLogger(__name__)

DEFAULT_STEP_M = 1.0
DEFAULT_MAX_DISTANCE_M = 1000.0
# Rays whose vertical component is not below -epsilon never reach the ground.
NEAR_HORIZONTAL_EPSILON = 1e-6


class TerrainIntersector:
    """Marches a ray from the platform until it drops below the terrain.

    The ray is sampled every ``step_m`` meters along its length, up to
    ``max_distance_m``. At the first sample at or below the terrain the
    crossing point is found by linear interpolation between the previous and
    current samples, weighted by their heights above terrain.

    Args:
        step_m: Distance between samples along the ray.
        max_distance_m: Maximum distance marched along the ray.
        vertical_epsilon: Minimum downward vertical component of the ray.
    """

    def __init__(
        self,
        step_m: Meters = Meters(DEFAULT_STEP_M),
        max_distance_m: Meters = Meters(DEFAULT_MAX_DISTANCE_M),
        vertical_epsilon: float = NEAR_HORIZONTAL_EPSILON,
    ):
        if step_m <= 0:
            raise ValueError(f"Ray step must be positive, got {step_m}")
        if max_distance_m < step_m:
            raise ValueError(
                f"Maximum ray distance ({max_distance_m}) must be at least one step ({step_m})"
            )
        self.step_m = float(step_m)
        self.max_distance_m = float(max_distance_m)
        self.vertical_epsilon = float(vertical_epsilon)

    def raycast(
        self,
        origin: np.ndarray,
        direction: np.ndarray,
        terrain: TerrainSurface,
    ) -> Optional[np.ndarray]:
        """Find where the ray first meets the terrain.

        Args:
            origin: World-frame (E, U, N) ray origin.
            direction: World-frame unit direction.
            terrain: Surface to intersect.

        Returns:
            World-frame intersection point, or None if the ray is not
            pointing down, starts at or below the terrain, or travels
            ``max_distance_m`` without crossing it.
        """
        origin = np.asarray(origin, dtype=np.float64)
        direction = np.asarray(direction, dtype=np.float64)

        if direction[UP] >= -self.vertical_epsilon:
            logger.debug(f"Ray does not point down (vertical component {direction[UP]:.2e})")
            return None

        prev_point = origin
        prev_delta = origin[UP] - terrain.elevation(origin[NORTH], origin[EAST])
        if prev_delta <= 0:
            logger.debug(f"Ray origin is {prev_delta:.2f}m relative to terrain, not above it")
            return None

        num_steps = int(self.max_distance_m / self.step_m)
        for i in range(1, num_steps + 1):
            point = origin + direction * (i * self.step_m)
            delta = point[UP] - terrain.elevation(point[NORTH], point[EAST])
            if delta <= 0:
                t = prev_delta / (prev_delta - delta)
                return prev_point + (point - prev_point) * t
            prev_point = point
            prev_delta = delta

        logger.debug(f"Ray did not meet terrain within {self.max_distance_m}m")
        return None
