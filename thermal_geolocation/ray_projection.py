"""Pixel to world ray projection for a gimbal-stabilised camera.

Coordinate frames:

- Camera frame: X right, Y down (image rows), Z forward along the optical
  axis. Pixel (cx, cy) maps to (0, 0, 1).
- World frame: X = easting, Y = up (altitude), Z = northing. World vectors
  are numpy arrays in that (E, U, N) order; ``world_point`` and
  ``split_world_point`` convert to and from (northing, easting, altitude).

The gimbal is stabilised, so orientation is fully described by heading
(degrees clockwise from north) and depression (degrees below horizontal).
Depression is applied first about the camera lateral axis, then heading
about the world vertical axis. The camera Y axis is flipped to point up
before rotating because the (E, U, N) world frame has opposite handedness
to the camera frame.

At depression 90 the camera looks straight down with the top of the image
facing the heading direction.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np

from thermal_geolocation.camera_parameters import CameraModel, DistortionCoefficients
from thermal_geolocation.types import Degrees, PixelsFloat

logger = logging.getLogger(__name__)

EAST, UP, NORTH = 0, 1, 2

_FLIP_Y = np.diag([1.0, -1.0, 1.0])


def world_point(northing: float, easting: float, altitude: float) -> np.ndarray:
    """Build a world-frame (E, U, N) vector."""
    return np.array([easting, altitude, northing], dtype=np.float64)


def split_world_point(point: np.ndarray) -> Tuple[float, float, float]:
    """Return (northing, easting, altitude) from a world-frame vector."""
    return float(point[NORTH]), float(point[EAST]), float(point[UP])


def horizontal_distance(a: np.ndarray, b: np.ndarray) -> float:
    return math.hypot(float(a[EAST] - b[EAST]), float(a[NORTH] - b[NORTH]))


class CameraRayProjector:
    """Converts pixel coordinates to world-space unit direction vectors.

    Args:
        camera: Physical camera model providing the intrinsic matrix.
        distortion: Optional radial distortion coefficients. When given and
            non-zero, pixels are pre-corrected before the inverse pinhole.
    """

    def __init__(self, camera: CameraModel, distortion: Optional[DistortionCoefficients] = None):
        self.camera = camera
        self.K = camera.intrinsic_matrix
        self.distortion = distortion if distortion is not None and not distortion.is_zero() else None

    def undistort_pixel(self, px: float, py: float) -> Tuple[PixelsFloat, PixelsFloat]:
        """Apply the radial pre-correction to a pixel.

        The pixel is normalised via K, scaled by ``1 + k1*r^2 + k2*r^4`` and
        re-projected to pixel coordinates. Without distortion coefficients
        the pixel is returned unchanged.
        """
        if self.distortion is None:
            return PixelsFloat(float(px)), PixelsFloat(float(py))
        fx, fy = self.K[0, 0], self.K[1, 1]
        cx, cy = self.K[0, 2], self.K[1, 2]
        xn = (px - cx) / fx
        yn = (py - cy) / fy
        factor = self.distortion.radial_factor(xn * xn + yn * yn)
        return PixelsFloat(xn * factor * fx + cx), PixelsFloat(yn * factor * fy + cy)

    def compute_camera_direction(self, px: float, py: float) -> np.ndarray:
        """Unit direction in the camera frame for pixel (px, py)."""
        upx, upy = self.undistort_pixel(px, py)
        direction = np.array(
            [
                (upx - self.K[0, 2]) / self.K[0, 0],
                (upy - self.K[1, 2]) / self.K[1, 1],
                1.0,
            ],
            dtype=np.float64,
        )
        return direction / np.linalg.norm(direction)

    @staticmethod
    def depression_rotation(depression_deg: Degrees) -> np.ndarray:
        """Rotation about the lateral (X) axis, Y-up camera frame.

        Maps the forward axis (0, 0, 1) to (0, -sin d, cos d).
        """
        d = math.radians(depression_deg)
        c, s = math.cos(d), math.sin(d)
        return np.array(
            [
                [1.0, 0.0, 0.0],
                [0.0, c, -s],
                [0.0, s, c],
            ]
        )

    @staticmethod
    def heading_rotation(heading_deg: Degrees) -> np.ndarray:
        """Rotation about the world vertical axis, clockwise from north.

        Maps north (0, 0, 1) to (sin h, 0, cos h).
        """
        h = math.radians(heading_deg)
        c, s = math.cos(h), math.sin(h)
        return np.array(
            [
                [c, 0.0, s],
                [0.0, 1.0, 0.0],
                [-s, 0.0, c],
            ]
        )

    @classmethod
    def camera_to_world_rotation(cls, heading_deg: Degrees, depression_deg: Degrees) -> np.ndarray:
        return cls.heading_rotation(heading_deg) @ cls.depression_rotation(depression_deg) @ _FLIP_Y

    @classmethod
    def camera_to_world_direction(
        cls,
        camera_direction: np.ndarray,
        heading_deg: Degrees,
        depression_deg: Degrees,
    ) -> np.ndarray:
        """Rotate a camera-frame direction into the world frame."""
        world = cls.camera_to_world_rotation(heading_deg, depression_deg) @ np.asarray(camera_direction)
        return world / np.linalg.norm(world)

    def pixel_to_world_direction(
        self,
        px: float,
        py: float,
        heading_deg: Degrees,
        depression_deg: Degrees,
    ) -> np.ndarray:
        return self.camera_to_world_direction(
            self.compute_camera_direction(px, py), heading_deg, depression_deg
        )

    def world_to_pixel(
        self,
        point: np.ndarray,
        origin: np.ndarray,
        heading_deg: Degrees,
        depression_deg: Degrees,
    ) -> Optional[Tuple[PixelsFloat, PixelsFloat]]:
        """Project a world point into the image of a camera at ``origin``.

        Inverse of the distortion-free ``pixel_to_world_direction`` path.

        Returns:
            (px, py) or None if the point is behind the camera. The pixel may
            lie outside the image bounds.
        """
        rotation = self.camera_to_world_rotation(heading_deg, depression_deg)
        cam = rotation.T @ (np.asarray(point, dtype=np.float64) - np.asarray(origin, dtype=np.float64))
        if cam[2] <= 1e-9:
            return None
        px = self.K[0, 0] * cam[0] / cam[2] + self.K[0, 2]
        py = self.K[1, 1] * cam[1] / cam[2] + self.K[1, 2]
        return PixelsFloat(float(px)), PixelsFloat(float(py))
