"""Immutable camera model and lens distortion dataclasses.

The camera is a fixed-focal-length thermal imager on a stabilised gimbal.
Its intrinsic matrix is derived from the physical focal length, the sensor
dimensions and the image dimensions:

    fx = focal_length_mm * image_width_px / sensor_width_mm
    fy = focal_length_mm * image_height_px / sensor_height_mm
    cx = image_width_px / 2
    cy = image_height_px / 2
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from thermal_geolocation.types import Millimeters, Pixels, PixelsFloat, Unitless

logger = logging.getLogger(__name__)

# Defaults from the reference thermal drone camera. Only used when the video
# metadata does not carry a usable value.
DEFAULT_FOCAL_LENGTH_MM = 9.1
DEFAULT_IMAGE_WIDTH_PX = 640
DEFAULT_IMAGE_HEIGHT_PX = 512
DEFAULT_SENSOR_WIDTH_MM = 7.68
DEFAULT_SENSOR_HEIGHT_MM = 6.144


@dataclass(frozen=True)
class DistortionCoefficients:
    """Radial lens distortion coefficients.

    Only the two radial terms are modelled. The correction applied to a
    normalised image point at radius r is ``1 + k1*r^2 + k2*r^4``.

    Attributes:
        k1: First radial distortion coefficient.
        k2: Second radial distortion coefficient.
    """

    k1: Unitless = 0.0  # type: ignore[assignment]
    k2: Unitless = 0.0  # type: ignore[assignment]

    def to_array(self) -> np.ndarray:
        """Convert to numpy array [k1, k2]."""
        return np.array([self.k1, self.k2], dtype=np.float64)

    def is_zero(self) -> bool:
        """Check if all coefficients are effectively zero."""
        return bool(np.allclose(self.to_array(), 0.0))

    def radial_factor(self, r_squared: float) -> float:
        return 1.0 + self.k1 * r_squared + self.k2 * r_squared * r_squared


@dataclass(frozen=True)
class CameraModel:
    """Physical description of a thermal camera.

    Attributes:
        focal_length_mm: Lens focal length in millimeters.
        sensor_width_mm: Sensor width in millimeters.
        sensor_height_mm: Sensor height in millimeters.
        image_width: Image width in pixels.
        image_height: Image height in pixels.
        name: Optional model name, used for logging and output only.
    """

    focal_length_mm: Millimeters
    sensor_width_mm: Millimeters
    sensor_height_mm: Millimeters
    image_width: Pixels
    image_height: Pixels
    name: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate physical dimensions."""
        if self.focal_length_mm <= 0:
            raise ValueError(f"Focal length must be positive, got {self.focal_length_mm}mm")
        if self.sensor_width_mm <= 0 or self.sensor_height_mm <= 0:
            raise ValueError(
                f"Sensor dimensions must be positive, got "
                f"{self.sensor_width_mm}x{self.sensor_height_mm}mm"
            )
        if self.image_width <= 0 or self.image_height <= 0:
            raise ValueError(
                f"Image dimensions must be positive, got {self.image_width}x{self.image_height}px"
            )

    @property
    def fx(self) -> float:
        return self.focal_length_mm * self.image_width / self.sensor_width_mm

    @property
    def fy(self) -> float:
        return self.focal_length_mm * self.image_height / self.sensor_height_mm

    @property
    def cx(self) -> PixelsFloat:
        return PixelsFloat(self.image_width / 2.0)

    @property
    def cy(self) -> PixelsFloat:
        return PixelsFloat(self.image_height / 2.0)

    @property
    def intrinsic_matrix(self) -> np.ndarray:
        """3x3 intrinsic matrix K."""
        return np.array(
            [
                [self.fx, 0.0, self.cx],
                [0.0, self.fy, self.cy],
                [0.0, 0.0, 1.0],
            ],
            dtype=np.float64,
        )

    def contains_pixel(self, px: float, py: float) -> bool:
        """Check whether a pixel lies inside the image bounds."""
        return 0.0 <= px < self.image_width and 0.0 <= py < self.image_height

    @classmethod
    def from_video_metadata(
        cls,
        focal_length_mm: float = 0.0,
        image_width: int = 0,
        image_height: int = 0,
        sensor_width_mm: float = 0.0,
        sensor_height_mm: float = 0.0,
        name: Optional[str] = None,
    ) -> CameraModel:
        """Build a camera model from possibly incomplete video metadata.

        Any value that is missing (zero or negative) falls back to the
        default thermal drone camera.

        Returns:
            New CameraModel instance.
        """
        resolved = cls(
            focal_length_mm=Millimeters(
                focal_length_mm if focal_length_mm > 0 else DEFAULT_FOCAL_LENGTH_MM
            ),
            sensor_width_mm=Millimeters(
                sensor_width_mm if sensor_width_mm > 0 else DEFAULT_SENSOR_WIDTH_MM
            ),
            sensor_height_mm=Millimeters(
                sensor_height_mm if sensor_height_mm > 0 else DEFAULT_SENSOR_HEIGHT_MM
            ),
            image_width=Pixels(image_width if image_width > 0 else DEFAULT_IMAGE_WIDTH_PX),
            image_height=Pixels(image_height if image_height > 0 else DEFAULT_IMAGE_HEIGHT_PX),
            name=name,
        )
        if focal_length_mm <= 0 or sensor_width_mm <= 0 or sensor_height_mm <= 0:
            logger.debug(f"Video metadata incomplete, using default lens parameters: {resolved}")
        return resolved
