"""
Camera configuration table.
Central location for the thermal camera models the pipeline knows about.
"""

from typing import Optional

from thermal_geolocation.camera_parameters import (
    DEFAULT_FOCAL_LENGTH_MM,
    DEFAULT_IMAGE_HEIGHT_PX,
    DEFAULT_IMAGE_WIDTH_PX,
    DEFAULT_SENSOR_HEIGHT_MM,
    DEFAULT_SENSOR_WIDTH_MM,
    CameraModel,
    DistortionCoefficients,
)
from thermal_geolocation.types import Millimeters, Pixels, Unitless

# =============================================================================
# THERMAL CAMERA SPECIFICATIONS
# =============================================================================
# - Sensor: 640x512 uncooled microbolometer, 12 um pixel pitch
# - Active area: 7.68mm x 6.144mm
# - Lens: 9.1mm fixed focal length
# - The high resolution variant reports a 1280x1024 super-resolution frame
#   over the same sensor area.
#
# Distortion coefficients below were estimated by hand and are only applied
# when the estimator is configured to pre-correct distortion.
# =============================================================================

DEFAULT_CAMERA_NAME = "thermal-640"

CAMERAS = [
    {
        "name": "thermal-640",
        "focal_length_mm": DEFAULT_FOCAL_LENGTH_MM,
        "sensor_width_mm": DEFAULT_SENSOR_WIDTH_MM,
        "sensor_height_mm": DEFAULT_SENSOR_HEIGHT_MM,
        "image_width": DEFAULT_IMAGE_WIDTH_PX,
        "image_height": DEFAULT_IMAGE_HEIGHT_PX,
        "k1": 0.1,
        "k2": 0.1,
        "description": "Drone thermal camera, native resolution",
    },
    {
        "name": "thermal-1280",
        "focal_length_mm": DEFAULT_FOCAL_LENGTH_MM,
        "sensor_width_mm": DEFAULT_SENSOR_WIDTH_MM,
        "sensor_height_mm": DEFAULT_SENSOR_HEIGHT_MM,
        "image_width": DEFAULT_IMAGE_WIDTH_PX * 2,
        "image_height": DEFAULT_IMAGE_HEIGHT_PX * 2,
        "k1": 0.1,
        "k2": 0.1,
        "description": "Drone thermal camera, super-resolution output",
    },
]


def get_camera_configs() -> list:
    """
    Get list of all camera configurations.

    Returns:
        List of camera configuration dicts.
    """
    return CAMERAS


def get_camera_by_name(camera_name: str) -> Optional[dict]:
    """
    Find camera configuration by name.

    Args:
        camera_name: Name of the camera model (e.g., "thermal-640")

    Returns:
        Camera configuration dict or None if not found
    """
    return next((cam for cam in CAMERAS if cam.get("name") == camera_name), None)


def get_camera_model(camera_name: str = DEFAULT_CAMERA_NAME) -> CameraModel:
    """
    Build a CameraModel from the configuration table.

    Raises:
        ValueError: If the camera name is not in the table
    """
    cam = get_camera_by_name(camera_name)
    if cam is None:
        available = [c["name"] for c in CAMERAS]
        raise ValueError(f"Unknown camera '{camera_name}'. Available cameras: {', '.join(available)}")
    return CameraModel(
        focal_length_mm=Millimeters(cam["focal_length_mm"]),
        sensor_width_mm=Millimeters(cam["sensor_width_mm"]),
        sensor_height_mm=Millimeters(cam["sensor_height_mm"]),
        image_width=Pixels(cam["image_width"]),
        image_height=Pixels(cam["image_height"]),
        name=cam["name"],
    )


def get_camera_distortion(camera_name: str = DEFAULT_CAMERA_NAME) -> DistortionCoefficients:
    """Distortion coefficients for a named camera (zero if not calibrated)."""
    cam = get_camera_by_name(camera_name)
    if cam is None:
        return DistortionCoefficients()
    return DistortionCoefficients(
        k1=Unitless(cam.get("k1", 0.0)),
        k2=Unitless(cam.get("k2", 0.0)),
    )
