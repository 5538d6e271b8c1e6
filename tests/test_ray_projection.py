#!/usr/bin/env python3
"""
Tests for the camera model and pixel to world ray projection.

Covers:
- Intrinsic matrix derivation from physical camera parameters
- Camera-frame directions from pixels, with and without distortion
- Heading/depression rotations and the world frame convention
- Forward projection back to pixels

Run with: python -m pytest tests/test_ray_projection.py -v
"""

import math
import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from hypothesis import given, settings
from hypothesis import strategies as st

from thermal_geolocation.camera_config import get_camera_distortion, get_camera_model
from thermal_geolocation.camera_parameters import CameraModel, DistortionCoefficients
from thermal_geolocation.ray_projection import (
    EAST,
    NORTH,
    UP,
    CameraRayProjector,
    split_world_point,
    world_point,
)

FX_EXPECTED = 9.1 * 640 / 7.68


@pytest.fixture
def camera():
    return get_camera_model("thermal-640")


@pytest.fixture
def projector(camera):
    return CameraRayProjector(camera)


# ============================================================================
# Camera model
# ============================================================================


class TestCameraModel:
    def test_intrinsic_matrix_from_physical_parameters(self, camera):
        K = camera.intrinsic_matrix
        assert K.shape == (3, 3)
        assert K[0, 0] == pytest.approx(FX_EXPECTED)
        assert K[1, 1] == pytest.approx(9.1 * 512 / 6.144)
        assert K[0, 2] == pytest.approx(320.0)
        assert K[1, 2] == pytest.approx(256.0)
        assert K[2, 2] == 1.0
        assert K[0, 1] == 0.0

    def test_super_resolution_variant_doubles_focal_length_in_pixels(self):
        hi_res = get_camera_model("thermal-1280")
        assert hi_res.fx == pytest.approx(2 * FX_EXPECTED)
        assert hi_res.cx == pytest.approx(640.0)

    def test_unknown_camera_raises(self):
        with pytest.raises(ValueError, match="Unknown camera"):
            get_camera_model("no-such-camera")

    def test_invalid_dimensions_rejected(self):
        with pytest.raises(ValueError, match="Focal length"):
            CameraModel(0.0, 7.68, 6.144, 640, 512)
        with pytest.raises(ValueError, match="Sensor dimensions"):
            CameraModel(9.1, -1.0, 6.144, 640, 512)
        with pytest.raises(ValueError, match="Image dimensions"):
            CameraModel(9.1, 7.68, 6.144, 0, 512)

    def test_missing_metadata_falls_back_to_default_camera(self):
        camera = CameraModel.from_video_metadata(image_width=1280, image_height=1024)
        assert camera.focal_length_mm == pytest.approx(9.1)
        assert camera.sensor_width_mm == pytest.approx(7.68)
        assert camera.image_width == 1280

    def test_contains_pixel(self, camera):
        assert camera.contains_pixel(0.0, 0.0)
        assert camera.contains_pixel(639.5, 511.5)
        assert not camera.contains_pixel(640.0, 10.0)
        assert not camera.contains_pixel(-0.1, 10.0)


# ============================================================================
# Camera-frame directions
# ============================================================================


class TestCameraDirection:
    def test_principal_point_is_optical_axis(self, projector):
        direction = projector.compute_camera_direction(320.0, 256.0)
        np.testing.assert_allclose(direction, [0.0, 0.0, 1.0], atol=1e-12)

    def test_direction_is_unit_length(self, projector):
        direction = projector.compute_camera_direction(12.0, 500.0)
        assert np.linalg.norm(direction) == pytest.approx(1.0)

    def test_image_axes(self, projector):
        right = projector.compute_camera_direction(420.0, 256.0)
        below = projector.compute_camera_direction(320.0, 356.0)
        assert right[0] > 0 and right[1] == pytest.approx(0.0)
        assert below[1] > 0 and below[0] == pytest.approx(0.0)
        assert right[0] / right[2] == pytest.approx(100.0 / FX_EXPECTED)

    def test_zero_distortion_is_ignored(self, camera):
        projector = CameraRayProjector(camera, DistortionCoefficients())
        assert projector.distortion is None
        assert projector.undistort_pixel(100.0, 50.0) == (100.0, 50.0)

    def test_distortion_keeps_principal_point(self, camera):
        projector = CameraRayProjector(camera, get_camera_distortion("thermal-640"))
        assert projector.undistort_pixel(320.0, 256.0) == pytest.approx((320.0, 256.0))

    def test_positive_distortion_moves_pixels_outward(self, camera):
        projector = CameraRayProjector(camera, DistortionCoefficients(k1=0.1, k2=0.1))
        upx, upy = projector.undistort_pixel(600.0, 480.0)
        assert upx > 600.0
        assert upy > 480.0


# ============================================================================
# World directions
# ============================================================================


class TestWorldDirection:
    def test_straight_down_center(self, projector):
        direction = projector.pixel_to_world_direction(320.0, 256.0, 0.0, 90.0)
        np.testing.assert_allclose(direction, [0.0, -1.0, 0.0], atol=1e-12)

    def test_level_camera_looks_along_heading(self, projector):
        north = projector.pixel_to_world_direction(320.0, 256.0, 0.0, 0.0)
        east = projector.pixel_to_world_direction(320.0, 256.0, 90.0, 0.0)
        np.testing.assert_allclose(north, [0.0, 0.0, 1.0], atol=1e-12)
        np.testing.assert_allclose(east, [1.0, 0.0, 0.0], atol=1e-12)

    def test_depression_45_heading_north(self, projector):
        direction = projector.pixel_to_world_direction(320.0, 256.0, 0.0, 45.0)
        s = math.sqrt(0.5)
        np.testing.assert_allclose(direction, [0.0, -s, s], atol=1e-12)

    def test_image_right_is_east_when_heading_north(self, projector):
        direction = projector.pixel_to_world_direction(500.0, 256.0, 0.0, 45.0)
        assert direction[EAST] > 0

    def test_image_bottom_is_steeper(self, projector):
        center = projector.pixel_to_world_direction(320.0, 256.0, 0.0, 45.0)
        bottom = projector.pixel_to_world_direction(320.0, 500.0, 0.0, 45.0)
        assert bottom[UP] < center[UP]
        assert bottom[NORTH] < center[NORTH]

    def test_top_of_image_faces_heading_when_looking_down(self, projector):
        top = projector.pixel_to_world_direction(320.0, 0.0, 90.0, 90.0)
        assert top[EAST] > 0
        assert top[NORTH] == pytest.approx(0.0, abs=1e-12)

    @given(
        heading=st.floats(min_value=-180.0, max_value=360.0, allow_nan=False, allow_infinity=False),
        depression=st.floats(min_value=0.0, max_value=92.0, allow_nan=False, allow_infinity=False),
    )
    def test_rotation_is_orthonormal_and_proper(self, heading, depression):
        R = CameraRayProjector.camera_to_world_rotation(heading, depression)
        np.testing.assert_allclose(R @ R.T, np.eye(3), atol=1e-12)
        # The y flip between the camera and (E, U, N) frames makes this -1.
        assert np.linalg.det(R) == pytest.approx(-1.0)


# ============================================================================
# Forward projection
# ============================================================================


class TestWorldToPixel:
    def test_point_behind_camera(self, projector):
        origin = world_point(0.0, 0.0, 100.0)
        behind = world_point(-50.0, 0.0, 100.0)
        assert projector.world_to_pixel(behind, origin, 0.0, 0.0) is None

    def test_point_below_nadir_camera_is_center(self, projector):
        origin = world_point(10.0, 20.0, 100.0)
        below = world_point(10.0, 20.0, 0.0)
        px, py = projector.world_to_pixel(below, origin, 37.0, 90.0)
        assert px == pytest.approx(320.0)
        assert py == pytest.approx(256.0)

    @settings(deadline=None, max_examples=50)
    @given(
        px=st.floats(min_value=0.0, max_value=639.0),
        py=st.floats(min_value=0.0, max_value=511.0),
        heading=st.floats(min_value=0.0, max_value=360.0),
        depression=st.floats(min_value=20.0, max_value=90.0),
    )
    def test_inverts_pixel_direction(self, px, py, heading, depression):
        projector = CameraRayProjector(get_camera_model())
        origin = world_point(1000.0, -500.0, 250.0)
        direction = projector.pixel_to_world_direction(px, py, heading, depression)
        u, v = projector.world_to_pixel(origin + 75.0 * direction, origin, heading, depression)
        assert u == pytest.approx(px, abs=1e-6)
        assert v == pytest.approx(py, abs=1e-6)


def test_world_point_axis_order():
    point = world_point(northing=1.0, easting=2.0, altitude=3.0)
    assert point[EAST] == 2.0 and point[UP] == 3.0 and point[NORTH] == 1.0
    assert split_world_point(point) == (1.0, 2.0, 3.0)
