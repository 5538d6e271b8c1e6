#!/usr/bin/env python3
"""
Unit tests for GeolocationConfig loading, validation and saving.
"""

import os
import sys

import pytest
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from thermal_geolocation.config import GeolocationConfig, get_default_config


class TestDefaults:
    def test_default_values(self):
        config = get_default_config()
        assert config.camera == "thermal-640"
        assert config.correct_distortion is False
        assert config.estimator.max_range_m == 1000.0
        assert config.estimator.ray_step_m == 1.0
        assert config.estimator.min_depression_deg == 15.0
        assert config.estimator.min_height_above_terrain_m == 10.0
        assert config.calibration.coarse_step_m == 0.2
        assert config.calibration.fine_step_m == 0.1
        assert config.calibration.min_improvement_m == 0.02
        assert config.significance.min_hot_pixels == 5


class TestFromDict:
    def test_partial_overrides(self):
        config = GeolocationConfig.from_dict(
            {
                'camera': 'thermal-1280',
                'estimator': {'max_range_m': 500.0},
                'calibration': {'has_ground_fix': False},
            }
        )
        assert config.camera == "thermal-1280"
        assert config.estimator.max_range_m == 500.0
        assert config.estimator.ray_step_m == 1.0
        assert config.calibration.search_bound_m == 15.0

    def test_unknown_top_level_key(self):
        with pytest.raises(ValueError, match="Unknown configuration key"):
            GeolocationConfig.from_dict({'cameras': 'x'})

    def test_unknown_section_key(self):
        with pytest.raises(ValueError, match="Unknown key\\(s\\) in 'estimator'"):
            GeolocationConfig.from_dict({'estimator': {'max_rnage_m': 5}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            GeolocationConfig.from_dict({'calibration': [1, 2]})

    def test_invalid_values_propagate(self):
        with pytest.raises(ValueError, match="coarse"):
            GeolocationConfig.from_dict({'calibration': {'coarse_step_m': 0.0}})

    def test_unknown_camera(self):
        with pytest.raises(ValueError, match="Unknown camera"):
            GeolocationConfig.from_dict({'camera': 'visible-4k'})

    def test_not_a_dict(self):
        with pytest.raises(ValueError, match="must be a dictionary"):
            GeolocationConfig.from_dict(["camera"])


class TestYaml:
    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"
        original = GeolocationConfig.from_dict(
            {'correct_distortion': True, 'significance': {'min_hot_pixels': 8}}
        )
        original.save_to_yaml(str(path))

        with open(path) as f:
            raw = yaml.safe_load(f)
        assert 'geolocation' in raw

        loaded = GeolocationConfig.from_yaml(str(path))
        assert loaded == original

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            GeolocationConfig.from_yaml(str(tmp_path / "missing.yaml"))

    def test_missing_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("other: {}\n")
        with pytest.raises(ValueError, match="'geolocation' section"):
            GeolocationConfig.from_yaml(str(path))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        with pytest.raises(ValueError, match="empty"):
            GeolocationConfig.from_yaml(str(path))

    def test_empty_section_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("geolocation:\n")
        assert GeolocationConfig.from_yaml(str(path)) == get_default_config()
