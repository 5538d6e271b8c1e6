"""
Configuration for geolocation and altitude calibration runs.

A YAML configuration file has a single ``geolocation`` section:

    geolocation:
      camera: thermal-640
      correct_distortion: false
      estimator:
        max_range_m: 1000.0
        min_depression_deg: 15.0
      calibration:
        max_abs_bias_m: 8.0
        has_ground_fix: true
      significance:
        min_hot_pixels: 5

Any omitted value keeps its default.
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Type, TypeVar
import logging

import yaml

from thermal_geolocation.aggregation import SignificanceThresholds
from thermal_geolocation.camera_config import DEFAULT_CAMERA_NAME, get_camera_by_name, get_camera_configs
from thermal_geolocation.location_estimator import EstimatorSettings
from thermal_geolocation.segment_calibration import CalibrationSettings

logger = logging.getLogger(__name__)

CONFIG_SECTION = 'geolocation'

T = TypeVar('T')


def _build_section(section_cls: Type[T], name: str, values: Any) -> T:
    """Instantiate a settings dataclass from a mapping, rejecting unknown keys."""
    if values is None:
        return section_cls()
    if not isinstance(values, dict):
        raise ValueError(f"'{name}' must be a mapping, got {type(values).__name__}")
    known = {f.name for f in fields(section_cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(
            f"Unknown key(s) in '{name}': {', '.join(unknown)}. "
            f"Valid keys: {', '.join(sorted(known))}"
        )
    try:
        return section_cls(**values)
    except TypeError as e:
        raise ValueError(f"Invalid '{name}' configuration: {e}") from e


@dataclass
class GeolocationConfig:
    """Settings for a geolocation and calibration run.

    Attributes:
        camera: Camera model name from the camera table.
        correct_distortion: Apply the camera's radial distortion
            pre-correction before projecting pixels.
        estimator: Single-frame geolocation limits.
        calibration: Altitude-bias search parameters.
        significance: Thresholds selecting objects used for calibration.
    """
    camera: str = DEFAULT_CAMERA_NAME
    correct_distortion: bool = False
    estimator: EstimatorSettings = field(default_factory=EstimatorSettings)
    calibration: CalibrationSettings = field(default_factory=CalibrationSettings)
    significance: SignificanceThresholds = field(default_factory=SignificanceThresholds)

    def __post_init__(self) -> None:
        if get_camera_by_name(self.camera) is None:
            available = [c["name"] for c in get_camera_configs()]
            raise ValueError(f"Unknown camera '{self.camera}'. Available cameras: {', '.join(available)}")

    @classmethod
    def from_yaml(cls, path: str) -> 'GeolocationConfig':
        """Load configuration from YAML file.

        Raises:
            FileNotFoundError: If configuration file does not exist
            ValueError: If configuration file is malformed or contains invalid values
            yaml.YAMLError: If YAML parsing fails
        """
        config_path = Path(path)

        if not config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {path}\n"
                f"Please create a configuration file or use get_default_config()"
            )

        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)

        if data is None:
            raise ValueError(f"Configuration file is empty: {path}")
        if not isinstance(data, dict) or CONFIG_SECTION not in data:
            raise ValueError(f"Configuration file must contain a '{CONFIG_SECTION}' section: {path}")

        return cls.from_dict(data[CONFIG_SECTION] or {})

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'GeolocationConfig':
        if not isinstance(config, dict):
            raise ValueError(f"Configuration must be a dictionary, got {type(config)}")

        known = {'camera', 'correct_distortion', 'estimator', 'calibration', 'significance'}
        unknown = sorted(set(config) - known)
        if unknown:
            raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")

        return cls(
            camera=str(config.get('camera', DEFAULT_CAMERA_NAME)),
            correct_distortion=bool(config.get('correct_distortion', False)),
            estimator=_build_section(EstimatorSettings, 'estimator', config.get('estimator')),
            calibration=_build_section(CalibrationSettings, 'calibration', config.get('calibration')),
            significance=_build_section(SignificanceThresholds, 'significance', config.get('significance')),
        )

    def to_dict(self) -> dict:
        return {
            'camera': self.camera,
            'correct_distortion': self.correct_distortion,
            'estimator': {k: float(v) for k, v in asdict(self.estimator).items()},
            'calibration': {
                k: (v if isinstance(v, bool) else float(v)) for k, v in asdict(self.calibration).items()
            },
            'significance': {
                k: (float(v) if isinstance(v, float) else v) for k, v in asdict(self.significance).items()
            },
        }

    def save_to_yaml(self, path: str) -> None:
        """Save configuration to YAML file, creating parent directories."""
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w') as f:
            yaml.safe_dump({CONFIG_SECTION: self.to_dict()}, f, default_flow_style=False, sort_keys=False)
        logger.debug(f"Saved configuration to {config_path}")


def get_default_config() -> GeolocationConfig:
    """Return the default configuration for the reference thermal camera."""
    return GeolocationConfig()
