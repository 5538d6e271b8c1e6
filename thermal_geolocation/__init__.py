"""Thermal camera target geolocation and flight altitude calibration.

Locates hot objects seen by a gimbal-stabilised drone thermal camera on a
terrain model, aggregates repeated sightings per object and estimates the
systematic altitude bias of each flight segment.
"""

from thermal_geolocation.aggregation import (
    ErrorSummary,
    IdGenerator,
    ObjectStore,
    ObservationAggregator,
    SignificanceThresholds,
    TrackedObject,
    summarize_objects,
)
from thermal_geolocation.camera_config import get_camera_model
from thermal_geolocation.camera_parameters import CameraModel, DistortionCoefficients
from thermal_geolocation.config import GeolocationConfig, get_default_config
from thermal_geolocation.location_estimator import EstimatorSettings, LocationEstimate, LocationEstimator
from thermal_geolocation.observations import (
    ComputedBy,
    Failed,
    HeightMethod,
    ImageObservation,
    NotComputed,
    merge_height_status,
)
from thermal_geolocation.pose import PlatformPose, PoseTable
from thermal_geolocation.ray_projection import CameraRayProjector
from thermal_geolocation.segment_calibration import (
    CalibrationSettings,
    FlightSegment,
    SegmentAltitudeCalibrator,
    apply_committed_biases,
)
from thermal_geolocation.terrain import FlatTerrain, GridTerrain, PlaneTerrain, TerrainSurface
from thermal_geolocation.terrain_intersection import TerrainIntersector

__version__ = "0.1.0"

__all__ = [
    "CalibrationSettings",
    "CameraModel",
    "CameraRayProjector",
    "ComputedBy",
    "DistortionCoefficients",
    "ErrorSummary",
    "EstimatorSettings",
    "Failed",
    "FlatTerrain",
    "FlightSegment",
    "GeolocationConfig",
    "GridTerrain",
    "HeightMethod",
    "IdGenerator",
    "ImageObservation",
    "LocationEstimate",
    "LocationEstimator",
    "NotComputed",
    "ObjectStore",
    "ObservationAggregator",
    "PlaneTerrain",
    "PlatformPose",
    "PoseTable",
    "SegmentAltitudeCalibrator",
    "SignificanceThresholds",
    "TerrainIntersector",
    "TerrainSurface",
    "TrackedObject",
    "apply_committed_biases",
    "get_camera_model",
    "get_default_config",
    "merge_height_status",
    "summarize_objects",
]
