"""Terrain elevation surfaces.

Anything with an ``elevation(northing, easting) -> float`` method can be used
as a terrain surface. The estimator only queries the surface and never
modifies it.

Two surfaces may be in play: the surface the camera ray intersects (usually
a digital surface model, tree tops and buildings included) and the ground
model used to express an object's height above ground (usually a digital
elevation model). When no separate ground model is given, the intersection
surface doubles as the ground model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from thermal_geolocation.types import Meters


@runtime_checkable
class TerrainSurface(Protocol):
    """Elevation query interface."""

    def elevation(self, northing: float, easting: float) -> float:
        ...


@dataclass(frozen=True)
class FlatTerrain:
    """Constant elevation everywhere."""

    height: Meters

    def elevation(self, northing: float, easting: float) -> float:
        return float(self.height)


@dataclass(frozen=True)
class PlaneTerrain:
    """Tilted plane: ``height + slope_north * (n - n0) + slope_east * (e - e0)``.

    Attributes:
        height: Elevation at the reference point.
        slope_north: Rise in meters per meter of northing.
        slope_east: Rise in meters per meter of easting.
        origin_northing: Reference point northing.
        origin_easting: Reference point easting.
    """

    height: Meters
    slope_north: float = 0.0
    slope_east: float = 0.0
    origin_northing: Meters = Meters(0.0)
    origin_easting: Meters = Meters(0.0)

    def elevation(self, northing: float, easting: float) -> float:
        return float(
            self.height
            + self.slope_north * (northing - self.origin_northing)
            + self.slope_east * (easting - self.origin_easting)
        )


class GridTerrain:
    """Regular grid elevation model with bilinear interpolation.

    Queries outside the grid are clamped to the nearest edge so a ray that
    wanders off a tile still sees a plausible surface.

    Args:
        northings: Strictly increasing grid northings (rows).
        eastings: Strictly increasing grid eastings (columns).
        elevations: Array of shape (len(northings), len(eastings)).
    """

    def __init__(
        self,
        northings: Sequence[float],
        eastings: Sequence[float],
        elevations: Sequence[Sequence[float]],
    ):
        self.northings = np.asarray(northings, dtype=np.float64)
        self.eastings = np.asarray(eastings, dtype=np.float64)
        self.elevations = np.asarray(elevations, dtype=np.float64)

        if self.northings.ndim != 1 or self.eastings.ndim != 1:
            raise ValueError("Grid axes must be one dimensional")
        if len(self.northings) < 2 or len(self.eastings) < 2:
            raise ValueError(
                f"Grid needs at least 2x2 samples, got {len(self.northings)}x{len(self.eastings)}"
            )
        expected_shape = (len(self.northings), len(self.eastings))
        if self.elevations.shape != expected_shape:
            raise ValueError(f"Elevations must be {expected_shape}, got shape {self.elevations.shape}")
        if not np.all(np.isfinite(self.elevations)):
            raise ValueError("Elevations contain NaN or Inf values")

        self._interpolator = RegularGridInterpolator(
            (self.northings, self.eastings),
            self.elevations,
            method='linear',
            bounds_error=False,
            fill_value=None,
        )

    def elevation(self, northing: float, easting: float) -> float:
        n = float(np.clip(northing, self.northings[0], self.northings[-1]))
        e = float(np.clip(easting, self.eastings[0], self.eastings[-1]))
        return float(self._interpolator((n, e)))

    def __repr__(self) -> str:
        return (
            f"GridTerrain(n=[{self.northings[0]}, {self.northings[-1]}], "
            f"e=[{self.eastings[0]}, {self.eastings[-1]}], shape={self.elevations.shape})"
        )


def terrain_from_dict(data: dict) -> TerrainSurface:
    """Build a terrain surface from a config/scenario mapping.

    Supported types: ``flat`` (height), ``plane`` (height, slope_north,
    slope_east, origin_northing, origin_easting) and ``grid`` (northings,
    eastings, elevations).

    Raises:
        ValueError: If the terrain type is unknown or fields are missing.
    """
    kind = str(data.get('type', 'flat')).lower()
    try:
        if kind == 'flat':
            return FlatTerrain(height=Meters(float(data['height'])))
        if kind == 'plane':
            return PlaneTerrain(
                height=Meters(float(data['height'])),
                slope_north=float(data.get('slope_north', 0.0)),
                slope_east=float(data.get('slope_east', 0.0)),
                origin_northing=Meters(float(data.get('origin_northing', 0.0))),
                origin_easting=Meters(float(data.get('origin_easting', 0.0))),
            )
        if kind == 'grid':
            return GridTerrain(data['northings'], data['eastings'], data['elevations'])
    except KeyError as e:
        raise ValueError(f"Terrain of type '{kind}' is missing field {e}") from e
    raise ValueError(f"Unknown terrain type '{kind}'. Expected one of: flat, plane, grid")
