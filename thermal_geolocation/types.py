"""
Unit type annotations for type-safe numeric parameters.

NewType aliases for the physical units used across thermal_geolocation.
They document expected units in signatures and let static checkers catch
mix-ups (e.g. degrees passed where radians are expected) at no runtime cost.

World coordinates are metric: northing and easting in meters on a local
projected grid, altitude/elevation in meters above the vertical datum.

Usage Example:
    >>> from thermal_geolocation.types import Degrees, Meters
    >>>
    >>> def horizontal_range(depression: Degrees, height: Meters) -> Meters:
    ...     pass
"""

from typing import NewType

# Angular units
Degrees = NewType('Degrees', float)
"""Angle in degrees (e.g., heading, camera depression)"""

# Distance/position units
Meters = NewType('Meters', float)
"""Distance or position in meters (northing, easting, altitude, errors)"""

# Image coordinate units
Pixels = NewType('Pixels', int)
"""Image coordinates or dimensions in pixels (e.g., width, height, box size)"""

PixelsFloat = NewType('PixelsFloat', float)
"""Floating-point image coordinates in pixels (e.g., box centroid)"""

# Physical sensor dimensions
Millimeters = NewType('Millimeters', float)
"""Physical dimensions in millimeters (sensor size, focal length)"""

# Dimensionless quantities
Unitless = NewType('Unitless', float)
"""Dimensionless scalar (confidence, distortion coefficients, ratios)"""
