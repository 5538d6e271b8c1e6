"""CLI module for thermal geolocation tools.

Provides a unified `thermal-geo` command-line interface for locating
observations and calibrating flight segment altitudes.
"""

from thermal_geolocation.cli.main import app

__all__ = ["app"]
