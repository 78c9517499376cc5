"""
Data models for robust estimation.

This module provides the core data structures:
- Point: 2D or 3D position
- RadioSource: Base class and subclasses for radio emitters
- Readings: RSSI and accelerometer measurements
- RobustEstimatorOptions: Configuration shared by all robust estimators
"""

from .point import Point, centroid
from .radio_source import RadioSource, RadioSourceType, WifiAccessPoint, Beacon
from .reading import RssiReading, AccelerometerReading, dbm_to_watt, watt_to_dbm
from .options import RobustEstimatorMethod, RobustEstimatorOptions

__all__ = [
    # Point
    "Point",
    "centroid",

    # Radio sources
    "RadioSource",
    "RadioSourceType",
    "WifiAccessPoint",
    "Beacon",

    # Readings
    "RssiReading",
    "AccelerometerReading",

    # Options
    "RobustEstimatorMethod",
    "RobustEstimatorOptions",

    # Utility functions
    "dbm_to_watt",
    "watt_to_dbm",
]
