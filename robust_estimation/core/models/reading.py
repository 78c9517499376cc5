"""
Reading classes consumed by the robust estimators.

Conventions:
- RSSI: dBm
- Power: dBm internally, converted from/to Watts at the API boundary
- Specific force: m/s^2, body frame (x, y, z)
- Standard deviation: same unit as the measured value, None if unknown

Reading Types:
- RssiReading: received power of a radio source at a known receiver position
- AccelerometerReading: specific force measured while the device is static
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .point import Point
from .radio_source import RadioSource


@dataclass(frozen=True)
class RssiReading:
    """
    Received signal strength of a radio source measured at a known position.

    Attributes:
        source: Radio source the reading belongs to
        rssi: Received power in dBm
        position: Receiver position where the reading was taken
        rssi_standard_deviation: Standard deviation of the RSSI in dB, None if unknown
    """

    source: RadioSource
    rssi: float
    position: Point
    rssi_standard_deviation: Optional[float] = None

    def __post_init__(self):
        """Validate reading data after initialization."""
        object.__setattr__(self, 'rssi', float(self.rssi))
        if not math.isfinite(self.rssi):
            raise ValueError("RSSI must be finite")
        if self.rssi_standard_deviation is not None and self.rssi_standard_deviation <= 0:
            raise ValueError(
                f"Standard deviation must be positive, got {self.rssi_standard_deviation}"
            )

    @property
    def value(self) -> float:
        """Measured value (alias of ``rssi``)."""
        return self.rssi

    @property
    def dimensions(self) -> int:
        return self.position.dimensions

    def to_dict(self) -> Dict[str, Any]:
        """Serialize reading to dictionary."""
        return {
            "source": self.source.to_dict(),
            "rssi": self.rssi,
            "position": self.position.to_dict(),
            "rssi_standard_deviation": self.rssi_standard_deviation,
        }


@dataclass(frozen=True)
class AccelerometerReading:
    """
    Specific force measured by an accelerometer at rest.

    Attributes:
        specific_force: Measured (fx, fy, fz) in m/s^2
        specific_force_standard_deviation: Standard deviation in m/s^2, None if unknown
    """

    specific_force: Tuple[float, float, float]
    specific_force_standard_deviation: Optional[float] = None

    def __post_init__(self):
        """Validate reading data after initialization."""
        force = tuple(float(f) for f in self.specific_force)
        if len(force) != 3:
            raise ValueError(f"Specific force must have 3 components, got {len(force)}")
        if not all(math.isfinite(f) for f in force):
            raise ValueError("Specific force must be finite")
        object.__setattr__(self, 'specific_force', force)
        if (self.specific_force_standard_deviation is not None
                and self.specific_force_standard_deviation <= 0):
            raise ValueError(
                "Standard deviation must be positive, "
                f"got {self.specific_force_standard_deviation}"
            )

    @property
    def norm(self) -> float:
        """Norm of the measured specific force."""
        return math.sqrt(sum(f * f for f in self.specific_force))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize reading to dictionary."""
        return {
            "specific_force": list(self.specific_force),
            "specific_force_standard_deviation": self.specific_force_standard_deviation,
        }


# Utility functions for unit conversion

def dbm_to_watt(dbm: float) -> float:
    """Convert power from dBm to Watts."""
    return 10.0 ** ((dbm - 30.0) / 10.0)


def watt_to_dbm(watt: float) -> float:
    """Convert power from Watts to dBm."""
    if watt <= 0:
        raise ValueError("Power in Watts must be positive")
    return 10.0 * math.log10(watt) + 30.0
