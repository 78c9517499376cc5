"""
Radio source value objects.

A radio source is identified by a string (a Wi-Fi BSSID or a beacon
identifier list) and transmits at a known carrier frequency in Hz.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class RadioSourceType(Enum):
    """Enumeration of supported radio source kinds."""
    WIFI_ACCESS_POINT = "wifi_access_point"
    BEACON = "beacon"


@dataclass(frozen=True)
class RadioSource:
    """
    Base class for radio sources.

    Attributes:
        identifier: Unique identifier of the source
        frequency: Carrier frequency in Hz (must be positive)
    """

    identifier: str
    frequency: float

    def __post_init__(self):
        if not self.identifier:
            raise ValueError("Radio source identifier cannot be empty")
        if self.frequency <= 0:
            raise ValueError(f"Frequency must be positive, got {self.frequency}")

    @property
    def source_type(self) -> RadioSourceType:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        """Serialize radio source to dictionary."""
        return {
            "type": self.source_type.value,
            "identifier": self.identifier,
            "frequency": self.frequency,
        }


@dataclass(frozen=True)
class WifiAccessPoint(RadioSource):
    """
    Wi-Fi access point identified by its BSSID.

    Attributes:
        ssid: Optional network name
    """

    ssid: Optional[str] = None

    @property
    def bssid(self) -> str:
        return self.identifier

    @property
    def source_type(self) -> RadioSourceType:
        return RadioSourceType.WIFI_ACCESS_POINT

    @classmethod
    def create(cls, bssid: str, frequency: float, ssid: Optional[str] = None) -> 'WifiAccessPoint':
        return cls(identifier=bssid, frequency=frequency, ssid=ssid)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["ssid"] = self.ssid
        return data


@dataclass(frozen=True)
class Beacon(RadioSource):
    """
    BLE beacon identified by its identifier list (e.g. UUID, major, minor).

    The joined identifier list is used as ``identifier``.
    """

    identifiers: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def source_type(self) -> RadioSourceType:
        return RadioSourceType.BEACON

    @classmethod
    def create(cls, identifiers: Tuple[str, ...], frequency: float) -> 'Beacon':
        ids = tuple(str(i) for i in identifiers)
        return cls(identifier=":".join(ids), frequency=frequency, identifiers=ids)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["identifiers"] = list(self.identifiers)
        return data
