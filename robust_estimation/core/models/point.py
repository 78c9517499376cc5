"""
Point class for receiver and emitter positions.

Conventions:
- Coordinates: Cartesian, meters
- Dimensions: 2 (x, y) or 3 (x, y, z)
- Points are immutable; arithmetic returns new points
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

import numpy as np


SUPPORTED_DIMENSIONS = (2, 3)


@dataclass(frozen=True)
class Point:
    """
    Represents a position in 2D or 3D Cartesian space.

    Attributes:
        coordinates: Tuple of 2 or 3 finite coordinates in meters
    """

    coordinates: Tuple[float, ...]

    def __post_init__(self):
        """Validate coordinates after initialization."""
        coords = tuple(float(c) for c in self.coordinates)
        if len(coords) not in SUPPORTED_DIMENSIONS:
            raise ValueError(
                f"Point must have 2 or 3 coordinates, got {len(coords)}"
            )
        if not all(math.isfinite(c) for c in coords):
            raise ValueError("Point coordinates must be finite")
        object.__setattr__(self, 'coordinates', coords)

    @classmethod
    def of(cls, *coordinates: float) -> 'Point':
        """Create a point from positional coordinates, e.g. ``Point.of(1.0, 2.0)``."""
        return cls(tuple(coordinates))

    @classmethod
    def from_array(cls, values: Iterable[float]) -> 'Point':
        """Create a point from any iterable of coordinates (e.g. a NumPy array)."""
        return cls(tuple(float(v) for v in values))

    @property
    def dimensions(self) -> int:
        """Number of coordinates (2 or 3)."""
        return len(self.coordinates)

    @property
    def x(self) -> float:
        return self.coordinates[0]

    @property
    def y(self) -> float:
        return self.coordinates[1]

    @property
    def z(self) -> Optional[float]:
        """Third coordinate, None for 2D points."""
        return self.coordinates[2] if self.dimensions == 3 else None

    def as_array(self) -> np.ndarray:
        """Return coordinates as a new float NumPy array."""
        return np.array(self.coordinates, dtype=float)

    def distance_to(self, other: 'Point') -> float:
        """Euclidean distance to another point of the same dimension."""
        self._check_same_dimensions(other)
        return math.dist(self.coordinates, other.coordinates)

    def __add__(self, other: 'Point') -> 'Point':
        self._check_same_dimensions(other)
        return Point(tuple(a + b for a, b in zip(self.coordinates, other.coordinates)))

    def __sub__(self, other: 'Point') -> 'Point':
        self._check_same_dimensions(other)
        return Point(tuple(a - b for a, b in zip(self.coordinates, other.coordinates)))

    def scaled(self, factor: float) -> 'Point':
        """Return this point with every coordinate multiplied by ``factor``."""
        return Point(tuple(c * factor for c in self.coordinates))

    def _check_same_dimensions(self, other: 'Point') -> None:
        if self.dimensions != other.dimensions:
            raise ValueError(
                f"Point dimensions differ: {self.dimensions} != {other.dimensions}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize point to dictionary.

        Returns:
            Dictionary with ``x``, ``y`` and, for 3D points, ``z``
        """
        data = {"x": self.x, "y": self.y}
        if self.dimensions == 3:
            data["z"] = self.z
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Point':
        """
        Create a Point from a dictionary.

        Args:
            data: Dictionary with ``x``, ``y`` and optional ``z``

        Returns:
            New Point instance

        Raises:
            KeyError: If x or y is missing
        """
        coords = [float(data["x"]), float(data["y"])]
        if data.get("z") is not None:
            coords.append(float(data["z"]))
        return cls(tuple(coords))

    def __repr__(self) -> str:
        """Return string representation of the point."""
        body = ", ".join(f"{c:.3f}" for c in self.coordinates)
        return f"Point({body})"


def centroid(points: Sequence[Point]) -> Point:
    """Arithmetic mean of a non-empty sequence of same-dimension points."""
    if not points:
        raise ValueError("centroid requires at least one point")
    dims = points[0].dimensions
    if any(p.dimensions != dims for p in points):
        raise ValueError("All points must have the same dimensions")
    stacked = np.array([p.coordinates for p in points], dtype=float)
    return Point.from_array(stacked.mean(axis=0))
