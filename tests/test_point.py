"""
Tests for the Point class.
"""

import math

import numpy as np
import pytest

from robust_estimation.core.models.point import Point, centroid


class TestPointCreation:
    """Tests for Point creation and validation."""

    def test_create_2d_point(self):
        """Test creating a 2D point."""
        point = Point((1.0, 2.0))

        assert point.dimensions == 2
        assert point.x == 1.0
        assert point.y == 2.0
        assert point.z is None

    def test_create_3d_point(self):
        """Test creating a 3D point with positional coordinates."""
        point = Point.of(1.0, 2.0, 3.0)

        assert point.dimensions == 3
        assert point.z == 3.0

    def test_coordinates_are_converted_to_float(self):
        """Integer coordinates are stored as floats."""
        point = Point.of(1, 2)
        assert point.coordinates == (1.0, 2.0)
        assert all(isinstance(c, float) for c in point.coordinates)

    def test_from_array(self):
        """Test creating a point from a NumPy array."""
        point = Point.from_array(np.array([4.0, 5.0, 6.0]))
        assert point.coordinates == (4.0, 5.0, 6.0)

    def test_unsupported_dimensions_rejected(self):
        """Only 2D and 3D points are supported."""
        with pytest.raises(ValueError, match="2 or 3"):
            Point.of(1.0)
        with pytest.raises(ValueError, match="2 or 3"):
            Point.of(1.0, 2.0, 3.0, 4.0)

    def test_non_finite_rejected(self):
        """Coordinates must be finite."""
        with pytest.raises(ValueError, match="finite"):
            Point.of(1.0, float("nan"))
        with pytest.raises(ValueError, match="finite"):
            Point.of(float("inf"), 0.0)

    def test_point_is_immutable(self):
        """Points cannot be modified after creation."""
        point = Point.of(1.0, 2.0)
        with pytest.raises(AttributeError):
            point.coordinates = (3.0, 4.0)


class TestPointOperations:
    """Tests for Point arithmetic and geometry."""

    def test_distance_2d(self):
        """Test the 3-4-5 triangle distance."""
        assert Point.of(0.0, 0.0).distance_to(Point.of(3.0, 4.0)) == pytest.approx(5.0)

    def test_distance_3d(self):
        a = Point.of(1.0, 1.0, 1.0)
        b = Point.of(2.0, 2.0, 2.0)
        assert a.distance_to(b) == pytest.approx(math.sqrt(3.0))

    def test_distance_dimension_mismatch(self):
        """Distances between 2D and 3D points are rejected."""
        with pytest.raises(ValueError, match="dimensions differ"):
            Point.of(0.0, 0.0).distance_to(Point.of(0.0, 0.0, 0.0))

    def test_add_and_subtract(self):
        a = Point.of(1.0, 2.0)
        b = Point.of(0.5, -1.0)
        assert (a + b).coordinates == (1.5, 1.0)
        assert (a - b).coordinates == (0.5, 3.0)

    def test_scaled(self):
        assert Point.of(1.0, -2.0, 3.0).scaled(2.0).coordinates == (2.0, -4.0, 6.0)

    def test_as_array_returns_copy(self):
        """Modifying the returned array does not affect the point."""
        point = Point.of(1.0, 2.0)
        arr = point.as_array()
        arr[0] = 100.0
        assert point.x == 1.0

    def test_centroid(self):
        """Centroid is the arithmetic mean of the points."""
        points = [Point.of(0.0, 0.0), Point.of(2.0, 0.0), Point.of(2.0, 2.0), Point.of(0.0, 2.0)]
        assert centroid(points).coordinates == pytest.approx((1.0, 1.0))

    def test_centroid_empty(self):
        with pytest.raises(ValueError):
            centroid([])

    def test_centroid_mixed_dimensions(self):
        with pytest.raises(ValueError, match="same dimensions"):
            centroid([Point.of(0.0, 0.0), Point.of(0.0, 0.0, 0.0)])


class TestPointSerialization:
    """Tests for Point serialization."""

    def test_to_dict_2d(self):
        assert Point.of(1.0, 2.0).to_dict() == {"x": 1.0, "y": 2.0}

    def test_to_dict_3d(self):
        assert Point.of(1.0, 2.0, 3.0).to_dict() == {"x": 1.0, "y": 2.0, "z": 3.0}

    def test_from_dict_roundtrip(self):
        """Test serialization roundtrip for 2D and 3D points."""
        for original in (Point.of(1.5, -2.5), Point.of(1.0, 2.0, 3.0)):
            assert Point.from_dict(original.to_dict()) == original

    def test_from_dict_missing_key(self):
        with pytest.raises(KeyError):
            Point.from_dict({"x": 1.0})

    def test_repr(self):
        assert repr(Point.of(1.0, 2.0)) == "Point(1.000, 2.000)"
