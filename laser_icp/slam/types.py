"""Type definitions and data structures for 2D scan matching.

This module defines the core data structures shared by the scan-matching
engine: points, scans and rigid transforms.

Key types:
    - Point: A single laser return, polar and Cartesian at once
    - Scan: An ordered, immutable sweep of points
    - Transform: SE(2) rigid transform [x, y, yaw]
    - PointCloud2D: Type alias for 2D point arrays

Author: Li-Ta Hsu
Date: December 2025
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional

import numpy as np


# Type aliases for clarity and documentation
PointCloud2D = np.ndarray  # Shape (N, 2), points in 2D space (meters)


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, copy=True)
    arr.setflags(write=False)
    return arr


def _se2():
    """The `se2` module, imported on first use (it imports this module)."""
    from . import se2

    return se2


@dataclass(frozen=True)
class Point:
    """
    A single laser return.

    Holds both the polar reading it came from and its Cartesian position in
    the sensor frame. The two representations are always consistent: use
    `from_polar` or `from_cartesian` instead of filling the fields by hand.

    Attributes:
        range: Distance from the sensor origin (meters).
        bearing: Angle of the return, counter-clockwise from +x (radians).
        x: Cartesian x-coordinate (meters).
        y: Cartesian y-coordinate (meters).

    Examples:
        >>> p = Point.from_polar(2.0, np.pi / 2)
        >>> round(p.y, 6)
        2.0
    """

    range: float
    bearing: float
    x: float
    y: float

    @classmethod
    def from_polar(cls, range_: float, bearing: float) -> "Point":
        """Create a point from a range reading and its bearing."""
        return cls(
            range=float(range_),
            bearing=float(bearing),
            x=float(range_ * np.cos(bearing)),
            y=float(range_ * np.sin(bearing)),
        )

    @classmethod
    def from_cartesian(cls, x: float, y: float) -> "Point":
        """Create a point from Cartesian coordinates."""
        return cls(
            range=float(np.hypot(x, y)),
            bearing=float(np.arctan2(y, x)),
            x=float(x),
            y=float(y),
        )

    def distance_to(self, other: "Point") -> float:
        """Euclidean distance to another point."""
        return float(np.hypot(self.x - other.x, self.y - other.y))


@dataclass(frozen=True, eq=False)
class Scan:
    """
    Ordered sweep of laser points.

    A scan is stored column-wise in read-only NumPy arrays so that the
    correspondence search can walk it by index without allocating per-point
    objects. Order follows the sensor sweep (increasing index); the search
    strategies rely on this angular adjacency.

    Attributes:
        ranges: Range of each point, shape (N,).
        bearings: Bearing of each point, shape (N,).
        points: Cartesian coordinates, shape (N, 2).
        indices: Index of each point in the original sweep, shape (N,).
                 Dropped readings leave gaps.

    Notes:
        - Scans are replaced wholesale every sensor cycle, never mutated.
        - Equality is exact, array by array.
    """

    ranges: np.ndarray
    bearings: np.ndarray
    points: np.ndarray
    indices: Optional[np.ndarray] = field(default=None)

    def __post_init__(self) -> None:
        """Validate array shapes and freeze them."""
        ranges = np.asarray(self.ranges, dtype=np.float64).reshape(-1)
        bearings = np.asarray(self.bearings, dtype=np.float64).reshape(-1)
        points = np.asarray(self.points, dtype=np.float64).reshape(-1, 2)
        n = ranges.shape[0]

        if bearings.shape[0] != n or points.shape[0] != n:
            raise ValueError(
                f"ranges, bearings and points must have the same length, got "
                f"{ranges.shape[0]}, {bearings.shape[0]}, {points.shape[0]}"
            )

        if self.indices is None:
            indices = np.arange(n, dtype=np.int64)
        else:
            indices = np.asarray(self.indices, dtype=np.int64).reshape(-1)
            if indices.shape[0] != n:
                raise ValueError(
                    f"indices must have length {n}, got {indices.shape[0]}"
                )

        object.__setattr__(self, "ranges", _readonly(ranges))
        object.__setattr__(self, "bearings", _readonly(bearings))
        object.__setattr__(self, "points", _readonly(points))
        object.__setattr__(self, "indices", _readonly(indices))

    @classmethod
    def from_polar(
        cls,
        ranges: np.ndarray,
        bearings: np.ndarray,
        indices: Optional[np.ndarray] = None,
    ) -> "Scan":
        """Build a scan from polar readings, computing Cartesian points."""
        ranges = np.asarray(ranges, dtype=np.float64).reshape(-1)
        bearings = np.asarray(bearings, dtype=np.float64).reshape(-1)
        points = np.column_stack([ranges * np.cos(bearings), ranges * np.sin(bearings)])
        return cls(ranges=ranges, bearings=bearings, points=points, indices=indices)

    @classmethod
    def from_points(
        cls, points: np.ndarray, indices: Optional[np.ndarray] = None
    ) -> "Scan":
        """Build a scan from Cartesian points, computing ranges and bearings."""
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 2:
            if points.size == 0:
                points = np.zeros((0, 2))
            else:
                raise ValueError(f"points must have shape (N, 2), got {points.shape}")
        ranges = np.hypot(points[:, 0], points[:, 1])
        bearings = np.arctan2(points[:, 1], points[:, 0])
        return cls(ranges=ranges, bearings=bearings, points=points, indices=indices)

    @classmethod
    def empty(cls) -> "Scan":
        """Create a scan with no points."""
        return cls(ranges=np.zeros(0), bearings=np.zeros(0), points=np.zeros((0, 2)))

    @property
    def is_empty(self) -> bool:
        return self.ranges.shape[0] == 0

    def __len__(self) -> int:
        return int(self.ranges.shape[0])

    def __getitem__(self, i: int) -> Point:
        return Point(
            range=float(self.ranges[i]),
            bearing=float(self.bearings[i]),
            x=float(self.points[i, 0]),
            y=float(self.points[i, 1]),
        )

    def __iter__(self) -> Iterator[Point]:
        for i in range(len(self)):
            yield self[i]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scan):
            return NotImplemented
        return (
            np.array_equal(self.ranges, other.ranges)
            and np.array_equal(self.bearings, other.bearings)
            and np.array_equal(self.points, other.points)
            and np.array_equal(self.indices, other.indices)
        )

    __hash__ = object.__hash__

    def __repr__(self) -> str:
        return f"Scan(n_points={len(self)})"


@dataclass(frozen=True)
class Transform:
    """
    SE(2) rigid transform for scan matching.

    Represents a rotation by `yaw` followed by a displacement (x, y). The
    array layout matches the SE(2) helpers in `se2.py`: [x, y, yaw].

    Attributes:
        x: Displacement along x (meters).
        y: Displacement along y (meters).
        yaw: Rotation angle θ (radians), counter-clockwise.

    Notes:
        - Composition is associative but not commutative.
          ``a.compose(b)`` applies ``b`` first, then ``a`` (matrix ``A @ B``).
        - The identity transform is the starting value of every ICP cycle.

    Examples:
        >>> t = Transform(x=1.0, y=0.0, yaw=np.pi / 2)
        >>> t.to_matrix().shape
        (3, 3)
        >>> np.allclose(Transform.identity().compose(t).to_array(), t.to_array())
        True
    """

    x: float = 0.0
    y: float = 0.0
    yaw: float = 0.0

    def __post_init__(self) -> None:
        """Validate transform values after initialization."""
        if not np.isfinite(self.x):
            raise ValueError(f"x must be finite, got {self.x}")
        if not np.isfinite(self.y):
            raise ValueError(f"y must be finite, got {self.y}")
        if not np.isfinite(self.yaw):
            raise ValueError(f"yaw must be finite, got {self.yaw}")

    @classmethod
    def identity(cls) -> "Transform":
        """Identity transform (no rotation, no displacement)."""
        return cls(x=0.0, y=0.0, yaw=0.0)

    def is_identity(self) -> bool:
        return self.x == 0.0 and self.y == 0.0 and self.yaw == 0.0

    def to_array(self) -> np.ndarray:
        """Convert to NumPy array [x, y, yaw]."""
        return np.array([self.x, self.y, self.yaw], dtype=np.float64)

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "Transform":
        """
        Create a transform from NumPy array [x, y, yaw].

        Raises:
            ValueError: If array does not have exactly 3 elements.
        """
        arr = np.asarray(arr, dtype=np.float64)
        if arr.shape != (3,):
            raise ValueError(f"Array must have shape (3,), got {arr.shape}")
        return cls(x=float(arr[0]), y=float(arr[1]), yaw=float(arr[2]))

    def to_matrix(self) -> np.ndarray:
        """3x3 homogeneous matrix of this transform."""
        return _se2().se2_to_matrix(self.to_array())

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> "Transform":
        return cls.from_array(_se2().se2_from_matrix(T))

    def compose(self, other: "Transform") -> "Transform":
        """Return ``self ⊕ other``: apply `other` first, then `self`."""
        return Transform.from_array(_se2().se2_compose(self.to_array(), other.to_array()))

    def inverse(self) -> "Transform":
        return Transform.from_array(_se2().se2_inverse(self.to_array()))

    def apply(self, scan: Scan) -> Scan:
        """Return a new scan with every point moved by this transform."""
        return _se2().apply_transform(self, scan)

    def __repr__(self) -> str:
        """Readable string representation."""
        return f"Transform(x={self.x:.4f}, y={self.y:.4f}, yaw={self.yaw:.4f})"
