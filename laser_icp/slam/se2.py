"""SE(2) operations for 2D scan matching (Special Euclidean Group in 2D).

This module implements the rigid-transform algebra used by the ICP engine:
moving scans into a candidate frame, chaining incremental ICP updates, and
accumulating relative motion into a global pose.

Key functions:
    - se2_compose: Compose two SE(2) transforms (p1 ⊕ p2)
    - se2_inverse: Invert an SE(2) transform (p⁻¹)
    - se2_apply: Transform a point array by an SE(2) transform
    - apply_transform: Transform a Scan, producing a new Scan
    - se2_to_matrix / se2_from_matrix: 3x3 homogeneous matrix conversion
    - se2_to_pose3d: Position + quaternion for a pose sink

SE(2) representation: arrays [x, y, yaw] of shape (3,) or `Transform`.

Composition order:
    se2_compose(A, B) applies B FIRST and A SECOND. In matrix form this is
    M(A) @ M(B). The global pose update is therefore
    global_new = se2_compose(global_old, relative).

Author: Li-Ta Hsu
Date: December 2025
"""

from typing import Tuple, Union

import numpy as np

from .types import Scan, Transform

TransformLike = Union[np.ndarray, Transform]


def _as_array(p: TransformLike, name: str = "p") -> np.ndarray:
    if isinstance(p, Transform):
        return p.to_array()
    p = np.asarray(p, dtype=np.float64)
    if p.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {p.shape}")
    return p


def wrap_angle(theta: float) -> float:
    """
    Normalize angle to the range [-π, π].

    Args:
        theta: Angle in radians (can be any real value).

    Returns:
        Normalized angle in [-π, π].

    Examples:
        >>> wrap_angle(0.0)
        0.0
        >>> wrap_angle(np.pi + 0.1)  # Wraps to negative side
        -3.0415926535897927

    Notes:
        Uses θ_wrapped = atan2(sin(θ), cos(θ)).
    """
    return float(np.arctan2(np.sin(theta), np.cos(theta)))


def se2_compose(p1: TransformLike, p2: TransformLike) -> np.ndarray:
    """
    Compose two SE(2) transforms: p_result = p1 ⊕ p2.

    The result maps a point by p2 first and then by p1:
        x_result = x1 + x2*cos(yaw1) - y2*sin(yaw1)
        y_result = y1 + x2*sin(yaw1) + y2*cos(yaw1)
        yaw_result = yaw1 + yaw2  (wrapped to [-π, π])

    Args:
        p1: Outer transform, array [x1, y1, yaw1] or Transform.
        p2: Inner transform, array [x2, y2, yaw2] or Transform.

    Returns:
        Composed transform as array [x, y, yaw] of shape (3,).

    Raises:
        ValueError: If arrays do not have shape (3,).

    Examples:
        >>> p1 = np.array([0, 0, np.pi/2])  # 90° rotation
        >>> p2 = np.array([1, 0, 0])  # 1m forward
        >>> np.allclose(se2_compose(p1, p2), [0, 1, np.pi/2])
        True
    """
    x1, y1, yaw1 = _as_array(p1, "p1")
    x2, y2, yaw2 = _as_array(p2, "p2")

    cos_yaw1 = np.cos(yaw1)
    sin_yaw1 = np.sin(yaw1)

    x_result = x1 + x2 * cos_yaw1 - y2 * sin_yaw1
    y_result = y1 + x2 * sin_yaw1 + y2 * cos_yaw1
    yaw_result = wrap_angle(yaw1 + yaw2)

    return np.array([x_result, y_result, yaw_result], dtype=np.float64)


def se2_inverse(p: TransformLike) -> np.ndarray:
    """
    Compute the inverse of an SE(2) transform: p_inv = p⁻¹.

    The inverse formula for SE(2):
        x_inv = -(x*cos(yaw) + y*sin(yaw))
        y_inv = -(-x*sin(yaw) + y*cos(yaw))
        yaw_inv = -yaw

    Examples:
        >>> p = np.array([1, 2, np.pi/4])
        >>> np.allclose(se2_compose(p, se2_inverse(p)), [0, 0, 0])
        True
    """
    x, y, yaw = _as_array(p)

    cos_yaw = np.cos(yaw)
    sin_yaw = np.sin(yaw)

    x_inv = -(x * cos_yaw + y * sin_yaw)
    y_inv = -(-x * sin_yaw + y * cos_yaw)
    yaw_inv = wrap_angle(-yaw)

    return np.array([x_inv, y_inv, yaw_inv], dtype=np.float64)


def se2_apply(p: TransformLike, points: np.ndarray) -> np.ndarray:
    """
    Transform 2D points by an SE(2) transform.

        points_transformed = R(yaw) * points + [x, y]

    Args:
        p: Transform [x, y, yaw] or Transform instance.
        points: Points to transform, shape (N, 2) in meters.

    Returns:
        Transformed points, array of shape (N, 2).

    Raises:
        ValueError: If points does not have shape (N, 2).
    """
    x, y, yaw = _as_array(p)

    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] != 2:
        raise ValueError(
            f"points must have shape (N, 2), got {points.shape}"
        )

    cos_yaw = np.cos(yaw)
    sin_yaw = np.sin(yaw)
    R = np.array([[cos_yaw, -sin_yaw], [sin_yaw, cos_yaw]], dtype=np.float64)
    t = np.array([x, y], dtype=np.float64)

    return (R @ points.T).T + t


def apply_transform(transform: TransformLike, scan: Scan) -> Scan:
    """
    Move every point of a scan by a rigid transform.

    The input scan is left untouched. Ranges and bearings of the result are
    recomputed from the moved Cartesian points, and the original sweep
    indices are carried over so the result keeps the sweep order.

    Args:
        transform: Transform [x, y, yaw] or Transform instance.
        scan: Scan to move.

    Returns:
        New Scan. The identity transform returns an exact copy.

    Examples:
        >>> scan = Scan.from_points(np.array([[1.0, 0.0], [0.0, 1.0]]))
        >>> apply_transform(Transform.identity(), scan) == scan
        True
    """
    p = _as_array(transform, "transform")
    if not np.any(p):
        return Scan(
            ranges=scan.ranges,
            bearings=scan.bearings,
            points=scan.points,
            indices=scan.indices,
        )

    moved = se2_apply(p, scan.points)
    return Scan.from_points(moved, indices=scan.indices)


def se2_relative(p_from: TransformLike, p_to: TransformLike) -> np.ndarray:
    """
    Relative transform between two global poses: p_from⁻¹ ⊕ p_to.

    Used to turn ground-truth poses into the relative motion a scan matcher
    should recover between two consecutive scans.

    Examples:
        >>> p = np.array([1, 2, np.pi/4])
        >>> np.allclose(se2_relative(p, p), [0, 0, 0], atol=1e-10)
        True
    """
    return se2_compose(se2_inverse(p_from), p_to)


def se2_to_matrix(p: TransformLike) -> np.ndarray:
    """
    Convert SE(2) transform to 3x3 homogeneous transformation matrix.

        T = [[cos(yaw), -sin(yaw), x],
             [sin(yaw),  cos(yaw), y],
             [       0,         0, 1]]

    Examples:
        >>> T = se2_to_matrix(np.array([1, 2, np.pi/2]))
        >>> np.allclose(T[2, :], [0, 0, 1])
        True
    """
    x, y, yaw = _as_array(p)
    cos_yaw = np.cos(yaw)
    sin_yaw = np.sin(yaw)

    return np.array(
        [[cos_yaw, -sin_yaw, x], [sin_yaw, cos_yaw, y], [0.0, 0.0, 1.0]],
        dtype=np.float64,
    )


def se2_from_matrix(T: np.ndarray) -> np.ndarray:
    """
    Convert 3x3 homogeneous transformation matrix to [x, y, yaw].

    Raises:
        ValueError: If T is not 3x3 or its last row is not [0, 0, 1].
    """
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (3, 3):
        raise ValueError(f"T must have shape (3, 3), got {T.shape}")
    if not np.allclose(T[2, :], [0.0, 0.0, 1.0]):
        raise ValueError(f"T is not homogeneous, last row is {T[2, :]}")

    x = T[0, 2]
    y = T[1, 2]
    yaw = np.arctan2(T[1, 0], T[0, 0])

    return np.array([x, y, yaw], dtype=np.float64)


def se2_to_pose3d(p: TransformLike) -> Tuple[np.ndarray, np.ndarray]:
    """
    Express a planar pose as a 3D position and unit quaternion.

    This is the form a pose sink (e.g. a middleware pose message) expects.

    Args:
        p: Transform [x, y, yaw] or Transform instance.

    Returns:
        Tuple of (position, quaternion):
            - position: [x, y, 0.0], shape (3,).
            - quaternion: [qw, qx, qy, qz], shape (4,), rotation about +z.

    Examples:
        >>> pos, q = se2_to_pose3d(np.array([1.0, 2.0, np.pi / 2]))
        >>> np.allclose(q, [np.cos(np.pi / 4), 0, 0, np.sin(np.pi / 4)])
        True
    """
    x, y, yaw = _as_array(p)
    half = 0.5 * yaw
    position = np.array([x, y, 0.0], dtype=np.float64)
    quaternion = np.array([np.cos(half), 0.0, 0.0, np.sin(half)], dtype=np.float64)
    return position, quaternion
