"""Simulated 2D laser range readings with occlusion handling.

This module ray-casts wall-based environments to produce raw range readings
the way a laser scanner reports them: one range per ray, NaN where a ray
hits nothing within range. The readings feed `build_scan` exactly like a
real sensor message would, which makes them the input of the demo and of the
end-to-end tests.

Author: Li-Ta Hsu
Date: December 2025
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

Wall = Tuple[np.ndarray, np.ndarray]


def ray_segment_intersection(
    ray_origin: np.ndarray,
    ray_direction: np.ndarray,
    segment_start: np.ndarray,
    segment_end: np.ndarray,
) -> Tuple[Optional[np.ndarray], float]:
    """Compute intersection between a ray and a line segment.

    Uses parametric line equations to find intersection:
        Ray: P = origin + t * direction (t >= 0)
        Segment: Q = start + s * (end - start) (0 <= s <= 1)

    Args:
        ray_origin: Ray starting point [x, y].
        ray_direction: Ray direction vector [dx, dy] (should be normalized).
        segment_start: Segment start point [x, y].
        segment_end: Segment end point [x, y].

    Returns:
        Tuple of (intersection_point, distance):
            - intersection_point: [x, y] if intersection exists, None otherwise
            - distance: Distance along ray to intersection (inf if no intersection)
    """
    o = np.asarray(ray_origin, dtype=float)
    d = np.asarray(ray_direction, dtype=float)
    s_start = np.asarray(segment_start, dtype=float)
    s_end = np.asarray(segment_end, dtype=float)

    s_dir = s_end - s_start
    if np.dot(s_dir, s_dir) < 1e-10:
        return None, float('inf')

    # o + t*d = s_start + u*s_dir, solved with Cramer's rule
    diff = s_start - o
    det = d[0] * s_dir[1] - d[1] * s_dir[0]

    # Parallel ray and segment
    if abs(det) < 1e-10:
        return None, float('inf')

    t = (diff[0] * s_dir[1] - diff[1] * s_dir[0]) / det
    u = (diff[0] * d[1] - diff[1] * d[0]) / det

    if t < 0 or u < 0 or u > 1:
        return None, float('inf')

    return o + t * d, float(t)


def polygon_walls(vertices: Sequence[Sequence[float]]) -> List[Wall]:
    """Close a polygon into a list of wall segments.

    Args:
        vertices: Polygon corners [[x, y], ...] in order.

    Returns:
        List of (start, end) wall segments, last corner joined to the first.

    Example:
        >>> walls = polygon_walls([[0, 0], [4, 0], [4, 3], [0, 3]])
        >>> len(walls)
        4
    """
    pts = [np.asarray(v, dtype=float) for v in vertices]
    if len(pts) < 2:
        raise ValueError(f"need at least 2 vertices, got {len(pts)}")
    return [(pts[i], pts[(i + 1) % len(pts)]) for i in range(len(pts))]


def simulate_range_readings(
    pose: np.ndarray,
    walls: List[Wall],
    num_rays: int = 360,
    angle_min: float = -np.pi,
    angle_increment: Optional[float] = None,
    max_range: float = 30.0,
    noise_std: float = 0.0,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Ray-cast one laser sweep from a sensor pose.

    For each ray, only the CLOSEST wall intersection is reported, so near
    walls occlude far ones.

    Args:
        pose: Sensor pose [x, y, yaw] in the world frame.
        walls: List of (start_point, end_point) wall segments.
        num_rays: Number of rays in the sweep.
        angle_min: Bearing of the first ray in the sensor frame (radians).
        angle_increment: Angular step (default: 2π / num_rays).
        max_range: Rays without a hit closer than this return NaN (meters).
        noise_std: Standard deviation of additive range noise (meters).
        rng: Random generator for the noise (default: np.random.default_rng()).

    Returns:
        Raw ranges, shape (num_rays,), NaN where nothing was hit.

    Example:
        >>> walls = polygon_walls([[-2, -2], [2, -2], [2, 2], [-2, 2]])
        >>> ranges = simulate_range_readings(np.zeros(3), walls, num_rays=4, angle_min=0.0)
        >>> np.allclose(ranges, 2.0)
        True
    """
    if num_rays <= 0:
        raise ValueError(f"num_rays must be positive, got {num_rays}")
    if angle_increment is None:
        angle_increment = 2 * np.pi / num_rays

    x, y, yaw = np.asarray(pose, dtype=float)
    origin = np.array([x, y])
    ranges = np.full(num_rays, np.nan)

    for ray_idx in range(num_rays):
        angle = yaw + angle_min + angle_increment * ray_idx
        ray_dir = np.array([np.cos(angle), np.sin(angle)])

        min_distance = np.inf
        for wall_start, wall_end in walls:
            intersection, distance = ray_segment_intersection(
                origin, ray_dir, wall_start, wall_end
            )
            if intersection is not None and distance < min_distance:
                min_distance = distance

        if min_distance < max_range:
            ranges[ray_idx] = min_distance

    if noise_std > 0:
        if rng is None:
            rng = np.random.default_rng()
        hit = ~np.isnan(ranges)
        ranges[hit] += rng.normal(0.0, noise_std, size=int(np.sum(hit)))

    return ranges
