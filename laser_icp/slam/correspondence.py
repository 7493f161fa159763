"""Point correspondence search between a reference scan and a candidate scan.

For every point of the (already transformed) candidate scan, the search
finds the reference point at minimum Euclidean distance. Three
interchangeable strategies are provided and selected by name:

    - naive: compare against every reference point, O(n·m)
    - jump:  start at the angularly nearest reference index and walk outward
             using the reference scan's jump table
    - smart: like jump, but start each search at the previous point's match

All strategies return the same indices; ties resolve to the lowest
reference index. They differ only in the number of distance evaluations
(`comparisons`), which is reported for performance measurement.

After the search, matches are gated by the trust threshold of the current
ICP iteration (see `trust_threshold`): matches farther than the threshold
become "no match" (index -1) and are left out of the transform estimate.

Pruning bounds used by the jump walk:
    - direction stop: every remaining reference point in one direction lies
      in the angular wedge between the next bearing and the last bearing of
      the scan; if the distance from the candidate to that wedge exceeds the
      best distance, the direction is finished.
    - jump: the points skipped by a jump pointer lie in a sector of bounded
      range (all <= r[k] for a "bigger" jump, all >= r[k] for a "smaller"
      jump); the jump is taken only if the distance to that sector exceeds
      the best distance, otherwise the walk steps by one.
Both bounds are exact lower bounds, so pruning never changes the result.

Author: Li-Ta Hsu
Date: December 2025
"""

import math
from bisect import bisect_left
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np

from .jump_table import DOWN_BIGGER, DOWN_SMALLER, UP_BIGGER, UP_SMALLER, JumpTable
from .types import Scan

NO_MATCH = -1
MAX_ITER = 30
MIN_INFO = 0.1

TWO_PI = 2.0 * math.pi


class CorrespondenceStrategy(str, Enum):
    """Available correspondence search strategies."""

    NAIVE = "naive"
    JUMP = "jump"
    SMART = "smart"


@dataclass(eq=False)
class Correspondences:
    """
    Result of one correspondence search.

    Attributes:
        reference_indices: Best reference index per candidate point, shape (m,).
                           NO_MATCH (-1) where the point was rejected.
        distances: Euclidean distance of each match, shape (m,); inf where
                   there is no match.
        comparisons: Number of point-to-point distance evaluations performed.
        strategy: Strategy that produced the result.
        table: Jump table (and thereby reference scan) the indices refer to.
    """

    reference_indices: np.ndarray
    distances: np.ndarray
    comparisons: int
    strategy: CorrespondenceStrategy
    table: JumpTable

    @property
    def valid_mask(self) -> np.ndarray:
        return self.reference_indices != NO_MATCH

    @property
    def num_valid(self) -> int:
        return int(np.count_nonzero(self.valid_mask))

    def __len__(self) -> int:
        return int(self.reference_indices.shape[0])

    def matched_pairs(self, candidate_points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Gather the valid (candidate, reference) point pairs.

        Args:
            candidate_points: Candidate points the search indices refer to,
                              shape (m, 2).

        Returns:
            Tuple of (matched_candidate, matched_reference), each (K, 2).

        Raises:
            ValueError: If candidate_points has the wrong number of rows.
        """
        candidate_points = np.asarray(candidate_points, dtype=np.float64)
        if candidate_points.shape != (len(self), 2):
            raise ValueError(
                f"candidate_points must have shape ({len(self)}, 2), "
                f"got {candidate_points.shape}"
            )
        mask = self.valid_mask
        return (
            candidate_points[mask],
            self.table.scan.points[self.reference_indices[mask]],
        )


def trust_threshold(
    iteration: int,
    max_iterations: int = MAX_ITER,
    min_info: float = MIN_INFO,
) -> float:
    """
    Correspondence distance gate of an ICP iteration, in meters.

        threshold(iter) = (1 - MIN_INFO) * iter² / MAX_ITER² + MIN_INFO

    clamped to [MIN_INFO, 1]. Matches farther than the threshold are not
    used, so the first iteration only trusts pairs within MIN_INFO meters
    and the gate widens quadratically up to 1 m at the iteration limit.

    Args:
        iteration: Zero-based iteration index.
        max_iterations: Iteration budget of the ICP run.
        min_info: Gate at iteration 0 in meters, in (0, 1].

    Returns:
        Gate distance in [min_info, 1] meters.

    Examples:
        >>> trust_threshold(0, 30, 0.1)
        0.1
        >>> trust_threshold(30, 30, 0.1)
        1.0
    """
    if max_iterations <= 0:
        raise ValueError(f"max_iterations must be positive, got {max_iterations}")
    if not (0.0 < min_info <= 1.0):
        raise ValueError(f"min_info must be in (0, 1], got {min_info}")

    value = (1.0 - min_info) * iteration * iteration / (max_iterations * max_iterations) + min_info
    return float(min(max(value, min_info), 1.0))


def gate_correspondences(
    reference_indices: np.ndarray,
    distances: np.ndarray,
    trust: Optional[float] = None,
    max_distance: Optional[float] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Reject matches that are not trusted in this iteration.

    Matches farther than `trust` or farther than `max_distance` become
    NO_MATCH. Either gate is skipped when None.

    Args:
        reference_indices: Raw best indices, shape (m,), NO_MATCH allowed.
        distances: Raw match distances, shape (m,).
        trust: Trust threshold of the iteration in meters
               (see `trust_threshold`).
        max_distance: Optional absolute distance gate in meters.

    Returns:
        Tuple of gated (reference_indices, distances), new arrays.

    Examples:
        >>> idx, d = gate_correspondences(np.array([0, 1, 2, 3]),
        ...                               np.array([0.4, 0.1, 0.3, 0.2]), trust=0.25)
        >>> idx
        array([-1,  1, -1,  3])
    """
    if trust is not None and trust <= 0.0:
        raise ValueError(f"trust must be positive, got {trust}")

    indices = np.array(reference_indices, dtype=np.int64, copy=True)
    dists = np.array(distances, dtype=np.float64, copy=True)

    valid = indices != NO_MATCH
    if trust is not None:
        valid &= dists <= trust
    if max_distance is not None:
        valid &= dists <= max_distance

    indices[~valid] = NO_MATCH
    dists[~valid] = np.inf
    return indices, dists


# ---------------------------------------------------------------------------
# Geometric lower bounds (squared distances)
# ---------------------------------------------------------------------------


def _in_arc(phi: float, start: float, end: float) -> bool:
    """True if direction phi lies in the arc from start to end (ccw)."""
    span = end - start
    if span >= TWO_PI:
        return True
    return (phi - start) % TWO_PI <= span


def _ray_dist2(px: float, py: float, pr2: float, ux: float, uy: float, r0: float) -> float:
    # ray {t·u : t >= r0}
    t = px * ux + py * uy
    if t <= r0:
        dx = px - r0 * ux
        dy = py - r0 * uy
        return dx * dx + dy * dy if r0 > 0.0 else pr2
    c = px * uy - py * ux
    return c * c


def _segment_dist2(px: float, py: float, pr2: float, ux: float, uy: float, r1: float) -> float:
    # segment {t·u : 0 <= t <= r1}
    t = px * ux + py * uy
    if t <= 0.0:
        return pr2
    if t >= r1:
        dx = px - r1 * ux
        dy = py - r1 * uy
        return dx * dx + dy * dy
    c = px * uy - py * ux
    return c * c


def _wedge_bound(px, py, pr2, pphi, a, ua, b, ub) -> float:
    """Squared distance from p to the wedge {r >= 0, a <= φ <= b}."""
    if _in_arc(pphi, a, b):
        return 0.0
    return min(
        _ray_dist2(px, py, pr2, ua[0], ua[1], 0.0),
        _ray_dist2(px, py, pr2, ub[0], ub[1], 0.0),
    )


def _inner_sector_bound(px, py, pr, pr2, pphi, a, ua, b, ub, radius) -> float:
    """Squared distance from p to the sector {r <= radius, a <= φ <= b}."""
    inside_arc = _in_arc(pphi, a, b)
    if inside_arc and pr <= radius:
        return 0.0
    best = min(
        _segment_dist2(px, py, pr2, ua[0], ua[1], radius),
        _segment_dist2(px, py, pr2, ub[0], ub[1], radius),
    )
    if inside_arc:
        gap = pr - radius
        best = min(best, gap * gap)
    return best


def _outer_sector_bound(px, py, pr, pr2, pphi, a, ua, b, ub, radius) -> float:
    """Squared distance from p to the region {r >= radius, a <= φ <= b}."""
    inside_arc = _in_arc(pphi, a, b)
    if inside_arc and pr >= radius:
        return 0.0
    best = min(
        _ray_dist2(px, py, pr2, ua[0], ua[1], radius),
        _ray_dist2(px, py, pr2, ub[0], ub[1], radius),
    )
    if inside_arc:
        gap = radius - pr
        best = min(best, gap * gap)
    return best


def _slack(best_d2: float, pr2: float) -> float:
    return 1e-9 * (best_d2 + pr2) + 1e-12


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class _Reference:
    """Plain-list view of a jump table for the scalar search loops."""

    __slots__ = ("n", "x", "y", "r", "b", "u", "ptr")

    def __init__(self, table: JumpTable):
        scan = table.scan
        self.n = len(scan)
        self.x = scan.points[:, 0].tolist()
        self.y = scan.points[:, 1].tolist()
        self.r = scan.ranges.tolist()
        self.b = scan.bearings.tolist()
        self.u = list(zip(np.cos(scan.bearings).tolist(), np.sin(scan.bearings).tolist()))
        self.ptr = table.pointers.tolist()

    def angular_start(self, phi: float) -> int:
        """Index whose bearing is angularly nearest to phi."""
        b = self.b
        n = self.n
        lo = b[0]
        phi = lo + (phi - lo) % TWO_PI
        k = bisect_left(b, phi)
        if k >= n:
            # past the last bearing: nearest is the last one or, around the
            # circle, the first one
            if (phi - b[n - 1]) <= (lo + TWO_PI - phi):
                return n - 1
            return 0
        if k > 0 and (phi - b[k - 1]) < (b[k] - phi):
            return k - 1
        return k


def _walk(ref: _Reference, px: float, py: float, start: int) -> Tuple[int, float, int]:
    """Jump-table walk for one candidate point.

    Returns:
        (best_index, best_squared_distance, comparisons)
    """
    n = ref.n
    rx, ry, rr, rb, ru, ptr = ref.x, ref.y, ref.r, ref.b, ref.u, ref.ptr

    pr2 = px * px + py * py
    pr = math.sqrt(pr2)
    pphi = math.atan2(py, px)

    best = NO_MATCH
    best_d2 = math.inf
    comparisons = 0

    up = start
    down = start - 1
    up_open = up < n
    down_open = down >= 0
    last_up = 0.0
    last_down = 0.0

    while up_open or down_open:
        if up_open and (not down_open or last_up <= last_down):
            k = up
            dx = rx[k] - px
            dy = ry[k] - py
            d2 = dx * dx + dy * dy
            comparisons += 1
            last_up = d2
            if d2 < best_d2 or (d2 == best_d2 and k < best):
                best, best_d2 = k, d2

            nxt = k + 1
            if nxt >= n:
                up_open = False
                continue
            limit = best_d2 + _slack(best_d2, pr2)
            if _wedge_bound(px, py, pr2, pphi, rb[nxt], ru[nxt], rb[n - 1], ru[n - 1]) > limit:
                up_open = False
                continue

            if rr[k] < pr:
                j = ptr[k][UP_BIGGER]
                if j > nxt:
                    bound = _inner_sector_bound(
                        px, py, pr, pr2, pphi, rb[nxt], ru[nxt], rb[j - 1], ru[j - 1], rr[k]
                    )
                    if bound > limit:
                        nxt = j
            else:
                j = ptr[k][UP_SMALLER]
                if j > nxt:
                    bound = _outer_sector_bound(
                        px, py, pr, pr2, pphi, rb[nxt], ru[nxt], rb[j - 1], ru[j - 1], rr[k]
                    )
                    if bound > limit:
                        nxt = j
            up = nxt
            up_open = up < n
        else:
            k = down
            dx = rx[k] - px
            dy = ry[k] - py
            d2 = dx * dx + dy * dy
            comparisons += 1
            last_down = d2
            if d2 < best_d2 or (d2 == best_d2 and k < best):
                best, best_d2 = k, d2

            nxt = k - 1
            if nxt < 0:
                down_open = False
                continue
            limit = best_d2 + _slack(best_d2, pr2)
            if _wedge_bound(px, py, pr2, pphi, rb[0], ru[0], rb[nxt], ru[nxt]) > limit:
                down_open = False
                continue

            if rr[k] < pr:
                j = ptr[k][DOWN_BIGGER]
                if j < nxt:
                    bound = _inner_sector_bound(
                        px, py, pr, pr2, pphi, rb[j + 1], ru[j + 1], rb[nxt], ru[nxt], rr[k]
                    )
                    if bound > limit:
                        nxt = j
            else:
                j = ptr[k][DOWN_SMALLER]
                if j < nxt:
                    bound = _outer_sector_bound(
                        px, py, pr, pr2, pphi, rb[j + 1], ru[j + 1], rb[nxt], ru[nxt], rr[k]
                    )
                    if bound > limit:
                        nxt = j
            down = nxt
            down_open = down >= 0

    return best, best_d2, comparisons


def naive_search(table: JumpTable, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray, int]:
    """
    Exhaustive nearest-neighbour search.

    Args:
        table: Jump table of the reference scan (pointers unused).
        points: Transformed candidate points, shape (m, 2).

    Returns:
        Tuple of (reference_indices, distances, comparisons).
    """
    m = points.shape[0]
    ref = table.scan.points
    n = ref.shape[0]
    indices = np.full(m, NO_MATCH, dtype=np.int64)
    dist2 = np.full(m, np.inf)
    if n == 0:
        return indices, dist2, 0

    rx = ref[:, 0]
    ry = ref[:, 1]
    for i in range(m):
        dx = rx - points[i, 0]
        dy = ry - points[i, 1]
        d2 = dx * dx + dy * dy
        k = int(np.argmin(d2))
        indices[i] = k
        dist2[i] = d2[k]

    return indices, np.sqrt(dist2), n * m


def jump_search(table: JumpTable, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray, int]:
    """
    Jump-table accelerated search starting at the angularly nearest index.

    Args:
        table: Jump table of the reference scan.
        points: Transformed candidate points, shape (m, 2).

    Returns:
        Tuple of (reference_indices, distances, comparisons).
    """
    return _jump_search(table, points, reuse_last=False)


def smart_search(table: JumpTable, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray, int]:
    """
    Jump-table search that starts at the previous candidate point's match.

    Consecutive candidate points are adjacent in the sweep, so their matches
    are usually adjacent too. When the previous point found no match the
    search falls back to the angularly nearest index.

    Args:
        table: Jump table of the reference scan.
        points: Transformed candidate points in sweep order, shape (m, 2).

    Returns:
        Tuple of (reference_indices, distances, comparisons).
    """
    return _jump_search(table, points, reuse_last=True)


def _jump_search(
    table: JumpTable, points: np.ndarray, reuse_last: bool
) -> Tuple[np.ndarray, np.ndarray, int]:
    m = points.shape[0]
    indices = np.full(m, NO_MATCH, dtype=np.int64)
    dist2 = np.full(m, np.inf)
    if len(table) == 0 or m == 0:
        return indices, dist2, 0

    ref = _Reference(table)
    total = 0
    last_best = NO_MATCH
    for i, (px, py) in enumerate(points.tolist()):
        if reuse_last and last_best != NO_MATCH:
            start = last_best
        else:
            start = ref.angular_start(math.atan2(py, px))
        best, best_d2, comparisons = _walk(ref, px, py, start)
        indices[i] = best
        dist2[i] = best_d2
        total += comparisons
        last_best = best

    return indices, np.sqrt(dist2), total


SearchFunction = Callable[[JumpTable, np.ndarray], Tuple[np.ndarray, np.ndarray, int]]

STRATEGIES: Dict[CorrespondenceStrategy, SearchFunction] = {
    CorrespondenceStrategy.NAIVE: naive_search,
    CorrespondenceStrategy.JUMP: jump_search,
    CorrespondenceStrategy.SMART: smart_search,
}


def find_correspondences(
    table: JumpTable,
    candidate: Union[Scan, np.ndarray],
    strategy: Union[str, CorrespondenceStrategy] = CorrespondenceStrategy.SMART,
    trust: Optional[float] = None,
    max_distance: Optional[float] = None,
) -> Correspondences:
    """
    Match every candidate point to its closest reference point.

    Args:
        table: Jump table of the reference scan. The returned indices refer
               to `table.scan`.
        candidate: Transformed candidate scan, or its points of shape (m, 2).
        strategy: "naive", "jump" or "smart" (default: "smart").
        trust: Trust threshold in meters (see `trust_threshold`). None
               admits every match.
        max_distance: Optional absolute distance gate in meters.

    Returns:
        Correspondences with one entry per candidate point.

    Raises:
        ValueError: If the strategy is unknown or points have a bad shape.

    Examples:
        >>> from laser_icp.slam.jump_table import build_jump_table
        >>> ref = Scan.from_points(np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]]))
        >>> table = build_jump_table(ref)
        >>> corr = find_correspondences(table, np.array([[0.9, 0.1]]), "naive")
        >>> corr.reference_indices
        array([0])
    """
    strategy = CorrespondenceStrategy(strategy)

    points = candidate.points if isinstance(candidate, Scan) else candidate
    points = np.asarray(points, dtype=np.float64)
    if points.size == 0:
        points = np.zeros((0, 2))
    if points.ndim != 2 or points.shape[1] != 2:
        raise ValueError(f"candidate points must have shape (M, 2), got {points.shape}")

    indices, distances, comparisons = STRATEGIES[strategy](table, points)
    indices, distances = gate_correspondences(indices, distances, trust, max_distance)

    return Correspondences(
        reference_indices=indices,
        distances=distances,
        comparisons=int(comparisons),
        strategy=strategy,
        table=table,
    )
