"""ICP (Iterative Closest Point) scan matching for 2D laser scans.

This module implements the point-to-point ICP loop that aligns a candidate
scan to a reference scan. ICP alternates between finding correspondences and
computing the rigid transformation that best explains them.

Key functions:
    - compute_icp_residual: Point-to-point squared error
    - align_svd: Weighted closed-form SVD alignment of paired points
    - estimate_transform: Transform from a correspondence set
    - run_icp: Full ICP run with convergence check and failure policy

ICP state machine:
    INIT -> ITERATING -> CONVERGED | ITERATION_LIMIT_REACHED
    ITERATING -> INSUFFICIENT_CORRESPONDENCES after too many consecutive
    iterations without a usable correspondence set.

Convergence:
    After every successful update the accumulated transform is compared with
    the previous one, component by component (yaw, x, y):

        |new - old| / |old| * 100 <= tolerance_percent

    A component whose old value is ~0 converges only if the new value is ~0
    as well.

Author: Li-Ta Hsu
Date: December 2025
"""

import logging
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union

import numpy as np

from .correspondence import (
    MAX_ITER,
    MIN_INFO,
    CorrespondenceStrategy,
    Correspondences,
    find_correspondences,
    trust_threshold,
)
from .errors import InsufficientCorrespondences
from .jump_table import JumpTable, build_jump_table
from .se2 import apply_transform, wrap_angle
from .types import Scan, Transform

logger = logging.getLogger(__name__)

ERROR_PERCENT = 5.0


class ICPStatus(Enum):
    """States of one ICP run."""

    INIT = "init"
    ITERATING = "iterating"
    CONVERGED = "converged"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"
    INSUFFICIENT_CORRESPONDENCES = "insufficient_correspondences"


@dataclass
class ICPConfig:
    """
    Parameters of an ICP run.

    Attributes:
        max_iterations: Iteration budget (default: 30).
        min_info: Trust threshold of the first iteration in meters (default: 0.1).
        convergence_tolerance_percent: Maximum relative change per component
                                       between iterations, in percent (default: 5).
        strategy: Correspondence strategy driving the update
                  ("naive", "jump" or "smart", default: "smart").
        max_correspondence_distance: Optional absolute gate in meters.
        max_consecutive_failures: Abort the run after this many consecutive
                                  iterations without enough correspondences.
        zero_tolerance: Magnitude below which a component counts as zero in
                        the convergence check.
        compare_strategies: Also run the other strategies every iteration and
                            record their comparison counts.
    """

    max_iterations: int = MAX_ITER
    min_info: float = MIN_INFO
    convergence_tolerance_percent: float = ERROR_PERCENT
    strategy: Union[str, CorrespondenceStrategy] = CorrespondenceStrategy.SMART
    max_correspondence_distance: Optional[float] = None
    max_consecutive_failures: int = 3
    zero_tolerance: float = 1e-9
    compare_strategies: bool = False

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.max_iterations <= 0:
            raise ValueError(f"max_iterations must be positive, got {self.max_iterations}")
        if not (0.0 < self.min_info <= 1.0):
            raise ValueError(f"min_info must be in (0, 1], got {self.min_info}")
        if self.convergence_tolerance_percent < 0:
            raise ValueError(
                f"convergence_tolerance_percent must be non-negative, "
                f"got {self.convergence_tolerance_percent}"
            )
        if self.max_correspondence_distance is not None and self.max_correspondence_distance <= 0:
            raise ValueError(
                f"max_correspondence_distance must be positive, "
                f"got {self.max_correspondence_distance}"
            )
        if self.max_consecutive_failures <= 0:
            raise ValueError(
                f"max_consecutive_failures must be positive, got {self.max_consecutive_failures}"
            )
        if self.zero_tolerance < 0:
            raise ValueError(f"zero_tolerance must be non-negative, got {self.zero_tolerance}")
        self.strategy = CorrespondenceStrategy(self.strategy)


@dataclass
class ICPResult:
    """
    Outcome of one ICP run.

    Attributes:
        transform: Relative transform mapping candidate points into the
                   reference frame.
        iterations: Number of iterations executed.
        converged: True if the convergence criterion was met.
        status: Terminal state of the run.
        num_correspondences: Valid correspondences of the last successful update.
        residual: Mean squared pair distance after the last update (inf if none).
        comparisons: Distance evaluations per strategy, summed over iterations.
    """

    transform: Transform
    iterations: int
    converged: bool
    status: ICPStatus
    num_correspondences: int = 0
    residual: float = float("inf")
    comparisons: Dict[str, int] = field(default_factory=dict)


def compute_icp_residual(
    source_points: np.ndarray,
    target_points: np.ndarray,
) -> float:
    """
    Compute point-to-point ICP residual (sum of squared pair distances).

    Args:
        source_points: Source points (already transformed), shape (N, 2).
        target_points: Corresponding target points, shape (N, 2).

    Returns:
        Total squared error (scalar, non-negative).

    Raises:
        ValueError: If point clouds have different sizes.

    Examples:
        >>> source = np.array([[1.0, 0.0], [0.0, 1.0]])
        >>> target = np.array([[1.1, 0.0], [0.0, 0.9]])
        >>> round(compute_icp_residual(source, target), 4)
        0.02
    """
    if source_points.shape != target_points.shape:
        raise ValueError(
            f"Point clouds must have same shape. "
            f"Got source={source_points.shape}, target={target_points.shape}"
        )

    if source_points.shape[0] == 0:
        return 0.0

    diff = source_points - target_points
    return float(np.sum(diff**2))


def align_svd(
    source_points: np.ndarray,
    target_points: np.ndarray,
    weights: Optional[np.ndarray] = None,
) -> Transform:
    """
    Compute the rigid transform aligning paired points (weighted SVD).

    Minimizes sum_i w_i ||target_i - (R source_i + t)||² in closed form:
        1. Weighted centroids of both point sets.
        2. Center the point sets.
        3. Cross-covariance H = sum_i w_i (source_i)(target_i)^T.
        4. SVD: H = U Σ V^T.
        5. Rotation R = V U^T (with det correction against reflections).
        6. Translation t = centroid_target - R centroid_source.

    Args:
        source_points: Source points, shape (N, 2).
        target_points: Corresponding target points, shape (N, 2).
        weights: Optional non-negative weight per pair, shape (N,).

    Returns:
        Transform mapping source points onto target points.

    Raises:
        ValueError: If the point sets have different shapes.
        InsufficientCorrespondences: Fewer than 2 pairs, zero total weight,
            coincident source points or a failed decomposition.

    Examples:
        >>> source = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        >>> target = source + np.array([2.0, 3.0])
        >>> t = align_svd(source, target)
        >>> np.allclose(t.to_array(), [2, 3, 0], atol=1e-6)
        True
    """
    if source_points.shape != target_points.shape:
        raise ValueError(
            f"Point clouds must have same shape. "
            f"Got source={source_points.shape}, target={target_points.shape}"
        )

    N = source_points.shape[0]
    if N < 2:
        raise InsufficientCorrespondences(
            f"Need at least 2 correspondences for SVD alignment, got {N}", num_valid=N
        )

    if weights is None:
        w = np.ones(N)
    else:
        w = np.asarray(weights, dtype=np.float64).reshape(-1)
        if w.shape[0] != N:
            raise ValueError(f"weights must have length {N}, got {w.shape[0]}")
        if np.any(w < 0):
            raise ValueError("weights must be non-negative")

    total = np.sum(w)
    if not np.isfinite(total) or total <= 0.0:
        raise InsufficientCorrespondences(
            f"Total correspondence weight must be positive, got {total}", num_valid=N
        )

    centroid_source = w @ source_points / total
    centroid_target = w @ target_points / total

    source_centered = source_points - centroid_source
    target_centered = target_points - centroid_target

    spread = np.sum(w * np.sum(source_centered**2, axis=1)) / total
    if not np.isfinite(spread) or spread <= 1e-18:
        raise InsufficientCorrespondences(
            "Source points are coincident, rotation is unobservable", num_valid=N
        )

    H = (source_centered * w[:, None]).T @ target_centered

    try:
        U, _, Vt = np.linalg.svd(H)
    except np.linalg.LinAlgError as exc:
        raise InsufficientCorrespondences(f"SVD failed: {exc}", num_valid=N) from exc

    R = Vt.T @ U.T

    # Reflection, not rotation: flip the last singular direction
    if np.linalg.det(R) < 0:
        Vt[-1, :] *= -1
        R = Vt.T @ U.T

    yaw = np.arctan2(R[1, 0], R[0, 0])
    t = centroid_target - R @ centroid_source

    if not np.all(np.isfinite(t)) or not np.isfinite(yaw):
        raise InsufficientCorrespondences("Non-finite alignment result", num_valid=N)

    return Transform(x=float(t[0]), y=float(t[1]), yaw=float(yaw))


def estimate_transform(
    correspondences: Correspondences,
    candidate_points: np.ndarray,
    weights: Optional[np.ndarray] = None,
    reference: Optional[Scan] = None,
) -> Transform:
    """
    Estimate the transform explaining a correspondence set.

    Pairs marked "no match" are excluded. The returned transform maps
    `candidate_points` onto their matched reference points; when the
    candidate points are the currently transformed scan, this is the
    incremental ICP update.

    Args:
        correspondences: Output of `find_correspondences`.
        candidate_points: Points the correspondences were computed for,
                          shape (m, 2).
        weights: Optional weight per candidate point, shape (m,).
        reference: Optional reference scan; if given it must be the scan the
                   correspondences' jump table was built from.

    Returns:
        Least-squares rigid Transform.

    Raises:
        ValueError: If the correspondences belong to another reference scan.
        InsufficientCorrespondences: If fewer than 2 valid pairs remain or
            the pair set is degenerate.
    """
    if reference is not None and not correspondences.table.belongs_to(reference):
        raise ValueError("correspondences were computed against a different reference scan")

    num_valid = correspondences.num_valid
    if num_valid < 2:
        raise InsufficientCorrespondences(
            f"Need at least 2 valid correspondences, got {num_valid}", num_valid=num_valid
        )

    source, target = correspondences.matched_pairs(candidate_points)
    if weights is not None:
        weights = np.asarray(weights, dtype=np.float64).reshape(-1)[correspondences.valid_mask]

    return align_svd(source, target, weights)


def has_converged(
    previous: Transform,
    current: Transform,
    tolerance_percent: float = ERROR_PERCENT,
    zero_tolerance: float = 1e-9,
) -> bool:
    """
    Check the per-component relative change between two ICP estimates.

    Args:
        previous: Accumulated transform before the update.
        current: Accumulated transform after the update.
        tolerance_percent: Allowed relative change per component, in percent.
        zero_tolerance: Magnitude treated as zero.

    Returns:
        True if yaw, x and y all changed by at most `tolerance_percent`.

    Examples:
        >>> has_converged(Transform(1.0, 2.0, 0.1), Transform(1.01, 2.0, 0.1))
        True
        >>> has_converged(Transform.identity(), Transform(0.5, 0.0, 0.0))
        False
    """
    deltas = (
        (previous.yaw, wrap_angle(current.yaw - previous.yaw)),
        (previous.x, current.x - previous.x),
        (previous.y, current.y - previous.y),
    )
    for old, delta in deltas:
        if abs(old) <= zero_tolerance:
            if abs(old + delta) > zero_tolerance:
                return False
        elif abs(delta) / abs(old) * 100.0 > tolerance_percent:
            return False
    return True


def run_icp(
    reference: Scan,
    candidate: Scan,
    config: Optional[ICPConfig] = None,
    table: Optional[JumpTable] = None,
) -> ICPResult:
    """
    Align a candidate scan to a reference scan with point-to-point ICP.

    Each iteration:
        1. Transform the candidate scan by the current estimate.
        2. Find correspondences with the configured strategy, gated by the
           trust threshold of the iteration.
        3. Estimate the incremental transform (SVD).
        4. Compose: current = increment ⊕ current.
        5. Check convergence.

    An iteration without enough correspondences keeps the current estimate;
    after `max_consecutive_failures` such iterations in a row the run is
    aborted with status INSUFFICIENT_CORRESPONDENCES.

    Args:
        reference: Reference (previous) scan, ordered by bearing.
        candidate: Candidate (new) scan.
        config: ICP parameters (default: ICPConfig()).
        table: Optional prebuilt jump table of `reference`.

    Returns:
        ICPResult. `result.transform` maps candidate points into the
        reference frame, i.e. it is the sensor motion between the two scans.

    Raises:
        ValueError: If `table` was not built from `reference`.

    Examples:
        >>> scan = Scan.from_polar(np.linspace(2.0, 3.0, 90), np.linspace(-1.5, 1.5, 90))
        >>> result = run_icp(scan, scan)
        >>> result.converged, result.iterations
        (True, 1)
    """
    if config is None:
        config = ICPConfig()
    if table is not None and not table.belongs_to(reference):
        raise ValueError("jump table was built from a different reference scan")

    status = ICPStatus.INIT
    current = Transform.identity()
    comparisons: Dict[str, int] = {config.strategy.value: 0}

    if reference.is_empty or candidate.is_empty:
        logger.info(
            "ICP skipped: reference has %d points, candidate has %d points",
            len(reference), len(candidate),
        )
        return ICPResult(
            transform=current,
            iterations=0,
            converged=False,
            status=ICPStatus.INSUFFICIENT_CORRESPONDENCES,
            comparisons=comparisons,
        )

    if table is None:
        table = build_jump_table(reference)

    others = []
    if config.compare_strategies:
        others = [s for s in CorrespondenceStrategy if s is not config.strategy]
        for s in others:
            comparisons[s.value] = 0

    status = ICPStatus.ITERATING
    iterations = 0
    failures = 0
    num_correspondences = 0
    residual = float("inf")

    for iteration in range(config.max_iterations):
        iterations = iteration + 1
        transformed = apply_transform(current, candidate)
        trust = trust_threshold(iteration, config.max_iterations, config.min_info)

        for s in others:
            extra = find_correspondences(
                table, transformed, s, trust, config.max_correspondence_distance
            )
            comparisons[s.value] += extra.comparisons

        corr = find_correspondences(
            table, transformed, config.strategy, trust, config.max_correspondence_distance
        )
        comparisons[config.strategy.value] += corr.comparisons

        try:
            increment = estimate_transform(corr, transformed.points)
        except InsufficientCorrespondences as exc:
            failures += 1
            logger.debug("ICP iteration %d: %s", iterations, exc)
            if failures >= config.max_consecutive_failures:
                warnings.warn(
                    f"ICP aborted after {failures} consecutive iterations without "
                    f"enough correspondences ({exc.num_valid} valid).",
                    RuntimeWarning,
                )
                status = ICPStatus.INSUFFICIENT_CORRESPONDENCES
                break
            continue

        failures = 0
        previous = current
        current = increment.compose(current)

        source, target = corr.matched_pairs(apply_transform(increment, transformed).points)
        num_correspondences = source.shape[0]
        residual = compute_icp_residual(source, target) / num_correspondences

        logger.debug(
            "ICP iteration %d: trust=%.3f matches=%d residual=%.6f %r",
            iterations, trust, num_correspondences, residual, current,
        )

        if has_converged(
            previous, current, config.convergence_tolerance_percent, config.zero_tolerance
        ):
            status = ICPStatus.CONVERGED
            break
    else:
        status = ICPStatus.ITERATION_LIMIT_REACHED

    logger.info("ICP finished: %s after %d iterations, %r", status.value, iterations, current)

    return ICPResult(
        transform=current,
        iterations=iterations,
        converged=status is ICPStatus.CONVERGED,
        status=status,
        num_correspondences=num_correspondences,
        residual=residual,
        comparisons=comparisons,
    )
