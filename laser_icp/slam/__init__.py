"""2D laser scan matching: scans, SE(2) transforms and ICP.

This module implements the building blocks of a scan-matching odometry
front-end for a planar laser scanner.

Main components:
    - Point, Scan, Transform: Core data structures
    - build_scan: Raw range readings to a Scan
    - se2_compose, se2_inverse, se2_apply, apply_transform: SE(2) operations
    - build_jump_table: Per-index skip pointers over a reference scan
    - find_correspondences: Naive, jump-table and smart correspondence search
    - estimate_transform, align_svd: Closed-form rigid alignment
    - run_icp: ICP driver with convergence check
    - compose_global_pose, ScanMatchingOdometry: Pose accumulation

Example usage:
    >>> from laser_icp.slam import build_scan, run_icp, compose_global_pose, Transform
    >>> import numpy as np
    >>>
    >>> ranges = 2.0 + 0.5 * np.sin(np.linspace(0, 6 * np.pi, 360))
    >>> reference = build_scan(ranges, -np.pi, 2 * np.pi / 360, 0.1, 30.0)
    >>> result = run_icp(reference, reference)
    >>> pose = compose_global_pose(Transform.identity(), result.transform)

Author: Li-Ta Hsu
Date: December 2025
"""

from .correspondence import (
    NO_MATCH,
    CorrespondenceStrategy,
    Correspondences,
    find_correspondences,
    gate_correspondences,
    jump_search,
    naive_search,
    smart_search,
    trust_threshold,
)
from .errors import InsufficientCorrespondences
from .jump_table import JumpTable, build_jump_table
from .odometry import OdometryUpdate, ScanMatchingOdometry, compose_global_pose
from .scan import RANGE_LIMIT, ScanConfig, build_scan, build_scan_from_config
from .scan_generation import polygon_walls, ray_segment_intersection, simulate_range_readings
from .scan_matching import (
    ICPConfig,
    ICPResult,
    ICPStatus,
    align_svd,
    compute_icp_residual,
    estimate_transform,
    has_converged,
    run_icp,
)
from .se2 import (
    apply_transform,
    se2_apply,
    se2_compose,
    se2_from_matrix,
    se2_inverse,
    se2_relative,
    se2_to_matrix,
    se2_to_pose3d,
    wrap_angle,
)
from .types import Point, PointCloud2D, Scan, Transform

__all__ = [
    # Core types
    "Point",
    "Scan",
    "Transform",
    "PointCloud2D",
    # Scan building
    "RANGE_LIMIT",
    "ScanConfig",
    "build_scan",
    "build_scan_from_config",
    # SE(2) operations
    "se2_compose",
    "se2_inverse",
    "se2_apply",
    "se2_relative",
    "se2_to_matrix",
    "se2_from_matrix",
    "se2_to_pose3d",
    "apply_transform",
    "wrap_angle",
    # Jump table
    "JumpTable",
    "build_jump_table",
    # Correspondence search
    "NO_MATCH",
    "CorrespondenceStrategy",
    "Correspondences",
    "find_correspondences",
    "gate_correspondences",
    "naive_search",
    "jump_search",
    "smart_search",
    "trust_threshold",
    # Estimation and ICP
    "InsufficientCorrespondences",
    "align_svd",
    "compute_icp_residual",
    "estimate_transform",
    "has_converged",
    "ICPConfig",
    "ICPResult",
    "ICPStatus",
    "run_icp",
    # Odometry
    "compose_global_pose",
    "OdometryUpdate",
    "ScanMatchingOdometry",
    # Simulation
    "polygon_walls",
    "ray_segment_intersection",
    "simulate_range_readings",
]
