"""Scan-matching odometry: consecutive scans to an accumulated pose.

This module wires the matching engine into the per-scan cycle of a laser
odometry front-end:
    1. Build a scan from the raw readings
    2. Match it against the previous scan (ICP)
    3. Compose the relative motion into the global pose
    4. Make the new scan the reference for the next cycle

The global pose is an explicit value: `compose_global_pose` threads it
through a cycle, and `ScanMatchingOdometry` owns one per scan stream.

Author: Li-Ta Hsu
Date: December 2025
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .jump_table import JumpTable, build_jump_table
from .scan import ScanConfig, build_scan_from_config
from .scan_matching import ICPConfig, ICPResult, ICPStatus, run_icp
from .se2 import se2_to_pose3d
from .types import Scan, Transform

logger = logging.getLogger(__name__)


def compose_global_pose(prior_pose: Transform, relative: Transform) -> Transform:
    """
    Accumulate one cycle's relative motion into the global pose.

        global_new = prior_pose ⊕ relative

    Args:
        prior_pose: Pose of the previous scan in the frame of the first scan.
        relative: Pose of the new scan in the frame of the previous scan
                  (the ICP result).

    Returns:
        Pose of the new scan in the frame of the first scan.

    Examples:
        >>> step = Transform(x=1.0, y=0.0, yaw=np.pi / 2)
        >>> pose = compose_global_pose(step, step)
        >>> np.allclose(pose.to_array(), [1.0, 1.0, np.pi])
        True
    """
    return prior_pose.compose(relative)


@dataclass
class OdometryUpdate:
    """
    Result of processing one scan.

    Attributes:
        step_index: Number of scans processed before this one.
        relative: Motion since the previous scan (identity for the first scan).
        pose: Global pose after this scan.
        icp: ICP result, None for the first scan.
        position: Global position [x, y, 0] for a pose sink.
        orientation: Global orientation quaternion [qw, qx, qy, qz].
    """

    step_index: int
    relative: Transform
    pose: Transform
    icp: Optional[ICPResult]
    position: np.ndarray
    orientation: np.ndarray

    @property
    def converged(self) -> bool:
        return self.icp is not None and self.icp.converged


class ScanMatchingOdometry:
    """Laser odometry from consecutive scan matching.

    Keeps the previous scan as the reference, builds its jump table once,
    and accumulates the ICP results into a global pose. One instance serves
    one scan stream; it is not meant to be shared between threads.

    Attributes:
        config: ICP parameters.
        scan_config: Sweep metadata used by `process_readings`.
        pose: Current global pose (frame of the first scan).
        reference: Previous scan, None before the first scan.
        table: Jump table of `reference`.
        step_count: Number of scans processed.
        keep_pose_on_failure: If True, an aborted ICP run contributes no
                              motion; otherwise its best estimate is used.

    Example:
        >>> odom = ScanMatchingOdometry()
        >>> ranges = np.full(360, 3.0)
        >>> first = odom.process_readings(ranges)
        >>> second = odom.process_readings(ranges)
        >>> np.allclose(second.pose.to_array(), 0.0)
        True
    """

    def __init__(
        self,
        config: Optional[ICPConfig] = None,
        scan_config: Optional[ScanConfig] = None,
        initial_pose: Optional[Transform] = None,
        keep_pose_on_failure: bool = True,
    ):
        """Initialize the odometry.

        Args:
            config: ICP parameters (default: ICPConfig()).
            scan_config: Sweep metadata for raw readings (default: ScanConfig()).
            initial_pose: Pose of the first scan (default: identity).
            keep_pose_on_failure: Ignore the motion of aborted ICP runs.
        """
        self.config = config if config is not None else ICPConfig()
        self.scan_config = scan_config if scan_config is not None else ScanConfig()
        self.pose = initial_pose if initial_pose is not None else Transform.identity()
        self.keep_pose_on_failure = keep_pose_on_failure

        self.reference: Optional[Scan] = None
        self.table: Optional[JumpTable] = None
        self.step_count = 0

    def reset(self, pose: Optional[Transform] = None) -> None:
        """Forget the reference scan and restart from `pose`."""
        self.pose = pose if pose is not None else Transform.identity()
        self.reference = None
        self.table = None
        self.step_count = 0

    def process_readings(
        self,
        ranges: Union[Sequence[float], np.ndarray],
        scan_config: Optional[ScanConfig] = None,
    ) -> OdometryUpdate:
        """
        Process one sweep of raw range readings.

        Args:
            ranges: Raw readings in sweep order.
            scan_config: Metadata of this sweep (default: `self.scan_config`).

        Returns:
            OdometryUpdate for this sweep.
        """
        config = scan_config if scan_config is not None else self.scan_config
        return self.process_scan(build_scan_from_config(ranges, config))

    def process_scan(self, scan: Scan) -> OdometryUpdate:
        """
        Process one scan.

        The first scan only becomes the reference. Every later scan is
        matched against the previous one; the resulting motion is composed
        into the global pose and the scan becomes the new reference.

        Args:
            scan: New scan, ordered by bearing.

        Returns:
            OdometryUpdate for this scan.
        """
        step_index = self.step_count
        self.step_count += 1

        if self.reference is None:
            logger.info("First scan (%d points), nothing to compare to", len(scan))
            self._set_reference(scan)
            return self._update(step_index, Transform.identity(), None)

        result = run_icp(self.reference, scan, self.config, table=self.table)

        relative = result.transform
        if not result.converged:
            logger.info(
                "Scan %d: ICP %s after %d iterations",
                step_index, result.status.value, result.iterations,
            )
            if (
                self.keep_pose_on_failure
                and result.status is ICPStatus.INSUFFICIENT_CORRESPONDENCES
            ):
                relative = Transform.identity()

        self.pose = compose_global_pose(self.pose, relative)
        self._set_reference(scan)
        return self._update(step_index, relative, result)

    def _set_reference(self, scan: Scan) -> None:
        self.reference = scan
        self.table = build_jump_table(scan) if not scan.is_empty else None

    def _update(
        self, step_index: int, relative: Transform, result: Optional[ICPResult]
    ) -> OdometryUpdate:
        position, orientation = se2_to_pose3d(self.pose)
        return OdometryUpdate(
            step_index=step_index,
            relative=relative,
            pose=self.pose,
            icp=result,
            position=position,
            orientation=orientation,
        )

    def pose_tuple(self) -> Tuple[float, float, float]:
        """Current global pose as (x, y, yaw)."""
        return self.pose.x, self.pose.y, self.pose.yaw
