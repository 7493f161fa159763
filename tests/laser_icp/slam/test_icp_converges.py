"""Integration test: ICP on ray-cast scans of a room.

Validates that scan matching recovers a known sensor motion when both
scans come from the simulated laser, i.e. the two sweeps sample the walls
at different places. This is a scenario-level regression test with loose
tolerances.

Author: Li-Ta Hsu
Date: December 2025
"""

import numpy as np
import pytest

from laser_icp.slam import (
    ICPConfig,
    ScanConfig,
    ScanMatchingOdometry,
    build_scan,
    polygon_walls,
    run_icp,
    se2_compose,
    se2_relative,
    simulate_range_readings,
)

NUM_RAYS = 360
ANGLE_MIN = -np.pi
ANGLE_INCREMENT = 2 * np.pi / NUM_RAYS


@pytest.fixture
def walls():
    """L-shaped room with a free-standing pillar."""
    room = polygon_walls([[0, 0], [8, 0], [8, 4], [5, 4], [5, 7], [0, 7]])
    pillar = polygon_walls([[2.0, 4.5], [2.6, 4.5], [2.6, 5.1], [2.0, 5.1]])
    return room + pillar


def scan_at(pose, walls):
    ranges = simulate_range_readings(
        np.asarray(pose, dtype=float), walls,
        num_rays=NUM_RAYS, angle_min=ANGLE_MIN, angle_increment=ANGLE_INCREMENT,
    )
    return build_scan(ranges, ANGLE_MIN, ANGLE_INCREMENT, 0.1, 30.0)


class TestICPOnRayCastScans:
    """ICP between two simulated sweeps."""

    @pytest.mark.parametrize("strategy", ["naive", "jump", "smart"])
    def test_recovers_motion(self, walls, strategy):
        """Test that a small motion is recovered to within half its size."""
        pose_a = np.array([2.5, 2.0, 0.1])
        motion = np.array([0.06, 0.03, 0.02])
        pose_b = se2_compose(pose_a, motion)

        config = ICPConfig(strategy=strategy, max_iterations=50, convergence_tolerance_percent=1.0)
        result = run_icp(scan_at(pose_a, walls), scan_at(pose_b, walls), config)

        estimate = result.transform.to_array()
        assert np.linalg.norm(estimate[:2] - motion[:2]) < 0.5 * np.linalg.norm(motion[:2])
        assert abs(estimate[2] - motion[2]) < 0.5 * motion[2]
        assert result.num_correspondences > 0

    def test_strategies_give_identical_transforms(self, walls):
        """Test that the strategy only changes the work, not the answer."""
        pose_a = np.array([3.0, 1.5, -0.2])
        pose_b = se2_compose(pose_a, np.array([0.05, -0.03, 0.02]))
        reference = scan_at(pose_a, walls)
        candidate = scan_at(pose_b, walls)

        results = [
            run_icp(reference, candidate, ICPConfig(strategy=s)) for s in ("naive", "jump", "smart")
        ]
        for other in results[1:]:
            np.testing.assert_allclose(
                other.transform.to_array(), results[0].transform.to_array(), atol=1e-12
            )
            assert other.iterations == results[0].iterations
            assert other.status is results[0].status

    def test_jump_table_saves_comparisons(self, walls):
        """Test that jump-table searches evaluate fewer distances."""
        pose_a = np.array([2.5, 2.0, 0.0])
        pose_b = se2_compose(pose_a, np.array([0.05, 0.0, 0.01]))
        result = run_icp(
            scan_at(pose_a, walls), scan_at(pose_b, walls), ICPConfig(compare_strategies=True)
        )
        assert result.comparisons["smart"] < result.comparisons["naive"]
        assert result.comparisons["jump"] < result.comparisons["naive"]


class TestOdometryOnRayCastTrajectory:
    """Scan-matching odometry along a simulated trajectory."""

    def test_trajectory_drift_is_small(self, walls):
        """Test that the accumulated pose stays close to the true pose."""
        step = np.array([0.05, 0.0, 0.02])
        start = np.array([1.5, 1.5, 0.2])

        odom = ScanMatchingOdometry(
            config=ICPConfig(max_iterations=50, convergence_tolerance_percent=1.0),
            scan_config=ScanConfig(angle_min=ANGLE_MIN, angle_increment=ANGLE_INCREMENT),
        )

        true_pose = start
        for k in range(6):
            if k > 0:
                true_pose = se2_compose(true_pose, step)
            ranges = simulate_range_readings(
                true_pose, walls, num_rays=NUM_RAYS,
                angle_min=ANGLE_MIN, angle_increment=ANGLE_INCREMENT,
            )
            odom.process_readings(ranges)

        # Odometry poses live in the frame of the first scan
        expected = se2_relative(start, true_pose)
        estimate = odom.pose.to_array()

        assert odom.step_count == 6
        assert np.linalg.norm(estimate[:2] - expected[:2]) < 0.1
        assert abs(estimate[2] - expected[2]) < 0.05
