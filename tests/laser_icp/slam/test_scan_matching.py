"""Unit tests for laser_icp.slam.scan_matching module (ICP).

Tests the closed-form alignment, the convergence check and the ICP driver
state machine.

Author: Li-Ta Hsu
Date: December 2025
"""

import numpy as np
import pytest

from laser_icp.slam import (
    ICPConfig,
    ICPStatus,
    InsufficientCorrespondences,
    Scan,
    Transform,
    align_svd,
    apply_transform,
    build_jump_table,
    compute_icp_residual,
    estimate_transform,
    find_correspondences,
    has_converged,
    run_icp,
)


@pytest.fixture
def reference():
    """Smooth closed sweep, 180 rays, ranges in [2.5, 3.5] m."""
    bearings = np.linspace(-np.pi, np.pi, 180, endpoint=False)
    return Scan.from_polar(3.0 + 0.5 * np.sin(3 * bearings), bearings)


@pytest.fixture
def detailed_reference():
    """Closed sweep, 360 rays, seven-lobe detail on top of three lobes."""
    bearings = np.linspace(-np.pi, np.pi, 360, endpoint=False)
    ranges = 3.0 + 0.5 * np.sin(3 * bearings) + 0.3 * np.cos(7 * bearings)
    return Scan.from_polar(ranges, bearings)


def candidate_for(reference, motion):
    """Scan of the same surroundings seen after moving by `motion`."""
    return apply_transform(motion.inverse(), reference)


class TestComputeICPResidual:
    """Test suite for compute_icp_residual function."""

    def test_residual_zero_for_identical(self):
        """Test that identical point clouds have zero residual."""
        points = np.array([[1.0, 2.0], [3.0, 4.0]])
        assert compute_icp_residual(points, points) == 0.0

    def test_residual_known_value(self):
        """Test residual with known offset."""
        source = np.array([[0.0, 0.0], [1.0, 0.0]])
        target = np.array([[0.0, 1.0], [1.0, 1.0]])
        assert np.isclose(compute_icp_residual(source, target), 2.0)

    def test_residual_shape_mismatch(self):
        """Test that mismatched shapes raise ValueError."""
        with pytest.raises(ValueError, match="same shape"):
            compute_icp_residual(np.zeros((2, 2)), np.zeros((3, 2)))


class TestAlignSVD:
    """Test suite for align_svd function."""

    def test_pure_translation(self):
        """Test alignment with pure translation."""
        source = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        t = align_svd(source, source + np.array([2.0, 3.0]))
        np.testing.assert_allclose(t.to_array(), [2.0, 3.0, 0.0], atol=1e-10)

    def test_rotation_and_translation(self):
        """Test recovery of a general rigid transform."""
        rng = np.random.default_rng(11)
        source = rng.uniform(-3.0, 3.0, size=(30, 2))
        true = Transform(x=0.4, y=-1.2, yaw=2.5)
        R = true.to_matrix()[:2, :2]
        t = align_svd(source, source @ R.T + np.array([0.4, -1.2]))
        np.testing.assert_allclose(t.to_array(), true.to_array(), atol=1e-9)

    def test_weights_suppress_outlier(self):
        """Test that a zero-weight pair does not affect the result."""
        source = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [5.0, 5.0]])
        target = source + np.array([1.0, 0.0])
        target[3] = [-10.0, 7.0]
        t = align_svd(source, target, weights=np.array([1.0, 1.0, 1.0, 0.0]))
        np.testing.assert_allclose(t.to_array(), [1.0, 0.0, 0.0], atol=1e-10)

    def test_no_reflection(self):
        """Test that mirrored targets still give a proper rotation."""
        source = np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0], [0.0, -1.5]])
        target = source * np.array([1.0, -1.0])
        t = align_svd(source, target)
        R = t.to_matrix()[:2, :2]
        assert np.isclose(np.linalg.det(R), 1.0)

    def test_single_pair_raises(self):
        """Test that one pair is not enough."""
        with pytest.raises(InsufficientCorrespondences) as exc_info:
            align_svd(np.array([[1.0, 0.0]]), np.array([[2.0, 0.0]]))
        assert exc_info.value.num_valid == 1

    def test_coincident_points_raise(self):
        """Test that coincident source points are degenerate."""
        source = np.array([[1.0, 1.0], [1.0, 1.0], [1.0, 1.0]])
        with pytest.raises(InsufficientCorrespondences):
            align_svd(source, source + 1.0)

    def test_zero_weight_raises(self):
        """Test that zero total weight is degenerate."""
        source = np.array([[0.0, 0.0], [1.0, 0.0]])
        with pytest.raises(InsufficientCorrespondences):
            align_svd(source, source, weights=np.zeros(2))

    def test_insufficient_is_value_error(self):
        """Test that callers catching ValueError also catch degeneracy."""
        with pytest.raises(ValueError):
            align_svd(np.zeros((1, 2)), np.zeros((1, 2)))

    def test_shape_mismatch(self):
        """Test that mismatched shapes raise ValueError."""
        with pytest.raises(ValueError, match="same shape"):
            align_svd(np.zeros((3, 2)), np.zeros((4, 2)))


class TestEstimateTransform:
    """Test suite for estimate_transform function."""

    def test_recovers_motion(self, reference):
        """Test one estimation step on exact correspondences."""
        motion = Transform(x=0.01, y=-0.008, yaw=0.003)
        candidate = candidate_for(reference, motion)
        table = build_jump_table(reference)

        corr = find_correspondences(table, candidate, "smart")
        np.testing.assert_array_equal(corr.reference_indices, np.arange(180))

        t = estimate_transform(corr, candidate.points, reference=reference)
        np.testing.assert_allclose(t.to_array(), motion.to_array(), atol=1e-9)

    def test_foreign_reference_rejected(self, reference):
        """Test that correspondences of another scan are rejected."""
        table = build_jump_table(reference)
        corr = find_correspondences(table, reference, "naive")
        copy = Scan.from_points(reference.points.copy())
        with pytest.raises(ValueError, match="different reference"):
            estimate_transform(corr, reference.points, reference=copy)

    def test_too_few_valid(self, reference):
        """Test that fewer than two valid matches raise."""
        table = build_jump_table(reference)
        corr = find_correspondences(table, reference.points[:1], "naive")
        with pytest.raises(InsufficientCorrespondences):
            estimate_transform(corr, reference.points[:1])


class TestHasConverged:
    """Test suite for has_converged function."""

    def test_small_relative_change(self):
        """Test that a change within tolerance converges."""
        assert has_converged(Transform(1.0, 2.0, 0.1), Transform(1.04, 2.0, 0.1), 5.0)

    def test_one_component_too_large(self):
        """Test that every component is checked on its own."""
        assert not has_converged(Transform(1.0, 2.0, 0.1), Transform(1.0, 2.0, 0.2), 5.0)
        assert not has_converged(Transform(1.0, 2.0, 0.1), Transform(1.0, 2.5, 0.1), 5.0)

    def test_zero_component(self):
        """Test components whose previous value is zero."""
        assert has_converged(Transform.identity(), Transform.identity())
        assert not has_converged(Transform(1.0, 0.0, 0.1), Transform(1.0, 0.01, 0.1))

    def test_yaw_wraps(self):
        """Test that the yaw change is measured across ±π."""
        assert has_converged(Transform(1.0, 1.0, np.pi - 0.001), Transform(1.0, 1.0, -np.pi + 0.001))


class TestICPConfig:
    """Test suite for ICPConfig validation."""

    def test_defaults(self):
        """Test default parameters."""
        config = ICPConfig()
        assert config.max_iterations == 30
        assert config.min_info == 0.1
        assert config.convergence_tolerance_percent == 5.0
        assert config.strategy.value == "smart"

    def test_strategy_coerced(self):
        """Test that strategy names are converted to the enum."""
        assert ICPConfig(strategy="naive").strategy.value == "naive"
        with pytest.raises(ValueError):
            ICPConfig(strategy="quick")

    def test_invalid_values(self):
        """Test that invalid parameters raise ValueError."""
        with pytest.raises(ValueError):
            ICPConfig(max_iterations=0)
        with pytest.raises(ValueError):
            ICPConfig(min_info=0.0)
        with pytest.raises(ValueError):
            ICPConfig(max_correspondence_distance=-1.0)
        with pytest.raises(ValueError):
            ICPConfig(max_consecutive_failures=0)


class TestRunICP:
    """Test suite for the ICP driver."""

    def test_identical_scans(self, reference):
        """Test that identical scans converge at once to the identity."""
        result = run_icp(reference, reference)
        assert result.status is ICPStatus.CONVERGED
        assert result.converged
        assert result.iterations == 1
        np.testing.assert_allclose(result.transform.to_array(), 0.0, atol=1e-12)
        assert result.residual < 1e-20

    @pytest.mark.parametrize("strategy", ["naive", "jump", "smart"])
    def test_recovers_small_motion(self, reference, strategy):
        """Test exact recovery of a small sensor motion."""
        motion = Transform(x=0.01, y=-0.008, yaw=0.003)
        result = run_icp(reference, candidate_for(reference, motion), ICPConfig(strategy=strategy))

        assert result.converged
        assert result.iterations == 2
        np.testing.assert_allclose(result.transform.to_array(), motion.to_array(), atol=1e-9)
        assert result.residual < 1e-18
        assert result.num_correspondences > 0

    @pytest.mark.parametrize(
        "motion, atol",
        [
            (Transform(x=0.1, y=0.0, yaw=0.0), 1e-3),
            (Transform(x=0.0, y=0.0, yaw=0.05), 1e-3),
            (Transform(x=0.05, y=0.02, yaw=0.01), 1e-3),
            (Transform(x=0.3, y=0.2, yaw=0.1), 3e-2),
        ],
    )
    def test_recovers_motion_default_config(self, detailed_reference, motion, atol):
        """Test recovery of larger motions with the default parameters."""
        result = run_icp(detailed_reference, candidate_for(detailed_reference, motion))

        assert result.converged
        assert result.iterations < ICPConfig().max_iterations
        np.testing.assert_allclose(result.transform.to_array(), motion.to_array(), atol=atol)

    def test_iteration_limit(self, reference):
        """Test that the run stops at the iteration budget."""
        motion = Transform(x=0.01, y=-0.008, yaw=0.003)
        result = run_icp(reference, candidate_for(reference, motion), ICPConfig(max_iterations=1))
        assert result.status is ICPStatus.ITERATION_LIMIT_REACHED
        assert not result.converged
        assert result.iterations == 1

    def test_empty_candidate(self, reference):
        """Test that an empty scan yields no iterations."""
        result = run_icp(reference, Scan.empty())
        assert result.status is ICPStatus.INSUFFICIENT_CORRESPONDENCES
        assert result.iterations == 0
        assert result.transform.is_identity()

    def test_empty_reference(self, reference):
        """Test that an empty reference yields no iterations."""
        result = run_icp(Scan.empty(), reference)
        assert result.status is ICPStatus.INSUFFICIENT_CORRESPONDENCES
        assert not result.converged

    def test_consecutive_failures_abort(self, reference):
        """Test that repeated degenerate iterations abort the run."""
        single = Scan.from_points(np.array([[3.0, 0.0]]))
        with pytest.warns(RuntimeWarning, match="consecutive"):
            result = run_icp(reference, single, ICPConfig(max_consecutive_failures=3))
        assert result.status is ICPStatus.INSUFFICIENT_CORRESPONDENCES
        assert result.iterations == 3
        assert result.transform.is_identity()

    def test_prebuilt_table(self, reference):
        """Test that a matching prebuilt table is accepted."""
        table = build_jump_table(reference)
        assert run_icp(reference, reference, table=table).converged

    def test_foreign_table_rejected(self, reference):
        """Test that a table of another scan raises ValueError."""
        table = build_jump_table(Scan.from_polar(reference.ranges, reference.bearings))
        with pytest.raises(ValueError, match="different reference"):
            run_icp(reference, reference, table=table)

    def test_compare_strategies(self, reference):
        """Test comparison counts of all strategies."""
        motion = Transform(x=0.01, y=-0.008, yaw=0.003)
        config = ICPConfig(strategy="smart", compare_strategies=True)
        result = run_icp(reference, candidate_for(reference, motion), config)

        assert set(result.comparisons) == {"naive", "jump", "smart"}
        assert result.comparisons["naive"] == 180 * 180 * result.iterations
        assert result.comparisons["smart"] < result.comparisons["naive"]
        assert result.comparisons["jump"] < result.comparisons["naive"]

    def test_inputs_untouched(self, reference):
        """Test that ICP does not modify its input scans."""
        candidate = candidate_for(reference, Transform(x=0.01, y=0.0, yaw=0.0))
        before = candidate.points.copy()
        run_icp(reference, candidate)
        np.testing.assert_array_equal(candidate.points, before)
