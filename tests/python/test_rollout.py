"""
Tests for the condensed rollout matrices.

Tests covering:
1. Shapes and block structure of A_mpc, B_mpc, C_mpc
2. Agreement with step-by-step simulation
3. Horizon validation
"""

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st


def _random_system(seed, n_x, n_u, n_y):
    from linmpc import LinearSystem

    rng = np.random.default_rng(seed)
    # keep the spectral radius moderate so powers stay well scaled
    A = 0.9 * rng.standard_normal((n_x, n_x)) / np.sqrt(n_x)
    B = rng.standard_normal((n_x, n_u))
    C = rng.standard_normal((n_y, n_x))
    return LinearSystem(A, B, C), rng


class TestBuildRollout:
    """Test build_rollout."""

    def test_shapes(self, planar_system):
        from linmpc import build_rollout

        N = 7
        rollout = build_rollout(planar_system, N)

        assert rollout.horizon == N
        assert rollout.A_mpc.shape == (N * 4, N * 2)
        assert rollout.B_mpc.shape == (N * 4, 4)
        assert rollout.C_mpc.shape == (N * 1, N * 4)

    def test_blocks(self, double_integrator):
        """A_mpc[i, j] = A^(i-j) B below the diagonal, zero above."""
        from linmpc import build_rollout

        N = 4
        A = double_integrator.A.toarray()
        B = double_integrator.B.toarray()
        rollout = build_rollout(double_integrator, N)
        A_mpc = rollout.A_mpc.toarray()
        B_mpc = rollout.B_mpc.toarray()

        for i in range(N):
            np.testing.assert_allclose(
                B_mpc[2 * i:2 * i + 2], np.linalg.matrix_power(A, i + 1)
            )
            for j in range(N):
                block = A_mpc[2 * i:2 * i + 2, j:j + 1]
                if j <= i:
                    expected = np.linalg.matrix_power(A, i - j) @ B
                else:
                    expected = np.zeros((2, 1))
                np.testing.assert_allclose(block, expected)

    def test_output_map_block_diagonal(self, double_integrator):
        from linmpc import build_rollout

        rollout = build_rollout(double_integrator, 3)

        expected = np.kron(np.eye(3), double_integrator.C.toarray())
        np.testing.assert_allclose(rollout.C_mpc.toarray(), expected)

    def test_horizon_one(self, double_integrator):
        from linmpc import build_rollout

        rollout = build_rollout(double_integrator, 1)

        np.testing.assert_allclose(rollout.A_mpc.toarray(), double_integrator.B.toarray())
        np.testing.assert_allclose(rollout.B_mpc.toarray(), double_integrator.A.toarray())

    @pytest.mark.parametrize("horizon", [0, -3, 2.5])
    def test_invalid_horizon(self, double_integrator, horizon):
        from linmpc import InvalidInputError, build_rollout

        with pytest.raises(InvalidInputError):
            build_rollout(double_integrator, horizon)


class TestRolloutPrediction:
    """Rollout predictions agree with simulation."""

    def test_states_match_simulation(self, planar_system):
        from linmpc import build_rollout

        N = 10
        rng = np.random.default_rng(1)
        U = rng.standard_normal(N * 2)
        x0 = rng.standard_normal(4)

        rollout = build_rollout(planar_system, N)
        X = rollout.states(U, x0)

        traj = planar_system.simulate(x0, U.reshape(N, 2))
        np.testing.assert_allclose(X, traj[1:].ravel(), atol=1e-12)

    def test_outputs_match_simulation(self, planar_system):
        from linmpc import build_rollout

        N = 6
        U = np.linspace(-1, 1, N * 2)
        x0 = np.array([0.1, -0.2, 0.3, 0.0])

        rollout = build_rollout(planar_system, N)
        Y = rollout.outputs(U, x0)

        traj = planar_system.simulate(x0, U.reshape(N, 2))
        expected = (planar_system.C @ traj[1:].T).T.ravel()
        np.testing.assert_allclose(Y, expected, atol=1e-12)

    @settings(max_examples=25, deadline=None)
    @given(
        seed=st.integers(min_value=0, max_value=2**31 - 1),
        n_x=st.integers(min_value=1, max_value=4),
        n_u=st.integers(min_value=1, max_value=3),
        n_y=st.integers(min_value=1, max_value=3),
        horizon=st.integers(min_value=1, max_value=8),
    )
    def test_random_systems(self, seed, n_x, n_u, n_y, horizon):
        """Condensed prediction equals the recursion for random systems."""
        from linmpc import build_rollout

        system, rng = _random_system(seed, n_x, n_u, n_y)
        U = rng.standard_normal(horizon * n_u)
        x0 = rng.standard_normal(n_x)

        rollout = build_rollout(system, horizon)
        traj = system.simulate(x0, U.reshape(horizon, n_u))

        np.testing.assert_allclose(
            rollout.states(U, x0), traj[1:].ravel(), rtol=1e-9, atol=1e-9
        )
