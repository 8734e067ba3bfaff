"""
Tests for the MPC Controller.

Tests covering:
1. Closed-form solutions of the unconstrained formulations
2. Incremental updates against a full rebuild
3. Input and state bound handling, infeasibility
4. Sequence extraction
5. Lifecycle errors
6. Closed-loop tracking
"""

import warnings

import numpy as np
import pytest


@pytest.fixture
def mpc_params():
    """Standard MPC parameters."""
    return {
        "horizon": 5,
        "Q": 10.0,
        "R": 1.0,
    }


def _closed_form(mpc):
    """Unconstrained optimum -H^{-1} g of the controller's current QP."""
    qp = mpc.qp_problem
    return np.linalg.solve(qp.hessian.toarray(), -qp.gradient)


class TestConstruction:
    """Test controller construction."""

    def test_basic_creation(self, double_integrator, mpc_params):
        from linmpc import ControllerState, MpcController, MpcType

        N = mpc_params["horizon"]
        mpc = MpcController(
            double_integrator,
            horizon=N,
            Y_d=np.ones(N),
            x0=np.zeros(2),
            weights=(mpc_params["Q"], mpc_params["R"]),
        )

        assert mpc.horizon == N
        assert mpc.n_x == 2
        assert mpc.n_u == 1
        assert mpc.n_y == 1
        assert mpc.mpc_type == MpcType.UNCONSTRAINED_SCALAR
        assert mpc.state == ControllerState.UNINITIALIZED

    @pytest.mark.parametrize(
        "weights, bounds, expected",
        [
            ((10.0, 1.0), None, "unconstrained_scalar"),
            ((10.0, [1.0], [1.0, 1.0]), None, "unconstrained_matrix"),
            ((10.0, 1.0), {"u_lower": -1, "u_upper": 1}, "input_bounded_scalar"),
            ((10.0, [1.0], [1.0, 1.0]), {"u_lower": -1, "u_upper": 1}, "input_bounded_matrix"),
            (
                (10.0, [1.0], [1.0, 1.0]),
                {"u_lower": -1, "u_upper": 1, "x_upper": [2.0, 2.0]},
                "input_and_state_bounded_matrix",
            ),
        ],
    )
    def test_variant_selection(self, double_integrator, weights, bounds, expected):
        from linmpc import BoundSpec, MpcController

        mpc = MpcController(
            double_integrator,
            horizon=5,
            Y_d=np.ones(5),
            x0=np.zeros(2),
            weights=weights,
            bounds=BoundSpec(**bounds) if bounds else None,
        )

        assert mpc.mpc_type.value == expected

    def test_reference_length(self, double_integrator):
        from linmpc import DimensionError, MpcController

        with pytest.raises(DimensionError, match="Y_d"):
            MpcController(double_integrator, 5, np.ones(4), np.zeros(2), (1.0, 1.0))

    def test_state_length(self, double_integrator):
        from linmpc import DimensionError, MpcController

        with pytest.raises(DimensionError, match="x0"):
            MpcController(double_integrator, 5, np.ones(5), np.zeros(3), (1.0, 1.0))

    def test_nan_reference(self, double_integrator):
        from linmpc import InvalidInputError, MpcController

        Y_d = np.ones(5)
        Y_d[2] = np.nan
        with pytest.raises(InvalidInputError):
            MpcController(double_integrator, 5, Y_d, np.zeros(2), (1.0, 1.0))

    def test_state_bounds_with_scalar_weights(self, double_integrator):
        from linmpc import BoundSpec, InvalidInputError, MpcController

        with pytest.raises(InvalidInputError):
            MpcController(
                double_integrator, 5, np.ones(5), np.zeros(2), (1.0, 1.0),
                bounds=BoundSpec(-1.0, 1.0, x_upper=1.0),
            )


class TestUnconstrained:
    """Unconstrained formulations match the closed form."""

    def test_scalar_closed_form(self, double_integrator, mpc_params, tight_settings):
        """U* = -H^{-1} g with H, g built from the rollout matrices."""
        from linmpc import MpcController

        N, Q, R = mpc_params["horizon"], mpc_params["Q"], mpc_params["R"]
        Y_d = np.ones(N)
        x0 = np.zeros(2)

        mpc = MpcController(
            double_integrator, N, Y_d, x0, (Q, R), settings=tight_settings
        )
        mpc.initialize_solver()
        U = mpc.solve()

        A_mpc = mpc.rollout.A_mpc.toarray()
        B_mpc = mpc.rollout.B_mpc.toarray()
        C_mpc = mpc.rollout.C_mpc.toarray()
        C_A = C_mpc @ A_mpc
        C_B = C_mpc @ B_mpc
        H = 2 * (Q * C_A.T @ C_A + R * np.eye(N))
        g = 2 * (Q * C_A.T @ C_B @ x0 - Q * C_A.T @ Y_d)
        expected = np.linalg.solve(H, -g)

        assert mpc.is_feasible()
        np.testing.assert_allclose(U, expected, atol=1e-4)

    def test_matrix_closed_form(self, planar_system, tight_settings):
        from linmpc import MpcController

        N = 6
        mpc = MpcController(
            planar_system,
            horizon=N,
            Y_d=np.linspace(0.0, 0.5, N),
            x0=np.array([0.1, 0.0, 0.0, -0.2]),
            weights=(50.0, [0.5, 0.5], [0.0, 0.0, 0.1, 0.1]),
            settings=tight_settings,
        )
        mpc.initialize_solver()
        U = mpc.solve()

        np.testing.assert_allclose(U, _closed_form(mpc), atol=1e-4)

    def test_zero_reference_from_origin(self, double_integrator, mpc_params, tight_settings):
        """At the origin with a zero reference, the optimal input is zero."""
        from linmpc import MpcController

        N = mpc_params["horizon"]
        mpc = MpcController(
            double_integrator, N, np.zeros(N), np.zeros(2), (10.0, 1.0),
            settings=tight_settings,
        )
        mpc.initialize_solver()

        np.testing.assert_allclose(mpc.solve(), np.zeros(N), atol=1e-6)


class TestIncrementalUpdate:
    """update_solver is equivalent to rebuilding the controller."""

    @pytest.mark.parametrize(
        "weights, bounds",
        [
            ((10.0, 1.0), None),
            ((10.0, 1.0), {"u_lower": -0.5, "u_upper": 0.5}),
            ((10.0, [1.0], [0.1, 0.1]), {"u_lower": -0.5, "u_upper": 0.5}),
            ((10.0, [1.0], [0.1, 0.1]), {"u_lower": -2.0, "u_upper": 2.0, "x_upper": [0.6, 1.0]}),
        ],
    )
    def test_update_matches_rebuild(self, double_integrator, tight_settings, weights, bounds):
        from linmpc import BoundSpec, ControllerState, MpcController

        N = 8
        bounds = BoundSpec(**bounds) if bounds else None
        Y_d_1, x0_1 = np.full(N, 0.5), np.zeros(2)
        Y_d_2, x0_2 = np.full(N, 1.0), np.array([0.2, 0.3])

        updated = MpcController(
            double_integrator, N, Y_d_1, x0_1, weights, bounds, settings=tight_settings
        )
        updated.initialize_solver()
        updated.solve()
        updated.update_solver(Y_d_2, x0_2)
        U_updated = updated.solve()

        rebuilt = MpcController(
            double_integrator, N, Y_d_2, x0_2, weights, bounds, settings=tight_settings
        )
        rebuilt.initialize_solver()
        U_rebuilt = rebuilt.solve()

        assert updated.state == ControllerState.READY
        assert rebuilt.state == ControllerState.INITIALIZED

        np.testing.assert_allclose(
            updated.qp_problem.gradient, rebuilt.qp_problem.gradient, atol=1e-12
        )
        np.testing.assert_allclose(
            updated.qp_problem.b_ieq, rebuilt.qp_problem.b_ieq, atol=1e-12
        )
        for loaded, fresh in zip(updated.session.bounds, rebuilt.session.bounds):
            np.testing.assert_allclose(loaded, fresh, atol=1e-12)
        np.testing.assert_allclose(U_updated, U_rebuilt, atol=1e-4)

    def test_hessian_unchanged(self, double_integrator):
        from linmpc import MpcController

        mpc = MpcController(double_integrator, 5, np.ones(5), np.zeros(2), (10.0, 1.0))
        mpc.initialize_solver()
        hessian = mpc.qp_problem.hessian.toarray()

        mpc.update_solver(np.full(5, 2.0), np.array([1.0, -1.0]))

        np.testing.assert_array_equal(mpc.qp_problem.hessian.toarray(), hessian)

    def test_update_validates(self, double_integrator):
        from linmpc import DimensionError, MpcController

        mpc = MpcController(double_integrator, 5, np.ones(5), np.zeros(2), (10.0, 1.0))
        mpc.initialize_solver()

        with pytest.raises(DimensionError):
            mpc.update_solver(np.ones(6), np.zeros(2))


class TestBounds:
    """Input and state bounds."""

    def test_input_bounds_respected(self, double_integrator):
        from linmpc import BoundSpec, MpcController

        N = 20
        mpc = MpcController(
            double_integrator, N, np.full(N, 5.0), np.zeros(2), (1000.0, 0.01),
            bounds=BoundSpec(-0.5, 0.5),
        )
        mpc.initialize_solver()
        U = mpc.solve()

        assert mpc.is_feasible()
        assert np.all(U <= 0.5 + 1e-3)
        assert np.all(U >= -0.5 - 1e-3)
        # the bound is active at the start of an aggressive step
        assert U[0] == pytest.approx(0.5, abs=1e-3)

    def test_zero_width_channel(self, planar_system):
        """Equal lower and upper bounds pin an input channel."""
        from linmpc import BoundSpec, MpcController

        N = 10
        mpc = MpcController(
            planar_system, N, np.ones(N), np.zeros(4), (100.0, 1.0),
            bounds=BoundSpec([-7.0, 0.0], [7.0, 0.0]),
        )
        mpc.initialize_solver()
        U = mpc.solve()

        u_x, u_y = mpc.extract_u(U)
        np.testing.assert_allclose(u_y, np.zeros(N), atol=1e-3)
        assert max(u_x) > 0.1

    def test_contradictory_bounds_infeasible(self, double_integrator):
        from linmpc import BoundSpec, MpcController, Status

        mpc = MpcController(
            double_integrator, 5, np.ones(5), np.zeros(2), (10.0, 1.0),
            bounds=BoundSpec(1.0, -1.0),
        )
        mpc.initialize_solver()
        mpc.solve()

        assert not mpc.is_feasible()
        assert mpc.last_result.status == Status.PRIMAL_INFEASIBLE

    def test_contradictory_bounds_no_deprecation_warnings(self, double_integrator):
        from linmpc import BoundSpec, MpcController, Status

        mpc = MpcController(
            double_integrator, 5, np.ones(5), np.zeros(2), (10.0, 1.0),
            bounds=BoundSpec(1.0, -1.0),
        )
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            mpc.initialize_solver()
            mpc.solve()

        assert mpc.last_result.status == Status.PRIMAL_INFEASIBLE

    def test_state_bounds_respected(self, double_integrator, tight_settings):
        from linmpc import BoundSpec, MatrixWeights, MpcController

        N = 15
        mpc = MpcController(
            double_integrator,
            horizon=N,
            Y_d=np.ones(N),
            x0=np.zeros(2),
            weights=MatrixWeights(100.0, [0.1], [0.0, 0.0]),
            bounds=BoundSpec(-5.0, 5.0, x_upper=[0.6, 0.8]),
            settings=tight_settings,
        )
        mpc.initialize_solver()
        U = mpc.solve()

        position, velocity = mpc.extract_x(U)
        assert mpc.is_feasible()
        assert max(position) <= 0.6 + 1e-3
        assert max(velocity) <= 0.8 + 1e-3
        # the position bound is reached
        assert max(position) == pytest.approx(0.6, abs=1e-2)

    def test_state_bounds_follow_initial_state(self, double_integrator, tight_settings):
        """The projected state rows move with x0 on update_solver."""
        from linmpc import BoundSpec, MatrixWeights, MpcController

        N = 10
        mpc = MpcController(
            double_integrator, N, np.zeros(N), np.zeros(2),
            MatrixWeights(10.0, [0.1], [0.0, 0.0]),
            bounds=BoundSpec(-5.0, 5.0, x_lower=[-0.2, -10.0], x_upper=[0.2, 10.0]),
            settings=tight_settings,
        )
        mpc.initialize_solver()
        mpc.solve()

        x0 = np.array([0.15, 0.5])
        mpc.update_solver(np.zeros(N), x0)
        U = mpc.solve()

        position = mpc.extract_x(U)[0]
        assert mpc.is_feasible()
        assert max(position) <= 0.2 + 1e-3
        assert min(position) >= -0.2 - 1e-3

    def test_state_bounds_infeasible_from_initial_state(self, double_integrator):
        """An initial velocity that must break the position bound."""
        from linmpc import BoundSpec, MatrixWeights, MpcController

        N = 5
        mpc = MpcController(
            double_integrator, N, np.zeros(N), np.array([0.0, 5.0]),
            MatrixWeights(1.0, [1.0], [0.0, 0.0]),
            bounds=BoundSpec(-0.1, 0.1, x_upper=[0.1, np.inf]),
        )
        mpc.initialize_solver()
        mpc.solve()

        assert not mpc.is_feasible()


class TestPrediction:
    """Predicted trajectories and extraction."""

    def test_calculate_x_matches_simulation(self, planar_system):
        from linmpc import MpcController

        N = 7
        x0 = np.array([0.1, -0.1, 0.2, 0.0])
        mpc = MpcController(planar_system, N, np.zeros(N), x0, (1.0, 1.0))
        U = np.linspace(-1.0, 1.0, N * 2)

        X = mpc.calculate_x(U)
        traj = planar_system.simulate(x0, U.reshape(N, 2))

        np.testing.assert_allclose(X, traj[1:].ravel(), atol=1e-12)

    def test_calculate_y(self, double_integrator):
        from linmpc import MpcController

        N = 4
        mpc = MpcController(double_integrator, N, np.zeros(N), np.array([1.0, 0.5]), (1.0, 1.0))
        U = np.zeros(N)

        Y = mpc.calculate_y(U)

        np.testing.assert_allclose(Y, 1.0 + 0.05 * np.arange(1, N + 1), atol=1e-12)

    def test_extract_u(self, planar_system):
        from linmpc import MpcController

        N = 3
        mpc = MpcController(planar_system, N, np.zeros(N), np.zeros(4), (1.0, 1.0))
        U = np.array([1.0, 10.0, 2.0, 20.0, 3.0, 30.0])

        assert mpc.extract_u(U) == [[1.0, 2.0, 3.0], [10.0, 20.0, 30.0]]

    def test_extract_x_and_y(self, double_integrator):
        from linmpc import MpcController

        N = 5
        mpc = MpcController(double_integrator, N, np.zeros(N), np.array([0.0, 1.0]), (1.0, 1.0))
        U = np.zeros(N)

        position, velocity = mpc.extract_x(U)
        (output,) = mpc.extract_y(U)

        np.testing.assert_allclose(velocity, np.ones(N))
        np.testing.assert_allclose(position, 0.1 * np.arange(1, N + 1))
        np.testing.assert_allclose(output, position)

    def test_extract_wrong_length(self, double_integrator):
        from linmpc import DimensionError, MpcController

        mpc = MpcController(double_integrator, 5, np.zeros(5), np.zeros(2), (1.0, 1.0))

        with pytest.raises(DimensionError):
            mpc.extract_u(np.zeros(4))

    def test_deinterleave(self):
        from linmpc import DimensionError, deinterleave

        assert deinterleave(np.arange(6.0), 3) == [[0.0, 3.0], [1.0, 4.0], [2.0, 5.0]]
        assert deinterleave([1.0, 2.0], 1) == [[1.0, 2.0]]
        with pytest.raises(DimensionError):
            deinterleave(np.arange(5.0), 2)


class TestLifecycle:
    """Calls out of order raise SolverStateError."""

    def test_solve_before_initialize(self, double_integrator):
        from linmpc import MpcController, SolverStateError

        mpc = MpcController(double_integrator, 5, np.zeros(5), np.zeros(2), (1.0, 1.0))

        with pytest.raises(SolverStateError):
            mpc.solve()

    def test_update_before_initialize(self, double_integrator):
        from linmpc import MpcController, SolverStateError

        mpc = MpcController(double_integrator, 5, np.zeros(5), np.zeros(2), (1.0, 1.0))

        with pytest.raises(SolverStateError):
            mpc.update_solver(np.zeros(5), np.zeros(2))

    def test_is_feasible_before_solve(self, double_integrator):
        from linmpc import MpcController, SolverStateError

        mpc = MpcController(double_integrator, 5, np.zeros(5), np.zeros(2), (1.0, 1.0))
        mpc.initialize_solver()

        with pytest.raises(SolverStateError):
            mpc.is_feasible()

    def test_qp_problem_before_initialize(self, double_integrator):
        from linmpc import MpcController, SolverStateError

        mpc = MpcController(double_integrator, 5, np.zeros(5), np.zeros(2), (1.0, 1.0))

        with pytest.raises(SolverStateError):
            mpc.qp_problem

    def test_reinitialize(self, double_integrator, tight_settings):
        """initialize_solver picks up a reference set with set_reference."""
        from linmpc import ControllerState, MpcController

        N = 5
        mpc = MpcController(
            double_integrator, N, np.zeros(N), np.zeros(2), (10.0, 1.0),
            settings=tight_settings,
        )
        mpc.initialize_solver()
        mpc.solve()

        mpc.set_reference(np.ones(N))
        mpc.initialize_solver()
        U = mpc.solve()

        assert mpc.state == ControllerState.INITIALIZED
        np.testing.assert_allclose(U, _closed_form(mpc), atol=1e-4)
        assert np.any(np.abs(U) > 1e-3)


@pytest.mark.integration
class TestClosedLoop:
    """Receding-horizon simulation."""

    def test_ramp_tracking(self, double_integrator):
        """Track a lawnmower ramp with bounded acceleration."""
        from linmpc import BoundSpec, MpcController, ramp_reference, reference_window

        N = 20
        n_steps = 60
        Y_d_full = ramp_reference(n_steps + N, half_period=10, rate=0.01)

        mpc = MpcController(
            double_integrator,
            horizon=N,
            Y_d=reference_window(Y_d_full, 0, N),
            x0=np.zeros(2),
            weights=(1000.0, 1.0),
            bounds=BoundSpec(-2.0, 2.0),
        )
        mpc.initialize_solver()
        U = mpc.solve()

        x = np.zeros(2)
        errors = []
        for k in range(1, n_steps):
            assert mpc.is_feasible()
            u = np.array([mpc.extract_u(U)[0][0]])
            assert -2.0 - 1e-3 <= u[0] <= 2.0 + 1e-3

            x = double_integrator.step(x, u)
            errors.append(abs(x[0] - Y_d_full[k]))

            mpc.update_solver(reference_window(Y_d_full, k, N), x)
            U = mpc.solve()

        assert max(errors[-20:]) < 0.05

    def test_setpoint_regulation(self, planar_system):
        """The 2D system settles on x + y = 1."""
        from linmpc import BoundSpec, MpcController, constant_reference

        N = 30
        mpc = MpcController(
            planar_system,
            horizon=N,
            Y_d=constant_reference(1.0, N),
            x0=np.zeros(4),
            weights=(10000.0, 1.0),
            bounds=BoundSpec([-7.0, -7.0], [7.0, 7.0]),
        )
        mpc.initialize_solver()
        U = mpc.solve()

        x = np.zeros(4)
        for _ in range(80):
            u = np.array([channel[0] for channel in mpc.extract_u(U)])
            x = planar_system.step(x, u)
            mpc.update_solver(constant_reference(1.0, N), x)
            U = mpc.solve()

        assert (planar_system.C @ x)[0] == pytest.approx(1.0, abs=1e-2)
