"""
MPC Controller
==============

Reference-tracking linear MPC with incremental solver updates.

The controller condenses the dynamics into rollout matrices once, builds
the QP of the selected formulation on :meth:`MpcController.initialize_solver`
and, on every control step, only recomputes the parts of the QP that
depend on the new reference and initial state.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

from ..exceptions import DimensionError, SolverStateError
from ..qp import QpProblem
from ..result import SolveResult
from ..solver import OsqpSession
from ..utils.validation import as_vector
from .dynamics import LinearSystem
from .rollout import RolloutMatrices, build_rollout
from .variants import CostVariant, MpcType, make_variant
from .weights import BoundSpec, WeightSpec, as_weight_spec

logger = logging.getLogger(__name__)


class ControllerState(Enum):
    """Lifecycle of an MpcController."""
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    READY = "ready"


class MpcController:
    """
    Linear reference-tracking Model Predictive Controller.

    The formulation is chosen from the arguments supplied:

    =====================  ===============  ===============================
    weights                bounds           formulation
    =====================  ===============  ===============================
    (Q, R)                 None             UNCONSTRAINED_SCALAR
    (W_y, w_u, w_x)        None             UNCONSTRAINED_MATRIX
    (Q, R)                 inputs           INPUT_BOUNDED_SCALAR
    (W_y, w_u, w_x)        inputs           INPUT_BOUNDED_MATRIX
    (W_y, w_u, w_x)        inputs + states  INPUT_AND_STATE_BOUNDED_MATRIX
    =====================  ===============  ===============================

    Args:
        system: LinearSystem dynamics
        horizon: Prediction horizon N
        Y_d: Stacked output reference (N*n_y,)
        x0: Initial state (n_x,)
        weights: ScalarWeights, MatrixWeights, (Q, R) or (W_y, w_u, w_x)
        bounds: Optional input (and state) bounds
        solver_time_limit: Solver time limit in seconds (0 disables it)
        settings: OSQP settings overriding the defaults

    Example:
        >>> mpc = MpcController(system, horizon=100, Y_d=Y_d, x0=x0,
        ...                     weights=(10000.0, 1.0),
        ...                     bounds=BoundSpec([-7, 0], [7, 0]))
        >>> mpc.initialize_solver()
        >>> U = mpc.solve()
        >>> for k in range(1, n_steps):
        ...     x0 = mpc.calculate_x(U)[:system.n_x]
        ...     mpc.update_solver(Y_d_full[k:k + 100], x0)
        ...     U = mpc.solve()

    Note:
        A controller is not safe for concurrent use; serialize calls.
    """

    def __init__(
        self,
        system: LinearSystem,
        horizon: int,
        Y_d: np.ndarray,
        x0: np.ndarray,
        weights: Any,
        bounds: Optional[BoundSpec] = None,
        solver_time_limit: float = 0.0,
        settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.system = system
        self.weights: WeightSpec = as_weight_spec(weights)
        self.bounds = bounds
        self.solver_time_limit = float(solver_time_limit)
        self.settings = dict(settings or {})

        # Dimensions
        self.n_x = system.n_x
        self.n_u = system.n_u
        self.n_y = system.n_y

        self._rollout = build_rollout(system, horizon)
        self.horizon = self._rollout.horizon

        self._variant: CostVariant = make_variant(system, self.horizon, self.weights, bounds)

        self.Y_d = self._check_reference(Y_d)
        self.x0 = self._check_state(x0)

        self._qp_problem: Optional[QpProblem] = None
        self._session: Optional[OsqpSession] = None
        self._state = ControllerState.UNINITIALIZED
        self.last_result: Optional[SolveResult] = None

        logger.debug(
            "MpcController created: %s, N=%d, n_x=%d, n_u=%d, n_y=%d",
            self.mpc_type, self.horizon, self.n_x, self.n_u, self.n_y,
        )

    @property
    def mpc_type(self) -> MpcType:
        """Selected formulation."""
        return self._variant.mpc_type

    @property
    def state(self) -> ControllerState:
        """Lifecycle state."""
        return self._state

    @property
    def rollout(self) -> RolloutMatrices:
        """Rollout matrices (A_mpc, B_mpc, C_mpc)."""
        return self._rollout

    @property
    def variant(self) -> CostVariant:
        """Formulation object holding the cached products."""
        return self._variant

    @property
    def qp_problem(self) -> QpProblem:
        """Current QP (available after :meth:`initialize_solver`)."""
        if self._qp_problem is None:
            raise SolverStateError("initialize_solver() has not been called")
        return self._qp_problem

    @property
    def session(self) -> OsqpSession:
        """Solver session (available after :meth:`initialize_solver`)."""
        if self._session is None:
            raise SolverStateError("initialize_solver() has not been called")
        return self._session

    def set_reference(self, Y_d: np.ndarray) -> None:
        """Replace the stored reference without touching the solver."""
        self.Y_d = self._check_reference(Y_d)

    def initialize_solver(self) -> None:
        """
        Build the QP for the current (Y_d, x0) and start a solver session.

        Calling it again rebuilds the QP and restarts the session.
        """
        self._qp_problem = self._variant.build(self._rollout, self.Y_d, self.x0)
        self._session = OsqpSession(self.settings)
        self._session.initialize(self._qp_problem, time_limit=self.solver_time_limit)
        self._state = ControllerState.INITIALIZED
        self.last_result = None

        logger.debug("Solver initialized: %r", self._qp_problem)

    def update_solver(self, Y_d: np.ndarray, x0: np.ndarray) -> None:
        """
        Move the QP to a new reference and initial state.

        Only the gradient (and, with state bounds, the inequality bounds)
        change; the Hessian and constraint matrix stay loaded.
        """
        if self._session is None:
            raise SolverStateError("update_solver() called before initialize_solver()")

        Y_d = self._check_reference(Y_d)
        x0 = self._check_state(x0)

        gradient, ieq_upper = self._variant.update_gradient(Y_d, x0)
        problem = self._qp_problem
        problem.gradient = gradient

        if ieq_upper is None:
            self._session.update_gradient(gradient)
        else:
            problem.b_ieq[-ieq_upper.size:] = -ieq_upper
            self._session.update_gradient_and_inequality_bound(gradient, ieq_upper)

        self.Y_d = Y_d
        self.x0 = x0
        self._state = ControllerState.READY

    def solve(self) -> np.ndarray:
        """
        Solve the current QP.

        Returns:
            Stacked input sequence U (N*n_u,). Check :meth:`is_feasible`
            before applying it.
        """
        self.last_result = self.session.solve()
        return self.last_result.x

    def is_feasible(self) -> bool:
        """Whether the last solve was not primal infeasible."""
        return self.session.is_feasible()

    def calculate_x(self, U: np.ndarray) -> np.ndarray:
        """Predicted states X = A_mpc U + B_mpc x0, stacked (N*n_x,)."""
        U = as_vector(U, self.horizon * self.n_u, "U", allow_nan=True)
        return self._rollout.states(U, self.x0)

    def calculate_y(self, U: np.ndarray) -> np.ndarray:
        """Predicted outputs Y = C_mpc X, stacked (N*n_y,)."""
        return self._rollout.C_mpc @ self.calculate_x(U)

    def extract_u(self, U: np.ndarray) -> List[List[float]]:
        """Input sequences, one list of length N per input channel."""
        U = as_vector(U, self.horizon * self.n_u, "U", allow_nan=True)
        return deinterleave(U, self.n_u)

    def extract_x(self, U: np.ndarray) -> List[List[float]]:
        """Predicted state sequences, one list of length N per state."""
        return deinterleave(self.calculate_x(U), self.n_x)

    def extract_y(self, U: np.ndarray) -> List[List[float]]:
        """Predicted output sequences, one list of length N per output."""
        return deinterleave(self.calculate_y(U), self.n_y)

    def _check_reference(self, Y_d: np.ndarray) -> np.ndarray:
        return as_vector(Y_d, self.horizon * self.n_y, "Y_d")

    def _check_state(self, x0: np.ndarray) -> np.ndarray:
        return as_vector(x0, self.n_x, "x0")

    def __repr__(self) -> str:
        return (
            f"MpcController(type={self.mpc_type}, horizon={self.horizon}, "
            f"n_x={self.n_x}, n_u={self.n_u}, n_y={self.n_y}, state={self._state.value})"
        )


def deinterleave(vector: np.ndarray, n_channels: int) -> List[List[float]]:
    """
    Split a time-major stacked vector into per-channel sequences.

    ``[a_0, b_0, a_1, b_1, ...]`` with 2 channels gives
    ``[[a_0, a_1, ...], [b_0, b_1, ...]]``.
    """
    vector = np.asarray(vector, dtype=np.float64).ravel()
    if n_channels < 1 or vector.size % n_channels != 0:
        raise DimensionError(
            f"vector of length {vector.size} cannot be split into {n_channels} channels"
        )
    return vector.reshape(-1, n_channels).T.tolist()
