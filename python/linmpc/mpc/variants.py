"""
MPC Cost Formulations
=====================

The five condensed QP formulations supported by :class:`MpcController`.

With the rollout matrices (see :mod:`linmpc.mpc.rollout`) and

    C_A = C_mpc A_mpc,   C_B = C_mpc B_mpc,   Y = C_A U + C_B x0

every variant produces a QP in the stacked inputs U:

    minimize  (1/2) U' H U + g' U

Variants
--------
UNCONSTRAINED_SCALAR
    Q ||Y - Y_d||^2 + R ||U||^2
UNCONSTRAINED_MATRIX
    W_y ||Y - Y_d||^2 + ||W_u U||^2 + ||W_x X||^2
INPUT_BOUNDED_SCALAR / INPUT_BOUNDED_MATRIX
    as above, subject to u_lower <= u_k <= u_upper
INPUT_AND_STATE_BOUNDED_MATRIX
    matrix cost, subject to input bounds and x_lower <= x_k <= x_upper

Hessians and constraint matrices depend only on the system and the
weights. The gradient depends on (Y_d, x0) and is recomputed on every
control step from cached products, so no variant rebuilds C_A or C_B
after :meth:`CostVariant.build`. For state bounds, the right-hand side of
the projected rows also depends on x0 and is recomputed the same way.

Bounds are written as one-sided rows A_ieq U + b_ieq <= 0; a box
l <= v <= u becomes the two rows v <= u and -v <= -l.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Type

import numpy as np
from scipy import sparse

from ..exceptions import InvalidInputError, SolverStateError
from ..qp import ConstraintLayout, QpProblem
from ..sparse_utils import concatenate_matrices
from .dynamics import LinearSystem
from .rollout import RolloutMatrices
from .weights import BoundSpec, MatrixWeights, ScalarWeights, WeightSpec


class MpcType(Enum):
    """Formulation variant, chosen once from the controller arguments."""
    UNCONSTRAINED_SCALAR = "unconstrained_scalar"
    UNCONSTRAINED_MATRIX = "unconstrained_matrix"
    INPUT_BOUNDED_SCALAR = "input_bounded_scalar"
    INPUT_BOUNDED_MATRIX = "input_bounded_matrix"
    INPUT_AND_STATE_BOUNDED_MATRIX = "input_and_state_bounded_matrix"

    def __str__(self) -> str:
        return self.value


@dataclass
class CostCache:
    """
    Products kept after the initial build for cheap per-step updates.

    Attributes:
        C_A: C_mpc A_mpc
        C_B: C_mpc B_mpc
        Q_C_A_T: (output weight) * C_A'
        Q_C_A_T_C_B: (output weight) * C_A' C_B
        W_x_A: W_x A_mpc (matrix weights only)
        W_x_B: W_x B_mpc (matrix weights only)
        W_x_A_T_W_x_B: (W_x A_mpc)' (W_x B_mpc) (matrix weights only)
        B_mpc: Initial-state map (state bounds only)
        X_lower: Stacked state lower bound (state bounds only)
        X_upper: Stacked state upper bound (state bounds only)
    """
    C_A: sparse.csc_matrix
    C_B: sparse.csc_matrix
    Q_C_A_T: sparse.csc_matrix
    Q_C_A_T_C_B: sparse.csc_matrix
    W_x_A: Optional[sparse.csc_matrix] = None
    W_x_B: Optional[sparse.csc_matrix] = None
    W_x_A_T_W_x_B: Optional[sparse.csc_matrix] = None
    B_mpc: Optional[sparse.csc_matrix] = None
    X_lower: Optional[np.ndarray] = None
    X_upper: Optional[np.ndarray] = None


class CostVariant:
    """
    Base class of the MPC formulations.

    Subclasses define the Hessian, the gradient and the inequality rows.
    :meth:`build` must run once before :meth:`update_gradient`.

    Args:
        system: Linear system (dimensions only)
        horizon: Prediction horizon N
        weights: Cost weights
        bounds: Box bounds, required by the bounded variants
    """

    mpc_type: MpcType
    layout: ConstraintLayout = ConstraintLayout.BOX_AFFINE
    updates_inequality_bound: bool = False

    def __init__(
        self,
        system: LinearSystem,
        horizon: int,
        weights: WeightSpec,
        bounds: Optional[BoundSpec] = None,
    ) -> None:
        self.n_x = system.n_x
        self.n_u = system.n_u
        self.n_y = system.n_y
        self.horizon = horizon
        self.weights = weights
        self.bounds = bounds
        self._cache: Optional[CostCache] = None
        self._check_arguments()

    @property
    def cache(self) -> CostCache:
        """Cached products (available after :meth:`build`)."""
        if self._cache is None:
            raise SolverStateError(f"{type(self).__name__}.build() has not been called")
        return self._cache

    @property
    def n_variables(self) -> int:
        """Number of decision variables N*n_u."""
        return self.horizon * self.n_u

    def build(self, rollout: RolloutMatrices, Y_d: np.ndarray, x0: np.ndarray) -> QpProblem:
        """
        Build the QP for reference ``Y_d`` and initial state ``x0``.

        Computes and stores the cached products used by later updates.
        """
        self._cache = self._build_cache(rollout)
        hessian = self._hessian(rollout)
        gradient, _ = self.update_gradient(Y_d, x0)
        A_ieq, b_ieq = self._inequality_rows(rollout, x0)

        return QpProblem(
            hessian=hessian,
            gradient=gradient,
            A_ieq=A_ieq,
            b_ieq=b_ieq,
            layout=self.layout,
        )

    def update_gradient(
        self,
        Y_d: np.ndarray,
        x0: np.ndarray,
    ) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """
        Gradient (and inequality upper-bound slice, if any) for (Y_d, x0).

        Returns:
            (gradient, ieq_upper) where ``ieq_upper`` is None unless the
            variant's inequality bounds depend on x0
        """
        return self._gradient(Y_d, x0), None

    # Subclass hooks

    def _check_arguments(self) -> None:
        pass

    def _build_cache(self, rollout: RolloutMatrices) -> CostCache:
        return _tracking_cache(rollout, self._output_weight())

    def _output_weight(self) -> float:
        raise NotImplementedError

    def _hessian(self, rollout: RolloutMatrices) -> sparse.csc_matrix:
        raise NotImplementedError

    def _gradient(self, Y_d: np.ndarray, x0: np.ndarray) -> np.ndarray:
        cache = self.cache
        return 2.0 * (cache.Q_C_A_T_C_B @ x0 - cache.Q_C_A_T @ Y_d)

    def _inequality_rows(
        self,
        rollout: RolloutMatrices,
        x0: np.ndarray,
    ) -> Tuple[Optional[sparse.csc_matrix], Optional[np.ndarray]]:
        return None, None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(horizon={self.horizon}, n_x={self.n_x}, n_u={self.n_u})"


class _ScalarCost(CostVariant):
    """Q ||Y - Y_d||^2 + R ||U||^2."""

    def _check_arguments(self) -> None:
        if not isinstance(self.weights, ScalarWeights):
            raise InvalidInputError(f"{type(self).__name__} requires ScalarWeights")

    def _output_weight(self) -> float:
        return self.weights.Q

    def _hessian(self, rollout: RolloutMatrices) -> sparse.csc_matrix:
        cache = self.cache
        effort = self.weights.R * sparse.identity(self.n_variables, format="csc")
        return (2.0 * (cache.Q_C_A_T @ cache.C_A + effort)).tocsc()


class _MatrixCost(CostVariant):
    """W_y ||Y - Y_d||^2 + ||W_u U||^2 + ||W_x X||^2."""

    def _check_arguments(self) -> None:
        if not isinstance(self.weights, MatrixWeights):
            raise InvalidInputError(f"{type(self).__name__} requires MatrixWeights")
        self.weights.check_dimensions(self.n_u, self.n_x)

    def _output_weight(self) -> float:
        return self.weights.W_y

    def _build_cache(self, rollout: RolloutMatrices) -> CostCache:
        cache = super()._build_cache(rollout)
        _, W_x = self.weights.stacked(self.horizon)
        cache.W_x_A = (W_x @ rollout.A_mpc).tocsc()
        cache.W_x_B = (W_x @ rollout.B_mpc).tocsc()
        cache.W_x_A_T_W_x_B = (cache.W_x_A.T @ cache.W_x_B).tocsc()
        return cache

    def _hessian(self, rollout: RolloutMatrices) -> sparse.csc_matrix:
        cache = self.cache
        W_u, _ = self.weights.stacked(self.horizon)
        hessian = (
            cache.Q_C_A_T @ cache.C_A
            + W_u.T @ W_u
            + cache.W_x_A.T @ cache.W_x_A
        )
        return (2.0 * hessian).tocsc()

    def _gradient(self, Y_d: np.ndarray, x0: np.ndarray) -> np.ndarray:
        state_term = 2.0 * (self.cache.W_x_A_T_W_x_B @ x0)
        return super()._gradient(Y_d, x0) + state_term


class _InputBounded:
    """Mixin adding per-step input box rows [I; -I] U + [-U_upper; U_lower] <= 0."""

    layout = ConstraintLayout.INEQUALITY_ONLY

    def _check_arguments(self) -> None:
        super()._check_arguments()
        if self.bounds is None:
            raise InvalidInputError(f"{type(self).__name__} requires input bounds")
        self.bounds.input_bounds(self.n_u)

    def _input_rows(self) -> Tuple[sparse.csc_matrix, np.ndarray]:
        U_lower, U_upper = self.bounds.stacked_input_bounds(self.n_u, self.horizon)
        identity = sparse.identity(self.n_variables, format="csc")
        A_in = concatenate_matrices(identity, -identity)
        b_in = np.concatenate([-U_upper, U_lower])
        return A_in, b_in

    def _inequality_rows(self, rollout, x0):
        return self._input_rows()


class UnconstrainedScalarCost(_ScalarCost):
    """Scalar weights, no constraints."""
    mpc_type = MpcType.UNCONSTRAINED_SCALAR


class UnconstrainedMatrixCost(_MatrixCost):
    """Matrix weights, no constraints."""
    mpc_type = MpcType.UNCONSTRAINED_MATRIX


class InputBoundedScalarCost(_InputBounded, _ScalarCost):
    """Scalar weights with input bounds."""
    mpc_type = MpcType.INPUT_BOUNDED_SCALAR


class InputBoundedMatrixCost(_InputBounded, _MatrixCost):
    """Matrix weights with input bounds."""
    mpc_type = MpcType.INPUT_BOUNDED_MATRIX


class InputAndStateBoundedMatrixCost(_InputBounded, _MatrixCost):
    """
    Matrix weights with input and state bounds.

    State bounds are projected onto U through X = A_mpc U + B_mpc x0:

        [ A_mpc]       [B_mpc x0 - X_upper]
        [-A_mpc] U  +  [X_lower - B_mpc x0]  <= 0

    These rows come last, so their upper bounds
    [X_upper - B_mpc x0; B_mpc x0 - X_lower] form the trailing slice of the
    solver's upper bound vector. Both state limits live in that slice.
    """
    mpc_type = MpcType.INPUT_AND_STATE_BOUNDED_MATRIX
    updates_inequality_bound = True

    def _check_arguments(self) -> None:
        super()._check_arguments()
        self.bounds.state_bounds(self.n_x)

    def _build_cache(self, rollout: RolloutMatrices) -> CostCache:
        cache = super()._build_cache(rollout)
        cache.B_mpc = rollout.B_mpc
        cache.X_lower, cache.X_upper = self.bounds.stacked_state_bounds(self.n_x, self.horizon)
        return cache

    def update_gradient(self, Y_d, x0):
        return self._gradient(Y_d, x0), self.state_upper_bounds(x0)

    def state_upper_bounds(self, x0: np.ndarray) -> np.ndarray:
        """Upper bounds of the projected state rows for initial state x0."""
        cache = self.cache
        free_response = cache.B_mpc @ x0
        return np.concatenate([cache.X_upper - free_response, free_response - cache.X_lower])

    def _inequality_rows(self, rollout, x0):
        A_in, b_in = self._input_rows()
        A_state = concatenate_matrices(rollout.A_mpc, -rollout.A_mpc)
        b_state = -self.state_upper_bounds(x0)
        return concatenate_matrices(A_in, A_state), np.concatenate([b_in, b_state])


VARIANTS: Dict[MpcType, Type[CostVariant]] = {
    MpcType.UNCONSTRAINED_SCALAR: UnconstrainedScalarCost,
    MpcType.UNCONSTRAINED_MATRIX: UnconstrainedMatrixCost,
    MpcType.INPUT_BOUNDED_SCALAR: InputBoundedScalarCost,
    MpcType.INPUT_BOUNDED_MATRIX: InputBoundedMatrixCost,
    MpcType.INPUT_AND_STATE_BOUNDED_MATRIX: InputAndStateBoundedMatrixCost,
}


def select_variant(weights: WeightSpec, bounds: Optional[BoundSpec] = None) -> MpcType:
    """
    Pick the formulation from the kind of weights and bounds supplied.

    Raises:
        InvalidInputError: For state bounds combined with scalar weights
    """
    scalar = isinstance(weights, ScalarWeights)
    if bounds is None:
        return MpcType.UNCONSTRAINED_SCALAR if scalar else MpcType.UNCONSTRAINED_MATRIX
    if bounds.has_state_bounds:
        if scalar:
            raise InvalidInputError("state bounds require MatrixWeights (W_y, w_u, w_x)")
        return MpcType.INPUT_AND_STATE_BOUNDED_MATRIX
    return MpcType.INPUT_BOUNDED_SCALAR if scalar else MpcType.INPUT_BOUNDED_MATRIX


def make_variant(
    system: LinearSystem,
    horizon: int,
    weights: WeightSpec,
    bounds: Optional[BoundSpec] = None,
) -> CostVariant:
    """Instantiate the formulation selected by :func:`select_variant`."""
    return VARIANTS[select_variant(weights, bounds)](system, horizon, weights, bounds)


def _tracking_cache(rollout: RolloutMatrices, weight: float) -> CostCache:
    C_A = (rollout.C_mpc @ rollout.A_mpc).tocsc()
    C_B = (rollout.C_mpc @ rollout.B_mpc).tocsc()
    Q_C_A_T = (weight * C_A.T).tocsc()
    Q_C_A_T_C_B = (Q_C_A_T @ C_B).tocsc()
    return CostCache(C_A=C_A, C_B=C_B, Q_C_A_T=Q_C_A_T, Q_C_A_T_C_B=Q_C_A_T_C_B)
