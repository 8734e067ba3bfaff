"""
MPC Weights and Bounds
======================

Cost weights and box bounds for the MPC formulations.

Weights come in two forms:
- ScalarWeights (Q, R): Q ||Y - Y_d||^2 + R ||U||^2
- MatrixWeights (W_y, w_u, w_x): W_y ||Y - Y_d||^2 + ||W_u U||^2 + ||W_x X||^2
  where W_u, W_x repeat w_u, w_x along the horizon.

Bounds are per-step boxes on the inputs and, optionally, on the states.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

import numpy as np
from scipy import sparse

from ..exceptions import InvalidInputError
from ..sparse_utils import MatrixLike, sparse_from_dense
from ..utils.validation import broadcast_vector, check_non_negative, check_shape


@dataclass(frozen=True)
class ScalarWeights:
    """
    Scalar tracking and effort weights.

    Args:
        Q: Output tracking weight
        R: Input effort weight
    """
    Q: float
    R: float

    def __post_init__(self):
        object.__setattr__(self, "Q", check_non_negative(self.Q, "Q"))
        object.__setattr__(self, "R", check_non_negative(self.R, "R"))


@dataclass(frozen=True, eq=False)
class MatrixWeights:
    """
    Output weight plus per-step input and state weight matrices.

    A 1D ``w_u``/``w_x`` is interpreted as the diagonal of the weight.

    Args:
        W_y: Output tracking weight (scalar)
        w_u: Per-step input weight (n_u, n_u)
        w_x: Per-step state weight (n_x, n_x)
    """
    W_y: float
    w_u: MatrixLike
    w_x: MatrixLike

    def __post_init__(self):
        object.__setattr__(self, "W_y", check_non_negative(self.W_y, "W_y"))
        object.__setattr__(self, "w_u", _as_weight_matrix(self.w_u))
        object.__setattr__(self, "w_x", _as_weight_matrix(self.w_x))

    def check_dimensions(self, n_u: int, n_x: int) -> None:
        """Raise DimensionError unless w_u is (n_u, n_u) and w_x is (n_x, n_x)."""
        check_shape(self.w_u, (n_u, n_u), "w_u")
        check_shape(self.w_x, (n_x, n_x), "w_x")

    def stacked(self, horizon: int) -> Tuple[sparse.csc_matrix, sparse.csc_matrix]:
        """Block-diagonal (W_u, W_x) over the horizon."""
        W_u = sparse.block_diag([self.w_u] * horizon, format="csc")
        W_x = sparse.block_diag([self.w_x] * horizon, format="csc")
        return W_u, W_x


WeightSpec = Union[ScalarWeights, MatrixWeights]


def as_weight_spec(weights: Any) -> WeightSpec:
    """
    Coerce ``weights`` to a WeightSpec.

    Accepts a ScalarWeights/MatrixWeights instance, a ``(Q, R)`` pair or a
    ``(W_y, w_u, w_x)`` triple.
    """
    if isinstance(weights, (ScalarWeights, MatrixWeights)):
        return weights
    if isinstance(weights, (tuple, list)):
        if len(weights) == 2:
            return ScalarWeights(*weights)
        if len(weights) == 3:
            return MatrixWeights(*weights)
    raise InvalidInputError(
        "weights must be ScalarWeights, MatrixWeights, a (Q, R) pair "
        f"or a (W_y, w_u, w_x) triple, got {weights!r}"
    )


@dataclass(frozen=True, eq=False)
class BoundSpec:
    """
    Per-step box bounds on inputs and (optionally) states.

    Scalars are broadcast to every channel. Missing state bounds leave the
    states unconstrained; a missing side of a state bound is infinite.

    Args:
        u_lower: Input lower bound (n_u,) or scalar
        u_upper: Input upper bound (n_u,) or scalar
        x_lower: State lower bound (n_x,) or scalar, optional
        x_upper: State upper bound (n_x,) or scalar, optional

    Example:
        >>> bounds = BoundSpec(u_lower=[-7, 0], u_upper=[7, 0])
        >>> lower, upper = bounds.input_bounds(n_u=2)
    """
    u_lower: Union[float, np.ndarray]
    u_upper: Union[float, np.ndarray]
    x_lower: Optional[Union[float, np.ndarray]] = None
    x_upper: Optional[Union[float, np.ndarray]] = None

    @property
    def has_state_bounds(self) -> bool:
        """Whether any state bound was supplied."""
        return self.x_lower is not None or self.x_upper is not None

    def input_bounds(self, n_u: int) -> Tuple[np.ndarray, np.ndarray]:
        """Per-step (lower, upper) input bounds of length n_u."""
        return (
            broadcast_vector(self.u_lower, n_u, "u_lower"),
            broadcast_vector(self.u_upper, n_u, "u_upper"),
        )

    def state_bounds(self, n_x: int) -> Tuple[np.ndarray, np.ndarray]:
        """Per-step (lower, upper) state bounds of length n_x."""
        lower = -np.inf if self.x_lower is None else self.x_lower
        upper = np.inf if self.x_upper is None else self.x_upper
        return (
            broadcast_vector(lower, n_x, "x_lower"),
            broadcast_vector(upper, n_x, "x_upper"),
        )

    def stacked_input_bounds(self, n_u: int, horizon: int) -> Tuple[np.ndarray, np.ndarray]:
        """Input bounds repeated over the horizon (length N*n_u)."""
        lower, upper = self.input_bounds(n_u)
        return np.tile(lower, horizon), np.tile(upper, horizon)

    def stacked_state_bounds(self, n_x: int, horizon: int) -> Tuple[np.ndarray, np.ndarray]:
        """State bounds repeated over the horizon (length N*n_x)."""
        lower, upper = self.state_bounds(n_x)
        return np.tile(lower, horizon), np.tile(upper, horizon)


def _as_weight_matrix(weight: MatrixLike) -> sparse.csc_matrix:
    if not sparse.issparse(weight):
        weight = np.asarray(weight, dtype=np.float64)
        if weight.ndim == 0:
            weight = weight.reshape(1, 1)
        elif weight.ndim == 1:
            weight = np.diag(weight)
    return sparse_from_dense(weight)
