"""
Rollout Matrices
================

Condensed prediction model over a horizon N. With the stacked input
sequence U = [u_0; ...; u_{N-1}] and initial state x0:

    X = A_mpc @ U + B_mpc @ x0        X = [x_1; ...; x_N]
    Y = C_mpc @ X                     Y = [y_1; ...; y_N]

where

    A_mpc[i, j] = A^(i-j) B   for j <= i (block lower-triangular)
    B_mpc[i]    = A^(i+1)
    C_mpc       = blockdiag(C, ..., C)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np
from scipy import sparse

from ..exceptions import InvalidInputError
from .dynamics import LinearSystem


@dataclass(frozen=True, eq=False)
class RolloutMatrices:
    """
    Matrices mapping (U, x0) to the predicted state and output sequences.

    Attributes:
        A_mpc: Input-to-state map (N*n_x, N*n_u)
        B_mpc: Initial-state-to-state map (N*n_x, n_x)
        C_mpc: State-to-output map (N*n_y, N*n_x)
        horizon: Prediction horizon N
    """
    A_mpc: sparse.csc_matrix
    B_mpc: sparse.csc_matrix
    C_mpc: sparse.csc_matrix
    horizon: int

    def states(self, U: np.ndarray, x0: np.ndarray) -> np.ndarray:
        """Stacked states X = A_mpc U + B_mpc x0."""
        return self.A_mpc @ U + self.B_mpc @ x0

    def outputs(self, U: np.ndarray, x0: np.ndarray) -> np.ndarray:
        """Stacked outputs Y = C_mpc X."""
        return self.C_mpc @ self.states(U, x0)


def state_powers(A: sparse.spmatrix, max_power: int) -> List[sparse.csc_matrix]:
    """
    Return [A^0, A^1, ..., A^max_power] using one multiplication per power.
    """
    powers = [sparse.identity(A.shape[0], dtype=np.float64, format="csc")]
    for _ in range(max_power):
        powers.append((powers[-1] @ A).tocsc())
    return powers


def build_rollout(system: LinearSystem, horizon: int) -> RolloutMatrices:
    """
    Build the rollout matrices of ``system`` over ``horizon`` steps.

    Args:
        system: Linear system
        horizon: Prediction horizon N (>= 1)

    Returns:
        RolloutMatrices
    """
    if int(horizon) != horizon or horizon < 1:
        raise InvalidInputError(f"horizon must be a positive integer, got {horizon}")
    N = int(horizon)

    powers = state_powers(system.A, N)
    # A^k B for k = 0..N-1, shared by every row-block of A_mpc
    impulse = [(powers[k] @ system.B).tocsc() for k in range(N)]

    blocks = [
        [impulse[i - j] if j <= i else None for j in range(N)]
        for i in range(N)
    ]
    A_mpc = sparse.bmat(blocks, format="csc")
    B_mpc = sparse.vstack(powers[1:], format="csc")
    C_mpc = sparse.block_diag([system.C] * N, format="csc")

    return RolloutMatrices(A_mpc=A_mpc, B_mpc=B_mpc, C_mpc=C_mpc, horizon=N)
