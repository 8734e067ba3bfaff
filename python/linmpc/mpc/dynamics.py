"""
System Dynamics Models
======================

Linear time-invariant discrete-time systems used by the MPC controller:

    x_{k+1} = A x_k + B u_k
    y_k     = C x_k + D u_k
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import sparse

from ..exceptions import DimensionError
from ..sparse_utils import MatrixLike, matrix_power, sparse_from_dense


@dataclass(frozen=True, eq=False)
class LinearSystem:
    """
    Linear Time-Invariant (LTI) discrete-time system.

    Dynamics: x_{k+1} = A @ x_k + B @ u_k
    Output:   y_k = C @ x_k + D @ u_k

    Matrices are stored as ``scipy.sparse`` CSC matrices; dense arrays are
    converted on construction. The system is immutable once validated.

    Args:
        A: State transition matrix (n_x, n_x)
        B: Input matrix (n_x, n_u)
        C: Output matrix (n_y, n_x)
        D: Feedthrough matrix (n_y, n_u), zero if omitted

    Raises:
        DimensionError: If the matrix shapes are inconsistent

    Example:
        >>> dt = 0.1
        >>> A = np.array([[1, dt], [0, 1]])
        >>> B = np.array([[0.5*dt**2], [dt]])
        >>> C = np.array([[1, 0]])
        >>> system = LinearSystem(A, B, C)
        >>> x_next = system.step(np.array([0, 1]), np.array([0.5]))
    """
    A: MatrixLike
    B: MatrixLike
    C: MatrixLike
    D: Optional[MatrixLike] = None

    def __post_init__(self):
        """Convert to sparse and validate dimensions."""
        A = sparse_from_dense(self.A)
        B = sparse_from_dense(self.B)
        C = sparse_from_dense(self.C)
        if self.D is None:
            D = sparse.csc_matrix((C.shape[0], B.shape[1]), dtype=np.float64)
        else:
            D = sparse_from_dense(self.D)

        object.__setattr__(self, "A", A)
        object.__setattr__(self, "B", B)
        object.__setattr__(self, "C", C)
        object.__setattr__(self, "D", D)

        self.check_matrix_dimensions()

    def check_matrix_dimensions(self) -> None:
        """
        Validate shape consistency of (A, B, C, D).

        All violations are collected and reported in one error.
        """
        A, B, C, D = self.A, self.B, self.C, self.D
        problems = []

        if A.shape[0] != A.shape[1]:
            problems.append(f"A must be square, got {A.shape}")
        if B.shape[0] != A.shape[0]:
            problems.append(f"B rows ({B.shape[0]}) must match A rows ({A.shape[0]})")
        if C.shape[1] != A.shape[1]:
            problems.append(f"C columns ({C.shape[1]}) must match A columns ({A.shape[1]})")
        if D.shape[0] != C.shape[0]:
            problems.append(f"D rows ({D.shape[0]}) must match C rows ({C.shape[0]})")
        if D.shape[1] != B.shape[1]:
            problems.append(f"D columns ({D.shape[1]}) must match B columns ({B.shape[1]})")

        if problems:
            raise DimensionError(
                "; ".join(problems)
                + f" [A={A.shape}, B={B.shape}, C={C.shape}, D={D.shape}]",
                expected=(A.shape[0], B.shape[1], C.shape[0]),
                actual=(A.shape, B.shape, C.shape, D.shape),
            )

    @property
    def n_x(self) -> int:
        """Number of states."""
        return self.A.shape[0]

    @property
    def n_u(self) -> int:
        """Number of inputs."""
        return self.B.shape[1]

    @property
    def n_y(self) -> int:
        """Number of outputs."""
        return self.C.shape[0]

    def step(self, x: np.ndarray, u: np.ndarray) -> np.ndarray:
        """Next state A x + B u."""
        return self.A @ np.asarray(x, dtype=np.float64) + self.B @ np.asarray(u, dtype=np.float64)

    def output(self, x: np.ndarray, u: np.ndarray) -> np.ndarray:
        """Compute system output y = C x + D u."""
        return self.C @ np.asarray(x, dtype=np.float64) + self.D @ np.asarray(u, dtype=np.float64)

    def simulate(self, x0: np.ndarray, u_sequence: np.ndarray) -> np.ndarray:
        """
        Roll the dynamics forward under an open-loop input sequence.

        Args:
            x0: Initial state (n_x,)
            u_sequence: Inputs, one row per step (N, n_u) or stacked (N*n_u,)

        Returns:
            States x_0 ... x_N as rows (N+1, n_x)
        """
        inputs = np.asarray(u_sequence, dtype=np.float64).reshape(-1, self.n_u)

        states = [np.asarray(x0, dtype=np.float64).ravel()]
        for u in inputs:
            states.append(self.step(states[-1], u))
        return np.vstack(states)

    def is_stable(self) -> bool:
        """Check if system is stable (all eigenvalues inside unit circle)."""
        eigenvalues = np.linalg.eigvals(self.A.toarray())
        return bool(np.all(np.abs(eigenvalues) < 1.0))

    def is_controllable(self) -> bool:
        """Check if system is controllable."""
        n = self.n_x
        blocks = [(matrix_power(self.A, i) @ self.B).toarray() for i in range(n)]
        controllability = np.hstack(blocks)
        return bool(np.linalg.matrix_rank(controllability) == n)

    def __repr__(self) -> str:
        return f"LinearSystem(n_x={self.n_x}, n_u={self.n_u}, n_y={self.n_y})"


def double_integrator(dt: float = 0.1) -> LinearSystem:
    """
    Create a double integrator (point mass) system.

    States: [position, velocity]
    Input: acceleration
    Output: position
    """
    A = np.array([
        [1, dt],
        [0, 1]
    ])
    B = np.array([
        [0.5 * dt**2],
        [dt]
    ])
    C = np.array([[1, 0]])
    return LinearSystem(A, B, C)


def double_integrator_2d(dt: float = 0.05) -> LinearSystem:
    """
    Create a 2D double integrator (point mass in plane).

    States: [x, y, vx, vy]
    Inputs: [ax, ay]
    Output: x + y
    """
    A = np.array([
        [1, 0, dt, 0],
        [0, 1, 0, dt],
        [0, 0, 1, 0],
        [0, 0, 0, 1]
    ])
    B = np.array([
        [0.5 * dt**2, 0],
        [0, 0.5 * dt**2],
        [dt, 0],
        [0, dt]
    ])
    C = np.array([[1, 1, 0, 0]])
    return LinearSystem(A, B, C)
