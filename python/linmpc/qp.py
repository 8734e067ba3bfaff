"""
Quadratic Program Container
===========================

Sparse QP in the form used by the MPC formulations:

    minimize    (1/2) U' H U + g' U
    subject to  A_eq U + b_eq = 0
                A_ieq U + b_ieq <= 0
                lower <= U <= upper
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np
from scipy import sparse

from .exceptions import DimensionError
from .sparse_utils import sparse_from_dense


class ConstraintLayout(Enum):
    """
    How a QpProblem is mapped onto the solver's ``l <= A x <= u`` form.

    Attributes:
        BOX_AFFINE: A = [I; A_eq; A_ieq], variable box bounds first
        INEQUALITY_ONLY: A = [A_eq; A_ieq], no variable box rows
    """
    BOX_AFFINE = "box_affine"
    INEQUALITY_ONLY = "inequality_only"


@dataclass
class QpProblem:
    """
    Sparse QP data.

    Attributes:
        hessian: Quadratic term H (n, n), symmetric PSD
        gradient: Linear term g (n,)
        A_eq: Equality constraint matrix (m_eq, n)
        b_eq: Equality offset (m_eq,)
        A_ieq: Inequality constraint matrix (m_ieq, n)
        b_ieq: Inequality offset (m_ieq,)
        lower: Variable lower bounds (n,), used by BOX_AFFINE
        upper: Variable upper bounds (n,), used by BOX_AFFINE
        layout: Constraint layout handed to the solver
    """
    hessian: sparse.csc_matrix
    gradient: np.ndarray
    A_eq: Optional[sparse.csc_matrix] = None
    b_eq: Optional[np.ndarray] = None
    A_ieq: Optional[sparse.csc_matrix] = None
    b_ieq: Optional[np.ndarray] = None
    lower: Optional[np.ndarray] = None
    upper: Optional[np.ndarray] = None
    layout: ConstraintLayout = ConstraintLayout.BOX_AFFINE

    def __post_init__(self):
        """Fill empty blocks and validate dimensions."""
        self.hessian = sparse_from_dense(self.hessian)
        self.gradient = np.asarray(self.gradient, dtype=np.float64).ravel()
        n = self.hessian.shape[1]

        if self.A_eq is None:
            self.A_eq = sparse.csc_matrix((0, n))
        else:
            self.A_eq = sparse_from_dense(self.A_eq)
        if self.b_eq is None:
            self.b_eq = np.zeros(self.A_eq.shape[0])
        self.b_eq = np.asarray(self.b_eq, dtype=np.float64).ravel()

        if self.A_ieq is None:
            self.A_ieq = sparse.csc_matrix((0, n))
        else:
            self.A_ieq = sparse_from_dense(self.A_ieq)
        if self.b_ieq is None:
            self.b_ieq = np.zeros(self.A_ieq.shape[0])
        self.b_ieq = np.asarray(self.b_ieq, dtype=np.float64).ravel()

        self.lower = (
            np.full(n, -np.inf) if self.lower is None
            else np.asarray(self.lower, dtype=np.float64).ravel()
        )
        self.upper = (
            np.full(n, np.inf) if self.upper is None
            else np.asarray(self.upper, dtype=np.float64).ravel()
        )

        self.validate()

    @property
    def n_variables(self) -> int:
        """Number of decision variables."""
        return self.hessian.shape[0]

    @property
    def n_eq(self) -> int:
        """Number of equality rows."""
        return self.A_eq.shape[0]

    @property
    def n_ieq(self) -> int:
        """Number of inequality rows."""
        return self.A_ieq.shape[0]

    def validate(self) -> None:
        """Check that all blocks agree on the number of variables."""
        n = self.hessian.shape[0]
        if self.hessian.shape != (n, n):
            raise DimensionError(
                f"hessian must be square, got {self.hessian.shape}",
                expected=(n, n),
                actual=self.hessian.shape,
            )
        if self.gradient.shape != (n,):
            raise DimensionError(
                f"gradient must have length {n}, got {self.gradient.size}",
                expected=(n,),
                actual=self.gradient.shape,
            )
        for name, mat, rhs in (
            ("A_eq", self.A_eq, self.b_eq),
            ("A_ieq", self.A_ieq, self.b_ieq),
        ):
            if mat.shape[1] != n:
                raise DimensionError(
                    f"{name} must have {n} columns, got {mat.shape[1]}",
                    expected=(mat.shape[0], n),
                    actual=mat.shape,
                )
            if rhs.shape != (mat.shape[0],):
                raise DimensionError(
                    f"{name} has {mat.shape[0]} rows but its offset has {rhs.size}",
                    expected=(mat.shape[0],),
                    actual=rhs.shape,
                )
        if self.lower.shape != (n,) or self.upper.shape != (n,):
            raise DimensionError(
                f"Bounds mismatch: lower={self.lower.size}, upper={self.upper.size}, n={n}"
            )

    def objective(self, U: np.ndarray) -> float:
        """Evaluate (1/2) U' H U + g' U."""
        U = np.asarray(U, dtype=np.float64).ravel()
        return float(0.5 * U @ (self.hessian @ U) + self.gradient @ U)

    def __repr__(self) -> str:
        return (
            f"QpProblem(n={self.n_variables}, n_eq={self.n_eq}, "
            f"n_ieq={self.n_ieq}, layout={self.layout.value})"
        )
