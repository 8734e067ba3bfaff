"""
linmpc Result Classes
=====================

Data classes for solver results and status.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np


class Status(Enum):
    """
    Solver status codes.

    Attributes:
        OPTIMAL: Solution found within tolerance
        OPTIMAL_INACCURATE: Solution found, tolerances only loosely met
        PRIMAL_INFEASIBLE: Problem has no feasible solution
        DUAL_INFEASIBLE: Problem is unbounded (objective → -∞)
        MAX_ITERATIONS: Maximum iteration limit reached
        TIME_LIMIT: Time limit exceeded
        NUMERICAL_ERROR: Numerical issues encountered (e.g. non-convex P)
        UNSOLVED: Problem not yet solved
    """
    OPTIMAL = "optimal"
    OPTIMAL_INACCURATE = "optimal_inaccurate"
    PRIMAL_INFEASIBLE = "primal_infeasible"
    DUAL_INFEASIBLE = "dual_infeasible"
    MAX_ITERATIONS = "max_iterations"
    TIME_LIMIT = "time_limit"
    NUMERICAL_ERROR = "numerical_error"
    UNSOLVED = "unsolved"

    def __str__(self) -> str:
        return self.value

    @property
    def is_successful(self) -> bool:
        """True if an optimal solution was found."""
        return self in (Status.OPTIMAL, Status.OPTIMAL_INACCURATE)

    @property
    def has_solution(self) -> bool:
        """True if a (possibly suboptimal) solution is available."""
        return self in (
            Status.OPTIMAL,
            Status.OPTIMAL_INACCURATE,
            Status.MAX_ITERATIONS,
            Status.TIME_LIMIT,
        )

    @property
    def is_primal_infeasible(self) -> bool:
        """True if the solver certified primal infeasibility."""
        return self == Status.PRIMAL_INFEASIBLE

    @classmethod
    def from_osqp(cls, status: str) -> "Status":
        """
        Map an OSQP status string (``res.info.status``) to a Status.

        Inaccurate infeasibility certificates are reported as the
        corresponding infeasible status.
        """
        text = str(status).strip().lower().replace("_", " ")
        if text.startswith("solved"):
            return cls.OPTIMAL_INACCURATE if "inaccurate" in text else cls.OPTIMAL
        if "primal infeasible" in text:
            return cls.PRIMAL_INFEASIBLE
        if "dual infeasible" in text:
            return cls.DUAL_INFEASIBLE
        if "maximum iterations" in text:
            return cls.MAX_ITERATIONS
        if "time limit" in text:
            return cls.TIME_LIMIT
        if "non convex" in text or "nonconvex" in text:
            return cls.NUMERICAL_ERROR
        return cls.UNSOLVED


@dataclass
class SolveResult:
    """
    Result of one QP solve.

    Attributes:
        status: Solver status
        objective: Objective value ½ x'Px + q'x (NaN if unavailable)
        x: Primal solution vector
        y: Dual solution vector (Lagrange multipliers)
        iterations: Number of iterations performed
        solve_time: Wall clock time in seconds

    Example:
        >>> result = session.solve()
        >>> if result.status.is_successful:
        ...     print(f"Optimal value: {result.objective}")
    """

    status: Status
    objective: float
    x: np.ndarray
    y: np.ndarray
    iterations: int
    solve_time: float
    setup_time: float = 0.0
    primal_residual: float = 0.0
    dual_residual: float = 0.0

    def __repr__(self) -> str:
        return (
            f"SolveResult({self.status}, obj={self.objective:.6g}, "
            f"iter={self.iterations}, solve_time={self.solve_time:.2e}s)"
        )

    @property
    def is_feasible(self) -> bool:
        """True unless the solver reported primal infeasibility."""
        return not self.status.is_primal_infeasible

    def summary(self) -> str:
        """One line per metric, for logs and interactive use."""
        rows = [
            ("status", str(self.status)),
            ("feasible", str(self.is_feasible)),
            ("objective", f"{self.objective:.10g}"),
            ("iterations", str(self.iterations)),
            ("setup time [s]", f"{self.setup_time:.3e}"),
            ("solve time [s]", f"{self.solve_time:.3e}"),
            ("primal residual", f"{self.primal_residual:.3e}"),
            ("dual residual", f"{self.dual_residual:.3e}"),
        ]
        return "\n".join(f"{name:<16} {value}" for name, value in rows)

    @classmethod
    def from_osqp(cls, raw_result: Any, n: int, m: int) -> "SolveResult":
        """
        Create SolveResult from an OSQP results object.

        OSQP leaves ``x``/``y`` empty (or filled with None) when no
        iterate is available; those are returned as NaN vectors.
        """
        info = raw_result.info
        x = _as_vector(raw_result.x, n)
        y = _as_vector(raw_result.y, m)

        return cls(
            status=Status.from_osqp(info.status),
            objective=float(info.obj_val) if info.obj_val is not None else float("nan"),
            x=x,
            y=y,
            iterations=int(info.iter),
            solve_time=float(getattr(info, "solve_time", 0.0)),
            primal_residual=_info_float(info, "pri_res", "prim_res"),
            dual_residual=_info_float(info, "dua_res", "dual_res"),
            setup_time=float(getattr(info, "setup_time", 0.0)),
        )


def _info_float(info: Any, *names: str) -> float:
    # OSQP renamed some info fields between releases
    for name in names:
        value = getattr(info, name, None)
        if value is not None:
            return float(value)
    return 0.0


def _as_vector(values: Any, size: int) -> np.ndarray:
    if values is None:
        return np.full(size, np.nan)
    vec = np.asarray(values, dtype=np.float64).ravel()
    if vec.size != size:
        return np.full(size, np.nan)
    return vec
