"""linmpc Solver Interface."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Tuple

import numpy as np
import osqp
from scipy import sparse

from .exceptions import DimensionError, SolverStateError
from .qp import ConstraintLayout, QpProblem
from .result import SolveResult, Status
from .sparse_utils import set_sparse_block

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "eps_abs": 1e-6,
    "eps_rel": 1e-6,
    "max_iter": 10000,
    "adaptive_rho": True,
    "warm_starting": True,
    "polishing": False,
    "verbose": False,
}

_RENAMED_SETTINGS = {"polish": "polishing", "warm_start": "warm_starting"}


def resolve_settings(params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge user parameters into :data:`DEFAULT_SETTINGS`.

    Accepts the aliases ``tolerance``/``tol`` (sets both eps values),
    ``max_iterations``/``max_iters`` and the pre-1.0 OSQP names ``polish``
    and ``warm_start``. Remaining keys are passed to OSQP as-is.
    """
    params = dict(params or {})
    settings = dict(DEFAULT_SETTINGS)

    tol = params.pop("tolerance", params.pop("tol", None))
    if tol is not None:
        settings["eps_abs"] = settings["eps_rel"] = float(tol)

    max_iters = params.pop("max_iterations", params.pop("max_iters", None))
    if max_iters is not None:
        settings["max_iter"] = int(max_iters)

    for old, new in _RENAMED_SETTINGS.items():
        if old in params:
            settings[new] = params.pop(old)

    settings.update(params)
    return settings


class OsqpSession:
    """
    Persistent OSQP session for a sequence of structurally identical QPs.

    The Hessian and constraint matrix are loaded once by :meth:`initialize`.
    Later steps only replace the gradient (and, optionally, the trailing
    part of the upper bound vector), and OSQP warm-starts from the
    previous solution.

    Args:
        settings: OSQP settings overriding :data:`DEFAULT_SETTINGS`

    Example:
        >>> session = OsqpSession()
        >>> session.initialize(problem)
        >>> result = session.solve()
        >>> session.update_gradient(new_gradient)
        >>> result = session.solve()
    """

    def __init__(self, settings: Optional[Dict[str, Any]] = None) -> None:
        self._settings = resolve_settings(settings)
        self._solver: Optional[osqp.OSQP] = None
        self._n = 0
        self._m = 0
        self._n_ieq = 0
        self._gradient: Optional[np.ndarray] = None
        self._lower: Optional[np.ndarray] = None
        self._upper: Optional[np.ndarray] = None
        self._last_x: Optional[np.ndarray] = None
        self._last_status: Optional[Status] = None

    @property
    def settings(self) -> Dict[str, Any]:
        """Effective OSQP settings."""
        return dict(self._settings)

    @property
    def is_initialized(self) -> bool:
        """Whether a problem has been loaded."""
        return self._solver is not None

    @property
    def n_variables(self) -> int:
        """Number of decision variables of the loaded problem."""
        return self._n

    @property
    def n_constraints(self) -> int:
        """Number of rows of the stacked constraint matrix."""
        return self._m

    @property
    def gradient(self) -> np.ndarray:
        """Gradient currently loaded in the solver."""
        self._check_initialized()
        return self._gradient.copy()

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """(lower, upper) constraint bounds currently loaded in the solver."""
        self._check_initialized()
        return self._lower.copy(), self._upper.copy()

    @property
    def last_status(self) -> Optional[Status]:
        """Status of the most recent solve (None before the first solve)."""
        return self._last_status

    def initialize(
        self,
        problem: QpProblem,
        time_limit: float = 0.0,
        verbose: Optional[bool] = None,
    ) -> None:
        """
        Load a QP and (re)start the session.

        Args:
            problem: QP to load
            time_limit: Solver time limit in seconds (0 disables it)
            verbose: Print solver progress (overrides settings)

        Raises:
            DimensionError: If the problem blocks are inconsistent
        """
        problem.validate()
        A, lower, upper = stack_constraints(problem)

        settings = dict(self._settings)
        if verbose is not None:
            settings["verbose"] = bool(verbose)
        if time_limit and time_limit > 0:
            settings["time_limit"] = float(time_limit)

        solver = osqp.OSQP()
        solver.setup(
            P=sparse.triu(problem.hessian, format="csc"),
            q=problem.gradient,
            A=A,
            l=lower,
            u=upper,
            **settings,
        )

        self._solver = solver
        self._n = problem.n_variables
        self._m = A.shape[0]
        self._n_ieq = problem.n_ieq
        self._gradient = problem.gradient.copy()
        self._lower = lower
        self._upper = upper
        self._last_x = None
        self._last_status = None

        logger.debug(
            "OSQP session initialized: n=%d, m=%d (%d inequality rows), layout=%s",
            self._n, self._m, self._n_ieq, problem.layout.value,
        )

    def update_gradient(self, gradient: np.ndarray) -> None:
        """
        Replace the gradient, keeping Hessian and constraints.

        The next solve warm-starts from the previous solution.
        """
        self._check_initialized()
        gradient = self._check_length(gradient, self._n, "gradient")

        self._solver.update(q=gradient)
        self._gradient = gradient
        self._warm_start()

    def update_gradient_and_inequality_bound(
        self,
        gradient: np.ndarray,
        ieq_upper: np.ndarray,
    ) -> None:
        """
        Replace the gradient and the trailing slice of the upper bounds.

        ``ieq_upper`` overwrites the last ``len(ieq_upper)`` entries of the
        upper bound vector, which belong to the inequality rows.
        """
        self._check_initialized()
        gradient = self._check_length(gradient, self._n, "gradient")
        ieq_upper = np.asarray(ieq_upper, dtype=np.float64).ravel()
        if ieq_upper.size > self._n_ieq:
            raise DimensionError(
                f"inequality bound slice has {ieq_upper.size} entries but the "
                f"problem only has {self._n_ieq} inequality rows",
                expected=(self._n_ieq,),
                actual=ieq_upper.shape,
            )

        upper = self._upper.copy()
        if ieq_upper.size:
            upper[-ieq_upper.size:] = ieq_upper

        self._solver.update(q=gradient, u=upper)
        self._gradient = gradient
        self._upper = upper
        self._warm_start()

    def solve(self) -> SolveResult:
        """
        Run the solver.

        Blocks until convergence, the iteration limit or the time limit.
        Infeasibility and time-limit expiry are reported via the status.
        """
        self._check_initialized()
        start_time = time.perf_counter()
        raw = self._solver.solve(raise_error=False)
        result = SolveResult.from_osqp(raw, self._n, self._m)
        result.solve_time = time.perf_counter() - start_time

        self._last_status = result.status
        if result.status.has_solution and np.all(np.isfinite(result.x)):
            self._last_x = result.x.copy()

        if result.status.is_primal_infeasible:
            logger.warning("QP is primal infeasible")
        elif result.status == Status.TIME_LIMIT:
            logger.info(
                "Solver time limit reached after %d iterations", result.iterations
            )
        else:
            logger.debug(
                "Solved in %d iterations (%s)", result.iterations, result.status
            )
        return result

    def is_feasible(self, status: Optional[Status] = None) -> bool:
        """
        True unless ``status`` (default: the last solve) is primal infeasible.

        Raises:
            SolverStateError: If no status is given and nothing was solved yet
        """
        if status is None:
            if self._last_status is None:
                raise SolverStateError("is_feasible() called before solve()")
            status = self._last_status
        return not status.is_primal_infeasible

    def _warm_start(self) -> None:
        if self._last_x is not None and self._settings.get("warm_starting", True):
            self._solver.warm_start(x=self._last_x)

    def _check_initialized(self) -> None:
        if self._solver is None:
            raise SolverStateError("solver session has not been initialized")

    @staticmethod
    def _check_length(vector: np.ndarray, length: int, name: str) -> np.ndarray:
        vector = np.asarray(vector, dtype=np.float64).ravel()
        if vector.shape != (length,):
            raise DimensionError(
                f"{name} must have length {length}, got {vector.size}",
                expected=(length,),
                actual=vector.shape,
            )
        return vector

    def __repr__(self) -> str:
        return (
            f"OsqpSession(initialized={self.is_initialized}, "
            f"n={self._n}, m={self._m}, last_status={self._last_status})"
        )


def stack_constraints(
    problem: QpProblem,
) -> Tuple[sparse.csc_matrix, np.ndarray, np.ndarray]:
    """
    Build the solver's ``l <= A x <= u`` data for a QpProblem.

    BOX_AFFINE:       A = [I; A_eq; A_ieq]
                      l = [lower; -b_eq; -inf], u = [upper; -b_eq; -b_ieq]
    INEQUALITY_ONLY:  A = [A_eq; A_ieq]
                      l = [-b_eq; -inf],        u = [-b_eq; -b_ieq]

    Returns:
        (A, l, u) tuple
    """
    n = problem.n_variables
    m_eq, m_ieq = problem.n_eq, problem.n_ieq

    if problem.layout == ConstraintLayout.BOX_AFFINE:
        n_box = n
    else:
        n_box = 0
        if m_eq + m_ieq == 0:
            raise DimensionError(
                "inequality-only layout needs at least one constraint row"
            )

    A = sparse.csc_matrix((n_box + m_eq + m_ieq, n), dtype=np.float64)
    if n_box:
        A = set_sparse_block(A, sparse.identity(n, format="csc"), 0, 0)
    A = set_sparse_block(A, problem.A_eq, n_box, 0)
    A = set_sparse_block(A, problem.A_ieq, n_box + m_eq, 0)

    lower_parts = [-problem.b_eq, np.full(m_ieq, -np.inf)]
    upper_parts = [-problem.b_eq, -problem.b_ieq]
    if n_box:
        lower_parts.insert(0, problem.lower)
        upper_parts.insert(0, problem.upper)

    return A, np.concatenate(lower_parts), np.concatenate(upper_parts)
