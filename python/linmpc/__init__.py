"""
linmpc: Linear MPC to QP Formulation Engine
===========================================

linmpc condenses discrete-time linear dynamics over a prediction horizon,
formulates reference-tracking Model Predictive Control as a convex
Quadratic Program and drives a persistent OSQP session that is updated
incrementally at every control step.

Quick Start
-----------
>>> import numpy as np
>>> import linmpc
>>>
>>> system = linmpc.double_integrator(dt=0.1)
>>> mpc = linmpc.MpcController(
...     system,
...     horizon=30,
...     Y_d=linmpc.constant_reference(1.0, 30),
...     x0=np.zeros(2),
...     weights=(10.0, 1.0),
...     bounds=linmpc.BoundSpec(-1.0, 1.0),
... )
>>> mpc.initialize_solver()
>>> U = mpc.solve()
>>> mpc.is_feasible()
True

The QP building blocks are also usable on their own:

>>> from linmpc import QpProblem, OsqpSession
>>> session = OsqpSession({"eps_abs": 1e-8})
>>> session.initialize(QpProblem(hessian=H, gradient=g))
>>> result = session.solve()
"""

__version__ = "0.1.0"
__author__ = "linmpc Contributors"

# Import public API
from .exceptions import (
    LinmpcError,
    DimensionError,
    BlockOverflowError,
    InvalidInputError,
    SolverStateError,
)
from .result import SolveResult, Status
from .sparse_utils import (
    concatenate_matrices,
    matrix_power,
    set_sparse_block,
    sparse_from_dense,
)
from .qp import ConstraintLayout, QpProblem
from .solver import DEFAULT_SETTINGS, OsqpSession
from .mpc import (
    BoundSpec,
    ControllerState,
    CostCache,
    CostVariant,
    LinearSystem,
    MatrixWeights,
    MpcController,
    MpcType,
    RolloutMatrices,
    ScalarWeights,
    as_weight_spec,
    build_rollout,
    constant_reference,
    deinterleave,
    double_integrator,
    double_integrator_2d,
    ramp_reference,
    reference_window,
    select_variant,
    sinusoidal_reference,
    step_reference,
)

__all__ = [
    # Version
    "__version__",

    # Controller
    "MpcController",
    "ControllerState",
    "MpcType",
    "select_variant",
    "CostVariant",
    "CostCache",

    # Model
    "LinearSystem",
    "RolloutMatrices",
    "build_rollout",
    "double_integrator",
    "double_integrator_2d",
    "ScalarWeights",
    "MatrixWeights",
    "BoundSpec",
    "as_weight_spec",

    # QP and solver
    "QpProblem",
    "ConstraintLayout",
    "OsqpSession",
    "DEFAULT_SETTINGS",
    "SolveResult",
    "Status",

    # Sparse helpers
    "set_sparse_block",
    "concatenate_matrices",
    "matrix_power",
    "sparse_from_dense",

    # References
    "constant_reference",
    "step_reference",
    "ramp_reference",
    "sinusoidal_reference",
    "reference_window",
    "deinterleave",

    # Exceptions
    "LinmpcError",
    "DimensionError",
    "BlockOverflowError",
    "InvalidInputError",
    "SolverStateError",
]


def info() -> str:
    """Return information about the linmpc installation."""
    import platform

    import numpy
    import osqp
    import scipy

    lines = [
        f"linmpc version: {__version__}",
        f"Python version: {platform.python_version()}",
        f"Platform: {platform.platform()}",
        f"NumPy version: {numpy.__version__}",
        f"SciPy version: {scipy.__version__}",
        f"OSQP version: {getattr(osqp, '__version__', 'unknown')}",
    ]

    return "\n".join(lines)
