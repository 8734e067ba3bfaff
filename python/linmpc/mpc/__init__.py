"""
linmpc Model Predictive Control (MPC)
=====================================

Reference-tracking linear MPC on top of a persistent OSQP session.

Quick Start
-----------
>>> import numpy as np
>>> from linmpc.mpc import LinearSystem, MpcController, BoundSpec
>>>
>>> # x_{k+1} = A x_k + B u_k,  y_k = C x_k
>>> A = np.array([[1, 0.1], [0, 1]])
>>> B = np.array([[0.005], [0.1]])
>>> C = np.array([[1, 0]])
>>> system = LinearSystem(A, B, C)
>>>
>>> mpc = MpcController(
...     system,
...     horizon=20,
...     Y_d=np.ones(20),
...     x0=np.zeros(2),
...     weights=(10.0, 1.0),          # Q, R
...     bounds=BoundSpec(-1.0, 1.0),  # input bounds
... )
>>> mpc.initialize_solver()
>>> U = mpc.solve()
>>> u_apply = mpc.extract_u(U)[0][0]

Receding Horizon
----------------
>>> x0 = mpc.calculate_x(U)[:2]     # state after the first input
>>> mpc.update_solver(Y_d_next, x0)  # gradient-only update
>>> U = mpc.solve()

Theory
------
With the stacked inputs U = [u_0; ...; u_{N-1}], the dynamics are condensed
into X = A_mpc U + B_mpc x0 and Y = C_mpc X. The controller minimizes

    Q ||Y - Y_d||^2 + R ||U||^2                          (scalar weights)
    W_y ||Y - Y_d||^2 + ||W_u U||^2 + ||W_x X||^2        (matrix weights)

optionally subject to u_lower <= u_k <= u_upper and x_lower <= x_k <= x_upper.
"""

from .dynamics import LinearSystem, double_integrator, double_integrator_2d
from .rollout import RolloutMatrices, build_rollout
from .weights import BoundSpec, MatrixWeights, ScalarWeights, as_weight_spec
from .variants import CostCache, CostVariant, MpcType, select_variant
from .controller import ControllerState, MpcController, deinterleave
from .reference import (
    constant_reference,
    ramp_reference,
    reference_window,
    sinusoidal_reference,
    step_reference,
)

__all__ = [
    # Controller
    "MpcController",
    "ControllerState",
    "deinterleave",
    # Dynamics
    "LinearSystem",
    "double_integrator",
    "double_integrator_2d",
    "RolloutMatrices",
    "build_rollout",
    # Cost
    "ScalarWeights",
    "MatrixWeights",
    "BoundSpec",
    "as_weight_spec",
    "MpcType",
    "CostVariant",
    "CostCache",
    "select_variant",
    # References
    "constant_reference",
    "step_reference",
    "ramp_reference",
    "sinusoidal_reference",
    "reference_window",
]
