"""
pytest configuration and fixtures for linmpc tests.
"""

import pytest
import numpy as np


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def double_integrator():
    """
    Double integrator with position output.

    x = [position, velocity], u = acceleration, dt = 0.1
    """
    from linmpc import LinearSystem

    dt = 0.1
    A = np.array([[1.0, dt], [0.0, 1.0]])
    B = np.array([[0.5 * dt**2], [dt]])
    C = np.array([[1.0, 0.0]])
    return LinearSystem(A, B, C)


@pytest.fixture
def planar_system():
    """2D double integrator observed through x + y (n_x=4, n_u=2, n_y=1)."""
    from linmpc import double_integrator_2d

    return double_integrator_2d(dt=0.05)


@pytest.fixture
def tight_settings():
    """OSQP settings accurate enough to compare against closed forms."""
    return {
        "eps_abs": 1e-9,
        "eps_rel": 1e-9,
        "max_iter": 50000,
        "polishing": True,
    }


@pytest.fixture
def simple_qp():
    """
    Unconstrained QP with closed-form solution.

    minimize: (1/2)x'Hx + g'x
    where H = 2I, g = [-2, -4]

    Solution: x = H^{-1}(-g) = [1, 2], obj = -5
    """
    H = np.array([
        [2.0, 0.0],
        [0.0, 2.0],
    ])
    g = np.array([-2.0, -4.0])

    return {
        "hessian": H,
        "gradient": g,
        "expected_obj": -5.0,
        "expected_x": np.array([1.0, 2.0]),
    }


@pytest.fixture
def inequality_qp():
    """
    QP with one active inequality.

    minimize: x^2 + y^2 - 2x - 4y
    subject to: x + y - 2 <= 0

    Optimal: x=0.5, y=1.5, obj=-4.5
    """
    H = np.array([
        [2.0, 0.0],
        [0.0, 2.0],
    ])
    g = np.array([-2.0, -4.0])
    A_ieq = np.array([[1.0, 1.0]])
    b_ieq = np.array([-2.0])

    return {
        "hessian": H,
        "gradient": g,
        "A_ieq": A_ieq,
        "b_ieq": b_ieq,
        "expected_obj": -4.5,
        "expected_x": np.array([0.5, 1.5]),
    }


# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks integration tests")
