"""
Reference Trajectories
======================

Utilities for generating stacked output references Y_d for MPC tracking.

References are time-major: for n_y outputs the vector is
[y_0; y_1; ...; y_{N-1}] with each y_k of length n_y.
"""

from __future__ import annotations

from typing import Union

import numpy as np

from ..exceptions import DimensionError, InvalidInputError

ArrayLike = Union[float, np.ndarray]


def constant_reference(y_ref: ArrayLike, horizon: int) -> np.ndarray:
    """
    Create constant (setpoint) reference.

    Args:
        y_ref: Target output (n_y,) or scalar
        horizon: Number of steps

    Returns:
        Stacked reference (horizon*n_y,)

    Example:
        >>> Y_d = constant_reference([1.0], horizon=50)
    """
    y_ref = np.atleast_1d(np.asarray(y_ref, dtype=np.float64))
    return np.tile(y_ref, horizon)


def step_reference(
    y_initial: ArrayLike,
    y_final: ArrayLike,
    horizon: int,
    step_index: int = 0,
) -> np.ndarray:
    """
    Create step reference.

    Args:
        y_initial: Output before the step
        y_final: Output from ``step_index`` on
        horizon: Number of steps
        step_index: Step at which the change occurs

    Returns:
        Stacked reference (horizon*n_y,)
    """
    y_initial = np.atleast_1d(np.asarray(y_initial, dtype=np.float64))
    y_final = np.atleast_1d(np.asarray(y_final, dtype=np.float64))
    if y_initial.shape != y_final.shape:
        raise DimensionError(
            f"y_initial {y_initial.shape} and y_final {y_final.shape} differ",
            expected=y_initial.shape,
            actual=y_final.shape,
        )

    outputs = np.zeros((horizon, len(y_initial)))
    outputs[:step_index] = y_initial
    outputs[step_index:] = y_final
    return outputs.ravel()


def ramp_reference(length: int, half_period: int, rate: float) -> np.ndarray:
    """
    Create a "lawnmower" ramp for a single output.

    Starts at 0 and alternates between holding for ``half_period`` steps
    and climbing by ``rate`` per step for ``half_period`` steps.

    Args:
        length: Number of samples
        half_period: Length of each hold/climb phase
        rate: Increment per step while climbing

    Returns:
        Reference (length,)

    Example:
        >>> Y_d_full = ramp_reference(130, half_period=20, rate=0.1)
    """
    if half_period < 1:
        raise InvalidInputError(f"half_period must be positive, got {half_period}")

    ramp = np.zeros(length)
    for i in range(1, length):
        climbing = (i // half_period) % 2 == 1
        ramp[i] = ramp[i - 1] + rate if climbing else ramp[i - 1]
    return ramp


def sinusoidal_reference(
    amplitude: ArrayLike,
    frequency: ArrayLike,
    horizon: int,
    dt: float = 1.0,
    phase: ArrayLike = 0.0,
    offset: ArrayLike = 0.0,
) -> np.ndarray:
    """
    Create sinusoidal reference.

    y_ref[k, i] = amplitude[i] * sin(2*pi*frequency[i]*k*dt + phase[i]) + offset[i]

    Args:
        amplitude: Amplitude for each output
        frequency: Frequency (Hz) for each output
        horizon: Number of steps
        dt: Time step
        phase: Phase offset (radians)
        offset: DC offset

    Returns:
        Stacked reference (horizon*n_y,)
    """
    amplitude = np.atleast_1d(np.asarray(amplitude, dtype=np.float64))
    frequency = np.asarray(frequency, dtype=np.float64)
    phase = np.asarray(phase, dtype=np.float64)
    offset = np.asarray(offset, dtype=np.float64)

    t = np.arange(horizon)[:, None] * dt
    outputs = amplitude * np.sin(2 * np.pi * frequency * t + phase) + offset
    return outputs.reshape(horizon, outputs.shape[-1]).ravel()


def reference_window(
    full: np.ndarray,
    start: int,
    horizon: int,
    n_y: int = 1,
) -> np.ndarray:
    """
    Slice the reference for the control step starting at ``start``.

    If the window extends beyond the reference, the last sample is repeated.

    Args:
        full: Stacked reference (T*n_y,)
        start: First step of the window
        horizon: Window length N
        n_y: Number of outputs

    Returns:
        Stacked reference window (horizon*n_y,)
    """
    full = np.asarray(full, dtype=np.float64).ravel()
    if full.size == 0 or full.size % n_y != 0:
        raise DimensionError(
            f"reference of length {full.size} is not a multiple of n_y={n_y}"
        )
    samples = full.reshape(-1, n_y)
    if start < 0:
        raise InvalidInputError(f"start must be non-negative, got {start}")

    indices = np.minimum(np.arange(start, start + horizon), len(samples) - 1)
    return samples[indices].ravel()
