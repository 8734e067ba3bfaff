"""Input validation utilities."""

from typing import Any, Tuple

import numpy as np

from ..exceptions import DimensionError, InvalidInputError


def as_vector(values: Any, length: int, name: str, allow_nan: bool = False) -> np.ndarray:
    """
    Convert ``values`` to a 1D float vector of the given length.

    Column/row vectors are flattened. Scalars are not broadcast.

    Raises:
        DimensionError: If the length does not match
        InvalidInputError: If the vector contains NaN values (unless allowed)
    """
    vec = np.asarray(values, dtype=np.float64).ravel()
    if vec.shape != (length,):
        raise DimensionError(
            f"{name} must have length {length}, got {vec.size}",
            expected=(length,),
            actual=vec.shape,
        )
    if not allow_nan and np.any(np.isnan(vec)):
        raise InvalidInputError(f"{name} contains NaN values")
    return vec


def broadcast_vector(values: Any, length: int, name: str) -> np.ndarray:
    """Like :func:`as_vector`, but a scalar is repeated ``length`` times."""
    if np.ndim(values) == 0:
        return np.full(length, float(values))
    return as_vector(values, length, name)


def check_shape(matrix: Any, expected: Tuple[int, int], name: str) -> None:
    """
    Check a matrix shape.

    Raises:
        DimensionError: If ``matrix.shape != expected``
    """
    actual = tuple(matrix.shape)
    if actual != tuple(expected):
        raise DimensionError(
            f"{name} must be {expected}, got {actual}",
            expected=tuple(expected),
            actual=actual,
        )


def check_non_negative(value: float, name: str) -> float:
    """Return ``value`` as float, rejecting negative or NaN weights."""
    value = float(value)
    if np.isnan(value) or value < 0:
        raise InvalidInputError(f"{name} must be non-negative, got {value}")
    return value
