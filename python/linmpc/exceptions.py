"""
linmpc Exception Classes
========================

Custom exceptions for linmpc error handling.

QP infeasibility and solver time-limit expiry are *not* exceptions: they are
reported through :class:`linmpc.result.Status`.
"""

from typing import Optional, Tuple


class LinmpcError(Exception):
    """Base exception for all linmpc errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DimensionError(LinmpcError):
    """
    Raised when matrix/vector dimensions are incompatible.

    Attributes:
        expected: Expected shape (if known)
        actual: Actual shape (if known)
    """

    def __init__(
        self,
        message: str,
        expected: Optional[Tuple[int, ...]] = None,
        actual: Optional[Tuple[int, ...]] = None,
    ) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Dimension mismatch: {message}")


class BlockOverflowError(DimensionError):
    """
    Raised when a sparse block does not fit into the target matrix
    at the requested offset.
    """

    def __init__(
        self,
        target_shape: Tuple[int, int],
        block_shape: Tuple[int, int],
        offset: Tuple[int, int],
    ) -> None:
        self.target_shape = tuple(target_shape)
        self.block_shape = tuple(block_shape)
        self.offset = tuple(offset)
        super().__init__(
            f"block of shape {self.block_shape} at offset {self.offset} "
            f"overflows target of shape {self.target_shape}",
            expected=self.target_shape,
            actual=(offset[0] + block_shape[0], offset[1] + block_shape[1]),
        )


class InvalidInputError(LinmpcError):
    """
    Raised when input data is invalid.

    Examples: NaN values, negative weights, non-positive horizon.
    """

    def __init__(self, message: str) -> None:
        super().__init__(f"Invalid input: {message}")


class SolverStateError(LinmpcError):
    """
    Raised when a solver or controller operation is called in the wrong
    lifecycle state (e.g. updating before initialization).
    """

    def __init__(self, message: str) -> None:
        super().__init__(f"Invalid solver state: {message}")
