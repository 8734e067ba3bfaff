"""
Sparse Matrix Utilities
=======================

Small helpers on top of ``scipy.sparse`` used to assemble MPC and QP
matrices: block insertion, vertical concatenation and matrix powers.
"""

from __future__ import annotations

from typing import Union

import numpy as np
from scipy import sparse

from .exceptions import BlockOverflowError, DimensionError, InvalidInputError

MatrixLike = Union[np.ndarray, sparse.spmatrix]


def sparse_from_dense(matrix: MatrixLike) -> sparse.csc_matrix:
    """
    Convert a dense (or sparse) matrix to CSC format.

    Explicit zeros are dropped so the sparsity pattern only holds nonzeros.
    """
    if sparse.issparse(matrix):
        result = sparse.csc_matrix(matrix, dtype=np.float64)
    else:
        dense = np.asarray(matrix, dtype=np.float64)
        if dense.ndim == 1:
            dense = dense.reshape(1, -1)
        if dense.ndim != 2:
            raise DimensionError(f"expected a 2D matrix, got shape {dense.shape}")
        result = sparse.csc_matrix(dense)
    result.eliminate_zeros()
    return result


def set_sparse_block(
    target: MatrixLike,
    block: MatrixLike,
    row_offset: int,
    col_offset: int,
) -> sparse.csc_matrix:
    """
    Write every nonzero of ``block`` into ``target`` at the given offset.

    Entries of ``target`` outside the nonzero pattern of ``block`` are left
    untouched. The input matrices are not modified.

    Args:
        target: Matrix receiving the block
        block: Block to insert
        row_offset: Row index of the block's top-left corner in target
        col_offset: Column index of the block's top-left corner in target

    Returns:
        New CSC matrix with the block written in

    Raises:
        BlockOverflowError: If the block does not fit at the offset
    """
    target = sparse_from_dense(target)
    block = sparse_from_dense(block)

    n_rows, n_cols = target.shape
    b_rows, b_cols = block.shape
    if (
        row_offset < 0
        or col_offset < 0
        or row_offset + b_rows > n_rows
        or col_offset + b_cols > n_cols
    ):
        raise BlockOverflowError(target.shape, block.shape, (row_offset, col_offset))

    coo = block.tocoo()
    if coo.nnz == 0:
        return target

    result = target.tolil(copy=True)
    result[coo.row + row_offset, coo.col + col_offset] = coo.data
    return result.tocsc()


def concatenate_matrices(upper: MatrixLike, lower: MatrixLike) -> sparse.csc_matrix:
    """
    Stack two matrices vertically: ``[upper; lower]``.

    Raises:
        DimensionError: If the column counts differ
    """
    upper = sparse_from_dense(upper)
    lower = sparse_from_dense(lower)

    if upper.shape[1] != lower.shape[1]:
        raise DimensionError(
            f"cannot stack {upper.shape} on top of {lower.shape}",
            expected=(lower.shape[0], upper.shape[1]),
            actual=lower.shape,
        )

    stacked = sparse.csc_matrix(
        (upper.shape[0] + lower.shape[0], upper.shape[1]), dtype=np.float64
    )
    stacked = set_sparse_block(stacked, upper, 0, 0)
    return set_sparse_block(stacked, lower, upper.shape[0], 0)


def matrix_power(matrix: MatrixLike, power: int) -> sparse.csc_matrix:
    """
    Raise a square matrix to a non-negative integer power.

    ``power == 0`` gives the identity.
    """
    matrix = sparse_from_dense(matrix)
    if matrix.shape[0] != matrix.shape[1]:
        raise DimensionError(f"matrix must be square, got shape {matrix.shape}")
    if power < 0:
        raise InvalidInputError(f"power must be non-negative, got {power}")

    result = sparse.identity(matrix.shape[0], dtype=np.float64, format="csc")
    for _ in range(power):
        result = (result @ matrix).tocsc()
    return result
