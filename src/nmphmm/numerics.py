"""
Log-domain helpers and tensor contraction used by both inference engines.
"""

from __future__ import annotations

import math
from typing import Sequence

import torch

from nmphmm.errors import ShapeError

LOG_EPSILON = math.exp(-16)


def stable_log(x: torch.Tensor) -> torch.Tensor:
    """
    Numerically safe logarithm, log(x + exp(-16)).

    Zero probabilities map to -16 instead of -inf so that sums and
    differences of log-beliefs stay finite.
    """
    return torch.log(x + LOG_EPSILON)


def contract(tensor: torch.Tensor, belief: torch.Tensor, axis: int) -> torch.Tensor:
    """
    Contract a tensor with a belief vector along one axis.

    result[..., ...] = sum_k tensor[..., k, ...] * belief[k]

    Args:
        tensor: Tensor of any rank >= 1.
        belief: Vector whose length matches tensor.shape[axis].
        axis: Axis to sum out. Negative values count from the end.

    Returns:
        Tensor with `axis` removed and the remaining axes in their
        original order.

    Raises:
        ShapeError: If belief is not a vector, axis is out of range, or the
            lengths do not match.
    """
    ndim = tensor.dim()
    if belief.dim() != 1:
        raise ShapeError(f"belief must be a vector, got shape {tuple(belief.shape)}")
    if not -ndim <= axis < ndim:
        raise ShapeError(f"axis {axis} out of range for tensor of rank {ndim}")
    axis = axis % ndim
    if belief.shape[0] != tensor.shape[axis]:
        raise ShapeError(
            f"belief length {belief.shape[0]} does not match tensor size "
            f"{tensor.shape[axis]} along axis {axis}"
        )
    # tensordot keeps the free axes of `tensor` in order
    return torch.tensordot(tensor, belief.to(tensor.dtype), dims=([axis], [0]))


def contract_except(
    tensor: torch.Tensor,
    beliefs: Sequence[torch.Tensor],
    keep: int,
) -> torch.Tensor:
    """
    Contract every axis of `tensor` except `keep`.

    Axis k is contracted against beliefs[k]; beliefs[keep] is ignored. This
    is the expectation of the tensor under the product of the other
    factors' beliefs, as a function of the kept factor's state.

    Args:
        tensor: Tensor with one axis per factor.
        beliefs: One belief vector per axis of `tensor`.
        keep: Axis left uncontracted.

    Returns:
        Vector of length tensor.shape[keep].
    """
    if len(beliefs) != tensor.dim():
        raise ShapeError(
            f"expected {tensor.dim()} belief vectors, got {len(beliefs)}"
        )
    result = tensor
    # Highest axis first so lower axis positions are unaffected
    for axis in reversed(range(tensor.dim())):
        if axis == keep:
            continue
        result = contract(result, beliefs[axis], axis)
    return result


def normalize_columns(x: torch.Tensor) -> torch.Tensor:
    """Scale each column of a non-negative matrix to sum to one."""
    return x / x.sum(dim=0, keepdim=True)
