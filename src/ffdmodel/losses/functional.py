r"""Loss functions, evaluation metrics, and related utilities."""

from typing import Optional, Union

from torch import Tensor

from ..core.typing import Array
from ..spatial.nonrigid import FreeFormDeformation


__all__ = (
    "be_loss",
    "bending_energy",
    "bending_loss",
    "reduce_loss",
)


def reduce_loss(loss: Tensor, reduction: str = "mean", mask: Optional[Tensor] = None) -> Tensor:
    r"""Reduce loss computed at each point."""
    if reduction not in ("mean", "sum", "none"):
        raise ValueError("reduce_loss() 'reduction' must be 'mean', 'sum' or 'none'")
    if reduction == "none":
        return loss
    if mask is None:
        return loss.mean() if reduction == "mean" else loss.sum()
    value = loss.mul(mask).sum()
    if reduction == "mean":
        numel = mask.expand_as(loss).sum()
        value = value.div(numel)
    return value


def bending_energy(
    transform: FreeFormDeformation,
    points: Union[Array, Tensor],
    reduction: str = "mean",
    mask: Optional[Tensor] = None,
) -> Tensor:
    r"""Bending energy of cubic B-spline free-form deformation evaluated at given points.

    Args:
        transform: Free-form deformation.
        points: World coordinates of points at which to evaluate the curvature operator
            as tensor of shape ``(..., 3)``.
        reduction: Specifies the reduction to apply to the output: 'none' | 'mean' | 'sum'.
        mask: Optional mask of points to include in the reduction as tensor of shape ``(...)``.

    Returns:
        Bending energy.

    """
    if not callable(getattr(transform, "curvature_operator", None)):
        raise TypeError("bending_energy() 'transform' must implement curvature_operator()")
    loss = transform.curvature_operator(points)
    return reduce_loss(loss, reduction, mask=mask)


be_loss = bending_energy
bending_loss = bending_energy
