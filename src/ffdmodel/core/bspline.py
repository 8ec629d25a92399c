r"""Functions for cubic B-spline interpolation."""

from typing import Optional, Sequence, Union

import torch
from torch import Tensor
from torch.nn import functional as F

from .enum import SpatialDim, SpatialDimArg
from .tensor import move_dim


def cubic_bspline_value(x: float, derivative: int = 0) -> float:
    r"""Evaluate 1-dimensional cubic B-spline centered at zero."""
    if derivative < 0 or derivative > 2:
        raise ValueError("cubic_bspline_value() 'derivative' must be 0, 1, or 2")
    t = abs(x)
    # outside local support region
    if t >= 2:
        return 0.0
    # 0-th order derivative
    if derivative == 0:
        if t < 1:
            return 2 / 3 + (0.5 * t - 1) * t**2
        return -((t - 2) ** 3) / 6
    # 1st order derivative
    if derivative == 1:
        if t < 1:
            return (1.5 * t - 2.0) * x
        if x < 0:
            return 0.5 * (t - 2) ** 2
        return -0.5 * (t - 2) ** 2
    # 2nd oder derivative
    if t < 1:
        return 3 * t - 2
    return -t + 2


def cubic_bspline_basis(u: Union[float, Tensor], derivative: int = 0) -> Tensor:
    r"""Evaluate the four cubic B-spline basis functions within a unit grid cell.

    The returned weights ``(b0, b1, b2, b3)`` are those of the control points at offsets
    ``(-1, 0, 1, 2)`` relative to the grid cell which contains the point at local coordinate
    ``u``. These are the piecewise polynomials

    .. math::

        b_0(u) = (1 - u)^3 / 6,\quad
        b_1(u) = (3 u^3 - 6 u^2 + 4) / 6,\quad
        b_2(u) = (-3 u^3 + 3 u^2 + 3 u + 1) / 6,\quad
        b_3(u) = u^3 / 6

    which sum up to one for any ``u``.

    Args:
        u: Local coordinates in ``[0, 1)`` as tensor of arbitrary shape.
        derivative: Order of derivative with respect to ``u``.

    Returns:
        Tensor of shape ``u.shape + (4,)``.

    """
    if not isinstance(u, Tensor):
        u = torch.tensor(u, dtype=torch.float64)
    if not u.is_floating_point():
        u = u.type(torch.float)
    if derivative < 0:
        raise ValueError("cubic_bspline_basis() 'derivative' must be non-negative")
    # Adapted from MIRTK ComputeBSplineIndicesAndWeights()
    if derivative == 0:
        w3 = u.pow(3).div(6)
        w0 = u.mul(u.sub(1)).mul(0.5).add(1 / 6).sub(w3)
        w2 = u.add(w0).sub(w3.mul(2))
        w1 = 1 - w0 - w2 - w3
    elif derivative == 1:
        w3 = u.square().mul(0.5)
        w0 = u.sub(w3).sub(0.5)
        w2 = w0.sub(w3.mul(2)).add(1)
        w1 = -(w0 + w2 + w3)
    elif derivative == 2:
        w3 = u
        w0 = 1 - u
        w2 = 1 - u.mul(3)
        w1 = u.mul(3).sub(2)
    elif derivative == 3:
        w3 = torch.ones_like(u)
        w0 = -w3
        w2 = w3.mul(-3)
        w1 = w3.mul(3)
    else:
        w0 = w1 = w2 = w3 = torch.zeros_like(u)
    return torch.stack([w0, w1, w2, w3], dim=-1)


def subdivide_cubic_bspline(
    data: Tensor, dims: Optional[Union[SpatialDimArg, Sequence[SpatialDimArg]]] = None
) -> Tensor:
    r"""Compute cubic B-spline coefficients for subdivided control point grid.

    The input coefficients are taken to be zero outside the given control point grid. Because the
    refined spline thereby has non-zero coefficients also at two fine grid points beyond either end
    of the input grid, the output grid along a subdivided dimension of size ``n`` has ``2 * n + 3``
    points, where output index ``m`` corresponds to input grid coordinate ``(m - 2) / 2``. The
    cubic B-spline function defined by the output coefficients is identical to the input one.

    Args:
        data: Input control point coefficients as tensor of shape ``(..., Z, Y, X)``.
        dims: Spatial dimensions along which to subdivide. Default is all three.

    Returns:
        Coefficients of subdivided cubic B-spline function.

    """
    if not isinstance(data, Tensor):
        raise TypeError("subdivide_cubic_bspline() 'data' must be torch.Tensor")
    if not torch.is_floating_point(data):
        raise TypeError("subdivide_cubic_bspline() 'data' must have floating point dtype")
    if data.ndim < 3:
        raise ValueError("subdivide_cubic_bspline() 'data' must have shape (..., Z, Y, X)")
    if dims is None:
        dims = tuple(SpatialDim)
    elif isinstance(dims, (int, str)):
        dims = [dims]
    elif not isinstance(dims, Sequence):
        raise TypeError("subdivide_cubic_bspline() 'dims' must be int, str, or Sequence thereof")
    dims = sorted(set(-1 - SpatialDim.from_arg(dim) for dim in dims))
    output = data
    for dim in dims:
        output = move_dim(output, dim, -1)
        n = output.shape[-1]
        padded = F.pad(output, (2, 2))
        # Evaluate coefficients at original control point positions
        even = padded[..., 0 : n + 2] + padded[..., 1 : n + 3].mul(6) + padded[..., 2 : n + 4]
        # Evaluate coefficients at subdivided intermediate positions
        odd = padded[..., 1 : n + 2] + padded[..., 2 : n + 3]
        temp = output.new_empty(output.shape[:-1] + (2 * n + 3,))
        temp[..., 0::2] = even.mul(0.125)
        temp[..., 1::2] = odd.mul(0.5)
        output = move_dim(temp, -1, dim)
    return output
