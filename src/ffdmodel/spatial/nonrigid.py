r"""Non-rigid transformation models."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

import torch
from torch import Tensor

from ..core.bspline import cubic_bspline_basis, subdivide_cubic_bspline
from ..core.enum import SpatialDim, SpatialDimArg
from ..core.errors import DimensionMismatch
from ..core.grid import Grid
from ..core.tensor import as_float_tensor
from ..core.typing import Array, Device, DType

from .record import TransformRecord, register_transform, transform_type


log = logging.getLogger(__name__)


@register_transform("FreeFormDeformation", "BSplineTransformModel3D")
class FreeFormDeformation(object):
    r"""Free-form deformation given by cubic B-spline interpolation of control point displacements.

    The transformation maps a point :math:`x` to :math:`T(x) = x + u(x)`, where the displacement

    .. math::

        u(x) = \sum_{i,j,k} b_i(x_u) b_j(y_u) b_k(z_u) \, d_{ijk}

    is a tensor product of cubic B-spline basis functions weighting the displacement vectors
    :math:`d_{ijk}` of the 4x4x4 control points surrounding :math:`x`. Control points of the support
    region which lie outside the grid are skipped. The displacement of points near or outside the
    boundary of the grid is thus a weighted sum whose weights do not add up to one.

    The displacement vectors are stored in a flat parameter vector of length ``3 * nx * ny * nz``,
    where components ``(dx, dy, dz)`` of each vertex are consecutive and vertices are ordered as
    defined by :meth:`.Grid.vertex_index`. Evaluation methods never modify this state. Parameters
    must not be modified while another thread evaluates the transformation.

    """

    transform_type: str

    def __init__(
        self,
        grid: Optional[Grid] = None,
        params: Optional[Array] = None,
        dtype: Optional[DType] = None,
        device: Optional[Device] = None,
    ) -> None:
        r"""Initialize transformation parameters.

        Args:
            grid: Control point grid. Default is a single vertex at the origin with unit spacing.
            params: Initial flat vector of control point displacements. If ``None``, all
                displacements are zero and the transformation is the identity map.
            dtype: Floating point data type of parameters. Default is the grid data type.
            device: Device on which to store parameters. Default is the grid device.

        """
        if grid is None:
            grid = Grid(size=1)
        if not isinstance(grid, Grid):
            raise TypeError(f"{type(self).__name__}() 'grid' must be Grid")
        self._grid = grid.to(dtype=dtype or grid.dtype, device=device or grid.device)
        self._params = self._zeros()
        if params is not None:
            self.parameters_(params)

    def _zeros(self) -> Tensor:
        n = self.ndim * self._grid.numel()
        return torch.zeros(n, dtype=self._grid.dtype, device=self._grid.device)

    @property
    def ndim(self) -> int:
        r"""Number of spatial dimensions."""
        return self._grid.ndim

    def dim(self) -> int:
        r"""Number of spatial dimensions."""
        return self._grid.ndim

    @property
    def dtype(self) -> torch.dtype:
        r"""Data type of transformation parameters."""
        return self._params.dtype

    @property
    def device(self) -> Device:
        r"""Device on which transformation parameters are stored."""
        return self._params.device

    def grid(self) -> Grid:
        r"""Control point grid."""
        return self._grid

    def grid_(self, grid: Grid) -> FreeFormDeformation:
        r"""Set control point grid.

        When the grid size changes, the parameters are reset to zero displacements. Otherwise,
        the current displacements are kept for the vertices of the new grid.

        """
        if not isinstance(grid, Grid):
            raise TypeError(f"{type(self).__name__}.grid_() 'grid' must be Grid")
        prev_size = self._grid.size()
        self._grid = grid.to(dtype=self.dtype, device=self.device)
        if grid.size() != prev_size:
            log.debug(
                f"{type(self).__name__}.grid_() reset {self.num_parameters()} parameters"
                f" for grid of size {tuple(grid.size())}"
            )
            self._params = self._zeros()
        return self

    def parameters(self) -> Tensor:
        r"""Get flat vector of transformation parameters.

        The returned tensor is the one used by this transformation. It must not be modified
        in-place. Use :meth:`parameters_` or :meth:`displacement_` instead.

        """
        return self._params

    def parameters_(self, values: Array) -> FreeFormDeformation:
        r"""Replace all transformation parameters.

        Args:
            values: Flat vector of ``3 * nx * ny * nz`` control point displacements. A tensor with
                ``requires_grad=True`` is copied such that gradients are propagated to it.

        Returns:
            Reference to this transformation.

        Raises:
            DimensionMismatch: When the number of values does not match the number of parameters.

        """
        params = as_float_tensor(values, dtype=self.dtype, device=self.device)
        if params.numel() != self._params.numel():
            raise DimensionMismatch(
                f"{type(self).__name__}.parameters_() 'values' must have"
                f" {self._params.numel()} elements, got {params.numel()}"
            )
        if params.isnan().any() or params.isinf().any():
            raise ValueError(f"{type(self).__name__}.parameters_() 'values' must not be nan or inf")
        self._params = params.flatten().clone()
        return self

    def num_parameters(self) -> int:
        r"""Number of transformation parameters."""
        return self._params.numel()

    def parameter_names(self) -> List[str]:
        r"""Names of parameters, e.g., ``"vx_0_1_2"`` for the x displacement of vertex (0, 1, 2)."""
        names = []
        for index in range(self._grid.numel()):
            ix, iy, iz = self._grid.vertex_subscripts(index)
            names.extend(f"v{axis}_{ix}_{iy}_{iz}" for axis in ("x", "y", "z"))
        return names

    def vertex_shifts(self) -> Tensor:
        r"""Control point displacements as tensor of shape ``(N, 3)`` in vertex order."""
        return self._params.view(-1, self.ndim)

    def displacement(self, arg: Union[int, Sequence[int]], *args: int) -> Tensor:
        r"""Get displacement vector of control point with given grid index ``(ix, iy, iz)``."""
        index = self._grid.vertex_index(arg, *args)
        return self.vertex_shifts()[index].clone()

    @torch.no_grad()
    def displacement_(self, index: Sequence[int], value: Array) -> FreeFormDeformation:
        r"""Set displacement vector of control point with given grid index ``(ix, iy, iz)``.

        Raises:
            InvalidGridIndex: When the grid index is out of bounds.
            DimensionMismatch: When ``value`` is not a vector of length 3.

        """
        i = self._grid.vertex_index(index)
        value = as_float_tensor(value, dtype=self.dtype, device=self.device)
        if value.numel() != self.ndim:
            raise DimensionMismatch(
                f"{type(self).__name__}.displacement_() 'value' must have {self.ndim} elements"
            )
        self._params.view(-1, self.ndim)[i] = value.flatten()
        return self

    def transform_points(self, points: Union[Array, Tensor]) -> Tensor:
        r"""Transform world coordinates of points.

        Args:
            points: World coordinates of points as tensor of shape ``(..., 3)``.

        Returns:
            Transformed points as tensor of shape ``(..., 3)``.

        """
        points = self._grid.check_points(points)
        return points.add(self.displacements(points))

    def displacements(self, points: Union[Array, Tensor]) -> Tensor:
        r"""Evaluate displacement vectors :math:`u(x)` at given points of shape ``(..., 3)``."""
        points = self._grid.check_points(points)
        support = self._support(points)
        return self._interpolate(support, (0, 0, 0)).reshape(points.shape)

    def jacobian_matrix(self, points: Union[Array, Tensor]) -> Tensor:
        r"""Evaluate Jacobian of transformation with respect to spatial coordinates.

        Args:
            points: World coordinates of points as tensor of shape ``(..., 3)``.

        Returns:
            Jacobian matrices as tensor of shape ``(..., 3, 3)``, where element ``(i, j)`` is the
            derivative of the i-th transformed point coordinate with respect to the j-th coordinate.

        """
        points = self._grid.check_points(points)
        support = self._support(points)
        cols = []
        for dim in SpatialDim:
            order = [0] * self.ndim
            order[dim] = 1
            cols.append(self._interpolate(support, order))
        jac = torch.stack(cols, dim=-1)
        jac = jac + torch.eye(self.ndim, dtype=jac.dtype, device=jac.device)  # T(x) = x + u(x)
        return jac.reshape(points.shape + (self.ndim,))

    def jacobian_det(self, points: Union[Array, Tensor]) -> Tensor:
        r"""Determinant of spatial Jacobian at given points of shape ``(..., 3)``."""
        return torch.linalg.det(self.jacobian_matrix(points))

    def parametric_jacobian(self, points: Union[Array, Tensor]) -> Tensor:
        r"""Evaluate derivatives of transformed points with respect to transformation parameters.

        Only the parameters of the at most 64 control points in the support region of a point have
        non-zero derivatives. The derivative of the transformed point coordinate along axis ``a``
        with respect to the displacement along axis ``a`` of a control point is the B-spline
        weight of this control point. Derivatives with respect to the other components are zero.

        Args:
            points: World coordinates of points as tensor of shape ``(..., 3)``.

        Returns:
            Dense tensor of shape ``(..., 3, P)``, where ``P`` is the number of parameters.

        """
        points = self._grid.check_points(points)
        support = self._support(points)
        index, weights = self._weights(support, (0, 0, 0))
        D = self.ndim
        N = weights.shape[0]
        jac = torch.zeros((N, D, self.num_parameters()), dtype=weights.dtype, device=weights.device)
        for axis in range(D):
            jac[:, axis].scatter_add_(1, index.mul(D).add(axis), weights)
        return jac.reshape(points.shape[:-1] + (D, self.num_parameters()))

    def second_derivatives(
        self, points: Union[Array, Tensor], i: SpatialDimArg, j: SpatialDimArg
    ) -> Tensor:
        r"""Evaluate second order derivatives of displacement field.

        Args:
            points: World coordinates of points as tensor of shape ``(..., 3)``.
            i: First spatial dimension with respect to which to differentiate.
            j: Second spatial dimension with respect to which to differentiate.

        Returns:
            Derivatives :math:`\partial^2 u_c / \partial x_i \partial x_j` of the displacement
            components ``c`` as tensor of shape ``(..., 3)``.

        Raises:
            InvalidAxisIndex: When ``i`` or ``j`` is not a valid spatial dimension.

        """
        order = [0] * self.ndim
        order[SpatialDim.from_arg(i)] += 1
        order[SpatialDim.from_arg(j)] += 1
        points = self._grid.check_points(points)
        support = self._support(points)
        return self._interpolate(support, order).reshape(points.shape)

    def curvature_operator(self, points: Union[Array, Tensor]) -> Tensor:
        r"""Evaluate bending energy density of free-form deformation.

        The curvature operator at a point is the sum over spatial dimensions ``a`` of the squared
        sums of pure second derivatives :math:`\partial^2 u_c / \partial x_a^2` over the
        displacement components ``c``. It is zero for any affine displacement field.

        Args:
            points: World coordinates of points as tensor of shape ``(..., 3)``.

        Returns:
            Tensor of shape ``(...)``.

        """
        points = self._grid.check_points(points)
        support = self._support(points)
        curv: Optional[Tensor] = None
        for dim in SpatialDim:
            order = [0] * self.ndim
            order[dim] = 2
            term = self._interpolate(support, order).sum(dim=-1).square()
            curv = term if curv is None else curv.add(term)
        assert curv is not None
        return curv.reshape(points.shape[:-1])

    def _support(self, points: Tensor) -> Tuple[Tensor, Tensor, Tensor]:
        r"""Local cell coordinates, linear indices, and mask of support region control points.

        Args:
            points: World coordinates of points as tensor of shape ``(..., 3)``.

        Returns:
            coords: Coordinates in ``[0, 1)`` of points within their grid cell as tensor ``(N, 3)``.
            index: Linear indices of the 4x4x4 support control points as tensor ``(N, 64)``,
                with the x offset varying fastest. Indices of points outside the grid are clamped.
            mask: Whether support control point is inside the grid as tensor of shape ``(N, 64)``.

        """
        grid = self._grid
        coords = grid.world_to_grid(points).reshape(-1, self.ndim)
        cell = coords.floor()
        coords = coords.sub(cell)
        offset = torch.arange(-1, 3, dtype=torch.long, device=coords.device)
        cell = cell.long().unsqueeze(-1).add(offset)
        size = torch.tensor(grid.size(), dtype=torch.long, device=coords.device).unsqueeze(-1)
        valid = cell.ge(0).logical_and(cell.lt(size))
        cell = torch.minimum(cell.clamp(min=0), size.sub(1))
        ix = cell[:, 0, None, None, :]
        iy = cell[:, 1, None, :, None]
        iz = cell[:, 2, :, None, None]
        nx, ny, _ = grid.size()
        index = ix + nx * (iy + ny * iz)
        mask = valid[:, 0, None, None, :] & valid[:, 1, None, :, None] & valid[:, 2, :, None, None]
        mask = mask.flatten(1)
        if log.isEnabledFor(logging.DEBUG):
            num_partial = mask.all(dim=1).logical_not().sum().item()
            if num_partial:
                log.debug(
                    f"{type(self).__name__}: {num_partial} of {mask.shape[0]} points have"
                    " control points of their support region outside the grid"
                )
        return coords, index.flatten(1), mask

    def _weights(
        self, support: Tuple[Tensor, Tensor, Tensor], order: Sequence[int]
    ) -> Tuple[Tensor, Tensor]:
        r"""Tensor product B-spline weights of support region control points.

        Args:
            support: Return value of :meth:`_support`.
            order: Order of derivative with respect to each spatial dimension ``(x, y, z)``.

        Returns:
            index: Linear indices of support control points as tensor of shape ``(N, 64)``.
            weights: Weights of support control points in world units as tensor ``(N, 64)``,
                where the weights of control points outside the grid are zero.

        """
        coords, index, mask = support
        bx, by, bz = (cubic_bspline_basis(coords[:, d], derivative=order[d]) for d in range(3))
        weights = bz[:, :, None, None] * by[:, None, :, None] * bx[:, None, None, :]
        weights = weights.flatten(1).masked_fill(mask.logical_not(), 0)
        if any(order):
            # Chain rule for derivatives with respect to world instead of grid coordinates
            spacing = self._grid.spacing()
            scale = 1
            for d, n in enumerate(order):
                if n:
                    scale = spacing[d].pow(n).mul(scale)
            weights = weights.div(scale)
        return index, weights

    def _interpolate(self, support: Tuple[Tensor, Tensor, Tensor], order: Sequence[int]) -> Tensor:
        r"""Evaluate (derivative of) displacement field given support region of points.

        Returns:
            Tensor of shape ``(N, 3)``.

        """
        index, weights = self._weights(support, order)
        coeffs = self.vertex_shifts()[index]
        return torch.einsum("nk,nkc->nc", weights, coeffs)

    @torch.no_grad()
    def subdivide(self) -> FreeFormDeformation:
        r"""Get transformation with twice finer control point grid which deforms points identically.

        The new control point grid has spacing ``s / 2`` and ``2 * n + 3`` vertices along each axis,
        with its first vertex located at ``origin - s``, where ``s`` and ``n`` are the spacing and
        size of the current grid. The two additional vertices beyond each end of the original grid
        preserve the deformation of points near the boundary of the original grid.

        """
        grid = self._grid
        nx, ny, nz = grid.size()
        data = self._params.view(nz, ny, nx, self.ndim).movedim(-1, 0)
        data = subdivide_cubic_bspline(data)
        params = data.movedim(0, -1).flatten()
        spacing = grid.spacing()
        new_grid = Grid(
            size=tuple(2 * n + 3 for n in grid.size()),
            spacing=spacing.div(2),
            origin=grid.origin().sub(spacing),
            dtype=grid.dtype,
            device=grid.device,
        )
        return type(self)(new_grid, params=params)

    def clone(self) -> FreeFormDeformation:
        r"""Make deep copy of this transformation."""
        return type(self)(self._grid.clone(), params=self._params.detach())

    def to(self, *args, **kwargs) -> FreeFormDeformation:
        r"""Get copy of transformation converted to given data type and/or device."""
        params = self._params.detach().to(*args, **kwargs)
        return type(self)(self._grid.to(*args, **kwargs), params=params)

    def to_record(self) -> TransformRecord:
        r"""Convert transformation to plain record."""
        grid = self._grid
        return TransformRecord(
            type=self.transform_type,
            grid_size=list(grid.size()),
            grid_spacing=grid.spacing().tolist(),
            grid_origin=grid.origin().tolist(),
            parameters=self._params.detach().cpu().tolist(),
        )

    @classmethod
    def from_record(
        cls,
        record: Union[TransformRecord, Mapping[str, Any]],
        dtype: Optional[DType] = None,
        device: Optional[Device] = None,
    ) -> FreeFormDeformation:
        r"""Create transformation from plain record.

        Raises:
            ValueError: When the record type is not a name of this transformation model.
            DimensionMismatch: When the number of parameters does not match the grid size.

        """
        if not isinstance(record, TransformRecord):
            record = TransformRecord.from_dict(record)
        if transform_type(record.type) is not cls:
            raise ValueError(f"{cls.__name__}.from_record() invalid record type {record.type!r}")
        grid = Grid(
            size=record.grid_size,
            spacing=record.grid_spacing,
            origin=record.grid_origin,
            dtype=dtype or torch.float64,
            device=device,
        )
        return cls(grid, params=record.parameters)

    def __repr__(self) -> str:
        r"""String representation."""
        return f"{type(self).__name__}(grid={self._grid!r}, num_parameters={self.num_parameters()})"
