r"""Regular control point grid which relates world coordinates to grid indices."""

from __future__ import annotations

from copy import copy as shallow_copy
from typing import Any, Optional, Sequence, Tuple, Union, overload

import numpy as np

import torch
from torch import Tensor

from .errors import DimensionMismatch, InvalidGridIndex
from .tensor import as_float_tensor, cat_scalars
from .typing import Array, Device, DType


NDIM = 3


class Grid(object):
    r"""Regular lattice of control points in world space.

    The grid is axis aligned. The vertex with index ``(i, j, k)`` is located at world coordinates
    ``origin + (i, j, k) * spacing``, where ``0 <= i < nx``, ``0 <= j < ny``, and ``0 <= k < nz``.
    Vertices are enumerated with the x index varying fastest, then y, and finally z. This order
    defines the linear :meth:`vertex_index` used to address the parameters of a transformation.

    """

    __slots__ = ("_size", "_spacing", "_origin")

    def __init__(
        self,
        size: Union[int, Sequence[int], Tensor],
        spacing: Optional[Union[Array, float]] = None,
        origin: Optional[Union[Array, float]] = None,
        dtype: Optional[DType] = None,
        device: Optional[Device] = None,
    ):
        r"""Initialize grid attributes.

        Args:
            size: Number of vertices ``(nx, ny, nz)`` along each axis.
            spacing: Distance between adjacent vertices ``(sx, sy, sz)`` in world units.
                A single value is used for all axes. Default is unit spacing.
            origin: World coordinates ``(x, y, z)`` of the vertex with index ``(0, 0, 0)``.
                Default is the origin of the world coordinate system.
            dtype: Floating point data type of ``spacing`` and ``origin``.
            device: Device on which to store attributes. Uses ``"cpu"`` if ``None``.

        """
        if isinstance(size, Tensor):
            size = size.tolist()
        if isinstance(size, int):
            size = (size,) * NDIM
        if not isinstance(size, Sequence):
            raise TypeError("Grid() 'size' must be int or sequence of int")
        size = tuple(size)
        if len(size) != NDIM:
            raise DimensionMismatch(f"Grid() 'size' must have length {NDIM}, got {len(size)}")
        if any(isinstance(n, bool) or int(n) != n for n in size):
            raise TypeError("Grid() 'size' must be sequence of int")
        if any(n < 1 for n in size):
            raise ValueError("Grid() 'size' must be positive")
        self._size = torch.Size(int(n) for n in size)
        if device is None:
            device = torch.device("cpu")
        if dtype is None:
            dtype = torch.float64
        # Set spacing AFTER _size, which defines 'ndim'.
        self._spacing = self._as_attr("spacing", 1 if spacing is None else spacing, dtype, device)
        if self._spacing.le(0).any():
            raise ValueError("Grid() 'spacing' must be positive")
        self._origin = self._as_attr("origin", 0 if origin is None else origin, dtype, device)

    def _as_attr(self, name: str, arg: Union[Array, float], dtype: DType, device: Device) -> Tensor:
        value = as_float_tensor(arg, dtype=dtype, device=device)
        if value.ndim == 0:
            value = value.repeat(NDIM)
        if value.ndim != 1 or value.shape[0] != NDIM:
            raise DimensionMismatch(f"Grid() {name!r} must be scalar or sequence of length {NDIM}")
        return value

    def numpy(self) -> np.ndarray:
        r"""Get grid attributes as 1-dimensional NumPy array ``(nx, ..., sx, ..., ox, ...)``."""
        return np.concatenate(
            [
                np.array(self._size, dtype=np.float64),
                self._spacing.cpu().numpy().astype(np.float64),
                self._origin.cpu().numpy().astype(np.float64),
            ],
            axis=0,
        )

    @classmethod
    def from_numpy(cls, attrs: Union[Sequence[float], np.ndarray]) -> Grid:
        r"""Create Grid from 1-dimensional NumPy array."""
        if isinstance(attrs, np.ndarray):
            seq = attrs.astype(float).tolist()
        else:
            seq = attrs
        return cls.from_seq(seq)

    @classmethod
    def from_seq(cls, attrs: Sequence[float]) -> Grid:
        r"""Create Grid from sequence of attribute values.

        Args:
            attrs: Array of length ``3 * D`` with ``D=3`` and items ``(nx, ..., sx, ..., ox, ...)``,
                where ``(nx, ...)`` is the grid size, ``(sx, ...)`` the spacing, and ``(ox, ...)``
                the world coordinates of the first grid vertex.

        Returns:
            Grid instance.

        """
        if len(attrs) != 3 * NDIM:
            raise DimensionMismatch(f"{cls.__name__}.from_seq() expected array of length 9")
        size = [int(round(float(n))) for n in attrs[0:NDIM]]
        return cls(size=size, spacing=attrs[NDIM : 2 * NDIM], origin=attrs[2 * NDIM :])

    def dim(self) -> int:
        r"""Number of grid dimensions."""
        return len(self._size)

    @property
    def ndim(self) -> int:
        r"""Number of grid dimensions."""
        return len(self._size)

    @property
    def dtype(self) -> torch.dtype:
        r"""Get data type of grid attribute tensors."""
        return self._spacing.dtype

    @property
    def device(self) -> Device:
        r"""Get device on which grid attribute tensors are stored."""
        return self._spacing.device

    def to(self, *args, **kwargs) -> Grid:
        r"""Get grid with attribute tensors converted to the given data type and/or device."""
        grid = shallow_copy(self)
        grid._spacing = self._spacing.to(*args, **kwargs)
        grid._origin = self._origin.to(*args, **kwargs)
        return grid

    def clone(self) -> Grid:
        r"""Make deep copy of this instance."""
        grid = shallow_copy(self)
        grid._spacing = self._spacing.clone()
        grid._origin = self._origin.clone()
        return grid

    def __deepcopy__(self, memo) -> Grid:
        r"""Support copy.deepcopy to clone this grid."""
        if id(self) in memo:
            return memo[id(self)]
        copy = self.clone()
        memo[id(self)] = copy
        return copy

    def size(self) -> torch.Size:
        r"""Number of vertices ``(nx, ny, nz)`` along each axis."""
        return self._size

    def numel(self) -> int:
        r"""Total number of grid vertices."""
        return self._size.numel()

    @overload
    def spacing(self) -> Tensor:
        r"""Get distance between adjacent vertices."""
        ...

    @overload
    def spacing(self, arg: Union[float, Array], *args: float) -> Grid:
        r"""Get new grid with same size and origin, but specified spacing."""
        ...

    def spacing(self, *args) -> Union[Tensor, Grid]:
        r"""Get vertex spacing or new grid with specified spacing."""
        if args:
            return shallow_copy(self).spacing_(*args)
        return self._spacing

    def spacing_(self, arg: Union[Array, float], *args: float) -> Grid:
        r"""Set vertex spacing of this grid."""
        spacing = cat_scalars(arg, *args, num=self.ndim, dtype=self.dtype, device=self.device)
        if spacing.le(0).any():
            raise ValueError("Grid.spacing() must be positive")
        self._spacing = spacing
        return self

    @overload
    def origin(self) -> Tensor:
        r"""Get world coordinates of first grid vertex."""
        ...

    @overload
    def origin(self, arg: Union[float, Array], *args: float) -> Grid:
        r"""Get new grid with same size and spacing, but specified origin."""
        ...

    def origin(self, *args) -> Union[Tensor, Grid]:
        r"""Get world coordinates of first grid vertex or new grid with specified origin."""
        if args:
            return shallow_copy(self).origin_(*args)
        return self._origin

    def origin_(self, arg: Union[Array, float], *args: float) -> Grid:
        r"""Set world coordinates of first grid vertex."""
        self._origin = cat_scalars(arg, *args, num=self.ndim, dtype=self.dtype, device=self.device)
        return self

    def extent(self) -> Tensor:
        r"""Distance between first and last vertex along each axis in world units."""
        size = torch.tensor(self._size, dtype=self.dtype, device=self.device)
        return size.sub(1).mul(self._spacing)

    def check_points(self, points: Tensor, name: str = "points") -> Tensor:
        r"""Check that tensor of points has shape ``(..., 3)`` and convert to grid dtype."""
        if not isinstance(points, Tensor):
            points = torch.as_tensor(points, dtype=self.dtype, device=self.device)
        if points.ndim < 1 or points.shape[-1] != self.ndim:
            raise DimensionMismatch(
                f"Grid {name!r} must have shape (..., {self.ndim}), got {tuple(points.shape)}"
            )
        if not points.is_floating_point() or points.dtype != self.dtype:
            points = points.to(dtype=self.dtype)
        return points.to(device=self.device)

    def world_to_grid(self, points: Union[Array, Tensor]) -> Tensor:
        r"""Map world coordinates to fractional grid indices.

        Points are not required to lie inside the grid. Resulting coordinates may thus be negative
        or exceed the grid size, and it is the responsibility of the caller to check bounds.

        Args:
            points: World coordinates of points as tensor of shape ``(..., 3)``.

        Returns:
            Continuous grid coordinates as tensor of shape ``(..., 3)``.

        """
        points = self.check_points(points)
        return points.sub(self._origin).div(self._spacing)

    def grid_to_world(self, coords: Union[Array, Tensor]) -> Tensor:
        r"""Map continuous grid coordinates to world coordinates."""
        coords = self.check_points(coords, name="coords")
        return coords.mul(self._spacing).add(self._origin)

    def vertex_index(self, arg: Union[int, Sequence[int]], *args: int) -> int:
        r"""Linear index of grid vertex, where the x index varies fastest.

        Args:
            arg: Either the x index or a sequence ``(ix, iy, iz)`` of vertex indices.
            args: Indices ``iy`` and ``iz`` when ``arg`` is the x index.

        Returns:
            Linear index ``ix + nx * (iy + ny * iz)``.

        Raises:
            InvalidGridIndex: When any index is outside the range ``[0, n)``.

        """
        index = self._vertex_subscripts_arg(arg, *args)
        nx, ny, _ = self._size
        ix, iy, iz = index
        return ix + nx * (iy + ny * iz)

    def _vertex_subscripts_arg(self, arg: Union[int, Sequence[int]], *args: int) -> Tuple[int, ...]:
        if args:
            index = (arg,) + args
        elif isinstance(arg, Tensor):
            index = tuple(arg.tolist())
        elif isinstance(arg, Sequence):
            index = tuple(arg)
        else:
            index = (arg,)
        if len(index) != self.ndim:
            raise DimensionMismatch(f"Grid vertex index must have length {self.ndim}")
        for i in index:
            if isinstance(i, bool) or not isinstance(i, (int, np.integer)):
                raise TypeError(f"Grid vertex index must be sequence of int, got {index!r}")
        for i, n in zip(index, self._size):
            if i < 0 or i >= n:
                raise InvalidGridIndex(
                    f"Grid vertex index {index!r} out of bounds for size {tuple(self._size)}"
                )
        return tuple(int(i) for i in index)

    def vertex_subscripts(self, index: int) -> Tuple[int, int, int]:
        r"""Grid indices ``(ix, iy, iz)`` of vertex with given linear index."""
        if isinstance(index, bool) or not isinstance(index, (int, np.integer)):
            raise TypeError("Grid.vertex_subscripts() 'index' must be int")
        if index < 0 or index >= self.numel():
            raise InvalidGridIndex(
                f"Grid.vertex_subscripts() 'index' must be in [0, {self.numel()}), got {index}"
            )
        nx, ny, _ = self._size
        ix = int(index) % nx
        iy = (int(index) // nx) % ny
        iz = int(index) // (nx * ny)
        return ix, iy, iz

    def points(self) -> Tensor:
        r"""World coordinates of grid vertices as tensor of shape ``(N, 3)`` in vertex order."""
        axes = [
            torch.arange(n, dtype=self.dtype, device=self.device).mul(s).add(o)
            for n, s, o in zip(self._size, self._spacing, self._origin)
        ]
        z, y, x = torch.meshgrid(axes[2], axes[1], axes[0], indexing="ij")
        return torch.stack([x.flatten(), y.flatten(), z.flatten()], dim=-1)

    def inside_support(self, points: Union[Array, Tensor]) -> Tensor:
        r"""Whether all 4x4x4 cubic B-spline support vertices of each point are grid vertices.

        Args:
            points: World coordinates of points as tensor of shape ``(..., 3)``.

        Returns:
            Boolean tensor of shape ``(...)``.

        """
        coords = self.world_to_grid(points).floor()
        size = torch.tensor(self._size, dtype=coords.dtype, device=coords.device)
        return coords.ge(1).logical_and(coords.add(2).lt(size)).all(dim=-1)

    def __eq__(self, other: Any) -> bool:
        r"""Compare this grid to another."""
        if other is self:
            return True
        if not isinstance(other, self.__class__):
            return False
        if self._size != other._size:
            return False
        for name in ("_spacing", "_origin"):
            value = getattr(self, name)
            other_value = getattr(other, name).to(device=value.device, dtype=value.dtype)
            if not torch.allclose(value, other_value, rtol=1e-5, atol=1e-8):
                return False
        return True

    def __repr__(self) -> str:
        r"""String representation."""
        size = ", ".join(str(n) for n in self._size)
        spacing = ", ".join([f"{v:.5f}" for v in self._spacing])
        origin = ", ".join([f"{v:.5f}" for v in self._origin])
        return (
            f"{type(self).__name__}("
            + f"size=({size})"
            + f", spacing=({spacing})"
            + f", origin=({origin})"
            + f", device={repr(str(self.device))}"
            + ")"
        )
