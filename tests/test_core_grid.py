import pytest

import numpy as np

import torch

from ffdmodel.core import DimensionMismatch, InvalidAxisIndex, InvalidGridIndex
from ffdmodel.core.enum import SpatialDim
from ffdmodel.core.grid import Grid


def test_grid_init():
    grid = Grid((4, 5, 6), spacing=2.5, origin=(-1, 0, 1))
    assert grid.ndim == 3
    assert grid.dim() == 3
    assert grid.size() == (4, 5, 6)
    assert grid.numel() == 120
    assert grid.dtype == torch.float64
    assert grid.device == torch.device("cpu")
    assert torch.allclose(grid.spacing(), torch.tensor([2.5, 2.5, 2.5], dtype=torch.float64))
    assert torch.allclose(grid.origin(), torch.tensor([-1.0, 0.0, 1.0], dtype=torch.float64))
    assert torch.allclose(grid.extent(), torch.tensor([7.5, 10.0, 12.5], dtype=torch.float64))

    grid = Grid(3)
    assert grid.size() == (3, 3, 3)
    assert torch.allclose(grid.spacing(), torch.ones(3, dtype=torch.float64))
    assert torch.allclose(grid.origin(), torch.zeros(3, dtype=torch.float64))

    # Values given as Python float must not lose precision
    grid = Grid((2, 2, 2), spacing=0.1, origin=(0.1, 0.2, 0.3))
    assert grid.origin()[2].item() == 0.3
    assert grid.spacing()[0].item() == 0.1

    with pytest.raises(DimensionMismatch):
        Grid((4, 5))
    with pytest.raises(DimensionMismatch):
        Grid((4, 5, 6), spacing=(1, 2))
    with pytest.raises(ValueError):
        Grid((0, 5, 6))
    with pytest.raises(ValueError):
        Grid((4, 5, 6), spacing=(1, 0, 1))
    with pytest.raises(TypeError):
        Grid((4.5, 5, 6))


def test_grid_numpy():
    grid = Grid((4, 5, 6), spacing=(1, 2, 3), origin=(-1, -2, -3))
    attrs = grid.numpy()
    assert isinstance(attrs, np.ndarray)
    assert attrs.tolist() == [4, 5, 6, 1, 2, 3, -1, -2, -3]
    assert Grid.from_numpy(attrs) == grid
    assert Grid.from_seq(attrs.tolist()) == grid
    with pytest.raises(DimensionMismatch):
        Grid.from_seq(attrs[:6].tolist())


def test_grid_spacing_and_origin():
    grid = Grid((4, 5, 6))

    new_grid = grid.spacing(2)
    assert isinstance(new_grid, Grid)
    assert new_grid is not grid
    assert torch.allclose(new_grid.spacing(), torch.full((3,), 2, dtype=torch.float64))
    assert torch.allclose(grid.spacing(), torch.ones(3, dtype=torch.float64))

    new_grid = grid.origin(1, 2, 3)
    assert torch.allclose(new_grid.origin(), torch.tensor([1, 2, 3], dtype=torch.float64))
    assert torch.allclose(grid.origin(), torch.zeros(3, dtype=torch.float64))

    assert grid.origin_((1, 2, 3)) is grid
    assert torch.allclose(grid.origin(), torch.tensor([1, 2, 3], dtype=torch.float64))

    with pytest.raises(ValueError):
        grid.spacing_(-1)


def test_grid_world_to_grid():
    grid = Grid((4, 5, 6), spacing=(1, 2, 4), origin=(10, 20, 30))

    points = torch.tensor([[10, 20, 30], [11.5, 23, 40], [9, 18, 26]], dtype=torch.float64)
    coords = grid.world_to_grid(points)
    expected = torch.tensor([[0, 0, 0], [1.5, 1.5, 2.5], [-1, -1, -1]], dtype=torch.float64)
    assert torch.allclose(coords, expected)
    assert torch.allclose(grid.grid_to_world(coords), points)

    coords = grid.world_to_grid([11.5, 23, 40])
    assert coords.shape == (3,)

    with pytest.raises(DimensionMismatch):
        grid.world_to_grid(torch.zeros((5, 2)))


def test_grid_vertex_index():
    grid = Grid((4, 5, 6))
    assert grid.vertex_index(0, 0, 0) == 0
    assert grid.vertex_index(1, 0, 0) == 1
    assert grid.vertex_index(0, 1, 0) == 4
    assert grid.vertex_index(0, 0, 1) == 20
    assert grid.vertex_index((3, 4, 5)) == grid.numel() - 1
    assert grid.vertex_index([1, 2, 3]) == 1 + 4 * (2 + 5 * 3)

    for index in (0, 1, 17, 63, 119):
        assert grid.vertex_index(grid.vertex_subscripts(index)) == index

    with pytest.raises(InvalidGridIndex):
        grid.vertex_index(4, 0, 0)
    with pytest.raises(InvalidGridIndex):
        grid.vertex_index(0, -1, 0)
    with pytest.raises(InvalidGridIndex):
        grid.vertex_subscripts(120)
    with pytest.raises(DimensionMismatch):
        grid.vertex_index(0, 0)
    with pytest.raises(TypeError):
        grid.vertex_index(0.5, 0, 0)


def test_grid_points():
    grid = Grid((2, 3, 4), spacing=(1, 2, 3), origin=(1, 1, 1))
    points = grid.points()
    assert points.shape == (24, 3)
    assert points.dtype == torch.float64
    for index in (0, 1, 5, 6, 23):
        ijk = torch.tensor(grid.vertex_subscripts(index), dtype=torch.float64)
        assert torch.allclose(points[index], grid.grid_to_world(ijk))


def test_grid_inside_support():
    grid = Grid((5, 5, 5))
    points = torch.tensor(
        [[1, 1, 1], [1.5, 2.5, 2.9], [0.5, 2, 2], [2, 2, 3], [2, 2, 2.99]], dtype=torch.float64
    )
    inside = grid.inside_support(points)
    assert inside.tolist() == [True, True, False, False, True]


def test_grid_eq_and_clone():
    grid = Grid((4, 5, 6), spacing=0.5, origin=(1, 2, 3))
    other = grid.clone()
    assert other is not grid
    assert other == grid
    assert other.origin() is not grid.origin()
    assert grid != Grid((4, 5, 7), spacing=0.5, origin=(1, 2, 3))
    assert grid != Grid((4, 5, 6), spacing=0.5, origin=(1, 2, 4))
    assert grid.to(torch.float32) == grid
    assert grid.to(torch.float32).dtype == torch.float32


def test_spatial_dim_from_arg():
    assert SpatialDim.from_arg(0) is SpatialDim.X
    assert SpatialDim.from_arg("y") is SpatialDim.Y
    assert SpatialDim.from_arg("Z") is SpatialDim.Z
    assert SpatialDim.from_arg(SpatialDim.Y) is SpatialDim.Y
    assert str(SpatialDim.Z) == "z"
    for arg in (3, -1, "w", True, None, 1.0):
        with pytest.raises(InvalidAxisIndex):
            SpatialDim.from_arg(arg)
