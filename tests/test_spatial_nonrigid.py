import pytest

import torch
from torch import Tensor

from ffdmodel.core import DimensionMismatch, InvalidAxisIndex, InvalidGridIndex
from ffdmodel.core.grid import Grid
from ffdmodel.spatial import FreeFormDeformation, ParametricTransform, SpatialTransform


@pytest.fixture
def grid() -> Grid:
    return Grid((6, 7, 8), spacing=(1.5, 2, 2.5), origin=(-4, 1, 3))


@pytest.fixture
def transform(grid: Grid) -> FreeFormDeformation:
    generator = torch.Generator().manual_seed(123456)
    params = torch.randn(3 * grid.numel(), generator=generator, dtype=torch.float64)
    return FreeFormDeformation(grid, params=params.mul(0.5))


def interior_points(grid: Grid, num: int = 50, seed: int = 0) -> Tensor:
    r"""Random points whose support region is inside the control point grid."""
    generator = torch.Generator().manual_seed(seed)
    size = torch.tensor(grid.size(), dtype=torch.float64)
    coords = torch.rand((num, 3), generator=generator, dtype=torch.float64)
    coords = coords.mul(size.sub(3.02)).add(1.01)
    return grid.grid_to_world(coords)


def test_ffd_init(grid: Grid) -> None:
    transform = FreeFormDeformation(grid)
    assert isinstance(transform, SpatialTransform)
    assert isinstance(transform, ParametricTransform)
    assert transform.ndim == 3
    assert transform.dim() == 3
    assert transform.grid() == grid
    assert transform.dtype == torch.float64
    assert transform.num_parameters() == 3 * 6 * 7 * 8
    assert torch.all(transform.parameters() == 0)

    transform = FreeFormDeformation()
    assert transform.grid().size() == (1, 1, 1)
    assert transform.num_parameters() == 3

    with pytest.raises(DimensionMismatch):
        FreeFormDeformation(grid, params=torch.zeros(5))
    with pytest.raises(TypeError):
        FreeFormDeformation((6, 7, 8))


def test_ffd_parameters(grid: Grid) -> None:
    transform = FreeFormDeformation(grid)

    names = transform.parameter_names()
    assert len(names) == transform.num_parameters()
    assert names[:4] == ["vx_0_0_0", "vy_0_0_0", "vz_0_0_0", "vx_1_0_0"]
    assert names[-1] == "vz_5_6_7"

    assert transform.displacement_((1, 2, 3), (1, 2, 3)) is transform
    index = grid.vertex_index(1, 2, 3)
    params = transform.parameters()
    assert params[3 * index : 3 * index + 3].tolist() == [1, 2, 3]
    assert transform.displacement(1, 2, 3).tolist() == [1, 2, 3]
    assert transform.displacement((1, 2, 3)).tolist() == [1, 2, 3]
    assert transform.vertex_shifts().shape == (grid.numel(), 3)
    assert transform.vertex_shifts()[index].tolist() == [1, 2, 3]

    values = torch.arange(transform.num_parameters(), dtype=torch.float64)
    assert transform.parameters_(values) is transform
    assert torch.all(transform.parameters() == values)
    # Parameters are copied
    values[0] = -1
    assert transform.parameters()[0] == 0

    with pytest.raises(DimensionMismatch):
        transform.parameters_(values[1:])
    with pytest.raises(ValueError):
        transform.parameters_(torch.full_like(values, float("nan")))
    with pytest.raises(InvalidGridIndex):
        transform.displacement_((6, 0, 0), (1, 1, 1))
    with pytest.raises(InvalidGridIndex):
        transform.displacement(0, 7, 0)
    with pytest.raises(DimensionMismatch):
        transform.displacement_((0, 0, 0), (1, 1))


def test_ffd_identity(grid: Grid) -> None:
    transform = FreeFormDeformation(grid)
    points = torch.randn((2, 10, 3), dtype=torch.float64).mul(10)

    output = transform.transform_points(points)
    assert output.shape == points.shape
    assert torch.allclose(output, points)

    jac = transform.jacobian_matrix(points)
    assert jac.shape == (2, 10, 3, 3)
    assert torch.allclose(jac, torch.eye(3, dtype=torch.float64).expand_as(jac))
    assert torch.allclose(transform.jacobian_det(points), torch.ones((2, 10), dtype=torch.float64))
    assert torch.allclose(transform.curvature_operator(points), torch.zeros((2, 10)).double())


def test_ffd_single_control_point() -> None:
    grid = Grid((4, 4, 4), spacing=2, origin=(-1, -1, -1))
    transform = FreeFormDeformation(grid)
    d = torch.tensor([1, -2, 0.5], dtype=torch.float64)
    transform.displacement_((1, 1, 1), d)

    point = grid.grid_to_world(torch.tensor([1, 1, 1], dtype=torch.float64))
    expected = point + (2 / 3) ** 3 * d
    assert torch.allclose(transform.transform_points(point), expected)

    # Point at neighboring vertex
    point = grid.grid_to_world(torch.tensor([2, 1, 1], dtype=torch.float64))
    expected = point + (1 / 6) * (2 / 3) ** 2 * d
    assert torch.allclose(transform.transform_points(point), expected)

    # Point outside of support region of control point
    point = grid.grid_to_world(torch.tensor([3, 1, 1], dtype=torch.float64))
    assert torch.allclose(transform.transform_points(point), point)


def test_ffd_partition_of_unity(grid: Grid) -> None:
    d = torch.tensor([0.5, -1, 2], dtype=torch.float64)
    transform = FreeFormDeformation(grid, params=d.repeat(grid.numel()))

    points = interior_points(grid)
    assert grid.inside_support(points).all()
    assert torch.allclose(transform.displacements(points), d.expand_as(points))

    # Control points outside the grid are skipped
    point = grid.origin()
    assert torch.allclose(transform.displacements(point), (5 / 6) ** 3 * d)

    # Far outside the grid, the transformation is the identity
    point = grid.origin().sub(100)
    assert torch.allclose(transform.transform_points(point), point)
    assert torch.allclose(transform.jacobian_matrix(point), torch.eye(3, dtype=torch.float64))


def test_ffd_jacobian_matrix(transform: FreeFormDeformation) -> None:
    points = interior_points(transform.grid())
    jac = transform.jacobian_matrix(points)
    assert jac.shape == (points.shape[0], 3, 3)

    eps = 1e-5
    cols = []
    for j in range(3):
        step = torch.zeros(3, dtype=torch.float64)
        step[j] = eps
        a = transform.transform_points(points + step)
        b = transform.transform_points(points - step)
        cols.append(a.sub(b).div(2 * eps))
    expected = torch.stack(cols, dim=-1)
    assert torch.allclose(jac, expected, atol=1e-6)

    assert torch.allclose(transform.jacobian_det(points), torch.linalg.det(expected), atol=1e-5)


def test_ffd_second_derivatives(transform: FreeFormDeformation) -> None:
    points = interior_points(transform.grid(), seed=1)
    eps = 1e-5
    for j in range(3):
        step = torch.zeros(3, dtype=torch.float64)
        step[j] = eps
        a = transform.jacobian_matrix(points + step)
        b = transform.jacobian_matrix(points - step)
        fd = a.sub(b).div(2 * eps)
        for i, axis in enumerate("xyz"):
            deriv = transform.second_derivatives(points, axis, j)
            assert deriv.shape == points.shape
            assert torch.allclose(deriv, fd[..., i], atol=1e-5)
            assert torch.allclose(deriv, transform.second_derivatives(points, j, i))

    with pytest.raises(InvalidAxisIndex):
        transform.second_derivatives(points, 0, 3)
    with pytest.raises(InvalidAxisIndex):
        transform.second_derivatives(points, "w", 0)


def test_ffd_curvature_operator(transform: FreeFormDeformation) -> None:
    points = interior_points(transform.grid(), seed=2)
    curv = transform.curvature_operator(points)
    assert curv.shape == (points.shape[0],)
    expected = torch.zeros_like(curv)
    for axis in range(3):
        expected += transform.second_derivatives(points, axis, axis).sum(dim=-1).square()
    assert torch.allclose(curv, expected)
    assert curv.ge(0).all()


def test_ffd_affine_displacements(grid: Grid) -> None:
    generator = torch.Generator().manual_seed(42)
    A = torch.randn((3, 3), generator=generator, dtype=torch.float64).mul(0.1)
    b = torch.randn(3, generator=generator, dtype=torch.float64)
    params = grid.points().matmul(A.T).add(b)
    transform = FreeFormDeformation(grid, params=params.flatten())

    points = interior_points(grid, seed=3)
    assert torch.allclose(transform.displacements(points), points.matmul(A.T).add(b))
    jac = transform.jacobian_matrix(points)
    assert torch.allclose(jac, A.add(torch.eye(3, dtype=torch.float64)).expand_as(jac))
    for i in range(3):
        for j in range(3):
            deriv = transform.second_derivatives(points, i, j)
            assert torch.allclose(deriv, torch.zeros_like(deriv), atol=1e-10)
    curv = transform.curvature_operator(points)
    assert torch.allclose(curv, torch.zeros_like(curv), atol=1e-10)


def test_ffd_parametric_jacobian(transform: FreeFormDeformation) -> None:
    grid = transform.grid()
    size = torch.tensor(grid.size(), dtype=torch.float64)
    coords = torch.rand((20, 3), dtype=torch.float64).mul(size.add(2)).sub(2)
    points = grid.grid_to_world(coords)

    jac = transform.parametric_jacobian(points)
    assert jac.shape == (20, 3, transform.num_parameters())
    # Each output coordinate depends on the parameters of at most 64 control points
    assert jac.ne(0).sum(dim=-1).le(64).all()

    def func(params: Tensor) -> Tensor:
        return FreeFormDeformation(grid, params=params).transform_points(points)

    params = transform.parameters().detach()
    expected = torch.autograd.functional.jacobian(func, params)
    assert expected.shape == jac.shape
    assert torch.allclose(jac, expected)

    # Transformation is linear in its parameters
    assert torch.allclose(jac.matmul(params), transform.displacements(points))


def test_ffd_autograd(transform: FreeFormDeformation) -> None:
    params = transform.parameters().clone().requires_grad_(True)
    transform = transform.clone().parameters_(params)
    points = interior_points(transform.grid(), num=5)
    loss = transform.transform_points(points).sum()
    loss.backward()
    assert params.grad is not None
    expected = transform.parametric_jacobian(points).sum(dim=(0, 1))
    assert torch.allclose(params.grad, expected)


def test_ffd_subdivide(transform: FreeFormDeformation) -> None:
    grid = transform.grid()
    fine = transform.subdivide()
    assert isinstance(fine, FreeFormDeformation)
    assert fine.grid().size() == tuple(2 * n + 3 for n in grid.size())
    assert torch.allclose(fine.grid().spacing(), grid.spacing().div(2))
    assert torch.allclose(fine.grid().origin(), grid.origin().sub(grid.spacing()))

    # Same deformation everywhere, including points near and outside the grid boundary
    size = torch.tensor(grid.size(), dtype=torch.float64)
    coords = torch.rand((100, 3), dtype=torch.float64).mul(size.add(4)).sub(3)
    points = grid.grid_to_world(coords)
    assert torch.allclose(fine.transform_points(points), transform.transform_points(points))
    assert torch.allclose(fine.jacobian_matrix(points), transform.jacobian_matrix(points))


def test_ffd_grid(transform: FreeFormDeformation) -> None:
    params = transform.parameters()
    grid = transform.grid()

    transform.grid_(grid.origin(0, 0, 0))
    assert torch.allclose(transform.grid().origin(), torch.zeros(3, dtype=torch.float64))
    assert torch.all(transform.parameters() == params)

    transform.grid_(Grid((3, 3, 3)))
    assert transform.num_parameters() == 81
    assert torch.all(transform.parameters() == 0)


def test_ffd_clone(transform: FreeFormDeformation) -> None:
    other = transform.clone()
    assert other is not transform
    assert other.grid() == transform.grid()
    assert torch.all(other.parameters() == transform.parameters())
    other.displacement_((0, 0, 0), (100, 100, 100))
    assert not torch.all(other.parameters() == transform.parameters())

    other = transform.to(torch.float32)
    assert other.dtype == torch.float32
    assert other.grid().dtype == torch.float32


def test_ffd_invalid_points(transform: FreeFormDeformation) -> None:
    with pytest.raises(DimensionMismatch):
        transform.transform_points(torch.zeros((10, 2)))
    with pytest.raises(DimensionMismatch):
        transform.jacobian_matrix(torch.zeros((10, 4)))
    with pytest.raises(DimensionMismatch):
        transform.parametric_jacobian(torch.zeros(2))
    with pytest.raises(DimensionMismatch):
        transform.curvature_operator(torch.zeros((3, 3, 1)))
