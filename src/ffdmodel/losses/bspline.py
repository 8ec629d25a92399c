r"""Free-form deformation (FFD) regularization terms."""

from typing import Optional, Union

from torch import Tensor
from torch.nn import Module

from ..core.grid import Grid
from ..core.typing import Array
from ..spatial.nonrigid import FreeFormDeformation

from . import functional as L


class BSplineBending(Module):
    r"""Bending energy of cubic B-spline free form deformation at fixed sample points.

    The sample points are stored as buffer of this module. By default, these are the vertices
    of the control point grid of the transformation.

    """

    def __init__(
        self,
        transform: FreeFormDeformation,
        points: Optional[Union[Array, Tensor]] = None,
        reduction: str = "mean",
    ) -> None:
        super().__init__()
        grid: Grid = transform.grid()
        if points is None:
            points = grid.points()
        self.transform = transform
        self.reduction = reduction
        self.register_buffer("points", grid.check_points(points), persistent=False)

    def forward(self, params: Optional[Tensor] = None) -> Tensor:
        r"""Evaluate loss term for current or given free form deformation parameters."""
        transform = self.transform
        if params is not None:
            transform = transform.clone().parameters_(params)
        return L.bending_energy(transform, self.points, reduction=self.reduction)

    def extra_repr(self) -> str:
        return f"num_points={self.points.shape[0]}, reduction={self.reduction!r}"


BSplineBendingEnergy = BSplineBending

