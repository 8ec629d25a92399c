r"""Capabilities of spatial transformation models.

Transformation models do not share a common base class. Instead, each model independently
implements one or more of the capability sets defined here as structural protocols. Code which
consumes a transformation, e.g., an optimizer or similarity metric, only relies on these.

"""

from typing import Protocol, runtime_checkable

from torch import Tensor

from ..core.typing import Array


@runtime_checkable
class SpatialTransform(Protocol):
    r"""Maps points in world space and provides the spatial derivatives of this mapping."""

    @property
    def ndim(self) -> int:
        r"""Number of spatial dimensions."""
        ...

    def dim(self) -> int:
        r"""Number of spatial dimensions."""
        ...

    def transform_points(self, points: Tensor) -> Tensor:
        r"""Transform world coordinates of points given as tensor of shape ``(..., D)``."""
        ...

    def jacobian_matrix(self, points: Tensor) -> Tensor:
        r"""Jacobian matrices of shape ``(..., D, D)`` with respect to the spatial coordinates."""
        ...


@runtime_checkable
class ParametricTransform(Protocol):
    r"""Transformation whose mapping is determined by a flat vector of parameters."""

    def parameters(self) -> Tensor:
        r"""Get flat vector of transformation parameters."""
        ...

    def parameters_(self, values: Array) -> "ParametricTransform":
        r"""Replace all transformation parameters."""
        ...

    def num_parameters(self) -> int:
        r"""Number of transformation parameters."""
        ...

    def parametric_jacobian(self, points: Tensor) -> Tensor:
        r"""Derivatives ``(..., D, P)`` of transformed points with respect to parameters."""
        ...
