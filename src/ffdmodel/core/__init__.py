r"""Common types and functions that operate on tensors representing control point grids.

This core library defines the geometry of a regular control point grid, the cubic B-spline
basis functions used to interpolate control point data, and auxiliary functions extending
the standard library. The transformation models in ``ffdmodel.spatial`` are built on top.

"""

from .bspline import cubic_bspline_basis
from .bspline import cubic_bspline_value
from .bspline import subdivide_cubic_bspline

from .config import DataclassConfig
from .config import load_config
from .config import write_config

from .enum import SpatialDim
from .enum import SpatialDimArg

from .errors import DimensionMismatch
from .errors import InvalidAxisIndex
from .errors import InvalidGridIndex

from .grid import Grid

from .typing import Array
from .typing import Device
from .typing import DType
from .typing import PathStr
from .typing import Scalar


__all__ = (
    "Array",
    "DataclassConfig",
    "Device",
    "DimensionMismatch",
    "DType",
    "Grid",
    "InvalidAxisIndex",
    "InvalidGridIndex",
    "PathStr",
    "Scalar",
    "SpatialDim",
    "SpatialDimArg",
    "cubic_bspline_basis",
    "cubic_bspline_value",
    "load_config",
    "subdivide_cubic_bspline",
    "write_config",
)
