r"""Spatial transformation models.

A transformation model is registered for one or more record type names such that it can be
written to and read from a file using :func:`write_transform` and :func:`read_transform`.

"""

from .base import ParametricTransform
from .base import SpatialTransform

from .record import TransformRecord
from .record import from_record
from .record import read_transform
from .record import register_transform
from .record import to_record
from .record import transform_type
from .record import transform_types
from .record import write_transform

from .nonrigid import FreeFormDeformation


BSplineTransformModel3D = FreeFormDeformation
FFD = FreeFormDeformation


__all__ = (
    "BSplineTransformModel3D",
    "FFD",
    "FreeFormDeformation",
    "ParametricTransform",
    "SpatialTransform",
    "TransformRecord",
    "from_record",
    "read_transform",
    "register_transform",
    "to_record",
    "transform_type",
    "transform_types",
    "write_transform",
)
