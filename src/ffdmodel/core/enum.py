r"""Definition of common enumerations."""

from __future__ import annotations

from enum import IntEnum
from typing import Union

from .errors import InvalidAxisIndex


class SpatialDim(IntEnum):
    r"""Spatial dimension selector."""

    X = 0
    Y = 1
    Z = 2

    @classmethod
    def from_arg(cls, arg: Union[int, str, SpatialDim]) -> SpatialDim:
        r"""Get enumeration value from function argument."""
        if arg in ("x", "X"):
            return cls.X
        if arg in ("y", "Y"):
            return cls.Y
        if arg in ("z", "Z"):
            return cls.Z
        if isinstance(arg, int) and not isinstance(arg, bool) and 0 <= arg <= 2:
            return cls(arg)
        raise InvalidAxisIndex(f"Spatial dimension must be 0, 1, 2, 'x', 'y', or 'z', got {arg!r}")

    def __str__(self) -> str:
        r"""Letter of spatial dimension."""
        return ("x", "y", "z")[self.value]


SpatialDimArg = Union[int, str, SpatialDim]
