r"""Exceptions raised on invalid use of transformation models.

These are programming errors which are raised immediately and never retried. Batch evaluation
of a transformation never fails because of points outside the domain of the control point grid.

"""


class DimensionMismatch(ValueError):
    r"""Shape of points or parameters does not match the transformation."""


class InvalidAxisIndex(ValueError):
    r"""Spatial axis argument is not one of the transformation dimensions."""


class InvalidGridIndex(IndexError):
    r"""Control point grid index is out of bounds."""
