r"""Regularization terms of free-form deformations."""

from .bspline import BSplineBending
from .bspline import BSplineBendingEnergy

from .functional import be_loss
from .functional import bending_energy
from .functional import bending_loss
from .functional import reduce_loss


__all__ = (
    "BSplineBending",
    "BSplineBendingEnergy",
    "be_loss",
    "bending_energy",
    "bending_loss",
    "reduce_loss",
)
