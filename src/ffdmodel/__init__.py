r"""Cubic B-spline free-form deformation models of 3D space implemented with PyTorch."""

__version__ = "0.1.0"
