"""Example meshes and scripts for :mod:`polymeshopt`."""

from .shapes import cube, quad_grid, tetrahedron, triangular_prism

__all__ = ["cube", "quad_grid", "tetrahedron", "triangular_prism"]
