"""Small procedural polyhedral meshes."""
from __future__ import annotations

import numpy as np

from ..mesh import PolyMesh


def tetrahedron(scale: float = 1.0) -> PolyMesh:
    verts = scale * np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, 0.0, 1.0],
        ]
    )
    return PolyMesh.from_polygons(verts, [(0, 2, 1), (0, 1, 3), (0, 3, 2), (1, 2, 3)])


def cube(size: float = 1.0) -> PolyMesh:
    """Axis-aligned cube centred at the origin with six quad faces."""
    half = 0.5 * size
    verts = np.array(
        [[x, y, z] for z in (-half, half) for y in (-half, half) for x in (-half, half)],
        dtype=np.float64,
    )
    faces = [
        (0, 2, 3, 1),
        (4, 5, 7, 6),
        (0, 1, 5, 4),
        (2, 6, 7, 3),
        (0, 4, 6, 2),
        (1, 3, 7, 5),
    ]
    return PolyMesh.from_polygons(verts, faces)


def triangular_prism(height: float = 1.0) -> PolyMesh:
    """Prism with two triangles and three quads."""
    verts = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, 0.0, height],
            [1.0, 0.0, height],
            [0.0, 1.0, height],
        ]
    )
    faces = [(0, 2, 1), (3, 4, 5), (0, 1, 4, 3), (1, 2, 5, 4), (2, 0, 3, 5)]
    return PolyMesh.from_polygons(verts, faces)


def quad_grid(rows: int = 2, cols: int = 3, spacing: float = 1.0) -> PolyMesh:
    """Planar grid of ``(rows - 1) x (cols - 1)`` quads in the ``z = 0`` plane."""
    if rows < 2 or cols < 2:
        raise ValueError("Grid must have at least 2x2 vertices")
    if spacing <= 0.0:
        raise ValueError("Vertex spacing must be positive")

    def idx(r: int, c: int) -> int:
        return r * cols + c

    verts = np.zeros((rows * cols, 3), dtype=np.float64)
    faces: list[tuple[int, int, int, int]] = []
    for r in range(rows):
        for c in range(cols):
            verts[idx(r, c)] = (c * spacing, r * spacing, 0.0)
            if r + 1 < rows and c + 1 < cols:
                faces.append((idx(r, c), idx(r, c + 1), idx(r + 1, c + 1), idx(r + 1, c)))
    return PolyMesh.from_polygons(verts, faces)
