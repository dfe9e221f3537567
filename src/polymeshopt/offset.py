"""Parallel offset meshes (a discrete Gauss map) as a constrained least-squares problem.

The unknowns are ``[v'_0, ..., v'_{V-1}, s_0, ..., s_{E-1}]``: the offset
vertex positions followed by one scale per edge. Linear constraints
``v'_1 - v'_0 = s_e (v_1 - v_0)`` keep every offset edge parallel to its
original; the energy drives the chosen mesh element to distance ``d``.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

import numpy as np

from .assembly import offset_constraint_triplets
from .mesh import PolyMesh
from .problem import LeastSquaresTraits, NanDiagnostic
from .utils import TunableParameter


class OffsetType(Enum):
    VERTEX = "vertex"
    EDGE = "edge"
    FACE = "face"


def _check_distance(distance: float) -> float:
    distance = float(distance)
    if not np.isfinite(distance) or distance < 0.0:
        raise ValueError(f"Offset distance must be finite and non-negative, got {distance}")
    return distance


class VertexOffsetTraits(LeastSquaresTraits):
    """Offset in which every vertex moves exactly ``distance`` away from its original."""

    offset_type = OffsetType.VERTEX

    def __init__(self, mesh: PolyMesh, distance: float, *, logger=None) -> None:
        super().__init__(logger=logger)
        self.mesh = mesh
        self.vertices_orig = np.array(mesh.vertices, dtype=np.float64, copy=True)
        edge_vertices = mesh.require_edges()
        self.num_vertices = self.vertices_orig.shape[0]
        self.num_edges = int(edge_vertices.shape[0])
        self.x_size = 3 * self.num_vertices + self.num_edges
        self.solution: Optional[np.ndarray] = None

        self.register_parameter(
            "distance",
            TunableParameter(
                _check_distance(distance),
                dtype="float",
                min_value=0.0,
                description="Requested offset distance of every vertex.",
            ),
        )

        triplets = offset_constraint_triplets(self.vertices_orig, edge_vertices)
        self.offset_constraint_matrix = triplets.to_sparse()
        # Constraints are linear, so their Jacobian never changes.
        self.constraint_jacobian = (triplets.rows, triplets.cols, triplets.values)
        self.constraint_vector = np.zeros(triplets.num_rows)

        vertex_rows = np.repeat(np.arange(self.num_vertices, dtype=np.int64), 3)
        self.energy_jacobian = (
            vertex_rows,
            np.arange(3 * self.num_vertices, dtype=np.int64),
            np.zeros(3 * self.num_vertices),
        )
        self.energy_vector = np.zeros(self.num_vertices)
        self.logger.debug(
            "vertex offset: %d unknowns, %d energy rows, %d constraint rows",
            self.x_size,
            self.num_vertices,
            triplets.num_rows,
        )

    @property
    def distance(self) -> float:
        return float(self.get_parameter_value("distance"))

    def _vertex_block(self, x: np.ndarray) -> np.ndarray:
        return self.check_x(x)[: 3 * self.num_vertices].reshape(self.num_vertices, 3)

    def initial_solution(self) -> np.ndarray:
        x0 = np.zeros(self.x_size)
        x0[: 3 * self.num_vertices] = self.vertices_orig.ravel()
        return x0

    def update_energy(self, x: np.ndarray) -> Optional[NanDiagnostic]:
        current = self._vertex_block(x)
        d = self.distance
        self.energy_vector = np.sum((current - self.vertices_orig) ** 2, axis=1) - d * d
        return self.report_nan("energy", self.energy_vector)

    def update_jacobian(self, x: np.ndarray) -> Optional[NanDiagnostic]:
        current = self._vertex_block(x)
        rows, cols, _ = self.energy_jacobian
        values = 2.0 * (current - self.vertices_orig).ravel()
        self.energy_jacobian = (rows, cols, values)
        return self.report_nan("jacobian", values)

    def update_constraints(self, x: np.ndarray) -> None:
        self.constraint_vector = self.offset_constraint_matrix @ self.check_x(x)

    def post_optimization(self, x: np.ndarray) -> bool:
        self.solution = self._vertex_block(x).copy()
        return True

    # Results ----------------------------------------------------------------
    def require_solution(self) -> np.ndarray:
        if self.solution is None:
            raise RuntimeError("No offset solution yet; run the optimizer first")
        return self.solution

    def offset_distances(self) -> np.ndarray:
        return np.linalg.norm(self.require_solution() - self.vertices_orig, axis=1)

    def edge_scales(self, x: np.ndarray) -> np.ndarray:
        return self.check_x(x)[3 * self.num_vertices :].copy()


def make_offset_traits(
    mesh: PolyMesh,
    offset_type: OffsetType | str = OffsetType.VERTEX,
    distance: float = 1.0,
    *,
    logger=None,
) -> LeastSquaresTraits:
    """Return the least-squares problem for the requested offset type."""
    offset_type = OffsetType(offset_type)
    if offset_type is OffsetType.VERTEX:
        return VertexOffsetTraits(mesh, distance, logger=logger)
    raise NotImplementedError(f"{offset_type.value} offsets are not supported; use OffsetType.VERTEX")
