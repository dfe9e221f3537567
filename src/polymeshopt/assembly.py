"""Triplet assembly of the sparse systems built from mesh connectivity.

All builders collect ``(row, col, value)`` contributions first and build the
matrix once; duplicate entries sum.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple, Union

import numpy as np
import scipy.sparse as sp

from .topology import check_edge_faces, check_edge_vertices, edge_vectors
from .utils import get_logger


logger = get_logger()


@dataclass
class TripletList:
    """Growable list of sparse matrix contributions."""

    num_rows: int = 0
    num_cols: int = 0
    _rows: List[np.ndarray] = field(default_factory=list)
    _cols: List[np.ndarray] = field(default_factory=list)
    _values: List[np.ndarray] = field(default_factory=list)

    def add(self, row: int, col: int, value: float) -> None:
        self.extend([row], [col], [value])

    def extend(
        self,
        rows: Union[np.ndarray, Sequence[int]],
        cols: Union[np.ndarray, Sequence[int]],
        values: Union[np.ndarray, Sequence[float]],
    ) -> None:
        rows = np.asarray(rows, dtype=np.int64).ravel()
        cols = np.asarray(cols, dtype=np.int64).ravel()
        values = np.asarray(values, dtype=np.float64).ravel()
        if not (rows.shape == cols.shape == values.shape):
            raise ValueError("rows, cols and values must have the same length")
        self._rows.append(rows)
        self._cols.append(cols)
        self._values.append(values)

    def __len__(self) -> int:
        return int(sum(r.size for r in self._rows))

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.num_rows, self.num_cols)

    @property
    def rows(self) -> np.ndarray:
        return np.concatenate(self._rows) if self._rows else np.zeros(0, dtype=np.int64)

    @property
    def cols(self) -> np.ndarray:
        return np.concatenate(self._cols) if self._cols else np.zeros(0, dtype=np.int64)

    @property
    def values(self) -> np.ndarray:
        return np.concatenate(self._values) if self._values else np.zeros(0, dtype=np.float64)

    def to_sparse(self) -> sp.csr_matrix:
        rows, cols = self.rows, self.cols
        if rows.size and (rows.max() >= self.num_rows or cols.max() >= self.num_cols or rows.min() < 0 or cols.min() < 0):
            raise ValueError(f"Triplet index outside declared shape {self.shape}")
        return sp.coo_matrix((self.values, (rows, cols)), shape=self.shape).tocsr()


def affine_num_vars(num_faces: int, num_vertices: int) -> int:
    """Unknowns per spatial dimension: ``3F`` affine entries, then ``V`` positions."""
    return 3 * num_faces + num_vertices


def affine_constraint_triplets(
    vertices: np.ndarray,
    edge_vertices: np.ndarray,
    edge_faces: np.ndarray,
    num_faces: int,
) -> TripletList:
    """Continuity rows ``A_f (v1 - v0) = v'1 - v'0``, one per valid (edge, side) pair."""
    vertices = np.asarray(vertices, dtype=np.float64)
    num_vertices = vertices.shape[0]
    edge_vertices = check_edge_vertices(edge_vertices, num_vertices)
    edge_faces = check_edge_faces(edge_faces, num_faces, edge_vertices.shape[0])
    vertex_offset = 3 * num_faces
    vectors = edge_vectors(vertices, edge_vertices)

    triplets = TripletList(num_cols=affine_num_vars(num_faces, num_vertices))
    row = 0
    for eid in range(edge_faces.shape[0]):
        v0, v1 = (int(v) for v in edge_vertices[eid])
        for side in range(2):
            face = int(edge_faces[eid, side])
            if face == -1:
                continue
            triplets.extend(
                [row] * 5,
                [3 * face, 3 * face + 1, 3 * face + 2, vertex_offset + v0, vertex_offset + v1],
                [-vectors[eid, 0], -vectors[eid, 1], -vectors[eid, 2], -1.0, 1.0],
            )
            row += 1
    triplets.num_rows = row
    logger.debug("assembled %d affine continuity rows for %d edges", row, edge_faces.shape[0])
    return triplets


def affine_energy_triplets(
    edge_faces: np.ndarray,
    num_faces: int,
    num_vertices: int,
) -> Tuple[TripletList, np.ndarray]:
    """Identity rows over the affine unknowns followed by one bending row per interior edge.

    Returns the triplets and a boolean mask flagging the bending rows.
    """
    edge_faces = check_edge_faces(edge_faces, num_faces, np.asarray(edge_faces).shape[0])
    triplets = TripletList(num_cols=affine_num_vars(num_faces, num_vertices))

    identity = np.arange(3 * num_faces, dtype=np.int64)
    triplets.extend(identity, identity, np.ones(identity.size))

    interior = np.flatnonzero(np.all(edge_faces >= 0, axis=1))
    rows = 3 * num_faces + np.arange(interior.size, dtype=np.int64)
    face_a = edge_faces[interior, 0]
    face_b = edge_faces[interior, 1]
    for k in range(3):
        triplets.extend(rows, 3 * face_a + k, -np.ones(interior.size))
        triplets.extend(rows, 3 * face_b + k, np.ones(interior.size))

    triplets.num_rows = 3 * num_faces + interior.size
    bending = np.zeros(triplets.num_rows, dtype=bool)
    bending[3 * num_faces :] = True
    logger.debug("assembled %d energy rows (%d bending)", triplets.num_rows, interior.size)
    return triplets, bending


def offset_constraint_triplets(vertices: np.ndarray, edge_vertices: np.ndarray) -> TripletList:
    """Rows ``v'1 - v'0 - s_e (v1 - v0) = 0`` over the layout ``[3V vertex coords | E scales]``."""
    vertices = np.asarray(vertices, dtype=np.float64)
    num_vertices = vertices.shape[0]
    edge_vertices = check_edge_vertices(edge_vertices, num_vertices)
    num_edges = edge_vertices.shape[0]
    vectors = edge_vectors(vertices, edge_vertices)

    triplets = TripletList(num_rows=3 * num_edges, num_cols=3 * num_vertices + num_edges)
    edges = np.arange(num_edges, dtype=np.int64)
    for j in range(3):
        rows = 3 * edges + j
        triplets.extend(rows, 3 * edge_vertices[:, 0] + j, -np.ones(num_edges))
        triplets.extend(rows, 3 * edge_vertices[:, 1] + j, np.ones(num_edges))
        triplets.extend(rows, 3 * num_vertices + edges, -vectors[:, j])
    logger.debug("assembled %d offset constraint rows", triplets.num_rows)
    return triplets
