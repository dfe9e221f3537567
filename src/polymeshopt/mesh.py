"""Polyhedral mesh container."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .topology import pad_polygons, polygonal_edge_topology, validate_connectivity


@dataclass
class PolyMesh:
    """Mesh with faces of arbitrary degree.

    ``faces`` is a ``(F, max_degree)`` table whose row ``f`` holds the vertices
    of face ``f`` in its first ``face_degrees[f]`` slots and ``-1`` after that.
    Edge tables are derived on demand when not supplied.
    """

    vertices: np.ndarray
    face_degrees: np.ndarray
    faces: np.ndarray
    edge_vertices: Optional[np.ndarray] = None
    edge_faces: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=np.float64)
        self.face_degrees = np.asarray(self.face_degrees, dtype=np.int64)
        self.faces = np.asarray(self.faces, dtype=np.int64)
        if self.vertices.ndim != 2 or self.vertices.shape[1] != 3:
            raise ValueError(f"vertices must have shape (V, 3), got {self.vertices.shape}")
        if self.edge_vertices is not None:
            self.edge_vertices = np.asarray(self.edge_vertices, dtype=np.int64)
        if self.edge_faces is not None:
            self.edge_faces = np.asarray(self.edge_faces, dtype=np.int64)

    @classmethod
    def from_polygons(cls, vertices: np.ndarray, polygons: Sequence[Sequence[int]]) -> "PolyMesh":
        degrees, faces = pad_polygons(polygons)
        mesh = cls(vertices=vertices, face_degrees=degrees, faces=faces)
        mesh.require_edges()
        return mesh

    @property
    def num_vertices(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def num_faces(self) -> int:
        return int(self.face_degrees.shape[0])

    @property
    def num_edges(self) -> int:
        return int(self.require_edges().shape[0])

    def clone(self) -> "PolyMesh":
        return PolyMesh(
            vertices=np.array(self.vertices, copy=True),
            face_degrees=np.array(self.face_degrees, copy=True),
            faces=np.array(self.faces, copy=True),
            edge_vertices=None if self.edge_vertices is None else np.array(self.edge_vertices, copy=True),
            edge_faces=None if self.edge_faces is None else np.array(self.edge_faces, copy=True),
        )

    def require_edges(self) -> np.ndarray:
        if self.edge_vertices is None:
            topology = polygonal_edge_topology(self.face_degrees, self.faces)
            self.edge_vertices = topology.edge_vertices
            self.edge_faces = topology.edge_faces
        return self.edge_vertices

    def require_edge_faces(self) -> np.ndarray:
        edge_vertices = self.require_edges()
        if self.edge_faces is None:
            self.edge_faces = self._match_edge_faces(edge_vertices)
        return self.edge_faces

    def _match_edge_faces(self, edge_vertices: np.ndarray) -> np.ndarray:
        # Caller supplied its own edge order; look each edge up in the derived tables.
        topology = polygonal_edge_topology(self.face_degrees, self.faces)
        lookup = {
            (int(a), int(b)): eid for eid, (a, b) in enumerate(topology.edge_vertices)
        }
        edge_faces = np.full(edge_vertices.shape, -1, dtype=np.int64)
        for eid, (a, b) in enumerate(edge_vertices):
            a, b = int(a), int(b)
            if (a, b) in lookup:
                edge_faces[eid] = topology.edge_faces[lookup[(a, b)]]
            elif (b, a) in lookup:
                edge_faces[eid] = topology.edge_faces[lookup[(b, a)]][::-1]
            else:
                raise ValueError(f"Edge {eid} ({a}, {b}) does not belong to any face")
        return edge_faces

    def face_polygon(self, face: int) -> np.ndarray:
        return self.faces[face, : int(self.face_degrees[face])]

    def boundary_edges(self) -> np.ndarray:
        return np.flatnonzero(np.any(self.require_edge_faces() == -1, axis=1))

    def interior_edges(self) -> np.ndarray:
        return np.flatnonzero(np.all(self.require_edge_faces() >= 0, axis=1))

    def validate(self) -> None:
        """Raise :class:`ValueError` if the connectivity tables are malformed."""
        validate_connectivity(
            self.num_vertices,
            self.face_degrees,
            self.faces,
            self.require_edges(),
            self.edge_faces,
        )
