"""Connectivity helpers for polyhedral meshes with faces of arbitrary degree."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class EdgeTopology:
    """Edge tables derived from a face table.

    ``edge_faces[e, 0]`` is the face that traverses edge ``e`` as
    ``edge_vertices[e, 0] -> edge_vertices[e, 1]``; ``edge_faces[e, 1]`` is the
    face on the other side, or ``-1`` on the boundary.
    """

    edge_vertices: np.ndarray
    edge_faces: np.ndarray


def pad_polygons(polygons: Sequence[Sequence[int]]) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(face_degrees, faces)`` with ``faces`` padded by ``-1``."""
    degrees = np.array([len(poly) for poly in polygons], dtype=np.int64)
    width = int(degrees.max()) if degrees.size else 0
    faces = np.full((len(polygons), width), -1, dtype=np.int64)
    for fid, poly in enumerate(polygons):
        faces[fid, : len(poly)] = np.asarray(poly, dtype=np.int64)
    return degrees, faces


def _check_face_table(face_degrees: np.ndarray, faces: np.ndarray, num_vertices: int | None = None) -> None:
    if face_degrees.ndim != 1:
        raise ValueError("face_degrees must be a 1-D array")
    if faces.ndim != 2 or faces.shape[0] != face_degrees.shape[0]:
        raise ValueError(
            f"faces must have shape (F, max_degree) with F={face_degrees.shape[0]}, got {faces.shape}"
        )
    for fid, degree in enumerate(face_degrees):
        degree = int(degree)
        if degree < 3:
            raise ValueError(f"Face {fid} has degree {degree}; at least 3 vertices are required")
        if degree > faces.shape[1]:
            raise ValueError(f"Face {fid} has degree {degree} but the face table only has {faces.shape[1]} columns")
        corners = faces[fid, :degree]
        if np.any(corners < 0) or (num_vertices is not None and np.any(corners >= num_vertices)):
            raise ValueError(f"Face {fid} references a vertex outside the mesh: {corners.tolist()}")
        if np.unique(corners).size != degree:
            raise ValueError(f"Face {fid} repeats a vertex: {corners.tolist()}")


def polygonal_edge_topology(face_degrees: np.ndarray, faces: np.ndarray) -> EdgeTopology:
    """Derive edge/face incidence for an oriented manifold polygon mesh."""
    face_degrees = np.asarray(face_degrees, dtype=np.int64)
    faces = np.asarray(faces, dtype=np.int64)
    _check_face_table(face_degrees, faces)

    edge_map: dict[tuple[int, int], int] = {}
    edge_vertices: list[tuple[int, int]] = []
    edge_faces: list[list[int]] = []

    for fid, degree in enumerate(face_degrees):
        degree = int(degree)
        for k in range(degree):
            a = int(faces[fid, k])
            b = int(faces[fid, (k + 1) % degree])
            key = (min(a, b), max(a, b))
            eid = edge_map.get(key)
            if eid is None:
                eid = len(edge_vertices)
                edge_map[key] = eid
                edge_vertices.append((a, b))
                edge_faces.append([fid, -1])
            else:
                if edge_faces[eid][1] != -1:
                    raise ValueError(f"Edge ({a}, {b}) is shared by more than two faces")
                if edge_vertices[eid] == (a, b):
                    raise ValueError(
                        f"Faces {edge_faces[eid][0]} and {fid} traverse edge ({a}, {b}) in the same direction"
                    )
                edge_faces[eid][1] = fid

    ev = np.asarray(edge_vertices, dtype=np.int64).reshape(-1, 2)
    ef = np.asarray(edge_faces, dtype=np.int64).reshape(-1, 2)
    return EdgeTopology(edge_vertices=ev, edge_faces=ef)


def check_edge_vertices(edge_vertices: np.ndarray, num_vertices: int) -> np.ndarray:
    """Return ``edge_vertices`` as an int array, raising on out-of-range entries."""
    edge_vertices = np.asarray(edge_vertices, dtype=np.int64)
    if edge_vertices.ndim != 2 or edge_vertices.shape[1] != 2:
        raise ValueError(f"edge_vertices must have shape (E, 2), got {edge_vertices.shape}")
    bad = np.flatnonzero(np.any((edge_vertices < 0) | (edge_vertices >= num_vertices), axis=1))
    if bad.size:
        eid = int(bad[0])
        raise ValueError(
            f"Edge {eid} references vertex outside [0, {num_vertices}): {edge_vertices[eid].tolist()}"
        )
    degenerate = np.flatnonzero(edge_vertices[:, 0] == edge_vertices[:, 1])
    if degenerate.size:
        raise ValueError(f"Edge {int(degenerate[0])} connects a vertex to itself")
    return edge_vertices


def check_edge_faces(edge_faces: np.ndarray, num_faces: int, num_edges: int) -> np.ndarray:
    """Return ``edge_faces`` as an int array; ``-1`` marks a missing side."""
    edge_faces = np.asarray(edge_faces, dtype=np.int64)
    if edge_faces.shape != (num_edges, 2):
        raise ValueError(f"edge_faces must have shape ({num_edges}, 2), got {edge_faces.shape}")
    bad = np.flatnonzero(np.any((edge_faces < -1) | (edge_faces >= num_faces), axis=1))
    if bad.size:
        eid = int(bad[0])
        raise ValueError(f"Edge {eid} references face outside [0, {num_faces}): {edge_faces[eid].tolist()}")
    orphan = np.flatnonzero(np.all(edge_faces == -1, axis=1))
    if orphan.size:
        raise ValueError(f"Edge {int(orphan[0])} has no adjacent face")
    return edge_faces


def validate_connectivity(
    num_vertices: int,
    face_degrees: np.ndarray,
    faces: np.ndarray,
    edge_vertices: np.ndarray,
    edge_faces: np.ndarray | None = None,
) -> None:
    """Raise :class:`ValueError` describing the first malformed entry found."""
    face_degrees = np.asarray(face_degrees, dtype=np.int64)
    _check_face_table(face_degrees, np.asarray(faces, dtype=np.int64), num_vertices)
    edge_vertices = check_edge_vertices(edge_vertices, num_vertices)
    if edge_faces is not None:
        check_edge_faces(edge_faces, face_degrees.shape[0], edge_vertices.shape[0])


def edge_vectors(vertices: np.ndarray, edge_vertices: np.ndarray) -> np.ndarray:
    """Return ``v1 - v0`` for every edge."""
    return vertices[edge_vertices[:, 1]] - vertices[edge_vertices[:, 0]]
