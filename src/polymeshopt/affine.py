"""Deformation of polyhedral meshes with one affine map per face.

Each spatial dimension is solved separately over the unknowns
``[a_0, ..., a_{F-1}, q_0, ..., q_{V-1}]`` where ``a_f`` is one row of the
affine map of face ``f`` and ``q_v`` one coordinate of vertex ``v``. Every face
is pulled toward the identity map, adjacent faces toward each other (weighted
by ``bend_factor``), subject to ``A_f (v1 - v0) = q_1 - q_0`` on each side of
each edge and to the prescribed handle positions.

Weights are uniform.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np
import scipy.sparse as sp

from .assembly import affine_constraint_triplets, affine_energy_triplets, affine_num_vars
from .mesh import PolyMesh
from .quadratic import ConstrainedQuadraticSolver
from .topology import edge_vectors
from .utils import get_logger


class AffineEnergyType(Enum):
    """Deformation energy family.

    Both members currently assemble the same system; the tag is stored so that
    a similarity-only (ASAP) prescription can be added without changing callers.
    """

    ARAP = "arap"
    ASAP = "asap"


@dataclass
class AffineSystemState:
    E: sp.csr_matrix
    C: sp.csr_matrix
    energy_weights: np.ndarray
    solver: ConstrainedQuadraticSolver
    energy_type: AffineEnergyType
    bend_factor: float
    num_faces: int
    num_vertices: int
    handles: np.ndarray
    length_scale: float = 1.0

    @property
    def num_vars(self) -> int:
        return affine_num_vars(self.num_faces, self.num_vertices)

    def identity_targets(self) -> np.ndarray:
        """Right-hand side of ``E x = b`` for the three dimensions."""
        targets = np.zeros((self.E.shape[0], 3))
        faces = np.arange(self.num_faces)
        for dim in range(3):
            targets[3 * faces + dim, dim] = 1.0
        return targets


def affine_maps_precompute(
    mesh: PolyMesh,
    handles: Sequence[int],
    bend_factor: float = 1.0,
    energy_type: AffineEnergyType = AffineEnergyType.ARAP,
    *,
    logger=None,
) -> AffineSystemState:
    """Assemble and factorize the affine deformation system for ``mesh``.

    Raises :class:`ValueError` for malformed connectivity or handles and lets
    :class:`RuntimeError` from the quadratic solver propagate when the system
    cannot be factorized.
    """
    logger = logger or get_logger()
    mesh.validate()
    edge_vertices = mesh.require_edges()
    edge_faces = mesh.require_edge_faces()
    num_faces, num_vertices = mesh.num_faces, mesh.num_vertices

    handles = np.asarray(handles, dtype=np.int64).ravel()
    if handles.size and (handles.min() < 0 or handles.max() >= num_vertices):
        raise ValueError(f"Handle indices must lie in [0, {num_vertices})")
    if np.unique(handles).size != handles.size:
        raise ValueError("Handle indices must be unique")
    bend_factor = float(bend_factor)
    if not np.isfinite(bend_factor) or bend_factor < 0.0:
        raise ValueError("bend_factor must be a finite non-negative number")

    # Positions are solved in units of the mean edge length; the maps are unit-free.
    length_scale = float(np.mean(np.linalg.norm(edge_vectors(mesh.vertices, edge_vertices), axis=1)))
    if not np.isfinite(length_scale) or length_scale <= 0.0:
        raise ValueError("Mesh edges have zero mean length")
    C = affine_constraint_triplets(
        mesh.vertices / length_scale, edge_vertices, edge_faces, num_faces
    ).to_sparse()
    energy, bending_rows = affine_energy_triplets(edge_faces, num_faces, num_vertices)
    E = energy.to_sparse()
    weights = np.where(bending_rows, bend_factor, 1.0)

    quadratic = (2.0 * (E.T @ sp.diags(weights) @ E)).tocsr()
    solver = ConstrainedQuadraticSolver(logger=logger)
    solver.precompute(quadratic, 3 * num_faces + handles, C)

    logger.info(
        "affine system ready: %d faces, %d vertices, %d handles, %d continuity rows (%s)",
        num_faces,
        num_vertices,
        handles.size,
        C.shape[0],
        energy_type.value,
    )
    return AffineSystemState(
        E=E,
        C=C,
        energy_weights=weights,
        solver=solver,
        energy_type=energy_type,
        bend_factor=bend_factor,
        num_faces=num_faces,
        num_vertices=num_vertices,
        handles=handles,
        length_scale=length_scale,
    )


def affine_maps_deform(
    state: AffineSystemState,
    handle_positions: np.ndarray,
    initial_guess: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Solve for new handle positions.

    Returns ``(affine_maps, vertex_positions)``: a ``(3F, 3)`` block whose rows
    ``3f .. 3f+2`` hold the transpose of face ``f``'s map, and the ``(V, 3)``
    positions including the handles. ``initial_guess`` is accepted but unused;
    the solve is a single global linear system.
    """
    handle_positions = np.asarray(handle_positions, dtype=np.float64)
    if handle_positions.shape != (state.handles.size, 3):
        raise ValueError(
            f"handle_positions must have shape ({state.handles.size}, 3), got {handle_positions.shape}"
        )
    targets = state.identity_targets()
    linear = -2.0 * (state.E.T @ (state.energy_weights[:, None] * targets))
    fixed = handle_positions[np.argsort(state.handles, kind="stable")] / state.length_scale

    raw = state.solver.solve(linear, fixed, np.zeros((state.C.shape[0], 3)))
    offset = 3 * state.num_faces
    return raw[:offset], raw[offset:] * state.length_scale


def face_affine_maps(state: AffineSystemState, affine_maps: np.ndarray) -> np.ndarray:
    """Unstack a solved block into ``(F, 3, 3)`` maps acting on column vectors."""
    return np.asarray(affine_maps).reshape(state.num_faces, 3, 3).transpose(0, 2, 1)


def affine_energy(state: AffineSystemState, affine_maps: np.ndarray) -> float:
    residual = state.E[:, : 3 * state.num_faces] @ np.asarray(affine_maps) - state.identity_targets()
    return float(np.sum(state.energy_weights[:, None] * residual**2))
