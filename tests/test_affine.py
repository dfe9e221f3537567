import time

import numpy as np
import pytest

from polymeshopt.affine import (
    AffineEnergyType,
    affine_energy,
    affine_maps_deform,
    affine_maps_precompute,
    face_affine_maps,
)
from polymeshopt.examples.shapes import cube, quad_grid
from polymeshopt.mesh import PolyMesh


def _assert_continuity(mesh, state, maps, positions, atol=1e-8):
    per_face = face_affine_maps(state, maps)
    for eid, (v0, v1) in enumerate(mesh.edge_vertices):
        original = mesh.vertices[v1] - mesh.vertices[v0]
        displaced = positions[v1] - positions[v0]
        for face in mesh.edge_faces[eid]:
            if face == -1:
                continue
            assert np.allclose(per_face[face] @ original, displaced, atol=atol)


def test_single_quad_translation_gives_identity_map():
    mesh = quad_grid(2, 2)
    handles = np.array([0, 3])
    shift = np.array([0.5, -0.25, 0.3])
    state = affine_maps_precompute(mesh, handles, bend_factor=1.0)
    maps, positions = affine_maps_deform(state, mesh.vertices[handles] + shift)

    assert maps.shape == (3, 3)
    assert positions.shape == (4, 3)
    assert np.allclose(face_affine_maps(state, maps)[0], np.eye(3), atol=1e-9)
    assert np.allclose(positions, mesh.vertices + shift, atol=1e-9)
    assert affine_energy(state, maps) == pytest.approx(0.0, abs=1e-12)


def test_single_quad_stretch_keeps_continuity():
    mesh = quad_grid(2, 2)
    handles = np.array([0, 3])
    targets = mesh.vertices[handles] + np.array([[0.0, 0.0, 0.0], [0.5, 0.5, 0.0]])
    state = affine_maps_precompute(mesh, handles)
    maps, positions = affine_maps_deform(state, targets)

    assert np.allclose(positions[handles], targets)
    _assert_continuity(mesh, state, maps, positions)
    # stretching along x: a0 + a1 = 1.5 with the map pulled toward identity
    assert np.allclose(face_affine_maps(state, maps)[0][0], [1.25, 0.25, 0.0], atol=1e-9)
    assert affine_energy(state, maps) > 0.0


def test_interior_edges_stay_continuous():
    mesh = quad_grid(3, 4)
    handles = np.array([0, mesh.num_vertices - 1])
    targets = mesh.vertices[handles] + np.array([[-0.3, -0.2, 0.1], [0.4, 0.3, -0.2]])
    state = affine_maps_precompute(mesh, handles, bend_factor=0.5)
    maps, positions = affine_maps_deform(state, targets)

    assert maps.shape == (3 * mesh.num_faces, 3)
    assert positions.shape == (mesh.num_vertices, 3)
    assert np.allclose(positions[handles], targets)
    _assert_continuity(mesh, state, maps, positions)


def test_strip_translation_is_rigid():
    mesh = quad_grid(2, 3)
    handles = np.array([0, 5])
    shift = np.array([1.0, 2.0, -1.0])
    state = affine_maps_precompute(mesh, handles, bend_factor=3.0)
    maps, positions = affine_maps_deform(state, mesh.vertices[handles] + shift)
    assert np.allclose(face_affine_maps(state, maps), np.eye(3), atol=1e-9)
    assert np.allclose(positions, mesh.vertices + shift, atol=1e-9)


def test_closed_mesh_deformation():
    mesh = cube()
    handles = np.array([0, 7])
    targets = mesh.vertices[handles] * 1.2
    state = affine_maps_precompute(mesh, handles)
    maps, positions = affine_maps_deform(state, targets, initial_guess=mesh.vertices)
    assert np.allclose(positions[handles], targets)
    _assert_continuity(mesh, state, maps, positions)


def test_energy_type_tag_does_not_change_result():
    mesh = quad_grid(3, 3)
    handles = np.array([0, 8])
    targets = mesh.vertices[handles] + np.array([[0.0, 0.0, 0.0], [0.2, 0.6, 0.1]])
    arap = affine_maps_precompute(mesh, handles, energy_type=AffineEnergyType.ARAP)
    asap = affine_maps_precompute(mesh, handles, energy_type=AffineEnergyType.ASAP)
    assert asap.energy_type is AffineEnergyType.ASAP
    for a, b in zip(affine_maps_deform(arap, targets), affine_maps_deform(asap, targets)):
        assert np.allclose(a, b)


def test_handle_order_follows_caller():
    mesh = quad_grid(2, 2)
    handles = np.array([3, 0])
    targets = np.array([[2.0, 2.0, 0.0], [0.0, 0.0, 0.0]])
    state = affine_maps_precompute(mesh, handles)
    _, positions = affine_maps_deform(state, targets)
    assert np.allclose(positions[3], targets[0])
    assert np.allclose(positions[0], targets[1])


def test_unanchored_system_fails():
    with pytest.raises(RuntimeError):
        affine_maps_precompute(quad_grid(2, 2), [])


def test_invalid_arguments():
    mesh = quad_grid(2, 2)
    with pytest.raises(ValueError):
        affine_maps_precompute(mesh, [0, 17])
    with pytest.raises(ValueError):
        affine_maps_precompute(mesh, [0, 0])
    with pytest.raises(ValueError):
        affine_maps_precompute(mesh, [0, 3], bend_factor=-1.0)
    state = affine_maps_precompute(mesh, [0, 3])
    with pytest.raises(ValueError):
        affine_maps_deform(state, np.zeros((3, 3)))


def test_malformed_mesh_rejected():
    reference = quad_grid(2, 2)
    edge_vertices = reference.edge_vertices.copy()
    edge_vertices[1, 0] = 99
    mesh = PolyMesh(
        vertices=reference.vertices,
        face_degrees=reference.face_degrees,
        faces=reference.faces,
        edge_vertices=edge_vertices,
        edge_faces=reference.edge_faces,
    )
    with pytest.raises(ValueError, match="Edge 1"):
        affine_maps_precompute(mesh, [0, 3])


@pytest.mark.parametrize("spacing", [3e-6, 1e-3, 1.0, 1e5])
def test_translation_is_exact_at_any_unit_scale(spacing):
    mesh = quad_grid(3, 3, spacing=spacing)
    handles = np.array([0, 8])
    shift = spacing * np.array([0.5, -0.25, 0.75])
    state = affine_maps_precompute(mesh, handles)
    maps, positions = affine_maps_deform(state, mesh.vertices[handles] + shift)
    assert np.allclose(face_affine_maps(state, maps), np.eye(3), atol=1e-9)
    assert np.allclose(positions, mesh.vertices + shift, rtol=0.0, atol=1e-9 * spacing)


def test_bend_factor_weights_bending_rows():
    mesh = quad_grid(3, 4)
    # the middle handle lifts one interior vertex, which no single affine map can follow
    handles = np.array([0, 5, mesh.num_vertices - 1])
    targets = mesh.vertices[handles] + np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 0.5], [0.0, 0.0, 0.0]])

    spreads = []
    for bend_factor in (0.1, 10.0):
        state = affine_maps_precompute(mesh, handles, bend_factor=bend_factor)
        num_identity = 3 * mesh.num_faces
        assert np.all(state.energy_weights[:num_identity] == 1.0)
        assert np.all(state.energy_weights[num_identity:] == bend_factor)
        assert state.energy_weights.size - num_identity == mesh.interior_edges().size

        maps, positions = affine_maps_deform(state, targets)
        assert np.allclose(positions[handles], targets)
        _assert_continuity(mesh, state, maps, positions)
        bending = state.E[num_identity:, :num_identity] @ maps
        spreads.append(np.linalg.norm(bending))

    assert spreads[0] > 1e-3
    assert spreads[1] < spreads[0]


def test_medium_grid_factorizes_quickly():
    mesh = quad_grid(40, 40)
    handles = np.array([0, mesh.num_vertices - 1])
    targets = mesh.vertices[handles] + np.array([[0.0, 0.0, 0.0], [1.0, 0.5, 2.0]])
    start = time.perf_counter()
    state = affine_maps_precompute(mesh, handles)
    maps, positions = affine_maps_deform(state, targets)
    elapsed = time.perf_counter() - start
    assert elapsed < 10.0
    assert np.allclose(positions[handles], targets)
    _assert_continuity(mesh, state, maps, positions)
