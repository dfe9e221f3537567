"""Top-level package for polyhedral mesh deformation and offset optimization."""

from .mesh import PolyMesh
from .topology import EdgeTopology, pad_polygons, polygonal_edge_topology, validate_connectivity
from .assembly import (
    TripletList,
    affine_constraint_triplets,
    affine_energy_triplets,
    offset_constraint_triplets,
)
from .quadratic import ConstrainedQuadraticSolver
from .affine import (
    AffineEnergyType,
    AffineSystemState,
    affine_energy,
    affine_maps_deform,
    affine_maps_precompute,
    face_affine_maps,
)
from .problem import LeastSquaresTraits, NanDiagnostic
from .offset import OffsetType, VertexOffsetTraits, make_offset_traits
from .optimizer import ConstrainedLMSolver
from .utils import TunableParameter, get_logger, resolve_device

__all__ = [
    "PolyMesh",
    "EdgeTopology",
    "pad_polygons",
    "polygonal_edge_topology",
    "validate_connectivity",
    "TripletList",
    "affine_constraint_triplets",
    "affine_energy_triplets",
    "offset_constraint_triplets",
    "ConstrainedQuadraticSolver",
    "AffineEnergyType",
    "AffineSystemState",
    "affine_energy",
    "affine_maps_deform",
    "affine_maps_precompute",
    "face_affine_maps",
    "LeastSquaresTraits",
    "NanDiagnostic",
    "OffsetType",
    "VertexOffsetTraits",
    "make_offset_traits",
    "ConstrainedLMSolver",
    "TunableParameter",
    "get_logger",
    "resolve_device",
]
