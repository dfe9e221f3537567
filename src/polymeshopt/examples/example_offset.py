"""Example: compute a parallel vertex offset of a small polyhedron.

Run with:
    python -m polymeshopt.examples.example_offset [--shape cube] [--distance 0.1]
"""
from __future__ import annotations

import argparse

import numpy as np
import torch

from polymeshopt import ConstrainedLMSolver, OffsetType, make_offset_traits
from polymeshopt.examples.shapes import cube, tetrahedron, triangular_prism

SHAPES = {"tetrahedron": tetrahedron, "cube": cube, "prism": triangular_prism}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Parallel vertex offset example")
    parser.add_argument("--shape", type=str, default="tetrahedron", choices=sorted(SHAPES), help="Input polyhedron")
    parser.add_argument("--distance", type=float, default=0.1, help="Requested vertex offset distance")
    parser.add_argument(
        "--offset-type",
        type=str,
        default="vertex",
        choices=[t.value for t in OffsetType],
        help="Offset type (only 'vertex' is supported)",
    )
    parser.add_argument(
        "--device",
        type=str,
        default=("cuda" if torch.cuda.is_available() else "cpu"),
        help="Torch device used by the solver",
    )
    parser.add_argument("--max-iterations", type=int, default=200, help="Maximum number of solver iterations")
    parser.add_argument("--tolerance", type=float, default=1e-10, help="Residual stopping tolerance")
    parser.add_argument("--quiet", action="store_true", help="Do not log every iteration")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    mesh = SHAPES[args.shape]()
    try:
        traits = make_offset_traits(mesh, args.offset_type, float(args.distance))
    except NotImplementedError as exc:
        print(f"Error: {exc}")
        return 1

    solver = ConstrainedLMSolver(device=str(args.device))
    result = solver.solve(
        traits,
        max_iterations=int(args.max_iterations),
        tolerance=float(args.tolerance),
        verbose=not args.quiet,
    )
    distances = traits.offset_distances()
    print("Offset finished:")
    print(f"  iterations : {result['iterations']}")
    print(f"  converged  : {result['converged']}")
    print(f"  distances  : min={distances.min():.6g} max={distances.max():.6g}")
    print(f"  edge scales: {np.array2string(traits.edge_scales(result['x']), precision=4)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
