"""Equality-constrained quadratic minimization with fixed variables.

Minimizes ``0.5 * x^T A x + x^T B`` subject to ``Aeq x = Beq`` and
``x[known] = Y``. The KKT system is factorized once in :meth:`precompute`
and reused for every right-hand side passed to :meth:`solve`.

Redundant equality rows are common (every closed face contributes one), so the
factorized matrix carries a small negative shift on the multiplier block and
each solve is refined against the unshifted system. The refinement converges
whenever the constraints are consistent; the multipliers of redundant rows are
not unique and are never returned.
"""
from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .utils import get_logger


ArrayLike = Union[np.ndarray, Sequence[float], Sequence[Sequence[float]]]


class ConstrainedQuadraticSolver:
    """Factorize-once solver for linearly constrained quadratic programs."""

    def __init__(
        self,
        *,
        regularization: float = 1e-8,
        refinement_tolerance: float = 1e-12,
        max_refinement_steps: int = 20,
        equilibration_steps: int = 10,
        logger=None,
    ) -> None:
        self.regularization = float(regularization)
        self.refinement_tolerance = float(refinement_tolerance)
        self.max_refinement_steps = int(max_refinement_steps)
        self.equilibration_steps = int(equilibration_steps)
        self.logger = logger or get_logger()
        self.num_vars = 0
        self.num_constraints = 0
        self.known: np.ndarray = np.zeros(0, dtype=np.int64)
        self.unknown: np.ndarray = np.zeros(0, dtype=np.int64)
        self._A_uk: Optional[sp.csr_matrix] = None
        self._Aeq_k: Optional[sp.csr_matrix] = None
        self._kkt: Optional[sp.csr_matrix] = None
        self._kkt_norm = 0.0
        self._scale: np.ndarray = np.zeros(0)
        self._lu = None

    @property
    def is_factorized(self) -> bool:
        return self._lu is not None

    # ------------------------------------------------------------------
    def precompute(
        self,
        A: sp.spmatrix,
        known: Union[np.ndarray, Sequence[int]],
        Aeq: Optional[sp.spmatrix] = None,
    ) -> None:
        A = sp.csr_matrix(A)
        if A.shape[0] != A.shape[1]:
            raise ValueError(f"Quadratic matrix must be square, got shape {A.shape}")
        n = A.shape[0]
        if Aeq is None:
            Aeq = sp.csr_matrix((0, n))
        Aeq = sp.csr_matrix(Aeq)
        if Aeq.shape[1] != n:
            raise ValueError(f"Constraint matrix has {Aeq.shape[1]} columns, expected {n}")

        known = np.unique(np.asarray(known, dtype=np.int64))
        if known.size and (known[0] < 0 or known[-1] >= n):
            raise ValueError(f"Known indices must lie in [0, {n})")
        unknown = np.setdiff1d(np.arange(n, dtype=np.int64), known)
        # Rows only touching fixed variables carry no information about the free block.
        num_constraints = Aeq.shape[0] if unknown.size else 0

        A_uu = A[unknown][:, unknown]
        Aeq_u = Aeq[:, unknown]
        if num_constraints:
            kkt = sp.bmat([[A_uu, Aeq_u.T], [Aeq_u, None]], format="csr")
        else:
            kkt = A_uu.tocsr()

        self._lu = None
        if kkt.shape[0]:
            scale = self._equilibrate(kkt)
            scaled = (sp.diags(scale) @ kkt @ sp.diags(scale)).tocsr()
            shift = np.zeros(kkt.shape[0])
            shift[unknown.size :] = -self.regularization
            try:
                lu = spla.splu((scaled + sp.diags(shift)).tocsc())
            except RuntimeError as exc:
                raise RuntimeError(f"KKT system is singular: {exc}") from exc
            self._check_nonsingular(lu, scaled + sp.diags(shift))
            self._kkt = scaled
            self._kkt_norm = float(abs(scaled).sum(axis=1).max())
            self._scale = scale
            self._lu = lu
        else:
            self._kkt = sp.csr_matrix((0, 0))
            self._kkt_norm = 0.0
            self._scale = np.zeros(0)
            self._lu = _EmptyFactor()

        self.num_vars = n
        self.num_constraints = num_constraints
        self.known = known
        self.unknown = unknown
        self._A_uk = A[unknown][:, known]
        self._Aeq_k = Aeq[:, known] if num_constraints else sp.csr_matrix((0, known.size))
        self.logger.debug(
            "factorized KKT system: %d free, %d fixed, %d constraint rows",
            unknown.size,
            known.size,
            num_constraints,
        )

    def _equilibrate(self, kkt: sp.csr_matrix) -> np.ndarray:
        """Symmetric Ruiz scaling that drives every row maximum of ``|kkt|`` toward one."""
        magnitude = abs(kkt).tocsr()
        scale = np.ones(kkt.shape[0])
        for _ in range(self.equilibration_steps):
            scaled = sp.diags(scale) @ magnitude @ sp.diags(scale)
            row_max = scaled.max(axis=1).toarray().ravel()
            row_max[row_max == 0.0] = 1.0
            scale = scale / np.sqrt(row_max)
            if np.max(np.abs(row_max - 1.0)) < 1e-3:
                break
        return scale

    def _check_nonsingular(self, lu, shifted: sp.spmatrix) -> None:
        # A few inverse-iteration steps reach the smallest eigenvalue of the
        # shifted matrix; redundant constraint rows sit exactly at the shift.
        vector = np.random.default_rng(0).standard_normal(shifted.shape[0])
        for _ in range(3):
            vector = lu.solve(vector)
            norm = np.linalg.norm(vector)
            if not np.isfinite(norm) or norm == 0.0:
                raise RuntimeError("KKT system is singular; the energy does not determine the free variables")
            vector /= norm
        smallest = np.linalg.norm(shifted @ vector)
        if smallest <= 1e-2 * self.regularization:
            raise RuntimeError(
                "KKT system is singular; the energy does not determine the free variables "
                "(is every connected component anchored by a fixed variable?)"
            )

    # ------------------------------------------------------------------
    def solve(
        self,
        B: ArrayLike,
        Y: ArrayLike,
        Beq: Optional[ArrayLike] = None,
    ) -> np.ndarray:
        """Return the minimizer; ``B``, ``Y`` and ``Beq`` may carry several columns."""
        if self._lu is None:
            raise RuntimeError("Solver has not been factorized; call precompute() first")
        B = np.asarray(B, dtype=np.float64)
        single = B.ndim == 1
        B = B.reshape(self.num_vars, -1)
        cols = B.shape[1]
        if self.known.size:
            Y = np.asarray(Y, dtype=np.float64).reshape(self.known.size, -1)
            if Y.shape[1] != cols:
                Y = np.broadcast_to(Y, (self.known.size, cols))
        else:
            Y = np.zeros((0, cols))
        if Beq is None or self.num_constraints == 0:
            beq = np.zeros((self.num_constraints, cols))
        else:
            beq = np.asarray(Beq, dtype=np.float64).reshape(self.num_constraints, -1)
            if beq.shape[1] != cols:
                beq = np.broadcast_to(beq, (self.num_constraints, cols))

        assert self._A_uk is not None and self._Aeq_k is not None
        linear = B[self.unknown]
        if self.known.size:
            linear = linear + self._A_uk @ Y
            if self.num_constraints:
                beq = beq - self._Aeq_k @ Y
        rhs = np.vstack([-linear, beq])
        sol = self._refine(rhs) if rhs.shape[0] else rhs
        x = np.empty((self.num_vars, cols))
        x[self.unknown] = sol[: self.unknown.size]
        x[self.known] = Y
        return x[:, 0] if single else x

    def _refine(self, rhs: np.ndarray) -> np.ndarray:
        assert self._kkt is not None
        scaled_rhs = self._scale[:, None] * rhs
        z = self._lu.solve(np.ascontiguousarray(scaled_rhs))
        rhs_norm = float(np.max(np.abs(scaled_rhs)))
        for step in range(self.max_refinement_steps + 1):
            residual = scaled_rhs - self._kkt @ z
            error = float(np.max(np.abs(residual)))
            threshold = self.refinement_tolerance * (rhs_norm + self._kkt_norm * float(np.max(np.abs(z))))
            if not np.isfinite(error):
                raise RuntimeError("KKT solve produced non-finite values")
            if error <= threshold:
                self.logger.debug("KKT solve refined in %d steps (residual %.3e)", step, error)
                break
            if step == self.max_refinement_steps:
                raise RuntimeError(
                    f"KKT refinement did not converge (residual {error:.3e}); the constraints are inconsistent"
                )
            z = z + self._lu.solve(np.ascontiguousarray(residual))
        return self._scale[:, None] * z


class _EmptyFactor:
    def solve(self, rhs: np.ndarray) -> np.ndarray:
        return rhs
