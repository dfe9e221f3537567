"""Iteration contract between least-squares problems and their solvers."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import scipy.sparse as sp

from .utils import TunableParameter, get_logger


Triplets = Tuple[np.ndarray, np.ndarray, np.ndarray]


@dataclass(frozen=True)
class NanDiagnostic:
    """NaN entries found in ``source`` ("energy", "jacobian", ...)."""

    source: str
    indices: Tuple[int, ...]


class LeastSquaresTraits(ABC):
    """Abstract problem minimizing ``||E(x)||^2`` subject to ``C(x) = 0``.

    Subclasses fill ``energy_vector`` and the value array of
    ``energy_jacobian`` in :meth:`update_energy` / :meth:`update_jacobian`,
    and ``constraint_vector`` (plus ``constraint_jacobian`` if it varies) in
    :meth:`update_constraints`. Jacobians are ``(rows, cols, values)`` triplets;
    duplicate entries sum.
    """

    def __init__(self, *, logger=None) -> None:
        self.logger = logger or get_logger()
        self.x_size = 0
        self.energy_vector = np.zeros(0)
        self.energy_jacobian: Triplets = _empty_triplets()
        self.constraint_vector = np.zeros(0)
        self.constraint_jacobian: Triplets = _empty_triplets()
        self.diagnostics: List[NanDiagnostic] = []
        self._parameters: Dict[str, TunableParameter] = {}

    @property
    def num_energy_rows(self) -> int:
        return int(self.energy_vector.shape[0])

    @property
    def num_constraint_rows(self) -> int:
        return int(self.constraint_vector.shape[0])

    @abstractmethod
    def initial_solution(self) -> np.ndarray:
        """Return a fresh starting vector of length ``x_size``."""

    def pre_iteration(self, prev_x: np.ndarray) -> None:
        """Hook executed before each solver step."""
        return None

    @abstractmethod
    def update_energy(self, x: np.ndarray) -> Optional[NanDiagnostic]:
        """Refresh ``energy_vector`` at ``x``."""

    @abstractmethod
    def update_jacobian(self, x: np.ndarray) -> Optional[NanDiagnostic]:
        """Refresh the Jacobian values at ``x``."""

    @abstractmethod
    def update_constraints(self, x: np.ndarray) -> None:
        """Refresh ``constraint_vector`` at ``x``."""

    def post_iteration(self, x: np.ndarray) -> bool:
        """Return ``True`` to stop the solver early."""
        return False

    @abstractmethod
    def post_optimization(self, x: np.ndarray) -> bool:
        """Store the final solution; return ``False`` to request another run."""

    # Helpers ---------------------------------------------------------------
    def check_x(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64)
        if x.shape != (self.x_size,):
            raise ValueError(f"Expected solution vector of shape ({self.x_size},), got {x.shape}")
        return x

    def report_nan(self, source: str, values: np.ndarray) -> Optional[NanDiagnostic]:
        indices = np.flatnonzero(np.isnan(values))
        if indices.size == 0:
            return None
        diagnostic = NanDiagnostic(source=source, indices=tuple(int(i) for i in indices))
        self.diagnostics.append(diagnostic)
        self.logger.warning("nan in %s at indices %s", source, list(diagnostic.indices))
        return diagnostic

    def energy_jacobian_matrix(self) -> sp.csr_matrix:
        rows, cols, vals = self.energy_jacobian
        return sp.coo_matrix((vals, (rows, cols)), shape=(self.num_energy_rows, self.x_size)).tocsr()

    def constraint_jacobian_matrix(self) -> sp.csr_matrix:
        rows, cols, vals = self.constraint_jacobian
        return sp.coo_matrix((vals, (rows, cols)), shape=(self.num_constraint_rows, self.x_size)).tocsr()

    # Parameter management -------------------------------------------------
    def register_parameter(self, name: str, parameter: TunableParameter) -> None:
        self._parameters[name] = parameter

    def parameters(self) -> Dict[str, TunableParameter]:
        return self._parameters

    def get_parameter(self, name: str) -> TunableParameter:
        return self._parameters[name]

    def set_parameter(self, name: str, value: Any) -> None:
        if name not in self._parameters:
            raise KeyError(name)
        self._parameters[name].update(value)

    def get_parameter_value(self, name: str) -> Any:
        return self._parameters[name].value


def _empty_triplets() -> Triplets:
    return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.int64), np.zeros(0)
