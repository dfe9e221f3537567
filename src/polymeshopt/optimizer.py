"""Levenberg-Marquardt driver for :class:`~polymeshopt.problem.LeastSquaresTraits`."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np
import torch

from .problem import LeastSquaresTraits
from .utils import TunableParameter, ensure_numpy, ensure_tensor, get_logger, resolve_device


Callback = Callable[[int, float, np.ndarray, float], None]

_MIN_DAMPING = 1e-9
_MAX_DAMPING = 1e16


@dataclass
class _IterationStats:
    iteration: int
    merit: float
    energy: float
    constraint_violation: float
    damping: float


class ConstrainedLMSolver:
    """Minimize ``0.5 ||E(x)||^2`` subject to ``C(x) = 0``.

    Each step solves the damped KKT system

        [[J^T J + mu I, C^T], [C, 0]] [dx; lambda] = [-J^T E; -c]

    through a Hermitian pseudo-inverse, so redundant linear constraints (for
    instance the closed edge cycles of a face) are tolerated. Steps are accepted
    when they lower ``0.5 ||E||^2 + 0.5 w ||c||^2``.
    """

    def __init__(
        self,
        *,
        logger: Optional[Any] = None,
        device: Optional[str] = None,
        dtype: torch.dtype = torch.double,
    ) -> None:
        self.logger = logger or get_logger()
        self.device = resolve_device(device)
        self.dtype = dtype
        self.callbacks: List[Callback] = []
        self.optimizer_parameters: Dict[str, TunableParameter] = {
            "max_iterations": TunableParameter(200, dtype="int", min_value=1, description="Maximum number of iterations."),
            "tolerance": TunableParameter(1e-10, dtype="float", min_value=0.0, description="Stopping tolerance on max |energy| and max |constraint|."),
            "step_tolerance": TunableParameter(1e-14, dtype="float", min_value=0.0, description="Stop when the relative step falls below this."),
            "initial_damping": TunableParameter(1e-3, dtype="float", min_value=_MIN_DAMPING, max_value=1e6, description="Initial Levenberg-Marquardt damping."),
            "constraint_weight": TunableParameter(10.0, dtype="float", min_value=0.0, description="Weight of the constraint residual in the merit function."),
            "max_outer_iterations": TunableParameter(5, dtype="int", min_value=1, description="Restarts allowed when post_optimization asks for more."),
        }

    # ------------------------------------------------------------------
    def add_callback(self, callback: Callback) -> None:
        self.callbacks.append(callback)

    def set_optimizer_parameter(self, name: str, value: Any) -> None:
        if name not in self.optimizer_parameters:
            raise KeyError(name)
        self.optimizer_parameters[name].update(value)

    def get_optimizer_parameter(self, name: str) -> TunableParameter:
        return self.optimizer_parameters[name]

    # ------------------------------------------------------------------
    def solve(
        self,
        traits: LeastSquaresTraits,
        *,
        x0: Optional[np.ndarray] = None,
        max_iterations: Optional[int] = None,
        tolerance: Optional[float] = None,
        callbacks: Optional[Iterable[Callback]] = None,
        verbose: bool = True,
    ) -> Dict[str, Any]:
        """Run the optimization and hand the result to ``traits.post_optimization``."""
        options = self._collect_options(max_iterations=max_iterations, tolerance=tolerance)
        all_callbacks = list(callbacks or []) + self.callbacks
        x = traits.initial_solution() if x0 is None else traits.check_x(x0).copy()
        x_t = ensure_tensor(x, device=self.device, dtype=self.dtype)

        total_iterations = 0
        stats = _IterationStats(0, float("nan"), float("nan"), float("nan"), float(options["initial_damping"]))
        for _ in range(int(options["max_outer_iterations"])):
            x_t, stats = self._run_iterations(traits, x_t, options, all_callbacks, verbose)
            total_iterations += stats.iteration
            if traits.post_optimization(ensure_numpy(x_t)):
                break

        converged = stats.energy <= options["tolerance"] and stats.constraint_violation <= options["tolerance"]
        if verbose:
            self.logger.info(
                "finished after %d iterations | |E|=%.3e | |c|=%.3e | converged=%s",
                total_iterations,
                stats.energy,
                stats.constraint_violation,
                converged,
            )
        return {
            "x": ensure_numpy(x_t),
            "iterations": total_iterations,
            "energy": stats.energy,
            "constraint_violation": stats.constraint_violation,
            "converged": bool(converged),
            "diagnostics": list(traits.diagnostics),
        }

    # ------------------------------------------------------------------
    def _collect_options(
        self,
        *,
        max_iterations: Optional[int] = None,
        tolerance: Optional[float] = None,
    ) -> Dict[str, Any]:
        opts = {name: param.value for name, param in self.optimizer_parameters.items()}
        if max_iterations is not None:
            opts["max_iterations"] = int(max_iterations)
        if tolerance is not None:
            opts["tolerance"] = float(tolerance)
        return opts

    def _densify(self, triplets, shape: Tuple[int, int]) -> torch.Tensor:
        rows, cols, vals = triplets
        dense = torch.zeros(shape, device=self.device, dtype=self.dtype)
        if len(vals):
            index = (
                ensure_tensor(rows, device=self.device, dtype=torch.long),
                ensure_tensor(cols, device=self.device, dtype=torch.long),
            )
            dense.index_put_(index, ensure_tensor(vals, device=self.device, dtype=self.dtype), accumulate=True)
        return dense

    def _evaluate(self, traits: LeastSquaresTraits, x_t: torch.Tensor, weight: float) -> Tuple[torch.Tensor, torch.Tensor, float]:
        x = ensure_numpy(x_t)
        traits.update_energy(x)
        traits.update_constraints(x)
        energy = ensure_tensor(traits.energy_vector, device=self.device, dtype=self.dtype)
        constraints = ensure_tensor(traits.constraint_vector, device=self.device, dtype=self.dtype)
        merit = 0.5 * torch.sum(energy**2) + 0.5 * weight * torch.sum(constraints**2)
        return energy, constraints, float(merit)

    def _step(
        self,
        jac: torch.Tensor,
        cjac: torch.Tensor,
        energy: torch.Tensor,
        constraints: torch.Tensor,
        damping: float,
    ) -> torch.Tensor:
        n = jac.shape[1]
        p = cjac.shape[0]
        kkt = torch.zeros((n + p, n + p), device=self.device, dtype=self.dtype)
        kkt[:n, :n] = jac.T @ jac + damping * torch.eye(n, device=self.device, dtype=self.dtype)
        kkt[:n, n:] = cjac.T
        kkt[n:, :n] = cjac
        rhs = torch.cat([-(jac.T @ energy), -constraints])
        solution = torch.linalg.pinv(kkt, rtol=1e-12, hermitian=True) @ rhs
        return solution[:n]

    @staticmethod
    def _inf_norm(values: torch.Tensor) -> float:
        return float(torch.max(torch.abs(values))) if values.numel() else 0.0

    def _run_iterations(
        self,
        traits: LeastSquaresTraits,
        x_t: torch.Tensor,
        options: Dict[str, Any],
        callbacks: Iterable[Callback],
        verbose: bool,
    ) -> Tuple[torch.Tensor, _IterationStats]:
        max_iters = int(options["max_iterations"])
        tol = float(options["tolerance"])
        step_tol = float(options["step_tolerance"])
        weight = float(options["constraint_weight"])
        damping = float(options["initial_damping"])

        energy, constraints, merit = self._evaluate(traits, x_t, weight)
        stats = _IterationStats(0, merit, self._inf_norm(energy), self._inf_norm(constraints), damping)

        for iteration in range(1, max_iters + 1):
            if stats.energy <= tol and stats.constraint_violation <= tol:
                break
            x_np = ensure_numpy(x_t)
            traits.pre_iteration(x_np)
            traits.update_jacobian(x_np)
            jac = self._densify(traits.energy_jacobian, (traits.num_energy_rows, traits.x_size))
            cjac = self._densify(traits.constraint_jacobian, (traits.num_constraint_rows, traits.x_size))

            accepted = False
            while damping <= _MAX_DAMPING:
                dx = self._step(jac, cjac, energy, constraints, damping)
                trial = x_t + dx
                trial_energy, trial_constraints, trial_merit = self._evaluate(traits, trial, weight)
                if trial_merit < merit:
                    accepted = True
                    break
                damping *= 4.0
            if not accepted:
                self.logger.warning("no descent step found at iteration %d; stopping", iteration)
                break

            damping = max(damping / 3.0, _MIN_DAMPING)
            x_t, energy, constraints, merit = trial, trial_energy, trial_constraints, trial_merit
            stats = _IterationStats(iteration, merit, self._inf_norm(energy), self._inf_norm(constraints), damping)

            x_np = ensure_numpy(x_t)
            if verbose:
                self.logger.info(
                    "iter %d | merit=%.6g | |E|=%.3e | |c|=%.3e | mu=%.1e",
                    iteration,
                    merit,
                    stats.energy,
                    stats.constraint_violation,
                    damping,
                )
            for cb in callbacks:
                cb(iteration, merit, x_np, damping)
            if traits.post_iteration(x_np):
                break
            step_norm = float(torch.linalg.vector_norm(dx))
            if step_norm <= step_tol * (1.0 + float(torch.linalg.vector_norm(x_t))):
                break

        # Leave the traits state consistent with the returned iterate.
        self._evaluate(traits, x_t, weight)
        return x_t, stats
