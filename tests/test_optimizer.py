import numpy as np
import pytest

from polymeshopt.optimizer import ConstrainedLMSolver
from polymeshopt.problem import LeastSquaresTraits


class ShiftedTargetTraits(LeastSquaresTraits):
    """Energy ``x - target`` with the linear constraint ``x0 + x1 = 1``."""

    def __init__(self, target, *, finish_after=1, stop_early=False):
        super().__init__()
        self.target = np.asarray(target, dtype=np.float64)
        self.x_size = self.target.size
        self.energy_vector = np.zeros(self.x_size)
        self.energy_jacobian = (np.arange(self.x_size), np.arange(self.x_size), np.ones(self.x_size))
        self.constraint_vector = np.zeros(1)
        self.constraint_jacobian = (np.array([0, 0]), np.array([0, 1]), np.array([1.0, 1.0]))
        self.finish_after = finish_after
        self.stop_early = stop_early
        self.calls = {"pre": 0, "post": 0, "final": 0}
        self.result = None

    def initial_solution(self):
        return np.zeros(self.x_size)

    def pre_iteration(self, prev_x):
        self.calls["pre"] += 1

    def update_energy(self, x):
        self.energy_vector = self.check_x(x) - self.target
        return self.report_nan("energy", self.energy_vector)

    def update_jacobian(self, x):
        return None

    def update_constraints(self, x):
        x = self.check_x(x)
        self.constraint_vector = np.array([x[0] + x[1] - 1.0])

    def post_iteration(self, x):
        self.calls["post"] += 1
        return self.stop_early

    def post_optimization(self, x):
        self.calls["final"] += 1
        self.result = np.array(x, copy=True)
        return self.calls["final"] >= self.finish_after


class ZeroResidualTraits(ShiftedTargetTraits):
    """Target lies on the constraint, so the residual can vanish."""

    def __init__(self):
        super().__init__([0.25, 0.75, -2.0])


def test_solver_converges_on_constrained_linear_problem():
    traits = ZeroResidualTraits()
    solver = ConstrainedLMSolver(device="cpu")
    result = solver.solve(traits, verbose=False)
    assert result["converged"]
    assert np.allclose(result["x"], [0.25, 0.75, -2.0], atol=1e-8)
    assert np.allclose(traits.result, result["x"])
    assert traits.calls["pre"] == traits.calls["post"] == result["iterations"]


def test_solver_finds_constrained_least_squares_minimum():
    traits = ShiftedTargetTraits([1.0, 2.0])
    solver = ConstrainedLMSolver(device="cpu")
    result = solver.solve(traits, verbose=False)
    assert not result["converged"]
    assert np.allclose(result["x"], [0.0, 1.0], atol=1e-6)
    assert result["constraint_violation"] < 1e-10


def test_post_iteration_can_stop_early():
    traits = ShiftedTargetTraits([0.25, 0.75], stop_early=True)
    result = ConstrainedLMSolver(device="cpu").solve(traits, verbose=False)
    assert result["iterations"] == 1
    assert traits.calls["post"] == 1


def test_post_optimization_restarts_until_satisfied():
    traits = ShiftedTargetTraits([0.25, 0.75], finish_after=3)
    solver = ConstrainedLMSolver(device="cpu")
    solver.set_optimizer_parameter("max_iterations", 1)
    solver.solve(traits, verbose=False)
    assert traits.calls["final"] == 3


def test_callbacks_receive_progress():
    seen = []
    solver = ConstrainedLMSolver(device="cpu")
    solver.add_callback(lambda it, merit, x, damping: seen.append((it, merit, x.shape, damping)))
    result = solver.solve(ZeroResidualTraits(), verbose=False)
    assert len(seen) == result["iterations"] > 0
    merits = [entry[1] for entry in seen]
    assert all(b < a for a, b in zip(merits, merits[1:]))
    assert seen[0][2] == (3,)


def test_optimizer_parameters():
    solver = ConstrainedLMSolver(device="cpu")
    solver.set_optimizer_parameter("max_iterations", 0)
    assert solver.get_optimizer_parameter("max_iterations").value == 1
    with pytest.raises(KeyError):
        solver.set_optimizer_parameter("learning_rate", 0.1)


def test_explicit_start_is_validated():
    solver = ConstrainedLMSolver(device="cpu")
    with pytest.raises(ValueError):
        solver.solve(ZeroResidualTraits(), x0=np.zeros(7), verbose=False)
