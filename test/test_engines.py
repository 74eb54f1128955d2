"""Test the backend engines."""

import numpy as np
import pytest

from qpwrappers.engine import EngineSettings
from qpwrappers.engines import OSQPEngine, SLSQPEngine
from qpwrappers.problem import QPProblem
from qpwrappers.types import Outcome

# OSQP is first order, so its solutions are only accurate to roughly its tolerance.
TOLERANCES = {SLSQPEngine: 1e-6, OSQPEngine: 1e-4}
ENGINES = [SLSQPEngine, OSQPEngine]


def _example() -> QPProblem:
    problem = QPProblem(2)
    problem.add_Q(2 * np.eye(2))
    problem.add_c([-4.0, -6.0])
    return problem


@pytest.mark.parametrize("engine_class", ENGINES)
def test_unconstrained(engine_class) -> None:
    """Test the minimizer of 1/2 x^T Q x + c^T x is -Q^{-1} c."""
    engine = engine_class()
    problem = _example()

    outcome, x = engine.init(problem)

    assert outcome == Outcome.Optimal
    np.testing.assert_allclose(x, [2.0, 3.0], atol=10 * TOLERANCES[engine_class])
    assert problem.objective(x, canonical=True) == pytest.approx(-13.0, abs=1e-3)
    assert engine.initialized


@pytest.mark.parametrize("engine_class", ENGINES)
def test_equality_constraint(engine_class) -> None:
    """Test an equality constraint pins the variable."""
    engine = engine_class()
    problem = QPProblem(1)
    problem.add_Q([[1.0]])
    problem.add_constraint([1.0], 5.0, 5.0)

    outcome, x = engine.init(problem)

    tol = TOLERANCES[engine_class]
    assert outcome == Outcome.Optimal
    np.testing.assert_allclose(x, [5.0], atol=10 * tol)
    assert problem.verify(x, tol)


@pytest.mark.parametrize("engine_class", ENGINES)
def test_bounds_and_constraints(engine_class) -> None:
    """Test a problem with active variable bounds and an active constraint."""
    engine = engine_class()
    problem = _example()
    problem.set_var_limits(0, 0.0, 1.0)
    problem.add_constraint([1.0, 1.0], -10.0, 3.0)

    outcome, x = engine.init(problem)

    tol = TOLERANCES[engine_class]
    assert outcome == Outcome.Optimal
    assert problem.verify(x, tol)
    # x[1] = 3 - x[0] along the constraint, and x[0] is pushed to its upper bound
    np.testing.assert_allclose(x, [1.0, 2.0], atol=10 * tol)


@pytest.mark.parametrize("engine_class", ENGINES)
def test_warm_start_sequence(engine_class) -> None:
    """Test warm starting along a sequence of slowly changing problems."""
    engine = engine_class()
    tol = TOLERANCES[engine_class]

    def build(k: int) -> QPProblem:
        problem = QPProblem(3)
        problem.add_Q(np.diag([2.0, 1.0, 4.0]))
        problem.add_c([-1.0 - 0.1 * k, 0.5, -2.0 + 0.05 * k])
        problem.add_constraint([1.0, 1.0, 1.0], 0.0, 1.0)
        for i in range(3):
            problem.set_var_limits(i, -1.0, 1.0)
        return problem

    res = engine.init(build(0))
    assert res.outcome == Outcome.Optimal
    assert not res.warm_started

    for k in range(1, 6):
        problem = build(k)
        res = engine.next(problem)
        assert res.outcome == Outcome.Optimal
        assert res.warm_started
        assert problem.verify(res.solution, tol)

        reference = engine_class().init(problem)
        assert reference.outcome == Outcome.Optimal
        np.testing.assert_allclose(res.solution, reference.solution, atol=100 * tol)


@pytest.mark.parametrize("engine_class", ENGINES)
def test_warm_start_from_solution_is_cheap(engine_class) -> None:
    """Test re-solving from the optimum takes no more iterations than a cold start."""
    engine = engine_class()
    problem = _example()
    problem.set_var_limits(1, -5.0, 2.5)
    problem.add_constraint([1.0, -1.0], -1.0, 1.0)

    cold = engine.init(problem)
    warm = engine.next(problem)

    assert cold.outcome == Outcome.Optimal
    assert warm.outcome == Outcome.Optimal
    assert warm.warm_started
    assert warm.nits <= cold.nits
    assert problem.verify(warm.solution, TOLERANCES[engine_class])


@pytest.mark.parametrize("engine_class", ENGINES)
def test_size_change_cold_starts(engine_class) -> None:
    """Test a change in the number of variables is handled as a fresh problem."""
    engine = engine_class()
    engine.init(_example())

    problem = QPProblem(3)
    problem.add_Q(np.eye(3))
    problem.add_c([1.0, 2.0, 3.0])
    res = engine.next(problem)

    assert not res.warm_started
    assert res.outcome == Outcome.Optimal
    np.testing.assert_allclose(res.solution, [-1.0, -2.0, -3.0], atol=1e-3)


@pytest.mark.parametrize("engine_class", ENGINES)
def test_explicit_guess(engine_class) -> None:
    """Test solving from a caller-supplied starting point."""
    engine = engine_class()
    res = engine.next(_example(), guess=[1.5, 3.5])

    assert res.warm_started
    assert res.outcome == Outcome.Optimal
    np.testing.assert_allclose(res.solution, [2.0, 3.0], atol=1e-3)


@pytest.mark.parametrize("engine_class", ENGINES)
def test_infeasible(engine_class) -> None:
    """Test contradictory constraints never produce a solution."""
    engine = engine_class()
    engine.init(_example())
    previous = engine.previous_result.copy()

    problem = _example()
    problem.set_var_limits(0, 0.0, 1.0)
    problem.set_var_limits(1, 0.0, 1.0)
    problem.add_constraint([1.0, 1.0], 3.0, 4.0)

    res = engine.init(problem)

    assert not res.outcome.is_success
    assert res.solution.shape == (0,)
    np.testing.assert_array_equal(engine.previous_result, previous)


@pytest.mark.parametrize("engine_class", ENGINES)
def test_inconsistent_bounds(engine_class) -> None:
    """Test crossed bounds are reported as infeasible."""
    problem = _example()
    problem.add_constraint([1.0, 0.0], 2.0, 1.0)

    res = engine_class().init(problem)

    assert res.outcome == Outcome.Infeasible
    assert res.nits == 0


def test_osqp_primal_infeasible() -> None:
    """Test OSQP certifies infeasibility."""
    problem = _example()
    problem.set_var_limits(0, 0.0, 1.0)
    problem.set_var_limits(1, 0.0, 1.0)
    problem.add_constraint([1.0, 1.0], 3.0, 4.0)

    res = OSQPEngine().init(problem)

    assert res.outcome == Outcome.Infeasible


def test_osqp_unbounded() -> None:
    """Test an unbounded linear objective is flagged by OSQP."""
    problem = QPProblem(1)
    problem.add_c([1.0])

    res = OSQPEngine().init(problem)

    assert res.outcome == Outcome.InfeasibleOrUnbounded
    assert res.solution.shape == (0,)


def test_osqp_retains_failed_guess() -> None:
    """Test OSQP keeps an explicit guess after a failed solve."""
    engine = OSQPEngine()
    problem = _example()
    problem.set_var_limits(0, 0.0, 1.0)
    problem.set_var_limits(1, 0.0, 1.0)
    problem.add_constraint([1.0, 1.0], 3.0, 4.0)

    engine.next(problem, guess=[0.5, 0.5])

    np.testing.assert_array_equal(engine.previous_result, [0.5, 0.5])


def test_osqp_reset_clears_dual() -> None:
    """Test reset also forgets the dual iterate."""
    engine = OSQPEngine()
    engine.init(_example())
    assert engine.previous_dual is not None

    engine.reset()

    assert engine.previous_dual is None
    assert not engine.initialized


def test_slsqp_iteration_limit() -> None:
    """Test hitting the iteration limit is not reported as optimal."""
    engine = SLSQPEngine(settings=EngineSettings(max_iterations=1))
    problem = QPProblem(4)
    np.random.seed(101)
    M = np.random.randn(4, 4)
    problem.add_Q(M @ M.T + np.eye(4))
    problem.add_c(10 * np.random.randn(4))
    problem.add_constraint(np.ones(4), -1.0, 1.0)

    res = engine.init(problem)

    assert res.outcome in (Outcome.Unknown, Outcome.Feasible)
    assert not engine.initialized


def test_nonconvex_osqp() -> None:
    """Test OSQP refuses a non-convex problem before calling the backend."""
    problem = QPProblem(2)
    problem.add_Q(np.diag([1.0, -1.0]))
    for i in range(2):
        problem.set_var_limits(i, -1.0, 1.0)

    res = OSQPEngine().init(problem)

    assert res.outcome == Outcome.Error
    assert res.nits == 0
    assert res.solution.shape == (0,)


def test_osqp_psd_tolerance() -> None:
    """Test round-off below the PSD tolerance doesn't stop OSQP."""
    problem = QPProblem(2)
    problem.add_Q(np.diag([2.0, -1e-9]))
    problem.add_c([-2.0, 0.0])
    for i in range(2):
        problem.set_var_limits(i, -1.0, 1.0)

    engine = OSQPEngine()
    assert engine.init(problem).outcome == Outcome.Error

    engine.set_psd_tolerance(1e-8)
    res = engine.init(problem)

    assert res.outcome == Outcome.Optimal
    assert res.solution[0] == pytest.approx(1.0, abs=1e-3)
    assert problem.verify(res.solution, 1e-4)


class TruncatingOSQPEngine(OSQPEngine):
    """OSQP engine that drops the last entry of every solution."""

    def solve_problem(self, problem, guess):
        outcome, x, nits, message = super().solve_problem(problem, guess)
        return outcome, None if x is None else x[:-1], nits, message


def test_osqp_dual_follows_final_outcome() -> None:
    """Test the dual is not kept when the solve is downgraded to an error."""
    engine = TruncatingOSQPEngine()

    res = engine.init(_example())

    assert res.outcome == Outcome.Error
    assert engine.previous_dual is None
    assert not engine.initialized


def test_osqp_failed_guess_drops_dual() -> None:
    """Test a retained guess isn't paired with a dual from an earlier solve."""
    engine = OSQPEngine()
    engine.init(_example())
    assert engine.previous_dual is not None

    problem = _example()
    problem.set_var_limits(0, 0.0, 1.0)
    problem.set_var_limits(1, 0.0, 1.0)
    problem.add_constraint([1.0, 1.0], 3.0, 4.0)
    engine.next(problem, guess=[0.5, 0.5])

    np.testing.assert_array_equal(engine.previous_result, [0.5, 0.5])
    assert engine.previous_dual is None
