"""Test conversion of soft constraints into penalties."""

import numpy as np

from qpwrappers.numerical_helpers import highest, lowest
from qpwrappers.problem import QPProblem


def test_soft_equality_folds_into_objective() -> None:
    """Test a soft equality becomes a squared penalty with no new variables."""
    problem = QPProblem(1)
    problem.add_constraint([1.0], 2.0, 2.0, soft=True, weight=10.0)

    soft = problem.convert_to_soft()

    assert soft.num_vars == 1
    assert soft.num_constraints == 0
    assert soft.Q[0, 0] == 20.0
    assert soft.c[0] == -40.0

    # Original untouched
    assert problem.num_constraints == 1
    assert problem.Q[0, 0] == 0.0


def test_soft_equality_minimizer() -> None:
    """Test the folded penalty is minimized where the equality holds."""
    problem = QPProblem(2)
    problem.add_Q(np.eye(2))
    problem.add_constraint([1.0, 1.0], 4.0, 4.0, soft=True, weight=3.0)

    soft = problem.convert_to_soft()

    # Stationary point of 1/2 x^T Q x + c^T x
    x = np.linalg.solve(soft.Q, -soft.c)
    a = np.array([1.0, 1.0])
    expected = np.linalg.solve(np.eye(2) + 6 * np.outer(a, a), 6 * 4.0 * a)
    np.testing.assert_allclose(x, expected)
    np.testing.assert_array_equal(soft.Q, soft.Q.T)


def test_no_soft_constraints_is_identity() -> None:
    """Test a problem with nothing to soften converts to a copy of itself."""
    problem = QPProblem(3)
    problem.add_Q(np.diag([1.0, 2.0, 3.0]))
    problem.add_c([1.0, -1.0, 0.5])
    problem.set_var_limits(1, -1.0, 1.0)
    problem.add_constraint([1.0, 1.0, 1.0], 0.0, 1.0)
    problem.add_constraint([1.0, -1.0, 0.0], 0.5, 0.5)

    assert problem.soft_slack_count() == 0
    soft = problem.convert_to_soft()
    assert soft is not problem
    assert soft.allclose(problem)


def test_one_sided_soft_constraints() -> None:
    """Test each finite side of an inequality gets its own slack."""
    problem = QPProblem(2)
    problem.add_constraint([1.0, 2.0], 1.0, highest(np.float64), soft=True, weight=4.0)
    problem.add_constraint([3.0, 4.0], lowest(np.float64), 5.0, soft=True, weight=6.0)

    assert problem.soft_slack_count() == 2
    soft = problem.convert_to_soft()

    assert soft.num_vars == 4
    assert soft.num_constraints == 2
    np.testing.assert_array_equal(soft.c, [0.0, 0.0, 4.0, 6.0])
    np.testing.assert_array_equal(soft.lbx[2:], [0.0, 0.0])
    assert soft.is_ubx_unbounded(2)
    assert soft.is_ubx_unbounded(3)

    np.testing.assert_array_equal(soft.A, [[1.0, 2.0, 1.0, 0.0], [3.0, 4.0, 0.0, -1.0]])
    assert soft.lb[0] == 1.0
    assert soft.ub[0] == highest(np.float64)
    assert soft.lb[1] == lowest(np.float64)
    assert soft.ub[1] == 5.0
    assert not np.any(soft.soft_convertible)


def test_two_sided_soft_constraint() -> None:
    """Test a soft range constraint gets a slack per side."""
    problem = QPProblem(1)
    problem.add_constraint([2.0], -1.0, 1.0, soft=True, weight=0.5)

    soft = problem.convert_to_soft()

    assert soft.num_vars == 3
    np.testing.assert_array_equal(soft.A, [[2.0, 1.0, 0.0], [2.0, 0.0, -1.0]])
    np.testing.assert_array_equal(soft.c, [0.0, 0.5, 0.5])

    # Any x is feasible once slacks absorb the violation
    x = np.array([3.0, 0.0, 5.0])
    assert soft.verify(x)
    assert not problem.verify(x[:1])


def test_hard_constraints_are_padded() -> None:
    """Test hard constraints come first, with zero coefficients on the slacks."""
    problem = QPProblem(2)
    problem.add_constraint([1.0, 0.0], 0.0, highest(np.float64), soft=True)
    problem.add_constraint([0.0, 1.0], -2.0, 2.0)
    problem.add_constraint([1.0, 1.0], 3.0, 3.0, soft=True, weight=2.0)
    problem.add_constraint([1.0, -1.0], lowest(np.float64), 1.0)

    soft = problem.convert_to_soft()

    assert soft.num_vars == 3
    assert soft.num_constraints == 3
    np.testing.assert_array_equal(
        soft.A,
        [
            [0.0, 1.0, 0.0],
            [1.0, -1.0, 0.0],
            [1.0, 0.0, 1.0],
        ],
    )
    np.testing.assert_array_equal(soft.lb[:2], [-2.0, lowest(np.float64)])
    np.testing.assert_array_equal(soft.ub[:2], [2.0, 1.0])

    a = np.array([1.0, 1.0, 0.0])
    np.testing.assert_array_equal(soft.Q, 4.0 * np.outer(a, a))
    np.testing.assert_array_equal(soft.c, [-12.0, -12.0, 1.0])


def test_float32_soft_conversion() -> None:
    """Test conversion keeps the scalar type and its sentinels."""
    problem = QPProblem(1, dtype=np.float32)
    problem.add_constraint([1.0], 0.0, highest(np.float32), soft=True)

    soft = problem.convert_to_soft()

    assert soft.dtype == np.float32
    assert soft.num_vars == 2
    assert soft.ub[0] == highest(np.float32)
    assert soft.is_ubx_unbounded(1)
