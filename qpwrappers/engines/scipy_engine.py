"""Engine backed by SciPy's SLSQP."""

from typing import Dict, Optional, Tuple

import numpy as np
import numpy.typing as npt
from scipy.optimize import Bounds, LinearConstraint, minimize

from ..engine import Engine
from ..numerical_helpers import to_infinite_bounds
from ..problem import QPProblem
from ..types import Outcome

# SLSQP exit modes. See scipy.optimize.minimize(method="SLSQP").
_EXIT_MODES: Dict[int, Outcome] = {
    0: Outcome.Optimal,
    1: Outcome.Error,  # function evaluation returned NaN or inf
    2: Outcome.Error,  # more equality constraints than independent variables
    3: Outcome.Unknown,  # iteration limit of the LSQ subproblem
    4: Outcome.Infeasible,  # inequality constraints incompatible
    5: Outcome.Error,  # singular matrix E in LSQ subproblem
    6: Outcome.Error,  # singular matrix C in LSQ subproblem
    7: Outcome.Error,  # rank-deficient equality constraint subproblem
    8: Outcome.Unknown,  # positive directional derivative for linesearch
    9: Outcome.Unknown,  # iteration limit
}

UNBOUNDED_OBJECTIVE = -1e20


class SLSQPEngine(Engine):
    r"""Solve QPs with Sequential Least Squares Programming.

    SLSQP is an active-set method, so starting from the solution of a similar problem
    typically identifies the active constraints within an iteration or two. The
    starting point is passed as `x0`; a cold start begins at the projection of the
    origin onto the variable bounds.

    SLSQP is a local method. When Q is indefinite, Optimal means locally optimal.

    Divergence is detected by the objective dropping below -1e20, which is reported as
    Unbounded. SLSQP has no way to certify infeasibility beyond incompatible
    linearized constraints, which are reported as Infeasible.

    """

    name = "slsqp"

    def solve_problem(
        self, problem: QPProblem, guess: Optional[npt.NDArray[np.float64]]
    ) -> Tuple[Outcome, Optional[npt.NDArray[np.float64]], int, str]:
        """Solve problem with SLSQP."""
        Q = np.asarray(problem.Q, dtype=np.float64)
        c = np.asarray(problem.c, dtype=np.float64)
        lbx = to_infinite_bounds(problem.lbx, problem.dtype)
        ubx = to_infinite_bounds(problem.ubx, problem.dtype)

        def fun(x: npt.NDArray[np.float64]) -> Tuple[float, npt.NDArray[np.float64]]:
            Qx = Q @ x
            return 0.5 * np.dot(x, Qx) + np.dot(c, x), Qx + c

        if guess is None:
            x0 = np.clip(np.zeros(problem.num_vars), lbx, ubx)
        else:
            x0 = np.asarray(guess, dtype=np.float64)

        constraints = []
        if problem.num_constraints > 0:
            lb = to_infinite_bounds(problem.lb, problem.dtype)
            ub = to_infinite_bounds(problem.ub, problem.dtype)
            # Rows with no finite bound don't constrain anything.
            keep = np.isfinite(lb) | np.isfinite(ub)
            if np.any(keep):
                A = np.asarray(problem.A, dtype=np.float64)
                constraints.append(LinearConstraint(A[keep], lb[keep], ub[keep]))

        res = minimize(
            fun,
            x0,
            jac=True,
            method="SLSQP",
            bounds=Bounds(lbx, ubx),
            constraints=constraints,
            options={
                "maxiter": self.settings.max_iterations,
                "ftol": self.settings.optimality_tolerance,
            },
        )

        nits = int(getattr(res, "nit", 0))
        if not np.all(np.isfinite(res.x)) or res.fun < UNBOUNDED_OBJECTIVE:
            return Outcome.Unbounded, None, nits, "Iterates diverged"

        outcome = _EXIT_MODES.get(int(res.status), Outcome.Unknown)
        feasible = problem.verify(res.x, self.settings.feasibility_tolerance)
        if outcome == Outcome.Optimal:
            if feasible:
                return outcome, res.x, nits, str(res.message)
            # SLSQP occasionally reports success at an infeasible point.
            return Outcome.Unknown, None, nits, "Converged to an infeasible point"

        # An inconclusive run may still have stopped at a usable point.
        if outcome == Outcome.Unknown and feasible:
            return Outcome.Feasible, res.x, nits, str(res.message)
        return outcome, None, nits, str(res.message)
