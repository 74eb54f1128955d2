"""Engine backed by OSQP."""

from typing import Dict, Optional, Tuple

import numpy as np
import numpy.typing as npt
import osqp
from scipy import sparse

from ..engine import Engine, EngineSettings
from ..numerical_helpers import to_infinite_bounds
from ..problem import QPProblem
from ..types import Outcome

_STATUSES: Dict[str, Outcome] = {
    "solved": Outcome.Optimal,
    "solved inaccurate": Outcome.Feasible,
    "primal infeasible": Outcome.Infeasible,
    "primal infeasible inaccurate": Outcome.Infeasible,
    # A certificate of dual infeasibility means unbounded if the primal is feasible,
    # which OSQP doesn't establish.
    "dual infeasible": Outcome.InfeasibleOrUnbounded,
    "dual infeasible inaccurate": Outcome.InfeasibleOrUnbounded,
    "maximum iterations reached": Outcome.Unknown,
    "run time limit reached": Outcome.Unknown,
    "interrupted": Outcome.Unknown,
    "unsolved": Outcome.Unknown,
    "problem non convex": Outcome.Error,
    "non convex": Outcome.Error,
}


class OSQPEngine(Engine):
    r"""Solve QPs with OSQP, an ADMM-based solver.

    OSQP takes a single block of two-sided constraints, l <= A * x <= u, so variable
    bounds are appended to the constraints as identity rows:
           _   _         _   _         _   _
          | lb  |       |  A  |       | ub  |
          |     |  <=   |     | x <=  |     |.
          | lbx |       |  I  |       | ubx |
           -   -         -   -         -   -

    Warm starts pass the starting point to OSQP as its primal iterate. When the
    starting point is this engine's own previous solution and the constraint count has
    not changed, the previous dual iterate is passed along too.

    OSQP needs Q to be PSD; a non-convex Q is reported as Outcome.Error before OSQP
    is called (see `EngineSettings.psd_tolerance`).

    The feasibility tolerance is used as both the absolute and relative convergence
    tolerance of OSQP.

    """

    name = "osqp"
    retain_guess_on_failure = True
    requires_convexity = True

    def __init__(self, settings: Optional[EngineSettings] = None) -> None:
        """Initialize engine."""
        super().__init__(settings=settings)
        self.previous_dual: Optional[npt.NDArray[np.float64]] = None
        self._candidate_dual: Optional[npt.NDArray[np.float64]] = None

    def reset(self) -> None:
        """Forget the previous solution. The next `next` call will cold start."""
        super().reset()
        self.previous_dual = None

    def _update_state(self, outcome, x, guess, explicit_guess) -> None:
        # The dual is only kept alongside the primal solution it belongs to.
        super()._update_state(outcome, x, guess, explicit_guess)
        if outcome == Outcome.Optimal:
            self.previous_dual = self._candidate_dual
        elif explicit_guess:
            self.previous_dual = None
        self._candidate_dual = None

    def solve_problem(
        self, problem: QPProblem, guess: Optional[npt.NDArray[np.float64]]
    ) -> Tuple[Outcome, Optional[npt.NDArray[np.float64]], int, str]:
        """Solve problem with OSQP."""
        n, m = problem.num_vars, problem.num_constraints
        P = sparse.triu(
            sparse.csc_matrix(np.asarray(problem.Q, dtype=np.float64)), format="csc"
        )
        q = np.asarray(problem.c, dtype=np.float64)
        A = sparse.vstack(
            (
                sparse.csc_matrix(np.asarray(problem.A, dtype=np.float64)),
                sparse.identity(n, format="csc"),
            ),
            format="csc",
        )
        lower = np.concatenate(
            (
                to_infinite_bounds(problem.lb, problem.dtype),
                to_infinite_bounds(problem.lbx, problem.dtype),
            )
        )
        upper = np.concatenate(
            (
                to_infinite_bounds(problem.ub, problem.dtype),
                to_infinite_bounds(problem.ubx, problem.dtype),
            )
        )

        solver = osqp.OSQP()
        solver.setup(
            P=P,
            q=q,
            A=A,
            l=lower,
            u=upper,
            verbose=False,
            eps_abs=self.settings.feasibility_tolerance,
            eps_rel=self.settings.feasibility_tolerance,
            max_iter=self.settings.max_iterations,
        )

        if guess is not None:
            if (
                self.previous_dual is not None
                and self.previous_dual.shape[0] == n + m
                and self.previous_result is not None
                and np.array_equal(guess, self.previous_result)
            ):
                solver.warm_start(x=guess, y=self.previous_dual)
            else:
                solver.warm_start(x=guess)

        res = solver.solve()
        status = str(res.info.status).strip().lower()
        nits = int(res.info.iter)
        outcome = _STATUSES.get(status, Outcome.Unknown)

        if outcome == Outcome.Optimal:
            self._candidate_dual = np.array(res.y, dtype=np.float64)
        if outcome.is_success:
            return outcome, np.array(res.x, dtype=np.float64), nits, status
        return outcome, None, nits, status
