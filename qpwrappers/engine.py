"""Base engine classes.

An Engine solves a sequence of related QP instances, e.g. the problems solved at each
step of a receding horizon controller. Consecutive instances typically share their
structure (same number of variables) and differ slowly in their data, so the solution of
one instance is a good starting point for the next. Engines remember the last good
solution and use it to warm start the next solve.

Usage
-----
    engine = SLSQPEngine()
    outcome, x = engine.init(problem)        # cold start
    for problem in later_problems:
        outcome, x = engine.next(problem)    # warm start from the previous solution

To add a backend, inherit from Engine and implement `solve_problem`, which receives the
problem and an optional starting point and returns the outcome, the solution, the
number of iterations and a message. Everything else (state handling, falling back to a
cold start when the problem structure changes, catching backend exceptions, timing,
verbose output) lives here.

"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt
from matplotlib.axes import Axes

from .exceptions import DimensionMismatchError
from .problem import QPProblem
from .types import Outcome


@dataclass
class EngineSettings:
    """Engine settings.

    Parameters
    ----------
    feasibility_tolerance : float, default=1e-6
        By how much the backend may violate constraints. This is the backend's internal
        tolerance; `QPProblem.verify` has its own tolerance for checking solutions after
        the fact.
    optimality_tolerance : float, default=1e-8
        Convergence tolerance on the objective (or on the duality gap, depending on the
        backend).
    psd_tolerance : float, default=0.0
        By how much the eigenvalues of Q may be below zero for Q to count as PSD in
        the convexity check engines with convex-only backends make before solving.
    max_iterations : int, default=4000
        Iteration limit. Reaching it is reported as Outcome.Unknown.
    verbose : bool, default=False
        If True, print status along with how long it took to execute each solve.

    """

    feasibility_tolerance: float = 1e-6
    optimality_tolerance: float = 1e-8
    psd_tolerance: float = 0.0
    max_iterations: int = 4000
    verbose: bool = False


@dataclass
class EngineResult:
    """Wrapper for the result of a solve.

    Parameters
    ----------
     outcome : Outcome
        What the backend concluded.
     solution : vector
        The solution, of length num_vars. Empty when the backend produced nothing.
     nits : int
        Number of iterations used by the backend.
     warm_started : bool
        Whether a starting point was passed to the backend.
     solve_time : float
        Wall clock time of the solve, in seconds.
     message : str
        Summary of result, typically the backend's own status message.

    Notes
    -----
    Unpacks as (outcome, solution):
        outcome, x = engine.init(problem)

    """

    outcome: Outcome
    solution: npt.NDArray[np.float64]
    nits: int = 0
    warm_started: bool = False
    solve_time: float = 0.0
    message: str = ""

    def __iter__(self) -> Iterator:
        yield self.outcome
        yield self.solution


@dataclass
class SolveHistory:
    """Results of all the solves performed by an engine, oldest first."""

    results: List[EngineResult] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, i: int) -> EngineResult:
        return self.results[i]

    def append(self, result: EngineResult) -> None:
        """Record a result."""
        self.results.append(result)

    def clear(self) -> None:
        """Forget all results."""
        self.results.clear()

    def outcomes(self) -> List[Outcome]:
        """Outcome of each solve."""
        return [r.outcome for r in self.results]

    def plot_iterations(self, ax: Optional[Axes] = None) -> Axes:
        """Plot iterations per solve, distinguishing cold and warm starts."""
        if ax is None:
            _, ax = plt.subplots()

        solves = np.arange(1, len(self.results) + 1)
        nits = np.array([r.nits for r in self.results])
        warm = np.array([r.warm_started for r in self.results], dtype=bool)
        ax.plot(solves, nits, color="gray", alpha=0.5)
        ax.scatter(solves[~warm], nits[~warm], marker="o", label="Cold start")
        ax.scatter(solves[warm], nits[warm], marker="^", label="Warm start")
        ax.set_xlabel("Solve")
        ax.set_ylabel("Iterations")
        ax.legend()
        return ax


class Engine(ABC):
    """Base class for an engine.

    Parameters
    ----------
     settings : EngineSettings, optional
        Engine settings.

    Notes
    -----
    Engines are stateful. Before the first successful solve an engine is
    uninitialized; afterwards it holds the most recent optimal solution
    (`previous_result`). Only an Optimal outcome replaces it, so a failed solve
    never spoils the starting point of the next one. When a solve with an explicit
    guess fails, subclasses that set `retain_guess_on_failure` record the guess
    instead.

    Subclasses wrapping convex-only backends set `requires_convexity`. Problems whose
    Q is not PSD, to within `settings.psd_tolerance`, are then reported as
    Outcome.Error without calling the backend.

    An engine is not thread safe. To solve with several engines at once, give each its
    own thread (see `parallel.solve_concurrently`).

    """

    name: str = "engine"
    retain_guess_on_failure: bool = False
    requires_convexity: bool = False

    def __init__(self, settings: Optional[EngineSettings] = None) -> None:
        """Initialize engine."""
        if settings is None:
            self.settings: EngineSettings = EngineSettings()
        else:
            self.settings = settings
        self.previous_result: Optional[npt.NDArray[np.float64]] = None
        self.history = SolveHistory()

    @property
    def initialized(self) -> bool:
        """Whether the engine holds a solution to warm start from."""
        return self.previous_result is not None

    def set_feasibility_tolerance(self, tolerance: float) -> None:
        """By how much are the constraints allowed to be violated?"""
        if tolerance < 0:
            raise ValueError("Feasibility tolerance must be non-negative.")
        self.settings.feasibility_tolerance = tolerance

    def set_psd_tolerance(self, tolerance: float) -> None:
        """By how much may the eigenvalues of Q be below 0 during PSD checks?"""
        if tolerance < 0:
            raise ValueError("PSD tolerance must be non-negative.")
        self.settings.psd_tolerance = tolerance

    def reset(self) -> None:
        """Forget the previous solution. The next `next` call will cold start."""
        self.previous_result = None

    def init(self, problem: QPProblem) -> EngineResult:
        """Solve the first instance of a sequence of problems.

        Cold start: no information from previous solves is used.

        Parameters
        ----------
         problem : QPProblem
            The problem.

        Returns
        -------
         res : EngineResult
            The outcome and solution, plus some diagnostics.

        """
        return self._run(problem, guess=None, explicit_guess=False)

    def next(
        self, problem: QPProblem, guess: Optional[npt.ArrayLike] = None
    ) -> EngineResult:
        """Solve the next instance of a sequence of problems.

        Parameters
        ----------
         problem : QPProblem
            The problem.
         guess : vector, optional
            Starting point. If not specified, uses the solution of the previous solve.
            If there's no previous solution, or it has a different number of variables
            than `problem`, this is the same as `init`.

        Returns
        -------
         res : EngineResult
            The outcome and solution, plus some diagnostics.

        Raises
        ------
         DimensionMismatchError
            If `guess` does not have one entry per variable.

        """
        if guess is not None:
            guess = np.array(guess, dtype=np.float64)
            if guess.shape != (problem.num_vars,):
                raise DimensionMismatchError(
                    "Initial guess must have one entry per variable",
                    expected=(problem.num_vars,),
                    actual=guess.shape,
                )
            return self._run(problem, guess=guess, explicit_guess=True)

        if not self.initialized or self.previous_result.shape[0] != problem.num_vars:
            if self.settings.verbose and self.initialized:
                print(f"  [{self.name}] Problem size changed; cold starting")
            return self.init(problem)

        return self._run(problem, guess=self.previous_result.copy(), explicit_guess=False)

    def _run(
        self,
        problem: QPProblem,
        guess: Optional[npt.NDArray[np.float64]],
        explicit_guess: bool,
    ) -> EngineResult:
        if self.settings.verbose:
            start_kind = "warm" if guess is not None else "cold"
            print(
                f"  [{self.name}] Solving {problem.num_vars} variables, "
                f"{problem.num_constraints} constraints ({start_kind} start)"
            )

        start_time = time.time()
        if not problem.is_consistent():
            outcome, x, nits, message = (
                Outcome.Infeasible,
                None,
                0,
                "Some lower bound exceeds the corresponding upper bound",
            )
        elif self.requires_convexity and not problem.is_Q_psd(
            self.settings.psd_tolerance
        ):
            outcome, x, nits, message = (
                Outcome.Error,
                None,
                0,
                f"{self.name} requires a positive semidefinite Q",
            )
        else:
            try:
                outcome, x, nits, message = self.solve_problem(problem, guess)
            except Exception as e:
                # Backend faults are reported, never propagated.
                outcome, x, nits, message = (
                    Outcome.Error,
                    None,
                    0,
                    f"{type(e).__name__}: {e}",
                )
        solve_time = time.time() - start_time

        if x is None:
            x = np.zeros(0)
        else:
            x = np.asarray(x, dtype=np.float64).reshape(-1)
            if x.shape[0] != problem.num_vars:
                outcome = Outcome.Error
                message = (
                    f"Backend returned {x.shape[0]} values for {problem.num_vars} "
                    "variables"
                )
                x = np.zeros(0)

        self._update_state(outcome, x, guess, explicit_guess)

        result = EngineResult(
            outcome=outcome,
            solution=x,
            nits=nits,
            warm_started=guess is not None,
            solve_time=solve_time,
            message=message,
        )
        self.history.append(result)

        if self.settings.verbose:
            print(
                f"  [{self.name}] {outcome} after {nits} iteration(s) in "
                f"{1000 * solve_time:.03f} ms: {message}"
            )

        return result

    def _update_state(
        self,
        outcome: Outcome,
        x: npt.NDArray[np.float64],
        guess: Optional[npt.NDArray[np.float64]],
        explicit_guess: bool,
    ) -> None:
        """Record what the next warm start should use, once the outcome is final."""
        if outcome == Outcome.Optimal:
            self.previous_result = x.copy()
        elif explicit_guess and self.retain_guess_on_failure:
            self.previous_result = guess.copy()

    @abstractmethod
    def solve_problem(
        self, problem: QPProblem, guess: Optional[npt.NDArray[np.float64]]
    ) -> Tuple[Outcome, Optional[npt.NDArray[np.float64]], int, str]:
        """Solve problem with the backend.

        Parameters
        ----------
         problem : QPProblem
            The problem. Must not be modified.
         guess : vector or None
            Starting point, or None for a cold start.

        Returns
        -------
         outcome : Outcome
            Backend status, mapped to the shared outcomes.
         x : vector or None
            Solution, or None if the backend has nothing to report.
         nits : int
            Number of iterations.
         message : str
            Backend status message.

        Notes
        -----
        Implementations may raise whatever the backend raises; `init` and `next`
        catch it and report Outcome.Error.

        """
