"""Outcomes shared by all engines."""

from enum import Enum


class Outcome(Enum):
    """Result of a solve, independent of the backend that produced it.

    Optimal
        The backend certified optimality to its tolerances.
    Feasible
        A usable, but possibly suboptimal, point was found.
    Unbounded
        The objective is unbounded below on the feasible set.
    Infeasible
        No point satisfies the constraints.
    InfeasibleOrUnbounded
        The backend could not tell which of the previous two applies.
    Error
        The backend failed (numerical trouble, bad parameters, native exception).
    Unknown
        Inconclusive, e.g. an iteration or time limit was reached.

    """

    Optimal = "Optimal"
    Feasible = "Feasible"
    Unbounded = "Unbounded"
    Infeasible = "Infeasible"
    InfeasibleOrUnbounded = "InfeasibleOrUnbounded"
    Error = "Error"
    Unknown = "Unknown"

    def __str__(self) -> str:
        return self.value

    @property
    def is_success(self) -> bool:
        """True when the solution vector can be used."""
        return self in (Outcome.Optimal, Outcome.Feasible)
