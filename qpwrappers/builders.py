"""Helpers for building common problems."""

import numpy as np
import numpy.typing as npt

from .exceptions import DimensionMismatchError
from .problem import QPProblem


def least_squares(
    X: npt.NDArray[np.float64],
    y: npt.NDArray[np.float64],
    fit_intercept: bool = True,
) -> QPProblem:
    r"""Build the linear regression problem.

    The cost is accumulated one sample at a time: for each row x_i of X (with a trailing
    1 when fitting an intercept), adds 2 * x_i * x_i^T to Q and -2 * y_i * x_i to c. Up
    to a constant, the canonical objective 1/2 * b^T * Q * b + c^T * b then equals
       \sum_i (x_i^T * b - y_i)^2,
    so any engine returns the least squares coefficients.

    Parameters
    ----------
     X : npt.NDArray[np.float64]
        Samples, one per row.
     y : npt.NDArray[np.float64]
        Responses, one per sample.
     fit_intercept : bool, optional
        Whether to add an intercept, which becomes the last variable. Defaults to True.

    Returns
    -------
     problem : QPProblem
        Unconstrained problem whose variables are the regression coefficients.

    """
    X = np.atleast_2d(np.asarray(X, dtype=np.float64))
    y = np.asarray(y, dtype=np.float64).reshape(-1)
    if X.shape[0] != y.shape[0]:
        raise DimensionMismatchError(
            "X and y must have the same number of samples",
            expected=(X.shape[0],),
            actual=y.shape,
        )

    if fit_intercept:
        X = np.hstack((X, np.ones((X.shape[0], 1))))

    problem = QPProblem(X.shape[1])
    for x_i, y_i in zip(X, y):
        problem.add_Q(2 * np.outer(x_i, x_i))
        problem.add_c(-2 * y_i * x_i)
    return problem


def horizon(
    stage_Q: npt.NDArray[np.float64],
    stage_c: npt.NDArray[np.float64],
    num_stages: int,
) -> QPProblem:
    """Stack a per-stage cost along a horizon.

    The resulting problem has num_stages * p variables, where p is the size of the stage
    cost, and a block-diagonal Q. Dynamics and other coupling constraints are left to
    the caller.

    """
    stage_Q = np.atleast_2d(np.asarray(stage_Q, dtype=np.float64))
    stage_c = np.asarray(stage_c, dtype=np.float64).reshape(-1)
    p = stage_c.shape[0]
    if stage_Q.shape != (p, p):
        raise DimensionMismatchError(
            "Stage Q must be square and match the stage c",
            expected=(p, p),
            actual=stage_Q.shape,
        )
    if num_stages < 1:
        raise ValueError("num_stages must be positive.")

    problem = QPProblem(num_stages * p)
    for k in range(num_stages):
        problem.add_Q_block(k * p, k * p, stage_Q)
        problem.add_c_block(k * p, stage_c)
    return problem
