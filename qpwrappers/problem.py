r"""Quadratic program data model.

A QPProblem holds the data of
    minimize    1/2 * x^T * Q * x + c^T * x
    subject to  lb <= A * x <= ub
                lbx <= x <= ubx,
where Q is symmetric. The problem is built incrementally: constraints are appended
(or preallocated and filled by index), and Q and c are accumulated rather than
assigned, which suits costs that are sums of many terms (regression residuals,
per-stage costs in a horizon, etc.).

Missing bounds are not represented by a separate marker. Instead, "no lower bound" is
the most negative finite value of the scalar type, and "no upper bound" the most
positive. See `numerical_helpers.lowest` and `numerical_helpers.highest`.

A note on conventions: engines minimize 1/2 * x^T * Q * x + c^T * x, but `objective`
evaluates x^T * Q * x + c^T * x unless called with `canonical=True`. This matches how
costs are typically accumulated here (e.g. `builders.least_squares` adds 2 * x * x^T to
Q so that the full quadratic form is the sum of squared residuals). Callers comparing
objective values across engines should pick one form and stick to it.

"""

import operator
from typing import List, Optional, Tuple

import numpy as np
import numpy.typing as npt

from .exceptions import DimensionMismatchError, IndexOutOfRangeError
from .numerical_helpers import (
    GeneralEigenClassifier,
    SpectralClassifier,
    highest,
    is_unbounded_above,
    is_unbounded_below,
    lowest,
    remap_sentinels,
    symmetrize,
    to_infinite_bounds,
)


def _readonly(arr: npt.NDArray) -> npt.NDArray:
    view = arr.view()
    view.flags.writeable = False
    return view


class QPProblem:
    r"""Quadratic program with two-sided linear constraints and variable bounds.

    Parameters
    ----------
     n : int
        Number of variables. Fixed for the lifetime of the problem.
     m : int, optional
        Number of constraints to preallocate. Preallocated constraints have all-zero
        coefficients and no bounds until filled with `set_constraint`. Further
        constraints can always be appended with `add_constraint`. Defaults to 0.
     dtype : numpy floating type, optional
        Scalar type used to store all coefficients. Defaults to np.float64.
     classifier : SpectralClassifier, optional
        Used for the convexity queries. Defaults to GeneralEigenClassifier.

    Notes
    -----
    Q is symmetric at all times: every mutation that touches Q replaces each
    off-diagonal pair by its average. Bound ordering (lb <= ub, lbx <= ubx) is not
    enforced when bounds are set; use `is_consistent` to check it.

    Each constraint also carries soft-constraint metadata: a flag saying whether
    `convert_to_soft` should replace it by a penalty, and the weight of that penalty.

    """

    def __init__(
        self,
        n: int,
        m: int = 0,
        dtype: npt.DTypeLike = np.float64,
        classifier: Optional[SpectralClassifier] = None,
    ) -> None:
        """Create a problem with n variables and m empty constraints."""
        n = operator.index(n)
        m = operator.index(m)
        if n < 0 or m < 0:
            raise ValueError("Number of variables and constraints must be non-negative.")

        dtype = np.dtype(dtype)
        if not np.issubdtype(dtype, np.floating):
            raise ValueError(f"dtype must be a floating point type, not {dtype}.")

        self._dtype = dtype
        self.classifier: SpectralClassifier = (
            GeneralEigenClassifier() if classifier is None else classifier
        )

        self._Q = np.zeros((n, n), dtype=dtype)
        self._c = np.zeros(n, dtype=dtype)
        self._lbx = np.full(n, lowest(dtype), dtype=dtype)
        self._ubx = np.full(n, highest(dtype), dtype=dtype)
        self._A = np.zeros((m, n), dtype=dtype)
        self._lb = np.full(m, lowest(dtype), dtype=dtype)
        self._ub = np.full(m, highest(dtype), dtype=dtype)
        self._soft = np.zeros(m, dtype=bool)
        self._soft_weight = np.ones(m, dtype=dtype)

    def __repr__(self) -> str:
        return (
            f"QPProblem(num_vars={self.num_vars}, "
            f"num_constraints={self.num_constraints}, dtype={self.dtype})"
        )

    @property
    def num_vars(self) -> int:
        """Number of variables, n."""
        return self._c.shape[0]

    @property
    def num_constraints(self) -> int:
        """Number of constraints, m."""
        return self._A.shape[0]

    @property
    def dtype(self) -> np.dtype:
        """Scalar type of the coefficients."""
        return self._dtype

    @property
    def Q(self) -> npt.NDArray:
        """Quadratic cost, n-by-n, symmetric. Read-only."""
        return _readonly(self._Q)

    @property
    def c(self) -> npt.NDArray:
        """Linear cost, length n. Read-only."""
        return _readonly(self._c)

    @property
    def A(self) -> npt.NDArray:
        """Constraint coefficients, m-by-n. Read-only."""
        return _readonly(self._A)

    @property
    def lb(self) -> npt.NDArray:
        """Lower bounds on A * x, length m. Read-only."""
        return _readonly(self._lb)

    @property
    def ub(self) -> npt.NDArray:
        """Upper bounds on A * x, length m. Read-only."""
        return _readonly(self._ub)

    @property
    def lbx(self) -> npt.NDArray:
        """Lower bounds on x, length n. Read-only."""
        return _readonly(self._lbx)

    @property
    def ubx(self) -> npt.NDArray:
        """Upper bounds on x, length n. Read-only."""
        return _readonly(self._ubx)

    @property
    def soft_convertible(self) -> npt.NDArray[np.bool_]:
        """Which constraints `convert_to_soft` turns into penalties. Read-only."""
        return _readonly(self._soft)

    @property
    def soft_weight(self) -> npt.NDArray:
        """Penalty weight of each constraint when softened. Read-only."""
        return _readonly(self._soft_weight)

    def reset(self) -> None:
        """Remove all constraints and bounds, and zero the objective.

        The number of variables is preserved.

        """
        n = self.num_vars
        self._Q[...] = 0
        self._c[...] = 0
        self._lbx[...] = lowest(self._dtype)
        self._ubx[...] = highest(self._dtype)
        self._A = np.zeros((0, n), dtype=self._dtype)
        self._lb = np.zeros(0, dtype=self._dtype)
        self._ub = np.zeros(0, dtype=self._dtype)
        self._soft = np.zeros(0, dtype=bool)
        self._soft_weight = np.zeros(0, dtype=self._dtype)

    def is_lbx_unbounded(self, i: int) -> bool:
        """Check whether variable i has no lower bound."""
        i = self._check_var_index(i)
        return bool(is_unbounded_below(self._lbx[i], self._dtype))

    def is_ubx_unbounded(self, i: int) -> bool:
        """Check whether variable i has no upper bound."""
        i = self._check_var_index(i)
        return bool(is_unbounded_above(self._ubx[i], self._dtype))

    def set_var_limits(self, i: int, low: float, up: float) -> None:
        """Enforce low <= x[i] <= up.

        Ordering is not checked here; see `is_consistent`.

        """
        i = self._check_var_index(i)
        self._lbx[i] = low
        self._ubx[i] = up

    def add_constraint(
        self,
        coeff: npt.ArrayLike,
        low: float,
        up: float,
        soft: bool = False,
        weight: float = 1.0,
    ) -> int:
        """Append the constraint low <= coeff^T * x <= up.

        Parameters
        ----------
         coeff : vector
            Coefficients, length n.
         low, up : float
            Bounds. Use `numerical_helpers.lowest` / `highest` (or +/-inf) for a
            one-sided constraint.
         soft : bool, optional
            Whether `convert_to_soft` should replace this constraint by a penalty.
         weight : float, optional
            Penalty weight used when softening. Defaults to 1.

        Returns
        -------
         i : int
            Index of the new constraint.

        """
        row = self._as_vector(coeff, self.num_vars, "constraint coefficients")
        self._A = np.vstack((self._A, row[np.newaxis, :]))
        self._lb = np.append(self._lb, self._dtype.type(low))
        self._ub = np.append(self._ub, self._dtype.type(up))
        self._soft = np.append(self._soft, bool(soft))
        self._soft_weight = np.append(self._soft_weight, self._dtype.type(weight))
        return self.num_constraints - 1

    def set_constraint(
        self,
        i: int,
        coeff: npt.ArrayLike,
        low: float,
        up: float,
        soft: Optional[bool] = None,
        weight: Optional[float] = None,
    ) -> None:
        """Overwrite constraint i with low <= coeff^T * x <= up.

        Soft-constraint metadata is only changed when `soft` or `weight` is given.

        """
        i = self._check_constraint_index(i)
        row = self._as_vector(coeff, self.num_vars, "constraint coefficients")
        self._A[i, :] = row
        self._lb[i] = low
        self._ub[i] = up
        if soft is not None:
            self._soft[i] = bool(soft)
        if weight is not None:
            self._soft_weight[i] = weight

    def set_soft(self, i: int, soft: bool = True, weight: Optional[float] = None) -> None:
        """Mark (or unmark) constraint i for softening."""
        i = self._check_constraint_index(i)
        self._soft[i] = bool(soft)
        if weight is not None:
            self._soft_weight[i] = weight

    def add_Q(self, Q: npt.ArrayLike) -> None:
        """Add Q to the quadratic cost. The result is symmetrized."""
        dQ = np.asarray(Q, dtype=self._dtype)
        if dQ.shape != self._Q.shape:
            raise DimensionMismatchError(
                "Q of the wrong size was provided to add to the problem's Q",
                expected=self._Q.shape,
                actual=dQ.shape,
            )

        self._Q += dQ
        symmetrize(self._Q)

    def add_Q_block(self, i: int, j: int, block: npt.ArrayLike) -> None:
        """Add block to the sub-matrix of Q whose top-left corner is (i, j).

        The whole of Q is symmetrized afterwards, so an off-diagonal block added on one
        side only ends up split evenly between (i, j) and its mirror (j, i).

        """
        i = self._check_block_start(i)
        j = self._check_block_start(j)
        dQ = np.atleast_2d(np.asarray(block, dtype=self._dtype))
        if dQ.ndim != 2:
            raise DimensionMismatchError(
                "Q block must be a matrix", expected=(None, None), actual=dQ.shape
            )

        rows, cols = dQ.shape
        if i + rows > self.num_vars or j + cols > self.num_vars:
            raise DimensionMismatchError(
                "Q block runs off the problem's Q",
                expected=self._Q.shape,
                actual=(i + rows, j + cols),
            )

        self._Q[i : i + rows, j : j + cols] += dQ
        symmetrize(self._Q)

    def add_c(self, c: npt.ArrayLike) -> None:
        """Add c to the linear cost."""
        self._c += self._as_vector(c, self.num_vars, "c")

    def add_c_block(self, i: int, c: npt.ArrayLike) -> None:
        """Add c to the entries of the linear cost starting at index i."""
        i = self._check_block_start(i)
        dc = np.atleast_1d(np.asarray(c, dtype=self._dtype))
        if dc.ndim != 1:
            raise DimensionMismatchError(
                "c block must be a vector", expected=(None,), actual=dc.shape
            )

        if i + dc.shape[0] > self.num_vars:
            raise DimensionMismatchError(
                "c block runs off the problem's c",
                expected=self._c.shape,
                actual=(i + dc.shape[0],),
            )

        self._c[i : i + dc.shape[0]] += dc

    def is_consistent(self) -> bool:
        """Check that no lower bound exceeds the matching upper bound."""
        return bool(np.all(self._lbx <= self._ubx) and np.all(self._lb <= self._ub))

    def min_eigenvalue(self) -> float:
        """Smallest eigenvalue of Q."""
        return self.classifier.min_eigenvalue(self._Q)

    def is_Q_psd(self, tolerance: float = 0.0) -> bool:
        """Check that Q is positive semidefinite.

        Eigenvalues down to -tolerance are accepted.

        """
        return self.classifier.is_psd(self._Q, tolerance)

    def is_Q_pd(self) -> bool:
        """Check that Q is strictly positive definite."""
        return self.classifier.is_pd(self._Q)

    def regularize_Q(self, psd_tolerance: float = 0.0) -> float:
        """Nudge a nearly-PSD Q into the PSD cone.

        While the smallest eigenvalue of Q lies in [-psd_tolerance, 0), adds
        psd_tolerance * I to Q. Matrices that are already PSD are left alone, as are
        matrices whose smallest eigenvalue is below -psd_tolerance: those are genuinely
        indefinite, and no small ridge will fix them.

        Stops early when a step makes no progress, e.g. when the diagonal of Q is so
        large that adding psd_tolerance to it is lost to rounding. Q may then still
        have a slightly negative eigenvalue.

        Parameters
        ----------
         psd_tolerance : float
            How negative the smallest eigenvalue may be to still count as round-off.

        Returns
        -------
         ridge : float
            Total amount added to the diagonal of Q.

        """
        if psd_tolerance < 0:
            raise ValueError("psd_tolerance must be non-negative.")

        ridge = 0.0
        diagonal = np.diag_indices(self.num_vars)
        min_eig = self.min_eigenvalue()
        while min_eig < 0 and min_eig >= -psd_tolerance:
            before = self._Q[diagonal].copy()
            self._Q[diagonal] += psd_tolerance
            if np.array_equal(self._Q[diagonal], before):
                # The ridge is below the rounding step of every diagonal entry.
                break
            ridge += psd_tolerance

            previous, min_eig = min_eig, self.min_eigenvalue()
            if min_eig <= previous:
                break

        return ridge

    def verify(self, x: npt.ArrayLike, tolerance: float = 0.0) -> bool:
        """Check that x satisfies every constraint and variable bound.

        Each bound may be violated by up to `tolerance`, on either side. Points with
        NaN or infinite entries never verify.

        """
        x = self._as_solution(x)
        if not np.all(np.isfinite(x)):
            return False

        Ax = self._A @ x
        if np.any(self._lb - tolerance > Ax) or np.any(Ax > self._ub + tolerance):
            return False

        return not (np.any(self._lbx - tolerance > x) or np.any(x > self._ubx + tolerance))

    def objective(self, x: npt.ArrayLike, canonical: bool = False) -> float:
        """Evaluate the objective at x.

        Parameters
        ----------
         x : vector
            Point at which to evaluate, length n.
         canonical : bool, optional
            If False (the default), returns x^T * Q * x + c^T * x. If True, returns
            1/2 * x^T * Q * x + c^T * x, the quantity engines minimize.

        """
        x = self._as_solution(x)
        quadratic = x @ self._Q @ x
        if canonical:
            quadratic = 0.5 * quadratic
        return float(quadratic + self._c @ x)

    def soft_slack_count(self) -> int:
        """Number of slack variables `convert_to_soft` would introduce."""
        return len(self._soft_slacks())

    def convert_to_soft(self) -> "QPProblem":
        r"""Replace soft-convertible constraints by penalties.

        Returns a new problem; this one is not modified. Constraints not marked
        soft-convertible are copied through unchanged. For a soft-convertible
        constraint lb_i <= a_i^T * x <= ub_i with weight w_i:
        - if lb_i == ub_i, the squared violation w_i * (a_i^T * x - lb_i)^2 is folded
          into the objective: 2 * w_i * a_i * a_i^T is added to Q and
          -2 * w_i * lb_i * a_i to c. No variables or constraints are added.
        - otherwise, if lb_i is finite, a slack s >= 0 is appended with the constraint
          a_i^T * x + s >= lb_i and cost w_i * s.
        - and if ub_i is finite, a slack t >= 0 is appended with the constraint
          a_i^T * x - t <= ub_i and cost w_i * t.
        Slack variables come after the original n variables, in constraint order, and
        their constraints come after the hard constraints.

        Returns
        -------
         soft : QPProblem
            The softened problem.

        """
        n = self.num_vars
        slacks = self._soft_slacks()
        k = len(slacks)

        soft = QPProblem(n + k, dtype=self._dtype, classifier=self.classifier)
        soft._Q[:n, :n] = self._Q
        soft._c[:n] = self._c
        soft._lbx[:n] = self._lbx
        soft._ubx[:n] = self._ubx
        soft._lbx[n:] = 0

        padding = np.zeros(k, dtype=self._dtype)
        for i in np.flatnonzero(~self._soft):
            soft.add_constraint(
                np.concatenate((self._A[i], padding)),
                self._lb[i],
                self._ub[i],
                weight=self._soft_weight[i],
            )

        for i in np.flatnonzero(self._soft):
            if self._lb[i] != self._ub[i]:
                continue
            a = np.zeros(n + k, dtype=self._dtype)
            a[:n] = self._A[i]
            w = self._soft_weight[i]
            soft.add_Q(2 * w * np.outer(a, a))
            soft.add_c(-2 * w * self._lb[i] * a)

        for s, (i, side) in enumerate(slacks):
            row = np.zeros(n + k, dtype=self._dtype)
            row[:n] = self._A[i]
            if side == "lower":
                row[n + s] = 1
                soft.add_constraint(row, self._lb[i], highest(self._dtype))
            else:
                row[n + s] = -1
                soft.add_constraint(row, lowest(self._dtype), self._ub[i])
            soft._c[n + s] += self._soft_weight[i]

        return soft

    def copy(self) -> "QPProblem":
        """Independent copy of the problem."""
        return self.cast(self._dtype)

    def cast(self, dtype: npt.DTypeLike) -> "QPProblem":
        """Independent copy of the problem with coefficients stored as `dtype`.

        Unbounded sentinels are carried over to the new type's sentinels.

        """
        dtype = np.dtype(dtype)
        new = QPProblem(self.num_vars, dtype=dtype, classifier=self.classifier)
        with np.errstate(over="ignore"):
            new._Q = self._Q.astype(dtype)
            new._c = self._c.astype(dtype)
            new._A = self._A.astype(dtype)
            new._soft_weight = self._soft_weight.astype(dtype)
        new._lb = remap_sentinels(self._lb, self._dtype, dtype)
        new._ub = remap_sentinels(self._ub, self._dtype, dtype)
        new._lbx = remap_sentinels(self._lbx, self._dtype, dtype)
        new._ubx = remap_sentinels(self._ubx, self._dtype, dtype)
        new._soft = self._soft.copy()
        return new

    def allclose(
        self, other: "QPProblem", rtol: float = 1e-7, atol: float = 0.0
    ) -> bool:
        """Compare shape, coefficients and soft metadata with another problem.

        Bounds are compared with sentinels replaced by infinities, so problems of
        different scalar types compare sensibly.

        """
        if (self.num_vars, self.num_constraints) != (
            other.num_vars,
            other.num_constraints,
        ):
            return False

        pairs = [
            (self._Q, other._Q),
            (self._c, other._c),
            (self._A, other._A),
            (self._soft_weight, other._soft_weight),
        ]
        pairs += [
            (to_infinite_bounds(mine, self._dtype), to_infinite_bounds(theirs, other._dtype))
            for mine, theirs in [
                (self._lb, other._lb),
                (self._ub, other._ub),
                (self._lbx, other._lbx),
                (self._ubx, other._ubx),
            ]
        ]
        return bool(
            np.array_equal(self._soft, other._soft)
            and all(np.allclose(a, b, rtol=rtol, atol=atol) for a, b in pairs)
        )

    def _soft_slacks(self) -> List[Tuple[int, str]]:
        slacks = []
        for i in np.flatnonzero(self._soft):
            if self._lb[i] == self._ub[i]:
                continue
            if not is_unbounded_below(self._lb[i], self._dtype):
                slacks.append((int(i), "lower"))
            if not is_unbounded_above(self._ub[i], self._dtype):
                slacks.append((int(i), "upper"))
        return slacks

    def _check_var_index(self, i: int) -> int:
        i = operator.index(i)
        if not 0 <= i < self.num_vars:
            raise IndexOutOfRangeError("Variable index out of range", i, self.num_vars)
        return i

    def _check_constraint_index(self, i: int) -> int:
        i = operator.index(i)
        if not 0 <= i < self.num_constraints:
            raise IndexOutOfRangeError(
                "Constraint index out of range", i, self.num_constraints
            )
        return i

    def _check_block_start(self, i: int) -> int:
        i = operator.index(i)
        if not 0 <= i <= self.num_vars:
            raise IndexOutOfRangeError("Block start out of range", i, self.num_vars)
        return i

    def _as_vector(self, v: npt.ArrayLike, length: int, name: str) -> npt.NDArray:
        arr = np.asarray(v, dtype=self._dtype)
        if arr.ndim == 2 and 1 in arr.shape:
            arr = arr.reshape(-1)
        if arr.shape != (length,):
            raise DimensionMismatchError(
                f"Problem has {self.num_vars} variables, but {name} has the wrong size",
                expected=(length,),
                actual=arr.shape,
            )
        return arr

    def _as_solution(self, x: npt.ArrayLike) -> npt.NDArray:
        arr = np.asarray(x)
        if arr.shape != (self.num_vars,):
            raise DimensionMismatchError(
                f"Problem has {self.num_vars} variables, but the given solution doesn't",
                expected=(self.num_vars,),
                actual=arr.shape,
            )
        return arr
