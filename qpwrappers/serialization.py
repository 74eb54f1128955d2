r"""Plain-text storage for QP problems.

The format is whitespace separated:
    n m
    Q            (n rows of n values)
    A            (m rows of n values)
    lb           (m values)
    ub           (m values)
    lbx          (n values)
    ubx          (n values)
    c            (n values)
    soft_weight  (m values, optional)
    soft         (m values, 0 or 1, optional)
The two trailing vectors are written only when some constraint carries soft-constraint
metadata; readers accept files with or without them. Line breaks are only there for
readability: readers treat any whitespace as a separator.

Values are written with 17 significant digits, enough to round-trip a float64. Q is
symmetrized when read, whatever the symmetry of the stored matrix.

"""

import io
import os
from typing import Iterator, List, TextIO, Union

import numpy as np
import numpy.typing as npt

from .exceptions import ProblemFormatError
from .numerical_helpers import from_infinite_bounds, symmetrize
from .problem import QPProblem


def _format(v) -> str:
    return format(float(v), ".17g")


def _write_row(stream: TextIO, row: npt.NDArray) -> None:
    stream.write(" ".join(_format(v) for v in row))
    stream.write("\n")


def has_soft_metadata(problem: QPProblem) -> bool:
    """Check whether the problem needs the optional soft-constraint vectors."""
    return bool(np.any(problem.soft_convertible) or np.any(problem.soft_weight != 1))


def dump(problem: QPProblem, stream: TextIO) -> None:
    """Write problem to a text stream."""
    n, m = problem.num_vars, problem.num_constraints
    stream.write(f"{n} {m}\n")
    for row in problem.Q:
        _write_row(stream, row)
    for row in problem.A:
        _write_row(stream, row)
    for vec in (problem.lb, problem.ub, problem.lbx, problem.ubx, problem.c):
        _write_row(stream, vec)

    if has_soft_metadata(problem):
        _write_row(stream, problem.soft_weight)
        stream.write(" ".join("1" if s else "0" for s in problem.soft_convertible))
        stream.write("\n")


def dumps(problem: QPProblem) -> str:
    """Serialize problem to a string."""
    buffer = io.StringIO()
    dump(problem, buffer)
    return buffer.getvalue()


def save(problem: QPProblem, path: Union[str, os.PathLike]) -> None:
    """Write problem to a file."""
    with open(path, "w") as f:
        dump(problem, f)


class _Tokens:
    """Cursor over the whitespace-separated tokens of a document."""

    def __init__(self, text: str) -> None:
        self.tokens: List[str] = text.split()
        self.position = 0

    def remaining(self) -> int:
        return len(self.tokens) - self.position

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        if self.position >= len(self.tokens):
            raise ProblemFormatError("Unexpected end of input", self.position)
        token = self.tokens[self.position]
        self.position += 1
        return token

    def integer(self, name: str) -> int:
        token = next(self)
        try:
            value = int(token)
        except ValueError:
            raise ProblemFormatError(
                f"Expected an integer for {name}, got {token!r}", self.position - 1
            ) from None
        if value < 0:
            raise ProblemFormatError(f"{name} must be non-negative", self.position - 1)
        return value

    def floats(self, count: int, name: str) -> npt.NDArray[np.float64]:
        if self.remaining() < count:
            raise ProblemFormatError(
                f"Unexpected end of input while reading {name}", len(self.tokens)
            )
        chunk = self.tokens[self.position : self.position + count]
        try:
            values = np.array([float(t) for t in chunk], dtype=np.float64)
        except ValueError as e:
            raise ProblemFormatError(
                f"Invalid number while reading {name}: {e}", self.position
            ) from None
        self.position += count
        return values


def loads(text: str, dtype: npt.DTypeLike = np.float64) -> QPProblem:
    """Parse a problem from a string.

    Parameters
    ----------
     text : str
        Serialized problem, as written by `dumps`.
     dtype : numpy floating type, optional
        Scalar type of the returned problem. Defaults to np.float64.

    Returns
    -------
     problem : QPProblem
        The problem.

    Raises
    ------
     ProblemFormatError
        When the text is truncated, contains something that isn't a number, or has
        trailing content that isn't soft-constraint metadata.

    """
    tokens = _Tokens(text)
    n = tokens.integer("n")
    m = tokens.integer("m")

    Q = tokens.floats(n * n, "Q").reshape(n, n)
    A = tokens.floats(m * n, "A").reshape(m, n)
    lb = from_infinite_bounds(tokens.floats(m, "lb"))
    ub = from_infinite_bounds(tokens.floats(m, "ub"))
    lbx = from_infinite_bounds(tokens.floats(n, "lbx"))
    ubx = from_infinite_bounds(tokens.floats(n, "ubx"))
    c = tokens.floats(n, "c")

    soft_weight = np.ones(m)
    soft = np.zeros(m, dtype=bool)
    if tokens.remaining() > 0:
        soft_weight = tokens.floats(m, "soft_weight")
        flags = tokens.floats(m, "soft")
        if not np.all((flags == 0) | (flags == 1)):
            raise ProblemFormatError("Soft flags must be 0 or 1", tokens.position)
        soft = flags.astype(bool)

    if tokens.remaining() > 0:
        raise ProblemFormatError("Unexpected trailing content", tokens.position)

    # Build in float64 first, then cast, so that sentinels survive the conversion.
    problem = QPProblem(n)
    problem.add_Q(symmetrize(Q))
    problem.add_c(c)
    for i in range(n):
        problem.set_var_limits(i, lbx[i], ubx[i])
    for i in range(m):
        problem.add_constraint(A[i], lb[i], ub[i], soft=soft[i], weight=soft_weight[i])

    if np.dtype(dtype) != problem.dtype:
        return problem.cast(dtype)
    return problem


def load(stream: TextIO, dtype: npt.DTypeLike = np.float64) -> QPProblem:
    """Read a problem from a text stream."""
    return loads(stream.read(), dtype=dtype)


def load_file(path: Union[str, os.PathLike], dtype: npt.DTypeLike = np.float64) -> QPProblem:
    """Read a problem from a file."""
    with open(path) as f:
        return load(f, dtype=dtype)
