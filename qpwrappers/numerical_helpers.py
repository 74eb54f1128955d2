"""Numerical linear algebra routines."""

from abc import ABC, abstractmethod

import numpy as np
import numpy.typing as npt
from scipy import linalg


def symmetrize(Q: npt.NDArray) -> npt.NDArray:
    """Make Q symmetric, in place.

    Every off-diagonal pair is replaced by the average of the two entries,
       Q[i, j] = Q[j, i] = Q[i, j] / 2 + Q[j, i] / 2.
    The diagonal is left alone. Since floating point addition is commutative, the
    result is exactly symmetric, not just symmetric to within rounding.

    Parameters
    ----------
     Q : npt.NDArray
        Square matrix. Modified in place.

    Returns
    -------
     Q : npt.NDArray
        The same array, for convenience.

    """
    if Q.ndim != 2 or Q.shape[0] != Q.shape[1]:
        raise ValueError("Q must be a square matrix.")

    Q[...] = Q / 2 + Q.T / 2
    return Q


def lowest(dtype: npt.DTypeLike) -> float:
    """Sentinel used for "no lower bound"."""
    return np.finfo(dtype).min


def highest(dtype: npt.DTypeLike) -> float:
    """Sentinel used for "no upper bound"."""
    return np.finfo(dtype).max


def is_unbounded_below(v, dtype: npt.DTypeLike = np.float64):
    """Check whether v is at (or beyond) the lower sentinel. Works element-wise."""
    return np.asarray(v) <= lowest(dtype)


def is_unbounded_above(v, dtype: npt.DTypeLike = np.float64):
    """Check whether v is at (or beyond) the upper sentinel. Works element-wise."""
    return np.asarray(v) >= highest(dtype)


def to_infinite_bounds(
    v: npt.NDArray, dtype: npt.DTypeLike = np.float64
) -> npt.NDArray[np.float64]:
    """Replace the sentinels in v by -inf / +inf.

    Most backends understand infinities, but treat the largest finite float as a
    genuine (huge) bound, which hurts conditioning.

    """
    out = np.array(v, dtype=np.float64)
    out[is_unbounded_below(v, dtype)] = -np.inf
    out[is_unbounded_above(v, dtype)] = np.inf
    return out


def from_infinite_bounds(v, dtype: npt.DTypeLike = np.float64) -> npt.NDArray:
    """Copy of v as dtype, with -inf / +inf replaced by the sentinels."""
    return remap_sentinels(v, dtype, dtype)


def remap_sentinels(
    v: npt.NDArray, from_dtype: npt.DTypeLike, to_dtype: npt.DTypeLike
) -> npt.NDArray:
    """Convert v to to_dtype, carrying sentinels of from_dtype over to to_dtype.

    A plain cast would overflow the float64 sentinels to +/-inf when casting to
    float32, or leave float32 sentinels as ordinary finite bounds in float64.

    """
    below = is_unbounded_below(v, from_dtype)
    above = is_unbounded_above(v, from_dtype)
    with np.errstate(over="ignore"):
        out = np.asarray(v).astype(to_dtype)
    out[below] = lowest(to_dtype)
    out[above] = highest(to_dtype)
    return out


class SpectralClassifier(ABC):
    """Classify the definiteness of a matrix from its spectrum.

    Subclasses supply `eigenvalues`; everything else is derived from it. Only real parts
    matter: the matrices we classify are symmetric, so any imaginary part is round-off.

    """

    @abstractmethod
    def eigenvalues(self, Q: npt.NDArray) -> npt.NDArray[np.float64]:
        """Calculate the (real parts of the) eigenvalues of Q."""

    def min_eigenvalue(self, Q: npt.NDArray) -> float:
        """Smallest eigenvalue of Q, or +inf for an empty matrix."""
        if Q.shape[0] == 0:
            return np.inf
        return float(np.min(self.eigenvalues(Q)))

    def is_psd(self, Q: npt.NDArray, tolerance: float = 0.0) -> bool:
        """Check whether no eigenvalue is below -tolerance."""
        if Q.shape[0] == 0:
            return True
        return bool(np.all(self.eigenvalues(Q) >= -tolerance))

    def is_pd(self, Q: npt.NDArray) -> bool:
        """Check whether every eigenvalue is strictly positive."""
        if Q.shape[0] == 0:
            return True
        return bool(np.all(self.eigenvalues(Q) > 0))


class GeneralEigenClassifier(SpectralClassifier):
    """Classifier based on a general (non-symmetric) eigen-decomposition."""

    def eigenvalues(self, Q: npt.NDArray) -> npt.NDArray[np.float64]:
        """Calculate the real parts of the eigenvalues of Q."""
        if Q.shape[0] == 0:
            return np.zeros(0)
        return np.real(linalg.eigvals(Q, check_finite=False))


class SymmetricEigenClassifier(SpectralClassifier):
    """Classifier for symmetric matrices. Faster, and the spectrum is always real.

    Only the lower triangle of Q is read, so this is only appropriate when Q is known
    to be symmetric.

    """

    def eigenvalues(self, Q: npt.NDArray) -> npt.NDArray[np.float64]:
        """Calculate the eigenvalues of Q."""
        if Q.shape[0] == 0:
            return np.zeros(0)
        return linalg.eigvalsh(Q, check_finite=False)
