"""Backend-agnostic management and solving of sequences of quadratic programs."""

from .builders import horizon, least_squares
from .engine import Engine, EngineResult, EngineSettings, SolveHistory
from .engines import OSQPEngine, SLSQPEngine
from .exceptions import (
    DimensionMismatchError,
    IndexOutOfRangeError,
    ProblemDimensionError,
    ProblemFormatError,
)
from .numerical_helpers import (
    GeneralEigenClassifier,
    SpectralClassifier,
    SymmetricEigenClassifier,
    highest,
    lowest,
)
from .parallel import solve_concurrently
from .problem import QPProblem
from .serialization import dump, dumps, load, load_file, loads, save
from .types import Outcome

__all__ = [
    "QPProblem",
    "Outcome",
    "Engine",
    "EngineResult",
    "EngineSettings",
    "SolveHistory",
    "OSQPEngine",
    "SLSQPEngine",
    "SpectralClassifier",
    "GeneralEigenClassifier",
    "SymmetricEigenClassifier",
    "lowest",
    "highest",
    "least_squares",
    "horizon",
    "solve_concurrently",
    "dump",
    "dumps",
    "load",
    "load_file",
    "loads",
    "save",
    "DimensionMismatchError",
    "IndexOutOfRangeError",
    "ProblemDimensionError",
    "ProblemFormatError",
]
