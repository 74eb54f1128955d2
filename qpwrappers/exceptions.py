"""Custom exceptions."""


class ProblemDimensionError(ValueError):
    """Base class for errors caused by arguments that don't fit the problem shape."""

    def __init__(self, message: str) -> None:
        self.message = message

    def __str__(self) -> str:
        """Pretty-print error."""
        return self.message


class DimensionMismatchError(ProblemDimensionError):
    """Raised when a matrix or vector has the wrong size for the problem."""

    def __init__(self, message: str, expected: tuple, actual: tuple) -> None:
        self.message = message
        self.expected = expected
        self.actual = actual

    def __str__(self) -> str:
        """Pretty-print error."""
        return f"{self.message} (expected shape {self.expected}, got {self.actual})"


class IndexOutOfRangeError(ProblemDimensionError, IndexError):
    """Raised when a variable or constraint index does not exist."""

    def __init__(self, message: str, index: int, size: int) -> None:
        self.message = message
        self.index = index
        self.size = size

    def __str__(self) -> str:
        """Pretty-print error."""
        return f"{self.message} (index {self.index}, size {self.size})"


class ProblemFormatError(ValueError):
    """Raised when a serialized problem cannot be parsed."""

    def __init__(self, message: str, position: int | None = None) -> None:
        self.message = message
        self.position = position

    def __str__(self) -> str:
        """Pretty-print error."""
        if self.position is None:
            return self.message
        return f"{self.message} (at token {self.position})"
