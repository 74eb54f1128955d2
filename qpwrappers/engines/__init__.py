"""Engines for specific backends."""

from .osqp_engine import OSQPEngine
from .scipy_engine import SLSQPEngine

__all__ = ["OSQPEngine", "SLSQPEngine"]
