"""Solve one problem with several engines at once."""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Mapping, Optional

import numpy.typing as npt

from .engine import Engine, EngineResult
from .problem import QPProblem


def solve_concurrently(
    problem: QPProblem,
    engines: Mapping[str, Engine],
    guess: Optional[npt.ArrayLike] = None,
    max_workers: Optional[int] = None,
) -> Dict[str, EngineResult]:
    """Run each engine on the problem in its own thread.

    Each engine gets an independent copy of the problem, and calls `next` (so an engine
    that already holds a solution warm starts from it, and `guess`, when given,
    overrides it). Blocks until every engine is done.

    Parameters
    ----------
     problem : QPProblem
        The problem. Not modified.
     engines : dict
        Engines keyed by name. Must be distinct objects, since engines are not thread
        safe.
     guess : vector, optional
        Starting point passed to every engine.
     max_workers : int, optional
        Thread pool size. Defaults to one thread per engine.

    Returns
    -------
     results : dict
        Result of each engine, keyed by the engine's name.

    """
    if len({id(e) for e in engines.values()}) != len(engines):
        raise ValueError("Each engine can only be used once per call.")

    results: Dict[str, EngineResult] = {}
    if not engines:
        return results

    lock = threading.Lock()
    copies = {name: problem.copy() for name in engines}

    def _worker(name: str, engine: Engine) -> None:
        result = engine.next(copies[name], guess)
        with lock:
            results[name] = result

    with ThreadPoolExecutor(
        max_workers=max_workers or len(engines), thread_name_prefix="qpwrappers"
    ) as executor:
        futures = [executor.submit(_worker, name, e) for name, e in engines.items()]
        for future in futures:
            future.result()

    return results
