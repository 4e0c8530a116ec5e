"""
Bracketed root search for the survival-time equation H(t) = -ln(U).

Uses Brent's method (scipy.optimize.brentq): bisection for guaranteed
progress combined with inverse quadratic / secant steps, always keeping
a valid bracket. The bracket is checked up front so that a misconfigured
interval surfaces as RootBracketError rather than a bare ValueError.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np
from scipy.optimize import brentq

from .errors import ConvergenceError, HazardEvaluationError, RootBracketError

logger = logging.getLogger(__name__)

# brentq rejects rtol below four machine epsilons.
MIN_RTOL = 4 * np.finfo(float).eps


@dataclass(frozen=True)
class RootResult:
    """Root and iteration counters from one search."""
    root: float
    iterations: int
    function_calls: int
    converged: bool


def _residual(
    cumulative_hazard: Callable[[float], float],
    target: float,
    rootfun: Optional[Callable[[float], float]]
) -> Callable[[float], float]:
    if rootfun is None:
        return lambda t: cumulative_hazard(t) - target
    goal = rootfun(target)
    return lambda t: rootfun(cumulative_hazard(t)) - goal


def find_event_time(
    cumulative_hazard: Callable[[float], float],
    target: float,
    interval: Tuple[float, float],
    xtol: float = 1e-12,
    rtol: float = MIN_RTOL,
    max_iter: int = 100,
    rootfun: Optional[Callable[[float], float]] = None
) -> RootResult:
    """
    Solve cumulative_hazard(t) = target for t in interval.

    Args:
        cumulative_hazard: Non-decreasing H(t) for one individual
        target: -ln(U) for the individual's uniform draw
        interval: (lower, upper) search bracket
        xtol, rtol: Absolute / relative bracket-width tolerance
        max_iter: Iteration cap for Brent's method
        rootfun: Optional increasing transform applied to both sides,
            e.g. np.log to solve log H(t) = log(target)

    Returns:
        RootResult with the converged time.

    Raises:
        RootBracketError: residuals at both ends share a sign
        ConvergenceError: max_iter exhausted
        HazardEvaluationError: residual is NaN
    """
    lower, upper = float(interval[0]), float(interval[1])
    f = _residual(cumulative_hazard, target, rootfun)

    f_lower = f(lower)
    if f_lower == 0.0:
        return RootResult(lower, 0, 1, True)
    f_upper = f(upper)
    calls = 2

    for t, value in ((lower, f_lower), (upper, f_upper)):
        if np.isnan(value):
            raise HazardEvaluationError(
                "cumulative hazard residual is NaN at interval bound",
                {"t": t}
            )

    if np.sign(f_lower) == np.sign(f_upper):
        where = "below" if f_lower > 0 else "above"
        raise RootBracketError(
            f"event time lies {where} the search interval",
            {
                "interval": (lower, upper),
                "target": target,
                "residual_lower": f_lower,
                "residual_upper": f_upper,
            }
        )

    # Overflowing H (e.g. Gompertz far in the tail) or log(0) under a
    # rootfun gives infinite ends; bisect until both residuals are finite.
    steps = 0
    while not (np.isfinite(f_lower) and np.isfinite(f_upper)):
        if steps >= max_iter:
            raise ConvergenceError(
                "could not find finite residuals inside the search interval",
                {"interval": (lower, upper), "target": target}
            )
        mid = 0.5 * (lower + upper)
        f_mid = f(mid)
        steps += 1
        calls += 1
        if np.isnan(f_mid):
            raise HazardEvaluationError(
                "cumulative hazard residual is NaN", {"t": mid}
            )
        if f_mid == 0.0:
            return RootResult(mid, steps, calls, True)
        if np.sign(f_mid) == np.sign(f_lower):
            lower, f_lower = mid, f_mid
        else:
            upper, f_upper = mid, f_mid

    root, info = brentq(
        f, lower, upper,
        xtol=xtol, rtol=rtol, maxiter=max_iter,
        full_output=True, disp=False
    )
    if not info.converged:
        raise ConvergenceError(
            f"Brent's method did not converge in {max_iter} iterations",
            {"interval": (lower, upper), "target": target, "last": root}
        )

    logger.debug(
        "root %.6g found in %d iterations (%d calls)",
        root, info.iterations, info.function_calls
    )
    return RootResult(
        float(root),
        steps + int(info.iterations),
        calls + int(info.function_calls),
        True
    )
