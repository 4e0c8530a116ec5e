"""
Exceptions raised by hazsim.

Hierarchy:
    HazsimError
    ├── ConfigurationError - contradictory or incomplete specification
    └── SimulationError - failure while simulating an individual
        ├── HazardEvaluationError - hazard returned a non-finite value
        │   └── IntegrationError - ... at a quadrature node
        ├── RootBracketError - no sign change in the search interval
        └── ConvergenceError - root search ran out of iterations
"""

from typing import Any, Dict, Optional


class HazsimError(Exception):
    """
    Base class for hazsim errors.

    Attributes:
        message: Human-readable error message
        context: Extra key/value details (e.g. the individual id)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = dict(context or {})
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{details}]"
        return self.message


class ConfigurationError(HazsimError, ValueError):
    """Invalid hazard specification, parameters or simulation settings."""


class SimulationError(HazsimError):
    """Raised while simulating one individual."""


class HazardEvaluationError(SimulationError):
    """A hazard or cumulative hazard evaluated to a non-finite value."""


class IntegrationError(HazardEvaluationError):
    """The integrand returned a non-finite value at a quadrature node."""


class RootBracketError(SimulationError):
    """
    H(lower) - target and H(upper) - target have the same sign.

    The event time lies outside the search interval; widen the interval
    or use on_bracket_failure='censor'.
    """


class ConvergenceError(SimulationError):
    """Brent's method did not converge within max_iter iterations."""


__all__ = [
    "HazsimError",
    "ConfigurationError",
    "SimulationError",
    "HazardEvaluationError",
    "IntegrationError",
    "RootBracketError",
    "ConvergenceError",
]
