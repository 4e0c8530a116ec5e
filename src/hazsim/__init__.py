"""
hazsim - Simulate survival times from arbitrary hazard functions.
"""

from .errors import (
    HazsimError,
    ConfigurationError,
    SimulationError,
    HazardEvaluationError,
    IntegrationError,
    RootBracketError,
    ConvergenceError,
)

from .survival import (
    BaselineHazard,
    Exponential,
    Weibull,
    Gompertz,
    Mixture,
    get_distribution,
)

from .quadrature import (
    QuadratureConfig,
    QuadratureResult,
    integrate,
    integrate_value,
)

from .roots import (
    RootResult,
    find_event_time,
)

from .tde import (
    TimeTransform,
    TimeDependentEffect,
    TDESpec,
    step_transform,
    linear_predictor,
)

from .hazard import (
    AnalyticDistribution,
    UserFunction,
    HazardModel,
    resolve_hazard,
)

from .individuals import (
    Individual,
    make_individuals,
)

from .config import SimulationConfig

from .simulator import (
    SimulatedEvent,
    Simulator,
    simulate,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "HazsimError",
    "ConfigurationError",
    "SimulationError",
    "HazardEvaluationError",
    "IntegrationError",
    "RootBracketError",
    "ConvergenceError",
    # Baseline hazards
    "BaselineHazard",
    "Exponential",
    "Weibull",
    "Gompertz",
    "Mixture",
    "get_distribution",
    # Numerics
    "QuadratureConfig",
    "QuadratureResult",
    "integrate",
    "integrate_value",
    "RootResult",
    "find_event_time",
    # Time-dependent effects
    "TimeTransform",
    "TimeDependentEffect",
    "TDESpec",
    "step_transform",
    "linear_predictor",
    # Hazard specifications
    "AnalyticDistribution",
    "UserFunction",
    "HazardModel",
    "resolve_hazard",
    # Individuals
    "Individual",
    "make_individuals",
    # Simulation
    "SimulationConfig",
    "SimulatedEvent",
    "Simulator",
    "simulate",
]
