"""Simulation settings."""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .errors import ConfigurationError
from .quadrature import DEFAULT_QUADRATURE, QuadratureConfig
from .roots import MIN_RTOL

BRACKET_POLICIES = ('raise', 'censor')

DEFAULT_INTERVAL = (1e-8, 500.0)


@dataclass(frozen=True)
class SimulationConfig:
    """
    Settings for one simulation call.

    Attributes:
        interval: (lower, upper) bracket for the root search, 0 < lower < upper
        maxt: Administrative censoring time (None = no censoring)
        quadrature: Integrator settings, used when H has no closed form
        xtol, rtol: Root-search tolerances on the bracket width
        max_iter: Iteration cap of the root search
        on_bracket_failure: 'raise' (default) or 'censor' at maxt / upper
        rootfun: Increasing transform applied to both sides of H(t) = -ln(U)
    """
    interval: Tuple[float, float] = DEFAULT_INTERVAL
    maxt: Optional[float] = None
    quadrature: QuadratureConfig = DEFAULT_QUADRATURE
    xtol: float = 1e-12
    rtol: float = MIN_RTOL
    max_iter: int = 100
    on_bracket_failure: str = 'raise'
    rootfun: Optional[Callable[[float], float]] = None

    def __post_init__(self):
        try:
            lower, upper = (float(v) for v in self.interval)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"interval must be a pair of numbers, got {self.interval!r}"
            ) from None
        if not 0 < lower < upper:
            raise ConfigurationError(
                f"interval must satisfy 0 < lower < upper, got ({lower}, {upper})"
            )
        object.__setattr__(self, 'interval', (lower, upper))

        if self.maxt is not None:
            maxt = float(self.maxt)
            if not lower < maxt <= upper:
                raise ConfigurationError(
                    f"maxt must lie in (lower, upper] = ({lower}, {upper}], got {maxt}"
                )
            object.__setattr__(self, 'maxt', maxt)

        if self.on_bracket_failure not in BRACKET_POLICIES:
            raise ConfigurationError(
                f"on_bracket_failure must be one of {BRACKET_POLICIES}, "
                f"got '{self.on_bracket_failure}'"
            )
        if self.xtol <= 0:
            raise ConfigurationError(f"xtol must be positive, got {self.xtol}")
        if self.rtol < MIN_RTOL:
            raise ConfigurationError(f"rtol must be >= {MIN_RTOL:.3g}, got {self.rtol}")
        if self.max_iter < 1:
            raise ConfigurationError(f"max_iter must be >= 1, got {self.max_iter}")
        if self.rootfun is not None and not callable(self.rootfun):
            raise ConfigurationError("rootfun must be callable")

    @property
    def search_upper(self) -> float:
        """Upper end of the root search: maxt when censoring, else upper."""
        return self.maxt if self.maxt is not None else self.interval[1]
