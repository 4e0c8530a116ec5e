"""
Closed-form baseline hazards.

Each model implements, for t >= 0 (scalars or numpy arrays):
- hazard(t) -> h0(t)
- cumulative_hazard(t) -> H0(t) = ∫_0^t h0(s) ds
- survival(t) -> S0(t) = exp(-H0(t))

Parameterisation follows the proportional hazards convention:

    exponential  h0(t) = λ
    weibull      h0(t) = λ γ t^(γ - 1)
    gompertz     h0(t) = λ exp(γ t)

with λ read from 'lambdas' and γ from 'gammas'.
"""

from abc import ABC, abstractmethod
from typing import Dict, Mapping, Tuple, Type

import numpy as np

from .errors import ConfigurationError


class BaselineHazard(ABC):
    """Base class for baseline hazard families."""

    param_names: Tuple[str, ...] = ()

    @abstractmethod
    def hazard(self, t):
        """Baseline hazard h0(t)."""
        pass

    @abstractmethod
    def cumulative_hazard(self, t):
        """Baseline cumulative hazard H0(t)."""
        pass

    def survival(self, t):
        """Survival function S0(t) = exp(-H0(t))."""
        return np.exp(-self.cumulative_hazard(t))

    @classmethod
    def from_params(cls, params: Mapping[str, float], suffix: str = '') -> 'BaselineHazard':
        """Build from a parameter row, reading e.g. 'lambdas' + suffix."""
        return cls(*(float(params[name + suffix]) for name in cls.param_names))


class Exponential(BaselineHazard):
    """Constant hazard λ."""

    param_names = ('lambdas',)

    def __init__(self, lambdas: float):
        if lambdas <= 0:
            raise ConfigurationError(f"exponential lambdas must be positive, got {lambdas}")
        self.lambdas = lambdas

    def hazard(self, t):
        return self.lambdas * np.ones_like(np.asarray(t, dtype=float))

    def cumulative_hazard(self, t):
        return self.lambdas * np.asarray(t, dtype=float)


class Weibull(BaselineHazard):
    """
    Weibull hazard λ γ t^(γ-1).

    gammas < 1 decreasing hazard, = 1 constant (exponential), > 1 increasing
    """

    param_names = ('lambdas', 'gammas')

    def __init__(self, lambdas: float, gammas: float):
        if lambdas <= 0 or gammas <= 0:
            raise ConfigurationError(
                f"weibull lambdas and gammas must be positive, got {lambdas}, {gammas}"
            )
        self.lambdas = lambdas
        self.gammas = gammas

    def hazard(self, t):
        t = np.asarray(t, dtype=float)
        return self.lambdas * self.gammas * t ** (self.gammas - 1.0)

    def cumulative_hazard(self, t):
        return self.lambdas * np.asarray(t, dtype=float) ** self.gammas


class Gompertz(BaselineHazard):
    """
    Gompertz hazard λ exp(γ t).

    gammas < 0 gives a defective distribution: H0 is bounded by -λ/γ.
    """

    param_names = ('lambdas', 'gammas')

    def __init__(self, lambdas: float, gammas: float):
        if lambdas <= 0:
            raise ConfigurationError(f"gompertz lambdas must be positive, got {lambdas}")
        self.lambdas = lambdas
        self.gammas = gammas

    def hazard(self, t):
        return self.lambdas * np.exp(self.gammas * np.asarray(t, dtype=float))

    def cumulative_hazard(self, t):
        t = np.asarray(t, dtype=float)
        if self.gammas == 0:
            return self.lambdas * t
        return self.lambdas * np.expm1(self.gammas * t) / self.gammas


class Mixture(BaselineHazard):
    """
    Two-component mixture on the survival scale.

    S0(t) = p S1(t) + (1 - p) S2(t)
    h0(t) = [p h1(t) S1(t) + (1 - p) h2(t) S2(t)] / S0(t)

    Note the hazard is NOT the weighted average of component hazards.
    Computed on the log scale so that H0 stays finite when both
    component survivals underflow.
    """

    def __init__(self, first: BaselineHazard, second: BaselineHazard, pmix: float):
        if not 0 < pmix < 1:
            raise ConfigurationError(f"pmix must be in (0, 1), got {pmix}")
        self.first = first
        self.second = second
        self.pmix = pmix
        self._log_weights = (np.log(pmix), np.log1p(-pmix))

    def cumulative_hazard(self, t):
        return -np.logaddexp(
            self._log_weights[0] - self.first.cumulative_hazard(t),
            self._log_weights[1] - self.second.cumulative_hazard(t),
        )

    def hazard(self, t):
        total = self.cumulative_hazard(t)
        w1 = np.exp(self._log_weights[0] - self.first.cumulative_hazard(t) + total)
        w2 = np.exp(self._log_weights[1] - self.second.cumulative_hazard(t) + total)
        return w1 * self.first.hazard(t) + w2 * self.second.hazard(t)


DISTRIBUTIONS: Dict[str, Type[BaselineHazard]] = {
    'exponential': Exponential,
    'weibull': Weibull,
    'gompertz': Gompertz,
}


def get_distribution(name: str) -> Type[BaselineHazard]:
    """Look up a baseline family by (case-insensitive) name."""
    try:
        return DISTRIBUTIONS[name.lower()]
    except (KeyError, AttributeError):
        raise ConfigurationError(
            f"distribution must be one of {sorted(DISTRIBUTIONS)}, got {name!r}"
        ) from None


def required_params(name: str, mixture: bool = False) -> Tuple[str, ...]:
    """Parameter names a distribution reads from each betas row."""
    names = get_distribution(name).param_names
    if not mixture:
        return names
    return tuple(f"{n}{i}" for n in names for i in (1, 2))


def make_baseline(
    name: str,
    params: Mapping[str, float],
    mixture: bool = False,
    pmix: float = 0.5
) -> BaselineHazard:
    """Instantiate a baseline hazard from one parameter row."""
    family = get_distribution(name)
    if not mixture:
        return family.from_params(params)
    return Mixture(
        family.from_params(params, suffix='1'),
        family.from_params(params, suffix='2'),
        pmix
    )
