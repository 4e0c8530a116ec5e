"""
Hazard specifications and their resolution into evaluators.

A HazardSpec is one of:
- AnalyticDistribution: exponential / weibull / gompertz baseline (or a
  two-component mixture of one family) with proportional covariate effects
- UserFunction: a callable fn(t, x, betas, **extra) returning the hazard,
  log hazard, cumulative hazard or log cumulative hazard

resolve_hazard() turns a spec (plus an optional TDESpec) into a
HazardModel exactly once. A HazardModel binds to an individual's (x, betas)
and yields H_i(t), integrating the hazard numerically only when no
closed-form cumulative hazard exists.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import ConfigurationError, HazardEvaluationError, IntegrationError
from .individuals import Individual
from .quadrature import DEFAULT_QUADRATURE, QuadratureConfig, integrate
from .survival import BaselineHazard, get_distribution, make_baseline, required_params
from .tde import TDESpec, changepoints, check_individual, fixed_effects, linear_predictor

logger = logging.getLogger(__name__)

HAZARD_KINDS = ('hazard', 'loghazard', 'cumhazard', 'logcumhazard')


# -----------------------------------------------------------------------------
# Specifications
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class AnalyticDistribution:
    """
    Closed-form baseline family.

    Attributes:
        name: 'exponential', 'weibull' or 'gompertz'
        mixture: Two-component mixture of the family
        pmix: Weight of the first mixture component
    """
    name: str
    mixture: bool = False
    pmix: float = 0.5

    def __post_init__(self):
        get_distribution(self.name)
        if self.mixture and not 0 < self.pmix < 1:
            raise ConfigurationError(f"pmix must be in (0, 1), got {self.pmix}")

    @property
    def param_names(self) -> Tuple[str, ...]:
        return required_params(self.name, self.mixture)


@dataclass(frozen=True)
class UserFunction:
    """
    User-supplied hazard of one kind.

    Attributes:
        kind: 'hazard', 'loghazard', 'cumhazard' or 'logcumhazard'
        fn: fn(t, x, betas, **extra) -> float
        vectorized: fn accepts a numpy array t (evaluated node by node if not)
        extra: Named extra arguments passed through to fn
        params: Parameter names fn reads from betas (checked up front)
    """
    kind: str
    fn: Callable[..., Any]
    vectorized: bool = True
    extra: Mapping[str, Any] = field(default_factory=dict)
    params: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.kind not in HAZARD_KINDS:
            raise ConfigurationError(
                f"hazard kind must be one of {HAZARD_KINDS}, got '{self.kind}'"
            )
        if not callable(self.fn):
            raise ConfigurationError(f"{self.kind} must be callable")

    @property
    def param_names(self) -> Tuple[str, ...]:
        return tuple(self.params)

    def __call__(self, t, x, betas):
        if self.vectorized or np.ndim(t) == 0:
            return self.fn(t, x, betas, **self.extra)
        return np.array([self.fn(float(s), x, betas, **self.extra) for s in t], dtype=float)


HazardSpec = Union[AnalyticDistribution, UserFunction]


def hazard_spec_from_inputs(
    dist: Optional[str] = None,
    hazard: Optional[Callable] = None,
    loghazard: Optional[Callable] = None,
    cumhazard: Optional[Callable] = None,
    logcumhazard: Optional[Callable] = None,
    mixture: bool = False,
    pmix: float = 0.5,
    extra: Optional[Mapping[str, Any]] = None,
    vectorized: bool = True,
    params: Sequence[str] = ()
) -> HazardSpec:
    """Build the HazardSpec from mutually exclusive keyword inputs."""
    functions = {
        'hazard': hazard,
        'loghazard': loghazard,
        'cumhazard': cumhazard,
        'logcumhazard': logcumhazard,
    }
    given = [k for k, v in functions.items() if v is not None]
    if dist is not None:
        given.insert(0, 'dist')
    if len(given) != 1:
        raise ConfigurationError(
            "exactly one of dist, hazard, loghazard, cumhazard or logcumhazard "
            f"must be supplied, got {given or 'none'}"
        )

    if dist is not None:
        if extra:
            raise ConfigurationError(
                f"extra arguments {sorted(extra)} are only used with user functions"
            )
        return AnalyticDistribution(dist, mixture=mixture, pmix=pmix)
    if mixture:
        raise ConfigurationError("mixture=True requires dist")

    kind = given[0]
    return UserFunction(
        kind, functions[kind], vectorized=vectorized,
        extra=dict(extra or {}), params=tuple(params)
    )


# -----------------------------------------------------------------------------
# Evaluators
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class IndividualHazard:
    """
    H_i(t) and, when known without integration, h_i(t).

    accurate_at(t) tells whether H_i(t) met the quadrature tolerance; it is
    always True for closed forms.
    """
    cumulative_hazard: Callable[[float], float]
    hazard: Optional[Callable[[Any], Any]] = None
    accurate_at: Callable[[float], bool] = field(default=lambda t: True)


def _as_float(value, t: float, what: str, log_scale: bool = False) -> float:
    out = float(np.asarray(value, dtype=float).item())
    if np.isnan(out) or (out == -np.inf and not log_scale):
        raise HazardEvaluationError(f"{what} is not finite", {"t": t, "value": out})
    return out


class HazardModel(ABC):
    """Resolved hazard, shared read-only across individuals."""

    closed_form: bool = False

    def __init__(self, spec: HazardSpec, tde: Optional[TDESpec] = None):
        self.spec = spec
        self.tde = tde

    @abstractmethod
    def bind(self, x: Mapping[str, float], betas: Mapping[str, float]) -> IndividualHazard:
        """Evaluators for one individual."""
        pass

    def cumulative_hazard(self, t: float, x: Mapping[str, float], betas: Mapping[str, float]) -> float:
        return self.bind(x, betas).cumulative_hazard(t)

    def hazard(self, t, x: Mapping[str, float], betas: Mapping[str, float]):
        h = self.bind(x, betas).hazard
        if h is None:
            raise ConfigurationError(
                f"{type(self).__name__} has no hazard without differentiation",
                {"kind": getattr(self.spec, "kind", None)}
            )
        return h(t)

    def missing(self, individual: Individual) -> List[str]:
        """Names the individual must supply but does not, or invalid parameters."""
        missing = [f"betas[{p}]" for p in self.spec.param_names if p not in individual.betas]
        if self.tde is not None:
            missing += check_individual(self.tde, individual.x, individual.betas)
        if not missing and isinstance(self.spec, AnalyticDistribution):
            try:
                make_baseline(self.spec.name, individual.betas, self.spec.mixture, self.spec.pmix)
            except ConfigurationError as exc:
                missing.append(exc.message)
        return missing

    def validate(self, individuals: Sequence[Individual]) -> None:
        """Raise ConfigurationError naming the first individuals with missing names."""
        problems = {}
        for ind in individuals:
            missing = self.missing(ind)
            if missing:
                problems[ind.id] = missing
        if problems:
            first = list(problems.items())[:5]
            raise ConfigurationError(
                f"{len(problems)} individual(s) have missing or invalid parameters",
                {"missing": dict(first)}
            )


class ClosedFormHazard(HazardModel):
    """Analytic distribution with proportional effects: H(t) = H0(t) exp(eta)."""

    closed_form = True

    def __init__(self, spec: AnalyticDistribution):
        super().__init__(spec)

    def baseline(self, betas: Mapping[str, float]) -> BaselineHazard:
        return make_baseline(self.spec.name, betas, self.spec.mixture, self.spec.pmix)

    def bind(self, x, betas) -> IndividualHazard:
        baseline = self.baseline(betas)
        scale = float(np.exp(fixed_effects(x, betas)))

        def cumulative_hazard(t):
            if t <= 0:
                return 0.0
            return _as_float(scale * baseline.cumulative_hazard(t), t, "cumulative hazard")

        return IndividualHazard(cumulative_hazard, lambda t: scale * baseline.hazard(t))


class DirectCumulativeHazard(HazardModel):
    """User cumulative hazard (or its log), evaluated directly."""

    closed_form = True

    def __init__(self, spec: UserFunction):
        super().__init__(spec)
        self.log_scale = spec.kind == 'logcumhazard'

    def bind(self, x, betas) -> IndividualHazard:
        fn = self.spec
        log_scale = self.log_scale

        def cumulative_hazard(t):
            if t <= 0:
                return 0.0
            value = _as_float(fn(t, x, betas), t, fn.kind, log_scale)
            return float(np.exp(value)) if log_scale else value

        return IndividualHazard(cumulative_hazard)


class IntegratedHazard(HazardModel):
    """
    Hazard integrated numerically: H(t) = ∫_0^t h(s) ds.

    Used for user hazard / log hazard functions and for analytic
    distributions combined with time-dependent effects. The integral is
    split at the TDE changepoints below t.
    """

    def __init__(
        self,
        spec: HazardSpec,
        tde: Optional[TDESpec] = None,
        quadrature: QuadratureConfig = DEFAULT_QUADRATURE
    ):
        super().__init__(spec, tde)
        self.quadrature = quadrature

    def _hazard_fn(self, x, betas) -> Callable[[np.ndarray], np.ndarray]:
        spec, tde = self.spec, self.tde

        if isinstance(spec, AnalyticDistribution):
            baseline = make_baseline(spec.name, betas, spec.mixture, spec.pmix)
            return lambda s: baseline.hazard(s) * np.exp(linear_predictor(s, x, betas, tde))

        if spec.kind == 'hazard':
            if tde is None:
                return lambda s: spec(s, x, betas)
            return lambda s: spec(s, x, betas) * np.exp(tde.offset(s, x, betas))

        if tde is None:
            return lambda s: np.exp(spec(s, x, betas))
        return lambda s: np.exp(spec(s, x, betas) + tde.offset(s, x, betas))

    def bind(self, x, betas) -> IndividualHazard:
        h = self._hazard_fn(x, betas)
        config = self.quadrature
        tde = self.tde

        def integral(t):
            with np.errstate(over='ignore'):
                return integrate(h, 0.0, t, config, changepoints(tde, t))

        def cumulative_hazard(t):
            if t <= 0:
                return 0.0
            try:
                return integral(t).value
            except IntegrationError as exc:
                # exp() overflowed far in the tail; H is +inf from here on.
                if exc.context.get("value") == np.inf:
                    return float('inf')
                raise

        def accurate_at(t):
            return t <= 0 or integral(t).converged

        return IndividualHazard(cumulative_hazard, h, accurate_at)


def resolve_hazard(
    spec: HazardSpec,
    tde: Optional[Union[TDESpec, Mapping[str, Any]]] = None,
    quadrature: QuadratureConfig = DEFAULT_QUADRATURE
) -> HazardModel:
    """
    Resolve a HazardSpec into the evaluator used for every individual.

    Raises:
        ConfigurationError: unknown spec type, or a TDE combined with a
            user cumulative hazard
    """
    tde = TDESpec.from_mapping(tde)

    if isinstance(spec, AnalyticDistribution):
        if tde is None:
            model = ClosedFormHazard(spec)
        else:
            model = IntegratedHazard(spec, tde, quadrature)
    elif isinstance(spec, UserFunction):
        if spec.kind in ('cumhazard', 'logcumhazard'):
            if tde is not None:
                raise ConfigurationError(
                    f"time-dependent effects cannot be combined with {spec.kind}; "
                    "encode the time dependence in the function instead"
                )
            model = DirectCumulativeHazard(spec)
        else:
            model = IntegratedHazard(spec, tde, quadrature)
    else:
        raise ConfigurationError(f"unsupported hazard specification {spec!r}")

    logger.debug("resolved %r (tde=%r) to %s", spec, tde, type(model).__name__)
    return model
