"""
Time-dependent covariate effects.

A time-dependent effect (TDE) scales a covariate's contribution to the log
hazard by a function of time f(t), giving non-proportional hazards:

    multiplied:  beta * x * f(t)              (TimeDependentEffect(f))
    added:       beta * x + coef * x * f(t)   (TimeDependentEffect(f, coef))

Transforms are given as a tag ('identity'/'linear', 'log'), a callable, or
a TimeTransform. Piecewise-constant transforms (step_transform) carry
changepoints so the integrator never straddles a jump.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

import numpy as np

from .errors import ConfigurationError


@dataclass(frozen=True)
class TimeTransform:
    """f(t) with the times at which it is discontinuous."""
    name: str
    fn: Callable[[np.ndarray], np.ndarray]
    changepoints: Tuple[float, ...] = ()

    def __call__(self, t):
        return self.fn(np.asarray(t, dtype=float))


def _identity(t):
    return t


TRANSFORMS: Dict[str, TimeTransform] = {
    'identity': TimeTransform('identity', _identity),
    'linear': TimeTransform('linear', _identity),
    'log': TimeTransform('log', np.log),
}


def step_transform(cut: float, before: float = 0.0, after: float = 1.0) -> TimeTransform:
    """Piecewise-constant transform: `before` for t < cut, `after` from cut on."""
    if cut <= 0:
        raise ConfigurationError(f"step cut must be positive, got {cut}")

    def step(t):
        return np.where(t < cut, before, after)

    return TimeTransform(f"step({cut:g})", step, (float(cut),))


TransformLike = Union[str, TimeTransform, Callable[[np.ndarray], np.ndarray]]


def resolve_transform(transform: TransformLike) -> TimeTransform:
    """Turn a tag, callable or TimeTransform into a TimeTransform."""
    if isinstance(transform, TimeTransform):
        return transform
    if isinstance(transform, str):
        try:
            return TRANSFORMS[transform.lower()]
        except KeyError:
            raise ConfigurationError(
                f"time transform must be one of {sorted(TRANSFORMS)} or a callable, "
                f"got '{transform}'"
            ) from None
    if callable(transform):
        return TimeTransform(getattr(transform, '__name__', 'custom'), transform)
    raise ConfigurationError(f"cannot interpret {transform!r} as a time transform")


@dataclass(frozen=True)
class TimeDependentEffect:
    """
    Time dependence of one covariate's effect.

    Attributes:
        transform: f(t)
        coef: None multiplies the covariate's own effect by f(t);
            a number adds coef * x * f(t) on top of it
    """
    transform: TransformLike = 'identity'
    coef: Optional[float] = None

    def resolved(self) -> 'TimeDependentEffect':
        return TimeDependentEffect(resolve_transform(self.transform), self.coef)


class TDESpec:
    """Mapping of covariate name to TimeDependentEffect, shared read-only."""

    def __init__(self, effects: Mapping[str, Any]):
        terms = {}
        for name, effect in effects.items():
            if not isinstance(effect, TimeDependentEffect):
                effect = TimeDependentEffect(effect)
            terms[name] = effect.resolved()
        self.terms: Dict[str, TimeDependentEffect] = terms

    @classmethod
    def from_mapping(cls, effects: Optional[Union['TDESpec', Mapping[str, Any]]]) -> Optional['TDESpec']:
        """None or empty gives None; an existing TDESpec passes through."""
        if effects is None or isinstance(effects, TDESpec):
            return effects
        if not effects:
            return None
        return cls(effects)

    def __repr__(self) -> str:
        inner = ", ".join(
            f"{k}={v.transform.name}" + ("" if v.coef is None else f"*{v.coef:g}")
            for k, v in self.terms.items()
        )
        return f"TDESpec({inner})"

    def required_covariates(self) -> Tuple[str, ...]:
        return tuple(self.terms)

    def required_betas(self) -> Tuple[str, ...]:
        """Covariates whose own beta is scaled by f(t)."""
        return tuple(k for k, v in self.terms.items() if v.coef is None)

    def changepoints(self, upper: float = float('inf')) -> Tuple[float, ...]:
        """Sorted, unique changepoints in (0, upper)."""
        points = {
            p for v in self.terms.values() for p in v.transform.changepoints
            if 0 < p < upper
        }
        return tuple(sorted(points))

    def offset(self, t, x: Mapping[str, float], betas: Mapping[str, float]):
        """
        Time-varying part of the log hazard.

        For a multiplied effect the time-fixed beta * x is already in the
        linear predictor, so beta * x * (f(t) - 1) is added here.
        """
        t = np.asarray(t, dtype=float)
        total = np.zeros_like(t)
        for name, effect in self.terms.items():
            ft = effect.transform(t)
            if effect.coef is None:
                total = total + betas[name] * x[name] * (ft - 1.0)
            else:
                total = total + effect.coef * x[name] * ft
        return total


def fixed_effects(x: Mapping[str, float], betas: Mapping[str, float]) -> float:
    """Time-fixed linear predictor: sum of betas[c] * x[c] over shared names."""
    return float(sum(betas[c] * v for c, v in x.items() if c in betas))


def linear_predictor(
    t,
    x: Mapping[str, float],
    betas: Mapping[str, float],
    tde: Optional[TDESpec] = None
):
    """eta(t) = fixed effects + time-varying offset (array in t)."""
    eta = fixed_effects(x, betas)
    if tde is None:
        return eta + np.zeros_like(np.asarray(t, dtype=float))
    return eta + tde.offset(t, x, betas)


def changepoints(tde: Optional[TDESpec], upper: float = float('inf')) -> Tuple[float, ...]:
    """Changepoints of a (possibly absent) TDE spec in (0, upper)."""
    if tde is None:
        return ()
    return tde.changepoints(upper)


def check_individual(tde: TDESpec, x: Mapping[str, float], betas: Mapping[str, float]) -> Iterable[str]:
    """Names referenced by the TDE spec but missing from x or betas."""
    missing = [f"x[{c}]" for c in tde.required_covariates() if c not in x]
    missing += [f"betas[{c}]" for c in tde.required_betas() if c not in betas]
    return missing
