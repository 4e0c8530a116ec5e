"""
Simulation driver.

For each individual i (in input order):
1. Draw U_i ~ Uniform(0, 1); all draws happen before any root search so
   the stream position depends only on the number of individuals
2. target_i = -ln(U_i)
3. If H_i(maxt) < target_i the event falls after follow-up: censor at maxt
4. Otherwise solve H_i(t) = target_i on [lower, maxt or upper]
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .config import DEFAULT_INTERVAL, SimulationConfig
from .errors import ConfigurationError, RootBracketError, SimulationError
from .hazard import (
    AnalyticDistribution,
    HazardModel,
    IndividualHazard,
    hazard_spec_from_inputs,
    resolve_hazard,
)
from .individuals import Individual, TableLike, make_individuals
from .quadrature import QuadratureConfig
from .roots import find_event_time
from .tde import TDESpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulatedEvent:
    """Simulated outcome of one individual (status 1 = event, 0 = censored)."""
    id: Any
    eventtime: float
    status: int


def make_rng(
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None
) -> np.random.Generator:
    """Caller's generator, or a new one seeded with `seed`."""
    if rng is not None:
        if seed is not None:
            raise ConfigurationError("pass either seed or rng, not both")
        if not isinstance(rng, np.random.Generator):
            raise ConfigurationError(
                f"rng must be a numpy.random.Generator, got {type(rng).__name__}"
            )
        return rng
    return np.random.default_rng(seed)


class Simulator:
    """
    Event-time simulator by numerical inversion of the cumulative hazard.

    The hazard model and config are shared read-only across individuals;
    the only state that advances is the caller's random generator.
    """

    def __init__(self, hazard: HazardModel, config: Optional[SimulationConfig] = None):
        """
        Args:
            hazard: Resolved hazard (see hazard.resolve_hazard)
            config: Simulation settings
        """
        self.hazard = hazard
        self.config = config or SimulationConfig()

        if self.config.on_bracket_failure == 'censor' and self.config.maxt is None:
            warnings.warn(
                "on_bracket_failure='censor' without maxt censors at the upper "
                f"end of the interval ({self.config.interval[1]})",
                stacklevel=2
            )

    @staticmethod
    def draw_targets(n: int, rng: np.random.Generator) -> np.ndarray:
        """-ln(U) for n uniform draws, in order."""
        return -np.log(rng.uniform(size=n))

    def simulate_individual(self, individual: Individual, target: float) -> SimulatedEvent:
        """
        Solve H_i(t) = target for one individual.

        Raises:
            RootBracketError: under on_bracket_failure='raise'
            SimulationError: any other per-individual failure
        All errors carry the individual's id in their context.
        """
        bound = self.hazard.bind(individual.x, individual.betas)
        return self._solve(individual, bound, target)

    def _solve(self, individual: Individual, bound: IndividualHazard, target: float) -> SimulatedEvent:
        cfg = self.config
        H = bound.cumulative_hazard

        try:
            if cfg.maxt is not None and H(cfg.maxt) < target:
                return SimulatedEvent(individual.id, cfg.maxt, 0)

            result = find_event_time(
                H, target, (cfg.interval[0], cfg.search_upper),
                xtol=cfg.xtol, rtol=cfg.rtol, max_iter=cfg.max_iter,
                rootfun=cfg.rootfun
            )
        except RootBracketError as exc:
            exc.context['id'] = individual.id
            if cfg.on_bracket_failure == 'raise':
                raise
            logger.warning(
                "individual %s censored at %g after bracket failure: %s",
                individual.id, cfg.search_upper, exc
            )
            return SimulatedEvent(individual.id, cfg.search_upper, 0)
        except SimulationError as exc:
            exc.context['id'] = individual.id
            raise

        return SimulatedEvent(individual.id, result.root, 1)

    def run(
        self,
        individuals: Sequence[Individual],
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None
    ) -> List[SimulatedEvent]:
        """
        Simulate one event time per individual.

        Args:
            individuals: Individuals in output order
            rng: Random generator owned by the caller (advanced by len(individuals) draws)
            seed: Seed for a fresh generator when rng is not given

        Returns:
            One SimulatedEvent per individual, in input order
        """
        self.hazard.validate(individuals)
        rng = make_rng(seed, rng)
        targets = self.draw_targets(len(individuals), rng)

        logger.info(
            "simulating %d individuals (interval=%s, maxt=%s)",
            len(individuals), self.config.interval, self.config.maxt
        )
        events = []
        inexact = []
        for ind, target in zip(individuals, targets):
            bound = self.hazard.bind(ind.x, ind.betas)
            event = self._solve(ind, bound, float(target))
            if event.status == 1 and not bound.accurate_at(event.eventtime):
                inexact.append(ind.id)
            events.append(event)

        if inexact:
            warnings.warn(
                f"quadrature did not reach tolerance at the event time of "
                f"{len(inexact)} individual(s) (first ids: {inexact[:5]}); "
                "increase QuadratureConfig.max_depth or limit",
                stacklevel=2
            )
        logger.info(
            "simulated %d individuals, %d events",
            len(events), sum(e.status for e in events)
        )
        return events

    @staticmethod
    def to_dataframe(
        events: Sequence[SimulatedEvent],
        idvar: str = 'id',
        attrs: Optional[Mapping[str, Any]] = None
    ) -> pd.DataFrame:
        """Events as a DataFrame with columns idvar, eventtime, status."""
        df = pd.DataFrame({
            idvar: [e.id for e in events],
            'eventtime': np.array([e.eventtime for e in events], dtype=float),
            'status': np.array([e.status for e in events], dtype=int),
        })
        df.attrs.update(attrs or {})
        return df


# -----------------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------------

def _distribution_params(
    dist: Optional[str],
    mixture: bool,
    **values: Union[None, float, Sequence[float]]
) -> Dict[str, float]:
    given = {k: v for k, v in values.items() if v is not None}
    if dist is None:
        if given:
            raise ConfigurationError(f"{sorted(given)} are only used with dist")
        return {}

    params = {}
    for name, value in given.items():
        flat = np.atleast_1d(np.asarray(value, dtype=float))
        if mixture:
            if flat.size != 2:
                raise ConfigurationError(
                    f"{name} needs two values (one per mixture component), got {flat.size}"
                )
            params[f"{name}1"], params[f"{name}2"] = float(flat[0]), float(flat[1])
        else:
            if flat.size != 1:
                raise ConfigurationError(f"{name} must be a single value, got {flat.size}")
            params[name] = float(flat[0])
    return params


def simulate(
    dist: Optional[str] = None,
    lambdas: Union[None, float, Sequence[float]] = None,
    gammas: Union[None, float, Sequence[float]] = None,
    x: Optional[TableLike] = None,
    betas: Union[None, Mapping[str, float], pd.Series, TableLike] = None,
    tde: Optional[Union[TDESpec, Mapping[str, Any]]] = None,
    mixture: bool = False,
    pmix: float = 0.5,
    hazard: Optional[Callable] = None,
    loghazard: Optional[Callable] = None,
    cumhazard: Optional[Callable] = None,
    logcumhazard: Optional[Callable] = None,
    idvar: Optional[str] = None,
    ids: Optional[Sequence[Any]] = None,
    n: Optional[int] = None,
    maxt: Optional[float] = None,
    interval: Tuple[float, float] = DEFAULT_INTERVAL,
    nodes: Optional[int] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    on_bracket_failure: str = 'raise',
    rootfun: Optional[Callable[[float], float]] = None,
    quadrature: Optional[QuadratureConfig] = None,
    vectorized: bool = True,
    params: Sequence[str] = (),
    **extra: Any
) -> pd.DataFrame:
    """
    Simulate event times from a hazard specification.

    Exactly one of dist, hazard, loghazard, cumhazard or logcumhazard.

    Args:
        dist: 'exponential', 'weibull' or 'gompertz'
        lambdas, gammas: Distribution parameters shared by all individuals
            (pairs with mixture=True); may instead be columns of betas
        x: Covariates, one row per individual
        betas: Coefficients/parameters, shared or one row per individual
        tde: Covariate name -> time transform (see tde.TDESpec). A bare tag
            multiplies the effect, beta * x * f(t); with 'log' the hazard
            ratio is t**beta and equals 1 only at t = 1. For a ratio that
            moves toward 1 with follow-up, use TimeDependentEffect('log', coef)
            with coef of opposite sign to beta, giving (beta + coef * log t) * x.
        mixture, pmix: Two-component mixture of dist, pmix weighting the first
        hazard, loghazard, cumhazard, logcumhazard: fn(t, x, betas, **extra)
        idvar: Id column in x (and betas); also names the output id column
        ids: Explicit ids
        n: Number of individuals when x is None
        maxt: Administrative censoring time
        interval: Root-search bracket
        nodes: Use a fixed Gauss-Legendre rule with this many nodes
        seed, rng: Seed or caller-owned numpy Generator
        on_bracket_failure: 'raise' or 'censor'
        rootfun: Transform applied to both sides of H(t) = -ln(U)
        quadrature: Full quadrature settings (excludes nodes)
        vectorized: User function accepts array t
        params: Names the user function reads from betas
        **extra: Passed through to the user function

    Returns:
        DataFrame with columns id (or idvar), eventtime, status
    """
    spec = hazard_spec_from_inputs(
        dist=dist, hazard=hazard, loghazard=loghazard, cumhazard=cumhazard,
        logcumhazard=logcumhazard, mixture=mixture, pmix=pmix,
        extra=extra, vectorized=vectorized, params=params
    )

    if nodes is not None:
        if quadrature is not None:
            raise ConfigurationError("pass either nodes or quadrature, not both")
        quadrature = QuadratureConfig(method='legendre', nodes=nodes)

    config_kwargs = {}
    if quadrature is not None:
        config_kwargs['quadrature'] = quadrature
    config = SimulationConfig(
        interval=interval, maxt=maxt, on_bracket_failure=on_bracket_failure,
        rootfun=rootfun, **config_kwargs
    )

    individuals = make_individuals(
        x=x, betas=betas, ids=ids, idvar=idvar, n=n,
        params=_distribution_params(dist, mixture, lambdas=lambdas, gammas=gammas)
    )
    model = resolve_hazard(spec, tde, config.quadrature)
    rng = make_rng(seed, rng)

    simulator = Simulator(model, config)
    events = simulator.run(individuals, rng=rng)

    attrs = {
        'seed': seed,
        'interval': config.interval,
        'maxt': config.maxt,
        'dist': spec.name if isinstance(spec, AnalyticDistribution) else spec.kind,
    }
    return Simulator.to_dataframe(events, idvar=idvar or 'id', attrs=attrs)
