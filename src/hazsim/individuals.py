"""
Individuals to simulate and conversion from covariate/parameter tables.

An Individual holds:
- id: identifier carried through to the output
- x: covariate name -> value (same names for every individual)
- betas: parameter name -> value (shared or per individual)
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .errors import ConfigurationError

TableLike = Union[pd.DataFrame, Sequence[Mapping[str, Any]]]


def _numeric_row(row: Mapping[str, Any], what: str) -> Dict[str, float]:
    out = {}
    for name, value in row.items():
        try:
            out[str(name)] = float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"{what} values must be numeric", {"name": name, "value": value}
            ) from None
    return out


@dataclass(frozen=True)
class Individual:
    """
    One individual, read-only once the simulation starts.

    Attributes:
        id: Unique identifier
        x: Covariate name -> value
        betas: Parameter name -> value
    """
    id: Any
    x: Mapping[str, float] = field(default_factory=dict)
    betas: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'x', MappingProxyType(_numeric_row(self.x, 'covariate')))
        object.__setattr__(self, 'betas', MappingProxyType(_numeric_row(self.betas, 'betas')))


def _records(table: TableLike, drop: Optional[str] = None) -> List[Dict[str, Any]]:
    if isinstance(table, pd.DataFrame):
        if drop is not None and drop in table.columns:
            table = table.drop(columns=[drop])
        return table.to_dict('records')
    return [{k: v for k, v in row.items() if k != drop} for row in table]


def _betas_rows(
    betas: Union[None, Mapping[str, Any], pd.Series, TableLike],
    n: int,
    ids: Sequence[Any],
    idvar: Optional[str]
) -> List[Dict[str, Any]]:
    if betas is None:
        return [{} for _ in range(n)]
    if isinstance(betas, pd.Series):
        return [betas.to_dict() for _ in range(n)]
    if isinstance(betas, Mapping):
        return [dict(betas) for _ in range(n)]

    if isinstance(betas, pd.DataFrame) and idvar is not None and idvar in betas.columns:
        if betas[idvar].duplicated().any():
            raise ConfigurationError(f"betas has duplicate values in '{idvar}'")
        by_id = betas.set_index(idvar).to_dict('index')
        missing = [i for i in ids if i not in by_id]
        if missing:
            raise ConfigurationError(
                "betas has no row for some ids", {"ids": missing[:5]}
            )
        return [dict(by_id[i]) for i in ids]

    rows = _records(betas)
    if len(rows) == 1:
        return [dict(rows[0]) for _ in range(n)]
    if len(rows) != n:
        raise ConfigurationError(
            f"betas must have one row or one row per individual ({n}), got {len(rows)}"
        )
    return rows


def make_individuals(
    x: Optional[TableLike] = None,
    betas: Union[None, Mapping[str, Any], pd.Series, TableLike] = None,
    ids: Optional[Sequence[Any]] = None,
    idvar: Optional[str] = None,
    n: Optional[int] = None,
    params: Optional[Mapping[str, float]] = None
) -> List[Individual]:
    """
    Build Individuals from covariate and parameter tables.

    Args:
        x: Covariates, one row per individual (DataFrame or mappings)
        betas: One shared row (mapping/Series) or one row per individual
            (DataFrame/mappings); matched on idvar when betas has that column
        ids: Explicit ids; default is x[idvar] if present, else 1..n
        idvar: Name of the id column in x (and optionally betas)
        n: Number of individuals when x is None
        params: Distribution parameters (e.g. lambdas) added to every row

    Returns:
        List of Individual in input order
    """
    if x is None:
        if n is None or n < 1:
            raise ConfigurationError("either x or a positive n is required")
        rows = [{} for _ in range(n)]
    else:
        rows = _records(x, drop=idvar)
        if n is not None and n != len(rows):
            raise ConfigurationError(f"n={n} does not match {len(rows)} rows of x")
    n = len(rows)
    if n == 0:
        raise ConfigurationError("no individuals to simulate")

    if ids is None:
        if isinstance(x, pd.DataFrame) and idvar is not None and idvar in x.columns:
            ids = list(x[idvar])
        elif x is not None and idvar is not None and all(idvar in row for row in x):
            ids = [row[idvar] for row in x]
        else:
            ids = list(range(1, n + 1))
    ids = list(ids)
    if len(ids) != n:
        raise ConfigurationError(f"got {len(ids)} ids for {n} individuals")
    if len(set(ids)) != n:
        raise ConfigurationError("ids must be unique")

    beta_rows = _betas_rows(betas, n, ids, idvar)

    if params:
        clash = set(params) & set(beta_rows[0])
        if clash:
            raise ConfigurationError(
                f"parameters given both as arguments and in betas: {sorted(clash)}"
            )
        beta_rows = [{**row, **params} for row in beta_rows]

    return [
        Individual(id=i, x=row, betas=b)
        for i, row, b in zip(ids, rows, beta_rows)
    ]


def covariate_matrix(individuals: Sequence[Individual]) -> pd.DataFrame:
    """Covariates as a DataFrame indexed by id."""
    return pd.DataFrame(
        [dict(ind.x) for ind in individuals],
        index=pd.Index([ind.id for ind in individuals], name='id')
    ).astype(np.float64)
