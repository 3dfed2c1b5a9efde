# masked_gmm/_representatives.py
"""Initial representatives (means / centroids / medoids) for K components.

Strategies:
- 'random':  uniform draw per cell inside the per-dimension observed range
- 'grid':    K evenly spaced values per dimension, min..max inclusive
- 'shuffle': K distinct rows of X, drawn without replacement
- 'given':   caller-supplied (K, D) matrix, returned as is

A strategy is either one of the variant objects below or its name. 'given'
as a name needs the matrix passed alongside, which resolve_strategy turns into
a GivenInit; the variant itself cannot exist without one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

import torch

from ._missing import as_data_tensor, observed_ranges


@dataclass(frozen=True)
class RandomInit:
    pass


@dataclass(frozen=True)
class GridInit:
    pass


@dataclass(frozen=True)
class ShuffleInit:
    pass


@dataclass(frozen=True, eq=False)
class GivenInit:
    representatives: torch.Tensor = field(repr=False)


InitStrategy = Union[RandomInit, GridInit, ShuffleInit, GivenInit]

_BY_NAME = {
    "random": RandomInit,
    "grid": GridInit,
    "shuffle": ShuffleInit,
}


def resolve_strategy(strategy: Union[str, InitStrategy], given=None) -> InitStrategy:
    """Turn a strategy name (or variant) into a variant instance."""
    if isinstance(strategy, (RandomInit, GridInit, ShuffleInit, GivenInit)):
        return strategy
    if strategy == "given":
        if given is None:
            raise ValueError("init strategy 'given' requires a (K, D) representatives matrix")
        return GivenInit(torch.as_tensor(given))
    if isinstance(strategy, str) and strategy in _BY_NAME:
        return _BY_NAME[strategy]()
    raise ValueError(
        f"Unknown init strategy {strategy!r}; expected one of 'random', 'grid', 'shuffle', 'given'"
    )


def check_generator(random_state=None) -> torch.Generator:
    """Caller-owned random source: None (fresh seed), an int seed, or a torch.Generator."""
    if isinstance(random_state, torch.Generator):
        return random_state
    gen = torch.Generator()
    if random_state is None:
        gen.seed()
    else:
        gen.manual_seed(int(random_state))
    return gen


def init_representatives(
    X,
    n_representatives: int,
    strategy: Union[str, InitStrategy] = "grid",
    *,
    given=None,
    mask: Optional[torch.Tensor] = None,
    generator: Optional[torch.Generator] = None,
) -> torch.Tensor:
    """Return (K, D) initial representatives for X (N, D).

    With ``mask`` the per-dimension ranges used by 'random' and 'grid' ignore
    missing entries.
    """
    X = as_data_tensor(X)
    N, D = X.shape
    K = int(n_representatives)
    if K < 1:
        raise ValueError(f"n_representatives must be >= 1, got {K}")

    strategy = resolve_strategy(strategy, given=given)

    if isinstance(strategy, GivenInit):
        reps = torch.as_tensor(strategy.representatives).to(device=X.device, dtype=X.dtype)
        if reps.shape != (K, D):
            raise ValueError(f"given representatives must have shape (K,D) = {(K, D)}, got {tuple(reps.shape)}")
        return reps.clone()

    if isinstance(strategy, GridInit):
        lo, hi = observed_ranges(X, mask)
        cols = [torch.linspace(float(lo[d]), float(hi[d]), K, dtype=X.dtype, device=X.device) for d in range(D)]
        return torch.stack(cols, dim=1)

    gen = generator if generator is not None else check_generator(None)

    if isinstance(strategy, RandomInit):
        lo, hi = observed_ranges(X, mask)
        u = torch.rand((K, D), generator=gen, dtype=X.dtype).to(X.device)
        return lo.unsqueeze(0) + u * (hi - lo).unsqueeze(0)

    # shuffle
    if K > N:
        raise ValueError(f"shuffle init needs n_representatives <= N, got K={K} with N={N}")
    idx = torch.randperm(N, generator=gen)[:K].to(X.device)
    return X[idx].clone()
