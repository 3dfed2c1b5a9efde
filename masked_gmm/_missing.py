# masked_gmm/_missing.py
"""Missing-value conventions and data validation.

A convention is resolved into a boolean observation mask once per call; the
EM and imputation code only ever look at the mask afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import torch


@dataclass(frozen=True)
class MissingSentinel:
    """An entry equal to ``value`` is missing (0 for sparse rating matrices)."""
    value: float = 0.0


@dataclass(frozen=True)
class MissingNaN:
    """An entry holding NaN is missing."""


MissingConvention = Union[MissingSentinel, MissingNaN]


def check_missing(missing) -> MissingConvention:
    if isinstance(missing, (MissingSentinel, MissingNaN)):
        return missing
    raise ValueError(
        f"missing must be MissingSentinel(...) or MissingNaN(), got {missing!r}"
    )


def as_data_tensor(X, device=None, dtype: Optional[torch.dtype] = None) -> torch.Tensor:
    """Return X as a 2-D floating tensor without touching the caller's data."""
    if isinstance(X, torch.Tensor):
        X_t = X
    else:
        X_t = torch.as_tensor(np.asarray(X))
    if dtype is None:
        dtype = X_t.dtype if X_t.is_floating_point() else torch.float64
    X_t = X_t.to(device=device if device is not None else X_t.device, dtype=dtype)
    if X_t.dim() != 2:
        raise ValueError(f"X must be 2-D (N, D), got shape {tuple(X_t.shape)}")
    if X_t.shape[0] == 0 or X_t.shape[1] == 0:
        raise ValueError(f"X must be non-empty, got shape {tuple(X_t.shape)}")
    return X_t


def observed_mask(X: torch.Tensor, missing: MissingConvention) -> torch.Tensor:
    """(N, D) bool mask, True where the entry is present."""
    missing = check_missing(missing)
    if isinstance(missing, MissingNaN):
        return ~torch.isnan(X)
    return X != missing.value


def check_observed_finite(X: torch.Tensor, mask: torch.Tensor) -> None:
    """Observed entries must be finite; NaN only counts as missing under MissingNaN."""
    bad = mask & ~torch.isfinite(X)
    if bool(bad.any()):
        n, d = (int(i) for i in torch.nonzero(bad)[0])
        raise ValueError(
            f"X has {int(bad.sum())} non-finite observed entries (first at row {n}, column {d}); "
            "use MissingNaN() if NaN marks missing values"
        )


def zero_missing(X: torch.Tensor, mask: torch.Tensor) -> torch.Tensor:
    """Copy of X with missing cells set to 0."""
    return torch.where(mask, X, torch.zeros_like(X))


def observed_ranges(X: torch.Tensor, mask: Optional[torch.Tensor] = None):
    """Per-dimension (min, max) over observed entries.

    A dimension without any observed entry gets the range [0, 0].
    """
    if mask is None:
        return X.min(dim=0).values, X.max(dim=0).values
    inf = torch.full_like(X, float("inf"))
    lo = torch.where(mask, X, inf).min(dim=0).values
    hi = torch.where(mask, X, -inf).max(dim=0).values
    empty = ~mask.any(dim=0)
    lo = torch.where(empty, torch.zeros_like(lo), lo)
    hi = torch.where(empty, torch.zeros_like(hi), hi)
    return lo, hi


def observed_variance(X: torch.Tensor, mask: torch.Tensor) -> torch.Tensor:
    """Per-dimension population variance over observed entries.

    Returns only the dimensions that have at least one observed entry.
    """
    w = mask.to(X.dtype)
    counts = w.sum(dim=0)  # (D,)
    present = counts > 0
    safe = counts.clamp_min(1.0)
    Xz = zero_missing(X, mask)
    mu = Xz.sum(dim=0) / safe
    resid = torch.where(mask, X - mu.unsqueeze(0), torch.zeros_like(X))
    var = (resid * resid).sum(dim=0) / safe
    return var[present]
