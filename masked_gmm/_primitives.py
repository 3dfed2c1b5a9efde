# masked_gmm/_primitives.py
"""Distance and log-likelihood primitives shared by the EM and clustering code.

Everything here works on torch tensors and broadcasts over leading dimensions.
The Gaussian log-density is evaluated in log space only (no exp round trip),
and ``logsumexp`` is the one place where probabilities are summed.
"""

from __future__ import annotations

import math
from typing import Optional, Union

import torch

_LOG_2PI = math.log(2.0 * math.pi)


# ---------------------------
# Distances
# ---------------------------

def squared_distance(x: torch.Tensor, y: torch.Tensor) -> torch.Tensor:
    """||x - y||^2 along the last dimension."""
    if x.shape[-1] != y.shape[-1]:
        raise ValueError(f"Vectors must have the same length, got {x.shape[-1]} and {y.shape[-1]}")
    diff = x - y
    return torch.sum(diff * diff, dim=-1)


def cosine_distance(x: torch.Tensor, y: torch.Tensor) -> torch.Tensor:
    """(x . y) / (||x|| ||y||) along the last dimension.

    Undefined for zero-norm vectors, which is reported as a ValueError.
    """
    if x.shape[-1] != y.shape[-1]:
        raise ValueError(f"Vectors must have the same length, got {x.shape[-1]} and {y.shape[-1]}")
    x_norm = torch.linalg.vector_norm(x, dim=-1)
    y_norm = torch.linalg.vector_norm(y, dim=-1)
    if bool((x_norm == 0).any()) or bool((y_norm == 0).any()):
        raise ValueError("cosine_distance is undefined for zero-norm vectors")
    return torch.sum(x * y, dim=-1) / (x_norm * y_norm)


# ---------------------------
# Log-space helpers
# ---------------------------

def logsumexp(v: torch.Tensor, dim: int = -1) -> torch.Tensor:
    """max(v) + log(sum(exp(v - max(v)))) along ``dim``.

    A slice made only of -inf gives -inf instead of NaN.
    """
    return torch.logsumexp(v, dim=dim)


def log_gaussian(
    x: torch.Tensor,
    mean: torch.Tensor,
    variance: Union[torch.Tensor, float],
    mask: Optional[torch.Tensor] = None,
) -> torch.Tensor:
    """Log N(x | mean, variance * I) over the observed dimensions of x.

    -(d/2) * log(2*pi*var) - ||x - mean||^2 / (2*var), with d and the norm
    restricted to the dimensions where ``mask`` is True.

    Shapes:
    - x (D,), mean (D,), variance scalar         -> scalar
    - x (N, D), mean (K, D), variance (K,)       -> (N, K)
    mask has the shape of x; None means every dimension is observed.
    """
    single_x = x.dim() == 1
    single_mean = mean.dim() == 1
    if single_x:
        x = x.unsqueeze(0)
        if mask is not None:
            mask = mask.unsqueeze(0)
    if single_mean:
        mean = mean.unsqueeze(0)

    N, D = x.shape
    K, D2 = mean.shape
    if D != D2:
        raise ValueError(f"x has {D} dimensions but mean has {D2}")

    var = torch.as_tensor(variance, dtype=x.dtype, device=x.device).reshape(-1)
    if var.shape[0] != K:
        raise ValueError(f"Expected {K} variances, got {var.shape[0]}")

    diff = x.unsqueeze(1) - mean.unsqueeze(0)  # (N,K,D)
    if mask is None:
        sq = torch.sum(diff * diff, dim=2)  # (N,K)
        d = torch.full((N,), float(D), dtype=x.dtype, device=x.device)
    else:
        observed = mask.unsqueeze(1)
        diff = torch.where(observed, diff, torch.zeros_like(diff))
        sq = torch.sum(diff * diff, dim=2)
        d = mask.sum(dim=1).to(x.dtype)  # (N,)

    out = -0.5 * d.unsqueeze(1) * (_LOG_2PI + torch.log(var)).unsqueeze(0) - sq / (2.0 * var).unsqueeze(0)

    if single_mean:
        out = out.squeeze(1)
    if single_x:
        out = out.squeeze(0)
    return out


def rmse(x, y) -> float:
    """Root-mean-square error between two equal-shape matrices."""
    x = torch.as_tensor(x, dtype=torch.float64)
    y = torch.as_tensor(y, dtype=torch.float64)
    if x.shape != y.shape:
        raise ValueError(f"Shapes differ: {tuple(x.shape)} vs {tuple(y.shape)}")
    return float(torch.sqrt(torch.mean((x - y) ** 2)).item())
