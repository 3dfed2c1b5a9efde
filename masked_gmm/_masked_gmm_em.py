# masked_gmm/_masked_gmm_em.py
"""Spherical Gaussian Mixture Model (GMM) EM in PyTorch for partially observed data.

Each component k has a mixing weight p_k, a mean mu_k (D,) and one scalar
variance var_k shared by all D dimensions. Missing entries are never imputed
during fitting: the E-step scores a row on its observed dimensions only and the
M-step re-estimates each mean cell and each variance from observed entries only.

Key choices:
- E-step in log space: log(p_k + 1e-16) + log N(x_obs | mu_k,obs, var_k), normalized
  with logsumexp. The 1e-16 keeps a collapsed weight from producing log(0).
- A row with no observed entry carries no evidence: its responsibilities are
  the current weights and it adds nothing to the log-likelihood.
- A mean cell mu[k, d] is only re-estimated when the responsibility mass of
  rows observing d exceeds 1; otherwise it keeps its previous value.
- Variances are floored at min_variance (also when a component has no mass).
- Stopping rule: new_ll - old_ll <= tol * |new_ll|. The reported log-likelihood
  and BIC come from the last E-step, i.e. the parameters before the last
  M-step; the reported parameters are after it.

Exposed sklearn-like attributes after fit:
- weights_, means_, variances_, resp_
- log_likelihood_, bic_, converged_, n_iter_
- trace_ (norm of the change in resp per iteration)
- log_likelihoods_ (history; one value per iteration)
- summary_ (frozen GMMFit with all of the above)
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import Optional, Tuple

import torch
from sklearn.exceptions import ConvergenceWarning

from ._missing import (
    MissingSentinel,
    as_data_tensor,
    check_missing,
    check_observed_finite,
    observed_mask,
    observed_variance,
    zero_missing,
)
from ._primitives import log_gaussian, logsumexp
from ._representatives import (
    GivenInit,
    GridInit,
    check_generator,
    init_representatives,
    resolve_strategy,
)

_WEIGHT_EPS = 1e-16


# ---------------------------
# Parameter containers
# ---------------------------

@dataclass
class GMMParams:
    weights: torch.Tensor    # (K,)
    means: torch.Tensor      # (K, D)
    variances: torch.Tensor  # (K,)


@dataclass(frozen=True, eq=False)
class GMMFit:
    """Result of one EM run."""
    resp: torch.Tensor
    weights: torch.Tensor
    means: torch.Tensor
    variances: torch.Tensor
    trace: Tuple[float, ...]
    log_likelihood: float
    bic: float
    n_iter: int
    converged: bool
    log_likelihoods: Tuple[float, ...]


# ---------------------------
# EM steps
# ---------------------------

def expectation_step(
    X: torch.Tensor,
    mask: torch.Tensor,
    params: GMMParams,
) -> Tuple[torch.Tensor, torch.Tensor]:
    """Masked E-step. Returns (total log-likelihood, resp (N,K))."""
    log_prob = log_gaussian(X, params.means, params.variances, mask)  # (N,K)
    weighted_log_prob = log_prob + torch.log(params.weights + _WEIGHT_EPS).unsqueeze(0)

    log_prob_norm = logsumexp(weighted_log_prob, dim=1)  # (N,)
    resp = torch.exp(weighted_log_prob - log_prob_norm.unsqueeze(1))

    has_obs = mask.any(dim=1)  # (N,)
    resp = torch.where(has_obs.unsqueeze(1), resp, params.weights.unsqueeze(0).expand_as(resp))
    log_likelihood = torch.sum(torch.where(has_obs, log_prob_norm, torch.zeros_like(log_prob_norm)))

    return log_likelihood, resp


def maximization_step(
    X: torch.Tensor,
    mask: torch.Tensor,
    resp: torch.Tensor,
    params: GMMParams,
    min_variance: float,
) -> GMMParams:
    """Masked M-step producing updated weights/means/variances.

    X must hold finite values in missing cells (see zero_missing).
    """
    N, D = X.shape
    K = resp.shape[1]
    assert resp.shape == (N, K)
    assert params.means.shape == (K, D)

    observed = mask.to(X.dtype)  # (N,D)

    nk = resp.sum(dim=0)  # (K,)
    new_weights = nk / nk.sum()

    # mean cells with responsibility mass <= 1 on observed rows stay put
    num = resp.T @ zero_missing(X, mask)  # (K,D)
    den = resp.T @ observed               # (K,D)
    update = den > 1.0
    safe_den = torch.where(update, den, torch.ones_like(den))
    new_means = torch.where(update, num / safe_den, params.means)

    diff = X.unsqueeze(1) - new_means.unsqueeze(0)  # (N,K,D)
    sq = torch.where(mask.unsqueeze(1), diff * diff, torch.zeros_like(diff)).sum(dim=2)  # (N,K)
    var_num = torch.sum(resp * sq, dim=0)         # (K,)
    var_den = resp.T @ observed.sum(dim=1)        # (K,)
    has_mass = var_den > 0
    new_variances = torch.where(
        has_mass,
        var_num / torch.where(has_mass, var_den, torch.ones_like(var_den)),
        torch.full_like(var_num, min_variance),
    )
    new_variances = new_variances.clamp_min(min_variance)

    return GMMParams(weights=new_weights, means=new_means, variances=new_variances)


# ---------------------------
# Initialization / scoring helpers
# ---------------------------

def default_params(
    X: torch.Tensor,
    mask: torch.Tensor,
    n_components: int,
    min_variance: float,
) -> GMMParams:
    """Uniform weights, grid means over observed ranges, one shared variance.

    variance = mean(per-dimension observed variance) / K^2, floored.
    """
    K = n_components
    weights = torch.full((K,), 1.0 / K, dtype=X.dtype, device=X.device)
    means = init_representatives(X, K, GridInit(), mask=mask)

    per_dim = observed_variance(X, mask)
    shared = float(per_dim.mean().item()) / (K * K) if per_dim.numel() > 0 else min_variance
    shared = max(shared, min_variance)
    variances = torch.full((K,), shared, dtype=X.dtype, device=X.device)

    return GMMParams(weights=weights, means=means, variances=variances)


def _n_parameters(n_components: int, n_features: int) -> int:
    """Free parameters: means K*D, variances K, weights K-1."""
    K, D = n_components, n_features
    return K * D + K + (K - 1)


def bic(log_likelihood: float, n_samples: int, n_features: int, n_components: int) -> float:
    """ll - 0.5 * n_parameters * log(N). Larger is better."""
    return float(log_likelihood) - 0.5 * _n_parameters(n_components, n_features) * math.log(n_samples)


# ---------------------------
# Model wrapper
# ---------------------------

class MaskedGaussianMixture:
    """Sklearn-shaped spherical GaussianMixture for data with missing entries."""

    def __init__(
        self,
        n_components: int,
        tol: float = 1e-6,
        min_variance: float = 0.25,
        max_iter: Optional[int] = None,
        init_params="grid",
        weights_init=None,
        means_init=None,
        variances_init=None,
        missing=MissingSentinel(0.0),
        random_state=None,
        verbose_interval: int = 10,
        device=None,
        dtype: Optional[torch.dtype] = torch.float64,
    ) -> None:
        if n_components < 1:
            raise ValueError(f"n_components must be >= 1, got {n_components}")
        if not tol > 0:
            raise ValueError(f"tol must be positive, got {tol}")
        if not min_variance > 0:
            raise ValueError(f"min_variance must be positive, got {min_variance}")
        if max_iter is not None and max_iter < 1:
            raise ValueError(f"max_iter must be None or >= 1, got {max_iter}")
        if verbose_interval < 0:
            raise ValueError(f"verbose_interval must be >= 0, got {verbose_interval}")
        # fails early on unknown names and on 'given' without means_init
        resolve_strategy(init_params, given=means_init)

        self.n_components = int(n_components)
        self.tol = float(tol)
        self.min_variance = float(min_variance)
        self.max_iter = max_iter
        self.init_params = init_params
        self.missing = check_missing(missing)
        self.random_state = random_state
        self.verbose_interval = int(verbose_interval)
        self.device = device
        self.dtype = dtype

        # User init
        self.weights_init = weights_init
        self.means_init = means_init
        self.variances_init = variances_init

        # sklearn-like fitted attributes
        self.weights_: Optional[torch.Tensor] = None
        self.means_: Optional[torch.Tensor] = None
        self.variances_: Optional[torch.Tensor] = None
        self.resp_: Optional[torch.Tensor] = None

        self.converged_: bool = False
        self.n_iter_: int = 0
        self.log_likelihood_: float = float("-inf")
        self.bic_: float = float("-inf")
        self.trace_: Tuple[float, ...] = ()
        self.log_likelihoods_: Tuple[float, ...] = ()
        self.summary_: Optional[GMMFit] = None

        self._params: Optional[GMMParams] = None

    def _prepare(self, X) -> Tuple[torch.Tensor, torch.Tensor]:
        """(zero-filled working copy, observation mask)."""
        X = as_data_tensor(X, self.device, self.dtype)
        mask = observed_mask(X, self.missing)
        check_observed_finite(X, mask)
        return zero_missing(X, mask), mask

    def _as_param(self, value, like: torch.Tensor) -> torch.Tensor:
        return torch.as_tensor(value).to(device=like.device, dtype=like.dtype)

    def _initialize(self, X: torch.Tensor, mask: torch.Tensor) -> GMMParams:
        N, D = X.shape
        K = self.n_components
        p = default_params(X, mask, K, self.min_variance)

        # 1) means: user-supplied, else the configured strategy (grid is the default above)
        if self.means_init is not None:
            means = self._as_param(self.means_init, X)
            if means.shape != (K, D):
                raise ValueError(f"means_init must have shape (K,D) = {(K, D)}, got {tuple(means.shape)}")
            p.means = init_representatives(X, K, GivenInit(means))
        else:
            strategy = resolve_strategy(self.init_params)
            if not isinstance(strategy, GridInit):
                gen = check_generator(self.random_state)
                p.means = init_representatives(X, K, strategy, mask=mask, generator=gen)

        # 2) weights
        if self.weights_init is not None:
            weights = self._as_param(self.weights_init, X)
            if weights.shape != (K,):
                raise ValueError(f"weights_init must have shape (K,) = {(K,)}, got {tuple(weights.shape)}")
            if bool((weights < 0).any()) or not float(weights.sum()) > 0:
                raise ValueError("weights_init must be non-negative with a positive sum")
            p.weights = weights / weights.sum()

        # 3) variances
        if self.variances_init is not None:
            variances = self._as_param(self.variances_init, X)
            if variances.shape != (K,):
                raise ValueError(f"variances_init must have shape (K,) = {(K,)}, got {tuple(variances.shape)}")
            p.variances = variances.clamp_min(self.min_variance)

        return p

    def _print_progress(self, n_iter: int, change: float, log_likelihood: float) -> None:
        if self.verbose_interval and n_iter % self.verbose_interval == 0:
            print(f"  Iteration {n_iter}\t resp change {change:.6f}\t log-likelihood {log_likelihood:.6f}")

    # -----------------------
    # Public API
    # -----------------------

    @torch.no_grad()
    def fit(self, X) -> "MaskedGaussianMixture":
        X, mask = self._prepare(X)
        N, D = X.shape
        K = self.n_components

        p = self._initialize(X, mask)

        prev_resp = torch.zeros((N, K), device=X.device, dtype=X.dtype)
        prev_ll = float("-inf")
        converged = False
        n_iter = 0
        trace = []
        history = []

        while True:
            n_iter += 1
            ll_t, resp = expectation_step(X, mask, p)
            ll = float(ll_t.item())

            change = float(torch.linalg.norm(resp - prev_resp).item())
            trace.append(change)
            history.append(ll)

            p = maximization_step(X, mask, resp, p, self.min_variance)
            self._print_progress(n_iter, change, ll)

            if ll - prev_ll <= self.tol * abs(ll):
                converged = True
                break
            if self.max_iter is not None and n_iter >= self.max_iter:
                break
            prev_ll = ll
            prev_resp = resp

        score = bic(ll, N, D, K)
        if self.verbose_interval:
            state = "converged" if converged else "did not converge"
            print(f"EM {state} after {n_iter} iterations: log-likelihood {ll:.6f}, BIC {score:.6f}")
        if not converged:
            warnings.warn(
                f"EM did not converge after max_iter={self.max_iter} iterations; "
                "increase max_iter or tol, or pass max_iter=None.",
                ConvergenceWarning,
            )

        self._params = p
        # summary owns its tensors; the trailing-underscore attributes stay live model state
        self.summary_ = GMMFit(
            resp=resp.clone(),
            weights=p.weights.clone(),
            means=p.means.clone(),
            variances=p.variances.clone(),
            trace=tuple(trace),
            log_likelihood=ll,
            bic=score,
            n_iter=n_iter,
            converged=converged,
            log_likelihoods=tuple(history),
        )

        self.weights_ = p.weights
        self.means_ = p.means
        self.variances_ = p.variances
        self.resp_ = resp
        self.log_likelihood_ = ll
        self.bic_ = score
        self.trace_ = tuple(trace)
        self.log_likelihoods_ = tuple(history)
        self.n_iter_ = n_iter
        self.converged_ = converged

        return self

    def _check_fitted(self) -> GMMParams:
        if self._params is None:
            raise RuntimeError("Model is not fitted yet.")
        return self._params

    @torch.no_grad()
    def predict_proba(self, X) -> torch.Tensor:
        """Posterior responsibilities (N,K) under the fitted parameters."""
        p = self._check_fitted()
        X, mask = self._prepare(X)
        _, resp = expectation_step(X, mask, p)
        return resp

    @torch.no_grad()
    def predict(self, X) -> torch.Tensor:
        return torch.argmax(self.predict_proba(X), dim=1)

    @torch.no_grad()
    def score(self, X) -> float:
        """Total masked log-likelihood of X under the fitted parameters."""
        p = self._check_fitted()
        X, mask = self._prepare(X)
        ll, _ = expectation_step(X, mask, p)
        return float(ll.item())
