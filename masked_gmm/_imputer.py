# masked_gmm/_imputer.py
"""Model-based imputation (collaborative filtering) on top of MaskedGaussianMixture.

A missing cell X[n, d] is replaced by sum_k resp[n, k] * mu[k, d], the
posterior expectation of dimension d for row n. Observed cells are copied
through untouched. No iteration happens here; all of it is in the EM fit.
"""

from __future__ import annotations

from dataclasses import dataclass

import torch

from ._masked_gmm_em import GMMFit, MaskedGaussianMixture, expectation_step
from ._missing import as_data_tensor, observed_mask


@dataclass(frozen=True, eq=False)
class ImputeResult:
    filled: torch.Tensor
    n_filled: int
    log_likelihood: float
    bic: float
    fit: GMMFit


def fill_missing(
    X: torch.Tensor,
    mask: torch.Tensor,
    means: torch.Tensor,
    resp: torch.Tensor,
) -> torch.Tensor:
    """Copy of X (N,D) with missing cells set to (resp @ means)[n, d]."""
    expected = resp @ means  # (N,D)
    return torch.where(mask, X, expected)


class GaussianMixtureImputer(MaskedGaussianMixture):
    """Fills missing entries from a spherical GMM fitted on the observed ones.

    Takes the same options as MaskedGaussianMixture. NumPy input gives NumPy
    output, tensor input gives tensor output.
    """

    @torch.no_grad()
    def fit_transform(self, X):
        X_t = as_data_tensor(X, self.device, self.dtype)
        mask = observed_mask(X_t, self.missing)
        self.fit(X_t)

        filled = fill_missing(X_t, mask, self.means_, self.resp_)
        self.n_filled_ = int(mask.numel() - int(mask.sum().item()))
        self.result_ = ImputeResult(
            filled=filled,
            n_filled=self.n_filled_,
            log_likelihood=self.log_likelihood_,
            bic=self.bic_,
            fit=self.summary_,
        )
        if isinstance(X, torch.Tensor):
            return filled
        return filled.cpu().numpy()

    @torch.no_grad()
    def transform(self, X):
        """Fill a new matrix with posteriors recomputed under the fitted model."""
        p = self._check_fitted()
        X_t = as_data_tensor(X, self.device, self.dtype)
        X_w, mask = self._prepare(X_t)
        _, resp = expectation_step(X_w, mask, p)
        filled = fill_missing(X_t, mask, p.means, resp)
        if isinstance(X, torch.Tensor):
            return filled
        return filled.cpu().numpy()


def impute(X, n_components: int, **options) -> ImputeResult:
    """Fit a MaskedGaussianMixture on X and fill its missing entries."""
    imputer = GaussianMixtureImputer(n_components, **options)
    imputer.fit_transform(X)
    return imputer.result_
