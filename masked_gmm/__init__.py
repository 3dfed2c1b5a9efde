"""Spherical Gaussian mixture EM for partially observed data, and imputation built on it."""

from ._imputer import GaussianMixtureImputer, ImputeResult, fill_missing, impute
from ._kmeans import ClusterResult, kmeans, kmedoids
from ._masked_gmm_em import (
    GMMFit,
    GMMParams,
    MaskedGaussianMixture,
    bic,
    default_params,
    expectation_step,
    maximization_step,
)
from ._missing import MissingNaN, MissingSentinel, observed_mask
from ._primitives import cosine_distance, log_gaussian, logsumexp, rmse, squared_distance
from ._representatives import (
    GivenInit,
    GridInit,
    RandomInit,
    ShuffleInit,
    check_generator,
    init_representatives,
    resolve_strategy,
)

__all__ = [
    "ClusterResult",
    "GMMFit",
    "GMMParams",
    "GaussianMixtureImputer",
    "GivenInit",
    "GridInit",
    "ImputeResult",
    "MaskedGaussianMixture",
    "MissingNaN",
    "MissingSentinel",
    "RandomInit",
    "ShuffleInit",
    "bic",
    "check_generator",
    "cosine_distance",
    "default_params",
    "expectation_step",
    "fill_missing",
    "impute",
    "init_representatives",
    "kmeans",
    "kmedoids",
    "log_gaussian",
    "logsumexp",
    "maximization_step",
    "observed_mask",
    "resolve_strategy",
    "rmse",
    "squared_distance",
]
