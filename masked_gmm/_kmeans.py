# masked_gmm/_kmeans.py
"""K-Means and K-Medoids on fully observed data.

Both start from init_representatives (same strategies as the EM means) and
alternate assignment / re-estimation until the assignment stops changing.
"""

from __future__ import annotations

from dataclasses import dataclass

import torch

from ._missing import as_data_tensor
from ._primitives import cosine_distance, squared_distance
from ._representatives import check_generator, init_representatives


@dataclass(frozen=True, eq=False)
class ClusterResult:
    representatives: torch.Tensor  # (K, D)
    labels: torch.Tensor           # (N,)
    cost: float
    n_iter: int


def _pairwise(X: torch.Tensor, reps: torch.Tensor, metric: str) -> torch.Tensor:
    """(N, K) dissimilarities between rows of X and representatives."""
    if metric == "euclidean":
        return squared_distance(X.unsqueeze(1), reps.unsqueeze(0))
    if metric == "cosine":
        return 1.0 - cosine_distance(X.unsqueeze(1), reps.unsqueeze(0))
    raise ValueError(f"Unknown metric={metric!r}; expected 'euclidean' or 'cosine'")


def _update_centroids(X: torch.Tensor, labels: torch.Tensor, centroids: torch.Tensor) -> torch.Tensor:
    N, D = X.shape
    K = centroids.shape[0]
    counts = torch.zeros((K,), device=X.device, dtype=X.dtype)
    sums = torch.zeros((K, D), device=X.device, dtype=X.dtype)

    counts.scatter_add_(0, labels, torch.ones((N,), device=X.device, dtype=X.dtype))
    sums.scatter_add_(0, labels.unsqueeze(1).expand(N, D), X)

    # empty clusters keep their previous centroid
    filled = (counts > 0).unsqueeze(1)
    return torch.where(filled, sums / counts.clamp_min(1.0).unsqueeze(1), centroids)


def _update_medoids(X: torch.Tensor, labels: torch.Tensor, medoids: torch.Tensor, metric: str) -> torch.Tensor:
    out = medoids.clone()
    for k in range(medoids.shape[0]):
        members = X[labels == k]
        if members.shape[0] == 0:
            continue
        within = _pairwise(members, members, metric).sum(dim=1)
        out[k] = members[torch.argmin(within)]
    return out


def _run(X, n_clusters, init, given, random_state, max_iter, metric, update) -> ClusterResult:
    X = as_data_tensor(X)
    if max_iter < 1:
        raise ValueError(f"max_iter must be >= 1, got {max_iter}")
    gen = check_generator(random_state)
    reps = init_representatives(X, n_clusters, init, given=given, generator=gen)

    labels = None
    n_iter = 0
    for n_iter in range(1, max_iter + 1):
        new_labels = torch.argmin(_pairwise(X, reps, metric), dim=1)
        if labels is not None and torch.equal(new_labels, labels):
            break
        labels = new_labels
        reps = update(X, labels, reps)

    dist = _pairwise(X, reps, metric)
    labels = torch.argmin(dist, dim=1)
    cost = float(dist.min(dim=1).values.sum().item())
    return ClusterResult(representatives=reps, labels=labels, cost=cost, n_iter=n_iter)


@torch.no_grad()
def kmeans(
    X,
    n_clusters: int,
    init="grid",
    *,
    given=None,
    random_state=None,
    max_iter: int = 300,
) -> ClusterResult:
    """Lloyd iterations on squared Euclidean distance; cost is the summed squared distance."""
    return _run(X, n_clusters, init, given, random_state, max_iter, "euclidean", _update_centroids)


@torch.no_grad()
def kmedoids(
    X,
    n_clusters: int,
    init="grid",
    *,
    metric: str = "euclidean",
    given=None,
    random_state=None,
    max_iter: int = 300,
) -> ClusterResult:
    """Each representative becomes the member with the least total in-cluster dissimilarity.

    metric='cosine' uses 1 - cosine_distance, so rows must have non-zero norm.
    """
    if metric not in ("euclidean", "cosine"):
        raise ValueError(f"Unknown metric={metric!r}; expected 'euclidean' or 'cosine'")

    def update(X, labels, reps):
        return _update_medoids(X, labels, reps, metric)

    return _run(X, n_clusters, init, given, random_state, max_iter, metric, update)
