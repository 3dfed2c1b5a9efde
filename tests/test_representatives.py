# tests/test_representatives.py
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
import torch
import pytest

from masked_gmm import (
    GivenInit,
    GridInit,
    RandomInit,
    ShuffleInit,
    check_generator,
    init_representatives,
    observed_mask,
    resolve_strategy,
    MissingSentinel,
)


def _data(seed=0, n_samples=30, n_features=3):
    rng = np.random.RandomState(seed)
    return torch.from_numpy(rng.rand(n_samples, n_features) * 10.0 - 5.0)


def test_grid_is_evenly_spaced_between_observed_extremes():
    X = torch.tensor([[0.0, 10.0], [4.0, -2.0], [2.0, 6.0]], dtype=torch.float64)
    reps = init_representatives(X, 3, "grid")

    expected = torch.tensor([[0.0, -2.0], [2.0, 4.0], [4.0, 10.0]], dtype=torch.float64)
    assert torch.allclose(reps, expected)


def test_grid_single_representative_is_the_minimum():
    X = _data()
    reps = init_representatives(X, 1, GridInit())
    assert torch.allclose(reps[0], X.min(dim=0).values)


def test_grid_ignores_missing_entries():
    X = torch.tensor([[0.0, 3.0], [5.0, 0.0], [1.0, 7.0]], dtype=torch.float64)
    mask = observed_mask(X, MissingSentinel(0.0))
    reps = init_representatives(X, 2, "grid", mask=mask)

    expected = torch.tensor([[1.0, 3.0], [5.0, 7.0]], dtype=torch.float64)
    assert torch.allclose(reps, expected)


def test_random_stays_inside_ranges():
    X = _data(seed=1)
    reps = init_representatives(X, 50, "random", generator=check_generator(11))

    lo, hi = X.min(dim=0).values, X.max(dim=0).values
    assert reps.shape == (50, 3)
    assert (reps >= lo).all() and (reps <= hi).all()


def test_random_is_reproducible_with_a_seed():
    X = _data(seed=2)
    a = init_representatives(X, 4, RandomInit(), generator=check_generator(5))
    b = init_representatives(X, 4, RandomInit(), generator=check_generator(5))
    c = init_representatives(X, 4, RandomInit(), generator=check_generator(6))

    assert torch.equal(a, b)
    assert not torch.equal(a, c)


def test_shuffle_picks_distinct_rows():
    X = _data(seed=3)
    reps = init_representatives(X, 5, ShuffleInit(), generator=check_generator(0))

    matches = [int(torch.nonzero((X == r).all(dim=1)).flatten()[0]) for r in reps]
    assert len(set(matches)) == 5


def test_shuffle_needs_enough_rows():
    X = _data(n_samples=3)
    with pytest.raises(ValueError):
        init_representatives(X, 4, "shuffle", generator=check_generator(0))


def test_given_is_returned_verbatim():
    X = _data()
    seeds = np.arange(6, dtype=np.float64).reshape(2, 3)
    reps = init_representatives(X, 2, "given", given=seeds)
    assert torch.equal(reps, torch.from_numpy(seeds))

    reps_variant = init_representatives(X, 2, GivenInit(torch.from_numpy(seeds)))
    assert torch.equal(reps_variant, reps)


def test_given_without_matrix_is_a_configuration_error():
    with pytest.raises(ValueError, match="given"):
        init_representatives(_data(), 2, "given")


def test_given_with_wrong_shape_is_a_configuration_error():
    with pytest.raises(ValueError, match="shape"):
        init_representatives(_data(), 2, "given", given=np.zeros((3, 3)))


@pytest.mark.parametrize("name", ["kmeans", "Grid", "", None])
def test_unknown_strategy(name):
    with pytest.raises(ValueError, match="Unknown init strategy"):
        resolve_strategy(name)


def test_resolve_strategy_names():
    assert isinstance(resolve_strategy("random"), RandomInit)
    assert isinstance(resolve_strategy("grid"), GridInit)
    assert isinstance(resolve_strategy("shuffle"), ShuffleInit)
    assert isinstance(resolve_strategy("given", given=[[1.0]]), GivenInit)
    variant = ShuffleInit()
    assert resolve_strategy(variant) is variant
