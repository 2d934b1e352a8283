"""Fixtures for k-means tests."""

import numpy as np
import pytest


@pytest.fixture
def separated_pairs():
    """Two tight pairs of points far apart, with centroids near each pair."""
    centroids = [[0, 0], [10, 10]]
    instances = [[0, 1], [1, 0], [9, 10], [10, 9]]
    return centroids, instances


@pytest.fixture
def blobs():
    """Three unit-variance 2D blobs of 20 points at (0,0), (10,10) and (20,0), in that order."""
    rng = np.random.default_rng(7)
    centers = np.array([[0.0, 0.0], [10.0, 10.0], [20.0, 0.0]])
    return np.concatenate([c + rng.standard_normal((20, 2)) for c in centers])


@pytest.fixture
def blobs_4d():
    """Same layout as blobs, in four dimensions."""
    rng = np.random.default_rng(11)
    centers = np.array([[0.0] * 4, [10.0] * 4, [20.0, 0.0, 20.0, 0.0]])
    return np.concatenate([c + rng.standard_normal((20, 4)) for c in centers])


@pytest.fixture
def stacked_start():
    """Initial centroids that all sit on the first instance, so every one but centroid 0 starts orphaned."""
    def make(instances, k=3):
        return np.repeat(np.asarray(instances)[:1], k, axis=0)
    return make
