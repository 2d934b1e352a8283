import logging
from dataclasses import dataclass

import numpy as np
import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


class KMeansError(ValueError):
    """Base class for k-means usage errors."""


class DimensionMismatchError(KMeansError):
    """Two points of different dimensionality were compared."""

    def __init__(self, expected, actual, message=None):
        self.expected = expected
        self.actual = actual
        if message is None:
            message = f"Dimension mismatch: expected {expected}, got {actual}"
        super().__init__(message)


class EmptyInputError(KMeansError):
    """Centroid set or instance set is empty."""


class InsufficientInstancesError(KMeansError):
    """Not enough (distinct) instances to give every centroid a point."""


@dataclass(frozen=True)
class KMeansResult:
    """
    Outcome of one clustering run.

    Attributes:
        centroids (np.ndarray): Final centroids, shape (k, d)
        assignment (np.ndarray): Cluster index of every instance, shape (n,)
        distortions (tuple): Distortion after each completed iteration

    The arrays are read-only copies, so later use of the KMeans object that
    produced the result cannot change it.
    """
    centroids: np.ndarray
    assignment: np.ndarray
    distortions: tuple

    @property
    def n_iter(self):
        return len(self.distortions)

    @property
    def distortion(self):
        return self.distortions[-1]

    @property
    def cluster_sizes(self):
        return np.bincount(self.assignment, minlength=len(self.centroids))


def squared_distance(a, b):
    """
    Squared Euclidean distance over the last axis.

    Broadcasts, so passing a (n, d) matrix and a (d,) point gives n distances.
    The square root is never taken; ordering is all that nearest and worst
    searches need.

    Raises:
        DimensionMismatchError: if the trailing dimensions differ
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.ndim == 0 or b.ndim == 0:
        raise DimensionMismatchError(
            a.ndim, b.ndim, "Points must be sequences of coordinates, not scalars"
        )
    dim_a = a.shape[-1]
    dim_b = b.shape[-1]
    if dim_a != dim_b:
        raise DimensionMismatchError(
            dim_a, dim_b, f"Cannot compare points of dimension {dim_a} and {dim_b}"
        )
    return np.sum((a - b)**2, axis=-1)


def nearest_centroid(centroids, point):
    """
    Index of the centroid closest to point.

    Single point form of assign_clusters, used by KMeans.predict for one point.

    Equal distances keep the lowest index (np.argmin returns the first minimum).
    """
    if len(centroids) == 0:
        raise EmptyInputError("Cannot search for the nearest centroid of an empty set")
    return int(np.argmin(squared_distance(centroids, point)))


def assign_clusters(centroids, instances):
    """
    Assignment step: nearest centroid for every instance.

    Args:
        centroids (np.ndarray): shape (k, d)
        instances (np.ndarray): shape (n, d)

    Returns:
        np.ndarray: Cluster labels, shape (n,), values in [0, k-1]
    """
    # Distance matrix: rows=instances, cols=centroids
    dists = np.zeros((len(instances), len(centroids)))
    for i, centroid in enumerate(centroids):
        dists[:, i] = squared_distance(instances, centroid)
    return np.argmin(dists, axis=1)


def find_orphan(assignment, n_clusters):
    """Lowest centroid index with no instance assigned, or None."""
    counts = np.bincount(assignment, minlength=n_clusters)
    orphans = np.flatnonzero(counts == 0)
    if len(orphans) == 0:
        return None
    return int(orphans[0])


def find_worst_point(centroids, instances, assignment):
    """
    Index of the instance farthest from its assigned centroid.

    The first instance wins when several share the maximum distance.
    """
    if len(instances) == 0:
        raise EmptyInputError("Cannot search for the worst point of an empty instance set")
    dists = squared_distance(instances, centroids[assignment])
    return int(np.argmax(dists))


def calculate_centroids(instances, assignment, n_clusters):
    """
    Update step: each centroid becomes the mean of its assigned instances.

    Every cluster must hold at least one instance (orphan repair runs first).
    """
    centroids = np.zeros((n_clusters, instances.shape[1]))
    for i in range(n_clusters):
        centroids[i] = np.mean(instances[assignment == i], axis=0)
    return centroids


def calculate_distortion(centroids, instances, assignment):
    """Sum of squared distances between every instance and its centroid."""
    return float(np.sum(squared_distance(instances, centroids[assignment])))


def has_converged(distortions, threshold):
    """
    Convergence test on the relative change of the last two distortions.

    A zero previous distortion counts as converged instead of dividing by zero.
    """
    if len(distortions) < 2:
        return False
    previous, last = distortions[-2], distortions[-1]
    if previous == 0:
        return True
    return abs(last - previous) / previous <= threshold


def _read_only(array):
    array = array.copy()
    array.setflags(write=False)
    return array


def _as_points(points, name):
    """Copy points into a float (m, d) array, checking every row has the same d."""
    if len(points) == 0:
        raise EmptyInputError(f"{name} must contain at least one point")
    rows = [np.asarray(row, dtype=float) for row in points]
    dim = rows[0].shape
    for i, row in enumerate(rows):
        if row.ndim != 1:
            raise ValueError(f"{name}[{i}] is not a flat sequence of numbers")
        if row.shape != dim:
            raise DimensionMismatchError(
                dim[0], row.shape[0],
                f"{name}[{i}] has dimension {row.shape[0]} but {name}[0] has dimension {dim[0]}"
            )
    return np.array(rows)


class KMeans:
    """
    K-Means clustering from caller supplied initial centroids.

    Alternates until the relative change in distortion drops to the threshold:
    1. Assigning points to nearest centroid
    2. Repairing orphan centroids (centroids with no points)
    3. Updating centroids as cluster means
    """

    def __init__(self, threshold=0.0001, max_iter=None):
        """
        Args:
            threshold (float): Convergence threshold - algorithm stops when the
                             relative change in distortion is at most this value
            max_iter (int): Maximum number of iterations, None for no limit
        """
        if threshold < 0:
            raise ValueError(f"threshold must be non-negative, got {threshold}")
        if max_iter is not None and max_iter < 1:
            raise ValueError(f"max_iter must be at least 1, got {max_iter}")
        self.threshold = threshold
        self.max_iter = max_iter
        self.centroids = None
        self.labels = None
        self.distortions = None

    def _repair_orphans(self, centroids, instances, labels):
        """
        Orphan repair: move the lowest-indexed orphan onto the worst-fit instance
        and reassign, until every centroid owns at least one instance.

        The relocated centroid sits exactly on an instance that is at positive
        distance from every other centroid, so it always captures that instance.
        A worst distance of zero means all instances already sit on centroids
        and no relocation can help.
        """
        orphan = find_orphan(labels, len(centroids))
        while orphan is not None:
            worst = find_worst_point(centroids, instances, labels)
            worst_dist = squared_distance(instances[worst], centroids[labels[worst]])
            if worst_dist == 0:
                raise InsufficientInstancesError(
                    f"Centroid {orphan} is orphaned and every instance already lies on "
                    f"its centroid; fewer distinct instances than {len(centroids)} clusters"
                )
            logger.debug(f"Relocating orphan centroid {orphan} to instance {worst} "
                         f"(squared distance {worst_dist:.6g})")
            centroids[orphan] = instances[worst]
            labels = assign_clusters(centroids, instances)
            orphan = find_orphan(labels, len(centroids))
        return labels

    def fit(self, x, centroids):
        """
        Fit K-Means model to data starting from the given centroids.

        Args:
            x (array-like): Instances, shape (n_samples, n_features)
            centroids (array-like): Initial centroids, shape (n_clusters, n_features)

        Returns:
            KMeansResult: final centroids, assignment and distortion trajectory

        Neither argument is modified; the run works on its own copies.
        """
        centroids = _as_points(centroids, "centroids")
        instances = _as_points(x, "instances")
        if centroids.shape[1] != instances.shape[1]:
            raise DimensionMismatchError(
                centroids.shape[1], instances.shape[1],
                f"Centroids have dimension {centroids.shape[1]} but instances "
                f"have dimension {instances.shape[1]}"
            )
        if len(instances) < len(centroids):
            raise InsufficientInstancesError(
                f"{len(instances)} instances cannot fill {len(centroids)} clusters"
            )

        distortions = []
        iteration = 0
        while not has_converged(distortions, self.threshold):
            if self.max_iter is not None and iteration >= self.max_iter:
                logger.warning(f"Max iterations reached ({self.max_iter}) before convergence")
                break
            labels = assign_clusters(centroids, instances)
            labels = self._repair_orphans(centroids, instances, labels)
            centroids = calculate_centroids(instances, labels, len(centroids))
            distortions.append(calculate_distortion(centroids, instances, labels))
            iteration += 1
            logger.debug(f"Iteration {iteration}: distortion {distortions[-1]:.6g}")
        else:
            logger.info(f"K-means converged after {iteration} iterations")

        self.centroids = centroids
        self.labels = labels
        self.distortions = tuple(distortions)
        return KMeansResult(
            centroids=_read_only(centroids),
            assignment=_read_only(labels),
            distortions=self.distortions,
        )

    def predict(self, x):
        """
        Predict cluster labels for new data points.

        Args:
            x (array-like): New data points, shape (n_samples, n_features),
                            or a single point of shape (n_features,)

        Returns:
            np.ndarray: Predicted cluster labels, shape (n_samples,), or an int
                        for a single point
        """
        if self.centroids is None:
            raise RuntimeError("KMeans must be fitted before predict. Call fit() first.")
        if np.ndim(x) == 1:
            return nearest_centroid(self.centroids, x)
        return assign_clusters(self.centroids, _as_points(x, "instances"))

    def fit_predict(self, x, centroids):
        return self.fit(x, centroids).assignment


def cluster(centroids, instances, threshold, max_iter=None):
    """
    Cluster instances starting from centroids until the relative change in
    distortion is at most threshold.

    Returns:
        KMeansResult
    """
    return KMeans(threshold=threshold, max_iter=max_iter).fit(instances, centroids)


# Example usage and visualization
def test_kmeans():
    """Demonstrate K-Means and orphan repair on synthetic data"""
    np.random.seed(42)

    # Generate synthetic data with 3 clusters
    n_samples = 300
    cluster1 = np.random.randn(n_samples, 2) + np.array([2, 2])
    cluster2 = np.random.randn(n_samples, 2) + np.array([-2, -2])
    cluster3 = np.random.randn(n_samples, 2) + np.array([2, -2])
    X = np.vstack([cluster1, cluster2, cluster3])

    # Degenerate start: every centroid on the first point, so two are orphans
    initial = np.repeat(X[:1], 3, axis=0)
    result = cluster(initial, X, threshold=0.0001)
    print(f"K-means converged after {result.n_iter} iterations")
    print(f"  Final distortion: {result.distortion:.4f}")
    print(f"  Cluster sizes: {result.cluster_sizes.tolist()}")

    # Visualize Results
    plt.figure(figsize=(14, 4))
    plt.subplot(1, 3, 1)
    plt.scatter(X[:, 0], X[:, 1], alpha=0.6)
    plt.title('K-Means Data Visualization')
    plt.xlabel('Feature 1')
    plt.ylabel('Feature 2')

    plt.subplot(1, 3, 2)
    plt.scatter(X[:, 0], X[:, 1], c=result.assignment, cmap='viridis', alpha=0.6)
    plt.scatter(result.centroids[:, 0], result.centroids[:, 1],
                c='red', marker='X', s=200, edgecolors='black', linewidth=2)
    plt.title('K-Means Clustering Results')
    plt.xlabel('Feature 1')
    plt.ylabel('Feature 2')

    plt.subplot(1, 3, 3)
    plt.plot(range(1, result.n_iter + 1), result.distortions, 'bo-')
    plt.title('Distortion per Iteration')
    plt.xlabel('Iteration')
    plt.ylabel('Distortion')
    plt.tight_layout()
    plt.show()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    test_kmeans()
