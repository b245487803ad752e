import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.cluster import kmeans_plusplus
from sklearn.metrics import silhouette_score
from sklearn.metrics.pairwise import euclidean_distances, haversine_distances

from config import CLUSTERING_CONFIG, FILE_PATTERNS, OUTPUT_DIR
from errors import InvalidConfigurationError
from src.data.records import RecordSet

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0088
METRICS = ("haversine", "euclidean")
SEEDINGS = ("kmeans++", "first")
SILHOUETTE_SAMPLE_SIZE = 10000


@dataclass
class ClusterAssignment:
    """Result of one k-means run over a record set"""
    labels: Dict[str, int]
    label_array: np.ndarray
    centroids: np.ndarray
    n_clusters: int
    metric: str
    seeding: str
    n_iter: int
    converged: bool
    inertia: float
    silhouette: Optional[float] = None

    def cluster_of(self, incident_id: str) -> int:
        return self.labels[incident_id]

    def members(self, cluster: int) -> List[str]:
        return [incident_id for incident_id, label in self.labels.items() if label == cluster]

    def cluster_sizes(self) -> Dict[int, int]:
        """Member count per cluster, including empty clusters"""
        counts = np.bincount(self.label_array, minlength=self.n_clusters)
        return {i: int(c) for i, c in enumerate(counts)}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": "kmeans",
            "n_clusters": self.n_clusters,
            "metric": self.metric,
            "seeding": self.seeding,
            "n_iter": self.n_iter,
            "converged": self.converged,
            "inertia": self.inertia,
            "silhouette_score": self.silhouette,
            "cluster_centers": self.centroids.tolist(),
            "cluster_sizes": {str(k): v for k, v in self.cluster_sizes().items()},
            "cluster_labels": dict(self.labels),
        }


class SpatialClusterer:
    """K-means over incident coordinates (latitude, longitude in degrees).

    Seeding is either k-means++ with a fixed random state or the first K
    distinct points in record order, so repeated runs on the same input give
    identical assignments. Distances are great-circle (haversine, in km) or
    plain euclidean on the degree values.
    """

    def __init__(self, n_clusters: int, metric: str = None, seeding: str = None,
                 max_iter: int = None, random_state: int = None):
        self.n_clusters = n_clusters
        self.metric = metric or CLUSTERING_CONFIG["metric"]
        self.seeding = seeding or CLUSTERING_CONFIG["seeding"]
        self.max_iter = max_iter if max_iter is not None else CLUSTERING_CONFIG["max_iter"]
        self.random_state = random_state if random_state is not None else CLUSTERING_CONFIG["random_state"]

        if self.metric not in METRICS:
            raise InvalidConfigurationError(f"Unknown distance metric '{self.metric}', expected one of {METRICS}")
        if self.seeding not in SEEDINGS:
            raise InvalidConfigurationError(f"Unknown seeding policy '{self.seeding}', expected one of {SEEDINGS}")
        if not isinstance(self.n_clusters, (int, np.integer)) or self.n_clusters < 1:
            raise InvalidConfigurationError(f"n_clusters must be a positive integer, got {self.n_clusters!r}")
        if self.max_iter < 1:
            raise InvalidConfigurationError(f"max_iter must be at least 1, got {self.max_iter}")

    def pairwise_distances(self, points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        if self.metric == "haversine":
            return haversine_distances(np.radians(points), np.radians(centroids)) * EARTH_RADIUS_KM
        return euclidean_distances(points, centroids)

    def initial_centroids(self, points: np.ndarray) -> np.ndarray:
        """Pick K distinct seed points"""
        _, first_idx = np.unique(points, axis=0, return_index=True)
        distinct = points[np.sort(first_idx)]

        if self.seeding == "first":
            return distinct[:self.n_clusters].copy()

        centers, _ = kmeans_plusplus(distinct, n_clusters=self.n_clusters, random_state=self.random_state)
        return centers

    def _update_centroids(self, points: np.ndarray, labels: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        updated = centroids.copy()
        for k in range(self.n_clusters):
            assigned = points[labels == k]
            # empty clusters keep their previous centroid
            if len(assigned):
                updated[k] = assigned.mean(axis=0)
        return updated

    def fit(self, record_set: RecordSet) -> ClusterAssignment:
        """Run k-means until assignments stop changing or max_iter is reached"""
        points = record_set.coordinates()
        n_distinct = len(np.unique(points, axis=0)) if len(points) else 0
        if self.n_clusters > n_distinct:
            raise InvalidConfigurationError(
                f"n_clusters={self.n_clusters} exceeds the {n_distinct} distinct incident locations"
            )

        centroids = self.initial_centroids(points)
        labels = None
        converged = False
        n_iter = 0

        for n_iter in range(1, self.max_iter + 1):
            new_labels = self.pairwise_distances(points, centroids).argmin(axis=1)
            if labels is not None and np.array_equal(new_labels, labels):
                converged = True
                break
            labels = new_labels
            centroids = self._update_centroids(points, labels, centroids)

        if not converged:
            logger.warning(f"K-means did not converge within {self.max_iter} iterations (k={self.n_clusters})")

        distances = self.pairwise_distances(points, centroids)
        inertia = float(np.sum(distances[np.arange(len(points)), labels] ** 2))

        assignment = ClusterAssignment(
            labels={incident_id: int(label) for incident_id, label in zip(record_set.ids(), labels)},
            label_array=labels.astype(int),
            centroids=centroids,
            n_clusters=self.n_clusters,
            metric=self.metric,
            seeding=self.seeding,
            n_iter=n_iter,
            converged=converged,
            inertia=inertia,
            silhouette=self._silhouette(points, labels),
        )
        logger.info(
            f"K-means k={self.n_clusters} ({self.metric}, {self.seeding}) finished after {n_iter} "
            f"iterations, converged={converged}, inertia={inertia:.4f}"
        )
        return assignment

    def _silhouette(self, points: np.ndarray, labels: np.ndarray) -> Optional[float]:
        n_labels = len(np.unique(labels))
        if n_labels < 2 or n_labels > len(points) - 1:
            return None

        if self.metric == "haversine":
            X, metric = np.radians(points), "haversine"
        else:
            X, metric = points, "euclidean"

        sample_size = SILHOUETTE_SAMPLE_SIZE if len(points) > SILHOUETTE_SAMPLE_SIZE else None
        return float(silhouette_score(X, labels, metric=metric, sample_size=sample_size,
                                      random_state=self.random_state))


def cluster_records(record_set: RecordSet, n_clusters: int, **options) -> ClusterAssignment:
    """Cluster incident locations into n_clusters groups"""
    return SpatialClusterer(n_clusters, **options).fit(record_set)


def find_optimal_k(record_set: RecordSet, max_clusters: int = None, **options) -> Dict[str, Any]:
    """Find a reasonable K using the elbow method and silhouette analysis"""
    if max_clusters is None:
        max_clusters = CLUSTERING_CONFIG["max_clusters_search"]

    points = record_set.coordinates()
    n_distinct = len(np.unique(points, axis=0)) if len(points) else 0
    upper = min(max_clusters, n_distinct - 1)
    if upper < 2:
        raise InvalidConfigurationError(
            f"Need at least 3 distinct locations to search for K, got {n_distinct}"
        )

    inertias = []
    silhouette_scores = []
    k_range = range(2, upper + 1)

    for k in k_range:
        assignment = SpatialClusterer(k, **options).fit(record_set)
        inertias.append(assignment.inertia)
        silhouette_scores.append(assignment.silhouette if assignment.silhouette is not None else -1.0)

    elbow_k = _find_elbow_point(k_range, inertias)
    best_silhouette_k = k_range[int(np.argmax(silhouette_scores))]

    return {
        "k_range": list(k_range),
        "inertias": inertias,
        "silhouette_scores": silhouette_scores,
        "elbow_k": elbow_k,
        "best_silhouette_k": best_silhouette_k,
        "recommended_k": best_silhouette_k  # Prefer silhouette score
    }


def _find_elbow_point(k_range: range, inertias: List[float]) -> int:
    """Find elbow point as the maximum second difference of the inertia curve"""
    if len(inertias) < 3:
        return k_range[0]

    second_derivative = []
    for i in range(1, len(inertias) - 1):
        second_derivative.append(inertias[i+1] - 2*inertias[i] + inertias[i-1])

    elbow_idx = int(np.argmax(second_derivative)) + 1
    return k_range[elbow_idx]


def describe_clusters(record_set: RecordSet, assignment: ClusterAssignment,
                      top_categories: int = None) -> Dict[str, Any]:
    """Summarise size, location and crime mix of each cluster"""
    if top_categories is None:
        top_categories = CLUSTERING_CONFIG["top_categories"]

    df = record_set.to_frame()
    df["cluster"] = assignment.label_array
    total = len(df)

    description = {}
    for cluster_id in range(assignment.n_clusters):
        cluster_data = df[df["cluster"] == cluster_id]
        centroid = assignment.centroids[cluster_id]
        stats = {
            "size": int(len(cluster_data)),
            "percentage": len(cluster_data) / total * 100 if total else 0.0,
            "centroid": {"latitude": float(centroid[0]), "longitude": float(centroid[1])},
            "top_categories": {},
            "arrest_rate": 0.0,
        }
        if len(cluster_data):
            stats["top_categories"] = {
                str(k): int(v) for k, v in cluster_data["category"].value_counts().head(top_categories).items()
            }
            stats["arrest_rate"] = float(cluster_data["arrest"].astype(bool).mean())
        description[f"cluster_{cluster_id}"] = stats

    return description


def export_cluster_results(assignment: ClusterAssignment, description: Dict[str, Any] = None,
                           filepath: Path = None) -> str:
    """Export clustering results to JSON"""
    if filepath is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filepath = OUTPUT_DIR / FILE_PATTERNS["cluster_results"].format(method="kmeans", timestamp=timestamp)

    export_data = {
        "clustering_results": assignment.to_dict(),
        "cluster_analysis": description or {},
        "timestamp": datetime.now().isoformat(),
    }

    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2)

    logger.info(f"Cluster results exported to {filepath}")
    return str(filepath)


def cluster_frame(record_set: RecordSet, assignment: ClusterAssignment) -> pd.DataFrame:
    """Record DataFrame with a cluster column, for plotting"""
    df = record_set.to_frame()
    df["cluster"] = assignment.label_array
    return df
