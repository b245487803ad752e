"""
Spatial Clustering Module for Crime Incident Analysis

K-means clustering of incident locations with deterministic seeding and a
choice of great-circle (haversine) or euclidean distance.

Usage:
    from clustering import cluster_records, describe_clusters
    assignment = cluster_records(record_set, n_clusters=3)
    print(assignment.cluster_sizes(), assignment.converged)
"""

from .cluster_analysis import (
    ClusterAssignment,
    SpatialClusterer,
    cluster_records,
    find_optimal_k,
    describe_clusters,
    export_cluster_results,
    cluster_frame,
)

__all__ = [
    "ClusterAssignment",
    "SpatialClusterer",
    "cluster_records",
    "find_optimal_k",
    "describe_clusters",
    "export_cluster_results",
    "cluster_frame",
]
