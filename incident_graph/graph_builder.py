import json
import logging
from collections import defaultdict
from datetime import datetime
from itertools import combinations
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import networkx as nx
import numpy as np
from sklearn.neighbors import BallTree

from clustering.cluster_analysis import ClusterAssignment
from config import FILE_PATTERNS, GRAPH_CONFIG, OUTPUT_DIR
from errors import InvalidConfigurationError
from src.data.records import RecordSet

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371008.8
PREDICATES = ("same_day", "proximity", "category_window", "same_cluster")

Pair = Tuple[int, int, float]


class IncidentGraphBuilder:
    """Connect incidents that satisfy a pairwise adjacency predicate.

    Predicates:
        same_day: incidents on the same calendar date (weight 1).
        proximity: great-circle distance <= radius_m (weight = metres apart).
        category_window: same category and at most window_hours apart
            (weight = hours apart).
        same_cluster: same k-means cluster; needs a ClusterAssignment (weight 1).

    Nodes are incident ids. Every candidate pair is visited once with i < j,
    so the graph never gets self loops or parallel edges.
    """

    def __init__(self, predicate: str = None, radius_m: float = None, window_hours: float = None):
        self.predicate = predicate or GRAPH_CONFIG["predicate"]
        self.radius_m = radius_m if radius_m is not None else GRAPH_CONFIG["radius_m"]
        self.window_hours = window_hours if window_hours is not None else GRAPH_CONFIG["window_hours"]

        if self.predicate not in PREDICATES:
            raise InvalidConfigurationError(
                f"Unknown edge predicate '{self.predicate}', expected one of {PREDICATES}"
            )
        if self.predicate == "proximity" and self.radius_m <= 0:
            raise InvalidConfigurationError(f"radius_m must be positive, got {self.radius_m}")
        if self.predicate == "category_window" and self.window_hours < 0:
            raise InvalidConfigurationError(f"window_hours must be non-negative, got {self.window_hours}")

    def pairs(self, record_set: RecordSet, assignment: ClusterAssignment = None) -> Iterator[Pair]:
        """Yield (i, j, weight) record positions with i < j satisfying the predicate"""
        if self.predicate == "same_cluster" and assignment is None:
            raise InvalidConfigurationError("The same_cluster predicate needs a cluster assignment")

        if self.predicate == "same_day":
            return self._grouped_pairs([r.date for r in record_set])
        if self.predicate == "same_cluster":
            return self._grouped_pairs([assignment.cluster_of(r.incident_id) for r in record_set])
        if self.predicate == "proximity":
            return self._proximity_pairs(record_set)
        return self._category_window_pairs(record_set)

    def _grouped_pairs(self, keys: List[Any]) -> Iterator[Pair]:
        groups = defaultdict(list)
        for idx, key in enumerate(keys):
            groups[key].append(idx)
        limit = GRAPH_CONFIG["large_group_warning"]
        for key, members in groups.items():
            if len(members) > limit:
                logger.warning(
                    f"{self.predicate} group {key} has {len(members)} incidents; "
                    f"linking all {len(members) * (len(members) - 1) // 2} pairs"
                )
            for i, j in combinations(members, 2):
                yield i, j, 1.0

    def _proximity_pairs(self, record_set: RecordSet) -> Iterator[Pair]:
        if len(record_set) < 2:
            return
        coords_rad = np.radians(record_set.coordinates())
        tree = BallTree(coords_rad, metric="haversine")
        neighbors, distances = tree.query_radius(
            coords_rad, r=self.radius_m / EARTH_RADIUS_M, return_distance=True
        )
        for i, (idxs, dists) in enumerate(zip(neighbors, distances)):
            for j, dist in zip(idxs, dists):
                if i < j:
                    yield i, int(j), float(dist * EARTH_RADIUS_M)

    def _category_window_pairs(self, record_set: RecordSet) -> Iterator[Pair]:
        window_seconds = self.window_hours * 3600.0
        by_category = defaultdict(list)
        for idx, record in enumerate(record_set):
            by_category[record.category].append(idx)

        for members in by_category.values():
            ordered = sorted(members, key=lambda idx: record_set[idx].timestamp)
            for pos, a in enumerate(ordered):
                t_a = record_set[a].timestamp
                for b in ordered[pos + 1:]:
                    delta = (record_set[b].timestamp - t_a).total_seconds()
                    if delta > window_seconds:
                        break
                    yield min(a, b), max(a, b), delta / 3600.0

    def build(self, record_set: RecordSet, assignment: ClusterAssignment = None) -> nx.Graph:
        """Build the incident-level graph"""
        graph = nx.Graph(predicate=self.predicate)
        for record in record_set:
            attrs = {
                "category": record.category,
                "timestamp": record.timestamp,
                "latitude": record.latitude,
                "longitude": record.longitude,
                "arrest": record.arrest,
            }
            if assignment is not None:
                attrs["cluster"] = assignment.cluster_of(record.incident_id)
            graph.add_node(record.incident_id, **attrs)

        ids = record_set.ids()
        for i, j, weight in self.pairs(record_set, assignment):
            if ids[i] == ids[j]:
                continue
            graph.add_edge(ids[i], ids[j], relation=self.predicate, weight=weight)

        logger.info(
            f"Built {self.predicate} graph: {graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges"
        )
        return graph

    def build_cluster_graph(self, record_set: RecordSet, assignment: ClusterAssignment) -> nx.Graph:
        """Cluster-level graph; edge weight counts incident pairs linking two clusters"""
        if self.predicate == "same_cluster":
            raise InvalidConfigurationError("same_cluster cannot link different clusters")

        graph = nx.Graph(predicate=self.predicate)
        sizes = assignment.cluster_sizes()
        for cluster_id in range(assignment.n_clusters):
            lat, lon = assignment.centroids[cluster_id]
            graph.add_node(cluster_id, size=sizes[cluster_id], latitude=float(lat), longitude=float(lon))

        labels = assignment.label_array
        for i, j, _ in self.pairs(record_set, assignment):
            a, b = int(labels[i]), int(labels[j])
            if a == b:
                continue
            if graph.has_edge(a, b):
                graph[a][b]["weight"] += 1
            else:
                graph.add_edge(a, b, relation=self.predicate, weight=1)

        logger.info(
            f"Built cluster-level {self.predicate} graph: {graph.number_of_nodes()} clusters, "
            f"{graph.number_of_edges()} links"
        )
        return graph


def build_incident_graph(record_set: RecordSet, predicate: str = None,
                         assignment: ClusterAssignment = None, **params) -> nx.Graph:
    return IncidentGraphBuilder(predicate, **params).build(record_set, assignment)


def build_cluster_graph(record_set: RecordSet, assignment: ClusterAssignment,
                        predicate: str = None, **params) -> nx.Graph:
    return IncidentGraphBuilder(predicate, **params).build_cluster_graph(record_set, assignment)


def degrees_of_separation(graph: nx.Graph, start: str, max_degree: Optional[int] = None) -> Dict[str, int]:
    """Hop count from start to every incident reachable within max_degree hops.

    max_degree=None walks the whole connected component.
    """
    if start not in graph:
        raise KeyError(f"Incident {start!r} is not in the graph")
    return dict(nx.single_source_shortest_path_length(graph, start, cutoff=max_degree))


def component_summary(graph: nx.Graph) -> List[Dict[str, Any]]:
    """Connected components of an incident graph, largest first"""
    rows = []
    for component in nx.connected_components(graph):
        sub = graph.subgraph(component)
        nodes = [d for _, d in sub.nodes(data=True)]
        dates = [d["timestamp"] for d in nodes if "timestamp" in d]
        rows.append({
            "size": int(sub.number_of_nodes()),
            "edges": int(sub.number_of_edges()),
            "date_min": min(dates).date().isoformat() if dates else None,
            "date_max": max(dates).date().isoformat() if dates else None,
            "lat_center": float(np.mean([d["latitude"] for d in nodes])),
            "lon_center": float(np.mean([d["longitude"] for d in nodes])),
        })
    rows.sort(key=lambda r: r["size"], reverse=True)
    return rows


def export_graph(graph: nx.Graph, filepath: Path = None) -> str:
    """Export a graph as node-link JSON"""
    if filepath is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filepath = OUTPUT_DIR / FILE_PATTERNS["graph_results"].format(
            predicate=graph.graph.get("predicate", "graph"), timestamp=timestamp
        )

    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'w') as f:
        json.dump(nx.node_link_data(graph), f, indent=2, default=str)

    logger.info(f"Graph exported to {filepath}")
    return str(filepath)
