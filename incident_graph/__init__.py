from .graph_builder import (
    IncidentGraphBuilder,
    build_incident_graph,
    build_cluster_graph,
    degrees_of_separation,
    component_summary,
    export_graph,
)

__all__ = [
    "IncidentGraphBuilder",
    "build_incident_graph",
    "build_cluster_graph",
    "degrees_of_separation",
    "component_summary",
    "export_graph",
]
