import os
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent
OUTPUT_DIR = Path(os.environ.get("CRIME_OUTPUT_DIR", PROJECT_ROOT / "output"))

# Canonical record field -> CSV header (Chicago "Crimes - 2001 to Present" export)
COLUMN_MAP = {
    "incident_id": "ID",
    "case_number": "Case Number",
    "timestamp": "Date",
    "block": "Block",
    "iucr": "IUCR",
    "category": "Primary Type",
    "description": "Description",
    "location_description": "Location Description",
    "arrest": "Arrest",
    "domestic": "Domestic",
    "beat": "Beat",
    "district": "District",
    "ward": "Ward",
    "community_area": "Community Area",
    "fbi_code": "FBI Code",
    "x_coordinate": "X Coordinate",
    "y_coordinate": "Y Coordinate",
    "latitude": "Latitude",
    "longitude": "Longitude",
}

REQUIRED_FIELDS = ["incident_id", "timestamp", "latitude", "longitude"]

# Record loading parameters
LOADER_CONFIG = {
    "date_formats": [
        "%m/%d/%Y %I:%M:%S %p",  # Chicago data portal
        "%m/%d/%y %H:%M",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%d",
    ],
    "max_failure_rate": 0.5,
    "true_values": ["true", "t", "yes", "y", "1"],
    "summary_top_n": 10,
}

# Clustering parameters
CLUSTERING_CONFIG = {
    "n_clusters": 3,
    "metric": "haversine",
    "seeding": "kmeans++",
    "max_iter": 300,
    "random_state": 42,
    "max_clusters_search": 10,
    "top_categories": 3,
}

# Incident graph parameters
GRAPH_CONFIG = {
    "predicate": "same_day",
    "radius_m": 250.0,
    "window_hours": 24.0,
    "max_degree": 6,
    "large_group_warning": 2000,
}

# Temporal trend parameters
TREND_CONFIG = {
    "granularity": "day",
    "top_categories": 5,
}

# Chart parameters
PLOT_CONFIG = {
    "figsize": (10, 6),
    "dpi": 150,
    "trend_color": "#d62728",
    "palette": "viridis",
}

# File naming conventions
FILE_PATTERNS = {
    "cluster_results": "clusters_{method}_{timestamp}.json",
    "graph_results": "graph_{predicate}_{timestamp}.json",
    "trend_series": "trend_{granularity}_{timestamp}.csv",
    "trend_plot": "temporal_trends_{granularity}.png",
    "cluster_plot": "clusters_{metric}_k{k}.png",
    "category_plot": "categories_{granularity}.png",
    "log_file": "analysis.log",
}


def ensure_output_dirs(output_dir: Path = None) -> Path:
    """Create the output directory if needed and return it"""
    directory = Path(output_dir) if output_dir is not None else OUTPUT_DIR
    directory.mkdir(parents=True, exist_ok=True)
    return directory
