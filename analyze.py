#!/usr/bin/env python3
"""
Crime Incident Analysis Pipeline
Loads a crime CSV, clusters incident locations, builds an incident graph
and reports temporal trends.
"""

import sys
import os
import argparse
import logging
from pathlib import Path
from datetime import datetime

# Add project root to path
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from config import (
    CLUSTERING_CONFIG, FILE_PATTERNS, GRAPH_CONFIG, LOADER_CONFIG, OUTPUT_DIR, TREND_CONFIG,
    ensure_output_dirs,
)
from errors import AnalysisError
from src.data.loader import CrimeRecordLoader, summarize
from clustering.cluster_analysis import (
    METRICS, SEEDINGS, SpatialClusterer, cluster_frame, describe_clusters, export_cluster_results,
)
from incident_graph.graph_builder import (
    PREDICATES, IncidentGraphBuilder, component_summary, degrees_of_separation, export_graph,
)
from temporal.trend_report import (
    GRANULARITIES, build_trend_series, category_breakdown, export_trend_series, format_trend,
)


def setup_logging(log_level=logging.INFO, log_file: Path = None):
    """Setup logging configuration"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        handlers.insert(0, logging.FileHandler(log_file))
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )
    return logging.getLogger(__name__)


def run_pipeline(args) -> dict:
    """Run load -> cluster -> graph -> trend and write outputs"""
    logger = logging.getLogger(__name__)
    output_dir = Path(args.output_dir)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    outputs = {}

    # Parameters are checked before any data is read or written
    loader = CrimeRecordLoader(max_failure_rate=args.max_failure_rate)
    clusterer = SpatialClusterer(args.k, metric=args.metric, seeding=args.seeding, max_iter=args.max_iter)
    builder = IncidentGraphBuilder(args.predicate, radius_m=args.radius_m, window_hours=args.window_hours)

    # Step 1: Load records
    logger.info("Step 1: Loading incident records...")
    record_set = loader.load(args.input)
    summary = summarize(record_set)
    logger.info(f"Data summary: {summary}")

    # Step 2: Cluster locations
    logger.info(f"Step 2: Clustering {len(record_set)} incidents into {args.k} clusters...")
    assignment = clusterer.fit(record_set)
    if not assignment.converged:
        logger.warning("Cluster assignment did not converge; reporting the last iteration")
    description = describe_clusters(record_set, assignment)
    for name, stats in description.items():
        print(f"{name}: size={stats['size']} centroid=({stats['centroid']['latitude']:.5f}, "
              f"{stats['centroid']['longitude']:.5f}) top={stats['top_categories']}")
    outputs["clusters"] = export_cluster_results(
        assignment, description,
        output_dir / FILE_PATTERNS["cluster_results"].format(method="kmeans", timestamp=timestamp)
    )

    # Step 3: Incident graph
    logger.info(f"Step 3: Building {args.predicate} incident graph...")
    graph = builder.build(record_set, assignment)
    components = component_summary(graph)
    print(f"Incident graph: {graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges, "
          f"{len(components)} components")
    start_id = args.start_id or (record_set[0].incident_id if record_set else None)
    if start_id is not None:
        reached = degrees_of_separation(graph, start_id, GRAPH_CONFIG["max_degree"])
        print(f"Degrees of separation from {start_id}: {len(reached) - 1} related incidents "
              f"within {GRAPH_CONFIG['max_degree']} hops")
    outputs["graph"] = export_graph(
        graph,
        output_dir / FILE_PATTERNS["graph_results"].format(predicate=args.predicate, timestamp=timestamp)
    )

    # Step 4: Temporal trends
    logger.info(f"Step 4: Building {args.granularity} trend series...")
    series = build_trend_series(record_set, args.granularity)
    print("Temporal Trends:")
    for line in format_trend(series):
        print(line)
    outputs["trend"] = export_trend_series(
        series,
        output_dir / FILE_PATTERNS["trend_series"].format(granularity=args.granularity, timestamp=timestamp)
    )

    if not args.no_plots:
        from app.utils.chart_utils import ChartVisualizer

        visualizer = ChartVisualizer()
        outputs["trend_plot"] = visualizer.plot_trend(
            series, output_dir / FILE_PATTERNS["trend_plot"].format(granularity=args.granularity)
        )
        outputs["cluster_plot"] = visualizer.plot_clusters(
            cluster_frame(record_set, assignment), assignment,
            output_dir / FILE_PATTERNS["cluster_plot"].format(metric=args.metric, k=args.k)
        )
        outputs["category_plot"] = visualizer.plot_category_breakdown(
            category_breakdown(record_set, args.granularity),
            output_dir / FILE_PATTERNS["category_plot"].format(granularity=args.granularity)
        )

    return outputs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Cluster, link and trend crime incidents from a CSV export"
    )

    parser.add_argument("input", help="Path to the crime incident CSV")

    parser.add_argument(
        "--k",
        type=int,
        default=CLUSTERING_CONFIG["n_clusters"],
        help="Number of k-means clusters (default: from config)"
    )
    parser.add_argument("--metric", choices=METRICS, default=CLUSTERING_CONFIG["metric"],
                        help="Distance used for cluster assignment")
    parser.add_argument("--seeding", choices=SEEDINGS, default=CLUSTERING_CONFIG["seeding"],
                        help="Centroid seeding policy")
    parser.add_argument("--max-iter", type=int, default=CLUSTERING_CONFIG["max_iter"],
                        help="Maximum k-means iterations")

    parser.add_argument("--predicate", choices=PREDICATES, default=GRAPH_CONFIG["predicate"],
                        help="Edge rule for the incident graph (same_day and same_cluster link every "
                             "pair in a group, which grows quadratically on large exports)")
    parser.add_argument("--radius-m", type=float, default=GRAPH_CONFIG["radius_m"],
                        help="Distance threshold for the proximity predicate (metres)")
    parser.add_argument("--window-hours", type=float, default=GRAPH_CONFIG["window_hours"],
                        help="Time window for the category_window predicate (hours)")
    parser.add_argument("--start-id", default=None,
                        help="Incident to measure degrees of separation from (default: first record)")

    parser.add_argument("--granularity", choices=list(GRANULARITIES), default=TREND_CONFIG["granularity"],
                        help="Trend bucket size")
    parser.add_argument("--max-failure-rate", type=float, default=LOADER_CONFIG["max_failure_rate"],
                        help="Abort when more than this share of rows is unparseable")

    parser.add_argument("--output-dir", default=str(OUTPUT_DIR), help="Directory for output files")
    parser.add_argument("--no-plots", action="store_true", help="Skip chart rendering")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return parser


def main(argv=None):
    """Main function"""
    args = build_parser().parse_args(argv)

    output_dir = ensure_output_dirs(Path(args.output_dir))
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logger = setup_logging(log_level, output_dir / FILE_PATTERNS["log_file"])

    try:
        outputs = run_pipeline(args)
    except (AnalysisError, KeyError) as e:
        logger.error(f"Analysis failed: {e}")
        return 1
    except OSError as e:
        logger.error(f"Could not read or write data: {e}")
        return 1

    for name, path in outputs.items():
        logger.info(f"{name}: {path}")
    logger.info("Analysis completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
