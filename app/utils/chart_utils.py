import logging
from pathlib import Path
from typing import Union

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from clustering.cluster_analysis import ClusterAssignment
from config import PLOT_CONFIG
from temporal.trend_report import TrendSeries

logger = logging.getLogger(__name__)


class ChartVisualizer:
    def __init__(self, figsize=None, dpi: int = None):
        self.figsize = figsize or PLOT_CONFIG["figsize"]
        self.dpi = dpi or PLOT_CONFIG["dpi"]
        self.color_scheme = {
            'primary': '#1f77b4',
            'danger': PLOT_CONFIG["trend_color"],
            'centroid': '#000000',
        }

    def _save(self, fig, save_path: Union[str, Path]) -> str:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.tight_layout()
        fig.savefig(save_path, dpi=self.dpi, bbox_inches='tight')
        plt.close(fig)
        logger.info(f"Chart saved to {save_path}")
        return str(save_path)

    def plot_trend(self, series: TrendSeries, save_path: Union[str, Path],
                   title: str = 'Temporal Trends') -> str:
        """Line chart of incident counts per bucket"""
        fig, ax = plt.subplots(figsize=self.figsize)

        if len(series):
            x = [p.start_time for p in series.counts.index]
            ax.plot(x, series.counts.to_numpy(), color=self.color_scheme['danger'],
                    marker='o', markersize=3, linewidth=1.5)
            ax.set_ylim(bottom=0, top=max(1, int(series.counts.max()) + 1))
            fig.autofmt_xdate()
        else:
            ax.text(0.5, 0.5, 'No incidents', ha='center', va='center', transform=ax.transAxes)

        ax.set_title(f'{title} ({series.granularity})')
        ax.set_xlabel('Date')
        ax.set_ylabel('Count')
        ax.grid(alpha=0.3)

        return self._save(fig, save_path)

    def plot_clusters(self, df: pd.DataFrame, assignment: ClusterAssignment,
                      save_path: Union[str, Path]) -> str:
        """Scatter of incident locations coloured by cluster, with centroids"""
        fig, ax = plt.subplots(figsize=self.figsize)

        sns.scatterplot(data=df, x="longitude", y="latitude", hue="cluster",
                        palette=PLOT_CONFIG["palette"], alpha=0.6, s=12, ax=ax, legend="full")
        centroids = np.asarray(assignment.centroids)
        ax.scatter(centroids[:, 1], centroids[:, 0], c=self.color_scheme['centroid'],
                   marker='X', s=120, label='centroid')

        ax.set_title(f'K-means Clusters (k={assignment.n_clusters}, {assignment.metric})')
        ax.set_xlabel('Longitude')
        ax.set_ylabel('Latitude')

        return self._save(fig, save_path)

    def plot_category_breakdown(self, table: pd.DataFrame, save_path: Union[str, Path]) -> str:
        """Heatmap of counts per bucket for the top categories"""
        fig, ax = plt.subplots(figsize=self.figsize)

        if not table.empty:
            data = table.copy()
            data.index = [str(p) for p in data.index]
            sns.heatmap(data.T, ax=ax, cmap='YlOrRd')
        ax.set_title('Incidents by Category over Time')
        ax.set_xlabel('Bucket')
        ax.set_ylabel('Category')

        return self._save(fig, save_path)
