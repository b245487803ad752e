import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd

from config import FILE_PATTERNS, OUTPUT_DIR, TREND_CONFIG
from errors import InvalidConfigurationError
from src.data.records import RecordSet

logger = logging.getLogger(__name__)

GRANULARITIES = {
    "day": "D",
    "week": "W",
    "month": "M",
    "year": "Y",
}


def _period_freq(granularity: str) -> str:
    if granularity not in GRANULARITIES:
        raise InvalidConfigurationError(
            f"Unknown bucket granularity '{granularity}', expected one of {list(GRANULARITIES)}"
        )
    return GRANULARITIES[granularity]


@dataclass
class TrendSeries:
    """Incident counts per contiguous time bucket, zero-filled"""
    granularity: str
    counts: pd.Series

    def __len__(self) -> int:
        return len(self.counts)

    def to_records(self) -> List[Tuple[str, int]]:
        return [(str(bucket), int(count)) for bucket, count in self.counts.items()]

    def total(self) -> int:
        return int(self.counts.sum())

    def peak(self) -> Optional[Tuple[str, int]]:
        if self.counts.empty:
            return None
        bucket = self.counts.idxmax()
        return str(bucket), int(self.counts[bucket])

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "bucket": [str(p) for p in self.counts.index],
            "start": [p.start_time for p in self.counts.index],
            "count": self.counts.to_numpy(dtype=int),
        })


def build_trend_series(record_set: RecordSet, granularity: str = None) -> TrendSeries:
    """Count incidents per bucket across the full observed date range"""
    granularity = granularity or TREND_CONFIG["granularity"]
    freq = _period_freq(granularity)

    timestamps = record_set.timestamps()
    if timestamps.empty:
        counts = pd.Series([], index=pd.PeriodIndex([], freq=freq), dtype=int)
    else:
        periods = timestamps.dt.to_period(freq)
        full_range = pd.period_range(periods.min(), periods.max(), freq=freq)
        counts = periods.value_counts().reindex(full_range, fill_value=0).astype(int)

    counts.index.name = "bucket"
    counts.name = "count"
    series = TrendSeries(granularity=granularity, counts=counts)

    peak = series.peak()
    logger.info(
        f"Trend series: {len(series)} {granularity} buckets, {series.total()} incidents"
        + (f", peak {peak[0]} ({peak[1]})" if peak else "")
    )
    return series


def category_breakdown(record_set: RecordSet, granularity: str = None, top_n: int = None) -> pd.DataFrame:
    """Counts per bucket (rows) for the most frequent categories (columns)"""
    granularity = granularity or TREND_CONFIG["granularity"]
    freq = _period_freq(granularity)
    if top_n is None:
        top_n = TREND_CONFIG["top_categories"]

    df = record_set.to_frame()
    if df.empty:
        return pd.DataFrame(index=pd.PeriodIndex([], freq=freq, name="bucket"))

    df["bucket"] = pd.to_datetime(df["timestamp"]).dt.to_period(freq)
    # the range covers every record, not only the top categories
    full_range = pd.period_range(df["bucket"].min(), df["bucket"].max(), freq=freq, name="bucket")
    top_categories = df["category"].value_counts().head(top_n).index
    df = df[df["category"].isin(top_categories)]

    table = df.groupby(["bucket", "category"]).size().unstack(fill_value=0)
    table = table.reindex(full_range, fill_value=0)
    return table[[c for c in top_categories if c in table.columns]].astype(int)


def format_trend(series: TrendSeries) -> List[str]:
    """Printable lines, one per bucket"""
    return [f"{bucket}: {count}" for bucket, count in series.to_records()]


def export_trend_series(series: TrendSeries, filepath: Path = None) -> str:
    """Export a trend series to CSV"""
    if filepath is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filepath = OUTPUT_DIR / FILE_PATTERNS["trend_series"].format(
            granularity=series.granularity, timestamp=timestamp
        )

    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    series.to_frame().to_csv(filepath, index=False)

    logger.info(f"Trend series exported to {filepath}")
    return str(filepath)
