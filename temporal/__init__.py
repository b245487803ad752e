from .trend_report import (
    GRANULARITIES,
    TrendSeries,
    build_trend_series,
    category_breakdown,
    format_trend,
    export_trend_series,
)

__all__ = [
    "GRANULARITIES",
    "TrendSeries",
    "build_trend_series",
    "category_breakdown",
    "format_trend",
    "export_trend_series",
]
