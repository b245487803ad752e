import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import numpy as np
import pandas as pd

from config import COLUMN_MAP, LOADER_CONFIG, REQUIRED_FIELDS
from errors import DataIntegrityError, InvalidConfigurationError
from src.data.records import IncidentRecord, LoadReport, RecordSet

logger = logging.getLogger(__name__)

OPTIONAL_TEXT_FIELDS = [
    "case_number", "description", "location_description", "block", "iucr",
    "beat", "district", "ward", "community_area", "fbi_code",
]


class CrimeRecordLoader:
    def __init__(self, column_map: Dict[str, str] = None, date_formats: List[str] = None,
                 max_failure_rate: float = None, true_values: List[str] = None):
        self.column_map = dict(COLUMN_MAP)
        if column_map:
            self.column_map.update(column_map)
        self.date_formats = date_formats or LOADER_CONFIG["date_formats"]
        if max_failure_rate is None:
            max_failure_rate = LOADER_CONFIG["max_failure_rate"]
        if not 0.0 <= max_failure_rate <= 1.0:
            raise InvalidConfigurationError(
                f"max_failure_rate must be within [0, 1], got {max_failure_rate}"
            )
        self.max_failure_rate = max_failure_rate
        self.true_values = [v.lower() for v in (true_values or LOADER_CONFIG["true_values"])]

    def read_raw(self, path: Union[str, Path]) -> pd.DataFrame:
        """Read the CSV as untyped strings"""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Crime data not found: {path}")

        try:
            df = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=True)
        except pd.errors.EmptyDataError as e:
            raise DataIntegrityError(f"{path} has no header row") from e

        missing = [self.column_map[f] for f in REQUIRED_FIELDS if self.column_map[f] not in df.columns]
        if missing:
            raise DataIntegrityError(f"{path} is missing required columns: {', '.join(missing)}")

        return df

    def _column(self, df: pd.DataFrame, field: str) -> pd.Series:
        header = self.column_map.get(field)
        if header is None or header not in df.columns:
            return pd.Series("", index=df.index, dtype=object)
        return df[header].astype(str).str.strip()

    def parse_timestamps(self, raw: pd.Series) -> pd.Series:
        """Try each configured date format in order; unparseable values stay NaT"""
        parsed = pd.Series(pd.NaT, index=raw.index, dtype="datetime64[ns]")
        for fmt in self.date_formats:
            remaining = parsed.isna() & (raw != "")
            if not remaining.any():
                break
            parsed.loc[remaining] = pd.to_datetime(raw[remaining], format=fmt, errors="coerce")
        return parsed

    def parse_flags(self, raw: pd.Series) -> pd.Series:
        return raw.str.lower().isin(self.true_values)

    def classify_rows(self, df: pd.DataFrame) -> pd.DataFrame:
        """Parse required fields and tag each row with a skip reason (None when valid)"""
        ids = self._column(df, "incident_id")
        raw_lat = self._column(df, "latitude")
        raw_lon = self._column(df, "longitude")

        parsed = pd.DataFrame({
            "incident_id": ids,
            "timestamp": self.parse_timestamps(self._column(df, "timestamp")),
            "latitude": pd.to_numeric(raw_lat, errors="coerce"),
            "longitude": pd.to_numeric(raw_lon, errors="coerce"),
        }, index=df.index)

        lat, lon = parsed["latitude"], parsed["longitude"]
        out_of_range = (
            lat.isna() | lon.isna()
            | (lat.abs() > 90) | (lon.abs() > 180)
            | ((lat == 0) & (lon == 0))
        )

        checks = [
            ("missing_id", ids == ""),
            ("missing_coordinates", (raw_lat == "") | (raw_lon == "")),
            ("bad_coordinates", out_of_range),
            ("bad_timestamp", parsed["timestamp"].isna()),
        ]

        reasons = pd.Series(None, index=df.index, dtype=object)
        for reason, mask in checks:
            reasons.loc[mask & reasons.isna()] = reason

        valid = reasons.isna()
        duplicates = ids[valid].duplicated(keep="first").reindex(df.index, fill_value=False).astype(bool)
        reasons.loc[duplicates] = "duplicate_id"

        parsed["skip_reason"] = reasons
        return parsed

    def load(self, path: Union[str, Path]) -> RecordSet:
        """Load incidents from a CSV into an immutable RecordSet"""
        df = self.read_raw(path)
        report = LoadReport(source=str(path), rows_read=len(df))

        parsed = self.classify_rows(df)
        skipped = parsed[parsed["skip_reason"].notna()]
        for idx, reason in skipped["skip_reason"].items():
            # +2: header line and 1-based numbering
            logger.debug(f"Skipping row {idx + 2} of {path}: {reason}")
        report.skip_reasons = {str(k): int(v) for k, v in skipped["skip_reason"].value_counts().items()}

        if report.rows_read and report.failure_rate > self.max_failure_rate:
            logger.error(
                f"{report.rows_skipped}/{report.rows_read} rows unparseable in {path} "
                f"(reasons: {report.skip_reasons})"
            )
            raise DataIntegrityError(
                f"{report.failure_rate:.1%} of rows in {path} are unparseable "
                f"(limit {self.max_failure_rate:.1%})"
            )

        records = self._build_records(df, parsed)
        report.rows_loaded = len(records)

        if report.rows_skipped:
            logger.warning(f"Skipped {report.rows_skipped} of {report.rows_read} rows: {report.skip_reasons}")
        logger.info(f"Loaded {report.rows_loaded} incidents from {path}")
        return RecordSet(records, report)

    def _build_records(self, df: pd.DataFrame, parsed: pd.DataFrame) -> List[IncidentRecord]:
        keep = parsed["skip_reason"].isna()
        rows = df[keep]
        good = parsed[keep]

        text = {name: self._column(rows, name) for name in OPTIONAL_TEXT_FIELDS}
        category = self._column(rows, "category")
        arrest = self.parse_flags(self._column(rows, "arrest"))
        domestic = self.parse_flags(self._column(rows, "domestic"))
        x_coord = pd.to_numeric(self._column(rows, "x_coordinate"), errors="coerce")
        y_coord = pd.to_numeric(self._column(rows, "y_coordinate"), errors="coerce")

        records = []
        for idx in rows.index:
            records.append(IncidentRecord(
                incident_id=good.at[idx, "incident_id"],
                category=category.at[idx] or "UNKNOWN",
                timestamp=good.at[idx, "timestamp"].to_pydatetime(),
                latitude=float(good.at[idx, "latitude"]),
                longitude=float(good.at[idx, "longitude"]),
                arrest=bool(arrest.at[idx]),
                domestic=bool(domestic.at[idx]),
                x_coordinate=_optional_float(x_coord.at[idx]),
                y_coordinate=_optional_float(y_coord.at[idx]),
                **{name: (values.at[idx] or None) for name, values in text.items()},
            ))
        return records


def _optional_float(value) -> Any:
    return None if pd.isna(value) else float(value)


def load_records(path: Union[str, Path], **options) -> RecordSet:
    """Parse a crime CSV; see CrimeRecordLoader for the accepted options"""
    return CrimeRecordLoader(**options).load(path)


def summarize(record_set: RecordSet, top_n: int = None) -> Dict[str, Any]:
    """Generate summary statistics for a record set"""
    if top_n is None:
        top_n = LOADER_CONFIG["summary_top_n"]

    df = record_set.to_frame()
    if df.empty:
        return {
            "total_incidents": 0,
            "date_range": None,
            "category_distribution": {},
            "arrest_rate": 0.0,
            "domestic_rate": 0.0,
            "load_report": record_set.report.to_dict(),
        }

    timestamps = pd.to_datetime(df["timestamp"])
    top_categories = df["category"].value_counts().head(top_n)
    return {
        "total_incidents": int(len(df)),
        "date_range": {
            "start": timestamps.min().isoformat(),
            "end": timestamps.max().isoformat(),
        },
        "category_distribution": {str(k): int(v) for k, v in top_categories.items()},
        "arrest_rate": float(np.mean(df["arrest"].astype(bool))),
        "domestic_rate": float(np.mean(df["domestic"].astype(bool))),
        "load_report": record_set.report.to_dict(),
    }
