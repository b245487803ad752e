from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, date
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class IncidentRecord:
    """One crime incident parsed from a CSV row"""
    incident_id: str
    category: str
    timestamp: datetime
    latitude: float
    longitude: float
    case_number: Optional[str] = None
    description: Optional[str] = None
    location_description: Optional[str] = None
    block: Optional[str] = None
    iucr: Optional[str] = None
    arrest: bool = False
    domestic: bool = False
    beat: Optional[str] = None
    district: Optional[str] = None
    ward: Optional[str] = None
    community_area: Optional[str] = None
    fbi_code: Optional[str] = None
    x_coordinate: Optional[float] = None
    y_coordinate: Optional[float] = None

    @property
    def coordinates(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    @property
    def date(self) -> date:
        return self.timestamp.date()

    @property
    def year(self) -> int:
        return self.timestamp.year


RECORD_COLUMNS = [f.name for f in fields(IncidentRecord)]


@dataclass
class LoadReport:
    """Row accounting for a single load"""
    source: str = ""
    rows_read: int = 0
    rows_loaded: int = 0
    skip_reasons: Dict[str, int] = field(default_factory=dict)

    @property
    def rows_skipped(self) -> int:
        return sum(self.skip_reasons.values())

    @property
    def failure_rate(self) -> float:
        if self.rows_read == 0:
            return 0.0
        return self.rows_skipped / self.rows_read

    def to_dict(self) -> Dict[str, object]:
        return {
            "source": self.source,
            "rows_read": self.rows_read,
            "rows_loaded": self.rows_loaded,
            "rows_skipped": self.rows_skipped,
            "skip_reasons": dict(self.skip_reasons),
            "failure_rate": self.failure_rate,
        }


class RecordSet:
    """Ordered, read-only collection of incident records.

    Loaded once and shared by reference between the clusterer, the graph
    builder and the trend reporter. The backing tuple is never mutated.
    """

    def __init__(self, records, report: LoadReport = None):
        self._records: Tuple[IncidentRecord, ...] = tuple(records)
        self._index: Dict[str, int] = {r.incident_id: i for i, r in enumerate(self._records)}
        self.report = report if report is not None else LoadReport(
            rows_read=len(self._records), rows_loaded=len(self._records)
        )

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[IncidentRecord]:
        return iter(self._records)

    def __getitem__(self, item):
        return self._records[item]

    def __bool__(self) -> bool:
        return bool(self._records)

    def __repr__(self) -> str:
        return f"RecordSet({len(self._records)} records)"

    @property
    def records(self) -> Tuple[IncidentRecord, ...]:
        return self._records

    def get(self, incident_id: str) -> Optional[IncidentRecord]:
        idx = self._index.get(incident_id)
        return None if idx is None else self._records[idx]

    def position(self, incident_id: str) -> int:
        return self._index[incident_id]

    def ids(self) -> List[str]:
        return [r.incident_id for r in self._records]

    def coordinates(self) -> np.ndarray:
        """(n, 2) array of latitude/longitude in degrees"""
        return np.array(
            [[r.latitude, r.longitude] for r in self._records], dtype=float
        ).reshape(-1, 2)

    def timestamps(self) -> pd.Series:
        return pd.Series(
            pd.to_datetime([r.timestamp for r in self._records]), dtype="datetime64[ns]"
        )

    def to_frame(self) -> pd.DataFrame:
        """Flatten the records into a DataFrame (one row per incident)"""
        if not self._records:
            return pd.DataFrame(columns=RECORD_COLUMNS)
        return pd.DataFrame([asdict(r) for r in self._records], columns=RECORD_COLUMNS)
