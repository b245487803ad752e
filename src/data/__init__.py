from .records import IncidentRecord, LoadReport, RecordSet
from .loader import CrimeRecordLoader, load_records, summarize

__all__ = [
    "IncidentRecord",
    "LoadReport",
    "RecordSet",
    "CrimeRecordLoader",
    "load_records",
    "summarize",
]
