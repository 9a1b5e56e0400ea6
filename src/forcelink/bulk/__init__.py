"""
Bulk job support.

Provides:
- Job and request models (pydantic)
- Delimited-text framing for uploads and result files
- BulkJobController driving the job lifecycle
"""

from forcelink.bulk.controller import DEFAULT_POLL_INTERVAL, BulkJobController
from forcelink.bulk.framing import (
    encode_delimited,
    encode_ndjson,
    parse_delimited,
    parse_failure_rows,
    parse_success_rows,
)
from forcelink.bulk.models import (
    ColumnDelimiter,
    ContentType,
    FailedRecord,
    Job,
    JobSpec,
    JobState,
    LineEnding,
    Operation,
    QueryResultPage,
    SuccessRecord,
)

__all__ = [
    # Controller
    "BulkJobController",
    "DEFAULT_POLL_INTERVAL",
    # Models
    "Operation",
    "JobState",
    "ContentType",
    "LineEnding",
    "ColumnDelimiter",
    "JobSpec",
    "Job",
    "SuccessRecord",
    "FailedRecord",
    "QueryResultPage",
    # Framing
    "parse_delimited",
    "parse_success_rows",
    "parse_failure_rows",
    "encode_delimited",
    "encode_ndjson",
]
