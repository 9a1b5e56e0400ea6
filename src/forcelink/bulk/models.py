"""
Bulk job models.

Pydantic models for bulk job requests, job status payloads and parsed
result rows. Field aliases match the platform's camelCase JSON.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Operation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    UPSERT = "upsert"
    DELETE = "delete"
    HARD_DELETE = "hardDelete"
    QUERY = "query"
    QUERY_ALL = "queryAll"

    @property
    def is_query(self) -> bool:
        return self in (Operation.QUERY, Operation.QUERY_ALL)


class JobState(str, Enum):
    """
    Bulk job lifecycle states.

    Open -> UploadComplete -> InProgress -> JobComplete | Failed,
    with Aborted reachable from any non-terminal state. Terminal states
    are final.
    """

    OPEN = "Open"
    UPLOAD_COMPLETE = "UploadComplete"
    IN_PROGRESS = "InProgress"
    JOB_COMPLETE = "JobComplete"
    FAILED = "Failed"
    ABORTED = "Aborted"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES

    @property
    def rank(self) -> int:
        """Position along the lifecycle; all terminal states share the last rank."""
        return _STATE_RANK[self]

    def can_transition_to(self, other: "JobState") -> bool:
        if self.is_terminal:
            return other == self
        return other.rank >= self.rank


_TERMINAL_STATES = frozenset({JobState.JOB_COMPLETE, JobState.FAILED, JobState.ABORTED})

_STATE_RANK = {
    JobState.OPEN: 0,
    JobState.UPLOAD_COMPLETE: 1,
    JobState.IN_PROGRESS: 2,
    JobState.JOB_COMPLETE: 3,
    JobState.FAILED: 3,
    JobState.ABORTED: 3,
}


class ContentType(str, Enum):
    CSV = "CSV"
    JSON = "JSON"

    @property
    def mime_type(self) -> str:
        return "application/json" if self is ContentType.JSON else "text/csv"


class LineEnding(str, Enum):
    LF = "LF"
    CRLF = "CRLF"

    @property
    def chars(self) -> str:
        return "\r\n" if self is LineEnding.CRLF else "\n"


class ColumnDelimiter(str, Enum):
    COMMA = "COMMA"
    TAB = "TAB"
    SEMICOLON = "SEMICOLON"
    PIPE = "PIPE"
    BACKQUOTE = "BACKQUOTE"
    CARET = "CARET"

    @property
    def char(self) -> str:
        return _DELIMITER_CHARS[self]


_DELIMITER_CHARS = {
    ColumnDelimiter.COMMA: ",",
    ColumnDelimiter.TAB: "\t",
    ColumnDelimiter.SEMICOLON: ";",
    ColumnDelimiter.PIPE: "|",
    ColumnDelimiter.BACKQUOTE: "`",
    ColumnDelimiter.CARET: "^",
}


class JobSpec(BaseModel):
    """
    Parameters for creating a bulk job.

    Ingest jobs need an object; upserts also need the external id field.
    Query jobs need a query and no object.

    Example:
        >>> spec = JobSpec(object="Account", operation=Operation.INSERT)
        >>> spec.to_payload()
        {'object': 'Account', 'operation': 'insert', 'contentType': 'CSV', 'lineEnding': 'LF'}
    """

    model_config = ConfigDict(populate_by_name=True)

    object: str | None = None
    operation: Operation
    external_id_field_name: str | None = Field(default=None, alias="externalIdFieldName")
    content_type: ContentType = Field(default=ContentType.CSV, alias="contentType")
    line_ending: LineEnding = Field(default=LineEnding.LF, alias="lineEnding")
    column_delimiter: ColumnDelimiter | None = Field(default=None, alias="columnDelimiter")
    query: str | None = None

    @model_validator(mode="after")
    def _check_operation_fields(self) -> "JobSpec":
        if self.operation.is_query:
            if not self.query or not self.query.strip():
                raise ValueError(f"{self.operation.value} jobs require a query")
            if self.object:
                raise ValueError("query jobs take a query, not an object")
        else:
            if not self.object or not self.object.strip():
                raise ValueError(f"{self.operation.value} jobs require an object")
            if self.query:
                raise ValueError("ingest jobs do not take a query")
            if self.operation == Operation.UPSERT and not self.external_id_field_name:
                raise ValueError("upsert jobs require external_id_field_name")
        return self

    @property
    def is_query(self) -> bool:
        return self.operation.is_query

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Job(BaseModel):
    """Status of a bulk job as reported by the platform. Unknown fields are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    object: str | None = None
    operation: Operation
    state: JobState
    content_type: ContentType = Field(default=ContentType.CSV, alias="contentType")
    column_delimiter: ColumnDelimiter = Field(
        default=ColumnDelimiter.COMMA, alias="columnDelimiter"
    )
    line_ending: LineEnding = Field(default=LineEnding.LF, alias="lineEnding")
    external_id_field_name: str | None = Field(default=None, alias="externalIdFieldName")
    api_version: float | None = Field(default=None, alias="apiVersion")
    concurrency_mode: str | None = Field(default=None, alias="concurrencyMode")
    content_url: str | None = Field(default=None, alias="contentUrl")
    created_by_id: str | None = Field(default=None, alias="createdById")
    created_date: str | None = Field(default=None, alias="createdDate")
    system_modstamp: str | None = Field(default=None, alias="systemModstamp")
    records_processed: int = Field(default=0, alias="numberRecordsProcessed")
    records_failed: int = Field(default=0, alias="numberRecordsFailed")
    retries: int = 0
    total_processing_time: int = Field(default=0, alias="totalProcessingTime")
    error_message: str | None = Field(default=None, alias="errorMessage")

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def is_success(self) -> bool:
        return self.state == JobState.JOB_COMPLETE and self.records_failed == 0

    @property
    def is_query(self) -> bool:
        return self.operation.is_query


class SuccessRecord(BaseModel):
    """One row of a job's successful results."""

    id: str
    created: bool = False
    fields: dict[str, Any] = Field(default_factory=dict)


class FailedRecord(BaseModel):
    """One row of a job's failed results. error is the platform's reason."""

    id: str = ""
    error: str = ""
    fields: dict[str, Any] = Field(default_factory=dict)


class QueryResultPage(BaseModel):
    """One page of query job results. A None locator means no more pages."""

    records: list[dict[str, Any]] = Field(default_factory=list)
    locator: str | None = None
    number_of_records: int | None = None

    @property
    def done(self) -> bool:
        return self.locator is None


__all__ = [
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
]
