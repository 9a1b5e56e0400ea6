"""
Bulk job lifecycle: create, upload, close, poll, fetch results.

The controller talks to the platform only through the ApiClient capability
and remembers the last observed state of each job it has seen. Observations
only move forward along the lifecycle, so a stale read can never move a job
backwards, and a terminal observation is final.
"""

import json
import logging
from collections.abc import AsyncIterator, Iterable, Mapping
from typing import Any
from urllib.parse import urlencode

import pydantic

from forcelink.bulk.framing import (
    encode_delimited,
    encode_ndjson,
    parse_delimited,
    parse_failure_rows,
    parse_success_rows,
)
from forcelink.bulk.models import (
    ContentType,
    FailedRecord,
    Job,
    JobSpec,
    JobState,
    QueryResultPage,
    SuccessRecord,
)
from forcelink.errors.exceptions import APIError, JobStateError
from forcelink.logging.context_managers import LogContext
from forcelink.resilience.cancellation import NEVER, CancellationToken
from forcelink.types import ApiClient

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0

LOCATOR_HEADER = "sforce-locator"
NUMBER_OF_RECORDS_HEADER = "sforce-numberofrecords"


def _parse_job(raw: bytes) -> Job:
    try:
        return Job.model_validate_json(raw)
    except pydantic.ValidationError as e:
        raise APIError(
            f"Unexpected bulk job payload: {e.error_count()} validation errors",
            raw_body=raw,
            cause=e,
        ) from e


class BulkJobController:
    """
    Drives bulk jobs through their lifecycle.

    Usage:
        controller = BulkJobController(executor, api_version="59.0")
        job = await controller.create_job(JobSpec(object="Account", operation="insert"))
        await controller.upload_records(job.id, rows)
        await controller.close(job.id)
        job = await controller.await_completion(job.id, token=CancellationToken(600))
        failures = await controller.fetch_failures(job.id)
    """

    def __init__(
        self,
        client: ApiClient,
        api_version: str = "59.0",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self._client = client
        self.api_version = str(api_version)
        self.poll_interval = float(poll_interval)
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._jobs: dict[str, Job] = {}

    # -------------------------------------------------------------------------
    # Observations
    # -------------------------------------------------------------------------

    def observed(self, job_id: str) -> Job | None:
        """Last observed status of a job, or None if never seen."""
        return self._jobs.get(job_id)

    def _observe(self, job: Job) -> Job:
        """Record an observation unless it would move the job backwards."""
        previous = self._jobs.get(job.id)
        if previous is not None and not previous.state.can_transition_to(job.state):
            logger.debug(
                "Ignoring stale job observation",
                extra={
                    "job_id": job.id,
                    "job_state": job.state.value,
                    "previous_state": previous.state.value,
                },
            )
            return previous

        if previous is None or previous.state != job.state:
            logger.info(
                "Bulk job state %s",
                job.state.value,
                extra={
                    "job_id": job.id,
                    "job_state": job.state.value,
                    "previous_state": previous.state.value if previous else None,
                    "records_processed": job.records_processed,
                    "records_failed": job.records_failed,
                },
            )
        self._jobs[job.id] = job
        return job

    def _kind(self, job_id: str) -> str:
        job = self._jobs.get(job_id)
        return "query" if job is not None and job.is_query else "ingest"

    def _path(self, kind: str, *segments: str) -> str:
        suffix = "/".join(s for s in segments if s)
        base = f"/services/data/v{self.api_version}/jobs/{kind}"
        return f"{base}/{suffix}" if suffix else base

    def _job_path(self, job_id: str, *segments: str) -> str:
        return self._path(self._kind(job_id), job_id, *segments)

    def _delimiter(self, job_id: str) -> str:
        job = self._jobs.get(job_id)
        return job.column_delimiter.char if job is not None else ","

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def create_job(
        self, spec: JobSpec, token: CancellationToken | None = None
    ) -> Job:
        """Create an ingest or query job."""
        kind = "query" if spec.is_query else "ingest"
        raw = await self._client.post(self._path(kind), spec.to_payload(), token=token)
        job = _parse_job(raw)
        with LogContext(job_id=job.id, operation="bulk.create"):
            logger.info(
                "Bulk job created",
                extra={
                    "job_id": job.id,
                    "bulk_operation": job.operation.value,
                    "sobject": job.object,
                    "job_state": job.state.value,
                },
            )
            return self._observe(job)

    async def upload(
        self,
        job_id: str,
        data: bytes | str | Any,
        token: CancellationToken | None = None,
    ) -> None:
        """
        Upload raw, already framed data to an open ingest job.

        Args:
            job_id: Target job
            data: bytes, str, or a file-like object (read once)

        Raises:
            JobStateError: If the job is a query job or no longer Open
        """
        job = self._jobs.get(job_id)
        if job is not None:
            if job.is_query:
                raise JobStateError(
                    f"Cannot upload to query job {job_id}", job_id, job.state.value
                )
            if job.state != JobState.OPEN:
                raise JobStateError(
                    f"Cannot upload to job {job_id} in state {job.state.value}",
                    job_id,
                    job.state.value,
                )

        content_type = job.content_type.mime_type if job is not None else "text/csv"
        with LogContext(job_id=job_id, operation="bulk.upload"):
            await self._client.put(
                self._path("ingest", job_id, "batches"),
                data,
                token=token,
                content_type=content_type,
            )
            size = len(data) if isinstance(data, (bytes, str)) else None
            logger.info(
                "Bulk data uploaded",
                extra={"job_id": job_id, "bytes_uploaded": size, "content_type": content_type},
            )

    async def upload_records(
        self,
        job_id: str,
        records: Iterable[Mapping[str, Any]],
        columns: list[str] | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        """
        Frame records using the job's format settings and upload them.

        An empty record set uploads nothing.
        """
        rows = list(records)
        if not rows:
            return

        job = self._jobs.get(job_id) or await self.poll(job_id, token=token)
        if job.content_type == ContentType.JSON:
            data = encode_ndjson(rows)
        else:
            data = encode_delimited(
                rows,
                columns=columns,
                delimiter=job.column_delimiter.char,
                line_ending=job.line_ending.chars,
            )
        logger.debug(
            "Framed records for upload",
            extra={"job_id": job_id, "records": len(rows)},
        )
        await self.upload(job_id, data, token=token)

    async def close(self, job_id: str, token: CancellationToken | None = None) -> Job:
        """
        Mark upload complete so the platform starts processing.

        Closing a job already observed as UploadComplete sends nothing and
        returns a fresh poll.

        Raises:
            JobStateError: If the job is past UploadComplete
        """
        job = self._jobs.get(job_id)
        if job is not None and job.state == JobState.UPLOAD_COMPLETE:
            return await self.poll(job_id, token=token)
        if job is not None and job.state != JobState.OPEN:
            raise JobStateError(
                f"Cannot close job {job_id} in state {job.state.value}",
                job_id,
                job.state.value,
            )

        with LogContext(job_id=job_id, operation="bulk.close"):
            raw = await self._client.patch(
                self._job_path(job_id),
                {"state": JobState.UPLOAD_COMPLETE.value},
                token=token,
            )
            return self._observe(_parse_job(raw))

    async def poll(self, job_id: str, token: CancellationToken | None = None) -> Job:
        """Fetch the job's current status once."""
        raw = await self._client.get(self._job_path(job_id), token=token)
        return self._observe(_parse_job(raw))

    async def await_completion(
        self,
        job_id: str,
        interval: float | None = None,
        token: CancellationToken | None = None,
    ) -> Job:
        """
        Poll until the job reaches a terminal state.

        Failed and Aborted jobs are returned, not raised; check job.state.

        Args:
            job_id: Job to wait for
            interval: Seconds between polls (default: controller poll_interval)
            token: Cancels the wait; the job itself keeps running remotely

        Raises:
            CancellationError: If token fires before the job finishes
            ValueError: If interval is not positive
        """
        token = token or NEVER
        interval = self.poll_interval if interval is None else float(interval)
        if interval <= 0:
            raise ValueError("interval must be positive")
        polls = 0

        with LogContext(job_id=job_id, operation="bulk.await_completion"):
            while True:
                job = await self.poll(job_id, token=token)
                polls += 1
                if job.is_terminal:
                    logger.info(
                        "Bulk job finished",
                        extra={
                            "job_id": job_id,
                            "job_state": job.state.value,
                            "records_processed": job.records_processed,
                            "records_failed": job.records_failed,
                            "poll_count": polls,
                        },
                    )
                    return job
                await token.sleep(interval)

    async def abort(self, job_id: str, token: CancellationToken | None = None) -> Job:
        """
        Abort a job that has not finished.

        Raises:
            JobStateError: If the job was already observed in a terminal state
        """
        job = self._jobs.get(job_id)
        if job is not None and job.is_terminal:
            raise JobStateError(
                f"Cannot abort job {job_id} in state {job.state.value}",
                job_id,
                job.state.value,
            )
        with LogContext(job_id=job_id, operation="bulk.abort"):
            raw = await self._client.patch(
                self._job_path(job_id),
                {"state": JobState.ABORTED.value},
                token=token,
            )
            return self._observe(_parse_job(raw))

    async def delete(self, job_id: str, token: CancellationToken | None = None) -> None:
        """Delete a job and forget its observations."""
        await self._client.delete(self._job_path(job_id), token=token)
        self._jobs.pop(job_id, None)
        logger.info("Bulk job deleted", extra={"job_id": job_id})

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    async def fetch_success(
        self, job_id: str, token: CancellationToken | None = None
    ) -> list[SuccessRecord]:
        raw = await self._client.get(
            self._path("ingest", job_id, "successfulResults"), token=token
        )
        return parse_success_rows(parse_delimited(raw, self._delimiter(job_id)))

    async def fetch_failures(
        self, job_id: str, token: CancellationToken | None = None
    ) -> list[FailedRecord]:
        raw = await self._client.get(
            self._path("ingest", job_id, "failedResults"), token=token
        )
        return parse_failure_rows(parse_delimited(raw, self._delimiter(job_id)))

    async def fetch_unprocessed(
        self, job_id: str, token: CancellationToken | None = None
    ) -> list[dict[str, Any]]:
        """Rows the platform never attempted (e.g. after an abort)."""
        raw = await self._client.get(
            self._path("ingest", job_id, "unprocessedrecords"), token=token
        )
        return parse_delimited(raw, self._delimiter(job_id))

    async def fetch_query_results(
        self,
        job_id: str,
        max_records: int | None = None,
        locator: str | None = None,
        token: CancellationToken | None = None,
    ) -> QueryResultPage:
        """
        Fetch one page of a query job's results.

        Pass the returned page's locator back in to get the next page.
        """
        params: dict[str, str] = {}
        if max_records is not None:
            params["maxRecords"] = str(int(max_records))
        if locator:
            params["locator"] = locator
        path = self._path("query", job_id, "results")
        if params:
            path = f"{path}?{urlencode(params)}"

        response = await self._client.request("GET", path, token=token)
        next_locator = response.header(LOCATOR_HEADER)
        if not next_locator or next_locator == "null":
            next_locator = None
        count = response.header(NUMBER_OF_RECORDS_HEADER)

        return QueryResultPage(
            records=parse_delimited(response.body, self._delimiter(job_id)),
            locator=next_locator,
            number_of_records=int(count) if count and count.isdigit() else None,
        )

    async def iter_query_results(
        self,
        job_id: str,
        max_records: int | None = None,
        token: CancellationToken | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield every result row of a query job, following locators."""
        locator: str | None = None
        while True:
            page = await self.fetch_query_results(
                job_id, max_records=max_records, locator=locator, token=token
            )
            for record in page.records:
                yield record
            if page.done:
                return
            locator = page.locator

    async def list_jobs(
        self,
        query_jobs: bool = False,
        concurrency_mode: str | None = None,
        is_pk_chunking_enabled: bool | None = None,
        token: CancellationToken | None = None,
    ) -> list[Job]:
        """
        List jobs, following nextRecordsUrl until done.

        Args:
            query_jobs: List query jobs instead of ingest jobs
            concurrency_mode: Only jobs with this concurrencyMode ("Parallel")
            is_pk_chunking_enabled: Only jobs with PK chunking on or off
            token: Cancels the listing
        """
        params: dict[str, str] = {}
        if concurrency_mode:
            params["concurrencyMode"] = concurrency_mode
        if is_pk_chunking_enabled is not None:
            params["isPkChunkingEnabled"] = "true" if is_pk_chunking_enabled else "false"
        path: str | None = self._path("query" if query_jobs else "ingest")
        if params:
            path = f"{path}?{urlencode(params)}"

        jobs: list[Job] = []
        while path:
            raw = await self._client.get(path, token=token)
            try:
                data = json.loads(raw)
            except ValueError as e:
                raise APIError("Unexpected job list payload", raw_body=raw, cause=e) from e
            if not isinstance(data, dict):
                raise APIError("Unexpected job list payload", raw_body=raw)
            for item in data.get("records") or []:
                try:
                    jobs.append(Job.model_validate(item))
                except pydantic.ValidationError as e:
                    raise APIError(
                        "Unexpected job in job list", raw_body=raw, cause=e
                    ) from e
            path = None if data.get("done", True) else data.get("nextRecordsUrl")
        return jobs


__all__ = ["BulkJobController", "DEFAULT_POLL_INTERVAL"]
