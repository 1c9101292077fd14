"""Persisted ingestion jobs run on a bounded worker pool.

``IngestionRunner.start()`` writes a ``pending`` job row and returns it at
once; a pool thread then moves it through ``running`` to ``completed`` or
``failed``. Progress is only observable by polling the job row.

Within a job, groups are processed one after another. A group whose
processing fails is counted in ``groups_failed`` and skipped; the job still
completes unless every group failed.
"""

from __future__ import annotations

import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace

import structlog

from greenlight.ai.structuring import StructuringOrchestrator
from greenlight.db.connection import Database
from greenlight.db.models import DraftDocument, IngestionJob, JobStatus
from greenlight.db.repository import Repository, utc_now
from greenlight.errors import NotFoundError
from greenlight.ingest.grouping import (
    DEFAULT_MAX_GROUP_SIZE,
    DEFAULT_TIME_THRESHOLD_SECONDS,
    ContentItem,
    group_items,
)

logger = structlog.get_logger(__name__)

CONTENT_UPDATED_NOTE = "Content has been updated"


def mark_if_update(repo: Repository, draft: DraftDocument) -> DraftDocument:
    """Flag *draft* as an update when an approved document shares its source id."""
    if not draft.source_external_id:
        return draft
    existing = repo.get_document_by_source(draft.organization_id, draft.source_external_id)
    if existing is None:
        return draft
    draft.is_update = True
    draft.original_document_id = existing.id
    draft.changes_made = [CONTENT_UPDATED_NOTE] if existing.content != draft.content else []
    return draft


class IngestionRunner:
    """Runs ingestion jobs in background threads.

    Each job opens its own database connection; connections are never
    shared between threads.

    Args:
        db: Database whose connections the workers open.
        orchestrator: Structuring orchestrator shared by all jobs.
        workers: Maximum number of jobs running concurrently.
    """

    def __init__(
        self,
        db: Database,
        orchestrator: StructuringOrchestrator,
        workers: int = 2,
        max_group_size: int = DEFAULT_MAX_GROUP_SIZE,
        time_threshold_seconds: float = DEFAULT_TIME_THRESHOLD_SECONDS,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._db = db
        self._orchestrator = orchestrator
        self._max_group_size = max_group_size
        self._time_threshold = time_threshold_seconds
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="greenlight-ingest")
        self._futures: dict[str, Future[IngestionJob]] = {}

    def __enter__(self) -> IngestionRunner:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown(wait=True)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, items: list[ContentItem], organization_id: str, source_label: str = "") -> IngestionJob:
        """Persist a pending job for *items* and schedule it. Returns immediately."""
        job = IngestionJob(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            source_label=source_label,
            items_total=len(items),
        )
        conn = self._db.connect()
        try:
            Repository(conn).add_job(job)
        finally:
            conn.close()

        self._futures[job.id] = self._pool.submit(self.run, replace(job), list(items))
        logger.info("job_started", job_id=job.id, items=len(items), organization_id=organization_id)
        return job

    def wait(self, job_id: str, timeout: float | None = None) -> IngestionJob:
        """Block until a job started by this runner finishes; returns its final row.

        A finished job is forgotten once its result has been handed out, so
        it can be waited on only once. A timed-out wait may be retried.

        Raises:
            TimeoutError: If the job is still running after *timeout* seconds.
            NotFoundError: If this runner is not tracking *job_id*.
        """
        future = self._futures.get(job_id)
        if future is None:
            raise NotFoundError("Job", job_id)
        try:
            job = future.result(timeout=timeout)
        except TimeoutError:
            raise
        except Exception:
            self._futures.pop(job_id, None)
            raise
        self._futures.pop(job_id, None)
        return job

    def run(self, job: IngestionJob, items: list[ContentItem]) -> IngestionJob:
        """Process *job* synchronously on the calling thread."""
        conn = self._db.connect()
        repo = Repository(conn)
        try:
            return self._run(repo, job, items)
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, repo: Repository, job: IngestionJob, items: list[ContentItem]) -> IngestionJob:
        log = logger.bind(job_id=job.id)
        job.status = JobStatus.RUNNING
        job.started_at = utc_now()
        repo.update_job(job)

        try:
            groups = group_items(items, self._max_group_size, self._time_threshold)
            job.groups_total = len(groups)
            repo.update_job(job)

            for index, group in enumerate(groups):
                try:
                    draft = self._orchestrator.to_draft(group, job.organization_id)
                    mark_if_update(repo, draft)
                    repo.add_draft(draft)
                except Exception as exc:
                    job.groups_failed += 1
                    log.error("group_failed", group=index, source_id=group.source_id, error=str(exc))
                else:
                    job.drafts_created += 1
                    job.tokens_used += int(draft.processing_metadata.get("tokens_used", 0))
                    log.info("draft_stored", draft_id=draft.id, triage=draft.triage_level.value, is_update=draft.is_update)
                job.groups_processed += 1
                repo.update_job(job)

            if job.groups_total and job.groups_failed == job.groups_total:
                job.status = JobStatus.FAILED
                job.error = f"All {job.groups_total} group(s) failed"
            else:
                job.status = JobStatus.COMPLETED
        except Exception as exc:
            job.status = JobStatus.FAILED
            job.error = str(exc)
            log.error("job_failed", error=str(exc))

        job.completed_at = utc_now()
        repo.update_job(job)
        log.info(
            "job_finished",
            status=job.status.value,
            drafts=job.drafts_created,
            failed_groups=job.groups_failed,
        )
        return job
