"""Processing job queue backed by the processing_jobs table.

Operations:
- enqueue_job: insert a job in `queued`.
- claim_next_job: atomically move the oldest matching `queued` job to `processing`.
- complete_job / fail_job: conditional transitions out of `processing`.
- cleanup_failed_jobs: operator bulk reset/delete of `failed` jobs.
- release_stale_jobs: operator lease expiry for jobs stuck in `processing`.
- get_job / job_status_counts: read helpers.

Every transition is a single conditional UPDATE, so concurrent callers can never
both win: claim is `UPDATE ... WHERE id = (oldest queued, FOR UPDATE SKIP LOCKED)
AND status = 'queued' RETURNING id`. The queue has no poll loop; workers are
invoked externally and each invocation claims at most one job.

All functions take a Session and leave committing to the caller (session_scope).
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, aliased

from legal_rag.config import settings
from legal_rag.models import JobStatus, JobType, ProcessingJob, utcnow

logger = logging.getLogger(__name__)

LEASE_EXPIRED_MESSAGE = "lease expired: worker did not complete the job in time"


def _job_types(job_types: Iterable[Any]) -> List[JobType]:
    return [t if isinstance(t, JobType) else JobType(str(t)) for t in job_types]


def _known_job_types(job_types: Iterable[Any]) -> List[JobType]:
    """Like _job_types, but unknown values are dropped with a warning instead of raising."""
    known: List[JobType] = []
    for t in job_types:
        try:
            known.extend(_job_types([t]))
        except ValueError:
            logger.warning("Ignoring unknown job type %r in claim request", t)
    return known


def enqueue_job(db: Session, job_type: Any, job_data: Dict[str, Any]) -> ProcessingJob:
    """Create a new job in `queued`.

    Args:
        db: SQLAlchemy session.
        job_type: JobType or its string value.
        job_data: JSON payload; document jobs carry `document_id`.

    Returns:
        ProcessingJob: The flushed row (id assigned).
    """
    job = ProcessingJob(
        job_type=_job_types([job_type])[0],
        job_data=dict(job_data),
        status=JobStatus.QUEUED,
        attempts=0,
    )
    db.add(job)
    db.flush()
    logger.info("Enqueued job %s type=%s data=%s", job.id, job.job_type.value, job.job_data)
    return job


def claim_next_job(db: Session, worker_id: str, job_types: Iterable[Any]) -> Optional[ProcessingJob]:
    """Atomically claim the oldest queued job of one of the given types.

    Args:
        db: SQLAlchemy session; commit promptly so other workers see the claim.
        worker_id: Identity stamped on the claimed job.
        job_types: Acceptable job types; values that are not known types match nothing.

    Returns:
        Optional[ProcessingJob]: The claimed job, or None if nothing matched or a
        concurrent worker won the race. Callers simply re-invoke later.
    """
    types = _known_job_types(job_types)
    if not types:
        return None

    # aliased so the subquery is not correlated against the UPDATE target
    queued = aliased(ProcessingJob)
    oldest_queued = (
        select(queued.id)
        .where(queued.status == JobStatus.QUEUED, queued.job_type.in_(types))
        .order_by(queued.created_at, queued.id)
        .limit(1)
        .with_for_update(skip_locked=True)
        .scalar_subquery()
    )
    now = utcnow()
    stmt = (
        update(ProcessingJob)
        .where(ProcessingJob.id == oldest_queued, ProcessingJob.status == JobStatus.QUEUED)
        .values(
            status=JobStatus.PROCESSING,
            worker_id=worker_id,
            claimed_at=now,
            updated_at=now,
        )
        .returning(ProcessingJob.id)
        .execution_options(synchronize_session=False)
    )
    job_id = db.execute(stmt).scalar_one_or_none()
    if job_id is None:
        return None

    job = db.execute(
        select(ProcessingJob)
        .where(ProcessingJob.id == job_id)
        .execution_options(populate_existing=True)
    ).scalar_one()
    logger.info("Worker %s claimed job %s (%s)", worker_id, job.id, job.job_type.value)
    return job


def _in_flight(job_id: int, worker_id: Optional[str]):
    conds = [ProcessingJob.id == job_id, ProcessingJob.status == JobStatus.PROCESSING]
    if worker_id is not None:
        conds.append(ProcessingJob.worker_id == worker_id)
    return conds


def complete_job(db: Session, job_id: int, result: Any, worker_id: Optional[str] = None) -> bool:
    """Transition processing -> completed and store the result payload.

    Returns:
        bool: False (and a warning) when the job is not in `processing` or is held
        by a different worker; this is not an error.
    """
    now = utcnow()
    res = db.execute(
        update(ProcessingJob)
        .where(*_in_flight(job_id, worker_id))
        .values(status=JobStatus.COMPLETED, result=result, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        logger.warning("complete_job ignored: job %s is not processing (worker=%s)", job_id, worker_id)
        return False
    logger.info("Job %s completed", job_id)
    return True


def fail_job(db: Session, job_id: int, error_message: str, worker_id: Optional[str] = None) -> bool:
    """Transition processing -> failed, record the error and bump attempts. No retry."""
    now = utcnow()
    res = db.execute(
        update(ProcessingJob)
        .where(*_in_flight(job_id, worker_id))
        .values(
            status=JobStatus.FAILED,
            error_message=error_message,
            attempts=ProcessingJob.attempts + 1,
            completed_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        logger.warning("fail_job ignored: job %s is not processing (worker=%s)", job_id, worker_id)
        return False
    logger.info("Job %s failed: %s", job_id, error_message)
    return True


def cleanup_failed_jobs(
    db: Session,
    action: str = "reset",
    job_types: Optional[Iterable[Any]] = None,
    error_contains: Optional[str] = None,
    max_attempts: Optional[int] = None,
) -> int:
    """Bulk recovery of failed jobs, triggered by an operator.

    Args:
        db: SQLAlchemy session.
        action: 'reset' puts matching jobs back in `queued` (attempts are kept);
            'delete' removes them.
        job_types: Only these job types.
        error_contains: Only jobs whose error message contains this substring.
        max_attempts: Only jobs with attempts below this value.

    Returns:
        int: Number of jobs affected.
    """
    conds = [ProcessingJob.status == JobStatus.FAILED]
    if job_types:
        conds.append(ProcessingJob.job_type.in_(_job_types(job_types)))
    if error_contains:
        conds.append(ProcessingJob.error_message.contains(error_contains, autoescape=True))
    if max_attempts is not None:
        conds.append(ProcessingJob.attempts < max_attempts)

    if action == "delete":
        stmt = delete(ProcessingJob).where(*conds)
    elif action == "reset":
        stmt = (
            update(ProcessingJob)
            .where(*conds)
            .values(
                status=JobStatus.QUEUED,
                worker_id=None,
                error_message=None,
                claimed_at=None,
                completed_at=None,
                updated_at=utcnow(),
            )
        )
    else:
        raise ValueError(f"Unknown cleanup action: {action}")

    affected = db.execute(stmt.execution_options(synchronize_session=False)).rowcount
    logger.info("Cleanup %s affected %d failed jobs", action, affected)
    return affected


def release_stale_jobs(db: Session, lease_seconds: Optional[int] = None) -> int:
    """Fail jobs held in `processing` longer than the lease.

    The job goes to `failed` rather than back to `queued`, so a slow worker that
    eventually reports back finds its complete/fail ignored and no second worker
    ever runs the job concurrently. Recovery then goes through cleanup_failed_jobs.
    """
    lease = lease_seconds if lease_seconds is not None else settings.JOB_LEASE_SECONDS
    now = utcnow()
    cutoff = now - timedelta(seconds=lease)
    affected = db.execute(
        update(ProcessingJob)
        .where(ProcessingJob.status == JobStatus.PROCESSING, ProcessingJob.claimed_at < cutoff)
        .values(
            status=JobStatus.FAILED,
            error_message=LEASE_EXPIRED_MESSAGE,
            attempts=ProcessingJob.attempts + 1,
            completed_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    ).rowcount
    if affected:
        logger.warning("Released %d stale jobs (lease=%ss)", affected, lease)
    return affected


def get_job(db: Session, job_id: int) -> Optional[ProcessingJob]:
    return db.get(ProcessingJob, job_id, populate_existing=True)


def job_status_counts(db: Session) -> Dict[str, int]:
    """Number of jobs per status, with every status present."""
    counts = {s.value: 0 for s in JobStatus}
    rows = db.execute(
        select(ProcessingJob.status, func.count(ProcessingJob.id)).group_by(ProcessingJob.status)
    ).all()
    for status, n in rows:
        key = status.value if isinstance(status, JobStatus) else str(status)
        counts[key] = int(n)
    return counts
