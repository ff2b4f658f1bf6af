import logging
import os
import threading
import uuid
from contextlib import contextmanager
from typing import List, Optional

from app.config.config import settings
from app.models.schemas import CrawlJob, JobStatus
from app.utils.exceptions import JobNotFound, PersistenceError
from app.utils.utils import Utils


# Jobs hash onto a fixed set of locks
LOCK_STRIPES = 64


class JobLedger:
    """
    Durable record of crawl job transitions, one JSON file per job.

    Transitions: pending -> running -> completed | failed, or pending -> failed.
    The first terminal write wins: later ``mark_completed`` / ``mark_failed``
    calls on a terminal job are logged and leave the record untouched.
    """

    def __init__(self, base_dir: str = settings.jobs_dir):
        self.base_dir = base_dir
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    @contextmanager
    def _job_lock(self, job_id: str):
        with self._locks[hash(job_id) % LOCK_STRIPES]:
            yield

    def _path(self, job_id: str) -> str:
        try:
            return os.path.join(self.base_dir, f"{Utils.safe_key(job_id)}.json")
        except ValueError as err:
            raise JobNotFound(job_id) from err

    def _write(self, job: CrawlJob) -> None:
        try:
            Utils.write_text_atomic(self._path(job.id), job.model_dump_json(by_alias=True, indent=2))
        except OSError as err:
            logging.error(f"❌ Error writing ledger entry {job.id}: {err}")
            raise PersistenceError(f"Could not write ledger entry {job.id}: {err}") from err

    def _read(self, job_id: str) -> CrawlJob:
        path = self._path(job_id)
        if not os.path.isfile(path):
            raise JobNotFound(job_id)
        try:
            with open(path, "r", encoding="utf-8") as file:
                return CrawlJob.model_validate_json(file.read())
        except (OSError, ValueError) as err:
            raise PersistenceError(f"Could not read ledger entry {job_id}: {err}") from err

    def create(self, dealer_id: str) -> CrawlJob:
        job = CrawlJob(
            id=uuid.uuid4().hex,
            dealer_id=dealer_id,
            status=JobStatus.PENDING,
            created_at=Utils.utc_now(),
        )
        with self._job_lock(job.id):
            self._write(job)
        logging.info(f"Created crawl job {job.id} for dealer {dealer_id}")
        return job

    def get(self, job_id: str) -> CrawlJob:
        with self._job_lock(job_id):
            return self._read(job_id)

    def mark_running(self, job_id: str, backend_job_id: Optional[str] = None) -> CrawlJob:
        with self._job_lock(job_id):
            job = self._read(job_id)
            if job.status is not JobStatus.PENDING:
                logging.warning(f"⚠️ Job {job_id} is {job.status.value}, not moving it to running")
                return job
            job.status = JobStatus.RUNNING
            job.backend_job_id = backend_job_id
            self._write(job)
        logging.info(f"Job {job_id} running (backend crawl {backend_job_id})")
        return job

    def mark_completed(self, job_id: str, result_ref: str) -> CrawlJob:
        with self._job_lock(job_id):
            job = self._read(job_id)
            if job.status.is_terminal:
                logging.warning(f"⚠️ Job {job_id} already {job.status.value}, ignoring completion")
                return job
            job.status = JobStatus.COMPLETED
            job.completed_at = Utils.utc_now()
            job.result_ref = result_ref
            self._write(job)
        logging.info(f"✅ Job {job_id} completed: {result_ref}")
        return job

    def mark_failed(self, job_id: str, error_message: str, error_class: Optional[str] = None) -> CrawlJob:
        with self._job_lock(job_id):
            job = self._read(job_id)
            if job.status.is_terminal:
                logging.warning(f"⚠️ Job {job_id} already {job.status.value}, ignoring failure: {error_message}")
                return job
            job.status = JobStatus.FAILED
            job.completed_at = Utils.utc_now()
            job.error = error_message
            job.error_class = error_class
            self._write(job)
        logging.error(f"❌ Job {job_id} failed: {error_message}")
        return job

    def list_by_dealer(self, dealer_id: str) -> List[CrawlJob]:
        """All jobs of a dealer, newest first. Unreadable entries are skipped."""
        if not os.path.isdir(self.base_dir):
            return []
        jobs = []
        for name in os.listdir(self.base_dir):
            if not name.endswith(".json") or name.startswith("."):
                continue
            try:
                job = self.get(name[:-len(".json")])
            except (JobNotFound, PersistenceError) as err:
                logging.warning(f"⚠️ Skipping unreadable ledger entry {name}: {err}")
                continue
            if job.dealer_id == dealer_id:
                jobs.append(job)
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)
