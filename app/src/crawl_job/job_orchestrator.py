import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Optional, Tuple

from app.api.crawl_backend import CrawlBackendAPI
from app.api.dealership_data import DealershipDataAPI
from app.config.config import settings
from app.models.dealership import Dealership
from app.models.models import BackendJobState, CrawlOutcome, JobHandle, PollResult
from app.models.schemas import CrawlConfig, CrawlJob, CrawlMetadata, CrawlResult
from app.src.crawl_job.vehicle_normalizer import VehicleNormalizer
from app.src.storage.job_ledger import JobLedger
from app.src.storage.result_store import ResultStore
from app.utils.exceptions import (
    BackendJobFailed, BackendUnavailable, ConfigurationError, CrawlError, DealerBusy,
    DealerMisconfigured, DealerNotFound, JobCancelled, PersistenceError, PollTimeout,
)
from app.utils.slack_notifier import SlackClient, build_slack_notifier
from app.utils.utils import Utils


class JobOrchestrator:
    """
    Drives crawl jobs from submission to a terminal ledger state.

    Pending -> Submitting -> Polling -> Completed | Failed. Submission always
    happens on the caller's thread so configuration problems surface directly;
    polling runs on the caller's thread for ``run_crawl`` and on the worker
    pool for ``start_crawl``. Each job polls with its own cancel event and
    deadline, so one stuck backend crawl never holds up another job.
    """

    def __init__(self, backend: CrawlBackendAPI, ledger: JobLedger, result_store: ResultStore,
                 dealer_api: DealershipDataAPI, normalizer: Optional[VehicleNormalizer] = None,
                 slack_notifier: Optional[SlackClient] = None,
                 poll_interval: float = settings.POLL_INTERVAL, poll_timeout: float = settings.POLL_TIMEOUT,
                 serialize_dealer_jobs: bool = settings.SERIALIZE_DEALER_JOBS,
                 max_workers: int = settings.MAX_THREAD):
        self.backend = backend
        self.ledger = ledger
        self.result_store = result_store
        self.dealer_api = dealer_api
        self.normalizer = normalizer or VehicleNormalizer()
        self.slack_notifier = slack_notifier
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.serialize_dealer_jobs = serialize_dealer_jobs
        self.max_workers = max_workers

        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._cancel_events: Dict[str, threading.Event] = {}
        self._futures: Dict[str, Future] = {}
        self._active_dealers: Dict[str, int] = {}

    # ---- public operations -------------------------------------------------

    def run_crawl(self, dealer_id: str, config: Optional[CrawlConfig] = None) -> CrawlOutcome:
        """
        Run one crawl for a dealer and wait for its terminal state.

        :raises DealerNotFound, DealerMisconfigured, DealerBusy: before any ledger entry exists.
        :raises ConfigurationError: after the ledger entry has been marked failed.
        :return: The outcome; backend, timeout and persistence failures are reported here, not raised.
        """
        dealer, job = self._prepare(dealer_id)
        started = time.monotonic()
        try:
            job, handle, error = self._submit(job, dealer, config)
            if handle is None:
                return CrawlOutcome(job=job, error=error)
            return self._follow(job, dealer, handle, started)
        finally:
            self._close(job)

    def start_crawl(self, dealer_id: str, config: Optional[CrawlConfig] = None) -> CrawlJob:
        """Submit a crawl and poll it on the worker pool. Returns the ledger entry right away."""
        dealer, job = self._prepare(dealer_id)
        started = time.monotonic()
        try:
            job, handle, _ = self._submit(job, dealer, config)
        except BaseException:
            self._close(job)
            raise
        if handle is None:
            self._close(job)
            return job

        executor = self._get_executor()
        # Registered under the lock so the worker's cleanup always finds the entry
        with self._lock:
            self._futures[job.id] = executor.submit(self._follow_and_close, job, dealer, handle, started)
        return job

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[CrawlOutcome]:
        """
        Block until a background job finishes.

        Finished jobs are forgotten, so None means the job is no longer running
        here (or never was); its final state is in the ledger.
        """
        with self._lock:
            future = self._futures.get(job_id)
        if future is None:
            return None
        return future.result(timeout=timeout)

    def cancel(self, job_id: str) -> bool:
        """Ask an active job to stop polling. False when the job is not active."""
        with self._lock:
            event = self._cancel_events.get(job_id)
        if event is None:
            return False
        event.set()
        logging.info(f"Cancellation requested for job {job_id}")
        return True

    def is_active(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._cancel_events

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            events = list(self._cancel_events.values())
            executor = self._executor
            self._executor = None
        for event in events:
            event.set()
        if executor:
            executor.shutdown(wait=wait)

    # ---- state machine -----------------------------------------------------

    def _load_dealer(self, dealer_id: str) -> Dealership:
        dealer = self.dealer_api.get_dealer(dealer_id)
        if dealer is None:
            raise DealerNotFound(dealer_id)
        if not dealer.website_url:
            raise DealerMisconfigured(dealer_id)
        return dealer

    def _prepare(self, dealer_id: str) -> Tuple[Dealership, CrawlJob]:
        dealer = self._load_dealer(dealer_id)

        with self._lock:
            if self.serialize_dealer_jobs and self._active_dealers.get(dealer.id):
                raise DealerBusy(dealer.id)
            self._active_dealers[dealer.id] = self._active_dealers.get(dealer.id, 0) + 1

        try:
            job = self.ledger.create(dealer.id)
        except BaseException:
            self._release_dealer(dealer.id)
            raise

        with self._lock:
            self._cancel_events[job.id] = threading.Event()
        return dealer, job

    def _release_dealer(self, dealer_id: str) -> None:
        with self._lock:
            remaining = self._active_dealers.get(dealer_id, 0) - 1
            if remaining > 0:
                self._active_dealers[dealer_id] = remaining
            else:
                self._active_dealers.pop(dealer_id, None)

    def _close(self, job: CrawlJob) -> None:
        with self._lock:
            self._cancel_events.pop(job.id, None)
            self._futures.pop(job.id, None)
        self._release_dealer(job.dealer_id)

    def _submit(self, job: CrawlJob, dealer: Dealership,
                config: Optional[CrawlConfig]) -> Tuple[CrawlJob, Optional[JobHandle], Optional[CrawlError]]:
        logging.info(f"Submitting crawl of {dealer.website_url} for dealer {dealer.id} (job {job.id})")
        try:
            handle = self.backend.submit(dealer.website_url, config)
        except ConfigurationError as err:
            self._fail(job, err)
            raise
        except BackendUnavailable as err:
            return self._fail(job, err), None, err

        try:
            return self.ledger.mark_running(job.id, handle.job_id), handle, None
        except PersistenceError as err:
            self._cancel_backend(handle)
            return self._fail(job, err), None, err

    def _poll(self, job: CrawlJob, handle: JobHandle) -> PollResult:
        with self._lock:
            cancel_event = self._cancel_events.get(job.id) or threading.Event()
        deadline = time.monotonic() + self.poll_timeout

        while True:
            if cancel_event.is_set():
                raise JobCancelled(job.id)

            status = self.backend.poll_status(handle)
            if status.status is BackendJobState.COMPLETED:
                return status
            if status.status is BackendJobState.FAILED:
                raise BackendJobFailed(status.error or f"Crawl {handle.job_id} failed")

            logging.info(
                f"Crawl {handle.job_id} {status.status.value}: {status.completed_count}/{status.total_count} pages"
            )
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise PollTimeout(handle.job_id, self.poll_timeout)
            if cancel_event.wait(min(self.poll_interval, remaining)):
                raise JobCancelled(job.id)

    def _follow(self, job: CrawlJob, dealer: Dealership, handle: JobHandle, started: float) -> CrawlOutcome:
        try:
            status = self._poll(job, handle)
            vehicles = self.normalizer.normalize_batch(status.raw_records, dealer.website_url)
            result = CrawlResult(
                vehicles=vehicles,
                metadata=CrawlMetadata(
                    dealer_name=dealer.name,
                    total_found=len(vehicles),
                    website=dealer.website_url,
                    crawl_date=Utils.utc_now(),
                    crawl_duration=round(time.monotonic() - started, 3),
                ),
            )
            result_ref = self.result_store.save(dealer.id, result)
            job = self.ledger.mark_completed(job.id, result_ref)
        except CrawlError as err:
            if isinstance(err, (JobCancelled, PollTimeout)):
                self._cancel_backend(handle)
            return CrawlOutcome(job=self._fail(job, err), error=err)
        except Exception as err:
            logging.exception(f"Unexpected error while running job {job.id}")
            error = CrawlError(f"Unexpected error: {err}")
            return CrawlOutcome(job=self._fail(job, error), error=error)

        self._update_dealer_summary(dealer.id, len(vehicles))
        logging.info(f"✅ Crawl job {job.id} for dealer {dealer.id} found {len(vehicles)} vehicles")
        return CrawlOutcome(job=job, result=result)

    def _follow_and_close(self, job: CrawlJob, dealer: Dealership, handle: JobHandle, started: float) -> CrawlOutcome:
        try:
            return self._follow(job, dealer, handle, started)
        finally:
            self._close(job)

    # ---- side effects ------------------------------------------------------

    def _fail(self, job: CrawlJob, error: CrawlError) -> CrawlJob:
        try:
            job = self.ledger.mark_failed(job.id, str(error), type(error).__name__)
        except PersistenceError as err:
            logging.error(f"❌ Could not record failure of job {job.id}: {err}")
        if self.slack_notifier:
            self.slack_notifier.send_message(
                message=f"❌ Crawl job {job.id} for dealer {job.dealer_id} failed: {error}"
            )
        return job

    def _cancel_backend(self, handle: JobHandle) -> None:
        try:
            self.backend.cancel(handle)
        except CrawlError as err:
            logging.warning(f"⚠️ Could not cancel backend crawl {handle.job_id}: {err}")

    def _update_dealer_summary(self, dealer_id: str, vehicle_count: int) -> None:
        try:
            self.dealer_api.update_summary(dealer_id, last_scraped=Utils.utc_now(), vehicle_count=vehicle_count)
        except Exception as err:
            logging.error(f"❌ Could not update summary of dealer {dealer_id}: {err}")

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="crawl-job")
            return self._executor


def build_orchestrator() -> JobOrchestrator:
    return JobOrchestrator(
        backend=CrawlBackendAPI(api_key=settings.FIRECRAWL_API_KEY),
        ledger=JobLedger(),
        result_store=ResultStore(),
        dealer_api=DealershipDataAPI(),
        slack_notifier=build_slack_notifier(),
    )
