"""
Crawl Job Exceptions

Error taxonomy shared by the crawl backend adapter, the job orchestrator,
the storage layer and the HTTP routers. ``retryable`` tells callers whether
a new attempt may succeed without operator action.
"""


class CrawlError(Exception):
    """Base exception for the crawl subsystem."""
    retryable = False


class DealerNotFound(CrawlError):
    """Raised when the dealer does not exist."""
    def __init__(self, dealer_id: str):
        self.dealer_id = dealer_id
        super().__init__(f"Dealer {dealer_id} not found")


class DealerMisconfigured(CrawlError):
    """Raised when the dealer has no website URL to crawl."""
    def __init__(self, dealer_id: str):
        self.dealer_id = dealer_id
        super().__init__(f"Dealer {dealer_id} has no website URL configured")


class DealerLookupError(CrawlError):
    """Raised when the dealer repository cannot be reached."""
    retryable = True


class DealerBusy(CrawlError):
    """Raised when a dealer already has an active crawl and jobs are serialized."""
    retryable = True

    def __init__(self, dealer_id: str):
        self.dealer_id = dealer_id
        super().__init__(f"Dealer {dealer_id} already has a crawl in progress")


class ConfigurationError(CrawlError):
    """Raised when configuration is invalid or missing."""
    def __init__(self, message: str):
        super().__init__(f"Configuration error: {message}")


class BackendUnavailable(CrawlError):
    """Raised on submission/poll transport failures or unusable backend replies."""
    retryable = True


class BackendJobFailed(CrawlError):
    """Raised when the backend reports the crawl as failed."""
    retryable = True


class PollTimeout(CrawlError):
    """Raised when polling exceeds the configured deadline."""
    retryable = True

    def __init__(self, backend_job_id: str, timeout: float):
        self.backend_job_id = backend_job_id
        self.timeout = timeout
        super().__init__(f"Crawl {backend_job_id} did not finish within {timeout:g} seconds")


class JobCancelled(CrawlError):
    """Raised when a running job is cancelled."""
    retryable = True

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} was cancelled")


class PersistenceError(CrawlError):
    """Raised when a result or ledger entry cannot be written or read."""


class JobNotFound(CrawlError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class ResultNotFound(CrawlError):
    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Crawl result {reference} not found")


class NormalizationSkipped(CrawlError):
    """Raised for a single raw record that cannot become a vehicle. Never fatal."""
