from datetime import datetime
from typing import Dict, List, Optional

import pytest

from app.models.dealership import Dealership
from app.models.models import BackendJobState, JobHandle, PollResult
from app.models.vehicle import RawVehicleRecord
from app.src.crawl_job.job_orchestrator import JobOrchestrator
from app.src.storage.job_ledger import JobLedger
from app.src.storage.result_store import ResultStore
from app.utils.exceptions import ConfigurationError


DEALER_URL = "https://carsforsale.example.com"

VALID_RECORDS = [
    {"make": "Toyota", "model": "Camry", "year": "2020", "price": "$22,500", "mileage": "25,000",
     "vin": "JT2BF22K1W0123456", "imageUrl": "https://img.example.com/1.jpg",
     "url": f"{DEALER_URL}/vehicles/toyota-camry"},
    {"make": "Honda", "model": "Accord", "year": 2019, "price": 20800, "mileage": 32000,
     "vin": "JH4KA7660PC003448", "imageUrl": "https://img.example.com/2.jpg",
     "url": f"{DEALER_URL}/vehicles/honda-accord"},
    {"make": "Ford", "model": "F-150", "year": "2021", "price": "38,900", "mileage": "15000",
     "vin": "1FTFW1ET5EFC12345", "imageUrl": "https://img.example.com/3.jpg",
     "url": f"{DEALER_URL}/vehicles/ford-f150"},
]


class FakeBackend:
    """In-memory crawl backend: a scripted list of poll states per submission."""

    def __init__(self, records=None, states=None, api_key: Optional[str] = "test-key",
                 submit_error: Optional[Exception] = None, poll_error: Optional[Exception] = None):
        self.api_key = api_key
        self.records = VALID_RECORDS if records is None else records
        self.states = list(states or [BackendJobState.SCRAPING, BackendJobState.COMPLETED])
        self.submit_error = submit_error
        self.poll_error = poll_error
        self.submitted: List[str] = []
        self.polls = 0
        self.cancelled: List[str] = []

    def submit(self, url, config=None) -> JobHandle:
        if not self.api_key:
            raise ConfigurationError("FIRECRAWL_API_KEY is not configured")
        if self.submit_error:
            raise self.submit_error
        self.submitted.append(url)
        return JobHandle(job_id=f"fc-{len(self.submitted)}", url=url)

    def poll_status(self, handle) -> PollResult:
        self.polls += 1
        if self.poll_error:
            raise self.poll_error
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        if state is BackendJobState.COMPLETED:
            return PollResult(
                status=state,
                completed_count=1,
                total_count=1,
                raw_records=[RawVehicleRecord.model_validate(r) if isinstance(r, dict) else r for r in self.records],
            )
        if state is BackendJobState.FAILED:
            return PollResult(status=state, error="Crawl failed on backend")
        return PollResult(status=state, completed_count=0, total_count=1)

    def cancel(self, handle) -> bool:
        self.cancelled.append(handle.job_id)
        return True


class FakeDealerAPI:
    def __init__(self, dealers: Optional[Dict[str, Dealership]] = None, update_error: Optional[Exception] = None):
        self.dealers = dealers if dealers is not None else {
            "d1": Dealership(id="d1", name="Cars For Sale", website_url=DEALER_URL, vehicle_count=0),
            "d2": Dealership(id="d2", name="No Website Motors", website_url=None),
        }
        self.update_error = update_error
        self.updates: List[tuple] = []

    def get_dealer(self, dealer_id):
        return self.dealers.get(dealer_id)

    def update_summary(self, dealer_id, last_scraped: datetime, vehicle_count: int):
        self.updates.append((dealer_id, last_scraped, vehicle_count))
        if self.update_error:
            raise self.update_error
        dealer = self.dealers[dealer_id]
        dealer.last_scraped = last_scraped
        dealer.vehicle_count = vehicle_count


@pytest.fixture
def ledger(tmp_path):
    return JobLedger(base_dir=str(tmp_path / "jobs"))


@pytest.fixture
def result_store(tmp_path):
    return ResultStore(base_dir=str(tmp_path / "crawls"))


@pytest.fixture
def dealer_api():
    return FakeDealerAPI()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def make_orchestrator(ledger, result_store, dealer_api):
    created = []

    def _make(backend, **kwargs):
        kwargs.setdefault("poll_interval", 0)
        kwargs.setdefault("poll_timeout", 5)
        orchestrator = JobOrchestrator(
            backend=backend,
            ledger=ledger,
            result_store=result_store,
            dealer_api=kwargs.pop("dealer_api", dealer_api),
            **kwargs,
        )
        created.append(orchestrator)
        return orchestrator

    yield _make
    for orchestrator in created:
        orchestrator.shutdown()
