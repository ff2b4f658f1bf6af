from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from app.models.schemas import CrawlJob, CrawlResult
from app.models.vehicle import RawVehicleRecord
from app.utils.exceptions import CrawlError


class BackendJobState(str, Enum):
    QUEUED = "queued"
    SCRAPING = "scraping"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobHandle:
    job_id: str
    url: str


@dataclass
class PollResult:
    status: BackendJobState
    completed_count: int = 0
    total_count: int = 0
    raw_records: Optional[List[RawVehicleRecord]] = None
    error: Optional[str] = None


@dataclass
class CrawlOutcome:
    job: CrawlJob
    result: Optional[CrawlResult] = None
    error: Optional[CrawlError] = field(default=None)

    @property
    def success(self) -> bool:
        return self.error is None and self.result is not None
