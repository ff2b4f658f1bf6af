from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Vehicle(CamelModel):
    id: str
    make: str = "Unknown"
    model: str = "Unknown"
    year: int = 0
    price: float = 0.0
    mileage: int = 0
    vin: str = ""
    image_url: str = ""
    url: str = ""
    exterior_color: Optional[str] = None
    interior_color: Optional[str] = None
    features: Optional[List[str]] = None


class CrawlMetadata(CamelModel):
    dealer_name: Optional[str] = None
    total_found: int = 0
    website: Optional[str] = None
    crawl_date: Optional[datetime] = None
    # seconds
    crawl_duration: Optional[float] = None


class CrawlResult(CamelModel):
    vehicles: List[Vehicle] = Field(default_factory=list)
    metadata: CrawlMetadata = Field(default_factory=CrawlMetadata)


class CrawlSelectors(CamelModel):
    vehicle_container: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[str] = None
    price: Optional[str] = None
    mileage: Optional[str] = None
    vin: Optional[str] = None
    image_url: Optional[str] = None
    url: Optional[str] = None


class CrawlOptions(CamelModel):
    wait_for_selector: Optional[str] = None
    scroll_to_bottom: bool = False
    max_scrolls: Optional[int] = Field(default=None, ge=1)
    delay: Optional[int] = Field(default=None, ge=0, description="Milliseconds to wait after page load.")
    max_items: Optional[int] = Field(default=None, ge=1)
    formats: Optional[List[str]] = None


class CrawlConfig(CamelModel):
    selectors: Optional[CrawlSelectors] = None
    options: Optional[CrawlOptions] = None


class CrawlRequest(CamelModel):
    config: Optional[CrawlConfig] = None


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class CrawlJob(CamelModel):
    id: str
    dealer_id: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    error_class: Optional[str] = None
    result_ref: Optional[str] = None
    backend_job_id: Optional[str] = None


class CrawlResponse(CamelModel):
    success: bool
    message: str
    data: Optional[CrawlResult] = None
    job: Optional[CrawlJob] = None
