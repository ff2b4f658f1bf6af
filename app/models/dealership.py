from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Dealership(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    website_url: Optional[str] = None
    last_scraped: Optional[datetime] = None
    vehicle_count: Optional[int] = 0
