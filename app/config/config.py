import os
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # Crawl backend
    FIRECRAWL_API_KEY: Optional[str] = Field(default=None, description="Secret API key for the crawl backend.")
    FIRECRAWL_API_URL: str = Field(default="https://api.firecrawl.dev", description="Crawl backend base URL.")

    # Dealer repository
    DEALERSHIP_API_URL: str = Field(default="http://localhost:3000/api/dealers", description="Dealer REST resource URL.")

    # Slack configurations
    SLACK_BOT_TOKEN: Optional[str] = Field(default=None, description="Slack Bot Token from environment.")
    SLACK_CHANNEL: Optional[str] = Field(default=None, description="Slack Channel ID from environment.")

    # Application behavior with defaults
    MAX_THREAD: int = Field(default=8, description="Maximum number of background crawl workers.")
    REQUEST_TIMEOUT: int = Field(default=30, description="Timeout in seconds for each HTTP request.")
    POLL_INTERVAL: float = Field(default=2.0, description="Seconds to wait between two status polls.")
    POLL_TIMEOUT: float = Field(default=600.0, description="Maximum seconds a job may spend polling.")
    DEFAULT_MAX_ITEMS: int = Field(default=50, description="Record limit when a crawl request gives none.")
    SERIALIZE_DEALER_JOBS: bool = Field(default=False, description="Reject a crawl while the dealer has one active.")

    # Storage
    DATA_DIR: str = Field(default="data", description="Root directory of persisted crawl state.")

    # Logging
    LOG_FILE: str = Field(default="app/logs/app.log", description="Log file path.")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level.")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def results_dir(self) -> str:
        return os.path.join(self.DATA_DIR, "crawls")

    @property
    def jobs_dir(self) -> str:
        return os.path.join(self.DATA_DIR, "jobs")


settings = Settings()
