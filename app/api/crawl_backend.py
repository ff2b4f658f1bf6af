import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from app.config.config import settings
from app.models.models import BackendJobState, JobHandle, PollResult
from app.models.schemas import CrawlConfig
from app.models.vehicle import RawVehicleRecord, VehicleExtractSchema
from app.utils.exceptions import BackendUnavailable, ConfigurationError

EXTRACT_PROMPT = (
    "Extract every vehicle listed on this page. For each vehicle return make, model, "
    "year, price, mileage, VIN, the main image URL and the URL of the vehicle detail page."
)

STATUS_MAP = {
    "queued": BackendJobState.QUEUED,
    "pending": BackendJobState.QUEUED,
    "scraping": BackendJobState.SCRAPING,
    "completed": BackendJobState.COMPLETED,
    "failed": BackendJobState.FAILED,
    "cancelled": BackendJobState.FAILED,
}

# Safety bound when following result pagination
MAX_RESULT_PAGES = 100


class CrawlBackendAPI:
    """
    Protocol boundary to the Firecrawl crawl API.

    Translates submit / poll / cancel calls into HTTP requests and the wire
    payloads back into ``JobHandle`` and ``PollResult``. No normalization is
    done here apart from validating each extracted row into a
    ``RawVehicleRecord``.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: str = settings.FIRECRAWL_API_URL,
                 timeout: int = settings.REQUEST_TIMEOUT, default_max_items: int = settings.DEFAULT_MAX_ITEMS):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_max_items = default_max_items

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("FIRECRAWL_API_KEY is not configured")
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def build_payload(self, url: str, config: Optional[CrawlConfig] = None) -> Dict[str, Any]:
        selectors = config.selectors if config else None
        options = config.options if config else None

        prompt = EXTRACT_PROMPT
        if selectors:
            hints = [f"{name}: {css}" for name, css in selectors.model_dump(by_alias=True, exclude_none=True).items()]
            if hints:
                prompt += " Use these CSS selector hints: " + "; ".join(hints) + "."

        formats = list(options.formats) if options and options.formats else []
        if "extract" not in formats:
            formats.append("extract")

        scrape_options: Dict[str, Any] = {
            "formats": formats,
            "extract": {
                "schema": VehicleExtractSchema.model_json_schema(),
                "prompt": prompt,
            },
        }

        if options:
            if options.delay:
                scrape_options["waitFor"] = options.delay
            actions: List[Dict[str, Any]] = []
            if options.wait_for_selector:
                actions.append({"type": "wait", "selector": options.wait_for_selector})
            if options.scroll_to_bottom:
                for _ in range(options.max_scrolls or 1):
                    actions.append({"type": "scroll", "direction": "down"})
                    actions.append({"type": "wait", "milliseconds": options.delay or 1000})
            if actions:
                scrape_options["actions"] = actions

        max_items = options.max_items if options and options.max_items else self.default_max_items
        return {"url": url, "limit": max_items, "scrapeOptions": scrape_options}

    def submit(self, url: str, config: Optional[CrawlConfig] = None) -> JobHandle:
        headers = self._headers()
        payload = self.build_payload(url, config)

        try:
            response = requests.post(f"{self.base_url}/v1/crawl", json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as err:
            logging.error(f"❌ Crawl submission failed for {url}: {err}")
            raise BackendUnavailable(f"Crawl submission failed for {url}: {err}") from err

        job_id = body.get("id") if isinstance(body, dict) else None
        if not job_id or body.get("success") is False:
            error = body.get("error") if isinstance(body, dict) else None
            raise BackendUnavailable(f"Crawl backend returned no job id for {url}" + (f": {error}" if error else ""))

        logging.info(f"✅ Submitted crawl {job_id} for {url}")
        return JobHandle(job_id=str(job_id), url=url)

    def _get_json(self, url: str) -> Dict[str, Any]:
        try:
            response = requests.get(url, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as err:
            raise BackendUnavailable(f"Crawl status request failed: {err}") from err
        if not isinstance(body, dict):
            raise BackendUnavailable("Crawl status response is not a JSON object")
        return body

    def poll_status(self, handle: JobHandle) -> PollResult:
        body = self._get_json(f"{self.base_url}/v1/crawl/{handle.job_id}")

        raw_status = str(body.get("status") or "").lower()
        status = STATUS_MAP.get(raw_status)
        if status is None:
            raise BackendUnavailable(f"Crawl {handle.job_id} reported unrecognized status '{raw_status}'")

        try:
            result = PollResult(
                status=status,
                completed_count=int(body.get("completed") or 0),
                total_count=int(body.get("total") or 0),
            )
        except (TypeError, ValueError) as err:
            raise BackendUnavailable(f"Crawl {handle.job_id} reported unreadable progress: {err}") from err

        if status is BackendJobState.FAILED:
            result.error = body.get("error") or f"Crawl {handle.job_id} {raw_status}"
        elif status is BackendJobState.COMPLETED:
            documents = list(body.get("data") or [])
            next_url = body.get("next")
            pages = 0
            while next_url and pages < MAX_RESULT_PAGES:
                page = self._get_json(next_url)
                documents.extend(page.get("data") or [])
                next_url = page.get("next")
                pages += 1
            result.raw_records = self.collect_records(documents)

        return result

    def cancel(self, handle: JobHandle) -> bool:
        try:
            response = requests.delete(f"{self.base_url}/v1/crawl/{handle.job_id}", headers=self._headers(),
                                       timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as err:
            logging.warning(f"⚠️ Could not cancel crawl {handle.job_id}: {err}")
            return False
        logging.info(f"Cancelled crawl {handle.job_id}")
        return True

    @staticmethod
    def _rows_from_document(document: Any) -> List[Any]:
        if not isinstance(document, dict):
            return []
        extracted = document.get("extract")
        if extracted is None:
            extracted = document.get("json")
        if isinstance(extracted, list):
            return extracted
        if isinstance(extracted, dict):
            vehicles = extracted.get("vehicles")
            if isinstance(vehicles, list):
                return vehicles
            return [extracted]
        return []

    @classmethod
    def collect_records(cls, documents: List[Any]) -> List[RawVehicleRecord]:
        records: List[RawVehicleRecord] = []
        for document in documents:
            metadata = document.get("metadata") if isinstance(document, dict) else None
            page_url = metadata.get("sourceURL") if isinstance(metadata, dict) else None

            for row in cls._rows_from_document(document):
                if not isinstance(row, dict):
                    logging.warning(f"⚠️ NormalizationSkipped: non-object row from {page_url}")
                    continue
                try:
                    record = RawVehicleRecord.model_validate(row)
                except ValidationError as err:
                    logging.warning(f"⚠️ NormalizationSkipped: invalid row from {page_url}: {err.error_count()} error(s)")
                    continue
                if record.page_url is None:
                    record.page_url = page_url
                records.append(record)

        return records
