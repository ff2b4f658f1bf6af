import logging
from datetime import datetime
from typing import Optional

import requests

from app.config.config import settings
from app.models.dealership import Dealership
from app.utils.exceptions import DealerLookupError


class DealershipDataAPI:
    """REST client for the dealer repository that owns the dealer summary fields."""

    def __init__(self, base_url: str = settings.DEALERSHIP_API_URL, timeout: int = settings.REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json"
        }

    def get_dealer(self, dealer_id: str) -> Optional[Dealership]:
        api_url = f"{self.base_url}/{dealer_id}"
        try:
            response = requests.get(api_url, headers=self.headers, timeout=self.timeout)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return Dealership(**response.json())

        except requests.RequestException as error:
            error_message = f"❌ Error retrieving dealer {dealer_id}: {error}"
            logging.error(error_message)
            raise DealerLookupError(error_message) from error
        except (ValueError, TypeError) as error:
            raise DealerLookupError(f"Unreadable dealer record for {dealer_id}: {error}") from error

    def update_summary(self, dealer_id: str, last_scraped: datetime, vehicle_count: int) -> None:
        api_url = f"{self.base_url}/{dealer_id}"
        payload = {
            "last_scraped": last_scraped.isoformat(),
            "vehicle_count": vehicle_count,
        }
        response = requests.patch(api_url, json=payload, headers=self.headers, timeout=self.timeout)
        response.raise_for_status()
        logging.info(f"✅ Updated dealer {dealer_id} summary: {vehicle_count} vehicles")
