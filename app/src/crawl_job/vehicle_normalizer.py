import logging
import math
import re
import time
import uuid
from typing import Any, Iterable, List, Mapping, Optional, Union

from memoization import cached, CachingAlgorithmFlag
from pydantic import ValidationError

from app.models.schemas import Vehicle
from app.models.vehicle import RawVehicleRecord
from app.utils.exceptions import NormalizationSkipped

UNKNOWN = "Unknown"
MIN_YEAR = 1900

# Everything that is not a digit, a decimal point or a minus sign
_NON_NUMERIC = re.compile(r"[^\d.\-]")
_MILEAGE_UNITS = re.compile(r"(mi|miles|km|kms|kilometers)\.?$", re.IGNORECASE)


class VehicleNormalizer:
    """
    Turns raw extracted rows into canonical ``Vehicle`` records.

    Numeric fields that cannot be parsed resolve to ``0`` instead of dropping
    the record. A record that cannot be read at all is skipped with a warning,
    so a batch of N rows yields between 0 and N vehicles.
    """

    @staticmethod
    @cached(max_size=4096, algorithm=CachingAlgorithmFlag.LRU, thread_safe=True)
    def parse_price(value: Any) -> float:
        if value is None or isinstance(value, bool):
            return 0.0
        try:
            if isinstance(value, (int, float)):
                price = float(value)
            else:
                cleaned = _NON_NUMERIC.sub("", str(value))
                price = float(cleaned) if cleaned else 0.0
        except ValueError:
            return 0.0
        if not math.isfinite(price) or price < 0:
            return 0.0
        return price

    @staticmethod
    @cached(max_size=4096, algorithm=CachingAlgorithmFlag.LRU, thread_safe=True)
    def parse_mileage(value: Any) -> int:
        if value is None or isinstance(value, bool):
            return 0
        try:
            if isinstance(value, (int, float)):
                mileage = int(value)
            else:
                cleaned = str(value).replace(",", "").replace("_", "").replace(" ", "")
                cleaned = _MILEAGE_UNITS.sub("", cleaned)
                mileage = int(float(cleaned)) if cleaned else 0
        except (ValueError, OverflowError):
            return 0
        return mileage if mileage >= 0 else 0

    @staticmethod
    def parse_year(value: Any) -> int:
        if value is None or isinstance(value, bool):
            return 0
        try:
            if isinstance(value, (int, float)):
                year = int(value)
            else:
                year = int(str(value).strip())
        except (ValueError, OverflowError):
            return 0
        return year if year >= MIN_YEAR else 0

    @staticmethod
    def _text(value: Any, default: str = "") -> str:
        if value is None:
            return default
        text = str(value).strip()
        return text if text else default

    @staticmethod
    def generate_id() -> str:
        return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"

    def normalize(self, record: Union[RawVehicleRecord, Mapping[str, Any]], fallback_url: str = "") -> Vehicle:
        """
        Build one vehicle from one raw record.

        :param record: A validated ``RawVehicleRecord`` or a plain mapping from the backend.
        :param fallback_url: Listing URL used when the record carries none.
        :raises NormalizationSkipped: When the record does not have a usable shape.
        """
        if not isinstance(record, RawVehicleRecord):
            if not isinstance(record, Mapping):
                raise NormalizationSkipped(f"Unsupported record type: {type(record).__name__}")
            try:
                record = RawVehicleRecord.model_validate(record)
            except ValidationError as err:
                raise NormalizationSkipped(f"Invalid vehicle record: {err.error_count()} field error(s)") from err

        return Vehicle(
            id=self._text(record.id) or self.generate_id(),
            make=self._text(record.make, UNKNOWN),
            model=self._text(record.model, UNKNOWN),
            year=self.parse_year(record.year),
            price=self.parse_price(record.price),
            mileage=self.parse_mileage(record.mileage),
            vin=self._text(record.vin),
            image_url=self._text(record.image_url),
            url=self._text(record.url) or self._text(record.page_url) or fallback_url or "",
            exterior_color=self._text(record.exterior_color) or None,
            interior_color=self._text(record.interior_color) or None,
            features=[f for f in record.features if f] if record.features else None,
        )

    def normalize_batch(self, records: Optional[Iterable[Any]], fallback_url: str = "") -> List[Vehicle]:
        vehicles: List[Vehicle] = []
        skipped = 0
        for index, record in enumerate(records or []):
            try:
                vehicles.append(self.normalize(record, fallback_url))
            except NormalizationSkipped as err:
                skipped += 1
                logging.warning(f"⚠️ Skipped raw record #{index}: {err}")
            except Exception as err:
                skipped += 1
                logging.error(f"❌ Unexpected error normalizing raw record #{index}: {err}")

        logging.info(f"Normalized {len(vehicles)} vehicles ({skipped} skipped)")
        return vehicles
