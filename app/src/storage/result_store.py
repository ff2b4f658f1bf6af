import logging
import os
from typing import List, Optional

from app.config.config import settings
from app.models.schemas import CrawlResult
from app.utils.exceptions import PersistenceError, ResultNotFound
from app.utils.utils import Utils

FILE_PREFIX = "crawl-"
FILE_SUFFIX = ".json"


class ResultStore:
    """
    Append-only store of crawl results, one pretty-printed JSON file per crawl:
    ``{base_dir}/{dealer_id}/crawl-{timestamp}[_n].json``.

    Files are created exclusively, so two saves for the same dealer never
    overwrite each other. The reference returned by ``save`` is
    ``{dealer_id}/{filename}``.
    """

    def __init__(self, base_dir: str = settings.results_dir):
        self.base_dir = base_dir

    def _dealer_dir(self, dealer_id: str) -> str:
        return os.path.join(self.base_dir, Utils.safe_key(dealer_id))

    def save(self, dealer_id: str, result: CrawlResult) -> str:
        metadata = result.metadata.model_copy(update={"total_found": len(result.vehicles)})
        if metadata.crawl_date is None:
            metadata.crawl_date = Utils.utc_now()
        result = result.model_copy(update={"metadata": metadata})
        payload = result.model_dump_json(by_alias=True, indent=2)

        stamp = Utils.utc_now().strftime("%Y-%m-%dT%H-%M-%S.%fZ")
        try:
            directory = self._dealer_dir(dealer_id)
            os.makedirs(directory, exist_ok=True)
            attempt = 0
            while True:
                suffix = f"_{attempt}" if attempt else ""
                filename = f"{FILE_PREFIX}{stamp}{suffix}{FILE_SUFFIX}"
                try:
                    with open(os.path.join(directory, filename), "x", encoding="utf-8") as file:
                        file.write(payload)
                    break
                except FileExistsError:
                    attempt += 1
        except (OSError, ValueError) as err:
            logging.error(f"❌ Error saving crawl result for dealer {dealer_id}: {err}")
            raise PersistenceError(f"Could not save crawl result for dealer {dealer_id}: {err}") from err

        reference = f"{dealer_id}/{filename}"
        logging.info(f"Saved crawl result to {os.path.join(directory, filename)}")
        return reference

    def load(self, reference: str) -> CrawlResult:
        dealer_id, _, filename = reference.partition("/")
        try:
            path = os.path.join(self._dealer_dir(dealer_id), Utils.safe_key(filename))
        except ValueError as err:
            raise ResultNotFound(reference) from err
        if not os.path.isfile(path):
            raise ResultNotFound(reference)
        try:
            with open(path, "r", encoding="utf-8") as file:
                return CrawlResult.model_validate_json(file.read())
        except (OSError, ValueError) as err:
            raise PersistenceError(f"Could not read crawl result {reference}: {err}") from err

    def list_references(self, dealer_id: str) -> List[str]:
        """References for a dealer, most recent first."""
        try:
            directory = self._dealer_dir(dealer_id)
        except ValueError:
            return []
        if not os.path.isdir(directory):
            return []
        names = [
            name for name in os.listdir(directory)
            if name.startswith(FILE_PREFIX) and name.endswith(FILE_SUFFIX)
        ]
        return [f"{dealer_id}/{name}" for name in sorted(names, key=self._sort_key, reverse=True)]

    @staticmethod
    def _sort_key(name: str):
        stem = name[len(FILE_PREFIX):-len(FILE_SUFFIX)]
        stamp, _, counter = stem.partition("_")
        return stamp, int(counter) if counter.isdigit() else 0

    def list_by_dealer(self, dealer_id: str) -> List[CrawlResult]:
        results = []
        for reference in self.list_references(dealer_id):
            try:
                results.append(self.load(reference))
            except (PersistenceError, ResultNotFound) as err:
                logging.warning(f"⚠️ Skipping unreadable crawl result {reference}: {err}")
        return results

    def latest(self, dealer_id: str) -> Optional[CrawlResult]:
        for reference in self.list_references(dealer_id):
            try:
                return self.load(reference)
            except (PersistenceError, ResultNotFound) as err:
                logging.warning(f"⚠️ Skipping unreadable crawl result {reference}: {err}")
        return None
