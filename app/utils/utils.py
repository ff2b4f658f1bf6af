import logging, os, re, tempfile
import pandas as pd
from datetime import datetime, timezone
from typing import List

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.\-]+$")


class Utils:
    @staticmethod
    def save_to_csv(data: List[dict], file_path: str) -> None:
        """Save vehicle rows to CSV."""
        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        df = pd.DataFrame(data)
        df.to_csv(file_path, index=False)
        logging.info(f"Successfully saved {len(data)} rows to {file_path}")

    @staticmethod
    def utc_now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def safe_key(value: str) -> str:
        """Validate an id that is used as a file or directory name."""
        if not value or value in (".", "..") or not _SAFE_KEY.match(value):
            raise ValueError(f"Invalid storage key: {value!r}")
        return value

    @staticmethod
    def write_text_atomic(file_path: str, text: str) -> None:
        """Replace ``file_path`` with ``text`` so readers never see a partial file."""
        directory = os.path.dirname(file_path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(text)
            os.replace(tmp_path, file_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
