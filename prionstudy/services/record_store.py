import logging
import os
from typing import Optional
from prionstudy.config import Settings, get_settings
from prionstudy.services.csv_service import Record, missing_headers, read_csv

logger = logging.getLogger(__name__)

REQUIRED_CREDENTIAL_HEADERS = ("user", "password")
REQUIRED_RECORD_HEADERS = ("id",)
DEFAULT_LIST = ""


class RecordStore:
    """Credentials and patient lists read from CSV once at startup and kept in memory."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.credentials: list[Record] = []
        self.lists: dict[str, list[Record]] = {}

    def list_path(self, list_name: str) -> str:
        filename = f"{list_name}_individuals.csv" if list_name else "individuals.csv"
        return os.path.join(self.settings.data_dir, filename)

    async def _load_file(self, path: str, required: tuple[str, ...]) -> list[Record]:
        if not os.path.exists(path):
            logger.warning("CSV file not found: %s", path)
            return []
        try:
            rows = await read_csv(path)
        except OSError:
            return []
        missing = missing_headers(rows, required)
        if rows and missing:
            logger.error("%s is missing required columns: %s", path, ", ".join(missing))
            return []
        return rows

    async def load(self) -> None:
        self.credentials = await self._load_file(self.settings.credentials_path, REQUIRED_CREDENTIAL_HEADERS)
        logger.info("Loaded %d credentials", len(self.credentials))

        list_names = {cred.get("list", DEFAULT_LIST) for cred in self.credentials}
        list_names.add(DEFAULT_LIST)
        lists = {}
        for name in sorted(list_names):
            rows = await self._load_file(self.list_path(name), REQUIRED_RECORD_HEADERS)
            if rows or name:
                lists[name] = rows
                logger.info("Loaded %d individuals for list '%s'", len(rows), name or "default")
        self.lists = lists

    async def reload(self) -> None:
        await self.load()

    @staticmethod
    def _is_admin(user: dict) -> bool:
        return user.get("role") == "admin"

    def records_for(self, user: dict) -> list[Record]:
        if self._is_admin(user):
            merged = []
            for rows in self.lists.values():
                merged.extend(rows)
            return merged
        return self.lists.get(user.get("list", DEFAULT_LIST), [])

    def find(self, user: dict, record_id: str) -> Optional[Record]:
        for record in self.records_for(user):
            if record.get("id") == record_id or record.get("id_osakidetza") == record_id:
                return record
        return None

    @property
    def individual_count(self) -> int:
        return sum(len(rows) for rows in self.lists.values())


record_store = RecordStore()
