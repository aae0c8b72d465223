"""
History Store
Finished orders, newest first, persisted as one JSON array under a single key.
"""
import json
from typing import List

from menu_pipeline.models import HistoryRecord
from ordering.local_store import LocalStore
from utils.logger import get_logger

HISTORY_KEY = 'order_history'


class HistoryStore:
    def __init__(self, store: LocalStore):
        self.store = store
        self.logger = get_logger()

    def load_all(self) -> List[HistoryRecord]:
        """All records, newest first. A corrupt blob yields an empty list."""
        raw = self.store.get(HISTORY_KEY)
        if not raw:
            return []
        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError(f"expected a list, got {type(data).__name__}")
            return [HistoryRecord.from_dict(entry) for entry in data]
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Order history is unreadable, starting empty: {e}", component="History")
            return []

    def _save(self, records: List[HistoryRecord]) -> None:
        self.store.set(HISTORY_KEY, json.dumps([r.to_dict() for r in records], ensure_ascii=False))

    def append(self, record: HistoryRecord) -> None:
        records = self.load_all()
        records.insert(0, record)
        self._save(records)
        self.logger.info(f"Saved order {record.id} ({len(record.items)} lines)", component="History")

    def remove(self, record_id: str) -> None:
        records = self.load_all()
        remaining = [r for r in records if r.id != record_id]
        if len(remaining) == len(records):
            return
        self._save(remaining)
        self.logger.info(f"Deleted order {record_id}", component="History")
