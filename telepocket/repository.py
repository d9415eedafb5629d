"""
Item repository - persistence collaborator of the classification engine

ItemRepository is the contract the engine depends on; JsonItemRepository
keeps items, labels and impression counters in a single JSON file.
"""
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from telepocket.constants import ALL_CATEGORIES, ItemKind, Paths
from telepocket.models import Item, SuggestionCandidate

logger = logging.getLogger(__name__)


class ItemRepository(ABC):
    """Storage operations used by the engine"""

    @abstractmethod
    async def fetch_unscored_items(self, limit: int) -> List[Item]:
        """Items without any label, newest first"""

    @abstractmethod
    async def persist_label(
        self,
        item_id: str,
        label: str,
        confidence: float,
        confirmed: bool,
        item_kind: ItemKind = ItemKind.NOTE
    ) -> None:
        """
        Store (or replace) one label on an item

        Raises:
            KeyError: unknown item
        """

    @abstractmethod
    async def fetch_engagement_counters(
        self,
        category: Optional[str] = None,
        days_back: int = 7
    ) -> List[SuggestionCandidate]:
        """Recent categorized items with their impression counters"""

    @abstractmethod
    async def increment_impression(self, item_ids: List[str]) -> None:
        """Bump impression_count and last_shown_at for the given items"""


class JsonItemRepository(ItemRepository):
    """JSON file backed repository"""

    def __init__(self, storage_path: str = Paths.DEFAULT_STORAGE_PATH, autosave: bool = True):
        self.storage_path = Path(storage_path)
        self.autosave = autosave
        self._data = self._load()

        if "items" not in self._data:
            self._data["items"] = {}

    def _load(self) -> Dict[str, Any]:
        """Load stored data"""
        if self.storage_path.exists():
            try:
                with open(self.storage_path, 'r', encoding='utf-8') as f:
                    return json.load(f)
            except Exception as e:
                logger.error(f"Failed to load {self.storage_path}: {e}")

        return {"items": {}}

    def save(self):
        """
        Write all data to disk

        Raises:
            OSError: the file could not be written
        """
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.storage_path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, ensure_ascii=False, indent=2)

    def _commit(self):
        if self.autosave:
            self.save()

    # ==================== Items ====================

    @staticmethod
    def _to_record(item: Item) -> Dict[str, Any]:
        created_at = item.created_at or datetime.now()
        return {
            "item_id": item.item_id,
            "kind": item.kind.value,
            "content": item.content,
            "urls": list(item.urls),
            "title": item.title,
            "description": item.description,
            "created_at": created_at.isoformat(),
            "labels": [],
            "impression_count": 0,
            "last_shown_at": None,
        }

    @staticmethod
    def _to_item(record: Dict[str, Any]) -> Item:
        return Item(
            item_id=record["item_id"],
            kind=record.get("kind", ItemKind.NOTE.value),
            content=record.get("content", ""),
            urls=list(record.get("urls", [])),
            title=record.get("title"),
            description=record.get("description"),
            created_at=record.get("created_at")
        )

    @staticmethod
    def _as_local(value: datetime) -> datetime:
        """Naive local time, so stored timestamps compare with datetime.now()"""
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

    async def add_item(self, item: Item) -> None:
        """Store a new item (existing labels are kept on re-add)"""
        record = self._to_record(item)
        existing = self._data["items"].get(item.item_id)
        if existing:
            record["labels"] = existing.get("labels", [])
            record["impression_count"] = existing.get("impression_count", 0)
            record["last_shown_at"] = existing.get("last_shown_at")
        self._data["items"][item.item_id] = record
        self._commit()

    def get_item(self, item_id: str) -> Optional[Item]:
        record = self._data["items"].get(item_id)
        return self._to_item(record) if record else None

    def get_labels(self, item_id: str) -> List[Dict[str, Any]]:
        record = self._data["items"].get(item_id)
        return list(record.get("labels", [])) if record else []

    # ==================== ItemRepository ====================

    async def fetch_unscored_items(self, limit: int) -> List[Item]:
        records = [r for r in self._data["items"].values() if not r.get("labels")]
        records.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return [self._to_item(r) for r in records[:limit]]

    async def persist_label(
        self,
        item_id: str,
        label: str,
        confidence: float,
        confirmed: bool,
        item_kind: ItemKind = ItemKind.NOTE
    ) -> None:
        record = self._data["items"].get(item_id)
        if record is None:
            raise KeyError(f"Unknown item: {item_id}")

        entry = {
            "label": label,
            "confidence": round(float(confidence), 4),
            "confirmed": bool(confirmed),
            "assigned_at": datetime.now().isoformat(),
        }
        labels = [existing for existing in record.get("labels", []) if existing["label"] != label]
        labels.append(entry)
        record["labels"] = labels
        self._commit()

        logger.debug(
            f"Persisted {item_kind.value} {item_id}: {label} "
            f"(confidence={entry['confidence']}, confirmed={entry['confirmed']})"
        )

    async def fetch_engagement_counters(
        self,
        category: Optional[str] = None,
        days_back: int = 7
    ) -> List[SuggestionCandidate]:
        cutoff = datetime.now() - timedelta(days=days_back)
        rows = []
        for record in self._data["items"].values():
            created_at = record.get("created_at")
            if created_at and self._as_local(date_parser.parse(created_at)) < cutoff:
                continue
            for entry in record.get("labels", []):
                name = entry["label"]
                if name not in ALL_CATEGORIES:
                    continue
                if category is not None and name != category:
                    continue
                rows.append((name, record))

        minimums: Dict[str, int] = {}
        for name, record in rows:
            count = record.get("impression_count", 0)
            minimums[name] = min(minimums.get(name, count), count)

        candidates = []
        for name, record in rows:
            last_shown = record.get("last_shown_at")
            candidates.append(SuggestionCandidate(
                item_id=record["item_id"],
                category=name,
                impression_count=record.get("impression_count", 0),
                category_min_impression_count=minimums[name],
                last_shown_at=date_parser.parse(last_shown) if last_shown else None,
                content=record.get("content", "")
            ))
        return candidates

    async def increment_impression(self, item_ids: List[str]) -> None:
        now = datetime.now().isoformat()
        for item_id in item_ids:
            record = self._data["items"].get(item_id)
            if record is None:
                logger.warning(f"Impression for unknown item: {item_id}")
                continue
            record["impression_count"] = record.get("impression_count", 0) + 1
            record["last_shown_at"] = now
        self._commit()
