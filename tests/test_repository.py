"""
Tests for the JSON item repository
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from telepocket.constants import ItemKind
from telepocket.models import Item
from telepocket.repository import JsonItemRepository


@pytest.fixture
def store(tmp_path):
    return JsonItemRepository(str(tmp_path / "data" / "items.json"))


def add(store, item_id, content="", created_at=None, kind=ItemKind.NOTE):
    item = Item(item_id=item_id, kind=kind, content=content or item_id, created_at=created_at)
    asyncio.run(store.add_item(item))
    return item


class TestItems:

    def test_add_and_get(self, store):
        add(store, "n1", "first note", created_at="2024-05-01T10:00:00")
        item = store.get_item("n1")
        assert item.content == "first note"
        assert item.created_at == datetime(2024, 5, 1, 10, 0)
        assert store.get_item("missing") is None

    def test_saved_to_disk(self, store, tmp_path):
        add(store, "n1")
        data = json.loads((tmp_path / "data" / "items.json").read_text(encoding="utf-8"))
        assert "n1" in data["items"]

    def test_reload(self, store, tmp_path):
        add(store, "n1")
        asyncio.run(store.persist_label("n1", "todo", 0.9, True))
        reloaded = JsonItemRepository(str(tmp_path / "data" / "items.json"))
        assert reloaded.get_labels("n1")[0]["label"] == "todo"

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "items.json"
        path.write_text("{not json", encoding="utf-8")
        assert JsonItemRepository(str(path)).get_item("x") is None


class TestLabels:

    def test_persist_replaces_same_label(self, store):
        add(store, "n1")
        asyncio.run(store.persist_label("n1", "idea", 0.72, False))
        asyncio.run(store.persist_label("n1", "idea", 1.0, True))

        labels = store.get_labels("n1")
        assert len(labels) == 1
        assert (labels[0]["confidence"], labels[0]["confirmed"]) == (1.0, True)

    def test_unknown_item(self, store):
        with pytest.raises(KeyError):
            asyncio.run(store.persist_label("ghost", "todo", 0.5, False))

    def test_fetch_unscored_newest_first(self, store):
        add(store, "old", created_at="2024-01-01T00:00:00")
        add(store, "new", created_at="2024-02-01T00:00:00")
        add(store, "labeled", created_at="2024-03-01T00:00:00")
        asyncio.run(store.persist_label("labeled", "todo", 0.99, True))

        unscored = asyncio.run(store.fetch_unscored_items(10))
        assert [item.item_id for item in unscored] == ["new", "old"]
        assert len(asyncio.run(store.fetch_unscored_items(1))) == 1


class TestEngagement:

    def test_counters_and_minimum(self, store):
        now = datetime.now()
        for item_id in ("a", "b", "c"):
            add(store, item_id, created_at=now)
            asyncio.run(store.persist_label(item_id, "todo", 0.9, True))
        asyncio.run(store.increment_impression(["a", "b"]))
        asyncio.run(store.increment_impression(["a"]))

        rows = {c.item_id: c for c in asyncio.run(store.fetch_engagement_counters("todo", 7))}

        assert rows["a"].impression_count == 2
        assert rows["c"].impression_count == 0
        assert all(c.category_min_impression_count == 0 for c in rows.values())
        assert rows["a"].last_shown_at is not None
        assert rows["c"].last_shown_at is None

    def test_window_and_category_filter(self, store):
        add(store, "recent", created_at=datetime.now())
        add(store, "ancient", created_at=datetime.now() - timedelta(days=30))
        add(store, "aware", created_at=datetime.now(timezone.utc))
        for item_id in ("recent", "ancient", "aware"):
            asyncio.run(store.persist_label(item_id, "blog", 0.8, False))
        asyncio.run(store.persist_label("recent", "custom-tag", 0.8, False))

        rows = asyncio.run(store.fetch_engagement_counters(None, 7))

        assert sorted(c.item_id for c in rows) == ["aware", "recent"]
        assert {c.category for c in rows} == {"blog"}
        assert asyncio.run(store.fetch_engagement_counters("todo", 7)) == []

    def test_impression_for_unknown_item_ignored(self, store):
        asyncio.run(store.increment_impression(["ghost"]))
