"""
Shared test doubles
"""
import asyncio
from collections import Counter
from typing import Callable, Dict, List, Optional, Union

import pytest

from telepocket.AIClassifier.provider_manager import ScoringBackend, ProviderSlot
from telepocket.AIClassifier.rate_limiter import TokenBucketRateLimiter
from telepocket.constants import ItemKind
from telepocket.exceptions import BackendError
from telepocket.models import Item, SuggestionCandidate
from telepocket.repository import ItemRepository


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeBackend(ScoringBackend):
    """
    Scripted backend

    reply may be a string, an exception instance, or a callable taking the
    prompt and returning either.
    """

    def __init__(
        self,
        name: str = "fake",
        reply: Union[str, Exception, Callable[[str], Union[str, Exception]]] = "50",
        delay: float = 0.0
    ):
        self.name = name
        self.reply = reply
        self.delay = delay
        self.prompts: List[str] = []
        self.closed = False

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.reply(prompt) if callable(self.reply) else self.reply
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def close(self):
        self.closed = True


def make_slot(backend: ScoringBackend, max_tokens: int = 100) -> ProviderSlot:
    limiter = TokenBucketRateLimiter(
        max_tokens=max_tokens, refill_rate=max_tokens, refill_interval=60.0, name=backend.name
    )
    return ProviderSlot(backend=backend, limiter=limiter)


def failing_backend(name: str = "broken") -> FakeBackend:
    return FakeBackend(name, reply=BackendError("boom", provider=name, status_code=500))


class InMemoryRepository(ItemRepository):
    """Records every persisted label"""

    def __init__(
        self,
        items: Optional[List[Item]] = None,
        candidates: Optional[List[SuggestionCandidate]] = None
    ):
        self.items = list(items or [])
        self.candidates = list(candidates or [])
        self.persisted: List[Dict] = []
        self.impressions = Counter()
        self.fail_for = set()

    async def fetch_unscored_items(self, limit: int) -> List[Item]:
        return self.items[:limit]

    async def persist_label(self, item_id, label, confidence, confirmed, item_kind=ItemKind.NOTE):
        if item_id in self.fail_for:
            raise IOError(f"write failed for {item_id}")
        self.persisted.append({
            "item_id": item_id,
            "label": label,
            "confidence": confidence,
            "confirmed": confirmed,
            "item_kind": item_kind,
        })

    async def fetch_engagement_counters(self, category=None, days_back=7):
        return [c for c in self.candidates if category is None or c.category == category]

    async def increment_impression(self, item_ids):
        for item_id in item_ids:
            self.impressions[item_id] += 1

    def labels_for(self, item_id: str) -> List[Dict]:
        return [p for p in self.persisted if p["item_id"] == item_id]


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def repository():
    return InMemoryRepository()
