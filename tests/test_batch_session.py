"""
Tests for the batch assignment state machine
"""
import asyncio
from unittest.mock import Mock, AsyncMock

import pytest

from telepocket.AIClassifier.scoring_strategy import build_label_score
from telepocket.batch_session import BatchAssignmentSession, BatchCoordinator, SessionState
from telepocket.constants import ItemKind
from telepocket.models import Item

from conftest import InMemoryRepository


def scores(*pairs):
    """LabelScores sorted by score descending"""
    built = [build_label_score(label, score) for label, score in pairs]
    return sorted(built, key=lambda s: s.score, reverse=True)


SCRIPT = {
    "item-a": scores(("todo", 98), ("idea", 20)),
    "item-b": scores(("idea", 72), ("blog", 65), ("todo", 0)),
    "item-c": scores(("reference", 70)),
    "item-zero": scores(("todo", 0), ("idea", 0)),
}


def scripted_scorer(script=None):
    """Scorer double returning canned scores keyed by item content"""
    script = script or SCRIPT
    scorer = Mock()
    scorer.score_all = AsyncMock(side_effect=lambda content, urls, labels: script[content])
    scorer.classify_link = AsyncMock(
        side_effect=lambda url, title, description, labels: script[title]
    )
    return scorer


def note(item_id):
    return Item(item_id=item_id, content=item_id)


def make_session(repository, expiry=0.05, on_complete=None, actor="user-1", scorer=None):
    return BatchAssignmentSession(
        actor_id=actor,
        scorer=scorer or scripted_scorer(),
        repository=repository,
        labels=[],
        expiry_seconds=expiry,
        on_complete=on_complete
    )


class TestBatchScenario:

    def test_auto_confirm_manual_choice_and_expiry(self, repository):
        summaries = []

        async def scenario():
            session = make_session(repository, expiry=0.1, on_complete=summaries.append)
            await session.start([note("item-a"), note("item-b"), note("item-c")])

            assert session.state == SessionState.PENDING
            assert session.pending_item_ids() == ["item-b", "item-c"]
            assert session.has_timer

            assert await session.on_user_choice("item-b", "blog") is True
            return await asyncio.wait_for(session.wait_closed(), timeout=2.0)

        summary = asyncio.run(scenario())

        assert (summary.auto_confirmed_count, summary.manually_assigned_count,
                summary.auto_assigned_count) == (1, 1, 1)
        assert summary.reason == "expired"
        assert summaries == [summary]

        assert repository.labels_for("item-a") == [{
            "item_id": "item-a", "label": "todo", "confidence": 0.98,
            "confirmed": True, "item_kind": ItemKind.NOTE,
        }]
        chosen = repository.labels_for("item-b")
        assert [(p["label"], p["confidence"], p["confirmed"]) for p in chosen] == [("blog", 1.0, True)]
        expired = repository.labels_for("item-c")
        assert [(p["label"], p["confidence"], p["confirmed"]) for p in expired] == [("reference", 0.7, False)]

    def test_pending_keeps_nonzero_candidates_sorted(self, repository):
        async def scenario():
            session = make_session(repository, expiry=10)
            await session.start([note("item-b")])
            entry = session.pending["item-b"]
            session.cancel()
            return entry

        entry = asyncio.run(scenario())
        assert [s.label for s in entry.candidate_scores] == ["idea", "blog"]
        assert entry.top_candidate.label == "idea"

    def test_all_choices_made_finalizes_early(self, repository):
        summaries = []

        async def scenario():
            session = make_session(repository, expiry=30, on_complete=summaries.append)
            await session.start([note("item-b"), note("item-c")])
            await session.on_user_choice("item-b", "idea")
            await session.on_user_choice("item-c", "reference")
            return session

        session = asyncio.run(scenario())

        assert session.state == SessionState.FINALIZED
        assert not session.has_timer
        assert len(summaries) == 1
        assert summaries[0].reason == "completed"
        assert summaries[0].manually_assigned_count == 2

    def test_all_auto_confirmed_needs_no_timer(self, repository):
        async def scenario():
            session = make_session(repository)
            await session.start([note("item-a")])
            return session

        session = asyncio.run(scenario())
        assert session.summary.reason == "all-auto-confirmed"
        assert session.summary.auto_confirmed_count == 1
        assert not session.has_timer

    def test_empty_batch(self, repository):
        async def scenario():
            session = make_session(repository)
            await session.start([])
            return session

        session = asyncio.run(scenario())
        assert session.summary.reason == "empty"
        assert session.summary.total == 0

    def test_link_items_scored_from_metadata(self, repository):
        scorer = scripted_scorer()
        link = Item(item_id="link-1", kind=ItemKind.LINK, urls=["https://example.com"], title="item-a")

        async def scenario():
            session = make_session(repository, scorer=scorer)
            await session.start([link])

        asyncio.run(scenario())
        scorer.classify_link.assert_awaited_once()
        assert repository.labels_for("link-1")[0]["item_kind"] == ItemKind.LINK


class TestResolution:

    def test_choice_is_idempotent(self, repository):
        async def scenario():
            session = make_session(repository, expiry=30)
            await session.start([note("item-b"), note("item-c")])
            first = await session.on_user_choice("item-b", "blog")
            second = await session.on_user_choice("item-b", "idea")
            session.cancel()
            return first, second

        assert asyncio.run(scenario()) == (True, False)
        assert len(repository.labels_for("item-b")) == 1

    def test_unknown_item_is_noop(self, repository):
        async def scenario():
            session = make_session(repository, expiry=30)
            await session.start([note("item-b")])
            result = await session.on_user_choice("nope", "idea")
            session.cancel()
            return result

        assert asyncio.run(scenario()) is False
        assert repository.persisted == []

    def test_expiry_resolves_everything(self, repository):
        async def scenario():
            session = make_session(repository, expiry=30)
            await session.start([note("item-b"), note("item-c"), note("item-zero")])
            await session.on_expiry()
            return session

        session = asyncio.run(scenario())

        assert session.pending == {}
        assert session.summary.auto_assigned_count == 2
        assert session.summary.skipped_count == 1
        assert repository.labels_for("item-zero") == []
        assert all(p["confirmed"] is False for p in repository.persisted)

    def test_choice_after_expiry_is_noop(self, repository):
        async def scenario():
            session = make_session(repository, expiry=30)
            await session.start([note("item-b")])
            await session.on_expiry()
            return await session.on_user_choice("item-b", "blog")

        assert asyncio.run(scenario()) is False
        assert [p["label"] for p in repository.labels_for("item-b")] == ["idea"]

    def test_expiry_and_choice_race_persist_once(self, repository):
        async def scenario():
            session = make_session(repository, expiry=30)
            await session.start([note("item-b")])
            await asyncio.gather(
                session.on_expiry(),
                session.on_user_choice("item-b", "blog"),
            )
            return session

        session = asyncio.run(scenario())
        assert len(repository.labels_for("item-b")) == 1
        summary = session.summary
        assert summary.manually_assigned_count + summary.auto_assigned_count == 1

    def test_finalize_emits_once(self, repository):
        summaries = []

        async def scenario():
            session = make_session(repository, expiry=30, on_complete=summaries.append)
            await session.start([note("item-b")])
            await session.on_expiry()
            await session.on_expiry()
            session.cancel()

        asyncio.run(scenario())
        assert len(summaries) == 1

    def test_persist_failures_are_counted(self):
        repository = InMemoryRepository()
        repository.fail_for = {"item-a", "item-c"}

        async def scenario():
            session = make_session(repository, expiry=30)
            await session.start([note("item-a"), note("item-c")])
            await session.on_expiry()
            return session.summary

        summary = asyncio.run(scenario())
        assert summary.failed_count == 2
        assert summary.auto_confirmed_count == 0
        assert summary.auto_assigned_count == 0

    def test_scoring_failure_is_counted(self, repository):
        scorer = Mock()
        scorer.score_all = AsyncMock(side_effect=RuntimeError("scorer down"))

        async def scenario():
            session = make_session(repository, scorer=scorer)
            await session.start([note("item-a")])
            return session.summary

        summary = asyncio.run(scenario())
        assert summary.failed_count == 1

    def test_start_twice_rejected(self, repository):
        async def scenario():
            session = make_session(repository)
            await session.start([])
            await session.start([])

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())


class TestBatchCoordinator:

    def test_new_session_supersedes_old(self, repository):
        async def scenario():
            coordinator = BatchCoordinator()
            first = coordinator.begin(make_session(repository, expiry=30))
            await first.start([note("item-b"), note("item-c")])
            assert first.has_timer

            second = coordinator.begin(make_session(repository, expiry=30))
            await second.start([note("item-c")])

            stale = await coordinator.on_user_choice("user-1", "item-b", "blog")
            second.cancel()
            return first, second, stale

        first, second, stale = asyncio.run(scenario())

        assert first.state == SessionState.FINALIZED
        assert first.summary.reason == "cancelled"
        assert not first.has_timer
        assert first.pending == {}
        assert stale is False
        assert repository.persisted == []

    def test_replaced_while_scoring_writes_nothing(self, repository):
        summaries = []

        async def slow_score(content, urls, labels):
            await asyncio.sleep(0.05)
            return SCRIPT[content]

        slow_scorer = scripted_scorer()
        slow_scorer.score_all = AsyncMock(side_effect=slow_score)

        async def scenario():
            coordinator = BatchCoordinator()
            first = coordinator.begin(
                make_session(repository, expiry=30, on_complete=summaries.append, scorer=slow_scorer)
            )
            scoring = asyncio.ensure_future(first.start([note("item-a")]))
            await asyncio.sleep(0.01)

            second = coordinator.begin(make_session(repository, expiry=30))
            await scoring
            second.cancel()
            return first

        first = asyncio.run(scenario())

        assert first.summary.reason == "cancelled"
        assert first.auto_confirmed_count == 0
        assert [s.auto_confirmed_count for s in summaries] == [0]
        assert repository.persisted == []

    def test_sessions_are_per_actor(self, repository):
        async def scenario():
            coordinator = BatchCoordinator()
            alice = coordinator.begin(make_session(repository, expiry=30, actor="alice"))
            bob = coordinator.begin(make_session(repository, expiry=30, actor="bob"))
            await alice.start([note("item-b")])
            await bob.start([note("item-c")])
            chosen = await coordinator.on_user_choice("bob", "item-c", "reference")
            coordinator.cancel_all()
            return alice, chosen

        alice, chosen = asyncio.run(scenario())
        assert chosen is True
        assert alice.summary.reason == "cancelled"

    def test_unknown_actor(self):
        coordinator = BatchCoordinator()
        assert asyncio.run(coordinator.on_user_choice("ghost", "x", "todo")) is False
