"""
Batch assignment session

Scores a batch of unlabeled items. Confident labels are persisted right
away; ambiguous items wait for a user choice until a shared expiry timer
assigns their top candidate.

    Scoring -> {AutoConfirmed | Pending} -> Resolved
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from telepocket.AIClassifier.error_handler import ErrorHandler
from telepocket.AIClassifier.label_scorer import LabelScorer
from telepocket.constants import ItemKind, LabelAction, Timeouts, USER_CHOICE_CONFIDENCE
from telepocket.models import BatchSummary, Item, LabelDefinition, LabelScore, PendingAssignment
from telepocket.repository import ItemRepository

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle of a batch session"""
    CREATED = "created"
    SCORING = "scoring"
    PENDING = "pending"
    FINALIZED = "finalized"


class BatchAssignmentSession:
    """
    One batch of items for one actor

    Every mutation of `pending` happens under a single asyncio.Lock, and an
    entry is removed before its label is persisted, so a user choice and the
    expiry timer can never both resolve the same item.
    """

    def __init__(
        self,
        actor_id: str,
        scorer: LabelScorer,
        repository: ItemRepository,
        labels: List[LabelDefinition],
        expiry_seconds: float = Timeouts.BATCH_EXPIRY,
        item_delay_seconds: float = 0.0,
        on_complete: Optional[Callable[[BatchSummary], Any]] = None,
        on_pending: Optional[Callable[[PendingAssignment], Any]] = None
    ):
        """
        Args:
            actor_id: user the session belongs to
            scorer: label scorer
            repository: persistence collaborator
            labels: candidate labels for every item
            expiry_seconds: delay before pending items are auto-assigned
            item_delay_seconds: pause between scored items
            on_complete: called once with the final BatchSummary
            on_pending: called for every item that needs a user choice
        """
        self.actor_id = actor_id
        self.scorer = scorer
        self.repository = repository
        self.labels = list(labels)
        self.expiry_seconds = expiry_seconds
        self.item_delay_seconds = item_delay_seconds
        self.on_complete = on_complete
        self.on_pending = on_pending

        self.state = SessionState.CREATED
        self.pending: Dict[str, PendingAssignment] = {}

        self.auto_confirmed_count = 0
        self.manually_assigned_count = 0
        self.auto_assigned_count = 0
        self.skipped_count = 0
        self.failed_count = 0

        self.summary: Optional[BatchSummary] = None

        self._lock = asyncio.Lock()
        self._closed = asyncio.Event()
        self._timer_handle: Optional[asyncio.TimerHandle] = None
        self._expiry_task: Optional[asyncio.Task] = None
        self._cancelled = False

    # ==================== Properties ====================

    @property
    def is_active(self) -> bool:
        return self.state != SessionState.FINALIZED

    @property
    def has_timer(self) -> bool:
        return self._timer_handle is not None

    def pending_item_ids(self) -> List[str]:
        return list(self.pending)

    # ==================== Scoring ====================

    async def start(self, items: List[Item]) -> None:
        """
        Score every item, then arm the expiry timer if anything is pending

        Args:
            items: items to classify
        """
        if self.state != SessionState.CREATED:
            raise RuntimeError(f"Session for {self.actor_id} already started")

        self.state = SessionState.SCORING
        logger.info(f"🚀 Batch for {self.actor_id}: {len(items)} items")

        for index, item in enumerate(items):
            if self._cancelled:
                return
            if index and self.item_delay_seconds > 0:
                await asyncio.sleep(self.item_delay_seconds)
            await self._process_item(item)

        async with self._lock:
            if self._cancelled or not self.is_active:
                return

            if self.pending:
                self.state = SessionState.PENDING
                self._schedule_expiry()
                logger.info(
                    f"⏳ {len(self.pending)} items waiting for a choice "
                    f"(expires in {self.expiry_seconds}s)"
                )
            elif not items:
                self._finalize("empty")
            elif self.auto_confirmed_count == len(items):
                self._finalize("all-auto-confirmed")
            else:
                self._finalize("completed")

    async def _score(self, item: Item) -> List[LabelScore]:
        if item.kind == ItemKind.LINK and item.urls:
            return await self.scorer.classify_link(
                item.urls[0], item.title, item.description, self.labels
            )
        return await self.scorer.score_all(item.content, item.urls, self.labels)

    async def _process_item(self, item: Item):
        try:
            scores = await self._score(item)
        except Exception as e:
            ErrorHandler.log_error(f"score {item.item_id}", e, logger)
            if not self._cancelled:
                self.failed_count += 1
            return
        if self._cancelled:
            return

        confident = [s for s in scores if s.action == LabelAction.AUTO_CONFIRM]
        if confident:
            try:
                for score in confident:
                    # a replaced session writes nothing further
                    if self._cancelled:
                        logger.debug(f"Dropping {item.item_id}: batch for {self.actor_id} was replaced")
                        return
                    await self.repository.persist_label(
                        item.item_id, score.label, score.confidence, True, item.kind
                    )
            except Exception as e:
                ErrorHandler.log_error(ErrorHandler.describe(ErrorHandler.PERSIST), e, logger)
                self.failed_count += 1
                return
            if self._cancelled:
                return
            self.auto_confirmed_count += 1
            logger.info(
                f"✅ {item.item_id} auto-confirmed: "
                + ", ".join(s.label for s in confident)
            )
            return

        candidates = tuple(s for s in scores if s.score > 0)
        entry = PendingAssignment(
            item_id=item.item_id,
            item_kind=item.kind,
            candidate_scores=candidates,
            raw_item=item
        )
        async with self._lock:
            if self._cancelled:
                return
            self.pending[item.item_id] = entry

        if self.on_pending:
            self._notify(self.on_pending, entry)

    # ==================== Resolution ====================

    async def on_user_choice(self, item_id: str, label: str) -> bool:
        """
        Resolve a pending item with the label the user picked

        Args:
            item_id: pending item
            label: chosen label name

        Returns:
            bool: False when the item is unknown or already resolved
        """
        async with self._lock:
            if not self.is_active:
                return False
            entry = self.pending.pop(item_id, None)
            if entry is None:
                return False

            try:
                await self.repository.persist_label(
                    item_id, label, USER_CHOICE_CONFIDENCE, True, entry.item_kind
                )
                self.manually_assigned_count += 1
                logger.info(f"👆 {item_id} assigned to {label} by {self.actor_id}")
            except Exception as e:
                ErrorHandler.log_error(ErrorHandler.describe(ErrorHandler.PERSIST), e, logger)
                self.failed_count += 1

            if not self.pending and self.state == SessionState.PENDING:
                self._finalize("completed")
            return True

    async def on_expiry(self) -> None:
        """Assign every remaining item its top candidate, unconfirmed"""
        async with self._lock:
            if not self.is_active:
                return
            self._timer_handle = None

            entries = list(self.pending.values())
            self.pending.clear()

            for entry in entries:
                top = entry.top_candidate
                if top is None:
                    self.skipped_count += 1
                    continue
                try:
                    await self.repository.persist_label(
                        entry.item_id, top.label, top.confidence, False, entry.item_kind
                    )
                    self.auto_assigned_count += 1
                except Exception as e:
                    ErrorHandler.log_error(ErrorHandler.describe(ErrorHandler.PERSIST), e, logger)
                    self.failed_count += 1

            logger.info(f"⌛ Batch for {self.actor_id} expired, {len(entries)} items auto-assigned")
            self._finalize("expired")

    def cancel(self) -> None:
        """Stop the session; pending items are discarded without persisting"""
        if not self.is_active:
            return
        self._cancelled = True
        discarded = len(self.pending)
        self.pending.clear()
        if self._expiry_task and not self._expiry_task.done():
            self._expiry_task.cancel()
        logger.info(f"🛑 Batch for {self.actor_id} cancelled, {discarded} pending items dropped")
        self._finalize("cancelled")

    async def wait_closed(self) -> Optional[BatchSummary]:
        """Wait until the session finalizes"""
        await self._closed.wait()
        return self.summary

    # ==================== Internals ====================

    def _schedule_expiry(self):
        loop = asyncio.get_running_loop()
        self._timer_handle = loop.call_later(self.expiry_seconds, self._on_timer)

    def _on_timer(self):
        self._timer_handle = None
        self._expiry_task = asyncio.ensure_future(self.on_expiry())

    def _cancel_timer(self):
        if self._timer_handle is not None:
            self._timer_handle.cancel()
            self._timer_handle = None

    def _finalize(self, reason: str):
        if self.state == SessionState.FINALIZED:
            return

        self.state = SessionState.FINALIZED
        self._cancel_timer()
        self.summary = BatchSummary(
            auto_confirmed_count=self.auto_confirmed_count,
            manually_assigned_count=self.manually_assigned_count,
            auto_assigned_count=self.auto_assigned_count,
            skipped_count=self.skipped_count,
            failed_count=self.failed_count,
            reason=reason
        )
        logger.info(f"🏁 Batch for {self.actor_id} finished ({reason}): {self.summary}")
        self._closed.set()

        if self.on_complete:
            self._notify(self.on_complete, self.summary)

    @staticmethod
    def _notify(callback: Callable, payload):
        try:
            callback(payload)
        except Exception as e:
            ErrorHandler.log_error("batch callback", e, logger)


class BatchCoordinator:
    """
    Keeps at most one active batch session per actor

    Starting a new session cancels the previous one.
    """

    def __init__(self):
        self._sessions: Dict[str, BatchAssignmentSession] = {}

    def begin(self, session: BatchAssignmentSession) -> BatchAssignmentSession:
        previous = self._sessions.get(session.actor_id)
        if previous is not None and previous is not session and previous.is_active:
            logger.info(f"New batch for {session.actor_id} supersedes the active one")
            previous.cancel()
        self._sessions[session.actor_id] = session
        return session

    def get(self, actor_id: str) -> Optional[BatchAssignmentSession]:
        return self._sessions.get(actor_id)

    async def on_user_choice(self, actor_id: str, item_id: str, label: str) -> bool:
        session = self._sessions.get(actor_id)
        if session is None:
            return False
        return await session.on_user_choice(item_id, label)

    def cancel_all(self):
        for session in self._sessions.values():
            session.cancel()
        self._sessions.clear()
