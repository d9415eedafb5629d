"""
Live auto-classification of newly captured notes

Runs detached from the capture path: the user is acknowledged first and
classification happens in a background task with its own error boundary.
"""
import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence, Set

from telepocket.AIClassifier.error_handler import ErrorHandler
from telepocket.AIClassifier.label_scorer import LabelScorer
from telepocket.constants import ItemKind, LabelAction, MIN_CONTENT_LENGTH
from telepocket.models import AutoClassifyResult, LabelDefinition
from telepocket.repository import ItemRepository

logger = logging.getLogger(__name__)


class AutoClassifyService:
    """Scores a note and persists its confident and suggested labels"""

    def __init__(
        self,
        scorer: LabelScorer,
        repository: ItemRepository,
        min_content_length: int = MIN_CONTENT_LENGTH
    ):
        self.scorer = scorer
        self.repository = repository
        self.min_content_length = min_content_length
        self._tasks: Set[asyncio.Task] = set()

    async def process_note(
        self,
        item_id: str,
        content: str,
        urls: Sequence[str],
        labels: List[LabelDefinition],
        item_kind: ItemKind = ItemKind.NOTE
    ) -> AutoClassifyResult:
        """
        Classify one note and persist the outcome

        auto-confirm labels are stored confirmed, suggest labels unconfirmed,
        skip labels are dropped.

        Args:
            item_id: stored item id
            content: note text
            urls: URLs found in the note
            labels: candidate labels
            item_kind: note or link

        Returns:
            AutoClassifyResult: what was persisted
        """
        result = AutoClassifyResult(item_id=item_id)

        if len((content or "").strip()) < self.min_content_length:
            result.skipped_reason = "content too short"
            logger.debug(f"Skipping {item_id}: content shorter than {self.min_content_length}")
            return result

        scores = await self.scorer.score_all(content, urls, labels)
        if not scores:
            result.skipped_reason = "no labels scored"
            return result

        for score in scores:
            if score.action == LabelAction.SKIP:
                continue
            confirmed = score.action == LabelAction.AUTO_CONFIRM
            try:
                await self.repository.persist_label(
                    item_id, score.label, score.confidence, confirmed, item_kind
                )
            except Exception as e:
                ErrorHandler.log_error(ErrorHandler.describe(ErrorHandler.PERSIST), e, logger)
                result.error = str(e)
                continue

            if confirmed:
                result.auto_confirmed.append(score)
            else:
                result.suggested.append(score)

        logger.info(
            f"🏷️ {item_id}: {len(result.auto_confirmed)} confirmed, "
            f"{len(result.suggested)} suggested"
        )
        return result

    def spawn(
        self,
        item_id: str,
        content: str,
        urls: Sequence[str],
        labels: List[LabelDefinition],
        on_result: Optional[Callable[[AutoClassifyResult], Any]] = None
    ) -> asyncio.Task:
        """
        Fire-and-forget classification

        The returned task never raises; failures are logged and reported as
        an AutoClassifyResult with `error` set.
        """
        task = asyncio.ensure_future(self._run(item_id, content, urls, labels, on_result))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, item_id, content, urls, labels, on_result) -> AutoClassifyResult:
        try:
            result = await self.process_note(item_id, content, urls, labels)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            ErrorHandler.log_error(f"auto-classify {item_id}", e, logger)
            result = AutoClassifyResult(item_id=item_id, error=str(e))

        if on_result:
            try:
                on_result(result)
            except Exception as e:
                ErrorHandler.log_error("auto-classify callback", e, logger)
        return result

    @property
    def running_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self):
        """Wait for every background classification to finish"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self):
        for task in list(self._tasks):
            task.cancel()
