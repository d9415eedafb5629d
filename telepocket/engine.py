"""
Classification engine - the interface the bot and web UI talk to

Wires the rate limiter registry, provider chain, scorer, live
classification, batch sessions and the suggestion feed together.
"""
import logging
import random
from typing import Any, Callable, Dict, List, Optional, Sequence

from telepocket.AIClassifier.category_classifier import PatternDetector
from telepocket.AIClassifier.label_scorer import LabelScorer
from telepocket.AIClassifier.prompt_builder import build_category_labels
from telepocket.AIClassifier.provider_manager import (
    FallbackOrchestrator, OpenAICompatibleBackend, build_provider_slots
)
from telepocket.AIClassifier.rate_limiter import RateLimiterRegistry
from telepocket.AIClassifier.scoring_strategy import ThresholdResolver
from telepocket.auto_classify import AutoClassifyService
from telepocket.batch_session import BatchAssignmentSession, BatchCoordinator
from telepocket.config import Config
from telepocket.constants import LabelKind, SuggestionDefaults
from telepocket.models import (
    AIConfig, AutoClassifyResult, BatchConfig, BatchSummary, LabelDefinition,
    PendingAssignment, SuggestionCandidate, SuggestionConfig, ThresholdPolicy
)
from telepocket.repository import ItemRepository, JsonItemRepository
from telepocket.suggestion_selector import select_by_relevance, select_one_per_category

logger = logging.getLogger(__name__)


class ClassificationEngine:
    """Facade over the classification components"""

    def __init__(
        self,
        ai_config: AIConfig,
        repository: ItemRepository,
        thresholds: Optional[Dict[str, ThresholdPolicy]] = None,
        tags: Optional[List[LabelDefinition]] = None,
        batch_config: Optional[BatchConfig] = None,
        suggestion_config: Optional[SuggestionConfig] = None,
        registry: Optional[RateLimiterRegistry] = None,
        backend_factory: Callable = OpenAICompatibleBackend,
        pattern_scores: Optional[Dict[str, int]] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Args:
            ai_config: providers, fallback chain and classification switches
            repository: persistence collaborator
            thresholds: per-label policies, 'default' applies to the rest
            tags: user tag labels
            batch_config: batch session settings
            suggestion_config: suggestion feed settings
            registry: shared limiter registry, one is created when omitted
            backend_factory: builds a ScoringBackend from (name, ProviderConfig)
            pattern_scores: fast-path score overrides
            rng: random source for suggestions
        """
        self.ai_config = ai_config
        self.repository = repository
        self.batch_config = batch_config or BatchConfig()
        self.suggestion_config = suggestion_config or SuggestionConfig()
        self.registry = registry or RateLimiterRegistry()
        self.rng = rng or random.Random()

        thresholds = dict(thresholds or {})
        resolver = ThresholdResolver(overrides=thresholds, default=thresholds.pop('default', None))
        self.labels = build_category_labels(resolver, ai_config.japanese_category_enabled)
        self.labels.extend(tags or [])

        self.chain = build_provider_slots(ai_config, self.registry, backend_factory)
        self.orchestrator = FallbackOrchestrator(self.chain, call_timeout=ai_config.call_timeout)
        self.pattern_detector = PatternDetector(pattern_scores)
        self.scorer = LabelScorer(
            self.orchestrator,
            pattern_detector=self.pattern_detector,
            classification_enabled=ai_config.classification_enabled,
            short_circuit_fast_path=ai_config.short_circuit_fast_path
        )
        self.auto_classify = AutoClassifyService(
            self.scorer, repository, min_content_length=ai_config.min_content_length
        )
        self.coordinator = BatchCoordinator()

        logger.info(
            f"ClassificationEngine ready: {len(self.labels)} labels, "
            f"chain={[slot.name for slot in self.chain]}"
        )

    @classmethod
    def from_config(
        cls,
        config: Config,
        repository: Optional[ItemRepository] = None,
        **kwargs
    ) -> "ClassificationEngine":
        """Build an engine from a loaded Config"""
        return cls(
            ai_config=config.ai_config,
            repository=repository or JsonItemRepository(config.storage_path),
            thresholds=config.label_thresholds,
            tags=config.tag_labels,
            batch_config=config.batch_config,
            suggestion_config=config.suggestion_config,
            pattern_scores=config.pattern_scores,
            **kwargs
        )

    # ==================== Live classification ====================

    def classify_live(
        self,
        item_id: str,
        content: str,
        urls: Sequence[str] = (),
        on_result: Optional[Callable[[AutoClassifyResult], Any]] = None
    ):
        """
        Classify a freshly saved note in the background

        Returns:
            asyncio.Task: resolves to an AutoClassifyResult, never raises
        """
        return self.auto_classify.spawn(item_id, content, list(urls), self.labels, on_result)

    # ==================== Batch ====================

    def clamp_batch_size(self, batch_size: Optional[int]) -> int:
        if batch_size is None:
            return self.batch_config.default_size
        return max(1, min(int(batch_size), self.batch_config.max_size))

    async def start_batch(
        self,
        actor_id: str,
        batch_size: Optional[int] = None,
        on_complete: Optional[Callable[[BatchSummary], Any]] = None,
        on_pending: Optional[Callable[[PendingAssignment], Any]] = None
    ) -> BatchAssignmentSession:
        """
        Classify a batch of unlabeled items for one actor

        Any session the actor still has open is cancelled first.

        Args:
            actor_id: user running the batch
            batch_size: number of items, clamped to 1..max_size
            on_complete: receives the BatchSummary
            on_pending: receives each item that needs a user choice

        Returns:
            BatchAssignmentSession: scored session, possibly still pending
        """
        size = self.clamp_batch_size(batch_size)
        items = await self.repository.fetch_unscored_items(size)

        session = BatchAssignmentSession(
            actor_id=actor_id,
            scorer=self.scorer,
            repository=self.repository,
            labels=self.labels,
            expiry_seconds=self.batch_config.expiry_seconds,
            item_delay_seconds=self.batch_config.item_delay_seconds,
            on_complete=on_complete,
            on_pending=on_pending
        )
        self.coordinator.begin(session)
        await session.start(items)
        return session

    async def on_user_choice(self, actor_id: str, item_id: str, label: str) -> bool:
        return await self.coordinator.on_user_choice(actor_id, item_id, label)

    # ==================== Suggestions ====================

    async def get_suggestions(
        self,
        days_back: Optional[int] = None,
        query: Optional[str] = None
    ) -> Dict[str, Optional[SuggestionCandidate]]:
        """
        One suggestion per category, with impressions recorded

        Args:
            days_back: look-back window in days
            query: free-text query, switches to relevance selection

        Returns:
            Dict[str, Optional[SuggestionCandidate]]: None for empty categories

        Raises:
            ValueError: query longer than the allowed length
        """
        if query and len(query) > SuggestionDefaults.MAX_QUERY_LENGTH:
            raise ValueError(
                f"Query too long: {len(query)} > {SuggestionDefaults.MAX_QUERY_LENGTH} characters"
            )

        if days_back is None:
            days_back = self.suggestion_config.days_back
        candidates = await self.repository.fetch_engagement_counters(None, days_back)
        categories = [label.name for label in self.labels if label.kind == LabelKind.CATEGORY]

        if query:
            selected = await select_by_relevance(candidates, query, self.scorer, categories)
        else:
            selected = select_one_per_category(
                candidates,
                least_shown_weight=self.suggestion_config.least_shown_weight,
                rng=self.rng,
                categories=categories
            )

        item_ids = list(dict.fromkeys(c.item_id for c in selected.values() if c is not None))
        if item_ids:
            await self.repository.increment_impression(item_ids)
        logger.info(f"💡 {len(item_ids)} suggestions from the last {days_back} days")
        return selected

    # ==================== Lifecycle ====================

    def get_stats(self) -> Dict[str, Any]:
        return {
            'orchestrator': self.orchestrator.get_stats(),
            'scorer': self.scorer.get_stats(),
            'fast_path_hits': self.pattern_detector.get_stats(),
            'limiters': {
                name: self.registry.get(name).available_tokens()
                for name in self.registry.providers()
            },
            'background_tasks': self.auto_classify.running_tasks,
        }

    async def shutdown(self):
        """Cancel sessions and background work, close provider clients"""
        self.coordinator.cancel_all()
        self.auto_classify.cancel_all()
        await self.auto_classify.drain()
        for slot in self.chain:
            await slot.backend.close()
        logger.info("ClassificationEngine stopped")
