"""
LabelScorer - scores one subject against a set of labels

Coordinates the fast path, prompt rendering, the fallback orchestrator and
response parsing. Every label is scored independently: a failure on one
label degrades that label to score 0 and never affects the others.
"""
import asyncio
import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

from telepocket.constants import LabelKind, ScoreSource, SuggestionDefaults
from telepocket.models import LabelDefinition, LabelScore, ScoreRequest
from .category_classifier import PatternDetector
from .error_handler import ErrorHandler
from .prompt_builder import PromptBuilder
from .provider_manager import FallbackOrchestrator
from .response_parser import ResponseParser
from .scoring_strategy import build_label_score

logger = logging.getLogger(__name__)


class LabelScorer:
    """
    Label scorer - coordinator role

    1. Runs the pattern fast path once per subject
    2. Fans out one scoring request per label concurrently
    3. Merges fast-path and model scores (higher wins)
    """

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        pattern_detector: Optional[PatternDetector] = None,
        classification_enabled: bool = True,
        short_circuit_fast_path: bool = True
    ):
        """
        Args:
            orchestrator: provider fallback chain
            pattern_detector: deterministic fast path, None disables it
            classification_enabled: global switch, False scores nothing
            short_circuit_fast_path: skip the model call when the fast path
                alone reaches the auto-confirm threshold
        """
        self.orchestrator = orchestrator
        self.pattern_detector = pattern_detector
        self.classification_enabled = classification_enabled
        self.short_circuit_fast_path = short_circuit_fast_path

        self._stats = Counter()

    # ==================== Main entry ====================

    async def score_all(
        self,
        subject_text: str,
        auxiliary_context: Sequence[str],
        labels: List[LabelDefinition]
    ) -> List[LabelScore]:
        """
        Score a subject against every label

        Args:
            subject_text: note content or link metadata
            auxiliary_context: URLs attached to the subject
            labels: candidate labels

        Returns:
            List[LabelScore]: one score per label, sorted by score descending
        """
        if not self.classification_enabled:
            logger.debug("Classification disabled, skipping")
            return []
        if not labels:
            return []

        context = tuple(auxiliary_context or ())
        fast_path = self._detect(subject_text, context)

        requests = [
            ScoreRequest(subject_text=subject_text, auxiliary_context=context, candidate_label=label)
            for label in labels
        ]
        results = await asyncio.gather(*[
            self._score_safely(request, fast_path) for request in requests
        ])

        ranked = sorted(results, key=lambda s: s.score, reverse=True)
        logger.info(
            f"📊 Scored {len(ranked)} labels: "
            + ", ".join(f"{s.label}={s.score}" for s in ranked[:3])
        )
        return ranked

    async def classify_link(
        self,
        url: str,
        title: Optional[str],
        description: Optional[str],
        labels: List[LabelDefinition]
    ) -> List[LabelScore]:
        """
        Score a link from its metadata

        Args:
            url: link URL
            title: page title, if fetched
            description: page description, if fetched
            labels: candidate labels

        Returns:
            List[LabelScore]: sorted by score descending
        """
        parts = [part for part in (title, description) if part]
        subject = "\n".join(parts) if parts else url
        return await self.score_all(subject, (url,), labels)

    async def score_relevance(self, content: str, query: str) -> Optional[int]:
        """
        Score a note's relevance to a free-text query

        Args:
            content: note content
            query: user query (truncated)

        Returns:
            Optional[int]: 0-100, None when no provider answered
        """
        query = (query or "")[:SuggestionDefaults.MAX_QUERY_LENGTH]
        prompt = PromptBuilder.build_relevance(content, query)
        raw = await self.orchestrator.score(prompt)
        if raw is None:
            return None
        return ResponseParser.parse_score(raw, context="relevance")

    # ==================== Per-label scoring ====================

    def _detect(self, subject_text: str, context: Sequence[str]) -> Dict[str, int]:
        if self.pattern_detector is None:
            return {}
        return self.pattern_detector.detect(subject_text, context)

    async def _score_safely(self, request: ScoreRequest, fast_path: Dict[str, int]) -> LabelScore:
        """Error boundary around one label"""
        try:
            return await self._score_one(request, fast_path)
        except Exception as e:
            ErrorHandler.log_error(
                context=f"{ErrorHandler.describe(ErrorHandler.GENERAL)} ({request.candidate_label.name})",
                error=e,
                logger=logger
            )
            self._stats['failed'] += 1
            return ErrorHandler.default_label_score(request.candidate_label)

    async def _score_one(self, request: ScoreRequest, fast_path: Dict[str, int]) -> LabelScore:
        label = request.candidate_label
        policy = label.thresholds

        if not label.is_scorable:
            # manual tag
            return build_label_score(label.name, 0, policy, ScoreSource.NONE)

        pattern_score = fast_path.get(label.name) if label.kind == LabelKind.CATEGORY else None

        if (
            self.short_circuit_fast_path
            and pattern_score is not None
            and pattern_score >= policy.auto_confirm_threshold
        ):
            self._stats['fast_path'] += 1
            logger.debug(f"[{label.name}] fast path {pattern_score}, no model call")
            return build_label_score(label.name, pattern_score, policy, ScoreSource.PATTERN)

        heuristic_used = []

        def heuristic() -> Optional[int]:
            if pattern_score is not None and pattern_score >= policy.suggest_threshold:
                heuristic_used.append(pattern_score)
                return pattern_score
            return None

        raw = await self.orchestrator.score(PromptBuilder.build(request), heuristic=heuristic)
        if raw is None:
            self._stats['no_score'] += 1
            return ErrorHandler.default_label_score(label)

        if heuristic_used:
            self._stats['heuristic'] += 1
            return build_label_score(label.name, heuristic_used[0], policy, ScoreSource.HEURISTIC)

        model_score = ResponseParser.parse_score(raw, context=label.name)
        self._stats['model'] += 1

        if pattern_score is not None and pattern_score > model_score:
            return build_label_score(label.name, pattern_score, policy, ScoreSource.PATTERN)
        return build_label_score(label.name, model_score, policy, ScoreSource.MODEL)

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)
