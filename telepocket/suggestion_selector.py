"""
Suggestion selector

Picks one item per category for the suggestion feed:
- weighted random: mostly least-shown items, sometimes any item
- relevance: the item a model scores highest against a query
"""
import asyncio
import logging
import random
from typing import Dict, List, Optional, Sequence, Tuple

from telepocket.AIClassifier.error_handler import ErrorHandler
from telepocket.AIClassifier.label_scorer import LabelScorer
from telepocket.constants import ALL_CATEGORIES, SuggestionDefaults
from telepocket.models import SuggestionCandidate

logger = logging.getLogger(__name__)

POOL_LEAST_SHOWN = "least_shown"
POOL_ALL = "all"


def group_by_category(
    candidates: Sequence[SuggestionCandidate],
    categories: Optional[Sequence[str]] = None
) -> Dict[str, List[SuggestionCandidate]]:
    """Bucket candidates by category, keeping input order; unknown categories are dropped"""
    groups: Dict[str, List[SuggestionCandidate]] = {c: [] for c in (categories or ALL_CATEGORIES)}
    for candidate in candidates:
        if candidate.category in groups:
            groups[candidate.category].append(candidate)
    return groups


def pick_from_category(
    candidates: List[SuggestionCandidate],
    least_shown_weight: float = SuggestionDefaults.LEAST_SHOWN_WEIGHT,
    rng: Optional[random.Random] = None
) -> Tuple[Optional[SuggestionCandidate], Optional[str]]:
    """
    Weighted pick within one category

    One draw r: r < least_shown_weight picks uniformly among the least-shown
    candidates, otherwise uniformly among all of them.

    Args:
        candidates: candidates of a single category
        least_shown_weight: probability of drawing from the least-shown pool
        rng: random source

    Returns:
        (candidate, pool): pool is "least_shown" or "all"; (None, None) when empty
    """
    if not candidates:
        return None, None

    rng = rng or random
    least_shown = [
        c for c in candidates
        if c.impression_count == c.category_min_impression_count
    ]

    if rng.random() < least_shown_weight and least_shown:
        return rng.choice(least_shown), POOL_LEAST_SHOWN
    return rng.choice(candidates), POOL_ALL


def select_one_per_category(
    candidates: Sequence[SuggestionCandidate],
    least_shown_weight: float = SuggestionDefaults.LEAST_SHOWN_WEIGHT,
    rng: Optional[random.Random] = None,
    categories: Optional[Sequence[str]] = None
) -> Dict[str, Optional[SuggestionCandidate]]:
    """
    Weighted random selection, one item per category

    Args:
        candidates: recent items with engagement counters
        least_shown_weight: probability of favoring least-shown items
        rng: random source (inject a seeded random.Random for tests)
        categories: categories to fill, defaults to all built-in ones

    Returns:
        Dict[str, Optional[SuggestionCandidate]]: None for empty categories
    """
    if not 0.0 <= least_shown_weight <= 1.0:
        raise ValueError(f"least_shown_weight must be within 0-1: {least_shown_weight}")

    selected = {}
    for category, group in group_by_category(candidates, categories).items():
        selected[category], _ = pick_from_category(group, least_shown_weight, rng)
    return selected


async def select_by_relevance(
    candidates: Sequence[SuggestionCandidate],
    query: str,
    scorer: LabelScorer,
    categories: Optional[Sequence[str]] = None
) -> Dict[str, Optional[SuggestionCandidate]]:
    """
    Relevance selection: highest-scoring item per category

    Candidates whose scoring fails are skipped.

    Args:
        candidates: recent items with engagement counters
        query: user query
        scorer: label scorer used for relevance scoring
        categories: categories to fill

    Returns:
        Dict[str, Optional[SuggestionCandidate]]: None where nothing scored
    """
    groups = group_by_category(candidates, categories)
    # one scoring call per item, shared by every category it carries
    distinct = {}
    for group in groups.values():
        for candidate in group:
            distinct.setdefault(candidate.item_id, candidate)

    results = await asyncio.gather(
        *[scorer.score_relevance(c.content, query) for c in distinct.values()],
        return_exceptions=True
    )
    scores = {}
    for item_id, result in zip(distinct, results):
        if isinstance(result, Exception):
            ErrorHandler.log_error(f"relevance {item_id}", result, logger, level='warning')
            continue
        if result is None:
            continue
        scores[item_id] = result

    selected = {}
    for category, group in groups.items():
        best, best_score = None, -1
        for candidate in group:
            score = scores.get(candidate.item_id)
            if score is not None and score > best_score:
                best, best_score = candidate, score
        selected[category] = best
        if best is not None:
            logger.debug(f"[{category}] best match {best.item_id} ({best_score})")
    return selected
