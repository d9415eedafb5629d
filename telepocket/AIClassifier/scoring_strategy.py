"""
Scoring strategy - maps a 0-100 score to a confidence tier and an action

Both mappings are total, deterministic and monotonic in the score.
"""
from typing import Dict, Optional

from telepocket.constants import (
    ConfidenceTier, LabelAction, ScoreSource, TIER_BOUNDARIES, MIN_SCORE, MAX_SCORE
)
from telepocket.models import ThresholdPolicy, LabelScore

DEFAULT_POLICY = ThresholdPolicy()


def clamp_score(score: int) -> int:
    """Clamp a score into 0-100"""
    return max(MIN_SCORE, min(MAX_SCORE, int(score)))


def get_tier(score: int) -> ConfidenceTier:
    """
    Confidence tier for a score

    Args:
        score: label score (0-100)

    Returns:
        ConfidenceTier: definite / high / moderate / low / insufficient
    """
    for lower_bound, tier in TIER_BOUNDARIES:
        if score >= lower_bound:
            return tier
    return ConfidenceTier.INSUFFICIENT


def get_action(score: int, policy: ThresholdPolicy = DEFAULT_POLICY) -> LabelAction:
    """
    Action for a score under a label's thresholds

    Args:
        score: label score (0-100)
        policy: the label's thresholds

    Returns:
        LabelAction: auto-confirm / suggest / skip
    """
    if score >= policy.auto_confirm_threshold:
        return LabelAction.AUTO_CONFIRM
    if score >= policy.suggest_threshold:
        return LabelAction.SUGGEST
    return LabelAction.SKIP


def build_label_score(
    label: str,
    score: int,
    policy: ThresholdPolicy = DEFAULT_POLICY,
    source: ScoreSource = ScoreSource.MODEL
) -> LabelScore:
    """Clamp the score and attach tier and action"""
    score = clamp_score(score)
    return LabelScore(
        label=label,
        score=score,
        tier=get_tier(score),
        action=get_action(score, policy),
        source=source
    )


class ThresholdResolver:
    """
    Looks up the threshold policy for a label

    Falls back to the default policy for labels without an override.
    """

    def __init__(
        self,
        overrides: Optional[Dict[str, ThresholdPolicy]] = None,
        default: Optional[ThresholdPolicy] = None
    ):
        self.overrides = dict(overrides or {})
        self.default = default or DEFAULT_POLICY

    def resolve(self, label: str) -> ThresholdPolicy:
        return self.overrides.get(label, self.default)
