"""
Data models module
All dataclasses live here to avoid circular imports
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Tuple

from telepocket.constants import (
    ItemKind, LabelKind, ConfidenceTier, LabelAction, ScoreSource,
    DefaultThresholds, Timeouts, BatchLimits, SuggestionDefaults,
    MIN_SCORE, MAX_SCORE, MIN_CONTENT_LENGTH
)
from telepocket.exceptions import InvalidThresholdConfig


@dataclass(frozen=True)
class ThresholdPolicy:
    """
    Per-label decision thresholds

    auto_confirm_threshold must stay strictly above suggest_threshold;
    violating that fails at construction time.
    """
    auto_confirm_threshold: int = DefaultThresholds.AUTO_CONFIRM
    suggest_threshold: int = DefaultThresholds.SUGGEST
    label: Optional[str] = None

    def __post_init__(self):
        auto, suggest = self.auto_confirm_threshold, self.suggest_threshold
        for value in (auto, suggest):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidThresholdConfig(
                    auto, suggest, label=self.label,
                    reason="thresholds must be integers"
                )
            if not MIN_SCORE <= value <= MAX_SCORE:
                raise InvalidThresholdConfig(
                    auto, suggest, label=self.label,
                    reason=f"thresholds must be within {MIN_SCORE}-{MAX_SCORE}"
                )
        if auto <= suggest:
            raise InvalidThresholdConfig(auto, suggest, label=self.label)


@dataclass(frozen=True)
class LabelDefinition:
    """A label that can be scored: a built-in category or a user tag"""
    name: str
    prompt_template: Optional[str] = None   # None -> manual tag, never scored
    thresholds: ThresholdPolicy = field(default_factory=ThresholdPolicy)
    kind: LabelKind = LabelKind.CATEGORY
    label_id: Optional[str] = None

    @property
    def is_scorable(self) -> bool:
        return bool(self.prompt_template)


@dataclass(frozen=True)
class ScoreRequest:
    """One scoring call: subject text + context against one candidate label"""
    subject_text: str
    auxiliary_context: Tuple[str, ...]
    candidate_label: LabelDefinition


@dataclass(frozen=True)
class LabelScore:
    """Scored label with its derived tier and action"""
    label: str
    score: int
    tier: ConfidenceTier
    action: LabelAction
    source: ScoreSource = ScoreSource.MODEL

    @property
    def confidence(self) -> float:
        """Score mapped to the 0-1 range used by persistence"""
        return self.score / 100


@dataclass
class Item:
    """A captured note or link"""
    item_id: str
    kind: ItemKind = ItemKind.NOTE
    content: str = ""
    urls: List[str] = field(default_factory=list)
    title: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        """Post-init normalization"""
        if isinstance(self.kind, str):
            self.kind = ItemKind(self.kind)
        if isinstance(self.created_at, str):
            from dateutil import parser as date_parser
            self.created_at = date_parser.parse(self.created_at)

    @property
    def preview(self) -> str:
        if self.kind == ItemKind.LINK:
            return self.title or (self.urls[0] if self.urls else self.content)
        return self.content[:100]


@dataclass(frozen=True)
class PendingAssignment:
    """An ambiguous batch item waiting for a user choice or expiry"""
    item_id: str
    item_kind: ItemKind
    candidate_scores: Tuple[LabelScore, ...]   # sorted by score, descending
    raw_item: Item

    @property
    def top_candidate(self) -> Optional[LabelScore]:
        return self.candidate_scores[0] if self.candidate_scores else None


@dataclass(frozen=True)
class BatchSummary:
    """Counters emitted when a batch session finalizes"""
    auto_confirmed_count: int = 0
    manually_assigned_count: int = 0
    auto_assigned_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    reason: str = "completed"

    @property
    def total(self) -> int:
        return (
            self.auto_confirmed_count + self.manually_assigned_count
            + self.auto_assigned_count + self.skipped_count + self.failed_count
        )


@dataclass(frozen=True)
class SuggestionCandidate:
    """Read-only engagement snapshot of one item used by the suggestion selector"""
    item_id: str
    category: str
    impression_count: int
    category_min_impression_count: int
    last_shown_at: Optional[datetime] = None
    content: str = ""


@dataclass
class AutoClassifyResult:
    """Outcome of one live classification"""
    item_id: str
    auto_confirmed: List[LabelScore] = field(default_factory=list)
    suggested: List[LabelScore] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    error: Optional[str] = None


# ==================== Configuration models ====================

@dataclass
class ProviderConfig:
    """LLM provider configuration"""
    api_key: str
    base_url: str
    model: str
    max_tokens: int = 10
    temperature: float = 0.3
    # token bucket settings
    bucket_size: int = 40
    refill_rate: int = 40
    refill_interval: float = 60.0


@dataclass
class FallbackConfig:
    """Provider fallback configuration"""
    enabled: bool = True
    fallback_chain: List[str] = field(default_factory=list)


@dataclass
class AIConfig:
    """AI configuration (multi-provider)"""
    provider: str                                    # primary provider name
    providers_config: Dict[str, ProviderConfig]      # every configured provider
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    call_timeout: float = Timeouts.CALL_TIMEOUT
    classification_enabled: bool = True
    japanese_category_enabled: bool = True
    min_content_length: int = MIN_CONTENT_LENGTH
    short_circuit_fast_path: bool = True


@dataclass
class BatchConfig:
    """Batch classification configuration"""
    expiry_seconds: float = Timeouts.BATCH_EXPIRY
    default_size: int = BatchLimits.DEFAULT_SIZE
    max_size: int = BatchLimits.MAX_SIZE
    item_delay_seconds: float = Timeouts.BATCH_ITEM_DELAY


@dataclass
class SuggestionConfig:
    """Suggestion feed configuration"""
    least_shown_weight: float = SuggestionDefaults.LEAST_SHOWN_WEIGHT
    days_back: int = SuggestionDefaults.DAYS_BACK
