"""
Telepocket constants

Central place for magic strings, default values and configuration constants
"""
from dataclasses import dataclass
from enum import Enum


class NoteCategory(str, Enum):
    """Built-in note categories"""
    TODO = "todo"
    IDEA = "idea"
    BLOG = "blog"
    YOUTUBE = "youtube"
    REFERENCE = "reference"
    JAPANESE = "japanese"


class ConfidenceTier(str, Enum):
    """Named confidence bucket derived from a 0-100 score"""
    DEFINITE = "definite"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    INSUFFICIENT = "insufficient"


class LabelAction(str, Enum):
    """What the UI/persistence layer does with a scored label"""
    AUTO_CONFIRM = "auto-confirm"
    SUGGEST = "suggest"
    SKIP = "skip"


class ScoreSource(str, Enum):
    """Which path produced a label score"""
    MODEL = "model"
    PATTERN = "pattern"
    HEURISTIC = "heuristic"
    NONE = "none"


class ItemKind(str, Enum):
    """Kinds of captured items"""
    NOTE = "note"
    LINK = "link"


class LabelKind(str, Enum):
    """Built-in category or user-defined tag"""
    CATEGORY = "category"
    TAG = "tag"


ALL_CATEGORIES = [category.value for category in NoteCategory]

CATEGORY_EMOJI = {
    "todo": "📋",
    "idea": "💡",
    "blog": "📝",
    "youtube": "📺",
    "reference": "📚",
    "japanese": "🇯🇵",
}


# (lower bound, tier), checked top-down
TIER_BOUNDARIES = (
    (95, ConfidenceTier.DEFINITE),
    (85, ConfidenceTier.HIGH),
    (70, ConfidenceTier.MODERATE),
    (60, ConfidenceTier.LOW),
)

MIN_SCORE = 0
MAX_SCORE = 100


@dataclass(frozen=True)
class DefaultThresholds:
    """Default label thresholds (0-100)"""
    AUTO_CONFIRM = 95
    SUGGEST = 60


@dataclass(frozen=True)
class Timeouts:
    """Default timing values (seconds)"""
    CALL_TIMEOUT = 10.0
    BATCH_EXPIRY = 60.0
    LIMITER_POLL_MAX = 0.1
    BATCH_ITEM_DELAY = 0.5


@dataclass(frozen=True)
class BatchLimits:
    """Batch size bounds for /classify"""
    DEFAULT_SIZE = 3
    MAX_SIZE = 50


@dataclass(frozen=True)
class SuggestionDefaults:
    """Suggestion feed defaults"""
    LEAST_SHOWN_WEIGHT = 0.7
    DAYS_BACK = 7
    MAX_QUERY_LENGTH = 500


# Confidence stored for a label the user picked by hand
USER_CHOICE_CONFIDENCE = 1.0

# Notes shorter than this are not worth a model call
MIN_CONTENT_LENGTH = 20


class Paths:
    """File path constants"""
    DEFAULT_CONFIG_PATH = "config/config.yaml"
    DEFAULT_STORAGE_PATH = "data/items.json"
