"""
AIClassifier module - label scoring for notes and links

Flat layout, every component in one directory:
├── __init__.py              # package init
├── label_scorer.py          # coordinator
├── provider_manager.py      # backends + fallback orchestrator
├── rate_limiter.py          # token bucket + registry
├── prompt_builder.py        # prompt rendering
├── response_parser.py       # integer score parsing
├── error_handler.py         # error logging + degraded results
├── scoring_strategy.py      # tier / action policy
└── category_classifier.py   # pattern fast path
"""

from .label_scorer import LabelScorer
from .provider_manager import (
    ScoringBackend,
    OpenAICompatibleBackend,
    ProviderSlot,
    FallbackOrchestrator,
    build_fallback_chain,
    build_provider_slots
)
from .rate_limiter import (
    TokenBucketRateLimiter,
    RateLimiterRegistry,
    RateLimiterSettings,
    create_gemini_rate_limiter,
    create_openrouter_rate_limiter
)
from .prompt_builder import PromptBuilder, build_category_labels, build_tag_label
from .response_parser import ResponseParser
from .error_handler import ErrorHandler
from .scoring_strategy import ThresholdResolver, get_tier, get_action, build_label_score
from .category_classifier import PatternDetector

__all__ = [
    # coordinator
    'LabelScorer',

    # providers
    'ScoringBackend',
    'OpenAICompatibleBackend',
    'ProviderSlot',
    'FallbackOrchestrator',
    'build_fallback_chain',
    'build_provider_slots',

    # rate limiting
    'TokenBucketRateLimiter',
    'RateLimiterRegistry',
    'RateLimiterSettings',
    'create_gemini_rate_limiter',
    'create_openrouter_rate_limiter',

    # components
    'PromptBuilder',
    'build_category_labels',
    'build_tag_label',
    'ResponseParser',
    'ErrorHandler',
    'PatternDetector',

    # policy
    'ThresholdResolver',
    'get_tier',
    'get_action',
    'build_label_score',
]
