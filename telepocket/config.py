"""
Configuration module
Loads and validates the YAML configuration file
"""
import os
import yaml
from typing import Any, Dict, List
from pathlib import Path

from telepocket.constants import (
    DefaultThresholds, Timeouts, BatchLimits, SuggestionDefaults, Paths, MIN_CONTENT_LENGTH
)
from telepocket.models import (
    AIConfig, ProviderConfig, FallbackConfig, BatchConfig, SuggestionConfig,
    ThresholdPolicy, LabelDefinition
)
from telepocket.AIClassifier.prompt_builder import build_tag_label


class Config:
    """Configuration manager"""

    def __init__(self, config_path: str = Paths.DEFAULT_CONFIG_PATH):
        """Load the configuration file"""
        self.config_path = Path(config_path)
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load the YAML file"""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}

    @property
    def ai_config(self) -> AIConfig:
        """AI configuration (multi-provider)"""
        ai_data = self._config.get('ai', {})

        current_provider = ai_data.get('ai_provider', 'openrouter')
        providers_raw = ai_data.get('ai_providers', {})

        providers_config = {}
        for name, config in providers_raw.items():
            limiter = config.get('rate_limit', {})
            providers_config[name] = ProviderConfig(
                api_key=self._resolve_api_key(config.get('api_key', '')),
                base_url=config.get('base_url', ''),
                model=config.get('model', ''),
                max_tokens=config.get('max_tokens', 10),
                temperature=config.get('temperature', 0.3),
                bucket_size=limiter.get('max_tokens', 40),
                refill_rate=limiter.get('refill_rate', 40),
                refill_interval=float(limiter.get('refill_interval', 60.0))
            )

        current_config = providers_config.get(current_provider)
        if not current_config or not current_config.api_key:
            self._raise_api_key_error(current_provider, ai_data)

        return AIConfig(
            provider=current_provider,
            providers_config=providers_config,
            fallback=self._build_fallback_config(ai_data.get('fallback', {})),
            call_timeout=float(ai_data.get('call_timeout', Timeouts.CALL_TIMEOUT)),
            classification_enabled=ai_data.get('classification_enabled', True),
            japanese_category_enabled=ai_data.get('japanese_category_enabled', True),
            min_content_length=ai_data.get('min_content_length', MIN_CONTENT_LENGTH),
            short_circuit_fast_path=ai_data.get('short_circuit_fast_path', True)
        )

    def _resolve_api_key(self, api_key_template: str) -> str:
        """Resolve ${ENV_VAR} API key templates"""
        if api_key_template.startswith('${') and api_key_template.endswith('}'):
            env_var = api_key_template[2:-1]
            return os.getenv(env_var, '')
        return api_key_template

    def _raise_api_key_error(self, provider: str, ai_data: dict):
        env_var = "OPENROUTER_API_KEY"
        provider_config = ai_data.get('ai_providers', {}).get(provider, {})
        api_key_template = provider_config.get('api_key', '')
        if api_key_template.startswith('${') and api_key_template.endswith('}'):
            env_var = api_key_template[2:-1]

        raise ValueError(
            f"❌ AI provider '{provider}' has no API key configured\n"
            f"Set the environment variable: {env_var}"
        )

    def _build_fallback_config(self, fallback_data: dict) -> FallbackConfig:
        return FallbackConfig(
            enabled=fallback_data.get('enabled', True),
            fallback_chain=fallback_data.get('fallback_chain', [])
        )

    @property
    def label_thresholds(self) -> Dict[str, ThresholdPolicy]:
        """
        Threshold policies keyed by label, with a 'default' entry

        Raises:
            InvalidThresholdConfig: auto_confirm is not above suggest
        """
        data = self._config.get('thresholds', {})
        default_data = data.get('default', {})
        default = ThresholdPolicy(
            auto_confirm_threshold=default_data.get('auto_confirm', DefaultThresholds.AUTO_CONFIRM),
            suggest_threshold=default_data.get('suggest', DefaultThresholds.SUGGEST),
            label='default'
        )

        policies = {'default': default}
        for label, values in data.get('labels', {}).items():
            policies[label] = ThresholdPolicy(
                auto_confirm_threshold=values.get('auto_confirm', default.auto_confirm_threshold),
                suggest_threshold=values.get('suggest', default.suggest_threshold),
                label=label
            )
        return policies

    @property
    def tag_labels(self) -> List[LabelDefinition]:
        """User tags; a tag without score_prompt is manual"""
        default = self.label_thresholds['default']
        tags = []
        for tag in self._config.get('tags', []):
            tags.append(build_tag_label(
                tag_name=tag['name'],
                score_prompt=tag.get('score_prompt'),
                auto_confirm_threshold=tag.get('auto_confirm', default.auto_confirm_threshold),
                suggest_threshold=tag.get('suggest', default.suggest_threshold),
                tag_id=tag.get('id')
            ))
        return tags

    @property
    def pattern_scores(self) -> Dict[str, int]:
        """Fast-path score overrides"""
        return dict(self._config.get('pattern_scores', {}))

    @property
    def batch_config(self) -> BatchConfig:
        data = self._config.get('batch', {})
        return BatchConfig(
            expiry_seconds=float(data.get('expiry_seconds', Timeouts.BATCH_EXPIRY)),
            default_size=data.get('default_size', BatchLimits.DEFAULT_SIZE),
            max_size=data.get('max_size', BatchLimits.MAX_SIZE),
            item_delay_seconds=float(data.get('item_delay_seconds', Timeouts.BATCH_ITEM_DELAY))
        )

    @property
    def suggestion_config(self) -> SuggestionConfig:
        data = self._config.get('suggestions', {})
        return SuggestionConfig(
            least_shown_weight=data.get('least_shown_weight', SuggestionDefaults.LEAST_SHOWN_WEIGHT),
            days_back=data.get('days_back', SuggestionDefaults.DAYS_BACK)
        )

    @property
    def storage_path(self) -> str:
        return self._config.get('storage', {}).get('path', Paths.DEFAULT_STORAGE_PATH)

    def validate(self):
        """
        Read every section so configuration errors surface at startup

        Raises:
            ValueError: missing API key or inconsistent batch/suggestion settings
            InvalidThresholdConfig: invalid label thresholds
        """
        self.ai_config
        self.label_thresholds
        self.tag_labels

        batch = self.batch_config
        if batch.expiry_seconds <= 0:
            raise ValueError(f"batch.expiry_seconds must be positive: {batch.expiry_seconds}")
        if not 1 <= batch.default_size <= batch.max_size:
            raise ValueError(
                f"batch.default_size must be within 1-{batch.max_size}: {batch.default_size}"
            )

        weight = self.suggestion_config.least_shown_weight
        if not 0.0 <= weight <= 1.0:
            raise ValueError(f"suggestions.least_shown_weight must be within 0-1: {weight}")
