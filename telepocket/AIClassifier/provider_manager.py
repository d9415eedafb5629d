"""
Provider manager - scoring backends and the fallback chain

Each provider is a ScoringBackend strategy paired with its shared rate
limiter; the FallbackOrchestrator walks the chain in priority order.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from typing import Callable, List, Optional

from openai import AsyncOpenAI, APIStatusError, APIConnectionError, RateLimitError
from tenacity import (
    retry, stop_after_attempt, wait_random_exponential,
    retry_if_exception_type, before_sleep_log
)

from telepocket.constants import Timeouts
from telepocket.exceptions import RateLimitTimeout, BackendError, AllProvidersExhausted
from telepocket.models import AIConfig, ProviderConfig
from .rate_limiter import TokenBucketRateLimiter, RateLimiterRegistry, RateLimiterSettings
from .error_handler import ErrorHandler

logger = logging.getLogger(__name__)

# Heuristic supplied by the caller: returns a score, or None when it has nothing
Heuristic = Callable[[], Optional[int]]


class ScoringBackend(ABC):
    """Uniform `prompt -> text` capability, one implementation per provider"""

    name: str = "backend"

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """
        Send a prompt and return the raw text reply

        Raises:
            BackendError: the provider failed
        """

    async def close(self):
        """Release network resources"""


class OpenAICompatibleBackend(ScoringBackend):
    """
    Backend for any OpenAI-compatible chat completion endpoint

    Covers OpenRouter, Gemini's OpenAI endpoint and OpenAI itself; the reply
    is expected to be a short integer, so max_tokens stays small.
    """

    def __init__(self, name: str, config: ProviderConfig, client: AsyncOpenAI = None):
        """
        Args:
            name: provider name
            config: provider configuration
            client: preconfigured client (tests)
        """
        self.name = name
        self.config = config
        self.model = config.model
        self.client = client or AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url or None
        )

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_random_exponential(multiplier=0.5, max=2),
        retry=retry_if_exception_type(RateLimitError),
        reraise=True,
        before_sleep=before_sleep_log(logger, logging.WARNING)
    )
    async def _create(self, prompt: str):
        return await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature
        )

    async def complete(self, prompt: str) -> str:
        try:
            response = await self._create(prompt)
        except APIStatusError as e:
            raise BackendError(
                f"{self.name} API error: {e.message}",
                provider=self.name,
                status_code=e.status_code
            ) from e
        except APIConnectionError as e:
            raise BackendError(f"{self.name} connection error: {e}", provider=self.name) from e

        if not response.choices:
            raise BackendError(f"{self.name} returned no choices", provider=self.name)

        content = response.choices[0].message.content or ""
        logger.debug(f"[{self.name}] raw response: {content!r}")
        return content

    async def close(self):
        await self.client.close()


@dataclass
class ProviderSlot:
    """A backend paired with the shared limiter of its provider"""
    backend: ScoringBackend
    limiter: TokenBucketRateLimiter

    @property
    def name(self) -> str:
        return self.backend.name


class FallbackOrchestrator:
    """
    Walks the provider chain until one provider answers

    Per provider: wait for one limiter token, then call the backend, both
    bounded by call_timeout. When every provider fails the caller's heuristic
    is used; when that has nothing either, None (no score) is returned.
    Scoring failures never propagate out of score().
    """

    def __init__(self, chain: List[ProviderSlot], call_timeout: float = Timeouts.CALL_TIMEOUT):
        """
        Args:
            chain: providers in priority order
            call_timeout: per-call bound in seconds, for both the limiter wait
                and the backend call
        """
        self.chain = list(chain)
        self.call_timeout = call_timeout

        self.api_call_count = 0
        self.heuristic_count = 0
        self.failures = Counter()

    async def _call_provider(self, slot: ProviderSlot, prompt: str) -> str:
        await slot.limiter.wait_and_consume(1, timeout=self.call_timeout)
        self.api_call_count += 1
        return await asyncio.wait_for(slot.backend.complete(prompt), timeout=self.call_timeout)

    async def score(
        self,
        prompt: str,
        heuristic: Optional[Heuristic] = None,
        chain: Optional[List[ProviderSlot]] = None
    ) -> Optional[str]:
        """
        Score a prompt with automatic fallback

        Args:
            prompt: prompt text
            heuristic: deterministic fallback scorer
            chain: provider chain overriding the configured one

        Returns:
            Optional[str]: provider reply, heuristic score as text, or None
        """
        slots = self.chain if chain is None else chain
        attempted = []
        last_error = None

        for slot in slots:
            attempted.append(slot.name)
            try:
                return await self._call_provider(slot, prompt)
            except asyncio.CancelledError:
                raise
            except RateLimitTimeout as e:
                error_type = ErrorHandler.RATE_LIMIT
                last_error = e
            except asyncio.TimeoutError as e:
                error_type = ErrorHandler.TIMEOUT
                last_error = e
            except Exception as e:
                error_type = ErrorHandler.BACKEND
                last_error = e

            self.failures[slot.name] += 1
            ErrorHandler.log_error(
                context=f"{ErrorHandler.describe(error_type)} ({slot.name})",
                error=last_error,
                logger=logger,
                level='warning'
            )

        if slots:
            ErrorHandler.log_error(
                context="fallback",
                error=AllProvidersExhausted(attempted, last_error),
                logger=logger,
                level='warning'
            )

        if heuristic is None:
            return None

        try:
            fallback_score = heuristic()
        except Exception as e:
            ErrorHandler.log_error("heuristic", e, logger=logger)
            return None

        if fallback_score is None:
            return None

        self.heuristic_count += 1
        logger.info(f"🔁 Using heuristic score {fallback_score} after provider failures")
        return str(fallback_score)

    def get_stats(self) -> dict:
        return {
            'api_call_count': self.api_call_count,
            'heuristic_count': self.heuristic_count,
            'failures': dict(self.failures),
            'fallback_chain': [slot.name for slot in self.chain],
        }


def build_fallback_chain(config: AIConfig) -> List[str]:
    """
    Provider names in priority order (deduplicated)

    Args:
        config: AI configuration

    Returns:
        List[str]: primary provider followed by the configured fallbacks
    """
    chain = []
    seen = set()

    if config.provider in config.providers_config:
        chain.append(config.provider)
        seen.add(config.provider)

    if config.fallback.enabled:
        for provider in config.fallback.fallback_chain:
            if provider not in seen and provider in config.providers_config:
                chain.append(provider)
                seen.add(provider)

    return chain


def build_provider_slots(
    config: AIConfig,
    registry: RateLimiterRegistry,
    backend_factory: Callable[[str, ProviderConfig], ScoringBackend] = OpenAICompatibleBackend
) -> List[ProviderSlot]:
    """
    Build the provider chain, registering one limiter per provider

    Args:
        config: AI configuration
        registry: process-wide limiter registry
        backend_factory: builds a backend from (name, provider config)

    Returns:
        List[ProviderSlot]: slots in priority order
    """
    slots = []
    for name in build_fallback_chain(config):
        provider_config = config.providers_config[name]
        limiter = registry.register(
            name,
            RateLimiterSettings(
                max_tokens=provider_config.bucket_size,
                refill_rate=provider_config.refill_rate,
                refill_interval=provider_config.refill_interval
            )
        )
        slots.append(ProviderSlot(backend=backend_factory(name, provider_config), limiter=limiter))
        logger.info(f"Provider {name} ({provider_config.model}) added to chain")

    return slots
