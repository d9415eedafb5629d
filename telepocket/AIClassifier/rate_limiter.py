"""
Rate limiter - async token bucket shared by every caller of one provider

The bucket refills in whole intervals; RateLimiterRegistry owns exactly one
limiter per provider for the lifetime of the process.
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from telepocket.constants import Timeouts
from telepocket.exceptions import RateLimitTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimiterSettings:
    """Token bucket parameters"""
    max_tokens: int
    refill_rate: int           # tokens added per interval
    refill_interval: float     # seconds

    def __post_init__(self):
        if self.max_tokens <= 0 or self.refill_rate <= 0 or self.refill_interval <= 0:
            raise ValueError(
                f"Rate limiter settings must be positive: {self}"
            )


class TokenBucketRateLimiter:
    """
    Token bucket rate limiter

    Every read-modify-write of the token counter happens under one lock, so the
    limiter can be shared by concurrent tasks (and threads).
    """

    def __init__(
        self,
        max_tokens: int = 40,
        refill_rate: int = 40,
        refill_interval: float = 60.0,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the limiter

        Args:
            max_tokens: bucket capacity (burst size)
            refill_rate: tokens added per elapsed interval
            refill_interval: refill interval in seconds
            name: provider name, used in logs and errors
            clock: monotonic time source, injectable for tests
        """
        settings = RateLimiterSettings(max_tokens, refill_rate, refill_interval)
        self.max_tokens = settings.max_tokens
        self.refill_rate = settings.refill_rate
        self.refill_interval = settings.refill_interval
        self.name = name
        self._clock = clock

        # bucket state
        self.tokens = float(max_tokens)
        self.last_refill = clock()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: RateLimiterSettings,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic
    ) -> "TokenBucketRateLimiter":
        return cls(
            max_tokens=settings.max_tokens,
            refill_rate=settings.refill_rate,
            refill_interval=settings.refill_interval,
            name=name,
            clock=clock
        )

    @property
    def settings(self) -> RateLimiterSettings:
        return RateLimiterSettings(self.max_tokens, self.refill_rate, self.refill_interval)

    def _refill(self):
        """Add tokens for every whole interval elapsed. Caller holds the lock."""
        now = self._clock()
        elapsed = now - self.last_refill
        intervals = int(elapsed // self.refill_interval)

        if intervals > 0:
            self.tokens = min(
                float(self.max_tokens),
                self.tokens + intervals * self.refill_rate
            )
            # advance by whole intervals only, keeping the fractional progress
            self.last_refill += intervals * self.refill_interval

    def try_consume(self, tokens: int = 1) -> bool:
        """
        Take tokens if available, without waiting

        Args:
            tokens: number of tokens to consume

        Returns:
            bool: whether the tokens were consumed
        """
        with self._lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False

    async def wait_and_consume(
        self,
        tokens: int = 1,
        timeout: float = Timeouts.CALL_TIMEOUT
    ) -> None:
        """
        Wait until tokens are available, then consume them

        Only the calling task is suspended; the poll interval is
        min(0.1s, refill_interval).

        Args:
            tokens: number of tokens to consume
            timeout: maximum wait in seconds

        Raises:
            RateLimitTimeout: tokens did not become available in time
        """
        if tokens > self.max_tokens:
            raise RateLimitTimeout(self.name, tokens, timeout)

        start = self._clock()
        poll_interval = min(Timeouts.LIMITER_POLL_MAX, self.refill_interval)

        while True:
            if self.try_consume(tokens):
                return

            if self._clock() - start >= timeout:
                logger.warning(
                    f"⏳ [{self.name}] rate limiter timeout after {timeout:.2f}s "
                    f"({self.available_tokens():.0f}/{self.max_tokens} tokens)"
                )
                raise RateLimitTimeout(self.name, tokens, timeout)

            await asyncio.sleep(poll_interval)

    def available_tokens(self) -> float:
        """
        Current token count

        Returns:
            float: available tokens after refilling
        """
        with self._lock:
            self._refill()
            return self.tokens

    def reset(self):
        """Refill the bucket completely"""
        with self._lock:
            self.tokens = float(self.max_tokens)
            self.last_refill = self._clock()


def create_gemini_rate_limiter(name: str = "gemini") -> TokenBucketRateLimiter:
    """
    Gemini free tier allows 60 RPM; 40 RPM keeps a safety margin
    """
    return TokenBucketRateLimiter(
        max_tokens=40,
        refill_rate=40,
        refill_interval=60.0,
        name=name
    )


def create_openrouter_rate_limiter(name: str = "openrouter") -> TokenBucketRateLimiter:
    """
    OpenRouter: 600 RPM (10 tokens/s) with a 50 request burst
    """
    return TokenBucketRateLimiter(
        max_tokens=50,
        refill_rate=10,
        refill_interval=1.0,
        name=name
    )


class RateLimiterRegistry:
    """
    Process-wide owner of one limiter per provider

    Created once at startup; limiters are registered once and never
    recreated implicitly.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._limiters: Dict[str, TokenBucketRateLimiter] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def register(
        self,
        provider: str,
        settings: Optional[RateLimiterSettings] = None,
        limiter: Optional[TokenBucketRateLimiter] = None
    ) -> TokenBucketRateLimiter:
        """
        Register the limiter for a provider (idempotent)

        Args:
            provider: provider name
            settings: bucket parameters used to build the limiter
            limiter: an already built limiter to register instead

        Returns:
            TokenBucketRateLimiter: the provider's single limiter
        """
        with self._lock:
            existing = self._limiters.get(provider)
            if existing is not None:
                if settings is not None and settings != existing.settings:
                    logger.warning(
                        f"[{provider}] rate limiter already registered with "
                        f"{existing.settings}; ignoring {settings}"
                    )
                return existing

            if limiter is None:
                if settings is None:
                    raise ValueError(f"No rate limiter settings for provider: {provider}")
                limiter = TokenBucketRateLimiter.from_settings(
                    settings, name=provider, clock=self._clock
                )

            self._limiters[provider] = limiter
            logger.info(
                f"[{provider}] rate limiter: {limiter.max_tokens} burst, "
                f"{limiter.refill_rate} tokens / {limiter.refill_interval:g}s"
            )
            return limiter

    def get(self, provider: str) -> TokenBucketRateLimiter:
        """
        Get a registered limiter

        Raises:
            KeyError: provider was never registered
        """
        with self._lock:
            if provider not in self._limiters:
                raise KeyError(f"No rate limiter registered for provider: {provider}")
            return self._limiters[provider]

    def __contains__(self, provider: str) -> bool:
        return provider in self._limiters

    def providers(self):
        return list(self._limiters.keys())
