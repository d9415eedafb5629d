"""
Tests for the fallback orchestrator and provider chain construction
"""
import asyncio
from unittest.mock import Mock, AsyncMock

import pytest

from telepocket.AIClassifier.provider_manager import (
    FallbackOrchestrator,
    OpenAICompatibleBackend,
    ProviderSlot,
    build_fallback_chain,
    build_provider_slots
)
from telepocket.AIClassifier.rate_limiter import RateLimiterRegistry, TokenBucketRateLimiter
from telepocket.exceptions import BackendError
from telepocket.models import AIConfig, FallbackConfig, ProviderConfig

from conftest import FakeBackend, failing_backend, make_slot


def provider(model: str = "m", **kwargs) -> ProviderConfig:
    return ProviderConfig(api_key="key", base_url="https://example.test/v1", model=model, **kwargs)


class TestFallbackOrder:

    def test_primary_answers(self):
        primary = FakeBackend("primary", reply="80")
        secondary = FakeBackend("secondary", reply="10")
        orchestrator = FallbackOrchestrator([make_slot(primary), make_slot(secondary)])

        assert asyncio.run(orchestrator.score("prompt")) == "80"
        assert primary.calls == 1
        assert secondary.calls == 0
        assert orchestrator.api_call_count == 1

    def test_backend_error_moves_to_next_provider(self):
        primary = failing_backend("primary")
        secondary = FakeBackend("secondary", reply="64")
        orchestrator = FallbackOrchestrator([make_slot(primary), make_slot(secondary)])

        assert asyncio.run(orchestrator.score("prompt")) == "64"
        assert orchestrator.get_stats()['failures'] == {"primary": 1}

    def test_primary_timeout_calls_secondary_once(self):
        primary = FakeBackend("primary", reply="99", delay=1.0)
        secondary = FakeBackend("secondary", reply="70")
        orchestrator = FallbackOrchestrator(
            [make_slot(primary), make_slot(secondary)], call_timeout=0.05
        )

        assert asyncio.run(orchestrator.score("prompt")) == "70"
        assert secondary.calls == 1

    def test_exhausted_limiter_skips_provider(self):
        primary = FakeBackend("primary", reply="99")
        limiter = TokenBucketRateLimiter(max_tokens=1, refill_rate=1, refill_interval=60.0)
        assert limiter.try_consume()
        secondary = FakeBackend("secondary", reply="61")
        orchestrator = FallbackOrchestrator(
            [ProviderSlot(primary, limiter), make_slot(secondary)], call_timeout=0.15
        )

        assert asyncio.run(orchestrator.score("prompt")) == "61"
        assert primary.calls == 0

    def test_unexpected_exception_is_contained(self):
        primary = FakeBackend("primary", reply=RuntimeError("bug"))
        orchestrator = FallbackOrchestrator([make_slot(primary)])
        assert asyncio.run(orchestrator.score("prompt")) is None

    def test_chain_override(self):
        default = FakeBackend("default", reply="1")
        override = FakeBackend("override", reply="2")
        orchestrator = FallbackOrchestrator([make_slot(default)])

        assert asyncio.run(orchestrator.score("p", chain=[make_slot(override)])) == "2"
        assert default.calls == 0


class TestHeuristicFallback:

    @pytest.fixture
    def orchestrator(self):
        return FallbackOrchestrator([make_slot(failing_backend("a")), make_slot(failing_backend("b"))])

    def test_heuristic_score_returned_as_text(self, orchestrator):
        assert asyncio.run(orchestrator.score("p", heuristic=lambda: 72)) == "72"
        assert orchestrator.heuristic_count == 1

    def test_heuristic_without_answer_gives_no_score(self, orchestrator):
        assert asyncio.run(orchestrator.score("p", heuristic=lambda: None)) is None

    def test_no_heuristic_gives_no_score(self, orchestrator):
        assert asyncio.run(orchestrator.score("p")) is None

    def test_failing_heuristic_gives_no_score(self, orchestrator):
        def heuristic():
            raise ValueError("bad heuristic")

        assert asyncio.run(orchestrator.score("p", heuristic=heuristic)) is None

    def test_empty_chain_uses_heuristic(self):
        orchestrator = FallbackOrchestrator([])
        assert asyncio.run(orchestrator.score("p", heuristic=lambda: 65)) == "65"


class TestOpenAICompatibleBackend:

    @staticmethod
    def client_returning(response):
        client = Mock()
        client.chat.completions.create = AsyncMock(return_value=response)
        client.close = AsyncMock()
        return client

    def test_returns_message_content(self):
        response = Mock()
        response.choices = [Mock(message=Mock(content=" 85 "))]
        client = self.client_returning(response)
        backend = OpenAICompatibleBackend("openrouter", provider("llama", max_tokens=5), client=client)

        assert asyncio.run(backend.complete("score this")) == " 85 "
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama"
        assert kwargs["max_tokens"] == 5
        assert kwargs["messages"] == [{"role": "user", "content": "score this"}]

    def test_empty_choices_is_backend_error(self):
        response = Mock()
        response.choices = []
        backend = OpenAICompatibleBackend("gemini", provider(), client=self.client_returning(response))

        with pytest.raises(BackendError):
            asyncio.run(backend.complete("p"))

    def test_close_closes_client(self):
        client = self.client_returning(Mock())
        backend = OpenAICompatibleBackend("gemini", provider(), client=client)
        asyncio.run(backend.close())
        client.close.assert_awaited_once()


class TestChainConstruction:

    @pytest.fixture
    def ai_config(self):
        return AIConfig(
            provider="openrouter",
            providers_config={
                "openrouter": provider("llama", bucket_size=50, refill_rate=10, refill_interval=1.0),
                "gemini": provider("flash"),
            },
            fallback=FallbackConfig(enabled=True, fallback_chain=["openrouter", "gemini", "unknown"])
        )

    def test_chain_is_deduplicated(self, ai_config):
        assert build_fallback_chain(ai_config) == ["openrouter", "gemini"]

    def test_disabled_fallback_keeps_primary_only(self, ai_config):
        ai_config.fallback.enabled = False
        assert build_fallback_chain(ai_config) == ["openrouter"]

    def test_slots_share_registry_limiters(self, ai_config):
        registry = RateLimiterRegistry()
        factory = lambda name, config: FakeBackend(name)

        first = build_provider_slots(ai_config, registry, factory)
        second = build_provider_slots(ai_config, registry, factory)

        assert [slot.name for slot in first] == ["openrouter", "gemini"]
        assert first[0].limiter is second[0].limiter
        assert registry.get("openrouter").max_tokens == 50
        assert registry.get("gemini").refill_interval == 60.0
