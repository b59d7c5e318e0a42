"""Text generation through LiteLLM, with fallback models."""

import os
import time
from typing import Any, Callable
from dataclasses import dataclass

import litellm
from litellm import acompletion
from loguru import logger

from supportbot.providers.base import LLMProvider, LLMResponse


@dataclass(frozen=True)
class ProviderRoute:
    """How LiteLLM reaches one upstream provider."""
    name: str
    env_key: str = ""
    prefix: str = ""
    api_base: str | None = None
    markers: tuple[str, ...] = ()  # Substrings of a model name that select this route


ROUTES = (
    # Explicit prefixes first so "openrouter/google/gemini-pro" routes via OpenRouter
    ProviderRoute(
        "openrouter",
        env_key="OPENROUTER_API_KEY",
        prefix="openrouter/",
        api_base="https://openrouter.ai/api/v1",
        markers=("openrouter/",),
    ),
    ProviderRoute("ollama", prefix="ollama/", api_base="http://localhost:11434", markers=("ollama/",)),
    ProviderRoute("gemini", env_key="GEMINI_API_KEY", prefix="gemini/", markers=("gemini",)),
    ProviderRoute("anthropic", env_key="ANTHROPIC_API_KEY", markers=("claude", "anthropic/")),
    ProviderRoute("openai", env_key="OPENAI_API_KEY", markers=("gpt", "openai/")),
)
ROUTES_BY_NAME = {route.name: route for route in ROUTES}

# API key prefixes that identify a provider regardless of model name
KEY_PREFIXES = {"sk-or-": "openrouter", "sk-ant-": "anthropic"}


def route_for_model(model: str) -> ProviderRoute:
    """Pick the route whose markers match the model name; Gemini otherwise."""
    lowered = model.lower()
    for route in ROUTES:
        if any(marker in lowered for marker in route.markers):
            return route
    return ROUTES_BY_NAME["gemini"]


@dataclass
class ModelHealth:
    """Failure bookkeeping for one model; a failed model sits out a cooldown."""
    cooldown_seconds: float = 300
    clock: Callable[[], float] = time.time
    failures: int = 0
    retry_at: float = 0.0
    last_error: str = ""

    @property
    def healthy(self) -> bool:
        return self.failures == 0

    def available(self) -> bool:
        return self.healthy or self.clock() >= self.retry_at

    def record_failure(self, error: str) -> None:
        self.failures += 1
        self.retry_at = self.clock() + self.cooldown_seconds
        self.last_error = error

    def record_success(self) -> None:
        self.failures = 0
        self.last_error = ""


@dataclass
class TokenTotals:
    requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, usage: dict[str, int]) -> None:
        self.requests += 1
        self.prompt_tokens += usage.get("prompt_tokens", 0)
        self.completion_tokens += usage.get("completion_tokens", 0)
        self.total_tokens += usage.get("total_tokens", 0)


class LiteLLMProvider(LLMProvider):
    """
    Provider backed by litellm.acompletion.

    The configured model is tried first, then each fallback model that is
    not cooling down after a recent failure. When every candidate fails
    an error LLMResponse is returned; generate() never raises.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "gemini/gemini-1.5-flash",
        fallback_models: list[str] | None = None,
        cooldown_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.fallback_models = fallback_models or []
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock

        self._health: dict[str, ModelHealth] = {}
        self._totals = TokenTotals()

        self.route = self._resolve_route(default_model)
        if api_key and self.route.env_key:
            os.environ.setdefault(self.route.env_key, api_key)

        litellm.suppress_debug_info = True

    def _resolve_route(self, model: str) -> ProviderRoute:
        """A recognisable key or base URL wins over the model name."""
        for key_prefix, name in KEY_PREFIXES.items():
            if self.api_key and self.api_key.startswith(key_prefix):
                return ROUTES_BY_NAME[name]
        if self.api_base:
            if "openrouter" in self.api_base:
                return ROUTES_BY_NAME["openrouter"]
            if "11434" in self.api_base:
                return ROUTES_BY_NAME["ollama"]
        return route_for_model(model)

    def health(self, model: str) -> ModelHealth:
        """Health record for a model, created on first use."""
        if model not in self._health:
            self._health[model] = ModelHealth(self.cooldown_seconds, self.clock)
        return self._health[model]

    def candidates(self, model: str) -> list[str]:
        """Models to try, in order, skipping any that are cooling down."""
        ordered = [model] + [m for m in self.fallback_models if m != model]
        return [m for m in ordered if self.health(m).available()]

    def litellm_model(self, model: str) -> str:
        """Model name as LiteLLM expects it, with the provider prefix."""
        route = route_for_model(model)
        if route.prefix and "/" not in model:
            model = route.prefix + model
        if self.route.name == "openrouter" and not model.startswith("openrouter/"):
            model = "openrouter/" + model
        return model

    async def generate(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> LLMResponse:
        last_error = "no model available"

        for candidate in self.candidates(model or self.default_model):
            health = self.health(candidate)
            try:
                response = await self._complete(candidate, messages, max_tokens, temperature)
            except Exception as e:
                last_error = str(e)
                health.record_failure(last_error)
                logger.warning(f"Model {candidate} failed: {e}")
                continue

            health.record_success()
            self._totals.add(response.usage)
            return response

        return LLMResponse(
            content=f"Error: All models failed. Last error: {last_error}",
            finish_reason="error",
        )

    async def _complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        max_tokens: int,
        temperature: float,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": self.litellm_model(model),
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        api_base = self.api_base or route_for_model(model).api_base
        if api_base:
            kwargs["api_base"] = api_base

        result = await acompletion(**kwargs)

        choice = result.choices[0]
        usage = getattr(result, "usage", None)
        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            model=model,
            usage={
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
            } if usage else {},
        )

    def get_default_model(self) -> str:
        return self.default_model

    def get_usage_stats(self) -> dict[str, Any]:
        """Get token usage and per-model health."""
        return {
            "request_count": self._totals.requests,
            "prompt_tokens": self._totals.prompt_tokens,
            "completion_tokens": self._totals.completion_tokens,
            "total_tokens": self._totals.total_tokens,
            "route": self.route.name,
            "model_health": {
                model: {
                    "healthy": health.healthy,
                    "failures": health.failures,
                    "available": health.available(),
                    "last_error": health.last_error,
                }
                for model, health in self._health.items()
            },
        }
