"""LLM registry for the two providers the pipeline multiplexes.

Both the reasoner/chat provider and the schema-JSON provider expose an
OpenAI-compatible API, so every model is a ``ChatOpenAI`` instance pointed
at the right base URL. Instances are cached per (model, temperature,
max_tokens) because call sites vary those per request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from langchain_openai import ChatOpenAI

from deep_research.config import Settings
from deep_research.utils.exceptions import AuthenticationMissingError
from deep_research.utils.logging import get_logger

logger = get_logger(__name__)

ModelName = Literal["reasoner", "chat", "schema_json"]
Provider = Literal["reasoner", "schema_json"]


@dataclass(frozen=True)
class ModelSpec:
    slug: str
    provider: Provider
    purpose: str


def build_model_config(settings: Settings) -> dict[str, ModelSpec]:
    return {
        "reasoner": ModelSpec(
            slug=settings.REASONER_MODEL,
            provider="reasoner",
            purpose="Free-form reasoning with optional reasoning trace",
        ),
        "chat": ModelSpec(
            slug=settings.CHAT_MODEL,
            provider="reasoner",
            purpose="Section prose, title fallback, instructed-JSON fallback",
        ),
        "schema_json": ModelSpec(
            slug=settings.SCHEMA_JSON_MODEL,
            provider="schema_json",
            purpose="Schema-enforced JSON: decomposition, visual extraction, titles",
        ),
    }


class LLMRegistry:
    """Builds and caches provider-bound chat models."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._specs = build_model_config(settings)
        self._cache: dict[str, ChatOpenAI] = {}
        self._call_stats: dict[str, dict[str, int]] = {
            name: {"calls": 0, "tokens": 0, "failures": 0} for name in self._specs
        }

    def _credentials(self, provider: Provider) -> tuple[str, str]:
        if provider == "schema_json":
            return self._settings.SCHEMA_JSON_API_KEY, self._settings.SCHEMA_JSON_BASE_URL
        return self._settings.REASONER_API_KEY, self._settings.REASONER_BASE_URL

    def has_credentials(self, name: ModelName) -> bool:
        spec = self.get_spec(name)
        api_key, _ = self._credentials(spec.provider)
        return bool(api_key)

    def get_spec(self, name: ModelName) -> ModelSpec:
        if name not in self._specs:
            raise KeyError(f"No model registered under '{name}'")
        return self._specs[name]

    def get_model(
        self,
        name: ModelName,
        *,
        temperature: float,
        max_tokens: int,
    ) -> ChatOpenAI:
        """Return a model for ``name``; raises if the provider has no API key."""
        spec = self.get_spec(name)
        api_key, base_url = self._credentials(spec.provider)
        if not api_key:
            raise AuthenticationMissingError(f"No API key configured for provider '{spec.provider}'")

        cache_key = f"{spec.slug}:{temperature}:{max_tokens}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        model = ChatOpenAI(
            model=spec.slug,
            openai_api_key=api_key,
            openai_api_base=base_url,
            temperature=temperature,
            max_tokens=max_tokens,
            # Deadlines are enforced by the transport; no hidden retries
            max_retries=0,
        )
        self._cache[cache_key] = model
        logger.debug("model_built", name=name, slug=spec.slug, temperature=temperature, max_tokens=max_tokens)
        return model

    def record_usage(self, name: str, tokens: int, *, failed: bool = False) -> None:
        stats = self._call_stats.setdefault(name, {"calls": 0, "tokens": 0, "failures": 0})
        stats["calls"] += 1
        stats["tokens"] += tokens
        if failed:
            stats["failures"] += 1

    @property
    def stats(self) -> dict[str, dict[str, int]]:
        return {k: dict(v) for k, v in self._call_stats.items()}
