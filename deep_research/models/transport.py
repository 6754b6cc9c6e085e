"""LLM transport: reasoner/chat prose and schema-enforced JSON, each under a per-call deadline.

Nothing in here retries. Callers decide what a failure means:
``chat`` raises, ``json`` and ``chat_json`` return ``None``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Literal, Mapping

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langsmith import traceable

from deep_research.config import Settings
from deep_research.models.llm_registry import LLMRegistry, ModelName
from deep_research.models.schemas import ChatMessage
from deep_research.utils.exceptions import ModelTimeoutError, TransportError
from deep_research.utils.json_repair import parse_json_response
from deep_research.utils.logging import get_logger

logger = get_logger(__name__)

_ROLE_TO_MESSAGE: dict[str, type[BaseMessage]] = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}

QUICK_REASON_SYSTEM = (
    "You are a procurement intelligence analyst. Answer concisely and factually. "
    "If you are unsure, say so."
)
INSTRUCTED_JSON_SYSTEM = (
    "You are a data extraction assistant. Respond with a single valid JSON object and "
    "nothing else: no prose, no markdown fences."
)


@dataclass(frozen=True)
class StreamDelta:
    kind: Literal["content", "reasoning"]
    text: str


@dataclass
class ChatCompletion:
    content: str
    reasoning: str | None = None
    usage: dict[str, int] | None = None


def to_langchain_messages(messages: Iterable[ChatMessage | Mapping[str, str]]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for msg in messages:
        role, content = (msg.role, msg.content) if isinstance(msg, ChatMessage) else (msg["role"], msg["content"])
        if role not in _ROLE_TO_MESSAGE:
            raise ValueError(f"Unsupported message role '{role}'")
        converted.append(_ROLE_TO_MESSAGE[role](content=content))
    return converted


def _message_text(message: Any) -> str:
    content = getattr(message, "content", "")
    if isinstance(content, list):
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
    return content or ""


def _usage(message: Any) -> dict[str, int] | None:
    usage = getattr(message, "usage_metadata", None)
    if not usage:
        return None
    return {
        "input_tokens": int(usage.get("input_tokens", 0) or 0),
        "output_tokens": int(usage.get("output_tokens", 0) or 0),
        "total_tokens": int(usage.get("total_tokens", 0) or 0),
    }


def _reasoning(message: Any) -> str | None:
    extra = getattr(message, "additional_kwargs", None) or {}
    value = extra.get("reasoning_content")
    return value if isinstance(value, str) and value else None


class LLMTransport:
    """Async request/response over the registry's models with deadlines and logging."""

    def __init__(self, registry: LLMRegistry, settings: Settings) -> None:
        self._registry = registry
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings

    # ── Reasoner / chat ──────────────────────────────────────────────────────

    @traceable(run_type="llm", name="transport_chat")
    async def chat(
        self,
        messages: Iterable[ChatMessage | Mapping[str, str]],
        *,
        model: ModelName = "reasoner",
        max_tokens: int = 4000,
        temperature: float = 0.3,
        timeout_s: float | None = None,
        stream: bool = False,
        on_delta: Callable[[StreamDelta], None] | None = None,
    ) -> ChatCompletion:
        """Free-form completion.

        Raises:
            AuthenticationMissingError: provider has no API key.
            ModelTimeoutError: the deadline elapsed; the in-flight request is cancelled.
            TransportError: any other provider failure.
        """
        timeout = timeout_s if timeout_s is not None else self._settings.SYNTHESIS_TIMEOUT_S
        llm = self._registry.get_model(model, temperature=temperature, max_tokens=max_tokens)
        lc_messages = to_langchain_messages(messages)

        start = time.monotonic()
        try:
            if stream:
                result = await asyncio.wait_for(self._stream(llm, lc_messages, on_delta), timeout)
            else:
                response = await asyncio.wait_for(llm.ainvoke(lc_messages), timeout)
                result = ChatCompletion(
                    content=_message_text(response),
                    reasoning=_reasoning(response),
                    usage=_usage(response),
                )
        except asyncio.TimeoutError as exc:
            self._registry.record_usage(model, 0, failed=True)
            logger.warning("model_timeout", model=model, timeout_s=timeout)
            raise ModelTimeoutError(f"{model} call exceeded {timeout}s deadline") from exc
        except Exception as exc:
            self._registry.record_usage(model, 0, failed=True)
            logger.error("model_call_failed", model=model, error=str(exc), exc_type=type(exc).__name__)
            raise TransportError(f"{model} call failed: {exc}") from exc

        elapsed_ms = int((time.monotonic() - start) * 1000)
        tokens = (result.usage or {}).get("total_tokens", 0)
        self._registry.record_usage(model, tokens)
        logger.debug("model_invoked", model=model, tokens=tokens, elapsed_ms=elapsed_ms, stream=stream)
        return result

    async def _stream(
        self,
        llm: Any,
        messages: list[BaseMessage],
        on_delta: Callable[[StreamDelta], None] | None,
    ) -> ChatCompletion:
        content: list[str] = []
        reasoning: list[str] = []
        usage: dict[str, int] | None = None

        async for chunk in llm.astream(messages):
            reasoning_delta = _reasoning(chunk)
            if reasoning_delta:
                reasoning.append(reasoning_delta)
                if on_delta is not None:
                    on_delta(StreamDelta("reasoning", reasoning_delta))
            text = _message_text(chunk)
            if text:
                content.append(text)
                if on_delta is not None:
                    on_delta(StreamDelta("content", text))
            usage = _usage(chunk) or usage

        return ChatCompletion(
            content="".join(content),
            reasoning="".join(reasoning) or None,
            usage=usage,
        )

    async def quick_reason(self, prompt: str, context: str | None = None) -> str:
        """Short reasoner call (1000 tokens, quick-reason deadline)."""
        messages: list[dict[str, str]] = [{"role": "system", "content": QUICK_REASON_SYSTEM}]
        if context:
            messages.append({"role": "user", "content": f"Context:\n{context}"})
        messages.append({"role": "user", "content": prompt})
        result = await self.chat(
            messages,
            model="reasoner",
            max_tokens=1000,
            temperature=0.2,
            timeout_s=self._settings.QUICK_REASON_TIMEOUT_S,
        )
        return result.content

    # ── Schema JSON ──────────────────────────────────────────────────────────

    @traceable(run_type="llm", name="transport_json")
    async def json(
        self,
        prompt: str,
        schema: dict[str, Any],
        *,
        name: str = "response",
        max_tokens: int = 2000,
        temperature: float = 0.2,
        timeout_s: float | None = None,
    ) -> dict[str, Any] | None:
        """Schema-enforced JSON call. Returns the parsed object or ``None`` on any failure."""
        if not self._registry.has_credentials("schema_json"):
            logger.warning("schema_json_unavailable", reason="missing_api_key", schema_name=name)
            return None

        timeout = timeout_s if timeout_s is not None else self._settings.JSON_DEFAULT_TIMEOUT_S
        llm = self._registry.get_model("schema_json", temperature=temperature, max_tokens=max_tokens)
        bound = llm.bind(
            response_format={
                "type": "json_schema",
                "json_schema": {"name": name, "schema": schema},
            }
        )

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(bound.ainvoke([HumanMessage(content=prompt)]), timeout)
        except asyncio.TimeoutError:
            self._registry.record_usage("schema_json", 0, failed=True)
            logger.warning("schema_json_timeout", schema_name=name, timeout_s=timeout)
            return None
        except Exception as exc:
            self._registry.record_usage("schema_json", 0, failed=True)
            logger.warning("schema_json_failed", schema_name=name, error=str(exc), exc_type=type(exc).__name__)
            return None

        usage = _usage(response) or {}
        self._registry.record_usage("schema_json", usage.get("total_tokens", 0))
        parsed = parse_json_response(_message_text(response))
        if not isinstance(parsed, dict):
            logger.warning("schema_json_unparsable", schema_name=name)
            return None

        logger.debug(
            "schema_json_invoked",
            schema_name=name,
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return parsed

    async def chat_json(
        self,
        prompt: str,
        *,
        max_tokens: int = 2000,
        temperature: float = 0.2,
        timeout_s: float | None = None,
    ) -> dict[str, Any] | None:
        """Chat model asked for JSON by instruction only. ``None`` on any failure."""
        try:
            result = await self.chat(
                [
                    {"role": "system", "content": INSTRUCTED_JSON_SYSTEM},
                    {"role": "user", "content": prompt},
                ],
                model="chat",
                max_tokens=max_tokens,
                temperature=temperature,
                timeout_s=timeout_s if timeout_s is not None else self._settings.JSON_DEFAULT_TIMEOUT_S,
            )
        except TransportError as exc:
            logger.warning("chat_json_failed", error=str(exc))
            return None

        parsed = parse_json_response(result.content)
        if not isinstance(parsed, dict):
            logger.warning("chat_json_unparsable")
            return None
        return parsed
