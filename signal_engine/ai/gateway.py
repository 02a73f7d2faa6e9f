"""
Governance Signal Engine
LLM Gateway.

Provider-agnostic router used by the generative decision-intelligence path:
    - Anthropic Claude and OpenAI providers (client packages imported lazily)
    - Auto-retry with capped exponential backoff
    - JSON-object responses validated against a required-keys schema

Every failure surfaces as LLMUnavailableError so callers can fall back to
the rule-based analyzer without inspecting provider-specific exceptions.

Usage:
    from signal_engine.ai.gateway import LLMGateway
    gw = LLMGateway.from_config(app.config)
    data = gw.chat_json(prompt, schema=DECISION_INTEL_SCHEMA)
"""

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class LLMUnavailableError(RuntimeError):
    """No provider could produce a usable response."""


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens, json_schema.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    def __init__(self, api_key: str = ""):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import anthropic
                self._client = anthropic.Anthropic(api_key=self.api_key)
            except ImportError:
                raise RuntimeError("anthropic package not installed. Run: pip install anthropic")
        return self._client

    def chat(self, messages: list, model: str = "claude-3-5-haiku-20241022", **kwargs) -> dict:
        client = self._get_client()

        system_msg = ""
        chat_messages = []
        for m in messages:
            if m["role"] == "system":
                system_msg = m["content"]
            else:
                chat_messages.append(m)

        params = {
            "model": model,
            "messages": chat_messages,
            "max_tokens": kwargs.get("max_tokens", 2048),
            "temperature": kwargs.get("temperature", 0.2),
        }
        if system_msg:
            params["system"] = system_msg

        response = client.messages.create(**params)

        return {
            "content": response.content[0].text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI chat-completions provider."""

    def __init__(self, api_key: str = ""):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import openai
                self._client = openai.OpenAI(api_key=self.api_key)
            except ImportError:
                raise RuntimeError("openai package not installed. Run: pip install openai")
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o-mini", **kwargs) -> dict:
        client = self._get_client()
        params = {
            "model": model,
            "messages": messages,
            "max_tokens": kwargs.get("max_tokens", 2048),
            "temperature": kwargs.get("temperature", 0.2),
        }
        if kwargs.get("json_mode"):
            params["response_format"] = {"type": "json_object"}
        response = client.chat.completions.create(**params)
        choice = response.choices[0]
        return {
            "content": choice.message.content,
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": model,
        }


# ── LLM Gateway (Main Interface) ─────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for LLM calls.

    Providers are registered only when their API key is configured, so an
    unconfigured deployment has no providers and every call raises
    LLMUnavailableError immediately.
    """

    PROVIDER_MAP = {
        # Anthropic
        "claude-3-5-haiku-20241022": "anthropic",
        "claude-3-5-sonnet-20241022": "anthropic",
        # OpenAI
        "gpt-4o-mini": "openai",
        "gpt-4o": "openai",
    }

    DEFAULT_CHAT_MODEL = "gpt-4o-mini"

    def __init__(self, *, openai_api_key: str = "", anthropic_api_key: str = "",
                 default_model: str | None = None):
        self._providers: dict[str, LLMProvider] = {}
        self.default_model = default_model or self.DEFAULT_CHAT_MODEL
        if anthropic_api_key:
            self._providers["anthropic"] = AnthropicProvider(anthropic_api_key)
        if openai_api_key:
            self._providers["openai"] = OpenAIProvider(openai_api_key)

    @classmethod
    def from_config(cls, config) -> "LLMGateway":
        return cls(
            openai_api_key=config.get("OPENAI_API_KEY") or "",
            anthropic_api_key=config.get("ANTHROPIC_API_KEY") or "",
            default_model=config.get("DECISION_INTEL_MODEL") or None,
        )

    @property
    def available(self) -> bool:
        return bool(self._providers)

    def register_provider(self, name: str, provider: LLMProvider) -> None:
        self._providers[name] = provider

    def _get_provider(self, model: str) -> tuple[LLMProvider, str]:
        provider_name = self.PROVIDER_MAP.get(model)
        if provider_name is None:
            provider_name = "anthropic" if model.startswith("claude") else "openai"
        provider = self._providers.get(provider_name)
        if provider is None:
            raise LLMUnavailableError(
                f"Provider '{provider_name}' not configured for model '{model}'"
            )
        return provider, provider_name

    def chat(self, messages: list, model: str | None = None, *,
             max_retries: int = 2, **kwargs) -> dict:
        """Send a chat request with retry. Raises LLMUnavailableError on exhaustion."""
        model = model or self.default_model
        provider, provider_name = self._get_provider(model)

        last_error = None
        for attempt in range(1, max_retries + 1):
            start_time = time.time()
            try:
                result = provider.chat(messages, model, **kwargs)
                result["latency_ms"] = int((time.time() - start_time) * 1000)
                result["provider"] = provider_name
                logger.info("LLM call ok: provider=%s model=%s tokens=%d",
                            provider_name, model,
                            result.get("prompt_tokens", 0) + result.get("completion_tokens", 0))
                return result
            except Exception as e:
                last_error = e
                logger.warning("LLM call attempt %d/%d failed: %s", attempt, max_retries, e)
                if attempt < max_retries:
                    threading.Event().wait(min(2 ** (attempt - 1), 4))

        raise LLMUnavailableError(f"LLM call failed after {max_retries} attempts: {last_error}")

    def chat_json(self, prompt: str, schema: dict | None = None, *,
                  model: str | None = None, system: str | None = None, **kwargs) -> dict:
        """
        Ask for a single JSON object and validate it.

        ``schema`` is a JSON-schema-like dict; only its top-level ``required``
        keys are enforced here.
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        instructions = prompt
        if schema:
            instructions += "\n\nRespond with one JSON object matching this schema:\n" + json.dumps(schema)
        messages.append({"role": "user", "content": instructions})

        result = self.chat(messages, model, json_mode=True, **kwargs)
        content = (result.get("content") or "").strip()
        if content.startswith("```"):
            content = content.strip("`")
            if content.lower().startswith("json"):
                content = content[4:]
        try:
            data = json.loads(content)
        except (ValueError, TypeError) as e:
            raise LLMUnavailableError(f"LLM returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise LLMUnavailableError("LLM returned JSON that is not an object")

        missing = [k for k in (schema or {}).get("required", []) if k not in data]
        if missing:
            raise LLMUnavailableError(f"LLM response missing keys: {', '.join(missing)}")
        return data
