"""Shared LLM client utilities.

Provides a centralized factory for creating Anthropic clients with
consistent SSL handling for corporate proxy environments.
"""
from __future__ import annotations

import os

import httpx
import structlog
from anthropic import Anthropic

from crm_mapper.config.loader import get_llm_max_tokens, get_llm_model, get_llm_temperature

logger = structlog.get_logger(__name__)


def get_anthropic_client() -> Anthropic:
    """Create an Anthropic client with appropriate SSL settings.

    SSL verification is on by default. Set ANTHROPIC_VERIFY_SSL=false to
    disable it behind an intercepting proxy.

    Returns:
        Configured Anthropic client instance.
    """
    verify_ssl = os.getenv("ANTHROPIC_VERIFY_SSL", "true").lower() != "false"

    if not verify_ssl:
        http_client = httpx.Client(verify=False)
        return Anthropic(http_client=http_client)

    return Anthropic()


def call_anthropic(
    prompt: str,
    model: str | None = None,
    max_tokens: int | None = None,
    temperature: float | None = None,
    system: str | None = None,
    client: Anthropic | None = None,
) -> tuple[str, int, int]:
    """Make a call to the Anthropic API.

    Args:
        prompt: The user message content.
        model: Model name to use (defaults to config).
        max_tokens: Maximum tokens in response (defaults to config).
        temperature: Sampling temperature (defaults to config).
        system: Optional system prompt.
        client: Existing client; a new one is built when omitted.

    Returns:
        Tuple of (response_text, input_tokens, output_tokens).
    """
    client = client or get_anthropic_client()

    kwargs = {
        "model": model or get_llm_model(),
        "max_tokens": max_tokens or get_llm_max_tokens(),
        "temperature": get_llm_temperature() if temperature is None else temperature,
        "messages": [{"role": "user", "content": prompt}],
    }

    if system:
        kwargs["system"] = system

    response = client.messages.create(**kwargs)

    content = "".join(
        block.text for block in (response.content or []) if getattr(block, "type", "text") == "text"
    )
    input_tokens = response.usage.input_tokens if response.usage else 0
    output_tokens = response.usage.output_tokens if response.usage else 0

    return content, input_tokens, output_tokens
