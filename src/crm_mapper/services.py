"""Text-in/text-out services that run generation and transformation prompts.

The core never constructs a client on its own; callers pick a service (or
use ``build_service``) and pass it to ``RuleGenerator`` / ``Transformer``.
"""
from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from crm_mapper.config.loader import (
    get_llm_provider,
    get_openai_model,
    get_relay_timeout,
    get_relay_url,
)
from crm_mapper.utils.error_handler import ServiceError, handle_service_exception
from crm_mapper.utils.llm_client import call_anthropic, get_anthropic_client

logger = structlog.get_logger(__name__)

PROVIDERS = ("anthropic", "openai", "relay")


class TextService(Protocol):
    """Anything that turns one instruction text into one response text."""

    def submit(self, request_text: str) -> str:
        """Send the instruction and return the raw response text.

        Raises:
            ServiceError: transport failure or non-success status.
        """
        ...


class AnthropicService:
    """Calls the Anthropic Messages API directly."""

    def __init__(self, model: str | None = None, client: Any = None):
        self.model = model
        self._client = client

    def submit(self, request_text: str) -> str:
        try:
            content, input_tokens, output_tokens = call_anthropic(
                request_text,
                model=self.model,
                client=self._client or get_anthropic_client(),
            )
        except Exception as e:
            raise handle_service_exception(e, "Anthropic API") from e

        logger.info(
            "anthropic_call_complete",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            response_chars=len(content),
        )
        if not content.strip():
            raise ServiceError("Anthropic API returned an empty response")
        return content


class OpenAIService:
    """Calls an OpenAI chat model through langchain."""

    def __init__(self, model: str | None = None, llm: Any = None):
        self.model = model or get_openai_model()
        self._llm = llm

    def _get_llm(self) -> Any:
        if self._llm is None:
            from langchain_openai import ChatOpenAI

            self._llm = ChatOpenAI(model=self.model, temperature=0)
        return self._llm

    def submit(self, request_text: str) -> str:
        try:
            message = self._get_llm().invoke(request_text)
        except Exception as e:
            raise handle_service_exception(e, "OpenAI API") from e

        content = message.content if hasattr(message, "content") else message
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        content = str(content or "")
        logger.info("openai_call_complete", model=self.model, response_chars=len(content))
        if not content.strip():
            raise ServiceError("OpenAI API returned an empty response")
        return content


class RelayService:
    """Posts the prompt to a relay backend that forwards it to the LLM.

    Wire contract: multipart form with a single ``prompt`` field, JSON reply
    ``{"response": "<text>"}``.
    """

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ):
        self.url = url or get_relay_url()
        self.timeout = timeout if timeout is not None else get_relay_timeout()
        self._client = client

    def submit(self, request_text: str) -> str:
        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            response = client.post(
                self.url,
                files={"prompt": (None, request_text)},
            )
        except httpx.HTTPError as e:
            raise handle_service_exception(e, "Relay service") from e
        finally:
            if self._client is None:
                client.close()

        if response.status_code != 200:
            raise ServiceError(
                f"Relay service returned HTTP {response.status_code}",
                status_code=response.status_code,
                details=response.text[:200],
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ServiceError("Relay service returned a non-JSON body", status_code=200) from e

        text = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise ServiceError("Relay service reply has no 'response' text", status_code=200)

        logger.info("relay_call_complete", url=self.url, response_chars=len(text))
        return text


def build_service(provider: str | None = None) -> TextService:
    """Construct the service for a provider name (config default when None)."""
    provider = (provider or get_llm_provider()).lower()
    if provider == "anthropic":
        return AnthropicService()
    if provider == "openai":
        return OpenAIService()
    if provider == "relay":
        return RelayService()
    raise ValueError(f"Unsupported provider: {provider}")
