"""
LLM client.

Wraps the OpenAI chat completions API behind a small interface so the
responder can be tested with a fake client.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from apps.core.config import ServiceConfig
from apps.core.errors import LLMError

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 800


@dataclass
class LLMMessage:
    """A message in a chat conversation."""
    role: str  # "system", "user", or "assistant"
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM call."""
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[LLMMessage],
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Raises:
            LLMError: If the request fails
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass


class OpenAIChatClient(BaseLLMClient):
    """
    LLM client for OpenAI-compatible chat completion APIs.

    Works with: OpenAI, Azure OpenAI, Groq, Together, local servers, etc.
    """

    def __init__(self, config: ServiceConfig, transport: Optional[httpx.BaseTransport] = None):
        self.api_key = config.openai_api_key
        self.base_url = config.openai_base_url.rstrip('/')
        self.model = config.openai_chat_model
        self.timeout = config.openai_timeout
        self._transport = transport

    @property
    def model_name(self) -> str:
        return self.model

    def chat(
        self,
        messages: List[LLMMessage],
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> LLMResponse:
        if not self.api_key:
            raise LLMError("OPENAI_API_KEY not configured")

        logger.info(f"Calling OpenAI API: model={self.model}, temp={temperature}")

        openai_messages = [
            {"role": msg.role, "content": msg.content}
            for msg in messages
        ]

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}/chat/completions",
                    json={
                        "model": self.model,
                        "messages": openai_messages,
                        "temperature": temperature,
                        "max_tokens": max_tokens,
                    },
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    }
                )
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"OpenAI HTTP error: {e}")
            try:
                error_msg = e.response.json().get("error", {}).get("message", "")
            except ValueError:
                error_msg = ""
            raise LLMError(
                f"OpenAI API error: {e.response.status_code}" + (f" {error_msg}" if error_msg else "")
            )
        except httpx.TimeoutException:
            logger.error("OpenAI request timed out")
            raise LLMError("OpenAI API timed out")
        except httpx.RequestError as e:
            logger.error(f"OpenAI connection error: {e}")
            raise LLMError("Could not connect to OpenAI API")
        except ValueError:
            raise LLMError("Invalid response from OpenAI API")

        choices = data.get("choices", [])
        if not choices:
            raise LLMError("No choices in OpenAI response")

        content = (choices[0].get("message", {}).get("content") or "").strip()
        if not content:
            raise LLMError("OpenAI returned no content")

        logger.info(f"OpenAI response: {len(content)} chars")
        return LLMResponse(content=content, model=self.model, usage=data.get("usage"))
