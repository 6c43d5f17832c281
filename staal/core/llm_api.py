import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, List

import openai
from openai import OpenAI

logger = logging.getLogger(__name__)

OLLAMA_DEFAULT_BASE_URL = "http://localhost:11434/v1"


class ProviderError(Exception):
    """The chat provider could not produce a completion."""


class ContextTooLargeError(ProviderError):
    """The request exceeded the model's context window."""


@dataclass(frozen=True)
class Completion:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


def resolve_credentials(config: dict) -> Dict[str, str]:
    """
    Resolves service name, key, base URL and model for an OpenAI-compatible API.
    Supports "openai", "openrouter", and "ollama" providers.
    """
    provider = config.get("provider", "openai")
    api_key = config.get("api_key")  # Explicit key in config takes highest priority
    base_url = config.get("base_url")
    model_name = config.get("model_name")

    if provider == "ollama":
        # Ollama doesn't need a key, but the client library requires a non-empty string.
        api_key = api_key or "ollama"
        base_url = base_url or OLLAMA_DEFAULT_BASE_URL
        service_name = "Ollama"
    elif provider == "openrouter":
        api_key = api_key or os.environ.get("OPENROUTER_API_KEY")
        base_url = base_url or "https://openrouter.ai/api/v1"
        service_name = "OpenRouter"
    else:
        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        service_name = "OpenAI"

    if not api_key:
        raise ValueError(
            f"API key for provider '{provider}' not found. Please set it in staal.yaml or as an environment variable."
        )
    if not model_name:
        raise ValueError(f"model_name not specified for provider '{provider}'.")

    return {
        "service_name": service_name,
        "api_key": api_key,
        "base_url": base_url,
        "model_name": model_name,
    }


class OpenAIChatClient:
    def __init__(self, config: dict) -> None:
        credentials = resolve_credentials(config)
        self.service_name = credentials["service_name"]
        self.model_name = credentials["model_name"]
        self._client = OpenAI(
            base_url=credentials["base_url"],
            api_key=credentials["api_key"],
            timeout=float(config.get("timeout_seconds", 1800)),
            max_retries=int(config.get("max_retries", 2)),
        )

    def complete(self, messages: List[Dict[str, str]]) -> Completion:
        logger.debug("Calling %s with model %s (%s messages)", self.service_name, self.model_name, len(messages))
        try:
            response = self._client.chat.completions.create(
                model=self.model_name,
                messages=messages,
            )
        except openai.BadRequestError as e:
            if is_context_overflow(e):
                raise ContextTooLargeError(str(e)) from e
            raise ProviderError(f"{self.service_name} rejected the request: {e}") from e
        except openai.OpenAIError as e:
            raise ProviderError(f"Error calling {self.service_name} API: {e}") from e

        content = response.choices[0].message.content or ""
        usage = response.usage
        return Completion(
            text=content,
            input_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            output_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
        )


def is_context_overflow(error: Exception) -> bool:
    if getattr(error, "code", None) == "context_length_exceeded":
        return True
    text = str(error).lower()
    return "context_length_exceeded" in text or "maximum context length" in text


def client_factory(config: dict) -> Callable[[], OpenAIChatClient]:
    return lambda: OpenAIChatClient(config)
