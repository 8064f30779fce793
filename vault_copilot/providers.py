"""
Provider Adapters
=================
One adapter per provider tag. Each adapter knows which LlamaIndex LLM class
serves the provider, how a ``ModelConfig`` maps onto that class's keyword
arguments, and how to run a (streaming) chat call against the client.

LlamaIndex integrations are imported lazily so that only the providers
actually used need their ``llama-index-llms-*`` package installed.
"""

import importlib
import logging
from typing import Any, Dict, Iterator, List, Optional

from vault_copilot.constants import (
    LM_STUDIO_BASE_URL,
    OLLAMA_BASE_URL,
    OPENROUTER_BASE_URL,
    ChatModelProviders,
)
from vault_copilot.exceptions import ConstructionError
from vault_copilot.safe_http import create_safe_http_client

logger = logging.getLogger("vault_copilot.providers")


class ProviderAdapter:
    """Base adapter for OpenAI-style LlamaIndex LLM classes.

    Subclasses override the class attributes below and, where the provider
    needs it, ``extra_params`` or ``client_kwargs``.
    """

    provider: str = ""
    vendor: str = ""
    module: str = ""
    class_name: str = ""
    default_base_url: Optional[str] = None

    # Keyword names on the LlamaIndex class; None means "not supported"
    api_key_param: Optional[str] = "api_key"
    base_url_param: Optional[str] = "api_base"
    timeout_param: Optional[str] = "timeout"
    retry_param: Optional[str] = "max_retries"
    max_tokens_param: Optional[str] = "max_tokens"
    accepts_http_client: bool = False

    def extra_params(self, model, settings, resolver) -> Dict[str, Any]:
        """Provider-specific client arguments derived from the descriptor."""
        return {}

    def client_kwargs(self, config) -> Dict[str, Any]:
        """Map a ``ModelConfig`` onto constructor keyword arguments."""
        kwargs: Dict[str, Any] = {
            "model": config.model_name,
            "temperature": config.temperature,
        }
        if self.api_key_param and config.api_key:
            kwargs[self.api_key_param] = config.api_key
        if self.base_url_param and config.base_url:
            kwargs[self.base_url_param] = config.base_url
        if self.retry_param:
            kwargs[self.retry_param] = config.max_retries
        if self.timeout_param and config.timeout is not None:
            kwargs[self.timeout_param] = config.timeout
        if self.max_tokens_param and config.max_tokens is not None:
            kwargs[self.max_tokens_param] = config.max_tokens

        additional = {}
        if config.max_completion_tokens is not None:
            additional["max_completion_tokens"] = config.max_completion_tokens
        if config.reasoning_effort:
            additional["reasoning_effort"] = config.reasoning_effort
        if additional:
            kwargs["additional_kwargs"] = additional

        kwargs.update(config.provider_params)

        if config.enable_cors:
            if self.accepts_http_client:
                kwargs["http_client"] = create_safe_http_client(config.timeout)
            else:
                logger.debug("%s has no custom transport, CORS flag ignored", self.vendor)
        return kwargs

    def load_client_class(self):
        try:
            module = importlib.import_module(self.module)
        except ImportError as e:
            raise ConstructionError(
                f"{self.module} is not installed. "
                f"Install it to use {self.vendor} models."
            ) from e
        return getattr(module, self.class_name)

    def create_client(self, config):
        """Instantiate the LlamaIndex LLM for *config*.

        A CORS-safe transport created for the client stays open until
        ``release_client`` is called with that client.

        Raises:
            ConstructionError: Missing integration package or rejected arguments.
        """
        client_class = self.load_client_class()
        kwargs = self.client_kwargs(config)
        transport = kwargs.get("http_client")
        try:
            client = client_class(**kwargs)
        except Exception as e:
            if transport is not None:
                transport.close()
            raise ConstructionError(
                f"Could not create {self.vendor} client for {config.model_name}: {e}"
            ) from e
        if transport is not None:
            self._transports[id(client)] = transport
        return client

    def release_client(self, client) -> None:
        """Close the transport opened for *client*, if any."""
        transport = self._transports.pop(id(client), None)
        if transport is not None:
            transport.close()
            logger.debug("Closed CORS-safe transport for %s client", self.vendor)

    @property
    def _transports(self) -> Dict[int, Any]:
        # client id -> httpx.Client, per adapter instance
        return self.__dict__.setdefault("_open_transports", {})

    def invoke(self, client, messages: List[Any]) -> str:
        """Single chat call returning the full response text."""
        response = client.chat(messages)
        return response.message.content or ""

    def stream_invoke(self, client, messages: List[Any]) -> Iterator[str]:
        """Streaming chat call yielding text fragments in arrival order."""
        for chunk in client.stream_chat(messages):
            if chunk.delta:
                yield chunk.delta


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------

class OpenAIAdapter(ProviderAdapter):
    provider = ChatModelProviders.OPENAI.value
    vendor = "OpenAI"
    module = "llama_index.llms.openai"
    class_name = "OpenAI"
    accepts_http_client = True

    def extra_params(self, model, settings, resolver) -> Dict[str, Any]:
        org_id = model.openai_org_id or settings.openai_org_id
        if org_id:
            return {"default_headers": {"OpenAI-Organization": org_id}}
        return {}


class AzureOpenAIAdapter(ProviderAdapter):
    provider = ChatModelProviders.AZURE_OPENAI.value
    vendor = "Azure OpenAI"
    module = "llama_index.llms.azure_openai"
    class_name = "AzureOpenAI"
    base_url_param = None
    accepts_http_client = True

    def client_kwargs(self, config) -> Dict[str, Any]:
        kwargs = super().client_kwargs(config)
        kwargs["engine"] = config.azure_deployment_name
        kwargs["api_version"] = config.azure_api_version
        kwargs["azure_endpoint"] = (
            config.base_url
            or f"https://{config.azure_instance_name}.openai.azure.com/"
        )
        return kwargs


class AnthropicAdapter(ProviderAdapter):
    provider = ChatModelProviders.ANTHROPIC.value
    vendor = "Anthropic"
    module = "llama_index.llms.anthropic"
    class_name = "Anthropic"
    base_url_param = "base_url"

    def extra_params(self, model, settings, resolver) -> Dict[str, Any]:
        return {"default_headers": {"anthropic-dangerous-direct-browser-access": "true"}}


class CohereAdapter(ProviderAdapter):
    provider = ChatModelProviders.COHEREAI.value
    vendor = "Cohere"
    module = "llama_index.llms.cohere"
    class_name = "Cohere"
    base_url_param = None


class GoogleAdapter(ProviderAdapter):
    provider = ChatModelProviders.GOOGLE.value
    vendor = "Google"
    module = "llama_index.llms.google_genai"
    class_name = "GoogleGenAI"
    base_url_param = None
    timeout_param = None


class OpenRouterAdapter(ProviderAdapter):
    provider = ChatModelProviders.OPENROUTERAI.value
    vendor = "OpenRouter"
    module = "llama_index.llms.openrouter"
    class_name = "OpenRouter"
    default_base_url = OPENROUTER_BASE_URL
    accepts_http_client = True


class GroqAdapter(ProviderAdapter):
    provider = ChatModelProviders.GROQ.value
    vendor = "Groq"
    module = "llama_index.llms.groq"
    class_name = "Groq"
    accepts_http_client = True


class OllamaAdapter(ProviderAdapter):
    provider = ChatModelProviders.OLLAMA.value
    vendor = "Ollama"
    module = "llama_index.llms.ollama"
    class_name = "Ollama"
    default_base_url = OLLAMA_BASE_URL
    api_key_param = None
    base_url_param = "base_url"
    timeout_param = "request_timeout"
    retry_param = None
    max_tokens_param = None


class OpenAILikeAdapter(ProviderAdapter):
    """Any server speaking the OpenAI chat completions format."""

    provider = ChatModelProviders.OPENAI_FORMAT.value
    vendor = "OpenAI Format"
    module = "llama_index.llms.openai_like"
    class_name = "OpenAILike"
    accepts_http_client = True

    def extra_params(self, model, settings, resolver) -> Dict[str, Any]:
        return {"is_chat_model": True}


class LMStudioAdapter(OpenAILikeAdapter):
    provider = ChatModelProviders.LM_STUDIO.value
    vendor = "LM Studio"
    default_base_url = LM_STUDIO_BASE_URL


PROVIDER_ADAPTERS: Dict[str, ProviderAdapter] = {
    adapter.provider: adapter
    for adapter in (
        OpenAIAdapter(),
        AzureOpenAIAdapter(),
        AnthropicAdapter(),
        CohereAdapter(),
        GoogleAdapter(),
        OpenRouterAdapter(),
        GroqAdapter(),
        OllamaAdapter(),
        LMStudioAdapter(),
        OpenAILikeAdapter(),
    )
}


def get_adapter(provider: str) -> Optional[ProviderAdapter]:
    return PROVIDER_ADAPTERS.get(provider)
