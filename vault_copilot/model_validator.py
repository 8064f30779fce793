"""
Model Validator
===============
Live reachability check for a candidate model before it is activated.

A ping is a single tiny chat call ("hello", 10 output tokens, 3 second
timeout). It is tried without the CORS-safe transport first; if that fails
it is retried once with it. Success on the second attempt means the model
only works through the CORS-safe transport and the caller should warn the
user once.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from llama_index.core.llms import ChatMessage, MessageRole

from vault_copilot.config import AzureDeployment, CopilotSettings, CustomModel
from vault_copilot.constants import PING_MESSAGE
from vault_copilot.credentials import CredentialResolver, PlaintextResolver
from vault_copilot.exceptions import PingError, UnknownProviderError, err2str
from vault_copilot.model_config import ModelConfig, build_model_config, is_reasoning_model
from vault_copilot.providers import ProviderAdapter, get_adapter

logger = logging.getLogger("vault_copilot.model_validator")


@dataclass
class PingResult:
    """Outcome of a successful ping."""

    model_key: str
    cors_required: bool = False
    skipped: bool = False


class ModelValidator:
    """Runs the two-phase ping against provider adapters.

    Args:
        adapter_lookup: Maps a provider tag to its adapter. Defaults to the
            built-in adapter table.
        resolver: Credential resolver passed through to the config builder.
        on_attempt: Optional ``(model_key, enable_cors, ok)`` callback,
            called after every attempt.
    """

    def __init__(
        self,
        adapter_lookup: Callable[[str], Optional[ProviderAdapter]] = get_adapter,
        resolver: Optional[CredentialResolver] = None,
        on_attempt: Optional[Callable[[str, bool, bool], None]] = None,
    ):
        self._adapter_lookup = adapter_lookup
        self._resolver = resolver or PlaintextResolver()
        self._on_attempt = on_attempt

    def ping(
        self,
        model: CustomModel,
        settings: CopilotSettings,
        azure_deployment: Optional[AzureDeployment] = None,
    ) -> PingResult:
        """Validate that *model* answers a minimal request.

        Returns:
            PingResult with ``cors_required`` set when only the CORS-safe
            attempt succeeded.

        Raises:
            PingError: Both attempts failed; carries both error strings.
            UnknownProviderError: No adapter for the model's provider.
            ConfigurationError: The config could not be built.
        """
        if is_reasoning_model(model):
            logger.info("Skipping ping for reasoning model %s", model.model_key)
            return PingResult(model_key=model.model_key, skipped=True)

        adapter = self._adapter_lookup(model.provider)
        if adapter is None:
            raise UnknownProviderError(f"Unknown provider: {model.provider}")

        base = build_model_config(
            model.model_copy(update={"enable_cors": False}),
            settings,
            azure_deployment=azure_deployment,
            resolver=self._resolver,
        ).for_ping()

        try:
            self._attempt(adapter, base.with_cors(False))
            return PingResult(model_key=model.model_key)
        except Exception as first:
            without_cors_error = err2str(first)
            logger.info(
                "Ping without CORS failed for %s, retrying with CORS: %s",
                model.model_key, without_cors_error,
            )

        try:
            self._attempt(adapter, base.with_cors(True))
        except Exception as second:
            raise PingError(
                without_cors_error, err2str(second), model_key=model.model_key,
            ) from second

        logger.warning("Model %s only reachable with CORS enabled", model.model_key)
        return PingResult(model_key=model.model_key, cors_required=True)

    def _attempt(self, adapter: ProviderAdapter, config: ModelConfig) -> None:
        ok = False
        client = None
        try:
            client = adapter.create_client(config)
            adapter.invoke(client, [ChatMessage(role=MessageRole.USER, content=PING_MESSAGE)])
            ok = True
        finally:
            if client is not None:
                adapter.release_client(client)
            if self._on_attempt is not None:
                self._on_attempt(config.model_key, config.enable_cors, ok)
