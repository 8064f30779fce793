"""
Chat Model Manager
==================
Owns the single active chat model and swaps it atomically.

Activation runs resolve -> build config -> ping -> construct. The new model
replaces the previous one only when every step succeeds. A failed ping
leaves the previous model in place; a failed construction leaves no active
model at all.

Each ``ChatModelManager`` instance owns its own state. Activation is
serialized with a re-entrant lock so it is safe to call from several
threads.
"""

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Iterator, List, Optional

from vault_copilot.config import CustomModel, SettingsStore
from vault_copilot.credentials import CredentialResolver, PlaintextResolver
from vault_copilot.exceptions import (
    ConfigurationError,
    ConstructionError,
    CopilotError,
    CredentialError,
    ModelNotReadyError,
)
from vault_copilot.model_config import (
    ModelConfig,
    build_model_config,
    check_reasoning_azure_fields,
)
from vault_copilot.model_registry import ChatModelRegistry
from vault_copilot.model_validator import ModelValidator
from vault_copilot.observability import StructuredLogger, get_logger
from vault_copilot.providers import ProviderAdapter, get_adapter

logger = logging.getLogger("vault_copilot.chat_model_manager")


@dataclass
class ActiveModel:
    """A constructed, validated chat model ready for turns."""

    descriptor: CustomModel
    config: ModelConfig
    client: Any
    adapter: ProviderAdapter
    vendor: str
    cors_required: bool = False

    @property
    def model_key(self) -> str:
        return self.descriptor.model_key

    @property
    def is_reasoning_model(self) -> bool:
        return self.config.is_reasoning_model

    def invoke(self, messages: List[Any]) -> str:
        return self.adapter.invoke(self.client, messages)

    def stream(self, messages: List[Any]) -> Iterator[str]:
        return self.adapter.stream_invoke(self.client, messages)


class ChatModelManager:
    """Registry plus the active model, kept consistent with the settings.

    Args:
        store: Settings store. The registry is rebuilt on every change.
        adapter_lookup: Provider tag to adapter mapping.
        resolver: Credential resolver for stored keys.
        validator: Ping validator. Built from *adapter_lookup* by default.
        events: Structured event logger.
    """

    def __init__(
        self,
        store: SettingsStore,
        adapter_lookup: Callable[[str], Optional[ProviderAdapter]] = get_adapter,
        resolver: Optional[CredentialResolver] = None,
        validator: Optional[ModelValidator] = None,
        events: Optional[StructuredLogger] = None,
    ):
        self._store = store
        self._resolver = resolver or PlaintextResolver()
        self._events = events or get_logger()
        self._validator = validator or ModelValidator(
            adapter_lookup,
            self._resolver,
            on_attempt=self._events.log_ping,
        )
        self.registry = ChatModelRegistry(adapter_lookup)
        self._active: Optional[ActiveModel] = None
        self._lock = RLock()

        self._rebuild_registry()
        self._unsubscribe = store.subscribe(self._on_settings_change)

    # ---- activation ----------------------------------------------------

    def activate(self, model: CustomModel) -> ActiveModel:
        """Validate, construct and commit *model* as the active model.

        Raises:
            ConfigurationError: Model not registered, Azure deployment
                missing, or reasoning Azure fields incomplete.
            CredentialError: No API key for the model.
            PingError: The model did not answer either ping attempt.
            ConstructionError: The client could not be created. The active
                model is cleared in this case.
        """
        with self._lock:
            settings = self._store.get()
            entry = self.registry.resolve(model.model_key)
            if entry is None:
                raise ConfigurationError(f"No model found for: {model.model_key}")
            if not entry.has_api_key:
                raise CredentialError(
                    f"API key is not provided for the model: {model.model_key}. "
                    "Model switch failed."
                )

            config = build_model_config(model, settings, resolver=self._resolver)
            check_reasoning_azure_fields(config)

            cors_required = False
            if not config.is_reasoning_model:
                result = self._validator.ping(model, settings)
                cors_required = result.cors_required
                if cors_required:
                    config = config.with_cors(True)

            try:
                client = entry.adapter.create_client(config)
            except Exception as e:
                self._retire(self._active)
                self._active = None
                logger.error("Error creating model %s: %s", model.model_key, e)
                if isinstance(e, ConstructionError):
                    raise
                raise ConstructionError(
                    f"Error creating model {model.model_key}: {e}"
                ) from e

            self._retire(self._active)
            self._active = ActiveModel(
                descriptor=model,
                config=config,
                client=client,
                adapter=entry.adapter,
                vendor=entry.vendor,
                cors_required=cors_required,
            )
            self._events.log_model_switch(model.model_key, entry.vendor, cors_required)
            logger.info("Active model set to %s", model.model_key)
            return self._active

    def is_current(self, model: CustomModel) -> bool:
        """True when *model* is already active with an identical configuration."""
        active = self._active
        if active is None or active.model_key != model.model_key:
            return False
        try:
            config = build_model_config(model, self._store.get(), resolver=self._resolver)
        except CopilotError:
            return False
        return config.with_cors(active.config.enable_cors) == active.config

    def clear(self) -> None:
        with self._lock:
            self._retire(self._active)
            self._active = None

    @staticmethod
    def _retire(active: Optional[ActiveModel]) -> None:
        if active is not None:
            active.adapter.release_client(active.client)

    # ---- queries -------------------------------------------------------

    def get_active_model(self) -> Optional[ActiveModel]:
        return self._active

    def get_chat_model(self) -> ActiveModel:
        """Return the active model.

        Raises:
            ModelNotReadyError: No model has been activated successfully.
        """
        if self._active is None:
            raise ModelNotReadyError(
                "No valid chat model available. Please check your API key settings."
            )
        return self._active

    def validate_chat_model(self, model: Optional[ActiveModel]) -> bool:
        return model is not None and model.client is not None

    def count_tokens(self, text: str) -> int:
        """Approximate token count of *text* for the active model."""
        if self._active is None:
            return 0
        import tiktoken

        try:
            encoding = tiktoken.encoding_for_model(self._active.config.model_name)
        except KeyError:
            encoding = tiktoken.get_encoding("cl100k_base")
        return len(encoding.encode(text))

    # ---- settings ------------------------------------------------------

    def _rebuild_registry(self) -> None:
        settings = self._store.get()
        self.registry.rebuild(settings.active_models, settings)

    def _on_settings_change(self) -> None:
        with self._lock:
            self._rebuild_registry()
            active = self._active
            if active is None:
                return
            entry = self.registry.resolve(active.model_key)
            if entry is None or not entry.has_api_key:
                logger.warning(
                    "Active model %s is no longer available, clearing it",
                    active.model_key,
                )
                self._retire(active)
                self._active = None

    def close(self) -> None:
        self._unsubscribe()
        self.clear()
