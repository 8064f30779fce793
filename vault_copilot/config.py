"""
Copilot Configuration
=====================
Settings snapshot, model descriptors and the observable settings store.
"""

import os
import logging
from threading import Lock
from typing import Any, Callable, Dict, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from vault_copilot.constants import (
    BUILTIN_CHAT_MODELS,
    DEFAULT_EMBEDDING_MODEL_KEY,
    DEFAULT_SYSTEM_PROMPT,
    ChainType,
    VaultVectorStoreStrategy,
)

load_dotenv()

logger = logging.getLogger("vault_copilot.config")


class CustomModel(BaseModel):
    """A selectable chat model. ``(name, provider)`` is unique."""

    model_config = ConfigDict(protected_namespaces=())

    name: str
    provider: str
    model_name: Optional[str] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    enabled: bool = True
    is_embedding_model: bool = False
    is_built_in: bool = False
    enable_cors: Optional[bool] = None
    core: bool = False
    stream: Optional[bool] = None
    temperature: Optional[float] = None
    openai_org_id: Optional[str] = None
    azure_openai_api_instance_name: Optional[str] = None
    azure_openai_api_deployment_name: Optional[str] = None
    azure_openai_api_version: Optional[str] = None
    is_reasoning_model: bool = False

    @property
    def model_key(self) -> str:
        return get_model_key(self.name, self.provider)

    @property
    def effective_model_name(self) -> str:
        """Name sent to the provider API."""
        return self.model_name or self.name


class AzureSpecialSettings(BaseModel):
    """Extra parameters for reasoning variants served from Azure."""
    max_completion_tokens: Optional[int] = None
    reasoning_effort: Optional[str] = None


class AzureDeployment(BaseModel):
    """Per-model Azure override. Supersedes global Azure settings."""

    model_config = ConfigDict(protected_namespaces=())

    model_key: str
    model_family: str = ""
    deployment_name: str
    instance_name: str = ""
    api_version: str = ""
    api_key: str
    special_settings: Optional[AzureSpecialSettings] = None


class CopilotSettings(BaseModel):
    """Complete settings snapshot consumed by the model and chain managers."""

    model_config = ConfigDict(protected_namespaces=())

    openai_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    openai_org_id: Optional[str] = Field(default_factory=lambda: os.getenv("OPENAI_ORG_ID"))
    anthropic_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"))
    cohere_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("COHERE_API_KEY"))
    google_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("GOOGLE_API_KEY"))
    groq_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("GROQ_API_KEY"))
    openrouter_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("OPENROUTER_API_KEY"))

    azure_openai_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("AZURE_OPENAI_API_KEY"))
    azure_openai_api_instance_name: Optional[str] = None
    azure_openai_api_deployment_name: Optional[str] = None
    azure_openai_api_version: Optional[str] = None
    azure_openai_api_deployments: List[AzureDeployment] = Field(default_factory=list)

    default_chain_type: ChainType = ChainType.LLM_CHAIN
    default_model_key: str = "gpt-4o|openai"
    embedding_model_key: str = DEFAULT_EMBEDDING_MODEL_KEY

    temperature: float = 0.1
    max_tokens: int = 1000
    context_turns: int = 15
    user_system_prompt: str = ""
    stream: bool = True

    index_vault_to_vector_store: VaultVectorStoreStrategy = VaultVectorStoreStrategy.ON_MODE_SWITCH
    max_source_chunks: int = 3
    vault_path: str = "vault"
    storage_dir: str = ".copilot-index"
    debug: bool = False

    active_models: List[CustomModel] = Field(default_factory=list)
    model_configs: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: str = "json"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def get_model_key(name: str, provider: str) -> str:
    return f"{name}|{provider}"


def find_custom_model(model_key: str, models: List[CustomModel]) -> Optional[CustomModel]:
    """Return the model whose key matches *model_key*, or None."""
    for model in models:
        if model.model_key == model_key:
            return model
    return None


def get_system_prompt(settings: CopilotSettings) -> str:
    """Default system prompt, extended with the user's own prompt if set."""
    user_prompt = settings.user_system_prompt
    if user_prompt:
        return f"{DEFAULT_SYSTEM_PROMPT}\n\n{user_prompt}"
    return DEFAULT_SYSTEM_PROMPT


_NUMERIC_FIELDS = {
    "temperature": float,
    "max_tokens": int,
    "context_turns": int,
    "max_source_chunks": int,
}


def sanitize_settings(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Coerce raw settings into something ``CopilotSettings`` accepts.

    Numeric fields often arrive as strings from settings forms; values that
    are not numeric fall back to the default. Azure deployments without a
    model key, deployment name or API key are dropped.

    Args:
        data: Raw settings mapping (may be None).

    Returns:
        A new sanitized mapping.
    """
    defaults = CopilotSettings.model_fields
    sanitized = dict(data or {})

    for name, cast in _NUMERIC_FIELDS.items():
        if name not in sanitized:
            continue
        try:
            sanitized[name] = cast(float(sanitized[name]))
        except (TypeError, ValueError):
            logger.warning("Invalid value for %s, using default", name)
            sanitized[name] = defaults[name].default

    deployments = []
    for deployment in sanitized.get("azure_openai_api_deployments") or []:
        raw = deployment.model_dump() if isinstance(deployment, BaseModel) else dict(deployment)
        if raw.get("model_key") and raw.get("deployment_name") and raw.get("api_key"):
            deployments.append(raw)
        else:
            logger.warning("Dropping incomplete Azure deployment for %s", raw.get("model_key"))
    sanitized["azure_openai_api_deployments"] = deployments

    return sanitized


def merge_active_models(
    existing: List[Any],
    builtin: List[Dict[str, Any]],
    model_configs: Dict[str, Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """Merge user models with built-ins.

    User fields win over the built-in with the same key, and per-key
    ``model_configs`` win over both. Built-ins missing from *existing* are
    appended and marked as core models.
    """
    merged: Dict[str, Dict[str, Any]] = {}
    builtin_by_key = {
        get_model_key(m["name"], m["provider"]): m for m in builtin
    }

    for model in existing:
        raw = model.model_dump(exclude_unset=True) if isinstance(model, BaseModel) else dict(model)
        key = get_model_key(raw["name"], raw["provider"])
        merged[key] = {
            **builtin_by_key.get(key, {}),
            **raw,
            **model_configs.get(key, {}),
        }

    for key, model in builtin_by_key.items():
        if key not in merged:
            merged[key] = {**model, "core": True}

    return list(merged.values())


def build_settings(data: Optional[Dict[str, Any]] = None) -> CopilotSettings:
    """Sanitize raw data, merge built-in models and validate."""
    sanitized = sanitize_settings(data)
    sanitized["active_models"] = merge_active_models(
        sanitized.get("active_models") or [],
        BUILTIN_CHAT_MODELS,
        sanitized.get("model_configs") or {},
    )
    return CopilotSettings(**sanitized)


# ---------------------------------------------------------------------------
# Settings store
# ---------------------------------------------------------------------------

class SettingsStore:
    """Observable holder of the settings snapshot and current selections.

    Subscribers are called in subscription order after every change. The
    model key and chain type selections are separate channels so that
    writing them back never triggers a full settings notification.
    """

    def __init__(self, settings: Optional[CopilotSettings] = None):
        self._settings = settings if settings is not None else build_settings()
        self._model_key: Optional[str] = None
        self._chain_type: Optional[ChainType] = None
        self._subscribers: List[Callable[[], None]] = []
        self._model_key_subscribers: List[Callable[[], None]] = []
        self._chain_type_subscribers: List[Callable[[], None]] = []
        self._lock = Lock()

    # ---- settings ------------------------------------------------------

    def get(self) -> CopilotSettings:
        return self._settings

    def set(self, **partial: Any) -> CopilotSettings:
        """Replace settings fields and notify subscribers."""
        with self._lock:
            data = self._settings.model_dump()
            data.update(partial)
            self._settings = build_settings(data)
            settings = self._settings
        self._notify(self._subscribers)
        return settings

    def update(self, key: str, value: Any) -> CopilotSettings:
        """Set a single field. Dict-valued ``model_configs`` are deep-merged."""
        if key == "model_configs":
            value = {**self._settings.model_configs, **(value or {})}
        return self.set(**{key: value})

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._add_subscriber(self._subscribers, callback)

    # ---- model key selection -------------------------------------------

    def get_model_key(self) -> str:
        return self._model_key or self._settings.default_model_key

    def set_model_key(self, model_key: str, notify: bool = True) -> None:
        unchanged = model_key == self.get_model_key()
        self._model_key = model_key
        if unchanged:
            return
        if notify:
            self._notify(self._model_key_subscribers)

    def subscribe_model_key(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._add_subscriber(self._model_key_subscribers, callback)

    # ---- chain type selection ------------------------------------------

    def get_chain_type(self) -> ChainType:
        return self._chain_type or self._settings.default_chain_type

    def set_chain_type(self, chain_type: ChainType, notify: bool = True) -> None:
        unchanged = chain_type == self.get_chain_type()
        self._chain_type = chain_type
        if unchanged:
            return
        if notify:
            self._notify(self._chain_type_subscribers)

    def subscribe_chain_type(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._add_subscriber(self._chain_type_subscribers, callback)

    # ---- internals -----------------------------------------------------

    def _add_subscriber(
        self, subscribers: List[Callable[[], None]], callback: Callable[[], None]
    ) -> Callable[[], None]:
        subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in subscribers:
                subscribers.remove(callback)

        return unsubscribe

    @staticmethod
    def _notify(subscribers: List[Callable[[], None]]) -> None:
        for callback in list(subscribers):
            callback()


# Singleton
_config: Optional[CopilotSettings] = None


def get_config() -> CopilotSettings:
    """Get the global settings instance."""
    global _config
    if _config is None:
        _config = build_settings()
    return _config


def reload_config() -> CopilotSettings:
    """Reload settings from environment."""
    global _config
    load_dotenv(override=True)
    _config = build_settings()
    return _config
