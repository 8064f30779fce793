"""
Model Configuration Builder
===========================
Maps a model descriptor plus the settings snapshot into a flat,
provider-ready ``ModelConfig``.

The mapping is pure: no I/O and no state. Secrets are resolved through the
credential resolver at build time so a ``ModelConfig`` never carries a
stored (encrypted) value.

Reasoning-only variants (e.g. ``o1-preview``) get a fixed temperature,
streaming disabled, ``max_completion_tokens`` in place of ``max_tokens``
and only the provider parameters listed in ``REASONING_SUPPORTED_PARAMS``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from vault_copilot.config import AzureDeployment, CopilotSettings, CustomModel
from vault_copilot.constants import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    LOCAL_PROVIDER_PLACEHOLDER_KEY,
    PING_MAX_TOKENS,
    PING_TIMEOUT_SECONDS,
    REASONING_MODEL_PREFIXES,
    REASONING_MODEL_TEMPERATURE,
    REASONING_SUPPORTED_PARAMS,
    ChatModelProviders,
)
from vault_copilot.credentials import (
    CredentialResolver,
    PlaintextResolver,
    default_api_key,
    mask_key,
    resolve_secret,
)
from vault_copilot.exceptions import ConfigurationError

logger = logging.getLogger("vault_copilot.model_config")


@dataclass
class ModelConfig:
    """Normalized request configuration for one model.

    Attributes:
        model_key: ``name|provider`` of the descriptor it was built from.
        provider: Provider tag.
        model_name: Model identifier sent to the provider.
        temperature: Sampling temperature.
        streaming: Whether turns should stream.
        max_retries: Client retry ceiling.
        max_concurrency: Concurrent request ceiling.
        max_tokens: Output token limit (ordinary models).
        max_completion_tokens: Output token limit (reasoning variants).
        reasoning_effort: Reasoning effort level (reasoning variants).
        enable_cors: Route calls through the CORS-safe transport.
        is_reasoning_model: Built for a reasoning-only variant.
        api_key: Resolved plaintext key. Excluded from repr.
        base_url: Endpoint override.
        azure_instance_name / azure_deployment_name / azure_api_version:
            Azure endpoint coordinates.
        timeout: Per-request wall-clock timeout in seconds.
        provider_params: Remaining provider-specific client arguments.
    """

    model_key: str
    provider: str
    model_name: str
    temperature: float
    streaming: bool
    max_retries: int = DEFAULT_MAX_RETRIES
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_tokens: Optional[int] = None
    max_completion_tokens: Optional[int] = None
    reasoning_effort: Optional[str] = None
    enable_cors: bool = False
    is_reasoning_model: bool = False
    api_key: Optional[str] = field(default=None, repr=False)
    base_url: Optional[str] = None
    azure_instance_name: Optional[str] = None
    azure_deployment_name: Optional[str] = None
    azure_api_version: Optional[str] = None
    timeout: Optional[float] = None
    provider_params: Dict[str, Any] = field(default_factory=dict, repr=False)

    def for_ping(self) -> "ModelConfig":
        """Copy with a tiny token budget and a short timeout."""
        if self.is_reasoning_model:
            return replace(
                self,
                max_tokens=None,
                max_completion_tokens=PING_MAX_TOKENS,
                timeout=PING_TIMEOUT_SECONDS,
            )
        return replace(
            self,
            max_tokens=PING_MAX_TOKENS,
            max_completion_tokens=None,
            timeout=PING_TIMEOUT_SECONDS,
        )

    def with_cors(self, enable_cors: bool) -> "ModelConfig":
        return replace(self, enable_cors=enable_cors)

    def redacted(self) -> Dict[str, Any]:
        """Loggable view of the configuration with the key masked."""
        return {
            "model_key": self.model_key,
            "model_name": self.model_name,
            "temperature": self.temperature,
            "streaming": self.streaming,
            "enable_cors": self.enable_cors,
            "api_key": mask_key(self.api_key),
            "base_url": self.base_url,
        }


def is_reasoning_model(model: CustomModel) -> bool:
    """True for models that reject system messages, streaming and temperature."""
    if model.is_reasoning_model:
        return True
    name = model.effective_model_name
    return any(name.startswith(prefix) for prefix in REASONING_MODEL_PREFIXES)


def find_azure_deployment(
    settings: CopilotSettings, model_key: str
) -> Optional[AzureDeployment]:
    for deployment in settings.azure_openai_api_deployments:
        if deployment.model_key == model_key:
            return deployment
    return None


def build_model_config(
    model: CustomModel,
    settings: CopilotSettings,
    azure_deployment: Optional[AzureDeployment] = None,
    resolver: Optional[CredentialResolver] = None,
) -> ModelConfig:
    """Build the normalized request configuration for *model*.

    Args:
        model: The model descriptor.
        settings: Current settings snapshot.
        azure_deployment: Override for Azure models. Looked up in
            ``settings.azure_openai_api_deployments`` when omitted.
        resolver: Credential resolver. Plaintext pass-through by default.

    Returns:
        A ``ModelConfig``. Unknown providers get an empty provider block.

    Raises:
        ConfigurationError: Azure model without a matching deployment.
    """
    from vault_copilot.providers import get_adapter

    resolver = resolver or PlaintextResolver()
    reasoning = is_reasoning_model(model)

    config = ModelConfig(
        model_key=model.model_key,
        provider=model.provider,
        model_name=model.effective_model_name,
        temperature=(
            REASONING_MODEL_TEMPERATURE if reasoning
            else (model.temperature if model.temperature is not None else settings.temperature)
        ),
        streaming=(
            False if reasoning
            else (model.stream if model.stream is not None else settings.stream)
        ),
        max_tokens=None if reasoning else settings.max_tokens,
        max_completion_tokens=settings.max_tokens if reasoning else None,
        enable_cors=bool(model.enable_cors),
        is_reasoning_model=reasoning,
    )

    if model.provider == ChatModelProviders.AZURE_OPENAI.value:
        _apply_azure(config, model, settings, azure_deployment, resolver)
    else:
        adapter = get_adapter(model.provider)
        if adapter is None:
            logger.warning("No provider block for unknown provider %s", model.provider)
            return config
        stored_key = model.api_key or default_api_key(model.provider, settings)
        if stored_key == LOCAL_PROVIDER_PLACEHOLDER_KEY:
            config.api_key = stored_key
        else:
            config.api_key = resolve_secret(resolver, stored_key)
        config.base_url = model.base_url or adapter.default_base_url
        config.provider_params = adapter.extra_params(model, settings, resolver)

    if reasoning:
        _restrict_to_supported_params(config)

    logger.debug("Built model config: %s", config.redacted())
    return config


def _apply_azure(
    config: ModelConfig,
    model: CustomModel,
    settings: CopilotSettings,
    deployment: Optional[AzureDeployment],
    resolver: CredentialResolver,
) -> None:
    """Fill Azure fields: deployment override > descriptor > global settings."""
    if deployment is None:
        deployment = find_azure_deployment(settings, model.model_key)
    if deployment is None:
        raise ConfigurationError(f"No Azure deployment found for model {model.model_key}")

    config.api_key = resolve_secret(
        resolver,
        deployment.api_key or model.api_key or settings.azure_openai_api_key,
    )
    config.azure_instance_name = (
        deployment.instance_name
        or model.azure_openai_api_instance_name
        or settings.azure_openai_api_instance_name
    )
    config.azure_deployment_name = (
        deployment.deployment_name
        or model.azure_openai_api_deployment_name
        or settings.azure_openai_api_deployment_name
    )
    config.azure_api_version = (
        deployment.api_version
        or model.azure_openai_api_version
        or settings.azure_openai_api_version
    )
    config.base_url = model.base_url

    special = deployment.special_settings
    if config.is_reasoning_model and special is not None:
        if special.max_completion_tokens:
            config.max_completion_tokens = special.max_completion_tokens
        if special.reasoning_effort:
            config.reasoning_effort = special.reasoning_effort


def _restrict_to_supported_params(config: ModelConfig) -> None:
    dropped = sorted(k for k in config.provider_params if k not in REASONING_SUPPORTED_PARAMS)
    if dropped:
        logger.debug("Dropping unsupported params for %s: %s", config.model_key, dropped)
    config.provider_params = {
        k: v for k, v in config.provider_params.items() if k in REASONING_SUPPORTED_PARAMS
    }


def check_reasoning_azure_fields(config: ModelConfig) -> None:
    """Pre-flight check for reasoning variants served from Azure.

    Raises:
        ConfigurationError: If key, instance, deployment or version is missing.
    """
    if config.provider != ChatModelProviders.AZURE_OPENAI.value or not config.is_reasoning_model:
        return
    if not (
        config.api_key
        and config.azure_instance_name
        and config.azure_deployment_name
        and config.azure_api_version
    ):
        raise ConfigurationError(
            "Azure OpenAI API key, instance name, deployment name, and API "
            "version are required. Please check your settings."
        )
