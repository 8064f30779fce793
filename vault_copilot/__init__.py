"""
Vault Copilot - Model & Chain Orchestration
============================================
Uniform access to many chat model providers through LlamaIndex, with
plain chat, vault question answering and a hybrid "plus" mode.
"""

from vault_copilot.config import (
    AzureDeployment,
    CopilotSettings,
    CustomModel,
    SettingsStore,
    build_settings,
    get_config,
    reload_config,
)
from vault_copilot.constants import ChainType, ChatModelProviders, VaultVectorStoreStrategy
from vault_copilot.exceptions import (
    ChainCorruptedButRecovered,
    ConfigurationError,
    ConstructionError,
    CopilotError,
    CredentialError,
    DependencyNotReadyError,
    ModelNotReadyError,
    PingError,
    ProviderInvocationError,
    UnknownProviderError,
)
from vault_copilot.model_config import ModelConfig, build_model_config
from vault_copilot.model_validator import ModelValidator, PingResult
from vault_copilot.model_registry import ChatModelRegistry, RegistryEntry
from vault_copilot.chat_model_manager import ActiveModel, ChatModelManager
from vault_copilot.chain_manager import ChainManager
from vault_copilot.turn_executor import CancellationToken, TurnExecutor
from vault_copilot.streaming import get_ai_response
from vault_copilot.observability import StructuredLogger, get_logger, setup_file_logging


__all__ = [
    # Settings
    "CopilotSettings",
    "CustomModel",
    "AzureDeployment",
    "SettingsStore",
    "build_settings",
    "get_config",
    "reload_config",
    # Enums
    "ChainType",
    "ChatModelProviders",
    "VaultVectorStoreStrategy",
    # Models
    "ModelConfig",
    "build_model_config",
    "ModelValidator",
    "PingResult",
    "ChatModelRegistry",
    "RegistryEntry",
    "ActiveModel",
    "ChatModelManager",
    # Chains and turns
    "ChainManager",
    "TurnExecutor",
    "CancellationToken",
    "get_ai_response",
    # Errors
    "CopilotError",
    "ConfigurationError",
    "UnknownProviderError",
    "CredentialError",
    "ConstructionError",
    "DependencyNotReadyError",
    "ModelNotReadyError",
    "ProviderInvocationError",
    "PingError",
    "ChainCorruptedButRecovered",
    # Observability
    "StructuredLogger",
    "get_logger",
    "setup_file_logging",
]
