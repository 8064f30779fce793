"""
Credentials
===========
Default API key lookup per provider, secret resolution and key persistence.

Stored keys may be encrypted by the host application; every secret that
ends up in a request configuration goes through a ``CredentialResolver``.
Plaintext keys are never logged; use ``mask_key`` instead.

Uses python-dotenv ``set_key`` for persistence.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple

from dotenv import set_key

from vault_copilot.constants import ChatModelProviders, LOCAL_PROVIDER_PLACEHOLDER_KEY

logger = logging.getLogger("vault_copilot.credentials")

# provider -> (settings attribute, env var, description)
KEY_DEFINITIONS: Dict[str, Tuple[Optional[str], Optional[str], str]] = {
    ChatModelProviders.OPENAI.value: (
        "openai_api_key", "OPENAI_API_KEY", "OpenAI chat models and embeddings.",
    ),
    ChatModelProviders.AZURE_OPENAI.value: (
        "azure_openai_api_key", "AZURE_OPENAI_API_KEY", "Azure OpenAI deployments.",
    ),
    ChatModelProviders.ANTHROPIC.value: (
        "anthropic_api_key", "ANTHROPIC_API_KEY", "Claude models.",
    ),
    ChatModelProviders.COHEREAI.value: (
        "cohere_api_key", "COHERE_API_KEY", "Command R models.",
    ),
    ChatModelProviders.GOOGLE.value: (
        "google_api_key", "GOOGLE_API_KEY", "Gemini models.",
    ),
    ChatModelProviders.OPENROUTERAI.value: (
        "openrouter_api_key", "OPENROUTER_API_KEY", "Any model routed through OpenRouter.",
    ),
    ChatModelProviders.GROQ.value: (
        "groq_api_key", "GROQ_API_KEY", "Groq-hosted open models.",
    ),
    # Local servers need no key
    ChatModelProviders.OLLAMA.value: (None, None, "Local Ollama server."),
    ChatModelProviders.LM_STUDIO.value: (None, None, "Local LM Studio server."),
    ChatModelProviders.OPENAI_FORMAT.value: (None, None, "OpenAI-compatible endpoint."),
}


class CredentialResolver(Protocol):
    """Turns a stored (possibly encrypted) value into plaintext."""

    def decrypt(self, stored_value: str) -> str:
        ...


class PlaintextResolver:
    """Resolver for settings that store keys unencrypted."""

    def decrypt(self, stored_value: str) -> str:
        return stored_value


def resolve_secret(resolver: CredentialResolver, stored_value: Optional[str]) -> Optional[str]:
    """Decrypt *stored_value* if present; empty values resolve to None."""
    if not stored_value:
        return None
    return resolver.decrypt(stored_value)


def default_api_key(provider: str, settings) -> Optional[str]:
    """Look up the global API key configured for *provider*.

    Args:
        provider: Provider tag of the model.
        settings: ``CopilotSettings`` snapshot.

    Returns:
        The stored key, the local placeholder for keyless providers, or
        None when nothing is configured.
    """
    attr, _, _ = KEY_DEFINITIONS.get(provider, (None, None, ""))
    if provider in KEY_DEFINITIONS and attr is None:
        return LOCAL_PROVIDER_PLACEHOLDER_KEY
    if attr is None:
        return None
    return getattr(settings, attr, None) or None


def mask_key(key: Optional[str]) -> str:
    """Mask an API key, showing only the last 4 characters.

    Args:
        key: The full API key string.

    Returns:
        Masked string like ``sk-...AbCd``.
    """
    if not key:
        return "<none>"
    if len(key) <= 4:
        return "****"
    return f"{key[:3]}...{key[-4:]}"


def save_keys(keys: Dict[str, str], dotenv_path: Optional[str] = None) -> None:
    """Persist keys to a .env file and the current process environment.

    Creates the .env file if it doesn't exist. Existing keys are updated,
    new keys are appended.

    Args:
        keys: Dict of {ENV_VAR_NAME: value} to save.
        dotenv_path: Path to .env file. Defaults to .env in cwd.
    """
    if dotenv_path is None:
        dotenv_path = str(Path.cwd() / ".env")

    env_file = Path(dotenv_path)
    if not env_file.exists():
        env_file.touch()
        logger.info("Created new .env file at %s", dotenv_path)

    for name, value in keys.items():
        set_key(dotenv_path, name, value)
        os.environ[name] = value
        logger.info("Saved %s to .env (%s)", name, mask_key(value))
