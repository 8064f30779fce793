"""
Chat Model Registry
===================
Maps model keys to the adapter that can build them, together with a
credential-presence flag and the vendor name.

The registry is rebuilt in full on every change to the active model set or
the settings. It is never patched in place, so removed or renamed models
disappear immediately.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from vault_copilot.config import CopilotSettings, CustomModel
from vault_copilot.credentials import default_api_key
from vault_copilot.model_config import find_azure_deployment
from vault_copilot.providers import ProviderAdapter, get_adapter

logger = logging.getLogger("vault_copilot.model_registry")


@dataclass(frozen=True)
class RegistryEntry:
    model_key: str
    has_api_key: bool
    adapter: ProviderAdapter
    vendor: str


class ChatModelRegistry:
    """Model key to ``RegistryEntry`` lookup."""

    def __init__(
        self,
        adapter_lookup: Callable[[str], Optional[ProviderAdapter]] = get_adapter,
    ):
        self._adapter_lookup = adapter_lookup
        self._entries: Dict[str, RegistryEntry] = {}

    def rebuild(self, models: Iterable[CustomModel], settings: CopilotSettings) -> None:
        """Replace the registry with entries for the enabled, known models.

        Args:
            models: The active model descriptors.
            settings: Settings snapshot used for the default key lookup.
        """
        entries: Dict[str, RegistryEntry] = {}
        for model in models:
            if not model.enabled:
                continue
            adapter = self._adapter_lookup(model.provider)
            if adapter is None:
                logger.warning(
                    "Unknown provider %s for model %s, skipping",
                    model.provider, model.name,
                )
                continue
            has_api_key = bool(
                model.api_key
                or default_api_key(model.provider, settings)
                or _azure_override_key(model, settings)
            )
            entries[model.model_key] = RegistryEntry(
                model_key=model.model_key,
                has_api_key=has_api_key,
                adapter=adapter,
                vendor=adapter.vendor,
            )

        self._entries = entries
        logger.debug("Registry rebuilt with %d models", len(entries))

    def resolve(self, model_key: str) -> Optional[RegistryEntry]:
        return self._entries.get(model_key)

    def __contains__(self, model_key: str) -> bool:
        return model_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self):
        return list(self._entries)


def _azure_override_key(model: CustomModel, settings: CopilotSettings) -> Optional[str]:
    deployment = find_azure_deployment(settings, model.model_key)
    return deployment.api_key if deployment is not None else None
