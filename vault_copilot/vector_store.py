"""
Vault Vector Store
==================
Embeddings access and the persisted vector index over the vault's
markdown notes.

The index is stored under ``settings.storage_dir`` and reloaded from there
on the next start. ``index_vault_to_vector_store`` re-reads the vault and
rebuilds it.
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

from llama_index.core import (
    SimpleDirectoryReader,
    StorageContext,
    VectorStoreIndex,
    load_index_from_storage,
)
from llama_index.core.node_parser import MarkdownNodeParser
from llama_index.core.schema import BaseNode

from vault_copilot.config import SettingsStore
from vault_copilot.exceptions import DependencyNotReadyError

logger = logging.getLogger("vault_copilot.vector_store")

VAULT_INDEX_ID = "vault"


def _sanitize_text(text: str) -> str:
    """Remove non-printable characters while preserving whitespace."""
    return "".join(filter(lambda x: x.isprintable() or x in "\n\r\t", text))


class EmbeddingsManager:
    """Provides the embedding model configured in settings."""

    def __init__(self, store: SettingsStore):
        self._store = store

    def get_embeddings_api(self):
        """Return an OpenAI embedding model, or None when no key is set."""
        settings = self._store.get()
        if not settings.openai_api_key:
            logger.warning("No OpenAI API key set, embeddings unavailable")
            return None

        from llama_index.embeddings.openai import OpenAIEmbedding

        model_name = settings.embedding_model_key.split("|", 1)[0]
        return OpenAIEmbedding(model=model_name, api_key=settings.openai_api_key)


class VaultVectorStoreManager:
    """Builds, persists and reloads the vault's vector index."""

    def __init__(self, store: SettingsStore, embeddings: EmbeddingsManager):
        self._store = store
        self._embeddings = embeddings
        self._embed_model = None
        self.index: Optional[VectorStoreIndex] = None
        self.build_count = 0

    @property
    def nodes(self) -> List[BaseNode]:
        if self.index is None:
            return []
        return list(self.index.docstore.docs.values())

    def get_or_initialize_db(self, embed_model) -> VectorStoreIndex:
        """Load the persisted index, or build it from the vault."""
        self._embed_model = embed_model
        if self.index is not None:
            return self.index

        storage_dir = self._store.get().storage_dir
        if Path(storage_dir).exists():
            logger.info("Loading vault index from %s", storage_dir)
            storage_context = StorageContext.from_defaults(persist_dir=storage_dir)
            self.index = load_index_from_storage(
                storage_context, index_id=VAULT_INDEX_ID, embed_model=embed_model,
            )
            return self.index

        return self.index_vault_to_vector_store()

    def index_vault_to_vector_store(self) -> VectorStoreIndex:
        """Re-read every markdown note in the vault and rebuild the index.

        Raises:
            DependencyNotReadyError: No embedding model is available.
        """
        embed_model = self._embed_model or self._embeddings.get_embeddings_api()
        if embed_model is None:
            raise DependencyNotReadyError(
                "Embedding model not available. Please set an OpenAI API key."
            )

        settings = self._store.get()
        documents = load_vault_documents(settings.vault_path)
        nodes = MarkdownNodeParser().get_nodes_from_documents(documents)

        logger.info("Indexing %d notes (%d chunks)", len(documents), len(nodes))
        index = VectorStoreIndex(nodes, embed_model=embed_model)
        index.set_index_id(VAULT_INDEX_ID)

        Path(settings.storage_dir).mkdir(parents=True, exist_ok=True)
        index.storage_context.persist(persist_dir=settings.storage_dir)
        self.index = index
        self.build_count += 1
        return index


def load_vault_documents(vault_path: str) -> list:
    """Load all markdown notes under *vault_path*.

    Returns:
        List of cleaned Documents with a ``title`` metadata entry.
    """
    if not os.path.isdir(vault_path):
        logger.warning("Vault directory '%s' not found", vault_path)
        return []

    reader = SimpleDirectoryReader(
        input_dir=vault_path,
        required_exts=[".md"],
        recursive=True,
        filename_as_id=True,
    )
    documents = reader.load_data()
    for doc in documents:
        doc.set_content(_sanitize_text(doc.get_content()))
        doc.metadata["title"] = Path(doc.metadata.get("file_name", doc.doc_id)).stem
    logger.info("Loaded %d notes from %s", len(documents), vault_path)
    return documents
