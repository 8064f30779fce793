"""
Chain Manager
=============
Selects and rebuilds the executable chain for the current chain type.

States: no chain, PLAIN (``llm_chain``), VAULT_QA (``vault_qa``) and PLUS
(``copilot_plus``). VAULT_QA and PLUS share the retrieval setup
(embeddings, vault index, hybrid retriever); VAULT_QA executes a retrieval
chain while PLUS executes a plain chain and retrieves per turn when the
user message contains ``@vault``.

The manager reacts to the settings store: settings and model key changes
re-resolve the model and rebuild the chain, chain type changes rebuild the
chain (refreshing the vault index first when the strategy says so).
Chain rebuilds are serialized with a re-entrant lock.
"""

import time
import logging
from threading import RLock
from typing import Callable, List, Optional

from llama_index.core.schema import NodeWithScore

from vault_copilot.chains import ConversationalRetrievalChain, LLMChain
from vault_copilot.chat_model_manager import ChatModelManager
from vault_copilot.config import CustomModel, SettingsStore, find_custom_model
from vault_copilot.constants import (
    AI_SENDER,
    USER_SENDER,
    VAULT_SEARCH_TRIGGER,
    ChainType,
    VaultVectorStoreStrategy,
)
from vault_copilot.exceptions import (
    ChainCorruptedButRecovered,
    ConfigurationError,
    DependencyNotReadyError,
    err2str,
)
from vault_copilot.memory import MemoryManager
from vault_copilot.messages import ChatMessage
from vault_copilot.observability import StructuredLogger, get_logger
from vault_copilot.prompts import VAULT_CONTEXT_TEMPLATE, ChatPrompt, effective_chat_prompt
from vault_copilot.retrieval import create_hybrid_retriever
from vault_copilot.turn_executor import CancellationToken, TurnExecutor
from vault_copilot.vector_store import EmbeddingsManager, VaultVectorStoreManager

logger = logging.getLogger("vault_copilot.chain_manager")

_RETRIEVAL_CHAIN_TYPES = (ChainType.VAULT_QA_CHAIN, ChainType.COPILOT_PLUS_CHAIN)


class ChainManager:
    """Owner of the current chain and its collaborators.

    Args:
        store: Settings store.
        chat_model_manager: Active model owner. Created from *store* if omitted.
        memory: Conversation memory.
        embeddings: Embeddings provider for the retrieval modes.
        vector_store: Vault index manager for the retrieval modes.
        retriever_factory: ``(index, nodes, max_k) -> retriever``.
        events: Structured event logger.
    """

    def __init__(
        self,
        store: SettingsStore,
        chat_model_manager: Optional[ChatModelManager] = None,
        memory: Optional[MemoryManager] = None,
        embeddings: Optional[EmbeddingsManager] = None,
        vector_store: Optional[VaultVectorStoreManager] = None,
        retriever_factory: Callable = create_hybrid_retriever,
        events: Optional[StructuredLogger] = None,
    ):
        settings = store.get()
        self.store = store
        self._events = events or get_logger()
        self.chat_model_manager = chat_model_manager or ChatModelManager(store, events=self._events)
        self.memory = memory or MemoryManager(settings.context_turns)
        self.embeddings = embeddings or EmbeddingsManager(store)
        self.vector_store = vector_store or VaultVectorStoreManager(store, self.embeddings)
        self._retriever_factory = retriever_factory

        self.chain = None
        self.chain_type: Optional[ChainType] = None
        self.prompt: ChatPrompt = effective_chat_prompt(settings, False)
        self.retriever = None
        self.retrieved_documents: List[NodeWithScore] = []
        self._lock = RLock()

        self._unsubscribers = [
            store.subscribe(self._on_settings_change),
            store.subscribe_model_key(self._on_model_key_change),
            store.subscribe_chain_type(self._on_chain_type_change),
        ]

    # ---- model ---------------------------------------------------------

    def resolve_model(self) -> CustomModel:
        """Selected model, falling back to the first built-in chat model.

        Raises:
            ConfigurationError: No selectable model at all.
        """
        settings = self.store.get()
        model_key = self.store.get_model_key()
        model = find_custom_model(model_key, settings.active_models)
        if model is not None:
            return model

        fallback = next(
            (m for m in settings.active_models if m.is_built_in and not m.is_embedding_model),
            None,
        )
        if fallback is None:
            raise ConfigurationError(f"No model found for: {model_key}")
        logger.warning(
            "Model %s not found, resetting to %s", model_key, fallback.model_key,
        )
        self.store.set_model_key(fallback.model_key, notify=False)
        return fallback

    def create_chain_with_new_model(self) -> None:
        """Activate the selected model (if it changed) and rebuild the chain.

        Raises:
            CopilotError: Activation or chain construction failed.
        """
        with self._lock:
            model = self.resolve_model()
            if self.chat_model_manager.is_current(model):
                logger.debug("Model %s unchanged, skipping activation", model.model_key)
                active = self.chat_model_manager.get_chat_model()
            else:
                active = self.chat_model_manager.activate(model)

            prompt = effective_chat_prompt(self.store.get(), active.is_reasoning_model)
            self.set_chain(self.store.get_chain_type(), prompt=prompt)

    def initialize(self) -> None:
        """First chain build, honoring the ON_STARTUP index strategy.

        The startup refresh is skipped when building the chain already
        indexed the vault (no persisted index existed).
        """
        builds_before = self.vector_store.build_count
        self.create_chain_with_new_model()
        settings = self.store.get()
        if (
            settings.index_vault_to_vector_store == VaultVectorStoreStrategy.ON_STARTUP
            and self.chain_type in _RETRIEVAL_CHAIN_TYPES
            and self.vector_store.build_count == builds_before
        ):
            self.set_chain(self.chain_type, refresh_index=True)

    # ---- chain ---------------------------------------------------------

    @staticmethod
    def validate_chain_type(chain_type) -> ChainType:
        try:
            return ChainType(chain_type)
        except ValueError:
            raise ConfigurationError(f"Unknown chain type: {chain_type}") from None

    def set_chain(
        self,
        chain_type: ChainType,
        prompt: Optional[ChatPrompt] = None,
        refresh_index: bool = False,
    ) -> None:
        """Build the chain for *chain_type* around the active model.

        Args:
            chain_type: Target chain type.
            prompt: Prompt to use from now on. Keeps the current one if None.
            refresh_index: Re-index the vault before building a retrieval
                chain.

        Raises:
            ModelNotReadyError: No active model.
            DependencyNotReadyError: Embeddings or vault index unavailable.
            ConfigurationError: Unknown chain type.
        """
        chain_type = self.validate_chain_type(chain_type)
        with self._lock:
            started = time.time()
            active = self.chat_model_manager.get_chat_model()
            if prompt is not None:
                self.prompt = prompt

            if chain_type == ChainType.LLM_CHAIN:
                chain = LLMChain(active, self.memory, self.prompt)
            else:
                self.initialize_qa_chain(refresh_index)
                if chain_type == ChainType.VAULT_QA_CHAIN:
                    chain = ConversationalRetrievalChain(
                        active,
                        self.memory,
                        self.retriever,
                        prompt=self.prompt,
                        on_documents=self._capture_documents,
                    )
                else:
                    chain = LLMChain(active, self.memory, self.prompt)

            self.chain = chain
            self.chain_type = chain_type
            self.store.set_chain_type(chain_type, notify=False)

            self._events.log_chain_build(
                chain_type.value, active.model_key, (time.time() - started) * 1000,
            )
            logger.info("Chain set to %s with %s", chain_type.value, active.model_key)

    def initialize_qa_chain(self, refresh_index: bool = False) -> None:
        """Prepare embeddings, the vault index and the hybrid retriever.

        Raises:
            DependencyNotReadyError: No embedding model, no index, or the
                index or retriever could not be built.
        """
        embed_model = self.embeddings.get_embeddings_api()
        if embed_model is None:
            raise DependencyNotReadyError(
                "Embedding model not available. Please check your embedding "
                "provider API key in settings."
            )

        try:
            index = self.vector_store.get_or_initialize_db(embed_model)
            if refresh_index:
                logger.info("Refreshing vault index before building chain")
                index = self.vector_store.index_vault_to_vector_store()
            if index is None:
                raise DependencyNotReadyError("Vault index is not ready.")

            self.retriever = self._retriever_factory(
                index, self.vector_store.nodes, self.store.get().max_source_chunks,
            )
        except DependencyNotReadyError:
            raise
        except Exception as e:
            raise DependencyNotReadyError(
                f"Vault index could not be prepared: {err2str(e)}. "
                "Check your embedding API key and re-index the vault."
            ) from e

    def ensure_chain(self) -> bool:
        """Rebuild a missing or unknown chain. Returns True if it was rebuilt."""
        if self.chain is not None and isinstance(self.chain_type, ChainType):
            return False
        chain_type = self.store.get_chain_type()
        self.set_chain(chain_type)
        self._events.log_error(
            ChainCorruptedButRecovered(f"Chain was missing, rebuilt as {chain_type.value}"),
            {"model_key": self.store.get_model_key()},
        )
        return True

    # ---- retrieval -----------------------------------------------------

    def _capture_documents(self, documents: List[NodeWithScore]) -> None:
        self.retrieved_documents = list(documents)

    def get_retrieved_documents(self) -> List[NodeWithScore]:
        return self.retrieved_documents

    def with_vault_context(self, user_text: str) -> str:
        """Prepend vault chunks relevant to *user_text* (PLUS mode)."""
        if self.retriever is None:
            raise DependencyNotReadyError("Vault retriever is not initialized.")
        query = user_text.replace(VAULT_SEARCH_TRIGGER, "").strip()
        documents = self.retriever.retrieve(query)
        self._capture_documents(documents)
        context = "\n\n".join(doc.node.get_content() for doc in documents)
        return VAULT_CONTEXT_TEMPLATE.format(context=context, question=query)

    # ---- memory --------------------------------------------------------

    def update_memory_with_loaded_messages(self, messages: List[ChatMessage]) -> None:
        """Reset memory and replay (user, assistant) pairs from a saved chat."""
        self.memory.clear()
        for i in range(0, len(messages) - 1, 2):
            user, ai = messages[i], messages[i + 1]
            if user.sender == USER_SENDER and ai.sender == AI_SENDER:
                self.memory.save_context(user.message, ai.message)

    # ---- turns ---------------------------------------------------------

    def run_chain(
        self,
        user_message: ChatMessage,
        cancellation: Optional[CancellationToken] = None,
        on_partial: Optional[Callable[[str], None]] = None,
        on_complete: Optional[Callable[[ChatMessage], None]] = None,
        ignore_system_message: bool = False,
    ) -> str:
        return TurnExecutor(self, self._events).run(
            user_message,
            cancellation=cancellation,
            on_partial=on_partial,
            on_complete=on_complete,
            ignore_system_message=ignore_system_message,
        )

    # ---- subscriptions -------------------------------------------------

    def _on_settings_change(self) -> None:
        self.memory.set_context_turns(self.store.get().context_turns)
        self._rebuild_safely(self.create_chain_with_new_model)

    def _on_model_key_change(self) -> None:
        self._rebuild_safely(self.create_chain_with_new_model)

    def _on_chain_type_change(self) -> None:
        chain_type = self.store.get_chain_type()
        refresh = (
            self.store.get().index_vault_to_vector_store == VaultVectorStoreStrategy.ON_MODE_SWITCH
            and chain_type in _RETRIEVAL_CHAIN_TYPES
        )
        self._rebuild_safely(lambda: self.set_chain(chain_type, refresh_index=refresh))

    def _rebuild_safely(self, rebuild: Callable[[], None]) -> None:
        try:
            rebuild()
        except Exception as e:
            logger.error("Chain rebuild failed: %s", e)
            self._events.log_error(e, {"model_key": self.store.get_model_key()})
            if self.chain_type is not None:
                self.store.set_chain_type(self.chain_type, notify=False)

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self.chat_model_manager.close()
