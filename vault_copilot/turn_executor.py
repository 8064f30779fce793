"""
Turn Executor
=============
Runs one conversational turn against the current chain.

Streaming turns accumulate fragments and report the cumulative text after
each one. Cancellation is cooperative: the token is checked once per
received fragment, before that fragment is appended, so at most one
fragment arrives after a cancel request and it is discarded.
"""

import time
import logging
import threading
from typing import Any, Callable, Iterator, Optional, Tuple

from vault_copilot.chains import format_sources
from vault_copilot.constants import (
    ERROR_PREFIX,
    VAULT_SEARCH_TRIGGER,
    ChainType,
)
from vault_copilot.exceptions import ModelNotReadyError, err2str
from vault_copilot.messages import ChatMessage, ai_message
from vault_copilot.observability import StructuredLogger, get_logger

logger = logging.getLogger("vault_copilot.turn_executor")


class CancellationToken:
    """Thread-safe cancel flag shared between the UI and a running turn."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def fragment_text(fragment: Any) -> str:
    """Text of a stream fragment: a string or an object with a text field."""
    if fragment is None:
        return ""
    if isinstance(fragment, str):
        return fragment
    for attr in ("delta", "content", "text"):
        value = getattr(fragment, attr, None)
        if isinstance(value, str):
            return value
    return ""


def translate_reasoning_error(error: BaseException, model_name: str) -> str:
    """User-facing message for a failed reasoning-model turn."""
    message = err2str(error)
    if "system message" in message.lower():
        return (
            f"{ERROR_PREFIX}{model_name} models do not support system messages. "
            "Please try a different model."
        )
    return f"{ERROR_PREFIX}Error in {model_name} model: {message}"


class TurnExecutor:
    """Executes turns for a ``ChainManager``.

    Args:
        chain_manager: Owner of the active model, chain and memory.
        events: Structured event logger.
    """

    def __init__(self, chain_manager, events: Optional[StructuredLogger] = None):
        self.chain_manager = chain_manager
        self._events = events or get_logger()

    def run(
        self,
        user_message: ChatMessage,
        cancellation: Optional[CancellationToken] = None,
        on_partial: Optional[Callable[[str], None]] = None,
        on_complete: Optional[Callable[[ChatMessage], None]] = None,
        ignore_system_message: bool = False,
    ) -> str:
        """Run one turn and return the final assistant text.

        Args:
            user_message: The user's message.
            cancellation: Token checked between stream fragments.
            on_partial: Called with the cumulative text after each fragment.
            on_complete: Called once with the final assistant message.
            ignore_system_message: Drop the system message for this turn.

        Raises:
            ModelNotReadyError: No usable active model.
            Exception: Provider failures of non-reasoning models, unchanged.
        """
        manager = self.chain_manager
        model_manager = manager.chat_model_manager
        active = model_manager.get_active_model()
        if not model_manager.validate_chat_model(active):
            raise ModelNotReadyError(
                "Chat model is not initialized properly, check your API key "
                "in Copilot setting and make sure you have API access."
            )

        manager.ensure_chain()
        chain = manager.chain
        chain_type = manager.chain_type

        if active.is_reasoning_model or ignore_system_message:
            chain = chain.with_prompt(chain.prompt.without_system_message())

        user_text = user_message.message
        chain_input = user_text
        manager.retrieved_documents = []

        streaming = active.config.streaming and not active.is_reasoning_model
        cancelled = False
        started = time.time()

        try:
            if chain_type == ChainType.COPILOT_PLUS_CHAIN and VAULT_SEARCH_TRIGGER in user_text:
                chain_input = manager.with_vault_context(user_text)
            if streaming:
                full_response, cancelled = self._consume_stream(
                    chain.stream(chain_input), cancellation, on_partial,
                )
            else:
                full_response = chain.invoke(chain_input)
        except Exception as exc:
            if not active.is_reasoning_model:
                raise
            logger.error("Reasoning model %s failed: %s", active.model_key, exc)
            full_response = translate_reasoning_error(exc, active.config.model_name)
            self._complete(full_response, on_complete)
            return full_response

        if chain_type == ChainType.VAULT_QA_CHAIN and full_response:
            full_response += format_sources(manager.retrieved_documents)

        if full_response:
            manager.memory.save_context(user_text, full_response)

        self._events.log_turn(
            model_key=active.model_key,
            chain_type=chain_type.value if chain_type else "",
            streaming=streaming,
            cancelled=cancelled,
            response_chars=len(full_response),
            latency_ms=(time.time() - started) * 1000,
        )
        self._complete(full_response, on_complete)
        return full_response

    @staticmethod
    def _consume_stream(
        stream: Iterator[Any],
        cancellation: Optional[CancellationToken],
        on_partial: Optional[Callable[[str], None]],
    ) -> Tuple[str, bool]:
        full_response = ""
        cancelled = False
        try:
            for fragment in stream:
                if cancellation is not None and cancellation.cancelled:
                    cancelled = True
                    logger.info("Turn cancelled after %d chars", len(full_response))
                    break
                full_response += fragment_text(fragment)
                if on_partial is not None:
                    on_partial(full_response)
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()
        return full_response, cancelled

    @staticmethod
    def _complete(text: str, on_complete: Optional[Callable[[ChatMessage], None]]) -> None:
        if on_complete is not None:
            on_complete(ai_message(text))
