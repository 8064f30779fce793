"""
Conversation Memory
===================
Windowed chat history backed by a LlamaIndex ``ChatMemoryBuffer``.

Only the last ``context_turns`` exchanges (user + assistant pairs) are
kept; older messages are dropped when a new exchange is saved.
"""

import logging
from typing import Dict, List

from llama_index.core.llms import ChatMessage, MessageRole
from llama_index.core.memory import ChatMemoryBuffer

logger = logging.getLogger("vault_copilot.memory")

# Upper bound only; the turn window is what limits chain input
_TOKEN_LIMIT = 100_000


class MemoryManager:
    """Conversation memory used by every chain.

    Args:
        context_turns: Number of exchanges returned by ``load_variables``.
    """

    def __init__(self, context_turns: int = 15):
        self.context_turns = context_turns
        self._buffer = ChatMemoryBuffer.from_defaults(token_limit=_TOKEN_LIMIT)

    def load_variables(self) -> Dict[str, List[ChatMessage]]:
        """Return ``{"history": [...]}`` with the most recent window."""
        messages = self._buffer.get_all()
        window = self.context_turns * 2
        if window <= 0:
            return {"history": []}
        return {"history": messages[-window:]}

    def save_context(self, user_input: str, output: str) -> None:
        self._buffer.put(ChatMessage(role=MessageRole.USER, content=user_input))
        self._buffer.put(ChatMessage(role=MessageRole.ASSISTANT, content=output))
        self._trim()

    def _trim(self) -> None:
        window = self.context_turns * 2
        if window <= 0:
            self._buffer.reset()
            return
        messages = self._buffer.get_all()
        if len(messages) > window:
            self._buffer.set(messages[-window:])

    def clear(self) -> None:
        self._buffer.reset()
        logger.debug("Conversation memory cleared")

    def set_context_turns(self, context_turns: int) -> None:
        self.context_turns = context_turns

    def __len__(self) -> int:
        return len(self._buffer.get_all())
