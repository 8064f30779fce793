"""
Prompts
=======
Chat prompt (system + history + input) and the templates used by the
retrieval chains.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from llama_index.core.llms import ChatMessage, MessageRole

from vault_copilot.config import CopilotSettings, get_system_prompt

CONDENSE_QUESTION_TEMPLATE = (
    "Given the following conversation and a follow up question, rephrase the "
    "follow up question to be a standalone question, in its original language.\n\n"
    "Chat History:\n"
    "{chat_history}\n"
    "Follow Up Input: {question}\n"
    "Standalone question:"
)

QA_TEMPLATE = (
    "Use the following pieces of context to answer the question at the end. "
    "If you don't know the answer, just say that you don't know, don't try "
    "to make up an answer.\n\n"
    "{context}\n\n"
    "Question: {question}\n"
    "Helpful Answer:"
)

VAULT_CONTEXT_TEMPLATE = (
    "Here are notes from the vault that may be relevant to the question:\n\n"
    "{context}\n\n"
    "{question}"
)


@dataclass(frozen=True)
class ChatPrompt:
    """System message (optional), then the history, then the user input."""

    system_prompt: Optional[str] = None

    def format_messages(self, history: List[ChatMessage], user_input: str) -> List[ChatMessage]:
        messages: List[ChatMessage] = []
        if self.system_prompt:
            messages.append(ChatMessage(role=MessageRole.SYSTEM, content=self.system_prompt))
        messages.extend(history)
        messages.append(ChatMessage(role=MessageRole.USER, content=user_input))
        return messages

    @property
    def has_system_message(self) -> bool:
        return bool(self.system_prompt)

    def without_system_message(self) -> ChatPrompt:
        return ChatPrompt(system_prompt=None)


def default_chat_prompt(settings: CopilotSettings) -> ChatPrompt:
    return ChatPrompt(system_prompt=get_system_prompt(settings))


def effective_chat_prompt(settings: CopilotSettings, is_reasoning_model: bool) -> ChatPrompt:
    """Prompt for a model: no system message for reasoning variants."""
    if is_reasoning_model:
        return ChatPrompt(system_prompt=None)
    return default_chat_prompt(settings)


def format_history(history: List[ChatMessage]) -> str:
    """Render chat history as ``role: content`` lines."""
    lines = []
    for message in history:
        role = "Human" if message.role == MessageRole.USER else "Assistant"
        lines.append(f"{role}: {message.content}")
    return "\n".join(lines)
