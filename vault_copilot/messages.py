"""
Conversation Messages
=====================
Messages as shown in the conversation, as opposed to the LlamaIndex
``ChatMessage`` objects sent to a model.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from vault_copilot.constants import AI_SENDER, ERROR_PREFIX


@dataclass(frozen=True)
class FormattedDateTime:
    file_name: str
    display: str
    epoch: int


def format_date_time(now: Optional[datetime] = None) -> FormattedDateTime:
    now = now or datetime.now()
    return FormattedDateTime(
        file_name=now.strftime("%Y%m%d_%H%M%S"),
        display=now.strftime("%Y/%m/%d %H:%M:%S"),
        epoch=int(now.timestamp() * 1000),
    )


@dataclass
class ChatMessage:
    """One conversation turn."""

    message: str
    sender: str
    is_visible: bool = True
    timestamp: Optional[FormattedDateTime] = field(default=None, compare=False)

    @property
    def is_error(self) -> bool:
        return self.sender == AI_SENDER and self.message.startswith(ERROR_PREFIX)


def ai_message(text: str) -> ChatMessage:
    """Visible, timestamped assistant message."""
    return ChatMessage(
        message=text,
        sender=AI_SENDER,
        is_visible=True,
        timestamp=format_date_time(),
    )


def error_message(text: str) -> ChatMessage:
    return ai_message(f"{ERROR_PREFIX}{text}")
