"""
AI Response
===========
Entry point used by the chat UI to run a turn. Every failure ends up as a
visible assistant message starting with ``ERROR_PREFIX`` instead of an
exception escaping to the host.
"""

import logging
from typing import Callable, Optional

from vault_copilot.exceptions import err2str
from vault_copilot.messages import ChatMessage, error_message
from vault_copilot.observability import get_logger
from vault_copilot.turn_executor import CancellationToken

logger = logging.getLogger("vault_copilot.streaming")


def get_ai_response(
    user_message: ChatMessage,
    chain_manager,
    add_message: Callable[[ChatMessage], None],
    update_current_ai_message: Optional[Callable[[str], None]] = None,
    update_should_abort: Optional[Callable[[CancellationToken], None]] = None,
    ignore_system_message: bool = False,
) -> Optional[str]:
    """Run one turn for *user_message*.

    Args:
        user_message: The user's message.
        chain_manager: ``ChainManager`` holding the active chain.
        add_message: Receives the final assistant (or error) message.
        update_current_ai_message: Receives the cumulative streamed text.
        update_should_abort: Receives the turn's cancellation token.
        ignore_system_message: Drop the system message for this turn.

    Returns:
        The final assistant text, or None when the turn failed.
    """
    token = CancellationToken()
    if update_should_abort is not None:
        update_should_abort(token)

    try:
        return chain_manager.run_chain(
            user_message,
            cancellation=token,
            on_partial=update_current_ai_message,
            on_complete=add_message,
            ignore_system_message=ignore_system_message,
        )
    except Exception as e:
        logger.error("Model request failed: %s", e)
        get_logger().log_error(e, {"message_chars": len(user_message.message)})
        add_message(error_message(f"Model request failed: {err2str(e)}"))
        return None
