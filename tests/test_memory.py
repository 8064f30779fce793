"""Tests for conversation memory, prompts and conversation messages."""

from llama_index.core.llms import ChatMessage as LLMChatMessage, MessageRole

from vault_copilot.config import CopilotSettings
from vault_copilot.constants import AI_SENDER, DEFAULT_SYSTEM_PROMPT, ERROR_PREFIX, USER_SENDER
from vault_copilot.memory import MemoryManager
from vault_copilot.messages import ChatMessage, ai_message, error_message, format_date_time
from vault_copilot.prompts import (
    ChatPrompt,
    default_chat_prompt,
    effective_chat_prompt,
    format_history,
)


class TestMemoryManager:
    def test_empty(self):
        assert MemoryManager().load_variables() == {"history": []}

    def test_save_context(self):
        memory = MemoryManager()
        memory.save_context("hi", "hello")
        history = memory.load_variables()["history"]
        assert [(m.role, m.content) for m in history] == [
            (MessageRole.USER, "hi"),
            (MessageRole.ASSISTANT, "hello"),
        ]

    def test_window(self):
        memory = MemoryManager(context_turns=2)
        for i in range(5):
            memory.save_context(f"q{i}", f"a{i}")
        history = memory.load_variables()["history"]
        assert [m.content for m in history] == ["q3", "a3", "q4", "a4"]

    def test_older_exchanges_dropped(self):
        memory = MemoryManager(context_turns=2)
        for i in range(5):
            memory.save_context(f"q{i}", f"a{i}")
        assert len(memory) == 4

    def test_window_change_applies_on_next_save(self):
        memory = MemoryManager(context_turns=3)
        for i in range(3):
            memory.save_context(f"q{i}", f"a{i}")
        memory.set_context_turns(1)
        memory.save_context("q3", "a3")
        assert len(memory) == 2
        assert [m.content for m in memory.load_variables()["history"]] == ["q3", "a3"]

    def test_zero_window(self):
        memory = MemoryManager(context_turns=0)
        memory.save_context("q", "a")
        assert memory.load_variables()["history"] == []

    def test_clear(self):
        memory = MemoryManager()
        memory.save_context("q", "a")
        memory.clear()
        assert len(memory) == 0


class TestPrompts:
    def test_format_messages_with_system(self):
        history = [LLMChatMessage(role=MessageRole.USER, content="earlier")]
        messages = ChatPrompt("sys").format_messages(history, "now")
        assert [m.role for m in messages] == [
            MessageRole.SYSTEM, MessageRole.USER, MessageRole.USER,
        ]
        assert messages[-1].content == "now"

    def test_without_system_message(self):
        prompt = ChatPrompt("sys").without_system_message()
        assert prompt.has_system_message is False
        assert prompt.format_messages([], "x")[0].role == MessageRole.USER

    def test_prompt_equality(self):
        assert ChatPrompt("a") == ChatPrompt("a")
        assert ChatPrompt("a") != ChatPrompt("b")

    def test_effective_prompt(self):
        settings = CopilotSettings()
        assert default_chat_prompt(settings).system_prompt == DEFAULT_SYSTEM_PROMPT
        assert effective_chat_prompt(settings, True).system_prompt is None
        assert effective_chat_prompt(settings, False) == default_chat_prompt(settings)

    def test_format_history(self):
        history = [
            LLMChatMessage(role=MessageRole.USER, content="q"),
            LLMChatMessage(role=MessageRole.ASSISTANT, content="a"),
        ]
        assert format_history(history) == "Human: q\nAssistant: a"


class TestMessages:
    def test_ai_message_is_visible_and_timestamped(self):
        message = ai_message("hi")
        assert message.sender == AI_SENDER
        assert message.is_visible
        assert message.timestamp.epoch > 0

    def test_error_message(self):
        message = error_message("boom")
        assert message.message == ERROR_PREFIX + "boom"
        assert message.is_error

    def test_user_message_never_error(self):
        assert not ChatMessage(message=ERROR_PREFIX + "x", sender=USER_SENDER).is_error

    def test_format_date_time(self):
        from datetime import datetime

        formatted = format_date_time(datetime(2024, 3, 5, 14, 7, 9))
        assert formatted.file_name == "20240305_140709"
        assert formatted.display == "2024/03/05 14:07:09"
