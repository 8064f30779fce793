"""
Chains
======
Executable pipelines binding the active model, conversation memory and a
prompt, optionally with a retriever.

``LLMChain``
    System prompt + history + user input straight to the model. Used for
    plain chat and as the executable target of the PLUS mode.

``ConversationalRetrievalChain``
    Condenses the follow-up question with the history, retrieves vault
    chunks for it and answers from those chunks. Retrieved documents are
    reported through ``on_documents``.

Chains never write to memory; the turn executor saves each completed turn.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, List, Optional

from llama_index.core.llms import ChatMessage, MessageRole
from llama_index.core.schema import NodeWithScore

from vault_copilot.constants import ChainType
from vault_copilot.prompts import (
    CONDENSE_QUESTION_TEMPLATE,
    QA_TEMPLATE,
    ChatPrompt,
    format_history,
)

logger = logging.getLogger("vault_copilot.chains")


class LLMChain:
    chain_type = ChainType.LLM_CHAIN

    def __init__(self, model, memory, prompt: ChatPrompt):
        self.model = model
        self.memory = memory
        self.prompt = prompt

    def with_prompt(self, prompt: ChatPrompt) -> LLMChain:
        """Copy of this chain using *prompt*; this chain is left unchanged."""
        return LLMChain(self.model, self.memory, prompt)

    def build_messages(self, user_input: str) -> List[ChatMessage]:
        history = self.memory.load_variables()["history"]
        return self.prompt.format_messages(history, user_input)

    def invoke(self, user_input: str) -> str:
        return self.model.invoke(self.build_messages(user_input))

    def stream(self, user_input: str) -> Iterator[Any]:
        return self.model.stream(self.build_messages(user_input))


class ConversationalRetrievalChain:
    chain_type = ChainType.VAULT_QA_CHAIN

    def __init__(
        self,
        model,
        memory,
        retriever,
        prompt: Optional[ChatPrompt] = None,
        on_documents: Optional[Callable[[List[NodeWithScore]], None]] = None,
    ):
        self.model = model
        self.memory = memory
        self.retriever = retriever
        self.prompt = prompt or ChatPrompt()
        self.on_documents = on_documents

    def with_prompt(self, prompt: ChatPrompt) -> ConversationalRetrievalChain:
        return ConversationalRetrievalChain(
            self.model, self.memory, self.retriever, prompt, self.on_documents,
        )

    def standalone_question(self, question: str) -> str:
        """Rewrite a follow-up into a self-contained question."""
        history = self.memory.load_variables()["history"]
        if not history:
            return question
        condensed = self.model.invoke([
            ChatMessage(
                role=MessageRole.USER,
                content=CONDENSE_QUESTION_TEMPLATE.format(
                    chat_history=format_history(history), question=question,
                ),
            )
        ])
        return condensed.strip() or question

    def build_messages(self, question: str) -> List[ChatMessage]:
        standalone = self.standalone_question(question)
        documents = self.retriever.retrieve(standalone)
        if self.on_documents is not None:
            self.on_documents(documents)
        logger.debug("Answering from %d retrieved chunks", len(documents))

        context = "\n\n".join(doc.node.get_content() for doc in documents)
        return self.prompt.format_messages(
            [], QA_TEMPLATE.format(context=context, question=standalone),
        )

    def invoke(self, question: str) -> str:
        return self.model.invoke(self.build_messages(question))

    def stream(self, question: str) -> Iterator[Any]:
        return self.model.stream(self.build_messages(question))


def document_title(document: NodeWithScore) -> str:
    metadata = document.node.metadata or {}
    title = metadata.get("title")
    if title:
        return title
    file_name = metadata.get("file_name", "")
    return file_name.rsplit(".", 1)[0] if file_name else document.node.node_id


def format_sources(documents: List[NodeWithScore]) -> str:
    """Markdown "Sources" section listing each note title once."""
    titles = []
    for document in documents:
        title = document_title(document)
        if title not in titles:
            titles.append(title)
    if not titles:
        return ""
    return "\n\n#### Sources:\n\n" + "\n".join(f"- [[{title}]]" for title in titles)
