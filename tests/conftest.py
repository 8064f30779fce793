"""Shared test fixtures for the Vault Copilot test suite.

Provides fake LLM clients, a fake provider adapter, settings, stores and
retrieval collaborators.  Unit tests should never need API keys or network.
"""

import pytest
from types import SimpleNamespace
from typing import List, Optional

from llama_index.core.schema import NodeWithScore, TextNode

from vault_copilot.config import SettingsStore, build_settings
from vault_copilot.constants import ChatModelProviders
from vault_copilot.memory import MemoryManager
from vault_copilot.observability import StructuredLogger
from vault_copilot.providers import OpenAIAdapter, ProviderAdapter


# ---------------------------------------------------------------------------
# Fake LLM
# ---------------------------------------------------------------------------

class FakeLLM:
    """A fake LlamaIndex chat LLM.

    Usage in tests::

        llm = FakeLLM("Hello world")
        resp = llm.chat([...])
        assert resp.message.content == "Hello world"
    """

    def __init__(
        self,
        response_text: str = "OK",
        fragments: Optional[List[str]] = None,
        error: Optional[Exception] = None,
    ):
        self.response_text = response_text
        self.fragments = fragments if fragments is not None else [response_text]
        self.error = error
        self.calls: List[list] = []
        self.fragments_yielded = 0

    def chat(self, messages, **kwargs):
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(message=SimpleNamespace(content=self.response_text))

    def stream_chat(self, messages, **kwargs):
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error

        def gen():
            for fragment in self.fragments:
                self.fragments_yielded += 1
                yield SimpleNamespace(delta=fragment)

        return gen()


# ---------------------------------------------------------------------------
# Fake provider adapter
# ---------------------------------------------------------------------------

class FakeAdapter(ProviderAdapter):
    """Provider adapter that hands out ``FakeLLM`` clients.

    Attributes:
        fail_without_cors / fail_with_cors: Make ping calls on that
            transport raise.
        fail_construction: Make ``create_client`` raise outside pings.
        configs: Every ``ModelConfig`` passed to ``create_client``.
    """

    provider = "fake"
    vendor = "Fake"

    def __init__(self, llm: Optional[FakeLLM] = None):
        self.llm = llm or FakeLLM()
        self.fail_without_cors = False
        self.fail_with_cors = False
        self.fail_construction = False
        self.configs = []

    def create_client(self, config):
        self.configs.append(config)
        is_ping = config.timeout is not None
        if is_ping and not config.enable_cors and self.fail_without_cors:
            return FakeLLM(error=RuntimeError("401 invalid api key"))
        if is_ping and config.enable_cors and self.fail_with_cors:
            return FakeLLM(error=RuntimeError("Failed to fetch"))
        if not is_ping and self.fail_construction:
            raise ValueError("bad client arguments")
        return self.llm


# ---------------------------------------------------------------------------
# Real adapter over a recording client class
# ---------------------------------------------------------------------------

class RecordingClient:
    """Stands in for a LlamaIndex LLM class; keeps its constructor kwargs."""

    def __init__(self, kwargs: dict, reject_direct: bool = False):
        self.kwargs = kwargs
        self.reject_direct = reject_direct

    def chat(self, messages, **kwargs):
        if self.reject_direct and "http_client" not in self.kwargs:
            raise RuntimeError("Failed to fetch")
        return SimpleNamespace(message=SimpleNamespace(content="hello"))


class TransportAdapter(OpenAIAdapter):
    """OpenAI adapter whose client class records every construction.

    Args:
        reject_direct: Clients built without the CORS-safe transport fail
            every chat call.
        fail_construction: The client class raises ``TypeError``.
    """

    def __init__(self, reject_direct: bool = False, fail_construction: bool = False):
        self.reject_direct = reject_direct
        self.fail_construction = fail_construction
        self.clients: List[RecordingClient] = []
        self.rejected_kwargs: List[dict] = []

    def load_client_class(self):
        def build(**kwargs):
            if self.fail_construction:
                self.rejected_kwargs.append(kwargs)
                raise TypeError("unexpected keyword argument")
            client = RecordingClient(kwargs, self.reject_direct)
            self.clients.append(client)
            return client

        return build

    def transports(self) -> list:
        return [c.kwargs["http_client"] for c in self.clients if "http_client" in c.kwargs]


# ---------------------------------------------------------------------------
# Fake retrieval collaborators
# ---------------------------------------------------------------------------

def make_node(text: str, title: str, score: float = 0.5) -> NodeWithScore:
    return NodeWithScore(node=TextNode(text=text, metadata={"title": title}), score=score)


class FakeEmbeddings:
    def __init__(self, available: bool = True):
        self.available = available

    def get_embeddings_api(self):
        return object() if self.available else None


class FakeVectorStore:
    """Vault index stand-in.

    Attributes:
        persisted: Whether an index exists on disk. Without one, the first
            ``get_or_initialize_db`` call builds it.
        error: Raised by ``index_vault_to_vector_store`` when set.
    """

    def __init__(self, persisted: bool = True):
        self.index = object()
        self.nodes = []
        self.persisted = persisted
        self.error: Optional[Exception] = None
        self.refresh_count = 0
        self.build_count = 0

    def get_or_initialize_db(self, embed_model):
        if not self.persisted and self.build_count == 0:
            return self.index_vault_to_vector_store()
        return self.index

    def index_vault_to_vector_store(self):
        self.refresh_count += 1
        if self.error is not None:
            raise self.error
        self.build_count += 1
        return self.index


class FakeRetriever:
    def __init__(self, documents: List[NodeWithScore]):
        self.documents = documents
        self.queries: List[str] = []
        self.error: Optional[Exception] = None

    def retrieve(self, query: str) -> List[NodeWithScore]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.documents)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    """Return settings with an OpenAI key only (no env lookups needed)."""
    return build_settings({
        "openai_api_key": "sk-test-openai-1234",
        "openai_org_id": None,
        "anthropic_api_key": None,
        "cohere_api_key": None,
        "google_api_key": None,
        "groq_api_key": None,
        "openrouter_api_key": None,
        "azure_openai_api_key": None,
    })


@pytest.fixture
def store(settings):
    return SettingsStore(settings)


@pytest.fixture
def fake_llm():
    return FakeLLM("Hello from the fake model", fragments=["Hello ", "from ", "fake"])


@pytest.fixture
def fake_adapter(fake_llm):
    return FakeAdapter(fake_llm)


@pytest.fixture
def adapter_lookup(fake_adapter):
    """Resolve every known provider tag to the fake adapter."""
    known = ChatModelProviders.values()
    return lambda provider: fake_adapter if provider in known else None


@pytest.fixture
def events():
    return StructuredLogger("vault_copilot.test_events")


@pytest.fixture
def model_manager(store, adapter_lookup, events):
    from vault_copilot.chat_model_manager import ChatModelManager

    manager = ChatModelManager(store, adapter_lookup=adapter_lookup, events=events)
    yield manager
    manager.close()


@pytest.fixture
def documents():
    return [
        make_node("Bananas are yellow.", "Fruit", score=0.9),
        make_node("Carrots are orange.", "Vegetables", score=0.6),
    ]


@pytest.fixture
def retriever(documents):
    return FakeRetriever(documents)


@pytest.fixture
def vector_store():
    return FakeVectorStore()


@pytest.fixture
def chain_manager(store, model_manager, retriever, vector_store, events):
    from vault_copilot.chain_manager import ChainManager

    manager = ChainManager(
        store,
        chat_model_manager=model_manager,
        memory=MemoryManager(context_turns=15),
        embeddings=FakeEmbeddings(),
        vector_store=vector_store,
        retriever_factory=lambda index, nodes, max_k: retriever,
        events=events,
    )
    yield manager
    manager.close()
