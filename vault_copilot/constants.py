"""
Constants
=========
Provider tags, chain types, built-in models and prompt text shared across
the package.
"""

from enum import Enum


class ChatModelProviders(str, Enum):
    """Provider tags accepted in a model descriptor."""

    OPENAI = "openai"
    AZURE_OPENAI = "azure openai"
    ANTHROPIC = "anthropic"
    COHEREAI = "cohereai"
    GOOGLE = "google"
    OPENROUTERAI = "openrouterai"
    GROQ = "groq"
    OLLAMA = "ollama"
    LM_STUDIO = "lm-studio"
    OPENAI_FORMAT = "3rd party (openai-format)"

    @classmethod
    def values(cls) -> set:
        return {p.value for p in cls}


class ChainType(str, Enum):
    """Conversation strategies the chain manager can build."""

    LLM_CHAIN = "llm_chain"
    VAULT_QA_CHAIN = "vault_qa"
    COPILOT_PLUS_CHAIN = "copilot_plus"


class VaultVectorStoreStrategy(str, Enum):
    NEVER = "NEVER"
    ON_STARTUP = "ON STARTUP"
    ON_MODE_SWITCH = "ON MODE SWITCH"


AI_SENDER = "ai"
USER_SENDER = "user"

# Prefix for every system-generated error turn shown in the conversation
ERROR_PREFIX = "Error: "

DEFAULT_SYSTEM_PROMPT = (
    "You are Obsidian Copilot, a helpful assistant that integrates AI to "
    "Obsidian note-taking.\n"
    "  1. Never mention that you do not have access to something. Always rely "
    "on the user provided context.\n"
    "  2. Always answer to the best of your knowledge. If you are unsure about "
    "something, say so and ask the user to provide more context.\n"
    "  3. If the user mentions \"note\", it most likely means an Obsidian note "
    "in the vault, not the generic meaning of a note.\n"
    "  4. If the user mentions \"@vault\", it means the user wants you to search "
    "the Obsidian vault for information relevant to the query.\n"
    "  5. Always use $'s instead of \\[ etc. for LaTeX equations.\n"
    "  6. When showing note titles, use [[title]] format and do not wrap them "
    "in ` `.\n"
    "  7. When showing **Obsidian internal** image links, use ![[link]] format "
    "and do not wrap them in ` `.\n"
    "  8. Always respond in the language of the user's query."
)

VAULT_SEARCH_TRIGGER = "@vault"

# Hybrid retriever defaults
MIN_SIMILARITY_SCORE = 0.01

# Ping protocol
PING_MAX_TOKENS = 10
PING_TIMEOUT_SECONDS = 3.0
PING_MESSAGE = "hello"

# Ceilings carried by every normalized request configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_CONCURRENCY = 3

# Reasoning-only variants (no system messages, streaming or temperature)
REASONING_MODEL_PREFIXES = ("o1-preview", "o1-mini")
REASONING_MODEL_TEMPERATURE = 1.0

# Parameters a reasoning-only variant is known to accept; everything else
# is dropped from its provider block.
REASONING_SUPPORTED_PARAMS = frozenset({
    "api_key",
    "api_base",
    "api_version",
    "azure_endpoint",
    "engine",
    "default_headers",
    "http_client",
})

LOCAL_PROVIDER_PLACEHOLDER_KEY = "default-key"

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OLLAMA_BASE_URL = "http://localhost:11434"
LM_STUDIO_BASE_URL = "http://localhost:1234/v1"

BUILTIN_CHAT_MODELS = [
    {
        "name": "gpt-4o",
        "provider": ChatModelProviders.OPENAI.value,
        "enabled": True,
        "is_built_in": True,
        "core": True,
    },
    {
        "name": "gpt-4o-mini",
        "provider": ChatModelProviders.OPENAI.value,
        "enabled": True,
        "is_built_in": True,
        "core": True,
    },
    {
        "name": "claude-3-5-sonnet-latest",
        "provider": ChatModelProviders.ANTHROPIC.value,
        "enabled": True,
        "is_built_in": True,
        "core": True,
    },
    {
        "name": "claude-3-5-haiku-latest",
        "provider": ChatModelProviders.ANTHROPIC.value,
        "enabled": True,
        "is_built_in": True,
    },
    {
        "name": "command-r",
        "provider": ChatModelProviders.COHEREAI.value,
        "enabled": True,
        "is_built_in": True,
    },
    {
        "name": "command-r-plus",
        "provider": ChatModelProviders.COHEREAI.value,
        "enabled": True,
        "is_built_in": True,
    },
    {
        "name": "gemini-1.5-pro",
        "provider": ChatModelProviders.GOOGLE.value,
        "enabled": True,
        "is_built_in": True,
    },
    {
        "name": "gemini-1.5-flash",
        "provider": ChatModelProviders.GOOGLE.value,
        "enabled": True,
        "is_built_in": True,
    },
    {
        "name": "azure-openai",
        "provider": ChatModelProviders.AZURE_OPENAI.value,
        "enabled": True,
        "is_built_in": True,
    },
]

DEFAULT_EMBEDDING_MODEL_KEY = "text-embedding-3-small|openai"
