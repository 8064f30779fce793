"""
Exceptions
==========
Error taxonomy for model activation, chain selection and turn execution.

Activation-time errors (configuration, credentials, construction, ping)
abort the switch and leave the previously active model in place.
Turn-time errors are surfaced to the conversation by the caller.
"""

from typing import Optional


class CopilotError(Exception):
    """Base class for all errors raised by vault_copilot."""


class ConfigurationError(CopilotError):
    """Settings are missing or inconsistent. Not retryable."""


class UnknownProviderError(ConfigurationError):
    """The provider tag of a model descriptor is not recognized."""


class CredentialError(CopilotError):
    """No usable API key for the selected model."""


class ConstructionError(CopilotError):
    """The provider client could not be created."""


class DependencyNotReadyError(CopilotError):
    """The embeddings or vector store backend is not ready."""


class ModelNotReadyError(CopilotError):
    """No active model is available for the turn."""


class ProviderInvocationError(CopilotError):
    """A call to the provider failed at runtime."""


class PingError(ProviderInvocationError):
    """Both ping attempts (without and with CORS) failed."""

    def __init__(
        self,
        without_cors_error: str,
        with_cors_error: str,
        model_key: Optional[str] = None,
    ):
        self.without_cors_error = without_cors_error
        self.with_cors_error = with_cors_error
        self.model_key = model_key
        super().__init__(
            "\nwithout CORS Error: " + without_cors_error
            + "\nwith CORS Error: " + with_cors_error
        )


class ChainCorruptedButRecovered(CopilotError):
    """Internal marker: the chain was missing and has been rebuilt."""


def err2str(error: BaseException) -> str:
    """Describe an exception including its chained cause, if any."""
    message = str(error) or type(error).__name__
    cause = error.__cause__
    if cause is not None and str(cause) and str(cause) not in message:
        message += f" Cause: {cause}"
    return message
