# services/__init__.py
"""
Services package for the Jibby agent hub
Channel adapters, the AI responder and its LLM providers
"""

from .exceptions import (
    JibbyError,
    AdapterInitError,
    NotConnectedError,
    UnsupportedChannelError,
    ConversationNotFoundError,
    ProviderError,
    ConfigurationError,
)

__all__ = [
    "JibbyError",
    "AdapterInitError",
    "NotConnectedError",
    "UnsupportedChannelError",
    "ConversationNotFoundError",
    "ProviderError",
    "ConfigurationError",
]
