# services/exceptions.py
"""
Error taxonomy for the agent hub.

Operations called directly by a caller raise these; inbound event handlers
catch them and surface them as ``error`` events instead.
"""

from typing import Any, Optional


class JibbyError(Exception):
    """Base error for the hub"""

    code = "JIBBY_ERROR"
    # Set when the failure was already reported as an `error` event
    correlation_id: Optional[str] = None

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        data = {"code": self.code, "message": self.message}
        if self.details is not None:
            data["details"] = self.details
        return data


class AdapterInitError(JibbyError):
    """Missing or invalid provider credentials"""

    code = "ADAPTER_INIT"


class NotConnectedError(JibbyError):
    """Adapter used before connect()"""

    code = "NOT_CONNECTED"


class UnsupportedChannelError(JibbyError):
    """No adapter registered for the requested channel"""

    code = "UNSUPPORTED_CHANNEL"

    def __init__(self, channel: Any):
        super().__init__(f"Unsupported channel: {channel}")
        self.channel = channel


class ConversationNotFoundError(JibbyError):
    """History requested for a conversation that was never created"""

    code = "CONVERSATION_NOT_FOUND"

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class ProviderError(JibbyError):
    """Failure surfaced by an underlying provider SDK or API"""

    code = "PROVIDER_ERROR"

    def __init__(self, provider: str, message: str, details: Optional[Any] = None):
        super().__init__(f"{provider}: {message}", details)
        self.provider = provider


class ConfigurationError(JibbyError):
    """Configuration names something the hub cannot build"""

    code = "CONFIGURATION_ERROR"
