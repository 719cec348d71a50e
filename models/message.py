# ===== models/message.py =====
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from services.exceptions import UnsupportedChannelError
from utils.helpers import generate_id, parse_datetime, to_iso, utcnow

AI_SENDER_ID = "jibby-ai"


class ChannelType(str, Enum):
    WHATSAPP = "whatsapp"
    VOICE = "voice"
    SOCIAL = "social"
    EMAIL = "email"
    SMS = "sms"

    @classmethod
    def parse(cls, value: Any) -> "ChannelType":
        """Closed-enum lookup; anything else is an unsupported channel"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise UnsupportedChannelError(value) from None


class MessageStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


# Accepted spellings for incoming JSON (camelCase from the dashboard, snake_case internally)
_FIELD_ALIASES = {
    "conversationId": "conversation_id",
}


@dataclass(frozen=True)
class Message:
    """A single message on any channel; status changes produce new records"""
    conversation_id: str
    sender: str
    recipient: str
    content: str
    channel: ChannelType
    id: str = field(default_factory=lambda: generate_id("msg"))
    timestamp: datetime = field(default_factory=utcnow)
    status: MessageStatus = MessageStatus.SENT
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Message":
        values = {_FIELD_ALIASES.get(key, key): value for key, value in data.items()}

        # Channel is checked first so an unknown channel is never a plain validation error
        channel = ChannelType.parse(values.get("channel"))

        missing = [name for name in ("conversation_id", "recipient", "content") if not values.get(name)]
        if missing:
            raise ValueError(f"Message is missing required fields: {', '.join(missing)}")

        status = values.get("status") or MessageStatus.SENT
        return cls(
            id=values.get("id") or generate_id("msg"),
            conversation_id=str(values["conversation_id"]),
            sender=str(values.get("sender") or ""),
            recipient=str(values["recipient"]),
            content=str(values["content"]),
            channel=channel,
            timestamp=parse_datetime(values.get("timestamp")),
            status=MessageStatus(status),
            metadata=dict(values.get("metadata") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversationId": self.conversation_id,
            "sender": self.sender,
            "recipient": self.recipient,
            "content": self.content,
            "channel": self.channel.value,
            "timestamp": to_iso(self.timestamp),
            "status": self.status.value,
            "metadata": _json_safe(self.metadata),
        }

    def with_status(self, status: MessageStatus) -> "Message":
        return replace(self, status=status)

    def restamp(self, message_id: str, status: MessageStatus = MessageStatus.SENT) -> "Message":
        """Copy as confirmed by a provider: provider id, new status, fresh timestamp"""
        return replace(self, id=message_id, status=status, timestamp=utcnow())


@dataclass
class Conversation:
    """Ordered, append-only message log"""
    id: str
    messages: List[Message] = field(default_factory=list)
    participants: Set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ConversationHistory:
    id: str
    messages: List[Message]
    metadata: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "messages": [message.to_dict() for message in self.messages],
            "metadata": _json_safe(self.metadata),
        }


@dataclass
class ConversationContext:
    """AI-side cached view of a conversation; not the source of truth"""
    conversation_id: str
    history: List[Message] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
