from .message import (
    AI_SENDER_ID,
    ChannelType,
    MessageStatus,
    Message,
    Conversation,
    ConversationHistory,
    ConversationContext,
)
from .call import CallDirection, CallStatus, CallRecord
from .agent_config import AgentConfig, AIConfig, WhatsAppConfig, VoiceConfig, SocialMediaConfig

__all__ = [
    "AI_SENDER_ID",
    "ChannelType",
    "MessageStatus",
    "Message",
    "Conversation",
    "ConversationHistory",
    "ConversationContext",
    "CallDirection",
    "CallStatus",
    "CallRecord",
    "AgentConfig",
    "AIConfig",
    "WhatsAppConfig",
    "VoiceConfig",
    "SocialMediaConfig",
]
