# ===== models/payloads.py =====
"""
Typed provider webhook payloads.

Each provider posts its own shape; adapters parse through these models
rather than reading fields out of untyped dicts.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def raw(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TwilioMessagePayload(_Payload):
    """Twilio inbound message webhook (SMS / WhatsApp)"""
    message_sid: str = Field(alias="MessageSid")
    from_: str = Field(alias="From")
    to: str = Field(alias="To")
    body: str = Field(default="", alias="Body")
    conversation_sid: Optional[str] = Field(default=None, alias="ConversationSid")
    num_media: Optional[str] = Field(default=None, alias="NumMedia")
    profile_name: Optional[str] = Field(default=None, alias="ProfileName")


class TwilioMessageStatusPayload(_Payload):
    message_sid: str = Field(alias="MessageSid")
    message_status: str = Field(alias="MessageStatus")
    error_code: Optional[str] = Field(default=None, alias="ErrorCode")


class TwilioCallPayload(_Payload):
    """Twilio voice webhook: incoming call, status callback or gather result"""
    call_sid: str = Field(alias="CallSid")
    from_: Optional[str] = Field(default=None, alias="From")
    to: Optional[str] = Field(default=None, alias="To")
    call_status: Optional[str] = Field(default=None, alias="CallStatus")
    direction: Optional[str] = Field(default=None, alias="Direction")
    speech_result: Optional[str] = Field(default=None, alias="SpeechResult")
    confidence: Optional[float] = Field(default=None, alias="Confidence")


class MetaParticipant(_Payload):
    id: str


class MetaMessageBody(_Payload):
    mid: str
    text: Optional[str] = None
    is_echo: bool = False


class MetaMessagingEvent(_Payload):
    sender: MetaParticipant
    recipient: MetaParticipant
    timestamp: Optional[int] = None
    message: Optional[MetaMessageBody] = None
    thread_id: Optional[str] = None


class MetaEntry(_Payload):
    id: str
    time: Optional[int] = None
    messaging: List[MetaMessagingEvent] = Field(default_factory=list)


class MetaWebhookPayload(_Payload):
    """Messenger / Instagram messaging webhook"""
    object: str
    entry: List[MetaEntry] = Field(default_factory=list)
