# ===== models/api.py =====
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class APIError(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class APIResponse(BaseModel):
    """Envelope for every REST response"""
    success: bool
    data: Optional[Any] = None
    error: Optional[APIError] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class MessageIn(BaseModel):
    """Message-shaped request body; channel is validated by the router"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    conversation_id: str = Field(alias="conversationId")
    sender: str = ""
    recipient: str
    content: str
    channel: str
    timestamp: Optional[str] = None
    status: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_message_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
