# ===== models/call.py =====
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from utils.helpers import to_iso, utcnow


class CallDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class CallStatus(str, Enum):
    QUEUED = "queued"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no-answer"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_CALL_STATUSES

    @classmethod
    def parse(cls, value: Optional[str], default: "CallStatus" = None) -> Optional["CallStatus"]:
        try:
            return cls(value)
        except ValueError:
            return default


TERMINAL_CALL_STATUSES = frozenset({
    CallStatus.COMPLETED,
    CallStatus.FAILED,
    CallStatus.BUSY,
    CallStatus.NO_ANSWER,
})


@dataclass
class CallRecord:
    """Voice call tracked by the voice adapter until it reaches a terminal status"""
    call_sid: str
    from_number: Optional[str]
    to_number: Optional[str]
    direction: CallDirection
    status: CallStatus
    timestamp: datetime = field(default_factory=utcnow)
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "callSid": self.call_sid,
            "from": self.from_number,
            "to": self.to_number,
            "direction": self.direction.value,
            "status": self.status.value,
            "timestamp": to_iso(self.timestamp),
        }
