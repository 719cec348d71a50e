# services/base_channel.py
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping

from core.events import ErrorEvent, EventEmitter
from models.message import ChannelType, Message
from services.exceptions import ProviderError


class ChannelAdapter(EventEmitter, ABC):
    """
    Contract every channel adapter implements.

    Adapters translate provider webhooks into `Message`/`CallRecord` values
    (emitted as `message` / `call`) and perform outbound provider calls.
    """

    channel: ChannelType
    provider_name: str

    def __init__(self):
        super().__init__()
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    @abstractmethod
    def enabled(self) -> bool:
        ...

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    @abstractmethod
    async def send_message(self, message: Message) -> Message:
        """Deliver through the provider; returns the provider-stamped copy"""

    @abstractmethod
    def update_config(self, config: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def get_status(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def handle_webhook(self, payload: Mapping[str, Any]) -> None:
        """Route a raw provider webhook to the matching inbound handler"""

    def _emit_error(self, error: BaseException, conversation_id: str = None) -> ErrorEvent:
        event = ErrorEvent(source=type(self).__name__, error=error, conversation_id=conversation_id)
        self.emit("error", event)
        return event

    def _provider_error(self, error: BaseException, conversation_id: str = None) -> ProviderError:
        """Emit `error` and return the ProviderError to raise, tagged with the event's correlation id"""
        event = self._emit_error(error, conversation_id)
        wrapped = error if isinstance(error, ProviderError) else ProviderError(self.provider_name, str(error))
        wrapped.correlation_id = event.correlation_id
        return wrapped
