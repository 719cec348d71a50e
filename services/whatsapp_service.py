# services/whatsapp_service.py
import asyncio
from typing import Any, Callable, Dict, Mapping, Optional

from loguru import logger
from pydantic import ValidationError
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from models.agent_config import WhatsAppConfig, changed_fields, merge_section
from models.message import ChannelType, Message, MessageStatus
from models.payloads import TwilioMessagePayload, TwilioMessageStatusPayload
from services.base_channel import ChannelAdapter
from services.exceptions import AdapterInitError, NotConnectedError, ProviderError
from utils.helpers import utcnow
from utils.validators import strip_whatsapp_prefix, whatsapp_address

CREDENTIAL_FIELDS = {"account_sid", "auth_token"}


class WhatsAppService(ChannelAdapter):
    """WhatsApp over the Twilio Messaging API"""

    channel = ChannelType.WHATSAPP
    provider_name = "whatsapp"

    def __init__(self, config: WhatsAppConfig, client_factory: Callable[..., Any] = Client):
        super().__init__()
        self.config = config
        self._client_factory = client_factory
        self.client = None
        self.webhook_url: Optional[str] = config.webhook_url
        self._log = logger.bind(component="WhatsAppService")
        self._init_client()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _init_client(self):
        """Build the Twilio client when enabled and credentials are present"""
        if self.config.enabled and self.config.account_sid and self.config.auth_token:
            self.client = self._client_factory(self.config.account_sid, self.config.auth_token)
            self._log.info("✅ WhatsApp service initialized")
        else:
            self.client = None
            self._log.warning("⚠️ WhatsApp service is disabled or missing configuration")

    async def connect(self) -> None:
        if not self.client:
            raise AdapterInitError("WhatsApp client not initialized: accountSid and authToken are required")

        try:
            # Cheap round trip to confirm the credentials work
            await asyncio.to_thread(self.client.messages.list, limit=1)
        except TwilioException as e:
            self._log.error(f"❌ Failed to connect to WhatsApp Business API: {e}")
            raise ProviderError(self.provider_name, str(e)) from e

        self._connected = True
        self._log.info("✅ Connected to WhatsApp Business API")
        self.emit("connected")

    async def disconnect(self) -> None:
        self._connected = False
        self._log.info("Disconnected from WhatsApp Business API")
        self.emit("disconnected")

    async def send_message(self, message: Message) -> Message:
        if not self._connected or not self.client:
            raise NotConnectedError("WhatsApp service is not connected")

        try:
            to = whatsapp_address(message.recipient)
            params = {
                "body": message.content,
                "from_": whatsapp_address(self.config.phone_number_id or ""),
                "to": to,
            }
            if self.webhook_url:
                params["status_callback"] = f"{self.webhook_url}/whatsapp/status"

            result = await asyncio.to_thread(self.client.messages.create, **params)
        except ValueError as e:
            self._log.error(f"❌ Invalid WhatsApp address: {e}")
            raise self._provider_error(e, message.conversation_id) from e
        except TwilioException as e:
            self._log.error(f"❌ Failed to send WhatsApp message: {e}")
            raise self._provider_error(e, message.conversation_id) from e

        self._log.debug(f"📤 Message sent to {to}: {result.sid}")
        sent = message.restamp(result.sid)
        self.emit("messageSent", sent)
        return sent

    async def handle_incoming_message(self, payload: Mapping[str, Any]) -> Optional[Message]:
        """Translate a Twilio inbound webhook into a Message and emit it"""
        try:
            parsed = TwilioMessagePayload.model_validate(payload)
            message = Message(
                id=parsed.message_sid,
                conversation_id=parsed.conversation_sid or parsed.message_sid,
                sender=strip_whatsapp_prefix(parsed.from_),
                recipient=strip_whatsapp_prefix(parsed.to),
                content=parsed.body,
                channel=ChannelType.WHATSAPP,
                status=MessageStatus.DELIVERED,
                metadata={"provider": "twilio", "payload": parsed.raw()},
            )
        except ValidationError as e:
            self._log.error(f"❌ Malformed WhatsApp webhook: {e}")
            self._emit_error(e)
            return None

        self._log.debug(f"📱 Received message from {message.sender}: {message.content}")
        await self.emit_async("message", message)
        return message

    async def handle_status_update(self, payload: Mapping[str, Any]) -> None:
        try:
            parsed = TwilioMessageStatusPayload.model_validate(payload)
        except ValidationError as e:
            self._log.error(f"❌ Malformed WhatsApp status callback: {e}")
            self._emit_error(e)
            return

        self.emit("messageStatus", {
            "messageId": parsed.message_sid,
            "status": parsed.message_status,
            "timestamp": utcnow(),
        })
        self._log.debug(f"Message {parsed.message_sid} status updated to: {parsed.message_status}")

    async def handle_webhook(self, payload: Mapping[str, Any]) -> None:
        if "Body" in payload:
            await self.handle_incoming_message(payload)
        elif "MessageStatus" in payload:
            await self.handle_status_update(payload)
        else:
            self._log.warning(f"⚠️ Unrecognized WhatsApp webhook: {sorted(payload)}")

    def update_config(self, config: Mapping[str, Any]) -> None:
        previous = self.config
        self.config = merge_section(previous, config)
        if self.config.webhook_url != previous.webhook_url:
            self.webhook_url = self.config.webhook_url

        # Reinitialize if the credentials changed
        if CREDENTIAL_FIELDS & set(changed_fields(previous, self.config)):
            self._init_client()

        self._log.info("WhatsApp service configuration updated")

    def set_webhook_url(self, url: str) -> None:
        self.webhook_url = url
        self._log.info(f"Webhook URL set to: {url}")

    def get_status(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "connected": self._connected,
            "phoneNumber": self.config.phone_number_id,
        }
