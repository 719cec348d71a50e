# services/voice_service.py
"""
Voice channel over Twilio Programmable Voice.

Calls are tracked in an active-calls map from the moment they are placed or
received until a status callback reports a terminal status. Caller speech
arrives through <Gather> callbacks and is fed to the router as voice-channel
messages whose conversation id is the call sid; replies are spoken back into
the live call.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from loguru import logger
from pydantic import ValidationError
from twilio.base.exceptions import TwilioException
from twilio.rest import Client
from twilio.twiml.voice_response import Gather, VoiceResponse

from models.agent_config import VoiceConfig, changed_fields, merge_section
from models.call import CallDirection, CallRecord, CallStatus
from models.message import ChannelType, Message, MessageStatus
from models.payloads import TwilioCallPayload
from services.base_channel import ChannelAdapter
from services.exceptions import AdapterInitError, NotConnectedError, ProviderError
from utils.helpers import utcnow
from utils.validators import to_e164

CREDENTIAL_FIELDS = {"account_sid", "auth_token"}
STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]

CallHandler = Callable[[CallRecord], Union[Awaitable[None], None]]


class VoiceService(ChannelAdapter):
    channel = ChannelType.VOICE
    provider_name = "voice"

    def __init__(self, config: VoiceConfig, client_factory: Callable[..., Any] = Client):
        super().__init__()
        self.config = config
        self._client_factory = client_factory
        self.client = None
        self._call_handlers: Dict[str, CallHandler] = {}
        self._active_calls: Dict[str, CallRecord] = {}
        self._log = logger.bind(component="VoiceService")

        if self.config.enabled:
            self._init_client()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _init_client(self):
        if not self.config.account_sid or not self.config.auth_token:
            self.client = None
            self._log.warning("⚠️ Voice service is missing required configuration (accountSid or authToken)")
            return

        self.client = self._client_factory(self.config.account_sid, self.config.auth_token)
        self._log.info("✅ Voice service initialized")

    # ===== lifecycle =====

    async def initialize(self) -> None:
        if not self.client:
            raise AdapterInitError("Voice service is not initialized: accountSid and authToken are required")

        try:
            await asyncio.to_thread(self.client.calls.list, limit=1)
        except TwilioException as e:
            self._log.error(f"❌ Failed to reach Twilio Voice: {e}")
            raise ProviderError(self.provider_name, str(e)) from e

        self._connected = True
        self._log.info("✅ Call handling initialized")
        self.emit("initialized")

    async def cleanup(self) -> None:
        self._active_calls.clear()
        self._call_handlers.clear()
        self._connected = False
        self._log.info("Voice service cleaned up")
        self.emit("disconnected")

    async def connect(self) -> None:
        await self.initialize()

    async def disconnect(self) -> None:
        await self.cleanup()

    def _require_connected(self):
        if not self._connected or not self.client:
            raise NotConnectedError("Voice service is not initialized")

    # ===== TwiML =====

    def _speech_action_url(self) -> Optional[str]:
        if self.config.webhook_url:
            return f"{self.config.webhook_url}/voice/speech"
        return None

    def _gather(self) -> Gather:
        attrs = {
            "input": "speech",
            "method": "POST",
            "language": self.config.language,
            "speech_timeout": "auto",
        }
        action = self._speech_action_url()
        if action:
            attrs["action"] = action
        return Gather(**attrs)

    def build_twiml(self, text: str, listen: bool = True) -> str:
        """Speak `text`; when listening, wrap it in a speech <Gather>"""
        response = VoiceResponse()
        if listen:
            gather = self._gather()
            gather.say(text, voice=self.config.voice, language=self.config.language)
            response.append(gather)
        else:
            response.say(text, voice=self.config.voice, language=self.config.language)
        return str(response)

    def build_hold_twiml(self, seconds: int = 30) -> str:
        """Keep the caller on the line while the reply is generated"""
        response = VoiceResponse()
        response.pause(length=seconds)
        return str(response)

    def handle_call(self, call: CallRecord) -> str:
        """TwiML answering a tracked call with the greeting"""
        self._log.debug(f"📞 Answering call {call.call_sid} from {call.from_number}")
        return self.build_twiml(self.config.greeting)

    # ===== outbound =====

    async def make_call(self, to: str, from_: Optional[str] = None, **options: Any) -> CallRecord:
        self._require_connected()

        try:
            params = {
                "to": to_e164(to),
                "from_": to_e164(from_ or self.config.phone_number or ""),
                **options,
            }
        except ValueError as e:
            self._log.error(f"❌ Invalid call number: {e}")
            raise self._provider_error(e) from e

        if "url" not in params and "twiml" not in params:
            if self.config.webhook_url:
                params["url"] = self.config.webhook_url
            else:
                params["twiml"] = self.build_twiml(self.config.greeting)
        # Terminal status callbacks drop the call from the active map
        if self.config.webhook_url and "status_callback" not in params:
            params["status_callback"] = f"{self.config.webhook_url}/voice/status"
            params["status_callback_event"] = STATUS_CALLBACK_EVENTS

        try:
            call = await asyncio.to_thread(self.client.calls.create, **params)
        except TwilioException as e:
            self._log.error(f"❌ Failed to initiate call: {e}")
            raise self._provider_error(e) from e

        record = CallRecord(
            call_sid=call.sid,
            from_number=params["from_"],
            to_number=params["to"],
            direction=CallDirection.OUTBOUND,
            status=CallStatus.parse(call.status, CallStatus.QUEUED),
        )
        self._active_calls[call.sid] = record
        self._log.info(f"📞 Outgoing call initiated: {call.sid}")
        self.emit("callInitiated", record)
        return record

    async def send_message(self, message: Message) -> Message:
        """Speak the message into the live call, or place a call that speaks it"""
        self._require_connected()

        call = self._active_calls.get(message.conversation_id)
        try:
            if call is not None:
                await asyncio.to_thread(
                    self.client.calls(call.call_sid).update,
                    twiml=self.build_twiml(message.content),
                )
                provider_id = call.call_sid
            else:
                record = await self.make_call(
                    message.recipient,
                    twiml=self.build_twiml(message.content, listen=False),
                )
                provider_id = record.call_sid
        except ValueError as e:
            self._log.error(f"❌ Invalid voice recipient: {e}")
            raise self._provider_error(e, message.conversation_id) from e
        except TwilioException as e:
            self._log.error(f"❌ Failed to send voice message: {e}")
            raise self._provider_error(e, message.conversation_id) from e

        self._log.debug(f"🗣️ Voice message to {message.recipient}: {message.content[:50]}")
        sent = message.restamp(provider_id)
        self.emit("messageSent", sent)
        return sent

    async def end_call(self, call_sid: str) -> None:
        self._require_connected()

        try:
            await asyncio.to_thread(self.client.calls(call_sid).update, status="completed")
        except TwilioException as e:
            self._log.error(f"❌ Failed to end call {call_sid}: {e}")
            raise self._provider_error(e) from e

        self._active_calls.pop(call_sid, None)
        self._log.info(f"Call ended: {call_sid}")
        self.emit("callEnded", {
            "callSid": call_sid,
            "status": CallStatus.COMPLETED,
            "timestamp": utcnow(),
        })

    # ===== inbound =====

    async def handle_incoming_call(self, payload: Mapping[str, Any]) -> Optional[CallRecord]:
        try:
            parsed = TwilioCallPayload.model_validate(payload)
        except ValidationError as e:
            self._log.error(f"❌ Malformed incoming call webhook: {e}")
            self._emit_error(e)
            return None

        record = CallRecord(
            call_sid=parsed.call_sid,
            from_number=parsed.from_,
            to_number=parsed.to,
            direction=CallDirection.INBOUND,
            status=CallStatus.IN_PROGRESS,
            payload=parsed.raw(),
        )
        self._active_calls[record.call_sid] = record
        self._log.info(f"📞 Incoming call received: {record.call_sid}")

        await self.emit_async("call", record)
        self.emit("incomingCall", record)

        handler = self._call_handlers.get(CallDirection.INBOUND.value)
        if handler:
            result = handler(record)
            if asyncio.iscoroutine(result):
                await result
        return record

    async def handle_speech_result(self, payload: Mapping[str, Any]) -> Optional[Message]:
        """Caller speech from a <Gather> becomes a voice-channel message"""
        try:
            parsed = TwilioCallPayload.model_validate(payload)
        except ValidationError as e:
            self._log.error(f"❌ Malformed speech webhook: {e}")
            self._emit_error(e)
            return None

        if not parsed.speech_result:
            return None

        call = self._active_calls.get(parsed.call_sid)
        message = Message(
            id=f"{parsed.call_sid}-{int(utcnow().timestamp() * 1000)}",
            conversation_id=parsed.call_sid,
            sender=parsed.from_ or (call.from_number if call else ""),
            recipient=parsed.to or (call.to_number if call else ""),
            content=parsed.speech_result,
            channel=ChannelType.VOICE,
            status=MessageStatus.DELIVERED,
            metadata={"provider": "twilio", "confidence": parsed.confidence, "payload": parsed.raw()},
        )
        await self.emit_async("message", message)
        return message

    async def handle_call_status_update(self, payload: Mapping[str, Any]) -> None:
        try:
            parsed = TwilioCallPayload.model_validate(payload)
        except ValidationError as e:
            self._log.error(f"❌ Malformed call status callback: {e}")
            self._emit_error(e)
            return

        status = CallStatus.parse(parsed.call_status)
        self._log.debug(f"Call status update for {parsed.call_sid}: {parsed.call_status}")

        call = self._active_calls.get(parsed.call_sid)
        if call is not None and status is not None:
            call.status = status

        self.emit("callStatus", {
            "callSid": parsed.call_sid,
            "status": status or parsed.call_status,
            "timestamp": utcnow(),
            "payload": parsed.raw(),
        })

        if status is not None and status.is_terminal:
            self._active_calls.pop(parsed.call_sid, None)
            self.emit("callEnded", {
                "callSid": parsed.call_sid,
                "status": status,
                "timestamp": utcnow(),
                "payload": parsed.raw(),
            })

    async def handle_webhook(self, payload: Mapping[str, Any]) -> None:
        call_sid = payload.get("CallSid")
        status = payload.get("CallStatus")

        if payload.get("SpeechResult") is not None:
            await self.handle_speech_result(payload)
        elif call_sid and call_sid not in self._active_calls and status in (None, "ringing", "in-progress"):
            await self.handle_incoming_call(payload)
        elif call_sid:
            await self.handle_call_status_update(payload)
        else:
            self._log.warning(f"⚠️ Unrecognized voice webhook: {sorted(payload)}")

    # ===== config / status =====

    def register_call_handler(self, call_type: str, handler: CallHandler) -> None:
        self._call_handlers[call_type] = handler
        self._log.debug(f"Registered call handler for type: {call_type}")

    def update_config(self, config: Mapping[str, Any]) -> None:
        previous = self.config
        self.config = merge_section(previous, config)

        changed = set(changed_fields(previous, self.config))
        if CREDENTIAL_FIELDS & changed or ("enabled" in changed and self.config.enabled and not self.client):
            self._init_client()

        self._log.info("Voice service configuration updated")

    def get_active_calls(self) -> Dict[str, CallRecord]:
        return dict(self._active_calls)

    def get_status(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "initialized": self._connected,
            "activeCalls": len(self._active_calls),
        }
