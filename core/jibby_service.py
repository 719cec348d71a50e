# core/jibby_service.py
"""
Router between the channel adapters, the conversation store and the AI responder.

Inbound `message`/`call` events from adapters are put on a bounded queue and
drained by a single dispatcher task while the service is running; each event
is handled in its own task and serialized per conversation through the
store's lock. Without a running dispatcher (tests, one-off scripts) events
are handled inline.
"""

import asyncio
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Set, Tuple, Union

from loguru import logger

from core.conversation_store import ConversationStore
from core.events import ErrorEvent, EventEmitter
from models.agent_config import AgentConfig, merge_section, normalize_sections
from models.call import CallRecord
from models.message import ChannelType, ConversationHistory, Message
from services.ai_service import AIService
from services.base_channel import ChannelAdapter
from services.exceptions import UnsupportedChannelError
from services.social_media_service import SocialMediaService
from services.voice_service import VoiceService
from services.whatsapp_service import WhatsAppService

# Config section -> channel whose adapter receives the update
SECTION_CHANNELS = {
    "whatsapp": ChannelType.WHATSAPP,
    "voice": ChannelType.VOICE,
    "social_media": ChannelType.SOCIAL,
}

InboundEvent = Tuple[str, Union[Message, CallRecord]]


class JibbyService(EventEmitter):
    def __init__(
        self,
        config: AgentConfig,
        adapters: Optional[Mapping[ChannelType, ChannelAdapter]] = None,
        ai_service: Optional[AIService] = None,
        store: Optional[ConversationStore] = None,
        queue_size: int = 1000,
    ):
        super().__init__()
        self.config = config
        self.store = store or ConversationStore()
        self.ai_service = ai_service or AIService(config.ai)
        if adapters is None:
            adapters = {
                ChannelType.WHATSAPP: WhatsAppService(config.whatsapp),
                ChannelType.VOICE: VoiceService(config.voice),
                ChannelType.SOCIAL: SocialMediaService(config.social_media),
            }
        self.adapters: Dict[ChannelType, ChannelAdapter] = dict(adapters)

        self._queue_size = queue_size
        self._queue: Optional[asyncio.Queue] = None
        self._dispatcher: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()
        self._running = False

        self._setup_event_handlers()

    @property
    def running(self) -> bool:
        return self._running

    def _setup_event_handlers(self):
        for channel, adapter in self.adapters.items():
            adapter.on("message", self._on_adapter_message)
            adapter.on("call", self._on_adapter_call)
            adapter.on("callEnded", self._forward("callEnded"))
            adapter.on("error", self._forward("error"))
            self.on(f"{adapter.provider_name}:webhook", adapter.handle_webhook)

        self.ai_service.on("error", self._forward("error"))

    def _forward(self, event: str):
        def listener(*args):
            self.emit(event, *args)
        return listener

    # ===== inbound dispatch =====

    async def _on_adapter_message(self, message: Message) -> None:
        self.emit("message", message)
        await self._submit(("message", message))

    async def _on_adapter_call(self, call: CallRecord) -> None:
        self.emit("call", call)
        await self._submit(("call", call))

    async def _submit(self, event: InboundEvent) -> None:
        if self._queue is not None and self._dispatcher is not None and not self._dispatcher.done():
            await self._queue.put(event)
        else:
            await self._handle(event)

    async def _dispatch(self) -> None:
        """Single consumer of the inbound queue"""
        while True:
            event = await self._queue.get()
            task = asyncio.create_task(self._handle(event))
            self._in_flight.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if self._queue is not None:
            self._queue.task_done()

    async def _handle(self, event: InboundEvent) -> None:
        kind, payload = event
        if kind == "message":
            await self.handle_incoming_message(payload)
        else:
            await self.handle_incoming_call(payload)

    async def join(self) -> None:
        """Wait until queued and in-flight inbound work is done"""
        if self._queue is not None:
            await self._queue.join()
        await self.wait_pending()

    # ===== messaging =====

    async def send_message(self, message: Union[Message, Mapping[str, Any]]) -> Message:
        """Route an outbound message to its channel's adapter; errors are emitted and re-raised"""
        conversation_id = message.conversation_id if isinstance(message, Message) else None
        try:
            if not isinstance(message, Message):
                message = Message.from_dict(message)
            conversation_id = message.conversation_id

            adapter = self.adapters.get(message.channel)
            if adapter is None:
                raise UnsupportedChannelError(message.channel.value)

            sent = await adapter.send_message(message)
            self.emit("messageSent", sent)
            return sent

        except Exception as e:
            if getattr(e, "correlation_id", None):
                # The adapter already emitted this failure
                logger.error(f"❌ Error sending message [{e.correlation_id}]: {e}")
                raise
            event = ErrorEvent(source="JibbyService", error=e, conversation_id=conversation_id)
            logger.error(f"❌ Error sending message [{event.correlation_id}]: {e}")
            self.emit("error", event)
            raise

    def get_conversation_history(self, conversation_id: str) -> ConversationHistory:
        return self.store.history(conversation_id)

    async def handle_incoming_message(self, message: Message) -> None:
        """Store, answer and reply to an inbound message; failures become `error` events"""
        conversation_id = message.conversation_id
        async with self.store.lock(conversation_id):
            try:
                conversation = self.store.get_or_create(conversation_id)
                prior = list(conversation.messages)
                self.store.append(conversation_id, message)

                response = await self.ai_service.process_message(message, prior)
                reply = replace(
                    response,
                    conversation_id=conversation_id,
                    channel=message.channel,
                    recipient=message.sender,
                )
                self.store.append(conversation_id, reply)
            except Exception as e:
                event = ErrorEvent(source="JibbyService", error=e, conversation_id=conversation_id)
                logger.error(f"❌ Error processing incoming message [{event.correlation_id}]: {e}")
                self.emit("error", event)
                return

            try:
                await self.send_message(reply)
            except Exception as e:
                # send_message has already emitted the error event
                logger.warning(f"⚠️ Reply {reply.id} in {conversation_id} was not delivered: {e}")
                return

            self.emit("messageProcessed", {"message": message, "response": reply})
            logger.debug(f"✅ Processed message {message.id} in {conversation_id}")

    async def handle_incoming_call(self, call: CallRecord) -> Optional[str]:
        """Answer a call through the voice adapter; returns the TwiML or None on failure"""
        try:
            voice = self.adapters.get(ChannelType.VOICE)
            if not isinstance(voice, VoiceService):
                raise UnsupportedChannelError(ChannelType.VOICE.value)

            response = voice.handle_call(call)
            self.emit("callHandled", {"call": call, "response": response})
            return response

        except Exception as e:
            event = ErrorEvent(source="JibbyService", error=e, conversation_id=call.call_sid)
            logger.error(f"❌ Error handling incoming call [{event.correlation_id}]: {e}")
            self.emit("error", event)
            return None

    async def on_webhook(self, provider: str, payload: Mapping[str, Any]) -> None:
        """Hand a raw provider webhook to whichever adapter listens for it"""
        if not await self.emit_async(f"{provider}:webhook", payload):
            logger.warning(f"⚠️ No adapter registered for webhook provider: {provider}")

    # ===== configuration =====

    def update_config(self, partial: Mapping[str, Any]) -> AgentConfig:
        """Merge a partial update; a section that fails to apply leaves the config unchanged"""
        sections = normalize_sections(partial)
        updates: Dict[str, Any] = {}

        for name, value in sections.items():
            if name not in AgentConfig.model_fields:
                logger.warning(f"⚠️ Ignoring unknown config section: {name}")
                continue
            current = getattr(self.config, name)
            if isinstance(value, Mapping) and hasattr(current, "model_dump"):
                updates[name] = merge_section(current, value)
            else:
                updates[name] = value

        # AI first: an unknown provider raises before anything is assigned
        if "ai" in updates:
            self.ai_service.update_config(sections["ai"])
        for name in updates:
            channel = SECTION_CHANNELS.get(name)
            if channel is not None and channel in self.adapters:
                self.adapters[channel].update_config(sections[name])

        self.config = self.config.model_copy(update=updates)

        logger.info(f"🔧 Configuration updated: {', '.join(updates) or 'no changes'}")
        self.emit("configUpdated", self.config)
        return self.config

    # ===== lifecycle =====

    async def start(self) -> None:
        try:
            enabled = [adapter for adapter in self.adapters.values() if adapter.enabled]
            await asyncio.gather(*(adapter.connect() for adapter in enabled))

            self._queue = asyncio.Queue(maxsize=self._queue_size)
            self._dispatcher = asyncio.create_task(self._dispatch())
            self._running = True

            logger.info(f"🚀 Jibby service started ({', '.join(a.channel.value for a in enabled) or 'no channels'})")
            self.emit("started")

        except Exception as e:
            event = ErrorEvent(source="JibbyService", error=e)
            logger.error(f"❌ Failed to start Jibby service [{event.correlation_id}]: {e}")
            self.emit("error", event)
            raise

    async def stop(self) -> None:
        try:
            if self._dispatcher is not None:
                await self.join()
                self._dispatcher.cancel()
                try:
                    await self._dispatcher
                except asyncio.CancelledError:
                    pass
            self._dispatcher = None
            self._queue = None
            self._running = False

            connected = [adapter for adapter in self.adapters.values() if adapter.connected]
            await asyncio.gather(*(adapter.disconnect() for adapter in connected))

            logger.info("🛑 Jibby service stopped")
            self.emit("stopped")

        except Exception as e:
            event = ErrorEvent(source="JibbyService", error=e)
            logger.error(f"❌ Error stopping Jibby service [{event.correlation_id}]: {e}")
            self.emit("error", event)
            raise

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "channels": {channel.value: adapter.get_status() for channel, adapter in self.adapters.items()},
            "ai": self.ai_service.get_status(),
            "conversations": len(self.store),
            "queued": self._queue.qsize() if self._queue is not None else 0,
        }
