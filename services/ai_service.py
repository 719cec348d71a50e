# services/ai_service.py
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from loguru import logger

from core.events import ErrorEvent, EventEmitter
from models.agent_config import AIConfig, changed_fields, merge_section
from models.message import (
    AI_SENDER_ID,
    ConversationContext,
    ConversationHistory,
    Message,
    MessageStatus,
)
from services.exceptions import ProviderError
from services.llm_providers import BaseLLMProvider, Completion, build_provider
from utils.helpers import generate_id, utcnow
from utils.validators import sanitize_name

APOLOGY = "I apologize, but I encountered an error processing your request. Please try again later."

History = Union[ConversationHistory, Sequence[Message], None]


class AIService(EventEmitter):
    """
    Produces a reply for an inbound message from a bounded slice of history.

    Keeps its own per-conversation context cache (last exchanges and token
    usage). The router's conversation store stays the source of truth.
    """

    def __init__(self, config: AIConfig, provider: Optional[BaseLLMProvider] = None):
        super().__init__()
        self.config = config
        self._custom_provider = provider
        self._contexts: Dict[str, ConversationContext] = {}
        self.provider: Optional[BaseLLMProvider] = self._resolve_provider(config, provider)

    def _resolve_provider(self, config: AIConfig,
                          custom: Optional[BaseLLMProvider]) -> Optional[BaseLLMProvider]:
        """The injected provider, or one built for the configured name"""
        if custom is not None:
            provider = custom
        elif config.provider == "custom":
            logger.warning("⚠️ Custom AI provider selected but none was supplied")
            return None
        else:
            provider = build_provider(config.provider, config.api_key)

        if provider:
            logger.info(f"✅ AI service initialized with {config.provider}")
        return provider

    async def process_message(self, message: Message, history: History = None) -> Message:
        """Generate a reply; never raises, failures become a `failed` apology message"""
        try:
            logger.debug(f"🧠 Processing message in conversation: {message.conversation_id}")

            context = self._sync_context(message.conversation_id, history)
            prompt = self.prepare_messages(message, context)
            completion = await self._generate(prompt)

            reply = Message(
                id=generate_id("ai"),
                conversation_id=message.conversation_id,
                sender=AI_SENDER_ID,
                recipient=message.sender,
                content=completion.content,
                channel=message.channel,
                status=MessageStatus.SENT,
                metadata={"model": completion.model or self.config.model, "usage": completion.usage},
            )

            self._update_context(message.conversation_id, message, reply, completion.usage)
            self.emit("responseGenerated", {
                "request": message,
                "response": reply,
                "conversationId": message.conversation_id,
            })
            return reply

        except Exception as e:
            event = ErrorEvent(source="AIService", error=e, conversation_id=message.conversation_id)
            logger.error(f"❌ AI generation failed [{event.correlation_id}]: {e}")
            self.emit("error", event)

            return Message(
                id=generate_id("error"),
                conversation_id=message.conversation_id,
                sender=AI_SENDER_ID,
                recipient=message.sender,
                content=APOLOGY,
                channel=message.channel,
                status=MessageStatus.FAILED,
                metadata={"error": str(e), "correlationId": event.correlation_id},
            )

    async def _generate(self, prompt: List[Dict[str, Any]]) -> Completion:
        if not self.provider:
            raise ProviderError(self.config.provider, "AI client not initialized")

        return await self.provider.generate_response(
            prompt,
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

    def prepare_messages(self, message: Message, context: ConversationContext) -> List[Dict[str, Any]]:
        """[system prompt] + last `context_window` messages + current message"""
        messages: List[Dict[str, Any]] = []

        if self.config.system_prompt:
            messages.append({"role": "system", "content": self.config.system_prompt})

        window = self.config.context_window
        recent = context.history[-window:] if window > 0 else []
        for item in recent:
            messages.append(self._chat_message(
                "assistant" if item.sender == AI_SENDER_ID else "user", item))

        messages.append(self._chat_message("user", message))
        return messages

    @staticmethod
    def _chat_message(role: str, message: Message) -> Dict[str, Any]:
        entry = {"role": role, "content": message.content}
        name = sanitize_name(message.sender)
        if name:
            entry["name"] = name
        return entry

    # ===== context cache =====

    def _sync_context(self, conversation_id: str, history: History) -> ConversationContext:
        context = self._contexts.get(conversation_id)
        if context is None:
            context = self._contexts[conversation_id] = ConversationContext(conversation_id=conversation_id)

        # Provided history replaces the cached log
        if history is not None:
            if isinstance(history, ConversationHistory):
                context.history = list(history.messages)
                context.metadata.update(history.metadata)
            else:
                context.history = list(history)
        return context

    def _update_context(self, conversation_id: str, inbound: Message, reply: Message,
                        usage: Mapping[str, int]) -> None:
        context = self._contexts.get(conversation_id)
        if context is None:
            context = self._contexts[conversation_id] = ConversationContext(conversation_id=conversation_id)

        context.history.extend([inbound, reply])
        totals = context.metadata.setdefault("usage", {})
        for key, value in (usage or {}).items():
            if isinstance(value, (int, float)):
                totals[key] = totals.get(key, 0) + value
        context.updated_at = utcnow()

        self.emit("contextUpdated", {"conversationId": conversation_id, "context": context})

    def get_conversation_context(self, conversation_id: str) -> Optional[ConversationContext]:
        return self._contexts.get(conversation_id)

    def clear_conversation_context(self, conversation_id: str) -> None:
        self._contexts.pop(conversation_id, None)
        self.emit("contextCleared", {"conversationId": conversation_id})

    # ===== config / status =====

    def update_config(self, config: Mapping[str, Any]) -> None:
        """Apply a partial update; nothing changes if the new provider cannot be built"""
        updated = merge_section(self.config, config)

        # Rebuild the provider if its name or API key changed
        if {"provider", "api_key"} & set(changed_fields(self.config, updated)):
            custom = self._custom_provider if updated.provider == "custom" else None
            self.provider = self._resolve_provider(updated, custom)
            self._custom_provider = custom

        self.config = updated
        logger.info("AI service configuration updated")

    def get_status(self) -> Dict[str, Any]:
        return {
            "provider": self.config.provider,
            "model": self.config.model,
            "ready": self.provider is not None,
            "activeConversations": len(self._contexts),
        }
