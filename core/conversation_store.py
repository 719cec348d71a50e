# ===== core/conversation_store.py =====
import asyncio
from typing import Dict, List, Optional

from loguru import logger

from models.message import Conversation, ConversationHistory, Message
from services.exceptions import ConversationNotFoundError
from utils.helpers import utcnow


class ConversationStore:
    """
    Process-local record of every conversation the hub has seen.

    Owned by the router and handed to whoever needs it. Mutations are
    synchronous; callers that read, await, then write (the inbound path)
    hold `lock(conversation_id)` for the whole sequence.
    """

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def get_or_create(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            conversation = Conversation(id=conversation_id)
            self._conversations[conversation_id] = conversation
            logger.debug(f"🆕 Conversation created: {conversation_id}")
        return conversation

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def append(self, conversation_id: str, message: Message) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)

        conversation.messages.append(message)
        for participant in (message.sender, message.recipient):
            if participant:
                conversation.participants.add(participant)
        conversation.updated_at = utcnow()
        return conversation

    def history(self, conversation_id: str) -> ConversationHistory:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return ConversationHistory(
            id=conversation.id,
            messages=list(conversation.messages),
            metadata=dict(conversation.metadata),
        )

    def lock(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    def conversation_ids(self) -> List[str]:
        return list(self._conversations)

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations
