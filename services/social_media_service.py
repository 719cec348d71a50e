# services/social_media_service.py
"""
Social channel: Facebook Messenger and Instagram Direct via the Meta Graph API.

Addresses are platform-prefixed ("facebook:<psid>", "instagram:<igsid>") so a
single channel can carry both platforms.
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple

import aiohttp
from loguru import logger
from pydantic import ValidationError

from models.agent_config import SocialMediaConfig, merge_section
from models.message import ChannelType, Message, MessageStatus
from models.payloads import MetaWebhookPayload
from services.base_channel import ChannelAdapter
from services.exceptions import AdapterInitError, NotConnectedError, ProviderError
from utils.helpers import parse_datetime
from utils.validators import split_platform_address

# Meta webhook `object` values mapped to our platform names
WEBHOOK_OBJECTS = {"page": "facebook", "instagram": "instagram"}


class SocialMediaService(ChannelAdapter):
    channel = ChannelType.SOCIAL
    provider_name = "social"

    def __init__(self, config: SocialMediaConfig, session: Optional[aiohttp.ClientSession] = None):
        super().__init__()
        self.config = config
        self._session = session
        self._owns_session = session is None
        self._log = logger.bind(component="SocialMediaService")

        if self.config.platforms.twitter and self.config.platforms.twitter.api_key:
            self._log.warning("⚠️ Twitter credentials configured but Twitter messaging is not supported")

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def configured_platforms(self) -> Dict[str, Tuple[str, str]]:
        """platform -> (graph node id, access token) for every usable platform"""
        platforms = {}
        facebook = self.config.platforms.facebook
        if facebook and facebook.page_id and facebook.access_token:
            platforms["facebook"] = (facebook.page_id, facebook.access_token)
        instagram = self.config.platforms.instagram
        if instagram and instagram.account_id and instagram.access_token:
            platforms["instagram"] = (instagram.account_id, instagram.access_token)
        return platforms

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15))
            self._owns_session = True
        return self._session

    async def _graph_request(self, method: str, path: str, token: str,
                             json: Optional[Dict[str, Any]] = None,
                             params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Call the Graph API; non-2xx responses become ProviderError"""
        session = await self._get_session()
        url = f"{self.config.graph_api_url}/{path.lstrip('/')}"
        query = {"access_token": token, **(params or {})}

        try:
            async with session.request(method, url, params=query, json=json) as response:
                data = await response.json(content_type=None)
                if response.status >= 400:
                    error = (data or {}).get("error", {}) if isinstance(data, dict) else {}
                    raise ProviderError(self.provider_name, error.get("message", f"HTTP {response.status}"),
                                        details=error or None)
                return data or {}
        except aiohttp.ClientError as e:
            raise ProviderError(self.provider_name, str(e)) from e

    async def connect(self) -> None:
        platforms = self.configured_platforms()
        if not platforms:
            raise AdapterInitError("Social media service has no configured platform (facebook or instagram)")

        for platform, (node_id, token) in platforms.items():
            try:
                await self._graph_request("GET", node_id, token, params={"fields": "id,name"})
            except ProviderError as e:
                self._log.error(f"❌ Failed to reach {platform}: {e}")
                raise
            self._log.info(f"✅ Connected to {platform} ({node_id})")

        self._connected = True
        self.emit("connected")

    async def disconnect(self) -> None:
        self._connected = False
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None if self._owns_session else self._session
        self._log.info("Disconnected from social media platforms")
        self.emit("disconnected")

    async def send_message(self, message: Message) -> Message:
        if not self._connected:
            raise NotConnectedError("Social media service is not connected")

        platforms = self.configured_platforms()
        try:
            default = next(iter(platforms), None)
            platform, user_id = split_platform_address(message.recipient, default)
            if platform not in platforms:
                raise ValueError(f"Platform {platform} is not configured")

            node_id, token = platforms[platform]
            result = await self._graph_request("POST", f"{node_id}/messages", token, json={
                "recipient": {"id": user_id},
                "message": {"text": message.content},
                "messaging_type": "RESPONSE",
            })
        except ValueError as e:
            self._log.error(f"❌ Invalid social recipient: {e}")
            raise self._provider_error(e, message.conversation_id) from e
        except ProviderError as e:
            self._log.error(f"❌ Failed to send social message: {e}")
            raise self._provider_error(e, message.conversation_id)

        sent = message.restamp(result.get("message_id") or message.id)
        self._log.debug(f"📤 {platform} message sent to {user_id}: {sent.id}")
        self.emit("messageSent", sent)
        return sent

    async def handle_incoming_message(self, payload: Mapping[str, Any]) -> List[Message]:
        """Translate a Meta messaging webhook into one Message per text event"""
        try:
            parsed = MetaWebhookPayload.model_validate(payload)
        except ValidationError as e:
            self._log.error(f"❌ Malformed social webhook: {e}")
            self._emit_error(e)
            return []

        platform = WEBHOOK_OBJECTS.get(parsed.object, parsed.object)
        messages = []
        for entry in parsed.entry:
            for event in entry.messaging:
                if event.message is None or event.message.is_echo or not event.message.text:
                    continue
                messages.append(Message(
                    id=event.message.mid,
                    conversation_id=event.thread_id or event.message.mid,
                    sender=f"{platform}:{event.sender.id}",
                    recipient=f"{platform}:{event.recipient.id}",
                    content=event.message.text,
                    channel=ChannelType.SOCIAL,
                    timestamp=parse_datetime(event.timestamp),
                    status=MessageStatus.DELIVERED,
                    metadata={"provider": "meta", "platform": platform, "payload": event.raw()},
                ))

        for message in messages:
            self._log.debug(f"💬 Received {platform} message from {message.sender}")
            await self.emit_async("message", message)
        return messages

    async def handle_webhook(self, payload: Mapping[str, Any]) -> None:
        if "entry" in payload:
            await self.handle_incoming_message(payload)
        else:
            self._log.warning(f"⚠️ Unrecognized social webhook: {sorted(payload)}")

    def update_config(self, config: Mapping[str, Any]) -> None:
        self.config = merge_section(self.config, config)
        self._log.info("Social media service configuration updated")

    def get_status(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "connected": self._connected,
            "platforms": sorted(self.configured_platforms()),
        }
