# tests/test_social_media_service.py
from unittest.mock import AsyncMock, MagicMock

import pytest

from models.agent_config import (
    FacebookConfig,
    InstagramConfig,
    SocialMediaConfig,
    SocialPlatformsConfig,
    TwitterConfig,
)
from models.message import ChannelType, Message, MessageStatus
from services.exceptions import AdapterInitError, NotConnectedError, ProviderError
from services.social_media_service import SocialMediaService
from tests.helpers import record_events


def messenger_webhook(text="Do you ship to Canada?", echo=False, thread_id=None):
    event = {
        "sender": {"id": "PSID42"},
        "recipient": {"id": "PAGE1"},
        "timestamp": 1700000000000,
        "message": {"mid": "m_abc", "text": text, "is_echo": echo},
    }
    if thread_id:
        event["thread_id"] = thread_id
    return {"object": "page", "entry": [{"id": "PAGE1", "time": 1700000000000, "messaging": [event]}]}


def reply(recipient="facebook:PSID42"):
    return Message(conversation_id="m_abc", sender="jibby-ai", recipient=recipient,
                   content="Yes we do", channel=ChannelType.SOCIAL)


class TestSocialConnection:

    @pytest.mark.asyncio
    async def test_connect_requires_a_platform(self):
        service = SocialMediaService(SocialMediaConfig(enabled=True), session=MagicMock())
        with pytest.raises(AdapterInitError):
            await service.connect()

    @pytest.mark.asyncio
    async def test_connect_checks_each_platform(self):
        config = SocialMediaConfig(enabled=True, platforms=SocialPlatformsConfig(
            facebook=FacebookConfig(page_id="PAGE1", access_token="fb"),
            instagram=InstagramConfig(account_id="IG1", access_token="ig"),
        ))
        service = SocialMediaService(config, session=MagicMock())
        service._graph_request = AsyncMock(return_value={"id": "x"})

        await service.connect()

        assert service.connected
        paths = [call.args[1] for call in service._graph_request.await_args_list]
        assert paths == ["PAGE1", "IG1"]
        assert service._graph_request.await_args_list[0].kwargs["params"] == {"fields": "id,name"}

    @pytest.mark.asyncio
    async def test_connect_failure_propagates(self, social_service):
        social_service._graph_request.side_effect = ProviderError("social", "Invalid OAuth access token")

        with pytest.raises(ProviderError):
            await social_service.connect()
        assert not social_service.connected

    def test_twitter_is_not_a_platform(self):
        config = SocialMediaConfig(enabled=True, platforms=SocialPlatformsConfig(
            twitter=TwitterConfig(api_key="k", api_secret="s"),
        ))
        assert SocialMediaService(config, session=MagicMock()).configured_platforms() == {}


class TestSocialSend:

    @pytest.mark.asyncio
    async def test_send_before_connect(self, social_service):
        with pytest.raises(NotConnectedError):
            await social_service.send_message(reply())

    @pytest.mark.asyncio
    async def test_send_to_messenger(self, social_service):
        await social_service.connect()
        events = record_events(social_service, "messageSent")

        sent = await social_service.send_message(reply())

        args, kwargs = social_service._graph_request.await_args
        assert args == ("POST", "PAGE1/messages", "fb-token")
        assert kwargs["json"] == {
            "recipient": {"id": "PSID42"},
            "message": {"text": "Yes we do"},
            "messaging_type": "RESPONSE",
        }
        assert sent.id == "m_provider_1"
        assert sent.status == MessageStatus.SENT
        assert events["messageSent"] == [sent]

    @pytest.mark.asyncio
    async def test_bare_recipient_uses_first_platform(self, social_service):
        await social_service.connect()

        await social_service.send_message(reply(recipient="PSID42"))

        assert social_service._graph_request.await_args.args[1] == "PAGE1/messages"

    @pytest.mark.asyncio
    async def test_unconfigured_platform(self, social_service):
        await social_service.connect()
        events = record_events(social_service, "error")

        with pytest.raises(ProviderError, match="instagram"):
            await social_service.send_message(reply(recipient="instagram:IGSID1"))
        assert len(events["error"]) == 1


class TestSocialInbound:

    @pytest.mark.asyncio
    async def test_messenger_webhook(self, social_service):
        events = record_events(social_service, "message")

        messages = await social_service.handle_incoming_message(messenger_webhook())

        assert len(messages) == 1
        message = messages[0]
        assert events["message"] == [message]
        assert message.id == "m_abc"
        assert message.conversation_id == "m_abc"
        assert message.sender == "facebook:PSID42"
        assert message.recipient == "facebook:PAGE1"
        assert message.channel == ChannelType.SOCIAL
        assert message.metadata["platform"] == "facebook"
        assert message.timestamp.year == 2023

    @pytest.mark.asyncio
    async def test_thread_id_is_conversation(self, social_service):
        messages = await social_service.handle_incoming_message(messenger_webhook(thread_id="t_9"))
        assert messages[0].conversation_id == "t_9"

    @pytest.mark.asyncio
    async def test_echoes_are_skipped(self, social_service):
        events = record_events(social_service, "message")
        assert await social_service.handle_incoming_message(messenger_webhook(echo=True)) == []
        assert events["message"] == []

    @pytest.mark.asyncio
    async def test_instagram_object(self, social_service):
        payload = messenger_webhook()
        payload["object"] = "instagram"

        messages = await social_service.handle_incoming_message(payload)

        assert messages[0].sender == "instagram:PSID42"

    @pytest.mark.asyncio
    async def test_malformed_webhook(self, social_service):
        events = record_events(social_service, "error")
        assert await social_service.handle_incoming_message({"entry": "nope"}) == []
        assert len(events["error"]) == 1

    @pytest.mark.asyncio
    async def test_handle_webhook_routes_entries(self, social_service):
        events = record_events(social_service, "message")
        await social_service.handle_webhook(messenger_webhook())
        await social_service.handle_webhook({"hub.challenge": "123"})
        assert len(events["message"]) == 1


class TestSocialConfig:

    def test_update_platforms(self, social_service):
        social_service.update_config({"platforms": {"instagram": {"accountId": "IG1", "accessToken": "ig"}}})
        assert social_service.configured_platforms() == {"instagram": ("IG1", "ig")}

    @pytest.mark.asyncio
    async def test_status(self, social_service):
        await social_service.connect()
        assert social_service.get_status() == {"enabled": True, "connected": True, "platforms": ["facebook"]}
