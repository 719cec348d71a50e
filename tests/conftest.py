# tests/conftest.py
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock, Mock

from core.conversation_store import ConversationStore
from core.jibby_service import JibbyService
from models.agent_config import (
    AgentConfig,
    AIConfig,
    FacebookConfig,
    SocialMediaConfig,
    SocialPlatformsConfig,
    VoiceConfig,
    WhatsAppConfig,
)
from models.message import ChannelType
from services.ai_service import AIService
from services.social_media_service import SocialMediaService
from services.voice_service import VoiceService
from services.whatsapp_service import WhatsAppService
from tests.helpers import FakeProvider, make_twilio_client


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def twilio_client():
    return make_twilio_client()


@pytest.fixture
def client_factory(twilio_client):
    return Mock(return_value=twilio_client)


@pytest.fixture
def whatsapp_config():
    return WhatsAppConfig(
        enabled=True,
        account_sid="AC123",
        auth_token="secret",
        phone_number_id="+15550000000",
        webhook_url="https://hub.example.com/webhook",
    )


@pytest.fixture
def voice_config():
    return VoiceConfig(
        enabled=True,
        account_sid="AC123",
        auth_token="secret",
        phone_number="+15550000001",
    )


@pytest.fixture
def social_config():
    return SocialMediaConfig(
        enabled=True,
        platforms=SocialPlatformsConfig(facebook=FacebookConfig(page_id="PAGE1", access_token="fb-token")),
    )


@pytest.fixture
def ai_config():
    return AIConfig(provider="custom", model="gpt-4", context_window=10)


@pytest.fixture
def agent_config(whatsapp_config, voice_config, social_config, ai_config):
    return AgentConfig(
        whatsapp=whatsapp_config,
        voice=voice_config,
        social_media=social_config,
        ai=ai_config,
    )


@pytest.fixture
def whatsapp_service(whatsapp_config, client_factory):
    return WhatsAppService(whatsapp_config, client_factory=client_factory)


@pytest.fixture
def voice_service(voice_config, client_factory):
    return VoiceService(voice_config, client_factory=client_factory)


@pytest.fixture
def social_service(social_config):
    service = SocialMediaService(social_config, session=MagicMock())
    service._graph_request = AsyncMock(return_value={"id": "PAGE1", "message_id": "m_provider_1"})
    return service


@pytest.fixture
def ai_service(ai_config, fake_provider):
    return AIService(ai_config, provider=fake_provider)


@pytest.fixture
def store():
    return ConversationStore()


@pytest.fixture
def router(agent_config, whatsapp_service, voice_service, social_service, ai_service, store):
    return JibbyService(
        agent_config,
        adapters={
            ChannelType.WHATSAPP: whatsapp_service,
            ChannelType.VOICE: voice_service,
            ChannelType.SOCIAL: social_service,
        },
        ai_service=ai_service,
        store=store,
    )


@pytest_asyncio.fixture
async def connected_router(router):
    await router.start()
    yield router
    await router.stop()
