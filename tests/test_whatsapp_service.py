# tests/test_whatsapp_service.py
import pytest
from twilio.base.exceptions import TwilioRestException

from models.agent_config import WhatsAppConfig
from models.message import ChannelType, Message, MessageStatus
from services.exceptions import AdapterInitError, NotConnectedError, ProviderError
from services.whatsapp_service import WhatsAppService
from tests.helpers import record_events


def outbound(recipient="+1 (555) 123-4567", content="Your order shipped"):
    return Message(conversation_id="c1", sender="jibby-ai", recipient=recipient,
                   content=content, channel=ChannelType.WHATSAPP)


class TestWhatsAppConnection:

    def test_client_built_from_credentials(self, whatsapp_service, client_factory):
        client_factory.assert_called_once_with("AC123", "secret")
        assert whatsapp_service.client is not None

    @pytest.mark.asyncio
    async def test_connect_without_credentials(self, client_factory):
        service = WhatsAppService(WhatsAppConfig(enabled=True), client_factory=client_factory)

        with pytest.raises(AdapterInitError):
            await service.connect()
        client_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_connect_round_trip(self, whatsapp_service, twilio_client):
        events = record_events(whatsapp_service, "connected")

        await whatsapp_service.connect()

        assert whatsapp_service.connected
        twilio_client.messages.list.assert_called_once_with(limit=1)
        assert events["connected"] == [None]

    @pytest.mark.asyncio
    async def test_connect_provider_failure(self, whatsapp_service, twilio_client):
        twilio_client.messages.list.side_effect = TwilioRestException(401, "/Messages", "Authenticate")

        with pytest.raises(ProviderError):
            await whatsapp_service.connect()
        assert not whatsapp_service.connected

    @pytest.mark.asyncio
    async def test_disconnect(self, whatsapp_service):
        await whatsapp_service.connect()
        events = record_events(whatsapp_service, "disconnected")

        await whatsapp_service.disconnect()

        assert not whatsapp_service.connected
        assert events["disconnected"] == [None]


class TestWhatsAppSend:

    @pytest.mark.asyncio
    async def test_send_before_connect(self, whatsapp_service):
        with pytest.raises(NotConnectedError):
            await whatsapp_service.send_message(outbound())

    @pytest.mark.asyncio
    async def test_send_normalizes_addresses(self, whatsapp_service, twilio_client):
        await whatsapp_service.connect()
        events = record_events(whatsapp_service, "messageSent")
        message = outbound()

        sent = await whatsapp_service.send_message(message)

        twilio_client.messages.create.assert_called_once_with(
            body="Your order shipped",
            from_="whatsapp:+15550000000",
            to="whatsapp:+15551234567",
            status_callback="https://hub.example.com/webhook/whatsapp/status",
        )
        assert sent.id == "SM-provider-1"
        assert sent.status == MessageStatus.SENT
        assert sent.timestamp >= message.timestamp
        assert events["messageSent"] == [sent]

    @pytest.mark.asyncio
    async def test_send_without_webhook_url(self, client_factory):
        service = WhatsAppService(
            WhatsAppConfig(enabled=True, accountSid="AC1", authToken="t", phoneNumberId="+15550000000"),
            client_factory=client_factory,
        )
        await service.connect()

        await service.send_message(outbound("whatsapp:+15551234567"))

        kwargs = client_factory.return_value.messages.create.call_args.kwargs
        assert "status_callback" not in kwargs
        assert kwargs["to"] == "whatsapp:+15551234567"

    @pytest.mark.asyncio
    async def test_send_provider_error(self, whatsapp_service, twilio_client):
        await whatsapp_service.connect()
        twilio_client.messages.create.side_effect = TwilioRestException(400, "/Messages", "Invalid 'To'")
        events = record_events(whatsapp_service, "error", "messageSent")

        with pytest.raises(ProviderError) as exc_info:
            await whatsapp_service.send_message(outbound())

        assert exc_info.value.provider == "whatsapp"
        assert events["messageSent"] == []
        assert events["error"][0].conversation_id == "c1"

    @pytest.mark.asyncio
    async def test_send_invalid_number(self, whatsapp_service):
        await whatsapp_service.connect()

        with pytest.raises(ProviderError):
            await whatsapp_service.send_message(outbound(recipient="not a number"))


class TestWhatsAppInbound:

    @pytest.mark.asyncio
    async def test_incoming_message(self, whatsapp_service):
        events = record_events(whatsapp_service, "message")

        message = await whatsapp_service.handle_incoming_message({
            "MessageSid": "SM100",
            "From": "whatsapp:+15551112222",
            "To": "whatsapp:+15550000000",
            "Body": "Where is my order?",
            "ProfileName": "Ada",
        })

        assert events["message"] == [message]
        assert message.id == "SM100"
        assert message.conversation_id == "SM100"
        assert message.sender == "+15551112222"
        assert message.status == MessageStatus.DELIVERED
        assert message.channel == ChannelType.WHATSAPP
        assert message.metadata["payload"]["ProfileName"] == "Ada"

    @pytest.mark.asyncio
    async def test_incoming_message_uses_thread_id(self, whatsapp_service):
        message = await whatsapp_service.handle_incoming_message({
            "MessageSid": "SM101",
            "ConversationSid": "CH7",
            "From": "whatsapp:+15551112222",
            "To": "whatsapp:+15550000000",
            "Body": "again",
        })
        assert message.conversation_id == "CH7"

    @pytest.mark.asyncio
    async def test_malformed_payload_emits_error(self, whatsapp_service):
        events = record_events(whatsapp_service, "error", "message")

        assert await whatsapp_service.handle_incoming_message({"Body": "no sid"}) is None

        assert events["message"] == []
        assert len(events["error"]) == 1

    @pytest.mark.asyncio
    async def test_status_webhook(self, whatsapp_service):
        events = record_events(whatsapp_service, "messageStatus")

        await whatsapp_service.handle_webhook({"MessageSid": "SM100", "MessageStatus": "delivered"})

        assert events["messageStatus"][0]["messageId"] == "SM100"
        assert events["messageStatus"][0]["status"] == "delivered"


class TestWhatsAppConfig:

    def test_credential_change_rebuilds_client(self, whatsapp_service, client_factory):
        whatsapp_service.update_config({"authToken": "rotated"})
        client_factory.assert_called_with("AC123", "rotated")
        assert client_factory.call_count == 2

    def test_non_credential_change_keeps_client(self, whatsapp_service, client_factory):
        client = whatsapp_service.client
        whatsapp_service.update_config({"webhookUrl": "https://new.example.com/webhook"})

        assert whatsapp_service.client is client
        assert whatsapp_service.webhook_url == "https://new.example.com/webhook"
        assert client_factory.call_count == 1

    @pytest.mark.asyncio
    async def test_connected_flag_survives_credential_change(self, whatsapp_service):
        await whatsapp_service.connect()
        whatsapp_service.update_config({"accountSid": "AC999"})
        assert whatsapp_service.connected

    def test_status(self, whatsapp_service):
        assert whatsapp_service.get_status() == {
            "enabled": True,
            "connected": False,
            "phoneNumber": "+15550000000",
        }
