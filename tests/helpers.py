# tests/helpers.py
from unittest.mock import MagicMock, Mock

from services.llm_providers import BaseLLMProvider, Completion


class FakeProvider(BaseLLMProvider):
    """Records every prompt and answers with a canned reply"""

    def __init__(self, content="Hello from Jibby", error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def generate_response(self, messages, model, temperature, max_tokens):
        self.calls.append({
            "messages": messages,
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        if self.error:
            raise self.error
        return Completion(
            content=self.content,
            usage={"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
            model=model,
        )


def make_twilio_client():
    """Mock twilio.rest.Client covering messages and calls"""
    client = MagicMock()
    client.messages.list.return_value = []
    client.messages.create.return_value = Mock(sid="SM-provider-1", status="queued")
    client.calls.list.return_value = []
    client.calls.create.return_value = Mock(sid="CA-outbound-1", status="queued")
    return client


def record_events(emitter, *events):
    """Collect emitted payloads per event name"""
    seen = {event: [] for event in events}
    for event in events:
        emitter.on(event, lambda *args, _event=event: seen[_event].append(args[0] if args else None))
    return seen
