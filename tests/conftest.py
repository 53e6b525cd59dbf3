import pytest

from common.config import CorrectionSettings
from common.errors import ExternalServiceFailure


class FakeChatClient:
    """Stands in for ChatClient; replies are looked up by pipeline phase.

    A reply may be a dict, an exception instance, or a callable taking the
    messages and returning either. Phases without a reply are unreachable.
    """

    def __init__(self, replies=None):
        self.replies = replies or {}
        self.calls = []

    async def complete_json(self, messages, *, temperature, model=None, phase="chat"):
        self.calls.append({"phase": phase, "messages": messages, "model": model, "temperature": temperature})
        reply = self.replies.get(phase)
        if reply is None:
            raise ExternalServiceFailure(phase, "service unreachable")
        if callable(reply):
            reply = reply(messages)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def phases(self):
        return [call["phase"] for call in self.calls]


@pytest.fixture
def fake_client():
    return FakeChatClient


@pytest.fixture
def correction_settings():
    return CorrectionSettings(
        api_key="",
        batch_size=4,
        max_segments=80,
        max_targets=5,
        min_targets=2,
        padding_min_segments=6,
    )
