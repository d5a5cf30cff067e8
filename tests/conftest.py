"""Shared fixtures and fakes for the session test suite."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from models.session_models import InstructionProfile, ProviderKind, SessionConfig
from services.providers.base import ProviderAdapter, ProviderCallbacks, SessionHandle
from services.realtime.orchestrator import SessionOrchestrator
from services.realtime.reconnection import ReconnectionPolicy


class RecordingSink:
    """Event sink that keeps every published message."""

    def __init__(self) -> None:
        self.messages: List[Tuple[str, Any]] = []

    async def publish(self, topic: str, payload: Any) -> None:
        self.messages.append((topic, payload))

    def topics(self) -> List[str]:
        return [topic for topic, _ in self.messages]

    def statuses(self) -> List[str]:
        return [payload["status"] for topic, payload in self.messages if topic == "status"]

    def payloads(self, topic: str) -> List[Any]:
        return [payload for name, payload in self.messages if name == topic]


class FakeStreamingAdapter(ProviderAdapter):
    """Streaming adapter driven by the test through the captured callbacks."""

    kind = ProviderKind.STREAMING
    streaming = True

    def __init__(self, open_errors: Optional[List[Optional[BaseException]]] = None) -> None:
        self.open_errors = list(open_errors or [])
        self.open_calls = 0
        self.close_calls = 0
        self.callbacks: Optional[ProviderCallbacks] = None
        self.sent_text: List[str] = []
        self.audio: List[str] = []
        self.images: List[str] = []

    async def open(self, config: SessionConfig, callbacks: ProviderCallbacks) -> SessionHandle:
        self.open_calls += 1
        if self.open_errors:
            error = self.open_errors.pop(0)
            if error is not None:
                raise error
        self.callbacks = callbacks
        return SessionHandle(provider=self.kind, config=config)

    async def send_text(self, handle, text, history):
        self.require_open(handle)
        self.sent_text.append(text)
        return None

    async def send_audio_chunk(self, handle, pcm_b64):
        self.require_open(handle)
        self.audio.append(pcm_b64)

    async def send_image(self, handle, image_b64, history):
        self.require_open(handle)
        self.images.append(image_b64)
        return None

    async def close(self, handle):
        if handle is None or handle.closed:
            return
        handle.closed = True
        self.close_calls += 1


class FakeChatAdapter(ProviderAdapter):
    """Turn-based adapter answering from a scripted list of replies."""

    kind = ProviderKind.CHAT_A

    def __init__(self, replies: Optional[List[Any]] = None) -> None:
        self.replies = list(replies or [])
        self.requests: List[Dict[str, Any]] = []
        self.opened: List[SessionConfig] = []

    async def open(self, config, callbacks):
        self.opened.append(config)
        return SessionHandle(provider=self.kind, config=config)

    def _next_reply(self) -> str:
        reply = self.replies.pop(0) if self.replies else "ok"
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def send_text(self, handle, text, history):
        self.require_open(handle)
        self.requests.append({"text": text, "history": list(history)})
        return self._next_reply()

    async def send_image(self, handle, image_b64, history):
        self.require_open(handle)
        self.requests.append({"image": image_b64, "history": list(history)})
        return self._next_reply()


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def streaming_adapter() -> FakeStreamingAdapter:
    return FakeStreamingAdapter()


@pytest.fixture
def chat_adapter() -> FakeChatAdapter:
    return FakeChatAdapter()


@pytest.fixture
def streaming_config() -> SessionConfig:
    return SessionConfig(provider=ProviderKind.STREAMING, credential="k", profile=InstructionProfile.INTERVIEW)


@pytest.fixture
def chat_config() -> SessionConfig:
    return SessionConfig(provider=ProviderKind.CHAT_A, credential="k")


@pytest.fixture
def orchestrator(sink, streaming_adapter, chat_adapter) -> SessionOrchestrator:
    return SessionOrchestrator(
        sinks=[sink],
        adapters={
            ProviderKind.STREAMING: streaming_adapter,
            ProviderKind.CHAT_A: chat_adapter,
        },
        policy=ReconnectionPolicy(max_attempts=3, delay_seconds=2.0),
        sleep=no_sleep,
    )
