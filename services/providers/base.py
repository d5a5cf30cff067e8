"""Provider adapter contract shared by streaming and turn-based backends."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional

from models.session_models import ProviderKind, SessionConfig
from services.realtime.errors import (
    SessionInactiveError,
    UnsupportedOperation,
    looks_like_credential_failure,
)

AUTH_STATUS_CODES = (401, 403)


@dataclass
class ProviderCallbacks:
    """Coroutines a streaming adapter invokes as backend events arrive.

    Callbacks are awaited one at a time, in the order the backend delivered
    the events.
    """

    on_transcription: Callable[[str], Awaitable[None]]
    on_answer_part: Callable[[str], Awaitable[None]]
    on_generation_complete: Callable[[], Awaitable[None]]
    on_error: Callable[[str], Awaitable[None]]
    on_terminated: Callable[[str, Optional[BaseException]], Awaitable[None]]


@dataclass
class SessionHandle:
    """An open provider session.

    Attributes:
        provider: Provider the handle belongs to.
        config: Configuration the session was opened with.
        client: SDK client bound to the session credential.
        connection: Live duplex connection (streaming provider only).
        reader: Background task reading the live connection.
        closed: True once the handle was closed or the backend dropped it.
    """

    provider: ProviderKind
    config: SessionConfig = field(repr=False)
    client: Any = field(default=None, repr=False)
    connection: Any = field(default=None, repr=False)
    reader: Optional["asyncio.Task[None]"] = field(default=None, repr=False)
    closed: bool = False
    extra: Dict[str, Any] = field(default_factory=dict, repr=False)


def is_auth_failure(exc: BaseException) -> bool:
    """Return True when an SDK exception means the credential was rejected."""
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and value in AUTH_STATUS_CODES:
            return True
    response = getattr(exc, "response", None)
    if getattr(response, "status_code", None) in AUTH_STATUS_CODES:
        return True
    return looks_like_credential_failure(str(exc))


class ProviderAdapter(ABC):
    """Uniform interface over one backend.

    Turn-based adapters return the answer text from `send_text` and
    `send_image`; the streaming adapter returns None and reports output through
    the callbacks given to `open`.
    """

    kind: ClassVar[ProviderKind]
    streaming: ClassVar[bool] = False

    @abstractmethod
    async def open(self, config: SessionConfig, callbacks: ProviderCallbacks) -> SessionHandle:
        """Open a session, raising CredentialError or ProviderError on failure."""

    @abstractmethod
    async def send_text(
        self, handle: Optional[SessionHandle], text: str, history: List[Dict[str, str]]
    ) -> Optional[str]:
        """Send a user message; history holds prior turns, oldest first."""

    @abstractmethod
    async def send_image(
        self, handle: Optional[SessionHandle], image_b64: str, history: List[Dict[str, str]]
    ) -> Optional[str]:
        """Send a base64 JPEG frame."""

    async def send_audio_chunk(self, handle: Optional[SessionHandle], pcm_b64: str) -> None:
        raise UnsupportedOperation(f"Audio streaming is not supported by the {self.kind.value} provider")

    async def close(self, handle: Optional[SessionHandle]) -> None:
        """Close the session. Closing twice is a no-op."""
        if handle is not None:
            handle.closed = True

    @staticmethod
    def require_open(handle: Optional[SessionHandle]) -> SessionHandle:
        if handle is None or handle.closed:
            raise SessionInactiveError()
        return handle

