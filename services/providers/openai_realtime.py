"""Streaming provider built on the OpenAI Realtime API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from openai import AsyncOpenAI

from models.session_models import ProviderKind, SessionConfig
from services.providers.base import ProviderAdapter, ProviderCallbacks, SessionHandle, is_auth_failure
from services.realtime.errors import CredentialError, ProviderError, TransientProviderError, looks_like_credential_failure
from services.realtime.prompts import system_prompt
from services.realtime.response_parser import extract_error_message

LOGGER = logging.getLogger(__name__)

REALTIME_MODEL = "gpt-realtime"
TRANSCRIBE_MODEL = "gpt-4o-mini-transcribe"
PCM_SAMPLE_RATE = 24000

TRANSCRIPTION_DELTA = "conversation.item.input_audio_transcription.delta"
TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
TEXT_DELTAS = ("response.output_text.delta", "response.text.delta")
RESPONSE_DONE = "response.done"


def _language(locale: str) -> str:
    return (locale or "en-US").split("-", 1)[0].lower() or "en"


class OpenAIRealtimeAdapter(ProviderAdapter):
    """Hold one duplex realtime session and push its output through callbacks."""

    kind = ProviderKind.STREAMING
    streaming = True

    def __init__(
        self,
        model: str = REALTIME_MODEL,
        client_factory: Callable[..., Any] = AsyncOpenAI,
    ) -> None:
        self.model = model
        self._client_factory = client_factory

    def session_payload(self, config: SessionConfig) -> Dict[str, Any]:
        """Return the session.update body for a configuration."""
        if config.search_tool_enabled:
            LOGGER.debug("Web search tool is not available on the realtime backend; flag ignored")
        return {
            "type": "realtime",
            "output_modalities": ["text"],
            "instructions": system_prompt(config),
            "audio": {
                "input": {
                    "format": {"type": "audio/pcm", "rate": PCM_SAMPLE_RATE},
                    "transcription": {"model": TRANSCRIBE_MODEL, "language": _language(config.locale)},
                    "turn_detection": {"type": "server_vad"},
                }
            },
        }

    async def open(self, config: SessionConfig, callbacks: ProviderCallbacks) -> SessionHandle:
        try:
            client = self._client_factory(api_key=config.credential)
            connection = await client.realtime.connect(model=self.model).enter()
        except Exception as exc:
            if is_auth_failure(exc):
                raise CredentialError() from exc
            raise ProviderError(f"Failed to open realtime session: {exc}") from exc

        handle = SessionHandle(provider=self.kind, config=config, client=client, connection=connection)
        try:
            await connection.session.update(session=self.session_payload(config))
        except Exception as exc:
            await self.close(handle)
            if is_auth_failure(exc):
                raise CredentialError() from exc
            raise ProviderError(f"Failed to configure realtime session: {exc}") from exc

        handle.extra["transcribed_items"] = set()
        handle.reader = asyncio.create_task(self._read_events(handle, callbacks))
        LOGGER.info("Realtime session opened with model %s", self.model)
        return handle

    async def _read_events(self, handle: SessionHandle, callbacks: ProviderCallbacks) -> None:
        """Forward backend events to callbacks until the connection ends."""
        reason = "connection closed"
        error: Optional[BaseException] = None
        try:
            async for event in handle.connection:
                event_type = getattr(event, "type", "")
                if event_type == TRANSCRIPTION_DELTA:
                    handle.extra["transcribed_items"].add(getattr(event, "item_id", None))
                    await callbacks.on_transcription(getattr(event, "delta", "") or "")
                elif event_type == TRANSCRIPTION_COMPLETED:
                    # Some transcription models only report the final transcript.
                    item_id = getattr(event, "item_id", None)
                    if item_id not in handle.extra["transcribed_items"]:
                        await callbacks.on_transcription(getattr(event, "transcript", "") or "")
                    handle.extra["transcribed_items"].discard(item_id)
                elif event_type in TEXT_DELTAS:
                    await callbacks.on_answer_part(getattr(event, "delta", "") or "")
                elif event_type == RESPONSE_DONE:
                    await callbacks.on_generation_complete()
                elif event_type == "error":
                    message = extract_error_message(event)
                    if looks_like_credential_failure(message):
                        reason = message
                        error = CredentialError()
                        break
                    await callbacks.on_error(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Realtime connection dropped: %s", exc)
            reason = str(exc) or type(exc).__name__
            error = CredentialError() if is_auth_failure(exc) else TransientProviderError(reason)

        if handle.closed:
            return
        await self._close_connection(handle)
        await callbacks.on_terminated(reason, error)

    async def send_text(self, handle: Optional[SessionHandle], text: str, history: List[Dict[str, str]]) -> None:
        handle = self.require_open(handle)
        await handle.connection.conversation.item.create(
            item={"type": "message", "role": "user", "content": [{"type": "input_text", "text": text}]}
        )
        await handle.connection.response.create()
        return None

    async def send_audio_chunk(self, handle: Optional[SessionHandle], pcm_b64: str) -> None:
        handle = self.require_open(handle)
        await handle.connection.input_audio_buffer.append(audio=pcm_b64)

    async def send_image(self, handle: Optional[SessionHandle], image_b64: str, history: List[Dict[str, str]]) -> None:
        handle = self.require_open(handle)
        await handle.connection.conversation.item.create(
            item={
                "type": "message",
                "role": "user",
                "content": [{"type": "input_image", "image_url": f"data:image/jpeg;base64,{image_b64}"}],
            }
        )
        await handle.connection.response.create()
        return None

    async def close(self, handle: Optional[SessionHandle]) -> None:
        if handle is None or handle.closed:
            return
        await self._close_connection(handle)
        reader = handle.reader
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

    async def _close_connection(self, handle: SessionHandle) -> None:
        handle.closed = True
        try:
            await handle.connection.close()
        except Exception as exc:
            LOGGER.debug("Ignoring error while closing realtime connection: %s", exc)
