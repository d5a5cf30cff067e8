"""Turn-based provider built on Google Gemini via google-genai."""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Dict, List, Optional

from google import genai
from google.genai import types

from models.session_models import ProviderKind, SessionConfig
from services.providers.base import ProviderAdapter, ProviderCallbacks, SessionHandle, is_auth_failure
from services.realtime.errors import CredentialError, ProviderError
from services.realtime.prompts import screenshot_prompt, system_prompt
from services.realtime.response_parser import extract_gemini_text

LOGGER = logging.getLogger(__name__)

GEMINI_MODEL = "gemini-2.5-flash"
MAX_OUTPUT_TOKENS = 1000


class GeminiChatAdapter(ProviderAdapter):
    """Answer each message with one generate_content call carrying prior turns."""

    kind = ProviderKind.CHAT_B

    def __init__(self, model: str = GEMINI_MODEL, client_factory: Callable[..., Any] = genai.Client) -> None:
        self.model = model
        self._client_factory = client_factory

    async def open(self, config: SessionConfig, callbacks: ProviderCallbacks) -> SessionHandle:
        if not config.credential:
            raise CredentialError()
        try:
            client = self._client_factory(api_key=config.credential)
        except Exception as exc:
            raise ProviderError(f"Failed to create Gemini client: {exc}") from exc
        return SessionHandle(provider=self.kind, config=config, client=client)

    def build_contents(self, history: List[Dict[str, str]], parts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Return prior turns (oldest first, assistant mapped to model) and the new user turn."""
        contents: List[Dict[str, Any]] = []
        for message in history:
            role = "model" if message["role"] == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": message["content"]}]})
        contents.append({"role": "user", "parts": parts})
        return contents

    def generation_config(self, config: SessionConfig) -> types.GenerateContentConfig:
        tools = [types.Tool(google_search=types.GoogleSearch())] if config.search_tool_enabled else None
        return types.GenerateContentConfig(
            system_instruction=system_prompt(config),
            max_output_tokens=MAX_OUTPUT_TOKENS,
            tools=tools,
        )

    async def _respond(self, handle: SessionHandle, contents: List[Dict[str, Any]]) -> str:
        try:
            response = await handle.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=self.generation_config(handle.config),
            )
        except Exception as exc:
            LOGGER.error("Gemini generate_content failed: %s", exc)
            if is_auth_failure(exc):
                raise CredentialError() from exc
            raise ProviderError(str(exc)) from exc
        return extract_gemini_text(response)

    async def send_text(self, handle: Optional[SessionHandle], text: str, history: List[Dict[str, str]]) -> str:
        handle = self.require_open(handle)
        return await self._respond(handle, self.build_contents(history, [{"text": text}]))

    async def send_image(self, handle: Optional[SessionHandle], image_b64: str, history: List[Dict[str, str]]) -> str:
        handle = self.require_open(handle)
        parts = [
            {"text": screenshot_prompt()},
            {"inline_data": {"mime_type": "image/jpeg", "data": base64.b64decode(image_b64)}},
        ]
        return await self._respond(handle, self.build_contents(history, parts))
