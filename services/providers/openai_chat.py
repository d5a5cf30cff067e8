"""Turn-based provider built on the OpenAI Responses API."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from openai import AsyncOpenAI

from models.session_models import ProviderKind, SessionConfig
from services.providers.base import ProviderAdapter, ProviderCallbacks, SessionHandle, is_auth_failure
from services.realtime.errors import CredentialError, ProviderError
from services.realtime.prompts import screenshot_prompt, system_prompt
from services.realtime.response_parser import extract_text, extract_usage

LOGGER = logging.getLogger(__name__)

CHAT_MODEL = "gpt-4o"
MAX_OUTPUT_TOKENS = 1000


class OpenAIChatAdapter(ProviderAdapter):
    """Answer each message with one Responses API call carrying prior turns."""

    kind = ProviderKind.CHAT_A

    def __init__(self, model: str = CHAT_MODEL, client_factory: Callable[..., Any] = AsyncOpenAI) -> None:
        self.model = model
        self._client_factory = client_factory

    async def open(self, config: SessionConfig, callbacks: ProviderCallbacks) -> SessionHandle:
        try:
            client = self._client_factory(api_key=config.credential)
        except Exception as exc:
            if is_auth_failure(exc) or not config.credential:
                raise CredentialError() from exc
            raise ProviderError(f"Failed to create OpenAI client: {exc}") from exc
        return SessionHandle(provider=self.kind, config=config, client=client)

    def build_input(self, history: List[Dict[str, str]], content: Any) -> List[Dict[str, Any]]:
        """Return prior turns (oldest first) followed by the new user message."""
        messages: List[Dict[str, Any]] = [
            {"role": message["role"], "content": message["content"]} for message in history
        ]
        messages.append({"role": "user", "content": content})
        return messages

    async def _respond(self, handle: SessionHandle, inputs: List[Dict[str, Any]]) -> str:
        tools = [{"type": "web_search_preview"}] if handle.config.search_tool_enabled else []
        start = time.time()
        try:
            response = await handle.client.responses.create(
                model=self.model,
                instructions=system_prompt(handle.config),
                input=inputs,
                tools=tools,
                max_output_tokens=MAX_OUTPUT_TOKENS,
            )
        except Exception as exc:
            LOGGER.error("OpenAI Responses API call failed: %s", exc)
            if is_auth_failure(exc):
                raise CredentialError() from exc
            raise ProviderError(str(exc)) from exc
        usage = extract_usage(response)
        LOGGER.info(
            "OpenAI response in %.3fs (input_tokens=%s, output_tokens=%s)",
            time.time() - start,
            usage["input_tokens"],
            usage["output_tokens"],
        )
        return extract_text(response)

    async def send_text(self, handle: Optional[SessionHandle], text: str, history: List[Dict[str, str]]) -> str:
        handle = self.require_open(handle)
        return await self._respond(handle, self.build_input(history, text))

    async def send_image(self, handle: Optional[SessionHandle], image_b64: str, history: List[Dict[str, str]]) -> str:
        handle = self.require_open(handle)
        content = [
            {"type": "input_text", "text": screenshot_prompt()},
            {"type": "input_image", "image_url": f"data:image/jpeg;base64,{image_b64}"},
        ]
        return await self._respond(handle, self.build_input(history, content))
