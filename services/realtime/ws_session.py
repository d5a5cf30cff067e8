"""Bridge one websocket consumer to the session orchestrator."""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import WebSocket

from models.session_models import OperationResult, SessionState
from models.stream_events import TOPIC_SEND_AUDIO, TOPIC_SEND_IMAGE, TOPIC_SEND_TEXT
from services.conversation.reconciler import ConversationReconciler
from services.realtime.event_channel import Subscription
from services.realtime.orchestrator import SCREENSHOT_QUESTION, SessionOrchestrator
from utils.media_validation import ensure_base64_audio, ensure_base64_image


class RealtimeSessionHandler:
	"""Forward session events to a websocket and route its inbound messages."""

	def __init__(self, orchestrator: SessionOrchestrator, reconciler: Optional[ConversationReconciler] = None) -> None:
		self.orchestrator = orchestrator
		self.reconciler = reconciler

	async def forward(self, websocket: WebSocket, subscription: Subscription) -> None:
		"""Send every channel message to the websocket as ``{topic, payload}``."""
		async for topic, payload in subscription:
			await self._send(websocket, {"topic": topic, "payload": payload})

	async def handle(self, websocket: WebSocket, message: Dict[str, Any]) -> None:
		"""Process a single inbound websocket message."""
		request_id = message.get("request_id")
		topic = message.get("topic")
		payload = message.get("payload")
		try:
			result = await self._dispatch(topic, payload)
			# Audio chunks stream continuously; only their failures are reported.
			if topic != TOPIC_SEND_AUDIO or not result.success:
				await self._send(websocket, {"topic": "ack", "request_id": request_id, **result.to_dict()})
		except Exception as exc:
			await self._send_error(websocket, request_id, str(exc))

	async def _dispatch(self, topic: Optional[str], payload: Any) -> OperationResult:
		if topic == TOPIC_SEND_AUDIO:
			return await self.orchestrator.send_audio(ensure_base64_audio(payload))
		if topic == TOPIC_SEND_TEXT:
			if not isinstance(payload, str) or not payload.strip():
				raise ValueError("Message text is required.")
			self._start_turn(payload.strip())
			return await self.orchestrator.send_text(payload)
		if topic == TOPIC_SEND_IMAGE:
			if not isinstance(payload, (str, bytes)):
				raise ValueError("Image payload is required.")
			image_b64 = ensure_base64_image(payload)
			self._start_turn(SCREENSHOT_QUESTION, image_b64)
			return await self.orchestrator.send_image(image_b64)
		raise ValueError("Unsupported message topic.")

	def _start_turn(self, text: str, image_b64: Optional[str] = None) -> None:
		if self.reconciler is not None and self.orchestrator.state == SessionState.CONNECTED:
			self.reconciler.start_turn(text, image_b64)

	async def _send_error(self, websocket: WebSocket, request_id: Any, detail: str) -> None:
		await self._send(websocket, {"topic": "error", "request_id": request_id, "detail": detail})

	async def _send(self, websocket: WebSocket, payload: Dict[str, Any]) -> None:
		await websocket.send_text(json.dumps(payload))
