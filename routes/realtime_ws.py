"""WebSocket endpoint carrying session events and consumer input."""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException, WebSocket
from starlette.websockets import WebSocketDisconnect

from services.realtime.event_channel import InMemoryEventChannel
from services.realtime.ws_session import RealtimeSessionHandler

router = APIRouter()


def _require_event_channel(websocket: WebSocket) -> InMemoryEventChannel:
	channel = getattr(websocket.app.state, "event_channel", None)
	if channel is None:
		raise HTTPException(status_code=500, detail="Event channel unavailable")
	return channel


@router.websocket("/ws/events")
async def events_socket(websocket: WebSocket, channel: InMemoryEventChannel = Depends(_require_event_channel)):
	"""Push every session event to the client and accept send-audio/text/image messages."""
	await websocket.accept()
	handler = RealtimeSessionHandler(websocket.app.state.orchestrator, getattr(websocket.app.state, "reconciler", None))
	subscription = channel.subscribe()
	forwarder = asyncio.create_task(handler.forward(websocket, subscription))
	try:
		while True:
			try:
				raw = await websocket.receive_text()
			except WebSocketDisconnect:
				break
			try:
				message = json.loads(raw)
			except ValueError:
				await websocket.send_text(json.dumps({"topic": "error", "detail": "Payload must be JSON"}))
				continue
			if not isinstance(message, dict):
				await websocket.send_text(json.dumps({"topic": "error", "detail": "Payload must be a JSON object"}))
				continue
			await handler.handle(websocket, message)
	finally:
		subscription.close()
		forwarder.cancel()
		try:
			await forwarder
		except asyncio.CancelledError:
			pass
		except Exception:
			# The socket is already gone; nothing left to deliver.
			pass
	try:
		await websocket.close()
	except Exception:
		pass
