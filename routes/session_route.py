"""FastAPI routes for live session lifecycle and input."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.session_controller import (
	conversations,
	send_image,
	send_message,
	session_snapshot,
	show_next,
	show_previous,
	start_session,
	stop_session,
	stored_settings,
)
from models.session_models import InstructionProfile, Verbosity
from utils.media_validation import ensure_base64_image

router = APIRouter(prefix="/session")


class StartPayload(BaseModel):
	provider: Optional[str] = None
	credential: Optional[str] = None
	profile: Optional[InstructionProfile] = None
	custom_instructions: str = ""
	locale: str = "en-US"
	search_tool_enabled: Optional[bool] = None
	verbosity: Optional[Verbosity] = None


class MessagePayload(BaseModel):
	text: str


class ImagePayload(BaseModel):
	image_b64: str


@router.get("")
async def session_route(request: Request):
	return session_snapshot(request)


@router.get("/settings")
async def settings_route(request: Request):
	try:
		return await stored_settings(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/start")
async def start_session_route(request: Request, payload: StartPayload):
	try:
		return await start_session(
			request,
			provider=payload.provider,
			credential=payload.credential,
			profile=payload.profile,
			custom_instructions=payload.custom_instructions,
			locale=payload.locale,
			search_tool_enabled=payload.search_tool_enabled,
			verbosity=payload.verbosity,
		)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/stop")
async def stop_session_route(request: Request):
	try:
		return await stop_session(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/messages")
async def post_message_route(request: Request, payload: MessagePayload):
	try:
		return await send_message(request, payload.text)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/images")
async def post_image_route(request: Request, payload: ImagePayload):
	try:
		image_b64 = ensure_base64_image(payload.image_b64)
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	try:
		return await send_image(request, image_b64)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/conversations")
async def conversations_route(request: Request):
	return conversations(request)


@router.post("/conversations/previous")
async def previous_conversation_route(request: Request):
	return show_previous(request)


@router.post("/conversations/next")
async def next_conversation_route(request: Request):
	return show_next(request)
