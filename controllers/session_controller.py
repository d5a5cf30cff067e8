"""Session lifecycle helpers for live conversation workflows."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request

from models.session_models import (
	InstructionProfile,
	OperationResult,
	ProviderKind,
	SessionConfig,
	SessionState,
	Verbosity,
)
from services.conversation.reconciler import ConversationReconciler
from services.realtime.errors import SessionNotConfigured, UnsupportedProvider
from services.realtime.orchestrator import SCREENSHOT_QUESTION, SessionOrchestrator


def _orchestrator(request: Request) -> SessionOrchestrator:
	return request.app.state.orchestrator


def _reconciler(request: Request) -> ConversationReconciler:
	return request.app.state.reconciler


def _with_state(orchestrator: SessionOrchestrator, result: OperationResult) -> Dict[str, Any]:
	payload = result.to_dict()
	payload["state"] = orchestrator.state.value
	payload["session_id"] = orchestrator.session_id
	return payload


async def start_session(
	request: Request,
	*,
	provider: Optional[str] = None,
	credential: Optional[str] = None,
	profile: Optional[InstructionProfile] = None,
	custom_instructions: str = "",
	locale: str = "en-US",
	search_tool_enabled: Optional[bool] = None,
	verbosity: Optional[Verbosity] = None,
) -> Dict[str, Any]:
	"""
	Open a session with the requested provider and return the outcome.

	When the provider or credential is left out, the missing fields are filled
	from the last stored settings. Without stored settings for that provider the
	request fails with `SessionNotConfigured`.
	"""
	orchestrator = _orchestrator(request)
	if provider is None or not credential:
		stored = await orchestrator.stored_settings()
		if stored is None or not stored.credential or provider not in (None, stored.provider.value):
			return _with_state(orchestrator, OperationResult.failed(SessionNotConfigured()))
		provider = stored.provider.value
		credential = credential or stored.credential
		profile = profile or stored.profile
		if search_tool_enabled is None:
			search_tool_enabled = stored.search_tool_enabled
		verbosity = verbosity or stored.verbosity
	try:
		kind = ProviderKind(provider)
	except ValueError:
		return _with_state(orchestrator, OperationResult.failed(UnsupportedProvider(f"Unsupported AI provider: {provider!r}")))
	config = SessionConfig(
		provider=kind,
		credential=credential,
		profile=profile or InstructionProfile.INTERVIEW,
		custom_instructions=custom_instructions,
		locale=locale,
		search_tool_enabled=True if search_tool_enabled is None else search_tool_enabled,
		verbosity=verbosity or Verbosity.SHORT,
	)
	result = await orchestrator.start(config)
	return _with_state(orchestrator, result)


async def stop_session(request: Request) -> Dict[str, Any]:
	"""Close the active session, if any."""
	orchestrator = _orchestrator(request)
	return _with_state(orchestrator, await orchestrator.stop())


async def send_message(request: Request, text: str) -> Dict[str, Any]:
	"""Send a typed question to the active session."""
	orchestrator = _orchestrator(request)
	if orchestrator.state == SessionState.CONNECTED and text.strip():
		_reconciler(request).start_turn(text.strip())
	return _with_state(orchestrator, await orchestrator.send_text(text))


async def send_image(request: Request, image_b64: str) -> Dict[str, Any]:
	"""Send a screenshot to the active session."""
	orchestrator = _orchestrator(request)
	if orchestrator.state == SessionState.CONNECTED:
		_reconciler(request).start_turn(SCREENSHOT_QUESTION, image_b64)
	return _with_state(orchestrator, await orchestrator.send_image(image_b64))


def session_snapshot(request: Request) -> Dict[str, Any]:
	return _orchestrator(request).snapshot()


async def stored_settings(request: Request) -> Dict[str, Any]:
	"""Return the last persisted settings without exposing the credential."""
	settings = await _orchestrator(request).stored_settings()
	if settings is None:
		return {}
	return {
		"provider": settings.provider.value,
		"profile": settings.profile.value,
		"search_tool_enabled": settings.search_tool_enabled,
		"verbosity": settings.verbosity.value,
		"has_credential": bool(settings.credential),
	}


def _conversation_view(reconciler: ConversationReconciler) -> Dict[str, Any]:
	current = reconciler.current()
	return {
		"counter": reconciler.counter(),
		"current": current.to_dict() if current is not None else None,
	}


def conversations(request: Request) -> Dict[str, Any]:
	"""Return the reconciled display turns and the navigation cursor."""
	reconciler = _reconciler(request)
	view = _conversation_view(reconciler)
	view["conversations"] = [turn.to_dict() for turn in reconciler.conversations]
	view["status"] = reconciler.status
	view["last_error"] = reconciler.last_error
	return view


def show_previous(request: Request) -> Dict[str, Any]:
	reconciler = _reconciler(request)
	reconciler.previous()
	return _conversation_view(reconciler)


def show_next(request: Request) -> Dict[str, Any]:
	reconciler = _reconciler(request)
	reconciler.next()
	return _conversation_view(reconciler)
