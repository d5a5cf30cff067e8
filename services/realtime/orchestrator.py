"""Own the lifecycle of one live conversation session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence
from uuid import uuid4

from dal.settings_dal import SettingsStore
from models.session_models import (
	OperationResult,
	ProviderKind,
	SessionConfig,
	SessionState,
	StoredSettings,
)
from models.stream_events import (
	HEARTBEAT_PAYLOAD,
	AnswerFragment,
	AnswerFullText,
	Failure,
	HistoryAppended,
	StatusChanged,
	StreamEvent,
	TranscriptionFragment,
	TurnComplete,
	encode_event,
)
from services.providers.base import ProviderAdapter, ProviderCallbacks, SessionHandle
from services.providers.registry import default_adapters, resolve_adapter
from services.realtime.errors import (
	INVALID_KEY_MESSAGE,
	AlreadyInitializing,
	CredentialError,
	ProviderError,
	SessionError,
	SessionInactiveError,
	looks_like_credential_failure,
)
from services.realtime.event_channel import EventSink
from services.realtime.history_store import ConversationHistory
from services.realtime.reconnection import ReconnectionController, ReconnectionPolicy

LOGGER = logging.getLogger(__name__)

SCREENSHOT_QUESTION = "Screenshot analysis"


class SessionOrchestrator:
	"""Drive a provider adapter and publish lifecycle and content events.

	Every public operation returns an `OperationResult`; provider failures never
	propagate past this class. Events go to the sinks handed in at construction
	(or registered later with `add_sink`).
	"""

	def __init__(
		self,
		sinks: Sequence[EventSink] = (),
		adapters: Optional[Mapping[ProviderKind, ProviderAdapter]] = None,
		settings_store: Optional[SettingsStore] = None,
		history: Optional[ConversationHistory] = None,
		policy: Optional[ReconnectionPolicy] = None,
		sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
	) -> None:
		self._sinks: List[EventSink] = list(sinks)
		self._adapters = dict(adapters) if adapters is not None else default_adapters()
		self._settings_store = settings_store
		self.history = history or ConversationHistory()
		self.state = SessionState.IDLE
		self.session_id: Optional[str] = None
		self._adapter: Optional[ProviderAdapter] = None
		self._handle: Optional[SessionHandle] = None
		self._config: Optional[SessionConfig] = None
		self._generation = 0
		self._transcript = ""
		self._answer = ""
		self._transcription_in_progress = False
		self._reconnect_task: Optional["asyncio.Task[bool]"] = None
		self.reconnector = ReconnectionController(
			reopen=self._reopen,
			send_context=self._send_context,
			history=self.history,
			publish_status=self._publish_status,
			session_state=lambda: self.state,
			policy=policy,
			sleep=sleep,
		)

	# Sinks -----------------------------------------------------------------

	def add_sink(self, sink: EventSink) -> None:
		self._sinks.append(sink)

	def remove_sink(self, sink: EventSink) -> None:
		if sink in self._sinks:
			self._sinks.remove(sink)

	async def _emit(self, event: StreamEvent) -> None:
		topic, payload = encode_event(event)
		for sink in list(self._sinks):
			try:
				await sink.publish(topic, payload)
			except Exception as exc:
				LOGGER.warning("Event sink %r failed on %s: %s", sink, topic, exc)

	async def _publish_status(self, status: str, error: Optional[str] = None) -> None:
		await self._emit(StatusChanged(status=status, error=error))

	# Lifecycle ---------------------------------------------------------------

	@property
	def reconnect_task(self) -> Optional["asyncio.Task[bool]"]:
		return self._reconnect_task

	@property
	def provider(self) -> Optional[ProviderKind]:
		return self._adapter.kind if self._adapter is not None else None

	def snapshot(self) -> Dict[str, Any]:
		"""Return the session state and history for observers."""
		return {
			"state": self.state.value,
			"session_id": self.session_id,
			"provider": self.provider.value if self.provider else None,
			"history": self.history.snapshot(),
		}

	async def start(self, config: SessionConfig) -> OperationResult:
		"""Open a fresh session, replacing any existing one."""
		if self.state == SessionState.CONNECTING:
			LOGGER.info("Session initialization already in progress")
			return OperationResult.failed(AlreadyInitializing())
		await self._cancel_reconnection()
		return await self._open(config, fresh=True)

	async def _reopen(self, config: SessionConfig) -> OperationResult:
		return await self._open(config, fresh=False)

	async def _open(self, config: SessionConfig, fresh: bool) -> OperationResult:
		if self.state == SessionState.CONNECTING:
			return OperationResult.failed(AlreadyInitializing())
		try:
			adapter = resolve_adapter(self._adapters, config.provider)
		except SessionError as exc:
			LOGGER.error("%s", exc)
			return OperationResult.failed(exc)

		self.state = SessionState.CONNECTING
		self._generation += 1
		generation = self._generation
		await self._release_handle()
		self._reset_buffers()
		self.session_id = uuid4().hex
		if fresh:
			self.history.start_new_session()
		LOGGER.info("Opening %s session %s", adapter.kind.value, self.session_id)
		await self._publish_status("connecting")

		try:
			handle = await adapter.open(config, self._callbacks(generation))
		except CredentialError as exc:
			LOGGER.error("Credential rejected by %s provider", adapter.kind.value)
			self.state = SessionState.ERROR
			await self._publish_status("error", str(exc))
			await self._emit(Failure(message=str(exc)))
			return OperationResult.failed(exc)
		except Exception as exc:
			LOGGER.error("Error opening %s session: %s", adapter.kind.value, exc)
			error = exc if isinstance(exc, SessionError) else ProviderError(str(exc))
			if generation == self._generation:
				self.state = SessionState.ERROR if fresh else SessionState.CLOSED
				if fresh:
					await self._publish_status("error", str(error))
			return OperationResult.failed(error)

		if generation != self._generation:
			# Stopped while the provider was connecting.
			await adapter.close(handle)
			return OperationResult.failed(SessionInactiveError("Session stopped while connecting"))

		self._adapter = adapter
		self._handle = handle
		self._config = config
		self.state = SessionState.CONNECTED
		LOGGER.info("Session %s connected", self.session_id)
		await self._publish_status("connected")
		if fresh:
			await self._persist(config)
		return OperationResult.ok()

	async def _persist(self, config: SessionConfig) -> None:
		if self._settings_store is None:
			return
		try:
			await self._settings_store.save(StoredSettings.from_config(config))
		except Exception as exc:
			LOGGER.warning("Failed to persist session settings: %s", exc)

	async def stored_settings(self) -> Optional[StoredSettings]:
		"""Return the last persisted settings, or None when nothing was saved."""
		if self._settings_store is None:
			return None
		try:
			return await self._settings_store.load()
		except Exception as exc:
			LOGGER.warning("Failed to read stored settings: %s", exc)
			return None

	async def stop(self) -> OperationResult:
		"""Close the session and drop any in-flight exchange. Safe to call repeatedly."""
		reconnecting = await self._cancel_reconnection()
		self._generation += 1
		await self._release_handle()
		self._reset_buffers()
		if self.state in (SessionState.CONNECTING, SessionState.CONNECTED) or reconnecting:
			self.state = SessionState.CLOSED
			LOGGER.info("Session %s stopped", self.session_id)
			await self._publish_status("closed")
		elif self.state == SessionState.ERROR:
			self.state = SessionState.CLOSED
		return OperationResult.ok()

	async def _release_handle(self) -> None:
		adapter, handle = self._adapter, self._handle
		self._handle = None
		if adapter is None or handle is None:
			return
		try:
			await adapter.close(handle)
		except Exception as exc:
			LOGGER.warning("Error closing %s session: %s", adapter.kind.value, exc)

	async def _cancel_reconnection(self) -> bool:
		task = self._reconnect_task
		self._reconnect_task = None
		if task is None or task.done() or task is asyncio.current_task():
			return False
		task.cancel()
		try:
			await task
		except asyncio.CancelledError:
			pass
		return True

	def _reset_buffers(self) -> None:
		self._transcript = ""
		self._answer = ""
		self._transcription_in_progress = False

	# Provider callbacks ------------------------------------------------------

	def _callbacks(self, generation: int) -> ProviderCallbacks:
		"""Bind callbacks that ignore events from handles no longer current."""

		def guarded(handler: Callable[..., Awaitable[None]]) -> Callable[..., Awaitable[None]]:
			async def invoke(*args: Any) -> None:
				if generation == self._generation:
					await handler(*args)

			return invoke

		return ProviderCallbacks(
			on_transcription=guarded(self._on_transcription),
			on_answer_part=guarded(self._on_answer_part),
			on_generation_complete=guarded(self._complete_turn),
			on_error=guarded(self._on_provider_error),
			on_terminated=guarded(self._on_terminated),
		)

	async def _on_transcription(self, delta: str) -> None:
		if not delta:
			return
		self._transcript += delta
		new_turn = not self._transcription_in_progress
		self._transcription_in_progress = True
		await self._emit(TranscriptionFragment(text=self._transcript, new_turn=new_turn))

	async def _on_answer_part(self, part: str) -> None:
		stripped = (part or "").strip()
		if not stripped or stripped == HEARTBEAT_PAYLOAD:
			return
		self._answer += part
		await self._emit(AnswerFragment(text=part))
		await self._emit(AnswerFullText(text=self._answer))

	async def _complete_turn(self) -> None:
		if self._transcript.strip() and self._answer.strip():
			turn = self.history.append(self._transcript, self._answer)
			await self._emit(
				HistoryAppended(
					session_id=self.history.session_id,
					turn=turn.to_dict(),
					full_history=[entry.to_dict() for entry in self.history.entries],
				)
			)
		self._reset_buffers()
		await self._emit(TurnComplete())

	async def _on_provider_error(self, message: str) -> None:
		if looks_like_credential_failure(message):
			await self._on_terminated(message, CredentialError())
			return
		LOGGER.error("Provider error: %s", message)
		await self._emit(Failure(message=message))

	async def _on_terminated(self, reason: str, error: Optional[BaseException]) -> None:
		self._generation += 1
		await self._release_handle()
		self._reset_buffers()
		if isinstance(error, CredentialError) or looks_like_credential_failure(reason):
			LOGGER.error("Session closed due to invalid credential")
			await self._fail_credential()
			return
		LOGGER.warning("Session %s closed unexpectedly: %s", self.session_id, reason)
		self.state = SessionState.CLOSED
		# A drop during a running reconnection is picked up by that task once it
		# sees the session is no longer connected.
		if self._reconnect_task is None or self._reconnect_task.done():
			self._reconnect_task = asyncio.create_task(self.reconnector.run(self._config))

	async def _fail_credential(self) -> None:
		self.state = SessionState.ERROR
		await self._publish_status("error", INVALID_KEY_MESSAGE)
		await self._emit(Failure(message=INVALID_KEY_MESSAGE))

	# Sending -----------------------------------------------------------------

	def _require_session(self) -> ProviderAdapter:
		if self._adapter is None or self._handle is None or self.state != SessionState.CONNECTED:
			raise SessionInactiveError()
		return self._adapter

	async def _guard(self, operation: Callable[[], Awaitable[OperationResult]]) -> OperationResult:
		try:
			return await operation()
		except CredentialError as exc:
			self._generation += 1
			await self._release_handle()
			self._reset_buffers()
			await self._fail_credential()
			return OperationResult.failed(exc)
		except SessionError as exc:
			return OperationResult.failed(exc)
		except Exception as exc:
			LOGGER.error("Provider request failed: %s", exc)
			return OperationResult.failed(ProviderError(str(exc)))

	async def send_text(self, text: str) -> OperationResult:
		"""Send a typed question to the active session."""
		text = (text or "").strip()
		if not text:
			return OperationResult.failed(ValueError("Message text is required."))

		async def operation() -> OperationResult:
			adapter = self._require_session()
			if adapter.streaming:
				self._transcript = text
				await adapter.send_text(self._handle, text, [])
				return OperationResult.ok()
			answer = await adapter.send_text(self._handle, text, self.history.as_messages())
			await self._deliver_answer(text, answer or "")
			return OperationResult.ok(answer or "")

		return await self._guard(operation)

	async def send_audio(self, pcm_b64: str) -> OperationResult:
		"""Forward a base64 PCM chunk to the streaming provider."""

		async def operation() -> OperationResult:
			adapter = self._require_session()
			await adapter.send_audio_chunk(self._handle, pcm_b64)
			return OperationResult.ok()

		return await self._guard(operation)

	async def send_image(self, image_b64: str) -> OperationResult:
		"""Send a base64 JPEG screenshot to the active session."""

		async def operation() -> OperationResult:
			adapter = self._require_session()
			if adapter.streaming:
				await adapter.send_image(self._handle, image_b64, [])
				return OperationResult.ok()
			answer = await adapter.send_image(self._handle, image_b64, self.history.as_messages())
			await self._deliver_answer(SCREENSHOT_QUESTION, answer or "")
			return OperationResult.ok(answer or "")

		return await self._guard(operation)

	async def _send_context(self, text: str) -> OperationResult:
		async def operation() -> OperationResult:
			adapter = self._require_session()
			await adapter.send_text(self._handle, text, [])
			return OperationResult.ok()

		return await self._guard(operation)

	async def _deliver_answer(self, question: str, answer: str) -> None:
		"""Publish a request/response answer as one fragment and close the exchange."""
		self._transcript = question
		await self._on_answer_part(answer)
		await self._complete_turn()
