"""Bounded automatic reconnection for live sessions."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from models.session_models import OperationResult, SessionConfig, SessionState
from services.realtime.errors import CredentialError
from services.realtime.history_store import ConversationHistory
from services.realtime.prompts import reconnection_context

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconnectionPolicy:
	"""How many times to retry and how long to wait before each attempt."""

	max_attempts: int = 3
	delay_seconds: float = 2.0


class ReconnectionController:
	"""Reopen a dropped session and re-ground it in the conversation so far.

	The controller never writes history; it only reads questions from it to
	build the replay message.
	"""

	def __init__(
		self,
		reopen: Callable[[SessionConfig], Awaitable[OperationResult]],
		send_context: Callable[[str], Awaitable[OperationResult]],
		history: ConversationHistory,
		publish_status: Callable[[str], Awaitable[None]],
		session_state: Callable[[], SessionState],
		policy: Optional[ReconnectionPolicy] = None,
		sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
	) -> None:
		self.policy = policy or ReconnectionPolicy()
		self.attempts = 0
		self._reopen = reopen
		self._send_context = send_context
		self._history = history
		self._publish_status = publish_status
		self._session_state = session_state
		self._sleep = sleep

	async def run(self, config: Optional[SessionConfig]) -> bool:
		"""Retry opening the session; return True once it is back."""
		if config is None:
			LOGGER.info("No session config stored; cannot reconnect")
			await self._publish_status("closed")
			return False

		for attempt in range(1, self.policy.max_attempts + 1):
			self.attempts = attempt
			LOGGER.info("Attempting reconnection %d/%d", attempt, self.policy.max_attempts)
			await self._sleep(self.policy.delay_seconds)
			result = await self._reopen(config)
			if result.success:
				await self.replay_context()
				state = self._session_state()
				if state == SessionState.CONNECTED:
					self.attempts = 0
					LOGGER.info("Live session reconnected")
					return True
				if state == SessionState.ERROR:
					# Credential rejected while replaying; already surfaced.
					self.attempts = 0
					return False
				LOGGER.warning("Session dropped again during reconnection attempt %d", attempt)
				continue
			LOGGER.warning("Reconnection attempt %d failed: %s", attempt, result.error)
			if result.code == CredentialError.__name__:
				# The credential failure was already surfaced as an error status.
				self.attempts = 0
				return False

		LOGGER.warning("All %d reconnection attempts failed", self.policy.max_attempts)
		self.attempts = 0
		await self._publish_status("closed")
		return False

	async def replay_context(self) -> None:
		"""Send one message listing every question asked so far."""
		questions = self._history.questions()
		if not questions:
			return
		LOGGER.info("Sending reconnection context with %d previous questions", len(questions))
		result = await self._send_context(reconnection_context(questions))
		if not result.success:
			LOGGER.warning("Failed to send reconnection context: %s", result.error)
