"""Bounded in-memory history of completed conversation turns."""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Dict, List, Optional
from uuid import uuid4

from models.session_models import ConversationTurn

HISTORY_CAPACITY = 10


class ConversationHistory:
	"""Keep the most recent question/answer pairs of the current session.

	Entries are evicted oldest first once the capacity is reached. The store is
	written only by the orchestrator; reconnection and UI mirrors read it.
	"""

	def __init__(self, capacity: int = HISTORY_CAPACITY) -> None:
		if capacity <= 0:
			raise ValueError("History capacity must be positive.")
		self.capacity = capacity
		self._turns: Deque[ConversationTurn] = deque(maxlen=capacity)
		self.session_id: Optional[str] = None

	def __len__(self) -> int:
		return len(self._turns)

	def start_new_session(self) -> str:
		"""Clear the history and assign a fresh session id."""
		self.session_id = uuid4().hex
		self._turns.clear()
		return self.session_id

	def append(self, question: str, answer: str) -> ConversationTurn:
		"""Record a completed exchange, evicting the oldest one when full."""
		if self.session_id is None:
			self.start_new_session()
		turn = ConversationTurn(question_text=question.strip(), answer_text=answer.strip())
		self._turns.append(turn)
		return turn

	@property
	def entries(self) -> List[ConversationTurn]:
		return list(self._turns)

	def snapshot(self) -> Dict[str, Any]:
		"""Return the session id and entries for observers."""
		return {"sessionId": self.session_id, "entries": [turn.to_dict() for turn in self._turns]}

	def questions(self) -> List[str]:
		"""Return non-empty question texts, oldest first."""
		return [turn.question_text for turn in self._turns if turn.question_text.strip()]

	def as_messages(self) -> List[Dict[str, str]]:
		"""Return the history as alternating user/assistant messages, oldest first."""
		messages: List[Dict[str, str]] = []
		for turn in self._turns:
			messages.append({"role": "user", "content": turn.question_text})
			messages.append({"role": "assistant", "content": turn.answer_text})
		return messages
