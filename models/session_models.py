"""Session domain models for live conversation workflows."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ProviderKind(str, Enum):
	"""Backends a session can be opened against."""

	STREAMING = "streaming"
	CHAT_A = "chatA"
	CHAT_B = "chatB"


class InstructionProfile(str, Enum):
	"""Prompt templates selectable per session."""

	INTERVIEW = "interview"
	SALES = "sales"
	MEETING = "meeting"
	PRESENTATION = "presentation"
	NEGOTIATION = "negotiation"
	EXAM = "exam"


class Verbosity(str, Enum):
	SHORT = "short"
	VERBOSE = "verbose"


class SessionState(str, Enum):
	"""Lifecycle of the single session owned by an orchestrator."""

	IDLE = "idle"
	CONNECTING = "connecting"
	CONNECTED = "connected"
	ERROR = "error"
	CLOSED = "closed"


@dataclass(frozen=True)
class SessionConfig:
	"""Immutable configuration used to open (and reopen) a session."""

	provider: ProviderKind
	credential: str = field(repr=False)
	profile: InstructionProfile = InstructionProfile.INTERVIEW
	custom_instructions: str = ""
	locale: str = "en-US"
	search_tool_enabled: bool = True
	verbosity: Verbosity = Verbosity.SHORT


@dataclass(frozen=True)
class ConversationTurn:
	"""A completed question/answer exchange kept for replay and prompting."""

	question_text: str
	answer_text: str
	created_at: float = field(default_factory=lambda: time.time())

	def to_dict(self) -> Dict[str, Any]:
		return {
			"createdAt": self.created_at,
			"questionText": self.question_text,
			"answerText": self.answer_text,
		}


@dataclass(frozen=True)
class StoredSettings:
	"""Last successful session settings, restored on the next launch."""

	provider: ProviderKind
	credential: str = field(repr=False)
	profile: InstructionProfile = InstructionProfile.INTERVIEW
	search_tool_enabled: bool = True
	verbosity: Verbosity = Verbosity.SHORT

	@classmethod
	def from_config(cls, config: SessionConfig) -> "StoredSettings":
		return cls(
			provider=config.provider,
			credential=config.credential,
			profile=config.profile,
			search_tool_enabled=config.search_tool_enabled,
			verbosity=config.verbosity,
		)


@dataclass(frozen=True)
class OperationResult:
	"""Outcome of an orchestrator operation.

	Attributes:
		success: Whether the operation completed.
		error: Human readable failure message, if any.
		code: Name of the error class that caused the failure, if any.
		text: Answer text for request/response providers.
	"""

	success: bool
	error: Optional[str] = None
	code: Optional[str] = None
	text: Optional[str] = None

	@classmethod
	def ok(cls, text: Optional[str] = None) -> "OperationResult":
		return cls(success=True, text=text)

	@classmethod
	def failed(cls, exc: BaseException) -> "OperationResult":
		return cls(success=False, error=str(exc) or type(exc).__name__, code=type(exc).__name__)

	def to_dict(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"success": self.success}
		if self.error is not None:
			payload["error"] = self.error
		if self.code is not None:
			payload["code"] = self.code
		if self.text is not None:
			payload["text"] = self.text
		return payload
