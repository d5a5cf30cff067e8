"""Error taxonomy for live sessions."""

from __future__ import annotations

from typing import Optional

CREDENTIAL_MARKERS = (
	"api key not valid",
	"invalid api key",
	"invalid_api_key",
	"incorrect api key",
	"authentication failed",
	"unauthorized",
)

INVALID_KEY_MESSAGE = "Invalid API key. Please check the credential in your settings."


class SessionError(Exception):
	"""Base class for session orchestration failures."""


class AlreadyInitializing(SessionError):
	"""A start request arrived while a session is still connecting."""

	def __init__(self, message: str = "Session initialization already in progress") -> None:
		super().__init__(message)


class UnsupportedProvider(SessionError):
	"""The configuration names a provider without an adapter."""


class SessionNotConfigured(SessionError):
	"""A start request left out settings and none were stored."""

	def __init__(self, message: str = "No stored settings; provide a provider and credential to start.") -> None:
		super().__init__(message)


class CredentialError(SessionError):
	"""The backend rejected the credential."""

	def __init__(self, message: str = INVALID_KEY_MESSAGE) -> None:
		super().__init__(message)


class SessionInactiveError(SessionError):
	"""A send was attempted without an open session."""

	def __init__(self, message: str = "No active session; start a new session.") -> None:
		super().__init__(message)


class UnsupportedOperation(SessionError):
	"""The active provider cannot perform the requested operation."""


class ProviderError(SessionError):
	"""The provider failed to open or serve a request."""


class TransientProviderError(ProviderError):
	"""The provider dropped the session for a reason worth retrying."""


class ProtocolViolation(SessionError):
	"""A consumer received an event it cannot interpret."""


def looks_like_credential_failure(message: Optional[str]) -> bool:
	"""Return True when a backend message points at a rejected credential."""
	if not message:
		return False
	lowered = message.lower()
	return any(marker in lowered for marker in CREDENTIAL_MARKERS)
