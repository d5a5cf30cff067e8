"""Helpers to extract text and errors from provider responses and events."""

from __future__ import annotations

from typing import Any, Dict, Optional


def _get(obj: Any, name: str, default: Any = None) -> Any:
	if isinstance(obj, dict):
		return obj.get(name, default)
	return getattr(obj, name, default)


def extract_text(response: Any) -> str:
	"""Extract the concatenated output_text entries from a Responses API result."""
	direct = _get(response, "output_text", None)
	if direct:
		return direct
	chunks = []
	for item in _get(response, "output", None) or []:
		if _get(item, "type") != "message":
			continue
		for content in _get(item, "content", None) or []:
			if _get(content, "type") == "output_text":
				chunks.append(_get(content, "text", "") or "")
	return "".join(chunks)


def extract_gemini_text(response: Any) -> str:
	"""Return the text of a Gemini generate_content response."""
	text = _get(response, "text", None)
	if text:
		return text
	chunks = []
	for candidate in _get(response, "candidates", None) or []:
		content = _get(candidate, "content", None)
		for part in _get(content, "parts", None) or []:
			part_text = _get(part, "text", None)
			if part_text:
				chunks.append(part_text)
	return "".join(chunks)


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
	"""Return token usage if present."""
	usage = _get(response, "usage", None)
	return {
		"input_tokens": _get(usage, "input_tokens", None) if usage else None,
		"output_tokens": _get(usage, "output_tokens", None) if usage else None,
	}


def extract_error_message(event: Any) -> str:
	"""Return the message of a realtime ``error`` event."""
	error = _get(event, "error", None)
	if error is None:
		return "Unknown realtime error"
	message = _get(error, "message", None) or ""
	code = _get(error, "code", None)
	if code and code not in message:
		return f"{code}: {message}" if message else str(code)
	return message or "Unknown realtime error"
