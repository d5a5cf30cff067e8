"""Stream events exchanged between the session orchestrator and its consumers.

Each event maps onto one named topic of the event channel. `encode_event`
turns an event into the ``(topic, payload)`` pair carried by the transport and
`decode_message` reverses it for consumers, raising `ProtocolViolation` for
shapes it does not understand.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from services.realtime.errors import ProtocolViolation

TOPIC_STATUS = "status"
TOPIC_TRANSCRIPTION_NEW_TURN = "transcription-new-turn"
TOPIC_TRANSCRIPTION_UPDATE = "transcription-update"
TOPIC_ANSWER_FRAGMENT = "answer-fragment"
TOPIC_HISTORY_APPENDED = "history-appended"
TOPIC_FAILURE = "failure"
TOPIC_SEND_AUDIO = "send-audio"
TOPIC_SEND_TEXT = "send-text"
TOPIC_SEND_IMAGE = "send-image"

STATUS_VALUES = ("connecting", "connected", "error", "closed")

# Placeholder some backends emit to keep an idle stream alive.
HEARTBEAT_PAYLOAD = "[ping]"


@dataclass(frozen=True)
class TranscriptionFragment:
    """Cumulative transcript of the utterance in progress."""

    text: str
    new_turn: bool = False


@dataclass(frozen=True)
class AnswerFragment:
    """Incremental piece of the answer being generated."""

    text: str


@dataclass(frozen=True)
class AnswerFullText:
    """Whole answer assembled so far, for subscribers that joined late."""

    text: str


@dataclass(frozen=True)
class TurnComplete:
    """The backend finished generating the answer for the current exchange."""


@dataclass(frozen=True)
class StatusChanged:
    status: str
    error: Optional[str] = None


@dataclass(frozen=True)
class Failure:
    message: str


@dataclass(frozen=True)
class HistoryAppended:
    session_id: Optional[str]
    turn: Dict[str, Any]
    full_history: List[Dict[str, Any]] = field(default_factory=list)


StreamEvent = Union[
    TranscriptionFragment,
    AnswerFragment,
    AnswerFullText,
    TurnComplete,
    StatusChanged,
    Failure,
    HistoryAppended,
]


def encode_event(event: StreamEvent) -> Tuple[str, Any]:
    """Return the ``(topic, payload)`` pair for an event."""
    if isinstance(event, TranscriptionFragment):
        topic = TOPIC_TRANSCRIPTION_NEW_TURN if event.new_turn else TOPIC_TRANSCRIPTION_UPDATE
        return topic, event.text
    if isinstance(event, AnswerFragment):
        return TOPIC_ANSWER_FRAGMENT, {"text": event.text}
    if isinstance(event, AnswerFullText):
        return TOPIC_ANSWER_FRAGMENT, {"fullText": event.text}
    if isinstance(event, TurnComplete):
        return TOPIC_ANSWER_FRAGMENT, {"turnComplete": True}
    if isinstance(event, StatusChanged):
        payload: Dict[str, Any] = {"status": event.status}
        if event.error:
            payload["error"] = event.error
        return TOPIC_STATUS, payload
    if isinstance(event, Failure):
        return TOPIC_FAILURE, {"message": event.message}
    if isinstance(event, HistoryAppended):
        return TOPIC_HISTORY_APPENDED, {
            "sessionId": event.session_id,
            "turn": event.turn,
            "fullHistory": event.full_history,
        }
    raise TypeError(f"Unknown stream event: {event!r}")


def decode_message(topic: str, payload: Any) -> StreamEvent:
    """Rebuild a stream event from a transport message.

    Raises:
        ProtocolViolation: If the topic is unknown or the payload is malformed.
    """
    if topic in (TOPIC_TRANSCRIPTION_NEW_TURN, TOPIC_TRANSCRIPTION_UPDATE):
        if not isinstance(payload, str):
            raise ProtocolViolation(f"{topic} payload must be a string")
        return TranscriptionFragment(text=payload, new_turn=topic == TOPIC_TRANSCRIPTION_NEW_TURN)

    if not isinstance(payload, dict):
        raise ProtocolViolation(f"{topic} payload must be an object")

    if topic == TOPIC_ANSWER_FRAGMENT:
        if payload.get("turnComplete") is True:
            return TurnComplete()
        if isinstance(payload.get("fullText"), str):
            return AnswerFullText(text=payload["fullText"])
        if isinstance(payload.get("text"), str):
            return AnswerFragment(text=payload["text"])
        raise ProtocolViolation("answer-fragment payload needs text, fullText or turnComplete")
    if topic == TOPIC_STATUS:
        status = payload.get("status")
        if status not in STATUS_VALUES:
            raise ProtocolViolation(f"Unknown status: {status!r}")
        return StatusChanged(status=status, error=payload.get("error"))
    if topic == TOPIC_FAILURE:
        return Failure(message=str(payload.get("message") or ""))
    if topic == TOPIC_HISTORY_APPENDED:
        history = payload.get("fullHistory") or []
        if not isinstance(history, list):
            raise ProtocolViolation("fullHistory must be a list")
        return HistoryAppended(
            session_id=payload.get("sessionId"),
            turn=payload.get("turn") or {},
            full_history=history,
        )
    raise ProtocolViolation(f"Unknown topic: {topic!r}")
