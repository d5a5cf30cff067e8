"""Fold the session event stream into display-ready conversation turns.

The reconciler runs on the consumer side and only sees the topic messages it
is handed, either as an event sink of an in-process orchestrator or by
consuming a channel subscription. Transcription fragments carry no turn id,
so turn boundaries are inferred:

* a fragment starts a new turn when none was seen yet, when the last one is at
  least ``idle_threshold`` seconds old, when no turn is active, or when it is
  flagged as a new turn while no transcription is in progress;
* otherwise it overwrites the active turn's user message (fragments are a
  running transcript, not additive content).

`TurnComplete` only ends the transcription burst. The active turn stays
active so trailing answer text or screenshots still land on it; it is replaced
only when the next turn starts.
"""

from __future__ import annotations

import logging
import time
import unicodedata
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from models.display_models import DisplayConversation
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
    decode_message,
)
from services.realtime.errors import ProtocolViolation
from services.realtime.event_channel import Subscription
from services.thumbnail_generator import ThumbnailGenerator

LOGGER = logging.getLogger(__name__)

IDLE_THRESHOLD_SECONDS = 2.0


def normalize_transcription(text: str) -> str:
    """Return the transcript in composed form with control characters removed and whitespace collapsed."""
    composed = unicodedata.normalize("NFC", text)
    printable = "".join(" " if unicodedata.category(char).startswith("C") else char for char in composed)
    return " ".join(printable.split())


@dataclass(frozen=True)
class ReconcilerState:
    """Turn-tracking state threaded through the fold.

    Attributes:
        active_turn_id: Turn receiving transcription, answer and image updates.
        transcription_active: True while a transcription burst is in progress.
        last_transcription_at: Clock reading of the last transcription fragment.
    """

    active_turn_id: Optional[str] = None
    transcription_active: bool = False
    last_transcription_at: Optional[float] = None


class ConversationReconciler:
    """Own the ordered list of display turns built from stream events."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        idle_threshold: float = IDLE_THRESHOLD_SECONDS,
        thumbnails: Optional[ThumbnailGenerator] = None,
    ) -> None:
        self._clock = clock
        self.idle_threshold = idle_threshold
        self._thumbnails = thumbnails or ThumbnailGenerator()
        self._conversations: List[DisplayConversation] = []
        self._cursor = -1
        self.state = ReconcilerState()
        self.status: Optional[str] = None
        self.last_error: Optional[str] = None
        self.history_mirror: List[Dict[str, Any]] = []

    @property
    def conversations(self) -> Tuple[DisplayConversation, ...]:
        return tuple(self._conversations)

    @property
    def cursor(self) -> int:
        return self._cursor

    # Event intake ------------------------------------------------------------

    def apply_message(self, topic: str, payload: Any) -> bool:
        """Decode and apply one transport message; malformed ones are dropped."""
        try:
            event = decode_message(topic, payload)
        except ProtocolViolation as exc:
            LOGGER.warning("Dropping malformed %s event: %s", topic, exc)
            return False
        self.apply(event)
        return True

    def apply(self, event: StreamEvent) -> None:
        self.state = self._fold(self.state, event, self._clock())

    async def publish(self, topic: str, payload: Any) -> None:
        """Event sink entry point for an in-process orchestrator."""
        self.apply_message(topic, payload)

    async def consume(self, subscription: Subscription) -> None:
        """Apply every message of a subscription until it ends."""
        async for topic, payload in subscription:
            self.apply_message(topic, payload)

    def _fold(self, state: ReconcilerState, event: StreamEvent, now: float) -> ReconcilerState:
        if isinstance(event, TranscriptionFragment):
            return self._on_transcription(state, event, now)
        if isinstance(event, AnswerFragment):
            return self._on_answer_fragment(state, event)
        if isinstance(event, AnswerFullText):
            return self._on_full_text(state, event)
        if isinstance(event, TurnComplete):
            return replace(state, transcription_active=False)
        if isinstance(event, StatusChanged):
            self.status = event.status
            if event.error:
                self.last_error = event.error
            return state
        if isinstance(event, Failure):
            LOGGER.warning("Session reported failure: %s", event.message)
            self.last_error = event.message
            return state
        if isinstance(event, HistoryAppended):
            self.history_mirror = list(event.full_history)
            return state
        LOGGER.warning("Ignoring unexpected event %r", event)
        return state

    def _on_transcription(self, state: ReconcilerState, event: TranscriptionFragment, now: float) -> ReconcilerState:
        idle = state.last_transcription_at is None or now - state.last_transcription_at >= self.idle_threshold
        active = self._find(state.active_turn_id)
        text = normalize_transcription(event.text)
        if idle or active is None or (event.new_turn and not state.transcription_active):
            turn = self._append(text)
            return replace(state, active_turn_id=turn.id, transcription_active=True, last_transcription_at=now)
        active.user_message = text
        return replace(state, transcription_active=True, last_transcription_at=now)

    def _on_answer_fragment(self, state: ReconcilerState, event: AnswerFragment) -> ReconcilerState:
        if not event.text:
            return state
        target = self._find(state.active_turn_id)
        if target is None:
            target = self._append("")
            state = replace(state, active_turn_id=target.id)
        target.ai_response += event.text
        return state

    def _on_full_text(self, state: ReconcilerState, event: AnswerFullText) -> ReconcilerState:
        stripped = event.text.strip()
        if not stripped or stripped == HEARTBEAT_PAYLOAD:
            return state
        target = self._find(state.active_turn_id)
        if target is None and self._conversations:
            target = self._conversations[-1]
        if target is None:
            target = self._append("")
        state = replace(state, active_turn_id=target.id)
        # A shorter full text is an older snapshot of an answer already assembled.
        if len(event.text) >= len(target.ai_response):
            target.ai_response = event.text
        return state

    # Turn management ---------------------------------------------------------

    def start_turn(self, user_message: str, attached_image: Optional[str] = None) -> DisplayConversation:
        """Open a turn from the consumer side (typed question or screenshot)."""
        preview = None
        if attached_image:
            try:
                preview = self._thumbnails.create_thumbnail_from_base64(attached_image)
            except ValueError as exc:
                LOGGER.warning("Could not build screenshot preview: %s", exc)
        turn = self._append(user_message, preview)
        self.state = replace(self.state, active_turn_id=turn.id)
        return turn

    def _append(self, user_message: str, attached_image: Optional[str] = None) -> DisplayConversation:
        turn = DisplayConversation(
            id=uuid4().hex,
            user_message=user_message,
            ai_response="",
            timestamp=datetime.now(timezone.utc).isoformat(),
            attached_image=attached_image,
        )
        self._conversations.append(turn)
        self._cursor = len(self._conversations) - 1
        return turn

    def _find(self, turn_id: Optional[str]) -> Optional[DisplayConversation]:
        if turn_id is None:
            return None
        for turn in reversed(self._conversations):
            if turn.id == turn_id:
                return turn
        return None

    # Navigation --------------------------------------------------------------

    def current(self) -> Optional[DisplayConversation]:
        if not self._conversations or self._cursor < 0:
            return None
        return self._conversations[self._cursor]

    def counter(self) -> str:
        if not self._conversations:
            return ""
        return f"{self._cursor + 1}/{len(self._conversations)}"

    def previous(self) -> Optional[DisplayConversation]:
        if self._conversations:
            self._cursor = max(0, self._cursor - 1)
        return self.current()

    def next(self) -> Optional[DisplayConversation]:
        if self._conversations:
            self._cursor = min(len(self._conversations) - 1, self._cursor + 1)
        return self.current()
