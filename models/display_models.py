"""Display-side conversation records assembled by the reconciler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class DisplayConversation:
    """One conversation turn as shown to the user.

    Attributes:
        id: Unique identifier of the turn.
        user_message: Latest transcript (or typed text) of the question.
        ai_response: Answer text assembled from streamed fragments.
        timestamp: ISO-8601 creation time.
        attached_image: Optional base64 PNG thumbnail of an attached screenshot.
    """

    id: str
    user_message: str
    ai_response: str
    timestamp: str
    attached_image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userMessage": self.user_message,
            "aiResponse": self.ai_response,
            "timestamp": self.timestamp,
            "attachedImage": self.attached_image,
        }
