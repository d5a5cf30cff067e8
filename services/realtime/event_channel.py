"""In-process event channel fanning topic messages out to subscribers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Protocol, Tuple

LOGGER = logging.getLogger(__name__)

Message = Tuple[str, Any]

MAX_PENDING_MESSAGES = 1000

_END = object()


class EventSink(Protocol):
	"""Anything the orchestrator can publish topic messages to."""

	async def publish(self, topic: str, payload: Any) -> None:
		...


class Subscription:
	"""Ordered stream of messages delivered to one subscriber."""

	def __init__(self, channel: "InMemoryEventChannel", max_pending: int = MAX_PENDING_MESSAGES) -> None:
		self._channel = channel
		self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
		self.max_pending = max_pending
		self.dropped = 0
		self.closed = False
		self._ending = False

	def _offer(self, message: Message) -> None:
		if self._ending:
			return
		if self._queue.qsize() >= self.max_pending:
			# Slow subscriber: drop the oldest pending message.
			topic, _ = self._queue.get_nowait()
			self.dropped += 1
			LOGGER.warning("Subscriber lagging; dropped a pending %s message", topic)
		self._queue.put_nowait(message)

	async def get(self) -> Optional[Message]:
		"""Return the next message, or None once the subscription ended."""
		item = await self._queue.get()
		if item is _END:
			self.closed = True
			return None
		return item

	def __aiter__(self) -> "Subscription":
		return self

	async def __anext__(self) -> Message:
		message = await self.get()
		if message is None:
			raise StopAsyncIteration
		return message

	def close(self) -> None:
		"""Stop receiving messages; pending ones are still delivered first."""
		if self._ending:
			return
		self._ending = True
		self._channel._unsubscribe(self)
		self._queue.put_nowait(_END)


class InMemoryEventChannel:
	"""Deliver each published message to every current subscriber, in publish order."""

	def __init__(self, max_pending: int = MAX_PENDING_MESSAGES) -> None:
		if max_pending <= 0:
			raise ValueError("max_pending must be positive")
		self.max_pending = max_pending
		self._subscribers: List[Subscription] = []

	def subscribe(self) -> Subscription:
		subscription = Subscription(self, self.max_pending)
		self._subscribers.append(subscription)
		return subscription

	def _unsubscribe(self, subscription: Subscription) -> None:
		if subscription in self._subscribers:
			self._subscribers.remove(subscription)

	@property
	def subscriber_count(self) -> int:
		return len(self._subscribers)

	async def publish(self, topic: str, payload: Any) -> None:
		for subscription in list(self._subscribers):
			subscription._offer((topic, payload))

	def close(self) -> None:
		"""End every subscription."""
		for subscription in list(self._subscribers):
			subscription.close()
