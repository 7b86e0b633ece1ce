from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class VoiceSink(ABC):
	"""
	Fire-and-forget speech output. A new speak() replaces whatever is playing.
	"""

	@abstractmethod
	def speak(self, text: str, lang: str) -> None: ...

	@abstractmethod
	def cancel(self) -> None: ...


class NullVoiceSink(VoiceSink):
	"""Logs speech requests instead of playing them."""

	def speak(self, text: str, lang: str) -> None:
		logger.info("[Voice] (%s) %s", lang, text)

	def cancel(self) -> None:
		return


class BroadcastVoiceSink(VoiceSink):
	"""
	Pushes speech requests to connected clients, which run the actual TTS.

	`send` is any callable that schedules a JSON message (e.g. the WS manager's
	fire-and-forget broadcast).
	"""

	def __init__(self, send: Callable[[Dict[str, Any]], Optional[Awaitable[None]]], rate: float = 1.1) -> None:
		self._send = send
		self._rate = float(rate)

	def speak(self, text: str, lang: str) -> None:
		self._send({"type": "speak", "text": text, "lang": lang, "rate": self._rate})

	def cancel(self) -> None:
		self._send({"type": "speak_cancel"})


class VoiceThrottle:
	"""
	Speaks at most once per `interval` seconds, regardless of message changes.
	Each spoken alert cancels the one currently playing.
	"""

	def __init__(
		self,
		sink: VoiceSink,
		interval: float = 10.0,
		lang: str = "en-US",
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self.sink = sink
		self.interval = float(interval)
		self.lang = lang
		self._clock = clock
		self._last_spoken: Optional[float] = None
		self.spoken_count = 0

	def offer(self, text: Optional[str]) -> bool:
		"""Speak `text` if the throttle window allows it. Returns True if spoken."""
		if not text:
			return False
		now = self._clock()
		if self._last_spoken is not None and (now - self._last_spoken) <= self.interval:
			return False
		self.sink.cancel()
		self.sink.speak(text, self.lang)
		self._last_spoken = now
		self.spoken_count += 1
		return True

	def cancel(self) -> None:
		self.sink.cancel()

	def reset(self) -> None:
		self._last_spoken = None
