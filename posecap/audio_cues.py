from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)

SAMPLE_RATE = 44100
ASCENDING = (660.0, 880.0)
DESCENDING = (880.0, 660.0)


def synth_cue(freqs: Sequence[float], note_seconds: float = 0.12, sample_rate: int = SAMPLE_RATE, volume: float = 0.3) -> np.ndarray:
	"""
	Concatenate short sine notes into a mono float32 buffer.
	Each note gets a short linear fade in/out to avoid clicks.
	"""
	n = max(1, int(note_seconds * sample_rate))
	t = np.arange(n, dtype=np.float32) / float(sample_rate)
	fade = min(n // 2, int(0.01 * sample_rate))
	env = np.ones(n, dtype=np.float32)
	if fade > 0:
		ramp = np.linspace(0.0, 1.0, fade, dtype=np.float32)
		env[:fade] = ramp
		env[-fade:] = ramp[::-1]
	notes = [np.sin(2.0 * np.pi * float(f) * t).astype(np.float32) * env for f in freqs]
	if not notes:
		return np.zeros(0, dtype=np.float32)
	return (np.concatenate(notes) * float(volume)).astype(np.float32)


class ToneCuePlayer:
	"""
	Short start/stop cues for recording. Playback is best-effort: an unavailable
	audio device is logged and otherwise ignored.
	"""

	def __init__(self, enabled: bool = True, sample_rate: int = SAMPLE_RATE) -> None:
		self.enabled = bool(enabled)
		self.sample_rate = int(sample_rate)

	def _play(self, freqs: Sequence[float]) -> None:
		if not self.enabled:
			return
		buf = synth_cue(freqs, sample_rate=self.sample_rate)
		try:
			import sounddevice as sd  # type: ignore

			sd.play(buf, self.sample_rate, blocking=False)
		except Exception as e:
			logger.warning("[Record] audio cue unavailable: %r", e)

	def play_start(self) -> None:
		self._play(ASCENDING)

	def play_stop(self) -> None:
		self._play(DESCENDING)
