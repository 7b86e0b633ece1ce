from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from posecap.audio_cues import ToneCuePlayer
from posecap.errors import RecordingStartFailure
from posecap.overlay import CompositeSurface
from posecap.video_tools import mux_mjpeg_to_mp4_async

logger = logging.getLogger(__name__)

RECORDING_EXT = ".mjpeg"


def recording_filename(app_name: str, record_kind: str, unix_ms: int, ext: str = RECORDING_EXT) -> str:
	return f"{app_name}_{record_kind}_{int(unix_ms)}{ext}"


def _write_blob(path: Path, chunks: List[bytes]) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	tmp = path.with_suffix(path.suffix + ".part")
	with open(tmp, "wb") as fh:
		for c in chunks:
			fh.write(c)
	tmp.replace(path)


class Recorder:
	"""
	Records the composited surface, independent of the detection loop.

	start_recording() opens a frame-rate-bound tap on the surface and buffers each new
	composited JPEG in memory, skipping composites whose size differs from `output_size`
	(the active source's dimensions, once known). stop_recording() joins the buffered chunks into one
	file named <app>_<kind>_<unix-ms>.mjpeg and hands its path to `on_ready`.
	"""

	def __init__(
		self,
		surface: CompositeSurface,
		output_dir: str | Path,
		fps: int = 30,
		app_name: str = "posecap",
		record_kind: str = "recording",
		cue_player: Optional[ToneCuePlayer] = None,
		on_ready: Optional[Callable[[Path], None]] = None,
		mux_mp4: bool = False,
		clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
	) -> None:
		self.surface = surface
		self.output_dir = Path(output_dir)
		self.fps = int(fps) if int(fps) > 0 else 30
		self.app_name = app_name
		self.record_kind = record_kind
		self.cues = cue_player
		self.on_ready = on_ready
		self.mux_mp4 = bool(mux_mp4)
		self._clock_ms = clock_ms

		self.is_recording = False
		self.output_size: Tuple[int, int] = (0, 0)
		self.skipped = 0
		self.last_file: Optional[Path] = None
		self.last_error: Optional[str] = None
		self._chunks: List[bytes] = []
		self._task: Optional[asyncio.Task] = None
		self._t_start: Optional[float] = None

	def set_output_size(self, width: int, height: int) -> None:
		self.output_size = (int(width), int(height))

	def start_recording(self) -> bool:
		"""
		Returns True if recording is active afterwards. A failure rolls the flag back.
		"""
		if self.is_recording:
			return True
		self.is_recording = True
		try:
			self.output_dir.mkdir(parents=True, exist_ok=True)
			self._chunks = []
			self.skipped = 0
			self._t_start = time.time()
			self._task = asyncio.get_running_loop().create_task(self._tap(), name="recorder-tap")
		except Exception as e:
			self.is_recording = False
			self._task = None
			self._chunks = []
			err = RecordingStartFailure(f"could not start recording: {e!r}")
			self.last_error = str(err)
			logger.error("[Record] %s", err)
			return False
		self.last_error = None
		if self.cues is not None:
			self.cues.play_start()
		logger.info("[Record] started (%d fps)", self.fps)
		return True

	async def _tap(self) -> None:
		interval = 1.0 / float(self.fps)
		last_t = None
		while True:
			jpeg, t, size = self.surface.get_latest_sized()
			if jpeg is not None and t is not None and t != last_t:
				last_t = t
				if self.output_size != (0, 0) and size != self.output_size:
					# Leftover composite from a source of another size.
					self.skipped += 1
				else:
					self._chunks.append(jpeg)
			await asyncio.sleep(interval)

	async def stop_recording(self) -> Optional[Path]:
		"""
		Finalize the current recording. No-op (returns None) if not recording.
		"""
		if not self.is_recording:
			return None
		self.is_recording = False
		task = self._task
		self._task = None
		if task is not None:
			task.cancel()
			try:
				await task
			except asyncio.CancelledError:
				pass

		chunks = self._chunks
		self._chunks = []
		if self.cues is not None:
			self.cues.play_stop()
		if not chunks:
			logger.warning("[Record] stopped with no frames captured; nothing written")
			return None

		path = self.output_dir / recording_filename(self.app_name, self.record_kind, self._clock_ms())
		try:
			await asyncio.to_thread(_write_blob, path, chunks)
		except OSError as e:
			self.last_error = f"write failed: {e!r}"
			logger.error("[Record] writing %s failed: %r", path, e)
			return None

		self.last_file = path
		logger.info("[Record] saved %s (%d frames)", path, len(chunks))
		if self.mux_mp4:
			mux_mjpeg_to_mp4_async(path, path.with_suffix(".mp4"), fps=self.fps)
		if self.on_ready is not None:
			try:
				self.on_ready(path)
			except Exception:
				logger.exception("[Record] on_ready handler failed")
		return path

	def get_status(self) -> Dict[str, Any]:
		return {
			"recording": self.is_recording,
			"frames": len(self._chunks),
			"fps": self.fps,
			"output_size": list(self.output_size),
			"skipped": self.skipped,
			"t_start": self._t_start if self.is_recording else None,
			"last_file": self.last_file.name if self.last_file else None,
			"error": self.last_error,
		}
