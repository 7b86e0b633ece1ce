from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from posecap.video_source import SOURCE_FILE, FrameSource

logger = logging.getLogger(__name__)


class FileSource(FrameSource):
	"""
	Pre-recorded video played back at its native frame rate, looping at the end.

	Pausing freezes the last decoded frame, which stays readable for analysis.
	"""

	kind = SOURCE_FILE
	stop_timeout = 2.0

	def __init__(self, path: Path) -> None:
		self._lock = threading.Lock()
		self._path = Path(path)
		self._cap = None
		self._fps = 30.0
		self._frame_count = 0

		self._running = False
		self._paused = False
		self._seek_to: Optional[float] = None
		self._thread: Optional[threading.Thread] = None
		self._last_error: Optional[str] = None

		self._latest: Optional[Any] = None
		self._latest_t: Optional[float] = None
		self._current_time = 0.0
		self._dims: Tuple[int, int] = (0, 0)

	def name(self) -> str:
		return f"file:{self._path.name}"

	def open(self) -> None:
		import cv2  # type: ignore

		cap = cv2.VideoCapture(str(self._path))
		if not cap.isOpened():
			cap.release()
			raise RuntimeError("OpenCV could not open the file")
		fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0)
		self._fps = fps if fps > 0 else 30.0
		self._frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
		w = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
		h = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
		with self._lock:
			self._cap = cap
			self._dims = (w, h)

	@property
	def dimensions(self) -> Tuple[int, int]:
		with self._lock:
			return self._dims

	def start(self) -> None:
		with self._lock:
			if self._running or self._cap is None:
				return
			self._running = True
		t = threading.Thread(target=self._run_loop, name="file-playback", daemon=True)
		self._thread = t
		t.start()

	def stop(self) -> None:
		"""Blocking; same release hand-off as CameraSource.stop()."""
		with self._lock:
			self._running = False
		t = self._thread
		self._thread = None
		if t is not None and t.is_alive():
			if t is threading.current_thread():
				return
			t.join(timeout=self.stop_timeout)
			if t.is_alive():
				logger.warning("[Camera] %s decoder still busy; it will release the file", self.name())
				return
		self._release_capture()

	def _release_capture(self) -> None:
		with self._lock:
			cap = self._cap
			self._cap = None
		if cap is not None:
			cap.release()

	def pause(self) -> None:
		with self._lock:
			self._paused = True

	def resume(self) -> None:
		with self._lock:
			self._paused = False

	def seek(self, t_seconds: float) -> None:
		with self._lock:
			self._seek_to = max(0.0, float(t_seconds))

	def position(self) -> Dict[str, float]:
		with self._lock:
			duration = (self._frame_count / self._fps) if self._frame_count > 0 else 0.0
			return {"current_time": float(self._current_time), "duration": float(duration)}

	def _run_loop(self) -> None:
		try:
			self._play()
		finally:
			self._release_capture()

	def _play(self) -> None:
		import cv2  # type: ignore

		frame_dt = 1.0 / self._fps
		while True:
			t0 = time.monotonic()
			with self._lock:
				if not self._running:
					break
				cap = self._cap
				paused = self._paused
				seek_to = self._seek_to
				self._seek_to = None
			if cap is None:
				break
			if seek_to is not None:
				cap.set(cv2.CAP_PROP_POS_MSEC, seek_to * 1000.0)
				paused = False  # decode one frame so the new position is visible
			if paused:
				time.sleep(0.05)
				continue

			ok, frame = cap.read()
			if not ok or frame is None:
				# End of file: loop playback.
				cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
				ok, frame = cap.read()
				if not ok or frame is None:
					with self._lock:
						self._last_error = "no decodable frames"
					logger.warning("[Camera] %s has no decodable frames", self.name())
					time.sleep(0.2)
					continue
			pos_ms = float(cap.get(cv2.CAP_PROP_POS_MSEC) or 0.0)
			h, w = int(frame.shape[0]), int(frame.shape[1])
			with self._lock:
				self._latest = frame
				self._latest_t = time.time()
				self._current_time = pos_ms / 1000.0
				self._dims = (w, h)

			elapsed = time.monotonic() - t0
			if elapsed < frame_dt:
				time.sleep(frame_dt - elapsed)

	def read_latest(self) -> Optional[Tuple[Any, float]]:
		with self._lock:
			if self._latest is None or self._latest_t is None:
				return None
			return self._latest, self._latest_t

	def get_status(self) -> Dict[str, Any]:
		pos = self.position()
		with self._lock:
			return {
				"kind": self.kind,
				"name": self.name(),
				"path": str(self._path),
				"running": bool(self._running),
				"paused": bool(self._paused),
				"has_frame": self._latest is not None,
				"fps": self._fps,
				"dimensions": list(self._dims),
				"current_time": pos["current_time"],
				"duration": pos["duration"],
				"error": self._last_error,
			}
