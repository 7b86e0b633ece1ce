from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional, Tuple

from posecap.video_source import SOURCE_LIVE, FrameSource

logger = logging.getLogger(__name__)


class CameraSource(FrameSource):
	"""
	Live camera backed by an already opened OpenCV capture.

	A daemon thread keeps only the latest frame; readers never wait on the device.
	The capture is only ever touched by one thread at a time: once the reader has
	started, it is the reader that releases the capture on its way out.
	"""

	kind = SOURCE_LIVE
	stop_timeout = 2.0

	def __init__(self, capture: Any, index: int, facing: str = "front", label: str = "") -> None:
		self._lock = threading.Lock()
		self._cap = capture
		self._index = int(index)
		self._facing = facing
		self._label = label

		self._running = False
		self._paused = False
		self._thread: Optional[threading.Thread] = None
		self._last_error: Optional[str] = None

		self._latest: Optional[Any] = None
		self._latest_t: Optional[float] = None
		self._frame_idx = 0
		self._dims: Tuple[int, int] = (0, 0)

	def name(self) -> str:
		return f"camera{self._index}"

	@property
	def dimensions(self) -> Tuple[int, int]:
		with self._lock:
			return self._dims

	def start(self) -> None:
		with self._lock:
			if self._running:
				return
			self._running = True
			self._last_error = None
		t = threading.Thread(target=self._run_loop, name=f"{self.name()}-reader", daemon=True)
		self._thread = t
		t.start()

	def stop(self) -> None:
		"""
		Blocking; call it off the event loop. If the reader is still inside
		cap.read() when the join times out, the reader releases the capture itself.
		"""
		with self._lock:
			self._running = False
		t = self._thread
		self._thread = None
		if t is not None and t.is_alive():
			if t is threading.current_thread():
				return
			t.join(timeout=self.stop_timeout)
			if t.is_alive():
				logger.warning("[Camera] %s reader still busy; it will release the device", self.name())
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

	def _run_loop(self) -> None:
		try:
			self._read_frames()
		finally:
			self._release_capture()

	def _read_frames(self) -> None:
		while True:
			with self._lock:
				if not self._running:
					break
				paused = self._paused
				cap = self._cap
			if cap is None:
				break
			if paused:
				time.sleep(0.05)
				continue
			try:
				ok, frame = cap.read()
			except Exception as e:
				with self._lock:
					self._last_error = f"read failed: {e!r}"
				logger.warning("[Camera] %s read failed: %r", self.name(), e)
				time.sleep(0.1)
				continue
			if not ok or frame is None:
				time.sleep(0.01)
				continue
			h, w = int(frame.shape[0]), int(frame.shape[1])
			with self._lock:
				self._latest = frame
				self._latest_t = time.time()
				self._frame_idx += 1
				self._dims = (w, h)

	def read_latest(self) -> Optional[Tuple[Any, float]]:
		with self._lock:
			if self._latest is None or self._latest_t is None:
				return None
			return self._latest, self._latest_t

	def get_status(self) -> Dict[str, Any]:
		with self._lock:
			return {
				"kind": self.kind,
				"name": self.name(),
				"facing": self._facing,
				"constraint": self._label,
				"running": bool(self._running),
				"paused": bool(self._paused),
				"has_frame": self._latest is not None,
				"t_last_frame": self._latest_t,
				"frame_idx": self._frame_idx,
				"dimensions": list(self._dims),
				"error": self._last_error,
			}
