from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from posecap.config import CameraConfig
from posecap.errors import DeviceUnavailable

logger = logging.getLogger(__name__)

SOURCE_LIVE = "live"
SOURCE_FILE = "file"


class FrameSource(ABC):
	"""
	A pixel source (camera or file) read by the render step and the detection scheduler.

	read_latest() never blocks; it returns the most recent (frame, t_host) or None
	while no frame is ready yet.
	"""

	kind: str = SOURCE_LIVE

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	def start(self) -> None: ...

	@abstractmethod
	def stop(self) -> None: ...

	@abstractmethod
	def read_latest(self) -> Optional[Tuple[Any, float]]: ...

	@property
	@abstractmethod
	def dimensions(self) -> Tuple[int, int]: ...

	@abstractmethod
	def get_status(self) -> Dict[str, Any]: ...

	def pause(self) -> None:
		return

	def resume(self) -> None:
		return

	def seek(self, t_seconds: float) -> None:
		return

	def position(self) -> Dict[str, float]:
		return {"current_time": 0.0, "duration": 0.0}


@dataclass(frozen=True)
class CameraConstraint:
	"""
	One attempt in the camera fallback chain.
	index=None means "any camera" (scan every probed index).
	"""

	label: str
	index: Optional[int]
	size: Optional[Tuple[int, int]] = None


# (index, size) -> opened capture or None
CaptureOpener = Callable[[int, Optional[Tuple[int, int]]], Any]


def open_cv_capture(index: int, size: Optional[Tuple[int, int]]) -> Any:
	"""
	Open an OpenCV camera. With `size`, the device must accept the resolution
	and deliver a first frame; otherwise the attempt fails.
	"""
	import cv2  # type: ignore

	cap = cv2.VideoCapture(int(index))
	if not cap.isOpened():
		cap.release()
		return None
	if size is not None:
		ok_w = cap.set(cv2.CAP_PROP_FRAME_WIDTH, int(size[0]))
		ok_h = cap.set(cv2.CAP_PROP_FRAME_HEIGHT, int(size[1]))
		if not (ok_w and ok_h):
			cap.release()
			return None
	ok, _frame = cap.read()
	if not ok:
		cap.release()
		return None
	return cap


def camera_constraints(cfg: CameraConfig, facing: str) -> List[CameraConstraint]:
	index = cfg.back_index if facing == "back" else cfg.front_index
	return [
		CameraConstraint(label=f"{facing}+{cfg.ideal_width}x{cfg.ideal_height}", index=index, size=(cfg.ideal_width, cfg.ideal_height)),
		CameraConstraint(label=facing, index=index),
		CameraConstraint(label="any", index=None),
	]


class VideoSourceManager:
	"""
	Owns the single active FrameSource.

	- acquire_camera(): walks the constraint chain, most specific first.
	- open_file(): file-backed playback.
	- release() / release_async(): idempotent; the held source is always stopped
	  before a new one is opened, off the event loop when called from async code.
	- Dimension listeners are told whenever the active source's (w, h) changes.
	"""

	def __init__(self, cfg: Optional[CameraConfig] = None, capture_opener: Optional[CaptureOpener] = None) -> None:
		self.cfg = cfg or CameraConfig()
		self._open = capture_opener or open_cv_capture
		self.source: Optional[FrameSource] = None
		self.facing: str = self.cfg.default_facing
		self._listeners: List[Callable[[int, int], None]] = []
		self._dims: Tuple[int, int] = (0, 0)
		self._lock = asyncio.Lock()

	@property
	def dimensions(self) -> Tuple[int, int]:
		return self._dims

	def add_dimensions_listener(self, fn: Callable[[int, int], None]) -> None:
		self._listeners.append(fn)

	def _try_constraint(self, c: CameraConstraint) -> Tuple[Any, Optional[int]]:
		indices = [c.index] if c.index is not None else list(range(self.cfg.probe_max_index + 1))
		last_error: Optional[BaseException] = None
		for idx in indices:
			try:
				cap = self._open(int(idx), c.size)
			except Exception as e:
				last_error = e
				cap = None
			if cap is not None:
				return cap, idx
		if last_error is not None:
			logger.warning("[Camera] constraint %s failed: %r", c.label, last_error)
		else:
			logger.warning("[Camera] constraint %s failed, trying next", c.label)
		return None, None

	async def acquire_camera(self, facing: str) -> FrameSource:
		from posecap.video_sources.camera_source import CameraSource

		facing = "back" if facing == "back" else "front"
		async with self._lock:
			# Free the device before asking for another stream.
			await self._release_locked()
			for c in camera_constraints(self.cfg, facing):
				cap, idx = await asyncio.to_thread(self._try_constraint, c)
				if cap is None:
					continue
				src = CameraSource(cap, index=int(idx), facing=facing, label=c.label)
				src.start()
				self.source = src
				self.facing = facing
				logger.info("[Camera] acquired index=%s via %s", idx, c.label)
				self.poll_dimensions()
				return src
		logger.error("[Camera] all camera constraints failed (facing=%s)", facing)
		raise DeviceUnavailable(f"no camera could be opened for facing={facing!r}")

	async def open_file(self, path: str | Path) -> FrameSource:
		from posecap.video_sources.file_source import FileSource

		p = Path(path).expanduser()
		async with self._lock:
			await self._release_locked()
			if not p.exists():
				raise DeviceUnavailable(f"video file not found: {p}")
			src = FileSource(p)
			try:
				await asyncio.to_thread(src.open)
			except Exception as e:
				raise DeviceUnavailable(f"video file could not be opened: {p} ({e!r})") from e
			src.start()
			self.source = src
			logger.info("[Camera] file source %s", p)
			self.poll_dimensions()
			return src

	def release(self) -> None:
		"""Blocking release for callers outside the event loop (tests, shutdown)."""
		src = self.source
		self.source = None
		self._stop_source(src)

	async def release_async(self) -> None:
		async with self._lock:
			await self._release_locked()

	async def _release_locked(self) -> None:
		# Detach on the loop; the blocking stop/join runs in a worker thread.
		src = self.source
		self.source = None
		if src is not None:
			await asyncio.to_thread(self._stop_source, src)

	@staticmethod
	def _stop_source(src: Optional[FrameSource]) -> None:
		if src is None:
			return
		try:
			src.stop()
		except Exception:
			logger.exception("[Camera] stopping %s failed", src.name())
		logger.info("[Camera] released %s", src.name())

	def read_latest(self) -> Optional[Tuple[Any, float]]:
		src = self.source
		if src is None:
			return None
		return src.read_latest()

	def poll_dimensions(self) -> Tuple[int, int]:
		"""
		Check the active source's native size and notify listeners on change.
		"""
		src = self.source
		dims = src.dimensions if src is not None else (0, 0)
		if dims != self._dims and dims[0] > 0 and dims[1] > 0:
			self._dims = dims
			logger.info("[Camera] resolution %dx%d", dims[0], dims[1])
			for fn in list(self._listeners):
				try:
					fn(int(dims[0]), int(dims[1]))
				except Exception:
					logger.exception("[Camera] dimensions listener failed")
		return self._dims

	def get_status(self) -> Dict[str, Any]:
		src = self.source
		return {
			"active": src is not None,
			"facing": self.facing,
			"dimensions": list(self._dims),
			"source": src.get_status() if src is not None else None,
		}


def _mjpeg_part(jpeg: bytes, boundary: bytes = b"frame") -> bytes:
	return (
		b"--" + boundary + b"\r\n"
		b"Content-Type: image/jpeg\r\n"
		b"Content-Length: " + str(len(jpeg)).encode("ascii") + b"\r\n\r\n" + jpeg + b"\r\n"
	)


async def mjpeg_from_latest(surface: Any, fps: float = 15.0) -> AsyncIterator[bytes]:
	"""
	multipart/x-mixed-replace stream of the composited surface (video + skeleton).

	Each new composite goes out at most once, and no faster than `fps`. While the
	surface is empty (no source, or a source switch just cleared it) the stream
	simply waits.
	"""
	try:
		rate = float(fps)
	except (TypeError, ValueError):
		rate = 15.0
	min_interval = 1.0 / (rate if rate > 0.0 else 15.0)
	last_t: Optional[float] = None
	next_due = 0.0

	while True:
		jpeg, t = surface.get_latest_jpeg()
		if jpeg is None or t is None or t == last_t:
			await asyncio.sleep(0.02)
			continue
		wait = next_due - time.monotonic()
		if wait > 0:
			await asyncio.sleep(wait)
			continue
		last_t = t
		next_due = time.monotonic() + min_interval
		yield _mjpeg_part(jpeg)
