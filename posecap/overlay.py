from __future__ import annotations

import threading
from io import BytesIO
from typing import Any, Optional, Sequence, Tuple

from posecap.pose import landmarks as L
from posecap.pose.types import LandmarkSnapshot

# BGR colors per skeleton group.
_GROUPS = [
	(L.TORSO, (246, 130, 59)),
	(L.LEFT_ARM, (129, 185, 16)),
	(L.RIGHT_ARM, (129, 185, 16)),
	(L.LEFT_LEG, (11, 158, 245)),
	(L.RIGHT_LEG, (11, 158, 245)),
	(L.FACE, (153, 72, 236)),
]
_JOINT_COLOR = (255, 255, 255)
MIN_DRAW_VISIBILITY = 0.5


def draw_skeleton(frame, snapshot: Optional[LandmarkSnapshot]):
	"""
	Draw the landmark skeleton over a copy of `frame` (BGR) and return it.
	Only points with visibility > 0.5 are drawn; line width scales with frame width.
	"""
	import cv2  # type: ignore

	out = frame.copy()
	if snapshot is None or snapshot.is_empty:
		return out
	h, w = int(out.shape[0]), int(out.shape[1])
	thickness = max(3, w // 200)
	radius = max(2, w // 250)

	def _pt(idx: int) -> Optional[Tuple[int, int]]:
		p = snapshot.get(idx)
		if p is None or p.visibility <= MIN_DRAW_VISIBILITY:
			return None
		return int(p.x * w), int(p.y * h)

	for connections, color in _GROUPS:
		for i, j in connections:
			a = _pt(i)
			b = _pt(j)
			if a is not None and b is not None:
				cv2.line(out, a, b, color, thickness, cv2.LINE_AA)
	for idx in range(len(snapshot.landmarks)):
		p = _pt(idx)
		if p is not None:
			cv2.circle(out, p, radius, _JOINT_COLOR, -1, cv2.LINE_AA)
	return out


def encode_jpeg(frame_bgr, quality: int = 80) -> bytes:
	import cv2  # type: ignore
	from PIL import Image  # type: ignore

	rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
	buf = BytesIO()
	Image.fromarray(rgb).save(buf, format="JPEG", quality=int(quality), optimize=True)
	return buf.getvalue()


class CompositeSurface:
	"""
	Latest composited frame (video + skeleton) as JPEG.

	Written only by the render step; read by the recorder and the MJPEG route.
	"""

	def __init__(self) -> None:
		self._lock = threading.Lock()
		self._jpeg: Optional[bytes] = None
		self._t: Optional[float] = None
		self._size: Tuple[int, int] = (0, 0)

	def publish(self, jpeg: bytes, t: float, size: Sequence[int]) -> None:
		with self._lock:
			self._jpeg = jpeg
			self._t = float(t)
			self._size = (int(size[0]), int(size[1]))

	def get_latest_jpeg(self) -> Tuple[Optional[bytes], Optional[float]]:
		with self._lock:
			return self._jpeg, self._t

	def get_latest_sized(self) -> Tuple[Optional[bytes], Optional[float], Tuple[int, int]]:
		with self._lock:
			return self._jpeg, self._t, self._size

	@property
	def size(self) -> Tuple[int, int]:
		with self._lock:
			return self._size

	def clear(self) -> None:
		with self._lock:
			self._jpeg = None
			self._t = None


def render_composite(surface: CompositeSurface, frame: Any, t: float, snapshot: Optional[LandmarkSnapshot], quality: int = 80) -> None:
	"""One render step: overlay the skeleton and publish the result."""
	composed = draw_skeleton(frame, snapshot)
	h, w = int(composed.shape[0]), int(composed.shape[1])
	surface.publish(encode_jpeg(composed, quality=quality), t, (w, h))
