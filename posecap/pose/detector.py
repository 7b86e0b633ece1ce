from __future__ import annotations

import asyncio
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from posecap.config import DetectionConfig
from posecap.errors import DetectorBusy
from posecap.pose.base import PoseProvider
from posecap.pose.types import LandmarkSnapshot


class AsyncPoseDetector:
	"""
	Awaitable front for a blocking PoseProvider.

	`detect(frame)` takes a BGR frame (as produced by OpenCV) and settles with a
	LandmarkSnapshot. Provider calls run on a single worker thread and at most one
	call is ever submitted to it: while the worker is busy (including with a call
	the scheduler has already given up on), detect() raises DetectorBusy instead
	of queueing a stale frame behind it.
	"""

	def __init__(self, provider: PoseProvider) -> None:
		self._provider = provider
		self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pose-detect")
		self._current: Optional[Future] = None

	def name(self) -> str:
		return self._provider.name()

	@property
	def busy(self) -> bool:
		cur = self._current
		return cur is not None and not cur.done()

	def _infer_bgr(self, frame, t_capture: float) -> LandmarkSnapshot:
		import cv2  # type: ignore

		rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
		return self._provider.infer_rgb(rgb, t_capture=t_capture)

	async def detect(self, frame, t_capture: Optional[float] = None) -> LandmarkSnapshot:
		if self.busy:
			raise DetectorBusy("pose worker still running a previous call")
		t = time.time() if t_capture is None else float(t_capture)
		fut = self._executor.submit(self._infer_bgr, frame, t)
		self._current = fut
		return await asyncio.wrap_future(fut)

	def close(self) -> None:
		self._executor.shutdown(wait=False, cancel_futures=True)
		self._provider.close()


def build_mediapipe_detector(cfg: DetectionConfig) -> AsyncPoseDetector:
	from posecap.pose.mediapipe_provider import MediaPipePoseProvider

	provider = MediaPipePoseProvider(
		model_complexity=cfg.model_complexity,
		min_detection_confidence=cfg.min_detection_confidence,
		min_tracking_confidence=cfg.min_tracking_confidence,
		smooth_landmarks=cfg.smooth_landmarks,
	)
	return AsyncPoseDetector(provider)
