from __future__ import annotations

import logging
import time
from typing import Optional

from posecap.pose.base import PoseProvider
from posecap.pose.landmarks import NUM_LANDMARKS
from posecap.pose.types import Landmark, LandmarkSnapshot

logger = logging.getLogger(__name__)


class MediaPipePoseProvider(PoseProvider):
	"""
	MediaPipe Pose provider that outputs the full 33-landmark set.

	Notes:
	- Coordinates stay normalized; frame size is carried on the snapshot.
	- A missing `visibility` becomes 0.0 so downstream visibility checks treat it as hidden.
	"""

	def __init__(
		self,
		model_complexity: int = 1,
		min_detection_confidence: float = 0.5,
		min_tracking_confidence: float = 0.5,
		smooth_landmarks: bool = True,
	) -> None:
		try:
			import mediapipe as mp  # type: ignore
		except ImportError as e:
			raise RuntimeError("MediaPipe is not installed. Install it with: pip install mediapipe") from e

		self._pose = mp.solutions.pose.Pose(
			static_image_mode=False,
			model_complexity=int(model_complexity),
			enable_segmentation=False,
			smooth_landmarks=bool(smooth_landmarks),
			min_detection_confidence=float(min_detection_confidence),
			min_tracking_confidence=float(min_tracking_confidence),
		)

	def name(self) -> str:
		return "mediapipe_pose"

	def infer_rgb(self, rgb, t_capture: Optional[float] = None) -> LandmarkSnapshot:
		# rgb: HxWx3
		h, w = int(rgb.shape[0]), int(rgb.shape[1])
		t = time.time() if t_capture is None else float(t_capture)
		res = self._pose.process(rgb)
		if not res or not getattr(res, "pose_landmarks", None):
			return LandmarkSnapshot.empty(width=w, height=h, backend=self.name(), t_capture=t)

		lm = res.pose_landmarks.landmark
		if len(lm) < NUM_LANDMARKS:
			logger.warning("[Detect] MediaPipe returned %d landmarks, expected %d", len(lm), NUM_LANDMARKS)
			return LandmarkSnapshot.empty(width=w, height=h, backend=self.name(), t_capture=t)

		points = tuple(
			Landmark(
				x=float(p.x),
				y=float(p.y),
				z=float(p.z),
				visibility=float(getattr(p, "visibility", 0.0) or 0.0),
			)
			for p in list(lm)[:NUM_LANDMARKS]
		)
		return LandmarkSnapshot(landmarks=points, t_capture=t, width=w, height=h, backend=self.name())

	def close(self) -> None:
		pose = self._pose
		self._pose = None
		if pose is not None:
			pose.close()
