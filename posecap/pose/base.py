from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from posecap.pose.types import LandmarkSnapshot


class PoseProvider(ABC):
	"""
	Model adapter interface.

	Implementations take an RGB image (H,W,3 uint8) and return a LandmarkSnapshot
	with either zero or exactly 33 landmarks. Providers are not required to be
	thread-safe; callers must not enter infer_rgb() concurrently.
	"""

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	def infer_rgb(self, rgb, t_capture: Optional[float] = None) -> LandmarkSnapshot: ...

	@abstractmethod
	def close(self) -> None: ...
