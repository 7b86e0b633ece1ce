from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Landmark:
	"""
	A single body keypoint in normalized frame coordinates.
	"""

	x: float
	y: float
	z: float = 0.0
	visibility: float = 0.0  # confidence [0..1]

	def to_dict(self) -> Dict[str, float]:
		return {"x": self.x, "y": self.y, "z": self.z, "visibility": self.visibility}


@dataclass(frozen=True)
class LandmarkSnapshot:
	"""
	One complete detector result for a single frame.

	- `landmarks` is either empty (no body) or holds the 33 points in the fixed
	  global order defined in posecap.pose.landmarks.
	- Snapshots are never mutated; each detector callback produces a new one.
	"""

	landmarks: Tuple[Landmark, ...] = ()
	t_capture: float = field(default_factory=time.time)
	width: int = 0
	height: int = 0
	backend: str = ""

	@classmethod
	def empty(cls, width: int = 0, height: int = 0, backend: str = "", t_capture: Optional[float] = None) -> "LandmarkSnapshot":
		return cls(
			landmarks=(),
			t_capture=time.time() if t_capture is None else float(t_capture),
			width=int(width),
			height=int(height),
			backend=backend,
		)

	@property
	def is_empty(self) -> bool:
		return not self.landmarks

	def get(self, index: int) -> Optional[Landmark]:
		if 0 <= index < len(self.landmarks):
			return self.landmarks[index]
		return None

	def to_dict(self) -> Dict[str, Any]:
		return {
			"t_capture": self.t_capture,
			"width": self.width,
			"height": self.height,
			"backend": self.backend,
			"landmarks": [lm.to_dict() for lm in self.landmarks],
		}
