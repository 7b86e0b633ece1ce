from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from posecap.pose.landmarks import LEFT_EAR, LEFT_HIP, LEFT_SHOULDER, RIGHT_HIP, RIGHT_SHOULDER
from posecap.pose.types import Landmark, LandmarkSnapshot

# Degrees of shoulder / pelvic tilt tolerated before an issue is reported.
TILT_ISSUE_DEGREES = 3.0
# Forward-head offset (normalized x) that raises the issue label.
FORWARD_HEAD_ISSUE_OFFSET = 0.1
# Forward-head offset that costs score; independent of the issue threshold.
FORWARD_HEAD_PENALTY_OFFSET = 0.05
FORWARD_HEAD_PENALTY = 20.0
TILT_PENALTY_PER_DEGREE = 5.0

# Reports below this score route to the posture-awareness path.
POOR_SCORE_THRESHOLD = 70

ISSUE_LEFT_SHOULDER_HIGH = "left shoulder high"
ISSUE_RIGHT_SHOULDER_HIGH = "right shoulder high"
ISSUE_PELVIC_TILT = "pelvic tilt"
ISSUE_FORWARD_HEAD = "rounded shoulders / forward head"


@dataclass(frozen=True)
class PostureMetrics:
	shoulder_angle: float
	pelvic_angle: float
	round_shoulder_index: float
	score: int
	issues: Tuple[str, ...] = ()

	def to_dict(self) -> Dict[str, Any]:
		"""Handoff shape consumed by the report screen."""
		return {
			"shoulderAngle": self.shoulder_angle,
			"pelvicAngle": self.pelvic_angle,
			"roundShoulderIndex": self.round_shoulder_index,
			"score": self.score,
			"issues": list(self.issues),
		}

	@classmethod
	def from_dict(cls, d: Dict[str, Any]) -> "PostureMetrics":
		issues = d.get("issues") or []
		return cls(
			shoulder_angle=float(d.get("shoulderAngle", 0.0)),
			pelvic_angle=float(d.get("pelvicAngle", 0.0)),
			round_shoulder_index=float(d.get("roundShoulderIndex", 0.0)),
			score=int(d.get("score", 0)),
			issues=tuple(str(i) for i in issues),
		)


def _line_angle(a: Landmark, b: Landmark) -> float:
	"""
	Tilt of the line through b and a, in degrees, as atan2(dy, dx) of (a - b).

	The line is oriented toward the image's right (dx >= 0), which keeps a level pair
	at 0 degrees whether or not the image is mirrored. Positive means the right-hand
	point in the image sits lower.
	"""
	dx = a.x - b.x
	dy = a.y - b.y
	if dx < 0:
		dx, dy = -dx, -dy
	return math.atan2(dy, dx) * (180.0 / math.pi)


def _round_half_up(v: float) -> int:
	return int(math.floor(v + 0.5))


def compute_metrics(snapshot: Optional[LandmarkSnapshot]) -> Optional[PostureMetrics]:
	"""
	Derive posture metrics from a single snapshot. Pure; None if there is no body.

	- shoulder angle: tilt of the shoulder line (left relative to right).
	- pelvic angle: same for the hips; reported with one label for either direction.
	- round shoulder index: ear.x - shoulder.x, assuming a side view showing the left side.
	"""
	if snapshot is None or snapshot.is_empty:
		return None

	lm = snapshot.landmarks
	issues = []

	shoulder_angle = _line_angle(lm[LEFT_SHOULDER], lm[RIGHT_SHOULDER])
	if abs(shoulder_angle) > TILT_ISSUE_DEGREES:
		issues.append(ISSUE_LEFT_SHOULDER_HIGH if shoulder_angle > 0 else ISSUE_RIGHT_SHOULDER_HIGH)

	pelvic_angle = _line_angle(lm[LEFT_HIP], lm[RIGHT_HIP])
	if abs(pelvic_angle) > TILT_ISSUE_DEGREES:
		issues.append(ISSUE_PELVIC_TILT)

	forward_offset = lm[LEFT_EAR].x - lm[LEFT_SHOULDER].x
	if forward_offset > FORWARD_HEAD_ISSUE_OFFSET:
		issues.append(ISSUE_FORWARD_HEAD)

	score = 100.0
	score -= abs(shoulder_angle) * TILT_PENALTY_PER_DEGREE
	score -= abs(pelvic_angle) * TILT_PENALTY_PER_DEGREE
	if forward_offset > FORWARD_HEAD_PENALTY_OFFSET:
		score -= FORWARD_HEAD_PENALTY
	score = max(0.0, min(100.0, score))

	return PostureMetrics(
		shoulder_angle=shoulder_angle,
		pelvic_angle=pelvic_angle,
		round_shoulder_index=forward_offset,
		score=_round_half_up(score),
		issues=tuple(issues),
	)


def is_poor(metrics: PostureMetrics) -> bool:
	return metrics.score < POOR_SCORE_THRESHOLD


def recommend_path(metrics: PostureMetrics) -> str:
	"""
	Training path for a report: "A" (posture awareness) for poor scores, else "B" (movement precision).
	"""
	return "A" if is_poor(metrics) else "B"
