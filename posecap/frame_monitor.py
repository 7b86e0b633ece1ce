from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from posecap.pose import landmarks as L
from posecap.pose.types import LandmarkSnapshot
from posecap.voice import VoiceThrottle

logger = logging.getLogger(__name__)

FACING_FRONT = "front"
FACING_BACK = "back"

MSG_NO_BODY = "no_body"
MSG_MOVE_DOWN = "move_down"
MSG_MOVE_UP = "move_up"
MSG_MOVE_LEFT = "move_left"
MSG_MOVE_RIGHT = "move_right"
MSG_FIT_WHOLE_BODY = "fit_whole_body"
MSG_FULL_VISIBILITY = "full_visibility"

MESSAGES = {
	MSG_NO_BODY: "No body detected. Please step into the frame.",
	MSG_MOVE_DOWN: "Please move down or step back.",
	MSG_MOVE_UP: "Please move up or step back.",
	MSG_MOVE_LEFT: "Please move left.",
	MSG_MOVE_RIGHT: "Please move right.",
	MSG_FIT_WHOLE_BODY: "Please step back so your whole body fits in the frame.",
	MSG_FULL_VISIBILITY: "Please step back and make sure your full body is visible.",
}


@dataclass(frozen=True)
class FrameAlert:
	message: Optional[str] = None
	code: Optional[str] = None
	violations: int = 0

	def to_dict(self) -> dict:
		return {"message": self.message, "code": self.code, "violations": self.violations}


NO_ALERT = FrameAlert()


class FrameQualityMonitor:
	"""
	Turns the latest snapshot into at most one framing alert per evaluation.

	Order: no body; boundary violations (several at once collapse into a single
	"fit whole body" alert); low visibility of critical landmarks; nothing.
	Alerts are offered to the voice throttle, which speaks at most once per window.
	"""

	def __init__(
		self,
		voice: Optional[VoiceThrottle] = None,
		edge_margin: float = 0.05,
		visibility_threshold: float = 0.55,
	) -> None:
		self.voice = voice
		self.edge_margin = float(edge_margin)
		self.visibility_threshold = float(visibility_threshold)
		self.current: FrameAlert = NO_ALERT

	def classify(self, snapshot: Optional[LandmarkSnapshot], facing: str = FACING_FRONT) -> FrameAlert:
		if snapshot is None or snapshot.is_empty:
			return _alert(MSG_NO_BODY, 0)

		low = self.edge_margin
		high = 1.0 - self.edge_margin
		violations = []

		head = snapshot.get(L.HEAD)
		if head is not None and head.y < low:
			violations.append(MSG_MOVE_DOWN)
		if _any(snapshot, L.FEET, lambda p: p.y > high):
			violations.append(MSG_MOVE_UP)
		if _any(snapshot, L.LEFT_SIDE, lambda p: p.x < low):
			violations.append(MSG_MOVE_LEFT if facing == FACING_FRONT else MSG_MOVE_RIGHT)
		if _any(snapshot, L.RIGHT_SIDE, lambda p: p.x > high):
			violations.append(MSG_MOVE_RIGHT if facing == FACING_FRONT else MSG_MOVE_LEFT)

		if len(violations) > 1:
			return _alert(MSG_FIT_WHOLE_BODY, len(violations))
		if violations:
			return _alert(violations[0], 1)

		for idx in L.CRITICAL:
			p = snapshot.get(idx)
			if p is None or p.visibility < self.visibility_threshold:
				return _alert(MSG_FULL_VISIBILITY, 0)
		return NO_ALERT

	def evaluate(self, snapshot: Optional[LandmarkSnapshot], facing: str = FACING_FRONT, enabled: bool = True) -> FrameAlert:
		"""
		Classify `snapshot` and offer the alert to the voice throttle.
		A disabled monitor (detection off or playback paused) clears the alert.
		"""
		if not enabled:
			self.current = NO_ALERT
			return self.current
		alert = self.classify(snapshot, facing)
		if alert.code != self.current.code:
			logger.debug("[Monitor] alert %s -> %s", self.current.code, alert.code)
		self.current = alert
		if self.voice is not None and alert.message:
			self.voice.offer(alert.message)
		return alert

	def clear(self) -> None:
		self.current = NO_ALERT


def _alert(code: str, violations: int) -> FrameAlert:
	return FrameAlert(message=MESSAGES[code], code=code, violations=violations)


def _any(snapshot: LandmarkSnapshot, indices, pred) -> bool:
	for idx in indices:
		p = snapshot.get(idx)
		if p is not None and pred(p):
			return True
	return False
