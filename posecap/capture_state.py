"""
Capture state machine.

`transition(session, event)` is a pure function: it returns the next session and
the effects the controller must carry out (device work, timers, hand-off). It
never touches devices or clocks itself.

	SOURCE_SELECT -> LIVE | PLAYBACK <-> PAUSED
	(LIVE | PLAYBACK | PAUSED) -> COUNTDOWN(n) -> ... -> COUNTDOWN(0) = CAPTURED
	any -> EXITED
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, Union

from posecap.pose.posture_metrics import PostureMetrics, compute_metrics
from posecap.pose.types import LandmarkSnapshot
from posecap.video_source import SOURCE_FILE, SOURCE_LIVE


class CaptureState(enum.Enum):
	SOURCE_SELECT = "source_select"
	LIVE = "live"
	PLAYBACK = "playback"
	PAUSED = "paused"
	COUNTDOWN = "countdown"
	CAPTURED = "captured"
	EXITED = "exited"


@dataclass(frozen=True)
class CaptureSession:
	source_kind: Optional[str] = None  # live / file
	facing: str = "front"
	state: CaptureState = CaptureState.SOURCE_SELECT
	is_paused: bool = False
	is_recording: bool = False
	is_detecting: bool = True
	acquiring: bool = False
	countdown: Optional[int] = None
	countdown_seconds: int = 3
	captured_metrics: Optional[PostureMetrics] = None
	file_path: Optional[str] = None

	@property
	def monitor_enabled(self) -> bool:
		return self.is_detecting and not self.is_paused and self.state in _RUNNING

	def to_dict(self) -> dict:
		return {
			"source_kind": self.source_kind,
			"facing": self.facing,
			"state": self.state.value,
			"is_paused": self.is_paused,
			"is_recording": self.is_recording,
			"is_detecting": self.is_detecting,
			"acquiring": self.acquiring,
			"countdown": self.countdown,
			"captured_metrics": self.captured_metrics.to_dict() if self.captured_metrics else None,
			"file_path": self.file_path,
		}


_RUNNING = (CaptureState.LIVE, CaptureState.PLAYBACK, CaptureState.PAUSED, CaptureState.COUNTDOWN)
_CAPTURABLE = (CaptureState.LIVE, CaptureState.PLAYBACK, CaptureState.PAUSED)


# --- events -----------------------------------------------------------------

@dataclass(frozen=True)
class SelectCamera:
	facing: Optional[str] = None


@dataclass(frozen=True)
class SelectFile:
	path: str


@dataclass(frozen=True)
class SourceReady:
	kind: str


@dataclass(frozen=True)
class SourceFailed:
	message: str


@dataclass(frozen=True)
class ToggleFacing:
	pass


@dataclass(frozen=True)
class Pause:
	pass


@dataclass(frozen=True)
class Resume:
	pass


@dataclass(frozen=True)
class Seek:
	t: float


@dataclass(frozen=True)
class SetDetection:
	enabled: bool


@dataclass(frozen=True)
class CaptureCommand:
	snapshot: Optional[LandmarkSnapshot]


@dataclass(frozen=True)
class CountdownTick:
	pass


@dataclass(frozen=True)
class RecordingStarted:
	pass


@dataclass(frozen=True)
class RecordingStopped:
	pass


@dataclass(frozen=True)
class Exit:
	pass


Event = Union[
	SelectCamera,
	SelectFile,
	SourceReady,
	SourceFailed,
	ToggleFacing,
	Pause,
	Resume,
	Seek,
	SetDetection,
	CaptureCommand,
	CountdownTick,
	RecordingStarted,
	RecordingStopped,
	Exit,
]


# --- effects ----------------------------------------------------------------

@dataclass(frozen=True)
class AcquireCamera:
	facing: str


@dataclass(frozen=True)
class OpenFile:
	path: str


@dataclass(frozen=True)
class ReleaseSource:
	pass


@dataclass(frozen=True)
class PauseSource:
	pass


@dataclass(frozen=True)
class ResumeSource:
	pass


@dataclass(frozen=True)
class SeekSource:
	t: float


@dataclass(frozen=True)
class StartCountdownTimer:
	seconds: float = 1.0


@dataclass(frozen=True)
class CancelTimers:
	pass


@dataclass(frozen=True)
class DeliverMetrics:
	metrics: PostureMetrics


@dataclass(frozen=True)
class StopRecording:
	pass


@dataclass(frozen=True)
class StopDetection:
	pass


@dataclass(frozen=True)
class CancelVoice:
	pass


@dataclass(frozen=True)
class NotifyError:
	message: str


Effect = Union[
	AcquireCamera,
	OpenFile,
	ReleaseSource,
	PauseSource,
	ResumeSource,
	SeekSource,
	StartCountdownTimer,
	CancelTimers,
	DeliverMetrics,
	StopRecording,
	StopDetection,
	CancelVoice,
	NotifyError,
]


@dataclass(frozen=True)
class Transition:
	session: CaptureSession
	effects: Tuple[Effect, ...] = field(default_factory=tuple)


def _teardown(session: CaptureSession) -> Tuple[Effect, ...]:
	effects: list = [CancelTimers(), CancelVoice(), StopDetection()]
	if session.is_recording:
		effects.append(StopRecording())
	effects.append(ReleaseSource())
	return tuple(effects)


def _running_state(session: CaptureSession) -> CaptureState:
	return CaptureState.PLAYBACK if session.source_kind == SOURCE_FILE else CaptureState.LIVE


def transition(session: CaptureSession, event: Event) -> Transition:
	"""
	Apply one event. Events that do not apply in the current state leave the
	session untouched and produce no effects.
	"""
	st = session.state
	unchanged = Transition(session)

	if isinstance(event, SelectCamera):
		if st is CaptureState.COUNTDOWN:
			return unchanged
		facing = event.facing or session.facing
		facing = "back" if facing == "back" else "front"
		nxt = CaptureSession(
			source_kind=SOURCE_LIVE,
			facing=facing,
			state=CaptureState.SOURCE_SELECT,
			is_recording=session.is_recording,
			acquiring=True,
			countdown_seconds=session.countdown_seconds,
		)
		return Transition(nxt, (CancelTimers(), AcquireCamera(facing)))

	if isinstance(event, SelectFile):
		if st is CaptureState.COUNTDOWN:
			return unchanged
		nxt = CaptureSession(
			source_kind=SOURCE_FILE,
			facing=session.facing,
			state=CaptureState.SOURCE_SELECT,
			is_recording=session.is_recording,
			acquiring=True,
			countdown_seconds=session.countdown_seconds,
			file_path=event.path,
		)
		return Transition(nxt, (CancelTimers(), OpenFile(event.path)))

	if isinstance(event, SourceReady):
		if not session.acquiring or event.kind != session.source_kind:
			return unchanged
		nxt = replace(session, state=_running_state(session), acquiring=False, is_paused=False, is_detecting=True)
		return Transition(nxt)

	if isinstance(event, SourceFailed):
		if not session.acquiring:
			return unchanged
		nxt = replace(session, state=CaptureState.SOURCE_SELECT, source_kind=None, acquiring=False, file_path=None)
		return Transition(nxt, (ReleaseSource(), NotifyError(event.message)))

	if isinstance(event, ToggleFacing):
		if session.source_kind != SOURCE_LIVE or st not in _CAPTURABLE:
			return unchanged
		facing = "back" if session.facing == "front" else "front"
		nxt = replace(session, facing=facing, state=CaptureState.SOURCE_SELECT, acquiring=True, is_paused=False)
		return Transition(nxt, (AcquireCamera(facing),))

	if isinstance(event, Pause):
		if st not in (CaptureState.LIVE, CaptureState.PLAYBACK):
			return unchanged
		return Transition(replace(session, state=CaptureState.PAUSED, is_paused=True), (PauseSource(),))

	if isinstance(event, Resume):
		if st is not CaptureState.PAUSED:
			return unchanged
		return Transition(replace(session, state=_running_state(session), is_paused=False), (ResumeSource(),))

	if isinstance(event, Seek):
		if session.source_kind != SOURCE_FILE or st not in _CAPTURABLE:
			return unchanged
		return Transition(session, (SeekSource(max(0.0, float(event.t))),))

	if isinstance(event, SetDetection):
		return Transition(replace(session, is_detecting=bool(event.enabled)))

	if isinstance(event, CaptureCommand):
		if st not in _CAPTURABLE:
			return unchanged
		metrics = compute_metrics(event.snapshot)
		if metrics is None:
			# Rejected: nothing to freeze.
			return unchanged
		effects: list = []
		is_paused = session.is_paused
		if session.source_kind == SOURCE_FILE and not is_paused:
			effects.append(PauseSource())
			is_paused = True
		n = max(0, int(session.countdown_seconds))
		nxt = replace(session, state=CaptureState.COUNTDOWN, countdown=n, captured_metrics=metrics, is_paused=is_paused)
		if n == 0:
			return _finish_countdown(nxt, effects)
		effects.append(StartCountdownTimer(1.0))
		return Transition(nxt, tuple(effects))

	if isinstance(event, CountdownTick):
		if st is not CaptureState.COUNTDOWN or session.countdown is None:
			return unchanged
		n = session.countdown - 1
		nxt = replace(session, countdown=max(0, n))
		if n <= 0:
			return _finish_countdown(nxt, [])
		return Transition(nxt, (StartCountdownTimer(1.0),))

	if isinstance(event, RecordingStarted):
		return Transition(replace(session, is_recording=True))

	if isinstance(event, RecordingStopped):
		return Transition(replace(session, is_recording=False))

	if isinstance(event, Exit):
		if st is CaptureState.EXITED:
			return unchanged
		nxt = replace(session, state=CaptureState.EXITED, countdown=None, acquiring=False, is_paused=False)
		return Transition(nxt, _teardown(session))

	return unchanged


def _finish_countdown(session: CaptureSession, effects: list) -> Transition:
	metrics = session.captured_metrics
	nxt = replace(session, state=CaptureState.CAPTURED, countdown=0)
	out = list(effects)
	if metrics is not None:
		out.append(DeliverMetrics(metrics))
	# The capture screen is left once metrics are handed off.
	out.extend(_teardown(session))
	return Transition(nxt, tuple(out))
