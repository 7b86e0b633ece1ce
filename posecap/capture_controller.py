from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from posecap.capture_state import (
	AcquireCamera,
	CancelTimers,
	CancelVoice,
	CaptureCommand,
	CaptureSession,
	CaptureState,
	CountdownTick,
	DeliverMetrics,
	Effect,
	Event,
	Exit,
	NotifyError,
	OpenFile,
	Pause,
	PauseSource,
	RecordingStarted,
	RecordingStopped,
	ReleaseSource,
	Resume,
	ResumeSource,
	Seek,
	SeekSource,
	SelectCamera,
	SelectFile,
	SetDetection,
	SourceFailed,
	SourceReady,
	StartCountdownTimer,
	StopDetection,
	StopRecording,
	ToggleFacing,
	transition,
)
from posecap.config import AppConfig
from posecap.detection_scheduler import DetectionScheduler
from posecap.errors import CaptureRejected, DeviceUnavailable
from posecap.frame_monitor import NO_ALERT, FrameAlert, FrameQualityMonitor
from posecap.overlay import CompositeSurface, render_composite
from posecap.pose.posture_metrics import PostureMetrics, recommend_path
from posecap.pose.types import LandmarkSnapshot
from posecap.recording import Recorder
from posecap.stage_store import StageStore
from posecap.video_source import SOURCE_FILE, SOURCE_LIVE, VideoSourceManager
from posecap.voice import VoiceThrottle

logger = logging.getLogger(__name__)

Send = Callable[[Dict[str, Any]], None]

_RUNNING = (CaptureState.LIVE, CaptureState.PLAYBACK, CaptureState.PAUSED, CaptureState.COUNTDOWN)


class CaptureController:
	"""
	Runs the capture pipeline around the pure state machine.

	Every user action and device callback becomes an Event passed to dispatch(),
	which applies `transition()` and then carries out the returned effects. Effects
	that complete asynchronously (camera acquisition) feed their outcome back as a
	follow-up event in the same dispatch.
	"""

	def __init__(
		self,
		cfg: AppConfig,
		sources: VideoSourceManager,
		detector: Any,
		monitor: FrameQualityMonitor,
		voice: VoiceThrottle,
		surface: CompositeSurface,
		recorder: Recorder,
		store: StageStore,
		send: Optional[Send] = None,
	) -> None:
		self.cfg = cfg
		self.sources = sources
		self.detector = detector
		self.monitor = monitor
		self.voice = voice
		self.surface = surface
		self.recorder = recorder
		self.store = store
		self._send = send or (lambda _msg: None)

		self.session = CaptureSession(
			facing=cfg.camera.default_facing,
			countdown_seconds=cfg.capture.countdown_seconds,
		)
		self.latest_snapshot: Optional[LandmarkSnapshot] = None
		self.alert: FrameAlert = NO_ALERT
		self.last_error: Optional[str] = None

		self.scheduler = DetectionScheduler(
			detect=self._detect,
			get_frame=self.sources.read_latest,
			on_result=self._on_snapshot,
			refresh_hz=cfg.detection.refresh_hz,
			timeout_s=cfg.detection.timeout_seconds,
			on_error=self._on_detection_error,
		)
		self.sources.add_dimensions_listener(self.scheduler.set_frame_size)
		self.sources.add_dimensions_listener(self.recorder.set_output_size)
		self.recorder.on_ready = self._on_recording_ready

		self._lock = asyncio.Lock()
		self._countdown_timer: Optional[asyncio.TimerHandle] = None
		self._render_task: Optional[asyncio.Task] = None
		self._last_render_t: Optional[float] = None

	# --- lifecycle ------------------------------------------------------------

	def start(self) -> None:
		if self._render_task is None or self._render_task.done():
			self._render_task = asyncio.create_task(self._render_loop(), name="render-loop")

	async def close(self) -> None:
		if self.session.state is not CaptureState.EXITED:
			await self.dispatch(Exit())
		task = self._render_task
		self._render_task = None
		if task is not None:
			task.cancel()
			try:
				await task
			except asyncio.CancelledError:
				pass
		await self.scheduler.stop()
		await self.recorder.stop_recording()
		close = getattr(self.detector, "close", None)
		if callable(close):
			close()

	# --- dispatch -------------------------------------------------------------

	async def dispatch(self, event: Event) -> CaptureSession:
		async with self._lock:
			queue: List[Event] = [event]
			while queue:
				ev = queue.pop(0)
				before = self.session
				tr = transition(before, ev)
				self.session = tr.session
				for eff in tr.effects:
					follow = await self._apply(eff)
					if follow is not None:
						queue.append(follow)
				await self._sync_pipeline()
				if self.session != before:
					logger.debug("[Capture] %s: %s -> %s", type(ev).__name__, before.state.value, self.session.state.value)
					self._send({"type": "state", "session": self.session.to_dict()})
			return self.session

	async def _apply(self, eff: Effect) -> Optional[Event]:
		if isinstance(eff, AcquireCamera):
			self._drop_snapshot()
			try:
				await self.sources.acquire_camera(eff.facing)
			except DeviceUnavailable as e:
				logger.error("[Capture] %s", e)
				self.last_error = str(e)
				return SourceFailed(str(e))
			self.last_error = None
			return SourceReady(SOURCE_LIVE)

		if isinstance(eff, OpenFile):
			self._drop_snapshot()
			try:
				await self.sources.open_file(eff.path)
			except DeviceUnavailable as e:
				logger.error("[Capture] %s", e)
				self.last_error = str(e)
				return SourceFailed(str(e))
			self.last_error = None
			return SourceReady(SOURCE_FILE)

		if isinstance(eff, ReleaseSource):
			await self.sources.release_async()
			self._drop_snapshot()
			self.surface.clear()
			return None

		if isinstance(eff, PauseSource):
			if self.sources.source is not None:
				self.sources.source.pause()
			return None

		if isinstance(eff, ResumeSource):
			if self.sources.source is not None:
				self.sources.source.resume()
			return None

		if isinstance(eff, SeekSource):
			if self.sources.source is not None:
				self.sources.source.seek(eff.t)
			return None

		if isinstance(eff, StartCountdownTimer):
			self._cancel_countdown()
			loop = asyncio.get_running_loop()
			self._countdown_timer = loop.call_later(eff.seconds, self._on_countdown_timer)
			self._send({"type": "countdown", "value": self.session.countdown})
			return None

		if isinstance(eff, CancelTimers):
			self._cancel_countdown()
			return None

		if isinstance(eff, DeliverMetrics):
			self._deliver(eff.metrics)
			return None

		if isinstance(eff, StopRecording):
			await self.recorder.stop_recording()
			return RecordingStopped()

		if isinstance(eff, StopDetection):
			await self.scheduler.stop()
			self._drop_snapshot()
			return None

		if isinstance(eff, CancelVoice):
			self.voice.cancel()
			return None

		if isinstance(eff, NotifyError):
			self._send({"type": "error", "message": eff.message})
			return None

		logger.warning("[Capture] unhandled effect %r", eff)
		return None

	async def _sync_pipeline(self) -> None:
		s = self.session
		self.scheduler.set_enabled(s.is_detecting)
		self.scheduler.set_paused(s.is_paused or s.acquiring)
		if s.state in _RUNNING and self.detector is not None and not self.scheduler.running:
			self.scheduler.start()
		if not s.monitor_enabled and self.alert != NO_ALERT:
			self.monitor.clear()
			self._set_alert(NO_ALERT)

	# --- user actions ---------------------------------------------------------

	async def select_camera(self, facing: Optional[str] = None) -> CaptureSession:
		return self._enter_detecting(await self.dispatch(SelectCamera(facing)))

	async def select_file(self, path: str) -> CaptureSession:
		return self._enter_detecting(await self.dispatch(SelectFile(path)))

	def _enter_detecting(self, session: CaptureSession) -> CaptureSession:
		# Persist the stage only once a source is actually running.
		if session.state in (CaptureState.LIVE, CaptureState.PLAYBACK):
			self.store.set_stage("detecting")
		return session

	async def toggle_facing(self) -> CaptureSession:
		return await self.dispatch(ToggleFacing())

	async def pause(self) -> CaptureSession:
		return await self.dispatch(Pause())

	async def resume(self) -> CaptureSession:
		return await self.dispatch(Resume())

	async def toggle_pause(self) -> CaptureSession:
		if self.session.is_paused:
			return await self.resume()
		return await self.pause()

	async def seek(self, t_seconds: float) -> CaptureSession:
		return await self.dispatch(Seek(t_seconds))

	async def set_detection(self, enabled: bool) -> CaptureSession:
		return await self.dispatch(SetDetection(enabled))

	async def capture(self) -> bool:
		"""
		Issue a capture command with the latest detector result.
		Returns False when the command was ignored (no usable snapshot or wrong state).
		"""
		before = self.session.state
		after = await self.dispatch(CaptureCommand(self.latest_snapshot))
		accepted = after.state in (CaptureState.COUNTDOWN, CaptureState.CAPTURED) and before not in (CaptureState.COUNTDOWN, CaptureState.CAPTURED)
		if not accepted:
			logger.debug("[Capture] %s", CaptureRejected(f"capture ignored in state {before.value}"))
		return accepted

	async def exit(self) -> CaptureSession:
		"""Leave the capture screen; back to welcome unless a capture already moved on to the report."""
		session = await self.dispatch(Exit())
		if self.store.stage == "detecting":
			self.store.set_stage("welcome")
		return session

	async def start_recording(self) -> bool:
		if not self.recorder.start_recording():
			return False
		await self.dispatch(RecordingStarted())
		return True

	async def stop_recording(self) -> Optional[str]:
		path = await self.recorder.stop_recording()
		await self.dispatch(RecordingStopped())
		return path.name if path is not None else None

	# --- callbacks ------------------------------------------------------------

	async def _detect(self, frame: Any, t_frame: float) -> LandmarkSnapshot:
		return await self.detector.detect(frame, t_frame)

	def _on_snapshot(self, snapshot: LandmarkSnapshot) -> None:
		self.latest_snapshot = snapshot
		alert = self.monitor.evaluate(snapshot, facing=self.session.facing, enabled=self.session.monitor_enabled)
		self._set_alert(alert)

	def _on_detection_error(self, err: Exception) -> None:
		self._send({"type": "log", "msg": f"[Detect] {err}"})

	def _on_countdown_timer(self) -> None:
		self._countdown_timer = None
		asyncio.get_running_loop().create_task(self.dispatch(CountdownTick()))

	def _on_recording_ready(self, path) -> None:
		self._send({"type": "recording_ready", "name": path.name, "url": f"/recordings/{path.name}"})

	def _deliver(self, metrics: PostureMetrics) -> None:
		self.store.complete_capture(metrics)
		logger.info("[Capture] captured score=%d issues=%s", metrics.score, list(metrics.issues))
		self._send({"type": "countdown", "value": 0})
		self._send({"type": "captured", "metrics": metrics.to_dict(), "path": recommend_path(metrics)})

	# --- helpers --------------------------------------------------------------

	def _set_alert(self, alert: FrameAlert) -> None:
		if alert == self.alert:
			return
		self.alert = alert
		self._send({"type": "alert", **alert.to_dict()})

	def _drop_snapshot(self) -> None:
		self.latest_snapshot = None
		self.scheduler.latest = None

	def _cancel_countdown(self) -> None:
		if self._countdown_timer is not None:
			self._countdown_timer.cancel()
			self._countdown_timer = None

	async def _render_loop(self) -> None:
		interval = 1.0 / float(self.cfg.detection.refresh_hz)
		quality = int(self.cfg.recording.jpeg_quality)
		while True:
			try:
				self.sources.poll_dimensions()
				got = self.sources.read_latest()
				if got is not None and got[1] != self._last_render_t:
					frame, t = got
					snap = self.latest_snapshot if self.session.is_detecting else None
					await asyncio.to_thread(render_composite, self.surface, frame, t, snap, quality)
					self._last_render_t = t
			except Exception:
				logger.exception("[Capture] render step failed")
			await asyncio.sleep(interval)

	def get_status(self) -> Dict[str, Any]:
		src = self.sources.source
		return {
			"session": self.session.to_dict(),
			"stage": self.store.stage,
			"alert": self.alert.to_dict(),
			"error": self.last_error,
			"has_snapshot": self.latest_snapshot is not None and not self.latest_snapshot.is_empty,
			"source": self.sources.get_status(),
			"position": src.position() if src is not None else None,
			"detection": self.scheduler.status(),
			"recording": self.recorder.get_status(),
		}


def build_capture_controller(
	cfg: AppConfig,
	send: Optional[Send] = None,
	detector: Any = None,
	capture_opener: Any = None,
	voice_sink: Any = None,
	cue_player: Any = None,
) -> CaptureController:
	"""
	Wire the whole pipeline from config. `send` carries WS messages (alerts, speech,
	countdown, hand-off). Collaborators can be injected; otherwise the real
	camera/detector/audio adapters are used.
	"""
	from posecap.audio_cues import ToneCuePlayer
	from posecap.voice import BroadcastVoiceSink, NullVoiceSink

	if voice_sink is None:
		voice_sink = BroadcastVoiceSink(send, rate=cfg.monitor.voice_rate) if send is not None else NullVoiceSink()
	voice = VoiceThrottle(voice_sink, interval=cfg.monitor.voice_throttle_seconds, lang=cfg.monitor.voice_lang)
	monitor = FrameQualityMonitor(
		voice=voice,
		edge_margin=cfg.monitor.edge_margin,
		visibility_threshold=cfg.monitor.visibility_threshold,
	)
	surface = CompositeSurface()
	if cue_player is None:
		cue_player = ToneCuePlayer(enabled=cfg.recording.cues_enabled)
	recorder = Recorder(
		surface,
		output_dir=cfg.recording.output_dir,
		fps=cfg.recording.fps,
		app_name=cfg.recording.app_name,
		record_kind=cfg.recording.record_kind,
		cue_player=cue_player,
		mux_mp4=cfg.recording.mux_mp4,
	)
	return CaptureController(
		cfg,
		sources=VideoSourceManager(cfg.camera, capture_opener=capture_opener),
		detector=detector,
		monitor=monitor,
		voice=voice,
		surface=surface,
		recorder=recorder,
		store=StageStore(cfg.storage.path),
		send=send,
	)
