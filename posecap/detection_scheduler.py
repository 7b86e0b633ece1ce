from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from posecap.errors import DetectionError, DetectionTimeout, DetectorBusy
from posecap.pose.types import LandmarkSnapshot

logger = logging.getLogger(__name__)

DetectFn = Callable[[Any, float], Awaitable[LandmarkSnapshot]]
FrameFn = Callable[[], Optional[Tuple[Any, float]]]


class FlightState(enum.Enum):
	IDLE = "idle"
	PENDING = "pending"
	SETTLED = "settled"
	TIMED_OUT = "timed_out"


class SingleFlight:
	"""
	At most one outstanding detector request.

	Idle -> Pending -> (Settled | TimedOut), and back to Idle on a detector error.
	Only Pending blocks a new request. Every request gets a token; a settle, error or
	timeout carrying an old token is stale and does not touch the current state.
	"""

	def __init__(self) -> None:
		self.state = FlightState.IDLE
		self._token = 0

	@property
	def busy(self) -> bool:
		return self.state is FlightState.PENDING

	@property
	def token(self) -> int:
		return self._token

	def try_begin(self) -> Optional[int]:
		if self.state is FlightState.PENDING:
			return None
		self._token += 1
		self.state = FlightState.PENDING
		return self._token

	def is_current(self, token: int) -> bool:
		return token == self._token and self.state is FlightState.PENDING

	def settle(self, token: int) -> bool:
		if not self.is_current(token):
			return False
		self.state = FlightState.SETTLED
		return True

	def time_out(self, token: int) -> bool:
		if not self.is_current(token):
			return False
		self.state = FlightState.TIMED_OUT
		return True

	def fail(self, token: int) -> bool:
		if not self.is_current(token):
			return False
		self.state = FlightState.IDLE
		return True

	def reset(self) -> None:
		# Invalidate whatever is outstanding.
		self._token += 1
		self.state = FlightState.IDLE


class DetectionScheduler:
	"""
	Drives detector calls once per refresh tick.

	- A tick whose request cannot start (one still pending) is dropped, not queued.
	- Each accepted request arms a recovery timer; when it fires the gate moves to
	  TimedOut so the next tick can proceed. The late result is ignored.
	- A detector error clears the gate immediately and is reported via on_error.
	- A DetectorBusy refusal clears the gate quietly; the next tick tries again.
	"""

	def __init__(
		self,
		detect: DetectFn,
		get_frame: FrameFn,
		on_result: Callable[[LandmarkSnapshot], None],
		refresh_hz: float = 30.0,
		timeout_s: float = 0.6,
		on_error: Optional[Callable[[Exception], None]] = None,
	) -> None:
		self._detect = detect
		self._get_frame = get_frame
		self._on_result = on_result
		self._on_error = on_error
		self.refresh_hz = float(refresh_hz) if refresh_hz > 0 else 30.0
		self.timeout_s = float(timeout_s) if timeout_s > 0 else 0.6

		self.gate = SingleFlight()
		self.enabled = True
		self.paused = False
		self.frame_size: Tuple[int, int] = (0, 0)
		self.latest: Optional[LandmarkSnapshot] = None

		self._task: Optional[asyncio.Task] = None
		self._timer: Optional[asyncio.TimerHandle] = None
		self._timer_token: Optional[int] = None
		self._inflight: Set[asyncio.Task] = set()
		self.stats: Dict[str, int] = {
			"ticks": 0,
			"requests": 0,
			"dropped": 0,
			"completed": 0,
			"stale": 0,
			"timeouts": 0,
			"errors": 0,
			"busy": 0,
		}

	@property
	def running(self) -> bool:
		return self._task is not None and not self._task.done()

	def set_enabled(self, enabled: bool) -> None:
		self.enabled = bool(enabled)

	def set_paused(self, paused: bool) -> None:
		self.paused = bool(paused)

	def set_frame_size(self, width: int, height: int) -> None:
		self.frame_size = (int(width), int(height))

	def start(self) -> None:
		if self.running:
			return
		self._task = asyncio.create_task(self._run_loop(), name="detection-scheduler")

	async def stop(self) -> None:
		task = self._task
		self._task = None
		self._cancel_timer()
		self.gate.reset()
		inflight = list(self._inflight)
		for t in inflight:
			t.cancel()
		if task is not None:
			task.cancel()
			try:
				await task
			except asyncio.CancelledError:
				pass
		if inflight:
			await asyncio.gather(*inflight, return_exceptions=True)
		self._inflight.clear()

	async def _run_loop(self) -> None:
		interval = 1.0 / self.refresh_hz
		while True:
			try:
				self.tick()
			except Exception:
				logger.exception("[Detect] tick failed")
			await asyncio.sleep(interval)

	def tick(self) -> bool:
		"""
		Run one refresh step. Returns True if a detector request was started.
		"""
		self.stats["ticks"] += 1
		if not self.enabled or self.paused:
			return False
		got = self._get_frame()
		if got is None:
			return False
		frame, t_frame = got
		if frame is None:
			return False

		token = self.gate.try_begin()
		if token is None:
			self.stats["dropped"] += 1
			return False

		self.stats["requests"] += 1
		loop = asyncio.get_running_loop()
		self._cancel_timer()
		self._timer = loop.call_later(self.timeout_s, self._on_timeout, token)
		self._timer_token = token
		task = loop.create_task(self._run_request(token, frame, float(t_frame)))
		self._inflight.add(task)
		task.add_done_callback(self._inflight.discard)
		return True

	async def _run_request(self, token: int, frame: Any, t_frame: float) -> None:
		try:
			snapshot = await self._detect(frame, t_frame)
		except asyncio.CancelledError:
			raise
		except DetectorBusy:
			# Worker still stuck in an abandoned call; treat like a dropped tick.
			self._cancel_timer(token)
			if self.gate.fail(token):
				self.stats["busy"] += 1
			return
		except Exception as e:
			self._cancel_timer(token)
			if not self.gate.fail(token):
				logger.debug("[Detect] late detector error ignored: %r", e)
				return
			self.stats["errors"] += 1
			err = DetectionError(f"detector raised: {e!r}")
			logger.error("[Detect] %s", err)
			if self._on_error is not None:
				try:
					self._on_error(err)
				except Exception:
					logger.exception("[Detect] on_error handler failed")
			return

		self._cancel_timer(token)
		if not self.gate.settle(token):
			self.stats["stale"] += 1
			return
		self.stats["completed"] += 1
		self.latest = snapshot
		try:
			self._on_result(snapshot)
		except Exception:
			logger.exception("[Detect] on_result handler failed")

	def _on_timeout(self, token: int) -> None:
		if self._timer_token == token:
			self._timer = None
			self._timer_token = None
		if self.gate.time_out(token):
			self.stats["timeouts"] += 1
			logger.debug("[Detect] %s", DetectionTimeout(f"request {token} exceeded {self.timeout_s:.3f}s"))

	def _cancel_timer(self, token: Optional[int] = None) -> None:
		if token is not None and token != self._timer_token:
			return
		if self._timer is not None:
			self._timer.cancel()
		self._timer = None
		self._timer_token = None

	def status(self) -> Dict[str, Any]:
		return {
			"running": self.running,
			"enabled": self.enabled,
			"paused": self.paused,
			"flight": self.gate.state.value,
			"frame_size": list(self.frame_size),
			"refresh_hz": self.refresh_hz,
			"timeout_s": self.timeout_s,
			"stats": dict(self.stats),
		}
