import asyncio
import itertools
import threading
import time

import numpy as np
import pytest

from posecap.detection_scheduler import DetectionScheduler
from posecap.errors import DetectorBusy
from posecap.pose.base import PoseProvider
from posecap.pose.detector import AsyncPoseDetector
from posecap.pose.types import LandmarkSnapshot


class SlowProvider(PoseProvider):
	"""Counts concurrent entries; the model must never be entered twice at once."""

	def __init__(self):
		self._lock = threading.Lock()
		self.active = 0
		self.max_active = 0
		self.seen = []
		self.closed = False

	def name(self):
		return "slow"

	def infer_rgb(self, rgb, t_capture=None):
		with self._lock:
			self.active += 1
			self.max_active = max(self.max_active, self.active)
		time.sleep(0.02)
		self.seen.append(rgb[0, 0].tolist())
		with self._lock:
			self.active -= 1
		return LandmarkSnapshot.empty(width=rgb.shape[1], height=rgb.shape[0], backend="slow", t_capture=t_capture)

	def close(self):
		self.closed = True


class StuckFirstProvider(PoseProvider):
	"""The first call blocks until `unblock` is set; later calls return at once."""

	def __init__(self):
		self.unblock = threading.Event()
		self.calls = 0

	def name(self):
		return "stuck-first"

	def infer_rgb(self, rgb, t_capture=None):
		self.calls += 1
		if self.calls == 1:
			self.unblock.wait(5.0)
		return LandmarkSnapshot.empty(width=rgb.shape[1], height=rgb.shape[0], backend="stuck-first", t_capture=t_capture)

	def close(self):
		pass


def test_detect_converts_bgr():
	provider = SlowProvider()
	det = AsyncPoseDetector(provider)
	frame = np.zeros((4, 6, 3), dtype=np.uint8)
	frame[:, :] = (255, 0, 0)  # blue in BGR

	async def run():
		return [await det.detect(frame, float(i)) for i in range(3)]

	snaps = asyncio.run(run())
	det.close()
	assert provider.seen[0] == [0, 0, 255]
	assert [s.t_capture for s in snaps] == [0.0, 1.0, 2.0]
	assert snaps[0].width == 6 and snaps[0].height == 4
	assert provider.closed


def test_second_call_is_refused_while_worker_busy():
	provider = SlowProvider()
	det = AsyncPoseDetector(provider)
	frame = np.zeros((4, 6, 3), dtype=np.uint8)

	async def run():
		first = asyncio.ensure_future(det.detect(frame, 1.0))
		await asyncio.sleep(0)
		assert det.busy
		with pytest.raises(DetectorBusy):
			await det.detect(frame, 2.0)
		snap = await first
		assert not det.busy
		return snap

	snap = asyncio.run(run())
	det.close()
	assert snap.t_capture == 1.0
	assert provider.max_active == 1
	assert len(provider.seen) == 1


def test_stuck_call_leaves_no_backlog_behind_it():
	provider = StuckFirstProvider()
	det = AsyncPoseDetector(provider)
	frame = np.zeros((4, 6, 3), dtype=np.uint8)
	counter = itertools.count(1)
	results = []

	async def run():
		sched = DetectionScheduler(
			det.detect, lambda: (frame, float(next(counter))), results.append, refresh_hz=100, timeout_s=0.05
		)
		sched.start()
		await asyncio.sleep(0.4)
		# Several timeouts' worth of ticks passed; none of them reached the model.
		assert provider.calls == 1
		assert det.busy
		assert sched.stats["timeouts"] == 1
		assert sched.stats["busy"] > 0
		assert len(sched._inflight) <= 2

		provider.unblock.set()
		await asyncio.sleep(0.2)
		await sched.stop()
		return sched

	sched = asyncio.run(run())
	det.close()
	# Only the abandoned call came back stale; fresh frames follow right after.
	assert sched.stats["stale"] == 1
	assert results
	assert results[0].t_capture > 1.0
