import asyncio
import threading
import time

import numpy as np
import pytest

from posecap.config import CameraConfig
from posecap.errors import DeviceUnavailable
from posecap.overlay import CompositeSurface
from posecap.video_source import VideoSourceManager, camera_constraints, mjpeg_from_latest
from posecap.video_sources.camera_source import CameraSource


class FakeCapture:
	def __init__(self, w=640, h=480):
		self.frame = np.zeros((h, w, 3), dtype=np.uint8)
		self.released = False

	def read(self):
		time.sleep(0.005)
		return True, self.frame

	def release(self):
		self.released = True


class FakeOpener:
	"""Opens only when `accept(index, size)` says so; records every attempt."""

	def __init__(self, accept):
		self.accept = accept
		self.attempts = []
		self.opened = []

	def __call__(self, index, size):
		self.attempts.append((index, size))
		if not self.accept(index, size):
			return None
		cap = FakeCapture(*(size or (640, 480)))
		self.opened.append(cap)
		return cap


def _wait_for_frame(mgr, timeout=2.0):
	deadline = time.time() + timeout
	while time.time() < deadline:
		if mgr.read_latest() is not None:
			return True
		time.sleep(0.01)
	return False


def test_constraint_chain_order():
	cfg = CameraConfig()
	chain = camera_constraints(cfg, "back")
	assert [c.index for c in chain] == [cfg.back_index, cfg.back_index, None]
	assert chain[0].size == (1280, 720)
	assert chain[1].size is None


def test_ideal_resolution_is_used_when_available():
	opener = FakeOpener(lambda idx, size: True)
	mgr = VideoSourceManager(CameraConfig(), capture_opener=opener)

	async def run():
		await mgr.acquire_camera("front")

	asyncio.run(run())
	try:
		assert opener.attempts == [(0, (1280, 720))]
		assert _wait_for_frame(mgr)
		assert mgr.poll_dimensions() == (1280, 720)
	finally:
		mgr.release()


def test_falls_back_to_facing_without_resolution():
	opener = FakeOpener(lambda idx, size: size is None and idx == 1)
	mgr = VideoSourceManager(CameraConfig(), capture_opener=opener)
	asyncio.run(mgr.acquire_camera("back"))
	try:
		assert opener.attempts == [(1, (1280, 720)), (1, None)]
		assert mgr.source.get_status()["constraint"] == "back"
	finally:
		mgr.release()


def test_falls_back_to_any_camera():
	opener = FakeOpener(lambda idx, size: idx == 3)
	mgr = VideoSourceManager(CameraConfig(probe_max_index=4), capture_opener=opener)
	asyncio.run(mgr.acquire_camera("front"))
	try:
		assert opener.attempts[:2] == [(0, (1280, 720)), (0, None)]
		assert opener.attempts[2:] == [(0, None), (1, None), (2, None), (3, None)]
		assert mgr.source.get_status()["constraint"] == "any"
	finally:
		mgr.release()


def test_all_constraints_failing_raises_device_unavailable():
	opener = FakeOpener(lambda idx, size: False)
	mgr = VideoSourceManager(CameraConfig(probe_max_index=1), capture_opener=opener)
	with pytest.raises(DeviceUnavailable):
		asyncio.run(mgr.acquire_camera("front"))
	assert mgr.source is None


def test_opener_exceptions_count_as_failed_attempts():
	def opener(idx, size):
		raise OSError("busy")

	mgr = VideoSourceManager(CameraConfig(probe_max_index=0), capture_opener=opener)
	with pytest.raises(DeviceUnavailable):
		asyncio.run(mgr.acquire_camera("front"))


def test_reacquire_releases_previous_device_first():
	opener = FakeOpener(lambda idx, size: True)
	mgr = VideoSourceManager(CameraConfig(), capture_opener=opener)

	async def run():
		await mgr.acquire_camera("front")
		await mgr.acquire_camera("back")

	asyncio.run(run())
	try:
		assert opener.opened[0].released
		assert not opener.opened[1].released
		assert mgr.facing == "back"
	finally:
		mgr.release()


def test_release_is_idempotent():
	opener = FakeOpener(lambda idx, size: True)
	mgr = VideoSourceManager(CameraConfig(), capture_opener=opener)
	asyncio.run(mgr.acquire_camera("front"))
	mgr.release()
	mgr.release()
	assert mgr.source is None
	assert opener.opened[0].released
	assert mgr.read_latest() is None


def test_dimension_listeners_fire_on_change():
	opener = FakeOpener(lambda idx, size: True)
	mgr = VideoSourceManager(CameraConfig(), capture_opener=opener)
	seen = []
	mgr.add_dimensions_listener(lambda w, h: seen.append((w, h)))
	asyncio.run(mgr.acquire_camera("front"))
	try:
		assert _wait_for_frame(mgr)
		mgr.poll_dimensions()
		mgr.poll_dimensions()
		assert seen == [(1280, 720)]
	finally:
		mgr.release()


def test_missing_file_is_device_unavailable(tmp_path):
	mgr = VideoSourceManager(CameraConfig())
	with pytest.raises(DeviceUnavailable):
		asyncio.run(mgr.open_file(tmp_path / "nope.mp4"))


class HangingCapture:
	"""read() blocks until `unblock` is set; records whether release() raced a read."""

	def __init__(self):
		self.entered = threading.Event()
		self.unblock = threading.Event()
		self.released = threading.Event()
		self.reading = False
		self.released_during_read = False

	def read(self):
		self.reading = True
		self.entered.set()
		self.unblock.wait(5.0)
		self.reading = False
		return True, np.zeros((48, 64, 3), dtype=np.uint8)

	def release(self):
		self.released_during_read = self.reading
		self.released.set()


def test_stop_never_releases_under_a_blocked_read():
	cap = HangingCapture()
	src = CameraSource(cap, index=0)
	src.stop_timeout = 0.05
	src.start()
	assert cap.entered.wait(1.0)

	t0 = time.monotonic()
	src.stop()
	assert time.monotonic() - t0 < 1.0
	# The reader still owns the device.
	assert not cap.released.is_set()

	cap.unblock.set()
	assert cap.released.wait(1.0)
	assert not cap.released_during_read


def test_release_async_keeps_the_loop_responsive():
	cap = HangingCapture()
	mgr = VideoSourceManager(CameraConfig(), capture_opener=lambda idx, size: cap)

	async def run():
		await mgr.acquire_camera("front")
		assert cap.entered.wait(1.0)
		mgr.source.stop_timeout = 0.3
		beats = 0

		async def heartbeat():
			nonlocal beats
			while True:
				beats += 1
				await asyncio.sleep(0.01)

		hb = asyncio.create_task(heartbeat())
		await mgr.release_async()
		hb.cancel()
		return beats

	beats = asyncio.run(run())
	cap.unblock.set()
	assert mgr.source is None
	# The loop kept running while the join waited in a worker thread.
	assert beats >= 10
	assert cap.released.wait(1.0)
	assert not cap.released_during_read


def test_mjpeg_stream_sends_each_composite_once():
	surface = CompositeSurface()

	async def run():
		stream = mjpeg_from_latest(surface, fps=100)
		surface.publish(b"AAAA", 1.0, (4, 3))
		first = await stream.__anext__()
		nxt = asyncio.ensure_future(stream.__anext__())
		await asyncio.sleep(0.1)
		# Same composite still on the surface: nothing new to send.
		assert not nxt.done()
		surface.publish(b"BB", 2.0, (4, 3))
		second = await asyncio.wait_for(nxt, 1.0)
		await stream.aclose()
		return first, second

	first, second = asyncio.run(run())
	assert first == b"--frame\r\nContent-Type: image/jpeg\r\nContent-Length: 4\r\n\r\nAAAA\r\n"
	assert second.endswith(b"Content-Length: 2\r\n\r\nBB\r\n")
