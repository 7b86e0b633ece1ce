import asyncio

from posecap.overlay import CompositeSurface
from posecap.recording import Recorder, recording_filename


class FakeCues:
	def __init__(self):
		self.events = []

	def play_start(self):
		self.events.append("start")

	def play_stop(self):
		self.events.append("stop")


def test_recording_filename():
	assert recording_filename("posecap", "recording", 1700000000123) == "posecap_recording_1700000000123.mjpeg"


def test_stop_without_start_is_noop(tmp_path):
	rec = Recorder(CompositeSurface(), tmp_path)
	assert asyncio.run(rec.stop_recording()) is None
	assert not rec.is_recording


def test_records_composited_frames(tmp_path):
	surface = CompositeSurface()
	cues = FakeCues()
	ready = []
	rec = Recorder(surface, tmp_path / "out", fps=100, cue_player=cues, on_ready=ready.append, clock_ms=lambda: 42)

	async def run():
		assert rec.start_recording()
		assert rec.is_recording
		for i in range(3):
			surface.publish(b"JPEG%d" % i, float(i), (4, 3))
			await asyncio.sleep(0.05)
		return await rec.stop_recording()

	path = asyncio.run(run())
	assert path == tmp_path / "out" / "posecap_recording_42.mjpeg"
	assert path.read_bytes() == b"JPEG0JPEG1JPEG2"
	assert ready == [path]
	assert cues.events == ["start", "stop"]
	assert not rec.is_recording


def test_stop_is_idempotent(tmp_path):
	surface = CompositeSurface()
	rec = Recorder(surface, tmp_path, fps=100, clock_ms=lambda: 7)

	async def run():
		rec.start_recording()
		surface.publish(b"X", 1.0, (1, 1))
		await asyncio.sleep(0.05)
		first = await rec.stop_recording()
		second = await rec.stop_recording()
		return first, second

	first, second = asyncio.run(run())
	assert first is not None
	assert second is None


def test_no_frames_writes_nothing(tmp_path):
	rec = Recorder(CompositeSurface(), tmp_path / "out", fps=100)

	async def run():
		rec.start_recording()
		await asyncio.sleep(0.02)
		return await rec.stop_recording()

	assert asyncio.run(run()) is None
	assert not (tmp_path / "out").exists() or list((tmp_path / "out").iterdir()) == []


def test_start_failure_rolls_back_flag(tmp_path):
	blocker = tmp_path / "not_a_dir"
	blocker.write_text("x")
	cues = FakeCues()
	rec = Recorder(CompositeSurface(), blocker / "recordings", cue_player=cues)

	async def run():
		return rec.start_recording()

	assert asyncio.run(run()) is False
	assert not rec.is_recording
	assert rec.last_error
	assert cues.events == []


def test_frames_of_another_size_are_skipped(tmp_path):
	surface = CompositeSurface()
	rec = Recorder(surface, tmp_path, fps=100, clock_ms=lambda: 7)
	rec.set_output_size(4, 3)
	assert rec.get_status()["output_size"] == [4, 3]

	async def run():
		assert rec.start_recording()
		# A leftover frame from the previous, larger source.
		surface.publish(b"OLD", 0.0, (8, 6))
		await asyncio.sleep(0.05)
		surface.publish(b"NEW", 1.0, (4, 3))
		await asyncio.sleep(0.05)
		return await rec.stop_recording()

	path = asyncio.run(run())
	assert path.read_bytes() == b"NEW"
	assert rec.skipped == 1
