import numpy as np

from posecap.audio_cues import ASCENDING, synth_cue
from posecap.overlay import CompositeSurface, draw_skeleton, render_composite
from posecap.pose.types import LandmarkSnapshot


def test_skeleton_is_drawn_on_a_copy(make_snapshot):
	frame = np.zeros((240, 320, 3), dtype=np.uint8)
	out = draw_skeleton(frame, make_snapshot())
	assert out.shape == frame.shape
	assert out.any()
	assert not frame.any()


def test_no_pose_leaves_frame_untouched():
	frame = np.full((60, 80, 3), 7, dtype=np.uint8)
	out = draw_skeleton(frame, LandmarkSnapshot.empty())
	assert np.array_equal(out, frame)


def test_render_publishes_jpeg_with_frame_size(make_snapshot):
	surface = CompositeSurface()
	render_composite(surface, np.zeros((90, 160, 3), dtype=np.uint8), 5.0, make_snapshot())
	jpeg, t = surface.get_latest_jpeg()
	assert jpeg[:2] == b"\xff\xd8"
	assert t == 5.0
	assert surface.size == (160, 90)
	surface.clear()
	assert surface.get_latest_jpeg() == (None, None)


def test_cue_buffer_shape():
	buf = synth_cue(ASCENDING, note_seconds=0.1, sample_rate=8000)
	assert buf.dtype == np.float32
	assert len(buf) == 2 * 800
	assert float(np.abs(buf).max()) <= 0.3 + 1e-6
