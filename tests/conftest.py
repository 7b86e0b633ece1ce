import sys
from pathlib import Path

import pytest

# server.py / routers / schemas live at the repo root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

from posecap.pose import landmarks as L  # noqa: E402
from posecap.pose.types import Landmark, LandmarkSnapshot  # noqa: E402


def _standing_pose():
	pts = [Landmark(0.5, 0.5, 0.0, 0.9) for _ in range(L.NUM_LANDMARKS)]
	pts[L.NOSE] = Landmark(0.5, 0.15, 0.0, 0.95)
	pts[L.LEFT_EAR] = Landmark(0.45, 0.14, 0.0, 0.9)
	pts[L.LEFT_SHOULDER] = Landmark(0.45, 0.3, 0.0, 0.95)
	pts[L.RIGHT_SHOULDER] = Landmark(0.55, 0.3, 0.0, 0.95)
	pts[L.LEFT_WRIST] = Landmark(0.4, 0.55, 0.0, 0.9)
	pts[L.RIGHT_WRIST] = Landmark(0.6, 0.55, 0.0, 0.9)
	pts[L.LEFT_HIP] = Landmark(0.46, 0.55, 0.0, 0.9)
	pts[L.RIGHT_HIP] = Landmark(0.54, 0.55, 0.0, 0.9)
	pts[L.LEFT_ANKLE] = Landmark(0.46, 0.85, 0.0, 0.9)
	pts[L.RIGHT_ANKLE] = Landmark(0.54, 0.85, 0.0, 0.9)
	pts[L.LEFT_FOOT_INDEX] = Landmark(0.45, 0.9, 0.0, 0.9)
	pts[L.RIGHT_FOOT_INDEX] = Landmark(0.55, 0.9, 0.0, 0.9)
	return pts


@pytest.fixture
def make_snapshot():
	"""
	Factory for a well-framed, fully visible standing pose.
	Keyword overrides map landmark index -> (x, y) or (x, y, visibility).
	"""

	def _make(overrides=None, t_capture=1.0):
		pts = _standing_pose()
		for idx, val in (overrides or {}).items():
			base = pts[idx]
			vis = val[2] if len(val) > 2 else base.visibility
			pts[idx] = Landmark(float(val[0]), float(val[1]), base.z, float(vis))
		return LandmarkSnapshot(landmarks=tuple(pts), t_capture=t_capture, width=640, height=480, backend="test")

	return _make


class FakeClock:
	def __init__(self, t: float = 0.0) -> None:
		self.t = float(t)

	def __call__(self) -> float:
		return self.t

	def advance(self, dt: float) -> None:
		self.t += float(dt)


@pytest.fixture
def clock():
	return FakeClock(1000.0)


class RecordingSink:
	"""Voice sink that remembers what it was asked to do."""

	def __init__(self) -> None:
		self.spoken = []
		self.cancels = 0

	def speak(self, text, lang):
		self.spoken.append((text, lang))

	def cancel(self):
		self.cancels += 1


@pytest.fixture
def voice_sink():
	return RecordingSink()


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path, monkeypatch):
	# Relative data paths (recordings, stage store) land in the test's tmp dir.
	monkeypatch.chdir(tmp_path)
