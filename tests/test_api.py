import time

import numpy as np
import pytest
from fastapi.testclient import TestClient

from posecap.config import AppConfig, RecordingConfig, StorageConfig
from server import create_app


class FakeCapture:
	def __init__(self):
		self.frame = np.zeros((120, 160, 3), dtype=np.uint8)

	def read(self):
		time.sleep(0.005)
		return True, self.frame

	def release(self):
		pass


class FakeDetector:
	def __init__(self, snapshot):
		self.snapshot = snapshot

	async def detect(self, frame, t):
		return self.snapshot

	def close(self):
		pass


@pytest.fixture
def client(tmp_path, make_snapshot):
	cfg = AppConfig(
		recording=RecordingConfig(output_dir=str(tmp_path / "rec")),
		storage=StorageConfig(path=str(tmp_path / "state.json")),
	)
	app = create_app(cfg, detector=FakeDetector(make_snapshot()), capture_opener=lambda idx, size: FakeCapture())
	with TestClient(app) as c:
		yield c


def test_status_starts_in_source_selection(client):
	r = client.get("/capture/status")
	assert r.status_code == 200
	body = r.json()
	assert body["session"]["state"] == "source_select"
	assert body["stage"] == "welcome"


def test_select_live_camera(client):
	r = client.post("/capture/source", json={"kind": "live", "facing": "front"})
	assert r.status_code == 200
	assert r.json()["session"]["state"] == "live"
	assert client.get("/stage").json() == {"stage": "detecting"}


def test_file_source_errors(client, tmp_path):
	assert client.post("/capture/source", json={"kind": "file"}).status_code == 400
	r = client.post("/capture/source", json={"kind": "file", "path": str(tmp_path / "missing.mp4")})
	assert r.status_code == 503
	assert client.get("/stage").json() == {"stage": "welcome"}
	assert client.post("/capture/source", json={"kind": "tape"}).status_code == 422


def test_seek_requires_file_playback(client):
	client.post("/capture/source", json={"kind": "live"})
	assert client.post("/capture/seek", json={"t": 1.5}).status_code == 409


def test_capture_without_source_is_conflict(client):
	assert client.post("/capture/capture").status_code == 409


def test_pause_toggle(client):
	client.post("/capture/source", json={"kind": "live"})
	r = client.post("/capture/pause/toggle")
	assert r.json()["session"]["is_paused"] is True
	r = client.post("/capture/pause/toggle")
	assert r.json()["session"]["is_paused"] is False


def test_stage_roundtrip_and_validation(client):
	assert client.post("/stage", json={"stage": "pathA"}).json() == {"stage": "pathA"}
	assert client.get("/stage").json() == {"stage": "pathA"}
	assert client.post("/stage", json={"stage": "nowhere"}).status_code == 422


def test_report_is_empty_before_capture(client):
	body = client.get("/report").json()
	assert body["metrics"] is None
	assert body["path"] is None


def test_unknown_recording_is_404(client):
	assert client.get("/recordings/nothing.mjpeg").status_code == 404


def test_snapshot_404_before_frames(client):
	assert client.get("/video/snapshot.jpg").status_code == 404


def test_ws_pushes_state_on_connect(client):
	with client.websocket_connect("/ws") as ws:
		msg = ws.receive_json()
	assert msg["type"] == "state"
	assert msg["session"]["state"] == "source_select"


def test_exit_returns_to_welcome(client):
	client.post("/capture/source", json={"kind": "live"})
	r = client.post("/capture/exit")
	assert r.json()["session"]["state"] == "exited"
	assert client.get("/stage").json() == {"stage": "welcome"}
