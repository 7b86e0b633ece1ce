from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CameraConfig:
	# OpenCV device indices used for each facing mode.
	front_index: int = 0
	back_index: int = 1
	# First constraint tried when acquiring a camera.
	ideal_width: int = 1280
	ideal_height: int = 720
	# Last-resort scan covers device indices 0..probe_max_index.
	probe_max_index: int = 4
	default_facing: str = "front"  # front / back


@dataclass(frozen=True)
class DetectionConfig:
	refresh_hz: float = 30.0
	# Liveness timeout: a detector call that has not settled by then no longer blocks new frames.
	timeout_seconds: float = 0.6
	model_complexity: int = 1
	min_detection_confidence: float = 0.5
	min_tracking_confidence: float = 0.5
	smooth_landmarks: bool = True


@dataclass(frozen=True)
class MonitorConfig:
	edge_margin: float = 0.05
	visibility_threshold: float = 0.55
	voice_throttle_seconds: float = 10.0
	voice_lang: str = "en-US"
	voice_rate: float = 1.1


@dataclass(frozen=True)
class CaptureConfig:
	countdown_seconds: int = 3


@dataclass(frozen=True)
class RecordingConfig:
	fps: int = 30
	output_dir: str = str(Path("data") / "recordings")
	# Output files are named <app_name>_<record_kind>_<unix-ms>.mjpeg
	app_name: str = "posecap"
	record_kind: str = "recording"
	jpeg_quality: int = 80
	# Best-effort ffmpeg remux of finished recordings to MP4.
	mux_mp4: bool = False
	cues_enabled: bool = True


@dataclass(frozen=True)
class StorageConfig:
	path: str = str(Path("data") / "app_state.json")


@dataclass(frozen=True)
class ServerConfig:
	mjpeg_fps: float = 15.0


@dataclass(frozen=True)
class AppConfig:
	camera: CameraConfig = field(default_factory=CameraConfig)
	detection: DetectionConfig = field(default_factory=DetectionConfig)
	monitor: MonitorConfig = field(default_factory=MonitorConfig)
	capture: CaptureConfig = field(default_factory=CaptureConfig)
	recording: RecordingConfig = field(default_factory=RecordingConfig)
	storage: StorageConfig = field(default_factory=StorageConfig)
	server: ServerConfig = field(default_factory=ServerConfig)


_CONFIG_PATH: Optional[Path] = None
_CONFIG_CACHE: Optional[AppConfig] = None


def _repo_root() -> Path:
	# posecap/config.py -> repo root is one level up.
	return Path(__file__).resolve().parents[1]


def get_default_config_path() -> Path:
	return _repo_root() / "config.json"


def set_config_path(path: str | Path) -> None:
	"""
	Override the config path (must be called before first get_config()).
	Used by the server CLI (--config) and by tests.
	"""
	global _CONFIG_PATH
	global _CONFIG_CACHE
	_CONFIG_PATH = Path(path).expanduser().resolve()
	_CONFIG_CACHE = None


def _deep_get(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
	cur: Any = d
	for k in keys:
		if not isinstance(cur, dict):
			return default
		cur = cur.get(k)
	return cur if cur is not None else default


def _as_int(v: Any, default: int) -> int:
	try:
		return int(v)
	except (TypeError, ValueError):
		return int(default)


def _as_bool(v: Any, default: bool) -> bool:
	if isinstance(v, bool):
		return v
	if isinstance(v, (int, float)):
		return bool(v)
	if isinstance(v, str):
		return v.strip().lower() in ("1", "true", "yes", "on")
	return bool(default)


def _as_str(v: Any, default: str = "") -> str:
	return str(v) if v is not None else str(default)


def _as_float(v: Any, default: float) -> float:
	try:
		return float(v)
	except (TypeError, ValueError):
		return float(default)


def _positive(v: float, default: float) -> float:
	return v if v > 0 else default


def _unit(v: float, default: float) -> float:
	return v if 0.0 <= v <= 1.0 else default


def load_config(path: Optional[str | Path] = None) -> AppConfig:
	p = Path(path).expanduser().resolve() if path else (_CONFIG_PATH or get_default_config_path())
	if not p.exists():
		# Defaults-only config; app can still run.
		return AppConfig()
	try:
		raw = json.loads(p.read_text(encoding="utf-8"))
	except (OSError, ValueError):
		# If config is malformed, fail safe to defaults (but keep app running).
		return AppConfig()

	if not isinstance(raw, dict):
		return AppConfig()

	cam_front = _as_int(_deep_get(raw, ["camera", "front_index"], 0), 0)
	cam_back = _as_int(_deep_get(raw, ["camera", "back_index"], 1), 1)
	cam_w = _as_int(_deep_get(raw, ["camera", "ideal_width"], 1280), 1280)
	cam_h = _as_int(_deep_get(raw, ["camera", "ideal_height"], 720), 720)
	cam_probe = _as_int(_deep_get(raw, ["camera", "probe_max_index"], 4), 4)
	cam_facing = _as_str(_deep_get(raw, ["camera", "default_facing"], "front"), "front").strip().lower()
	if cam_facing not in ("front", "back"):
		cam_facing = "front"

	det_hz = _as_float(_deep_get(raw, ["detection", "refresh_hz"], 30.0), 30.0)
	det_timeout = _as_float(_deep_get(raw, ["detection", "timeout_seconds"], 0.6), 0.6)
	det_complexity = _as_int(_deep_get(raw, ["detection", "model_complexity"], 1), 1)
	det_min_det = _as_float(_deep_get(raw, ["detection", "min_detection_confidence"], 0.5), 0.5)
	det_min_track = _as_float(_deep_get(raw, ["detection", "min_tracking_confidence"], 0.5), 0.5)
	det_smooth = _as_bool(_deep_get(raw, ["detection", "smooth_landmarks"], True), True)

	mon_margin = _as_float(_deep_get(raw, ["monitor", "edge_margin"], 0.05), 0.05)
	mon_vis = _as_float(_deep_get(raw, ["monitor", "visibility_threshold"], 0.55), 0.55)
	mon_throttle = _as_float(_deep_get(raw, ["monitor", "voice_throttle_seconds"], 10.0), 10.0)
	mon_lang = _as_str(_deep_get(raw, ["monitor", "voice_lang"], "en-US"), "en-US").strip() or "en-US"
	mon_rate = _as_float(_deep_get(raw, ["monitor", "voice_rate"], 1.1), 1.1)

	countdown = _as_int(_deep_get(raw, ["capture", "countdown_seconds"], 3), 3)

	rec_fps = _as_int(_deep_get(raw, ["recording", "fps"], 30), 30)
	rec_dir = _as_str(_deep_get(raw, ["recording", "output_dir"], str(Path("data") / "recordings")), "")
	rec_app = _as_str(_deep_get(raw, ["recording", "app_name"], "posecap"), "posecap").strip() or "posecap"
	rec_kind = _as_str(_deep_get(raw, ["recording", "record_kind"], "recording"), "recording").strip() or "recording"
	rec_quality = _as_int(_deep_get(raw, ["recording", "jpeg_quality"], 80), 80)
	rec_mux = _as_bool(_deep_get(raw, ["recording", "mux_mp4"], False), False)
	rec_cues = _as_bool(_deep_get(raw, ["recording", "cues_enabled"], True), True)

	storage_path = _as_str(_deep_get(raw, ["storage", "path"], str(Path("data") / "app_state.json")), "")

	mjpeg_fps = _as_float(_deep_get(raw, ["server", "mjpeg_fps"], 15.0), 15.0)

	return AppConfig(
		camera=CameraConfig(
			front_index=max(0, cam_front),
			back_index=max(0, cam_back),
			ideal_width=cam_w if cam_w > 0 else 1280,
			ideal_height=cam_h if cam_h > 0 else 720,
			probe_max_index=max(0, cam_probe),
			default_facing=cam_facing,
		),
		detection=DetectionConfig(
			refresh_hz=_positive(det_hz, 30.0),
			timeout_seconds=_positive(det_timeout, 0.6),
			model_complexity=det_complexity if det_complexity in (0, 1, 2) else 1,
			min_detection_confidence=_unit(det_min_det, 0.5),
			min_tracking_confidence=_unit(det_min_track, 0.5),
			smooth_landmarks=det_smooth,
		),
		monitor=MonitorConfig(
			edge_margin=_unit(mon_margin, 0.05),
			visibility_threshold=_unit(mon_vis, 0.55),
			voice_throttle_seconds=mon_throttle if mon_throttle >= 0.0 else 10.0,
			voice_lang=mon_lang,
			voice_rate=_positive(mon_rate, 1.1),
		),
		capture=CaptureConfig(countdown_seconds=countdown if countdown >= 0 else 3),
		recording=RecordingConfig(
			fps=rec_fps if rec_fps > 0 else 30,
			output_dir=rec_dir or str(Path("data") / "recordings"),
			app_name=rec_app,
			record_kind=rec_kind,
			jpeg_quality=rec_quality if 1 <= rec_quality <= 100 else 80,
			mux_mp4=rec_mux,
			cues_enabled=rec_cues,
		),
		storage=StorageConfig(path=storage_path or str(Path("data") / "app_state.json")),
		server=ServerConfig(mjpeg_fps=_positive(mjpeg_fps, 15.0)),
	)


def get_config() -> AppConfig:
	global _CONFIG_CACHE
	if _CONFIG_CACHE is None:
		_CONFIG_CACHE = load_config()
	return _CONFIG_CACHE
