from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Optional


def find_ffmpeg() -> Optional[str]:
	return shutil.which("ffmpeg")


def mux_mjpeg_to_mp4_async(mjpeg_path: Path, mp4_path: Path, fps: int) -> bool:
	"""
	Best-effort transcode: concatenated-JPEG recording -> H.264 MP4 next to it.
	Non-blocking (starts ffmpeg subprocess and returns).
	"""
	ffmpeg = find_ffmpeg()
	if not ffmpeg:
		return False
	if not mjpeg_path.exists():
		return False
	if mp4_path.exists():
		return True

	subprocess.Popen(
		[
			ffmpeg,
			"-y",
			"-f",
			"mjpeg",
			"-framerate",
			str(int(fps)),
			"-i",
			str(mjpeg_path),
			"-c:v",
			"libx264",
			"-pix_fmt",
			"yuv420p",
			"-movflags",
			"+faststart",
			str(mp4_path),
		],
		stdout=subprocess.DEVNULL,
		stderr=subprocess.DEVNULL,
	)
	return True
