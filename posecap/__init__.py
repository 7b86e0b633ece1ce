"""
posecap: real-time posture capture and analysis.

The package holds the capture pipeline (video sources, detection scheduler,
frame-quality monitor, posture metrics, recording) used by `server.py`.
"""

from pathlib import Path


def _read_version() -> str:
	try:
		vf = Path(__file__).resolve().parents[1] / "VERSION"
		if vf.exists():
			val = vf.read_text(encoding="utf-8").strip()
			if val:
				return val
	except OSError:
		pass
	return "0.1.0"


__version__ = _read_version()
