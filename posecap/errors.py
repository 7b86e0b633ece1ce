"""
Error taxonomy for the capture pipeline.

Only DeviceUnavailable is ever surfaced to the user. The others are raised or
logged inside the pipeline and handled where they occur.
"""


class CaptureError(Exception):
	"""Base class for capture pipeline errors."""


class DeviceUnavailable(CaptureError):
	"""No video source could be opened (camera fallback chain exhausted or unreadable file)."""


class DetectionTimeout(CaptureError):
	"""The detector did not settle within the liveness timeout. Recovery only."""


class DetectionError(CaptureError):
	"""The detector raised. Logged; the scheduler keeps running."""


class RecordingStartFailure(CaptureError):
	"""Stream capture or encoder setup failed when starting a recording."""


class CaptureRejected(CaptureError):
	"""A capture command arrived without a usable snapshot. Ignored silently."""


class DetectorBusy(CaptureError):
	"""The detector worker is still inside an earlier (abandoned) call. The tick is dropped."""
