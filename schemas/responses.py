"""Pydantic response models for API docs."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PostureMetricsModel(BaseModel):
	"""Frozen posture metrics as delivered to the report."""

	shoulderAngle: float = Field(..., description="Shoulder line angle in degrees; positive means the point on the image's right sits lower")
	pelvicAngle: float = Field(..., description="Pelvic line angle in degrees, same sign convention")
	roundShoulderIndex: float = Field(..., description="Left ear x minus left shoulder x (normalized); positive means the head sits forward")
	score: int = Field(..., ge=0, le=100)
	issues: List[str] = Field(default_factory=list)


class CaptureStatusResponse(BaseModel):
	"""Response from GET /capture/status."""

	session: Dict[str, Any]
	stage: str
	alert: Dict[str, Any]
	error: Optional[str] = None
	has_snapshot: bool
	source: Dict[str, Any]
	position: Optional[Dict[str, float]] = None
	detection: Dict[str, Any]
	recording: Dict[str, Any]


class CaptureCommandResponse(BaseModel):
	"""Response from the capture command routes."""

	detail: str
	accepted: bool = True
	session: Dict[str, Any]


class RecordingResponse(BaseModel):
	"""Response from POST /recording/start and /recording/stop."""

	detail: str
	recording: bool
	file: Optional[str] = None
	url: Optional[str] = None


class ReportResponse(BaseModel):
	"""Response from GET /report."""

	stage: str
	metrics: Optional[PostureMetricsModel] = None
	path: Optional[str] = Field(None, description="'A' when the score is below 70, otherwise 'B'")
