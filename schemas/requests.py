"""Pydantic request body models for the capture endpoints."""
from typing import Literal, Optional

from pydantic import BaseModel, Field


class SourceSelectPayload(BaseModel):
	"""Request body for POST /capture/source. Live camera or an uploaded/local video file."""

	kind: Literal["live", "file"] = Field(..., description="'live' for a camera, 'file' for a video file")
	facing: Optional[Literal["front", "back"]] = Field(None, description="Camera facing for kind=live; defaults to the current facing")
	path: Optional[str] = Field(None, description="Video file path for kind=file")


class DetectionTogglePayload(BaseModel):
	"""Request body for POST /capture/detection."""

	enabled: bool = Field(..., description="Run the pose detector and framing monitor")


class SeekPayload(BaseModel):
	"""Request body for POST /capture/seek. File playback only."""

	t: float = Field(..., ge=0.0, description="Target playback position in seconds")


class StagePayload(BaseModel):
	"""Request body for POST /stage."""

	stage: Literal["welcome", "detecting", "report", "pathA", "pathB"] = Field(..., description="Application stage to persist")
