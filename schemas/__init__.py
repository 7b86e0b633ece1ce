"""Pydantic request/response models for API validation and docs."""
from schemas.requests import (
	SourceSelectPayload,
	DetectionTogglePayload,
	SeekPayload,
	StagePayload,
)
from schemas.responses import (
	CaptureStatusResponse,
	CaptureCommandResponse,
	RecordingResponse,
	PostureMetricsModel,
	ReportResponse,
)

__all__ = [
	"SourceSelectPayload",
	"DetectionTogglePayload",
	"SeekPayload",
	"StagePayload",
	"CaptureStatusResponse",
	"CaptureCommandResponse",
	"RecordingResponse",
	"PostureMetricsModel",
	"ReportResponse",
]
