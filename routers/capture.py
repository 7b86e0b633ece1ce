"""Capture routes. Routes: /capture/source, facing/toggle, pause, resume, pause/toggle, detection, seek, capture, exit, status."""
from fastapi import APIRouter, Depends, HTTPException

from deps import get_controller
from posecap.capture_state import CaptureState
from schemas.requests import DetectionTogglePayload, SeekPayload, SourceSelectPayload
from schemas.responses import CaptureCommandResponse, CaptureStatusResponse

router = APIRouter(tags=["capture"])


def _reply(detail: str, ctl, accepted: bool = True) -> dict:
	return {"detail": detail, "accepted": accepted, "session": ctl.session.to_dict()}


@router.post("/capture/source", response_model=CaptureCommandResponse)
async def capture_source(payload: SourceSelectPayload, ctl=Depends(get_controller)):
	"""Select a live camera or a video file. 503 when no device/file could be opened."""
	if ctl.session.state is CaptureState.COUNTDOWN:
		raise HTTPException(status_code=409, detail="Countdown in progress")
	if payload.kind == "file":
		if not payload.path:
			raise HTTPException(status_code=400, detail="path is required for kind=file")
		await ctl.select_file(payload.path)
	else:
		await ctl.select_camera(payload.facing)
	if ctl.last_error and ctl.session.source_kind is None:
		raise HTTPException(status_code=503, detail=ctl.last_error)
	return _reply(f"Source {payload.kind} ready.", ctl)


@router.post("/capture/facing/toggle", response_model=CaptureCommandResponse)
async def capture_toggle_facing(ctl=Depends(get_controller)):
	before = ctl.session.facing
	await ctl.toggle_facing()
	if ctl.last_error and ctl.session.source_kind is None:
		raise HTTPException(status_code=503, detail=ctl.last_error)
	changed = ctl.session.facing != before
	return _reply(f"Facing {ctl.session.facing}.", ctl, accepted=changed)


@router.post("/capture/pause", response_model=CaptureCommandResponse)
async def capture_pause(ctl=Depends(get_controller)):
	await ctl.pause()
	return _reply("Paused." if ctl.session.is_paused else "Not running.", ctl, accepted=ctl.session.is_paused)


@router.post("/capture/resume", response_model=CaptureCommandResponse)
async def capture_resume(ctl=Depends(get_controller)):
	was_paused = ctl.session.is_paused
	await ctl.resume()
	return _reply("Resumed.", ctl, accepted=was_paused and not ctl.session.is_paused)


@router.post("/capture/pause/toggle", response_model=CaptureCommandResponse)
async def capture_pause_toggle(ctl=Depends(get_controller)):
	await ctl.toggle_pause()
	return _reply("Paused." if ctl.session.is_paused else "Resumed.", ctl)


@router.post("/capture/detection", response_model=CaptureCommandResponse)
async def capture_detection(payload: DetectionTogglePayload, ctl=Depends(get_controller)):
	await ctl.set_detection(payload.enabled)
	return _reply("Detection enabled." if payload.enabled else "Detection disabled.", ctl)


@router.post("/capture/seek", response_model=CaptureCommandResponse)
async def capture_seek(payload: SeekPayload, ctl=Depends(get_controller)):
	if ctl.session.source_kind != "file":
		raise HTTPException(status_code=409, detail="Seek is only available for file playback")
	await ctl.seek(payload.t)
	return _reply(f"Seek to {payload.t:.2f}s.", ctl)


@router.post("/capture/capture", response_model=CaptureCommandResponse)
async def capture_capture(ctl=Depends(get_controller)):
	"""Start the countdown with the latest detected pose. 409 when nothing can be captured."""
	if not await ctl.capture():
		raise HTTPException(status_code=409, detail="No pose available to capture")
	return _reply(f"Countdown started ({ctl.session.countdown}).", ctl)


@router.post("/capture/exit", response_model=CaptureCommandResponse)
async def capture_exit(ctl=Depends(get_controller)):
	await ctl.exit()
	return _reply("Capture closed.", ctl)


@router.get("/capture/status", response_model=CaptureStatusResponse)
async def capture_status(ctl=Depends(get_controller)):
	return ctl.get_status()
