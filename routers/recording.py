"""Recording routes. Routes: /recording/start, stop, status; /recordings/{name} download."""
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from app_state import AppState
from deps import get_controller, get_state
from schemas.responses import RecordingResponse

router = APIRouter(tags=["recording"])


@router.post("/recording/start", response_model=RecordingResponse)
async def recording_start(ctl=Depends(get_controller)):
	"""Start recording the composited surface. 500 if the recorder could not be started."""
	if not await ctl.start_recording():
		raise HTTPException(status_code=500, detail=ctl.recorder.last_error or "Recording could not be started")
	return {"detail": "Recording started.", "recording": True}


@router.post("/recording/stop", response_model=RecordingResponse)
async def recording_stop(ctl=Depends(get_controller)):
	name = await ctl.stop_recording()
	if name is None:
		return {"detail": "Nothing recorded.", "recording": False}
	return {"detail": "Recording saved.", "recording": False, "file": name, "url": f"/recordings/{name}"}


@router.get("/recording/status")
async def recording_status(ctl=Depends(get_controller)):
	return ctl.recorder.get_status()


@router.get("/recordings/{name}")
async def recording_download(name: str, state: AppState = Depends(get_state)):
	"""Download a finished recording by file name."""
	base = Path(state.cfg.recording.output_dir).resolve()
	p = (base / name).resolve()
	# Only plain names inside the recordings folder.
	if p.parent != base or not p.is_file():
		raise HTTPException(status_code=404, detail="Recording not found")
	media_type = "video/mp4" if p.suffix == ".mp4" else "video/x-motion-jpeg"
	return FileResponse(str(p), media_type=media_type, filename=p.name)
