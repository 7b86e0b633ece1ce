"""Composited video routes. Routes: /video/mjpeg, /video/snapshot.jpg."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response, StreamingResponse

from app_state import AppState
from deps import get_state
from posecap.video_source import mjpeg_from_latest

router = APIRouter(tags=["video"])


@router.get("/video/mjpeg")
async def video_mjpeg(fps: Optional[float] = None, state: AppState = Depends(get_state)):
	"""Live MJPEG stream of the composited surface (frame + skeleton overlay)."""
	if state.surface is None:
		raise HTTPException(status_code=503, detail="Capture pipeline not initialised")
	rate = float(fps) if fps else float(state.cfg.server.mjpeg_fps)
	return StreamingResponse(
		mjpeg_from_latest(state.surface, fps=rate),
		media_type="multipart/x-mixed-replace; boundary=frame",
		headers={
			"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
			"Pragma": "no-cache",
			"Connection": "keep-alive",
		},
	)


@router.get("/video/snapshot.jpg")
async def video_snapshot(state: AppState = Depends(get_state)):
	"""Return the latest composited JPEG frame."""
	jpeg = None
	if state.surface is not None:
		jpeg, _t = state.surface.get_latest_jpeg()
	if jpeg is None:
		raise HTTPException(status_code=404, detail="No JPEG frame available yet")
	return Response(
		content=jpeg,
		media_type="image/jpeg",
		headers={
			"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
			"Pragma": "no-cache",
		},
	)
