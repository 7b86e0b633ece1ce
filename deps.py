"""
FastAPI dependencies. Use Depends(get_state) in route handlers to receive AppState,
or Depends(get_controller) for the capture controller directly.
"""
from fastapi import HTTPException, Request

from app_state import AppState


def get_state(request: Request) -> AppState:
	"""Return the app state instance attached in lifespan."""
	return request.app.state.state


def get_controller(request: Request):
	"""Return the capture controller; 503 while the pipeline is not up."""
	ctl = get_state(request).controller
	if ctl is None:
		raise HTTPException(status_code=503, detail="Capture pipeline not initialised")
	return ctl
