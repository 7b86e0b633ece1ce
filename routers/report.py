"""Report / stage routes. Routes: /report, /stage."""
from fastapi import APIRouter, Depends

from app_state import AppState
from deps import get_state
from posecap.pose.posture_metrics import recommend_path
from schemas.requests import StagePayload
from schemas.responses import ReportResponse

router = APIRouter(tags=["report"])


@router.get("/report", response_model=ReportResponse)
async def report(state: AppState = Depends(get_state)):
	"""Last captured metrics and the follow-up path (A for a poor score, B otherwise)."""
	m = state.store.metrics
	return {
		"stage": state.store.stage,
		"metrics": m.to_dict() if m is not None else None,
		"path": recommend_path(m) if m is not None else None,
	}


@router.get("/stage")
async def get_stage(state: AppState = Depends(get_state)):
	return {"stage": state.store.stage}


@router.post("/stage")
async def set_stage(payload: StagePayload, state: AppState = Depends(get_state)):
	state.store.set_stage(payload.stage)
	return {"stage": state.store.stage}
