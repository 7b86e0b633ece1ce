import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app_state import AppState
from posecap import __version__
from posecap.capture_controller import build_capture_controller
from posecap.config import AppConfig, get_config, set_config_path
from routers import capture as capture_router
from routers import recording as recording_router
from routers import report as report_router
from routers import video as video_router
from routers import ws as ws_router
from routers.ws import manager

logger = logging.getLogger(__name__)


def _build_detector(cfg: AppConfig, state: AppState) -> Any:
	from posecap.pose.detector import build_mediapipe_detector

	try:
		return build_mediapipe_detector(cfg.detection)
	except Exception as e:
		# The rest of the app (sources, recording, report) still works without poses.
		state.detector_error = repr(e)
		logger.error("[Detect] pose detector unavailable: %r", e)
		return None


def create_app(cfg: Optional[AppConfig] = None, detector: Any = None, capture_opener: Any = None) -> FastAPI:
	"""
	Build the FastAPI app. `cfg`, `detector` and `capture_opener` default to the
	process config, the MediaPipe detector and OpenCV cameras.
	"""

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		state = AppState()
		state.cfg = cfg or get_config()
		state.manager = manager
		state.broadcast = manager.send_nowait

		det = detector if detector is not None else _build_detector(state.cfg, state)
		ctl = build_capture_controller(
			state.cfg,
			send=manager.send_nowait,
			detector=det,
			capture_opener=capture_opener,
		)
		state.controller = ctl
		state.store = ctl.store
		state.recorder = ctl.recorder
		state.surface = ctl.surface
		app.state.state = state

		ctl.start()
		logger.info("[Server] posecap %s ready (stage=%s)", __version__, ctl.store.stage)
		try:
			yield
		finally:
			try:
				await ctl.close()
			except Exception:
				logger.exception("[Server] capture shutdown failed")

	app = FastAPI(title="posecap", version=__version__, lifespan=lifespan)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	app.include_router(ws_router.router)
	app.include_router(capture_router.router)
	app.include_router(recording_router.router)
	app.include_router(video_router.router)
	app.include_router(report_router.router)

	@app.get("/health")
	async def health():
		return {"ok": True, "version": __version__, "ws_clients": manager.client_count}

	return app


app = create_app()


def main(argv: Optional[list] = None) -> int:
	cfg = get_config()
	p = argparse.ArgumentParser(description="posecap capture server")
	p.add_argument("--config", default=None, help="Path to config.json (optional)")
	p.add_argument("--host", default="0.0.0.0")
	p.add_argument("--port", type=int, default=8000)
	p.add_argument("--debug", action="store_true", help="Enable debug logging.")
	args = p.parse_args(argv)

	if args.debug:
		logging.basicConfig(level=logging.DEBUG, format="%(levelname)s:%(name)s:%(message)s")
	else:
		logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")

	if args.config:
		set_config_path(args.config)
		cfg = get_config()

	import uvicorn

	try:
		uvicorn.run(create_app(cfg), host=args.host, port=int(args.port))
		return 0
	except KeyboardInterrupt:
		return 0
	except Exception as e:
		logging.exception("Fatal error: %s", e)
		return 1


if __name__ == "__main__":
	sys.exit(main())
