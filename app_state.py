"""
Explicit app state: single source of truth for the runtime pipeline.
Created in lifespan, attached to app.state.state; injected into routes via Depends(get_state).
"""
from typing import Any, Callable, Optional


class AppState:
	"""
	Holds the runtime objects built in the server lifespan.
	Routes reach the capture pipeline only through this instance.
	"""
	# WebSocket connection manager (routers.ws.manager)
	manager: Any = None

	# Loaded AppConfig
	cfg: Any = None

	# Capture pipeline (set in lifespan)
	controller: Any = None
	store: Any = None
	recorder: Any = None
	surface: Any = None

	# Fire-and-forget WS broadcast (set in server lifespan)
	broadcast: Optional[Callable[[dict], None]] = None

	# Set when the detector could not be built (e.g. mediapipe missing)
	detector_error: Optional[str] = None
