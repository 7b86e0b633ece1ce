"""HTTP and WebSocket routers mounted by server.create_app()."""
