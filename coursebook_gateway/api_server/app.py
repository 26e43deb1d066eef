"""
FastAPI/ASGI application entrypoint.

Builds the gateway app from environment settings.
Run with: uvicorn coursebook_gateway.api_server.app:app --host 0.0.0.0 --port 8080
"""

from coursebook_gateway.api_server.server import create_app

app = create_app()

__all__ = ["app"]
