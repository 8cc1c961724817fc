"""HTTP request layer: FastAPI app, routes and bearer authentication."""

from .main import build_services, create_app, start_api_server

__all__ = ["build_services", "create_app", "start_api_server"]
