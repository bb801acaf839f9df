from .status_server import create_app, get_status

__all__ = ["create_app", "get_status"]
