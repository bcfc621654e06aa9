from .app import create_app, shutdown

__all__ = ["create_app", "shutdown"]
