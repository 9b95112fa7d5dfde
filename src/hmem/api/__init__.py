from .app import build_store, create_app

__all__ = ["build_store", "create_app"]
