"""Entry point for uvicorn/gunicorn: `uvicorn urlfixer.app_factory:app`."""
from urlfixer.app import create_app

app = create_app()

__all__ = ["app", "create_app"]
