"""ASGI entry point: `uvicorn hotelhub.api.main:app`."""

from hotelhub.api import create_app

app = create_app()
