"""ASGI entry point: ``uvicorn main:app``."""
from nrc.api import create_app

app = create_app()
