# ASGI entry: uvicorn flatwatch.main:app
from .config import load_settings
from .entrypoints.fastapi_app import create_app
from .log import configure_logging

settings = load_settings()
configure_logging(settings.LOG_LEVEL)

app = create_app(settings)
