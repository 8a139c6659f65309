"""ASGI entry point for the workflow automation engine."""

from .config import get_config
from .factory import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("automation_engine.main:app", **get_config().get_uvicorn_config())
