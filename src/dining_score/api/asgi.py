"""ASGI entrypoint for the dining score API."""

from dining_score.api.app import create_app
from dining_score.containers import build_container

app = create_app(build_container())
