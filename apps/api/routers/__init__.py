"""Routers package."""

from . import (
    health,
    auth,
    media,
    events,
)
