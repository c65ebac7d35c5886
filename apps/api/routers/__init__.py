"""Routers package."""

from . import (
    health,
    auth,
    ai,
    files,
    billing,
)
