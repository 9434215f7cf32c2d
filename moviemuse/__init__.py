"""MovieMuse entry points: the backend app and the client session factory."""

from __future__ import annotations

from app.client import open_session
from app.main import app, create_app

__all__ = ["app", "create_app", "open_session"]
