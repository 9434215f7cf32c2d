"""MovieMuse application package.

The backend app and the client session factory are imported lazily so that
importing a submodule (for example ``app.config``) stays cheap.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "app": "app.main",
    "create_app": "app.main",
    "open_session": "app.client",
    "get_settings": "app.config",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module 'app' has no attribute {name}")
    return getattr(import_module(module_name), name)
