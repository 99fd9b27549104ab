"""PanStream FastAPI application package."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_LAZY_EXPORTS = {
    "app": "app.main",
    "create_app": "app.main",
    "CatalogService": "app.services.catalog",
    "get_settings": "app.config",
}

__all__ = list(_LAZY_EXPORTS)


def __getattr__(name: str) -> Any:
    # Importing app.main builds the ASGI app, so defer it until asked for.
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module 'app' has no attribute {name}")
    return getattr(import_module(module_name), name)
