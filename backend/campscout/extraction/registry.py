"""Extraction logic registry — maps built-in module names to logic classes."""

import logging
from typing import Type

from campscout.extraction.base import ExtractionLogic

logger = logging.getLogger(__name__)

# Module name -> logic class mapping
_REGISTRY: dict[str, Type[ExtractionLogic]] = {}


def register_logic(name: str):
    """Decorator to register a built-in extraction logic class under a name."""
    def decorator(cls: Type[ExtractionLogic]):
        cls.name = name
        _REGISTRY[name] = cls
        logger.debug(f"Registered extraction logic: {name}")
        return cls
    return decorator


def get_logic_class(name: str) -> Type[ExtractionLogic] | None:
    """Look up the logic class registered under a module name."""
    return _REGISTRY.get(name)


def list_modules() -> list[str]:
    """List all registered built-in module names."""
    return list(_REGISTRY.keys())
