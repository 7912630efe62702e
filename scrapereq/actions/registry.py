from __future__ import annotations

import importlib
import logging
import pkgutil
from pathlib import Path
from typing import Callable

from scrapereq.actions.base import BaseAction

logger = logging.getLogger(__name__)


class ActionRegistry:
    """Maps step type names to action classes."""

    _registry: dict[str, type[BaseAction]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[BaseAction]], type[BaseAction]]:
        def decorator(action_class: type[BaseAction]) -> type[BaseAction]:
            if name in cls._registry and cls._registry[name] is not action_class:
                logger.warning(f"Overriding registered action '{name}' with {action_class.__name__}")
            cls._registry[name] = action_class
            return action_class

        return decorator

    @classmethod
    def get_action_class(cls, name: str) -> type[BaseAction] | None:
        return cls._registry.get(name)

    @classmethod
    def get_registered_actions(cls) -> dict[str, type[BaseAction]]:
        return dict(cls._registry)

    @classmethod
    def auto_discover_actions(cls) -> None:
        """Import every module in the handlers package so its actions register."""
        handlers_path = Path(__file__).resolve().parent / "handlers"
        for _, module_name, _ in pkgutil.iter_modules([str(handlers_path)]):
            importlib.import_module(f"scrapereq.actions.handlers.{module_name}")
        logger.debug(f"Registered actions: {sorted(cls._registry)}")
