from __future__ import annotations

from scrapereq.actions.base import BaseAction

# Import handlers to ensure they are registered
from scrapereq.actions.handlers import (
    change,
    click,
    navigate,
    set_viewport,
    wait,
    wait_for_element,
)
from scrapereq.actions.registry import ActionRegistry

__all__ = ["ActionRegistry", "BaseAction"]
