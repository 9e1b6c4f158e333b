"""Order flow module."""

from .machine import CLOSE_COMMANDS, MENU_COMMANDS, OrderFlow, parse_choice

__all__ = ["CLOSE_COMMANDS", "MENU_COMMANDS", "OrderFlow", "parse_choice"]
