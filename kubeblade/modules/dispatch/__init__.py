"""
Dispatch Module - Black Box Interface

Purpose: Route experiments to the controller of their scope
Interface: Dispatcher.create(), Dispatcher.destroy()
Hidden: Registration table, error to status conversion
"""

from .dispatcher import Dispatcher, build_dispatcher

__all__ = ["Dispatcher", "build_dispatcher"]
