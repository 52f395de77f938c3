"""
Storage Module - Black Box Interface

Purpose: Persist ChaosBlade objects and their status
Interface: get(), list(), update(), update_status(), set_annotation(), watch()
Hidden: Custom objects API, resourceVersion conflicts, watch streaming

Can be replaced with an in-memory store without affecting other modules.
"""

from .store import ChaosBladeStore

__all__ = ["ChaosBladeStore"]
