"""
Controller Module - Black Box Interface

Purpose: Drive the reconciler from cluster watch events
Interface: ControllerManager.start(), stop(), snapshot(), WorkQueue
Hidden: List/watch handling, event filtering, worker threads, backoff

Can be replaced with any level-triggered driver that calls Reconciler.reconcile().
"""

from .manager import ControllerManager
from .workqueue import WorkQueue

__all__ = ["ControllerManager", "WorkQueue"]
