"""
Reconciler Module - Black Box Interface

Purpose: Experiment lifecycle state machine and event admission
Interface: Reconciler.reconcile(), ChaosBladePredicate
Hidden: Phase transitions, finalizer handling, prior-spec correlation

Knows nothing about watches or queues; the controller module drives it.
"""

from .predicate import ChaosBladePredicate
from .reconciler import ReconcileResult, Reconciler, spec_for_status

__all__ = ["Reconciler", "ReconcileResult", "ChaosBladePredicate", "spec_for_status"]
