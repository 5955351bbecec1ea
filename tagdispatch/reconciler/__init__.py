"""
Reconciler module.
Contains the periodic active tag reconciler.
"""

from tagdispatch.reconciler.main import TagReconciler, run

__all__ = ["TagReconciler", "run"]
