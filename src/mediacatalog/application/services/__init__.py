"""Application services."""

from mediacatalog.application.services.presence_reconciler import PresenceReconciler

__all__ = ["PresenceReconciler"]
