"""Exchange-rate reconciliation across the global and regional feeds."""
from .rate_reconciler import RateReconciler

__all__ = ['RateReconciler']
