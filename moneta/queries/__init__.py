"""Read-only ledger projections."""

from moneta.queries.metrics import BusinessMetrics, LedgerMetrics, SaaSMetrics

__all__ = ["BusinessMetrics", "LedgerMetrics", "SaaSMetrics"]
