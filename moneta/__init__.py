"""
Moneta - Ledger Core Package

The engine behind a personal / small-business finance tracker:
recurring-payment scheduling and monthly statement archival.

DESIGN PRINCIPLES:
1. Recurring rules expand deterministically into ledger entries
2. Every generated entry has a replayable identifier
3. Archival is exactly reversible
4. Business contexts never leak into each other
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Moneta Team"
