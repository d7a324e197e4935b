"""
Read-only reporting over synchronized sales.

Modules:
    queries: Summary, top products and category breakdown
"""

__all__ = ["SalesAnalytics"]
