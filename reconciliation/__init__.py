"""
Posted-item reconciliation against synchronized sales.

Modules:
    unsold: Unsold-Item Reconciler (two-tier matching) and the unsold report
    posted_items: Logging, listing and manual updates of posted items

Usage:
    from reconciliation.unsold import UnsoldItemReconciler

    reconciler = UnsoldItemReconciler(session)
    result = await reconciler.reconcile()
    report = await reconciler.unsold_report(days_threshold=14)
"""

__all__ = [
    "UnsoldItemReconciler",
    "PostedItemService",
]
