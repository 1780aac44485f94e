"""Storage layer — append-only audit trail of reconciliation reports.

Reports are immutable once produced; the store never rewrites them.
"""

from tradeguard.storage.report_store import ReportStore

__all__ = [
    "ReportStore",
]
