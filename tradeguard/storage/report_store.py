"""ReportStore — append-only storage for ReconciliationReports.

Keeps reconciliation history for audit and for dashboards that chart
drift over time. Optional JSON-lines persistence.
"""

from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path

import structlog

from tradeguard.schemas.reconciliation import ReconciliationReport

logger = structlog.get_logger()


class ReportStore:
    """Append-only store for ReconciliationReport history.

    Thread-safe. Indexed by reconciliation_id.
    """

    def __init__(self, persist_path: Path | None = None) -> None:
        self._lock = threading.RLock()
        self._reports: dict[str, ReconciliationReport] = {}

        self._persist_path = persist_path
        if persist_path and persist_path.exists():
            self._load_from_disk()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def append(self, report: ReconciliationReport) -> bool:
        """Append a report. Returns True if new, False if duplicate."""
        with self._lock:
            if report.reconciliation_id in self._reports:
                return False

            self._reports[report.reconciliation_id] = report

            if self._persist_path:
                self._persist_one(report)

            logger.debug(
                "Report stored",
                reconciliation_id=report.reconciliation_id,
                consistent=report.is_consistent,
                discrepancies=len(report.discrepancies),
            )
            return True

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, reconciliation_id: str) -> ReconciliationReport | None:
        """Get a single report by id."""
        with self._lock:
            return self._reports.get(reconciliation_id)

    def query(
        self,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        critical_only: bool = False,
        limit: int | None = None,
    ) -> list[ReconciliationReport]:
        """Query reports with filters. Returns newest-first."""
        with self._lock:
            results: list[ReconciliationReport] = []
            for report in self._reports.values():
                ts = report.metadata.timestamp
                if critical_only and not report.has_critical_discrepancies:
                    continue
                if since and ts < since:
                    continue
                if until and ts > until:
                    continue
                results.append(report)

            results.sort(key=lambda r: r.metadata.timestamp, reverse=True)

            if limit:
                results = results[:limit]

            return results

    def get_latest(self) -> ReconciliationReport | None:
        """Get the most recent report."""
        results = self.query(limit=1)
        return results[0] if results else None

    def consistency_rate(self, last_n: int = 100) -> float:
        """Share of the last N reports that found no discrepancies."""
        reports = self.query(limit=last_n)
        if not reports:
            return 0.0
        consistent = sum(1 for r in reports if r.is_consistent)
        return consistent / len(reports)

    def count(self) -> int:
        """Total number of stored reports."""
        with self._lock:
            return len(self._reports)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist_one(self, report: ReconciliationReport) -> None:
        """Append a single report to the JSON-lines file."""
        try:
            self._persist_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._persist_path, "a") as f:
                f.write(report.model_dump_json() + "\n")
        except OSError as exc:
            logger.error(
                "Failed to persist report",
                reconciliation_id=report.reconciliation_id,
                error=str(exc),
            )

    def _load_from_disk(self) -> None:
        """Load reports from JSON-lines file."""
        count = 0
        try:
            with open(self._persist_path) as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    report = ReconciliationReport.model_validate_json(line)
                    if report.reconciliation_id not in self._reports:
                        self._reports[report.reconciliation_id] = report
                        count += 1
        except OSError as exc:
            logger.error(
                "Failed to load reports from disk",
                path=str(self._persist_path),
                error=str(exc),
            )
        logger.info("Reports loaded from disk", count=count)
