from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from database import Store, session_scope
from models import CategorySnapshot, MonthlySnapshot
from snapshots import (
    balance_months,
    calculate_snapshot_for_month,
    regenerate_all_snapshots,
    regenerate_snapshot_for_month,
)

logger = logging.getLogger(__name__)

TOLERANCE = 0.01


@dataclass
class AuditReport:
    months_checked: int = 0
    repaired_months: list[str] = field(default_factory=list)
    full_regeneration: bool = False
    failed: bool = False
    error: Optional[str] = None

    @property
    def repaired(self) -> int:
        return len(self.repaired_months)


def find_mismatch(session: Session, month: str) -> Optional[str]:
    """Describe why the stored snapshot of ``month`` is wrong, or ``None``."""
    stored = session.get(MonthlySnapshot, month)
    if stored is None:
        return "missing snapshot"

    expected = calculate_snapshot_for_month(session, month)
    if abs(stored.net_worth - expected.net_worth) > TOLERANCE:
        return f"net worth stored={stored.net_worth} expected={expected.net_worth}"

    stored_totals = {
        row.category_id: row.total
        for row in session.scalars(
            select(CategorySnapshot).where(CategorySnapshot.month == month)
        )
    }
    for category_id, entry in expected.category_totals.items():
        stored_total = stored_totals.get(category_id)
        if stored_total is None or abs(stored_total - entry.total) > TOLERANCE:
            return (
                f"category {category_id} stored={stored_total} expected={entry.total}"
            )
    return None


class IntegrityAuditor:
    """Recomputes every month and repairs stored snapshots that drifted.

    Never raises: an unexpected failure escalates to a full regeneration,
    and if that fails too the error is only logged.
    """

    def __init__(self, store: Store) -> None:
        self.store = store

    def _audit(self, report: AuditReport) -> None:
        with session_scope(self.store) as session:
            months = balance_months(session)
            if not months:
                logger.info("integrity: no balance data, skipping check")
                return

            logger.info(f"integrity: checking months={len(months)}")
            for month in months:
                report.months_checked += 1
                reason = find_mismatch(session, month)
                if reason is None:
                    continue
                logger.warning(f"integrity_mismatch: month={month} {reason}")
                regenerate_snapshot_for_month(session, month)
                report.repaired_months.append(month)
                logger.info(f"integrity_repair: month={month}")

    def run(self) -> AuditReport:
        report = AuditReport()
        try:
            self._audit(report)
        except Exception as exc:
            logger.exception("integrity: check failed")
            report.error = str(exc)
            report.full_regeneration = True
            try:
                logger.info("integrity: attempting full snapshot regeneration")
                with session_scope(self.store) as session:
                    regenerate_all_snapshots(session)
            except Exception as regen_exc:
                logger.exception("integrity: full regeneration also failed")
                report.failed = True
                report.error = str(regen_exc)
            return report

        if report.repaired_months:
            logger.info(f"integrity: repaired={report.repaired}")
        elif report.months_checked:
            logger.info("integrity: all snapshots verified")
        return report
