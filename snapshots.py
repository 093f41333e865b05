"""Monthly snapshot engine.

A month's snapshot is the state of every account as of the last day of that
month: each account contributes its most recent balance dated on or before
month end, and accounts with no such balance are left out entirely.
Snapshots are a derived cache and are always rewritten wholesale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from models import Account, AccountKind, Balance, CategorySnapshot, MonthlySnapshot
from periods import month_end

logger = logging.getLogger(__name__)

BalanceLookup = Callable[[int, date], Optional[float]]


@dataclass
class CategoryTotal:
    kind: AccountKind
    total: float


@dataclass
class SnapshotResult:
    assets_total: float = 0.0
    liabilities_total: float = 0.0
    net_worth: float = 0.0
    category_totals: dict[int, CategoryTotal] = field(default_factory=dict)


def calculate_snapshot(
    month: str, accounts: Iterable[Account], latest_balance: BalanceLookup
) -> SnapshotResult:
    """Aggregate the balances of ``accounts`` as of the end of ``month``.

    Liabilities are summed with their sign kept: a negative liability
    balance is a credit and raises net worth.
    """
    as_of = month_end(month)
    result = SnapshotResult()

    for account in accounts:
        if account.id is None:
            continue
        value = latest_balance(account.id, as_of)
        if value is None:
            continue

        if account.kind == AccountKind.asset:
            result.assets_total += value
        else:
            result.liabilities_total += value

        existing = result.category_totals.get(account.category_id)
        if existing:
            existing.total += value
        else:
            result.category_totals[account.category_id] = CategoryTotal(
                kind=account.kind, total=value
            )

    result.net_worth = result.assets_total - result.liabilities_total
    return result


def latest_balance_on_or_before(
    session: Session, account_id: int, as_of: date
) -> Optional[float]:
    balance = session.scalar(
        select(Balance)
        .where(Balance.account_id == account_id, Balance.date <= as_of)
        .order_by(Balance.date.desc(), Balance.id.desc())
        .limit(1)
    )
    if balance is None:
        return None
    return float(balance.value)


def session_balance_lookup(session: Session) -> BalanceLookup:
    def lookup(account_id: int, as_of: date) -> Optional[float]:
        return latest_balance_on_or_before(session, account_id, as_of)

    return lookup


def calculate_snapshot_for_month(session: Session, month: str) -> SnapshotResult:
    accounts = session.scalars(select(Account).order_by(Account.id)).all()
    return calculate_snapshot(month, accounts, session_balance_lookup(session))


def balance_months(session: Session) -> list[str]:
    """Distinct ``yyyy-mm`` months that have at least one balance, ascending."""
    month = func.strftime("%Y-%m", Balance.date).label("month")
    rows = session.execute(select(month).group_by(month).order_by(month)).all()
    return [row.month for row in rows if row.month]


def write_snapshot(session: Session, month: str, result: SnapshotResult) -> None:
    """Replace the stored snapshot rows of ``month`` with ``result``.

    Does not commit; callers own the transaction so the monthly row and its
    category rows always land together.
    """
    snapshot = session.get(MonthlySnapshot, month)
    if snapshot is None:
        snapshot = MonthlySnapshot(month=month)
        session.add(snapshot)
    snapshot.assets_total = result.assets_total
    snapshot.liabilities_total = result.liabilities_total
    snapshot.net_worth = result.net_worth
    snapshot.created_at = datetime.utcnow()

    session.execute(delete(CategorySnapshot).where(CategorySnapshot.month == month))
    for category_id, entry in sorted(result.category_totals.items()):
        session.add(
            CategorySnapshot(
                month=month,
                category_id=category_id,
                kind=entry.kind,
                total=entry.total,
            )
        )
    session.flush()


def _prune_snapshots(session: Session, keep: list[str]) -> int:
    stale = session.scalars(
        select(MonthlySnapshot.month).where(MonthlySnapshot.month.not_in(keep))
    ).all()
    session.execute(
        delete(CategorySnapshot).where(CategorySnapshot.month.not_in(keep))
    )
    if stale:
        session.execute(
            delete(MonthlySnapshot).where(MonthlySnapshot.month.in_(stale))
        )
    return len(stale)


def regenerate_snapshot_for_month(session: Session, month: str) -> SnapshotResult:
    result = calculate_snapshot_for_month(session, month)
    try:
        write_snapshot(session, month, result)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"snapshot_regenerated: month={month} net_worth={result.net_worth}")
    return result


def regenerate_all_snapshots(session: Session) -> int:
    """Recompute every month with balance data in one transaction.

    Months that no longer have any balance lose their snapshot rows.
    Returns the number of months written.
    """
    try:
        months = balance_months(session)
        pruned = _prune_snapshots(session, months)
        if not months:
            session.commit()
            logger.info(
                f"snapshots_regenerated: months=0 pruned={pruned} (no balance data)"
            )
            return 0

        accounts = session.scalars(select(Account).order_by(Account.id)).all()
        lookup = session_balance_lookup(session)
        for month in months:
            write_snapshot(session, month, calculate_snapshot(month, accounts, lookup))
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info(f"snapshots_regenerated: months={len(months)} pruned={pruned}")
    return len(months)
