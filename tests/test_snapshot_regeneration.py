from datetime import date

import pytest
from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

import snapshots
from database import Base, create_db_engine
from models import (
    Account,
    AccountKind,
    Balance,
    Category,
    CategorySnapshot,
    MonthlySnapshot,
)
from snapshots import (
    balance_months,
    regenerate_all_snapshots,
    regenerate_snapshot_for_month,
)


def make_session():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _seed(session):
    cash = Category(name="Cash", kind=AccountKind.asset)
    card = Category(name="Credit Card", kind=AccountKind.liability)
    session.add_all([cash, card])
    session.flush()
    checking = Account(name="Checking", bank="X", category_id=cash.id, kind=AccountKind.asset)
    visa = Account(name="Visa", bank="Y", category_id=card.id, kind=AccountKind.liability)
    session.add_all([checking, visa])
    session.flush()
    session.add_all(
        [
            Balance(account_id=checking.id, date=date(2024, 1, 15), value=100.0),
            Balance(account_id=checking.id, date=date(2024, 3, 10), value=150.0),
            Balance(account_id=visa.id, date=date(2024, 3, 2), value=40.0),
        ]
    )
    session.commit()
    return cash, card, checking, visa


def _snapshot_state(session):
    monthly = [
        (s.month, s.assets_total, s.liabilities_total, s.net_worth)
        for s in session.scalars(select(MonthlySnapshot).order_by(MonthlySnapshot.month))
    ]
    categories = sorted(
        (c.month, c.category_id, c.kind, c.total)
        for c in session.scalars(select(CategorySnapshot))
    )
    return monthly, categories


def test_regenerate_all_covers_exactly_the_months_with_balances() -> None:
    session = make_session()
    cash, card, _, _ = _seed(session)

    written = regenerate_all_snapshots(session)

    assert written == 2
    assert balance_months(session) == ["2024-01", "2024-03"]
    monthly, categories = _snapshot_state(session)
    assert monthly == [
        ("2024-01", 100.0, 0.0, 100.0),
        ("2024-03", 150.0, 40.0, 110.0),
    ]
    assert categories == [
        ("2024-01", cash.id, AccountKind.asset, 100.0),
        ("2024-03", cash.id, AccountKind.asset, 150.0),
        ("2024-03", card.id, AccountKind.liability, 40.0),
    ]


def test_regenerate_all_is_idempotent() -> None:
    session = make_session()
    _seed(session)

    regenerate_all_snapshots(session)
    first = _snapshot_state(session)
    regenerate_all_snapshots(session)

    assert _snapshot_state(session) == first
    assert session.scalar(select(CategorySnapshot).where(CategorySnapshot.month == "2024-02")) is None


def test_regenerate_month_replaces_the_category_rows() -> None:
    session = make_session()
    cash, _, _, _ = _seed(session)
    regenerate_all_snapshots(session)
    session.add(CategorySnapshot(month="2024-01", category_id=999, kind=AccountKind.asset, total=5.0))
    session.commit()

    result = regenerate_snapshot_for_month(session, "2024-01")

    assert result.net_worth == 100.0
    rows = session.scalars(
        select(CategorySnapshot).where(CategorySnapshot.month == "2024-01")
    ).all()
    assert [(r.category_id, r.total) for r in rows] == [(cash.id, 100.0)]


def test_months_without_balances_lose_their_snapshots() -> None:
    session = make_session()
    _seed(session)
    regenerate_all_snapshots(session)

    session.execute(delete(Balance).where(Balance.date == date(2024, 1, 15)))
    session.commit()
    regenerate_all_snapshots(session)

    monthly, categories = _snapshot_state(session)
    assert [m[0] for m in monthly] == ["2024-03"]
    assert all(c[0] == "2024-03" for c in categories)


def test_regenerate_all_without_data_is_a_no_op() -> None:
    session = make_session()

    assert regenerate_all_snapshots(session) == 0
    assert session.scalars(select(MonthlySnapshot)).all() == []


def test_failure_mid_sweep_keeps_previous_snapshots(monkeypatch) -> None:
    session = make_session()
    _seed(session)
    regenerate_all_snapshots(session)
    session.get(MonthlySnapshot, "2024-01").net_worth = -5.0
    session.commit()
    before = _snapshot_state(session)

    real_write = snapshots.write_snapshot

    def failing_write(session, month, result):
        if month == "2024-03":
            raise RuntimeError("disk full")
        real_write(session, month, result)

    monkeypatch.setattr(snapshots, "write_snapshot", failing_write)

    with pytest.raises(RuntimeError):
        regenerate_all_snapshots(session)

    assert _snapshot_state(session) == before
    assert session.get(MonthlySnapshot, "2024-01").net_worth == -5.0
